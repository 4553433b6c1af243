"""
Application errors for clean fallback and API error handling.

Collaborator failures (LLM, web search, tabular executor) derive from
ServiceUnavailableError and are absorbed by the component that called them.
PersistenceError is the only request-fatal class; the orchestrator wraps it
into OrchestrationError for the API layer.
"""


class ServiceUnavailableError(Exception):
    """Raised when a required service (LLM, search, executor) is unavailable or misconfigured."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class CompletionError(ServiceUnavailableError):
    """The completion client failed or returned nothing usable."""


class SearchError(ServiceUnavailableError):
    """The external web search failed."""


class TabularExecutionError(ServiceUnavailableError):
    """The tabular executor could not read or analyze a data file."""


class PersistenceError(Exception):
    """A database read or write failed."""


class OrchestrationError(Exception):
    """Request-level failure surfaced to the caller with detail text."""

    def __init__(self, message: str, detail: str) -> None:
        self.message = message
        self.detail = detail
        super().__init__(f"{message}: {detail}")
