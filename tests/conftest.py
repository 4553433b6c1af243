"""
Shared fixtures and fakes for the Smart Dairy test suite.

Fakes stand in for the three external collaborators (completion client, web
search, tabular executor); the SQLite store is real and lives under tmp_path.
"""

from datetime import datetime, timedelta, timezone
from typing import Any

import pytest

from smart_dairy.core.database import FarmStore
from smart_dairy.core.errors import SearchError, TabularExecutionError
from smart_dairy.core.types import SearchResult


class FakeCompletionClient:
    """
    Replies keyed by the system instruction of the request, so concurrent paths
    get deterministic answers. A reply that is an exception is raised instead.
    """

    def __init__(self, replies: dict[str, Any] | None = None, default: Any = "Generated answer.") -> None:
        self.replies = dict(replies or {})
        self.default = default
        self.calls: list[list[dict[str, str]]] = []

    async def complete(self, messages: list[dict[str, str]], **options: Any) -> str:
        self.calls.append(messages)
        reply = self.replies.get(messages[0]["content"], self.default)
        if isinstance(reply, Exception):
            raise reply
        return reply

    def prompts_for(self, instruction: str) -> list[str]:
        """User-turn contents of every call made with the given system instruction."""
        return [m[1]["content"] for m in self.calls if m[0]["content"] == instruction]


class FakeSearchProvider:
    def __init__(self, results: list[SearchResult] | None = None, error: str | None = None) -> None:
        self.results = list(results or [])
        self.error = error
        self.queries: list[tuple[str, int]] = []

    def search(self, query: str, count: int) -> list[SearchResult]:
        self.queries.append((query, count))
        if self.error:
            raise SearchError(self.error)
        return list(self.results[:count])


class FakeTabularExecutor:
    def __init__(self, output: str = "mean milk_yield 28.4", error: str | None = None) -> None:
        self.output = output
        self.error = error
        self.calls: list[tuple[str, str]] = []

    def analyze(self, file_path: str, query: str) -> str:
        self.calls.append((file_path, query))
        if self.error:
            raise TabularExecutionError(self.error)
        return self.output


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 5, 1, 8, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def store(tmp_path) -> FarmStore:
    s = FarmStore(tmp_path / "smart_dairy_test.db")
    s.init_db()
    return s


@pytest.fixture
def search_results() -> list[SearchResult]:
    return [
        SearchResult(title="Dairy rules 2024", url="https://example.org/rules", snippet="New dairy regulations."),
        SearchResult(title="Milk pricing update", url="https://example.org/milk", snippet="Milk prices rose."),
    ]


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def herd_csv(tmp_path):
    path = tmp_path / "herd.csv"
    path.write_text(
        "cow_id,date,milk_yield\n"
        "C1,2024-05-01,30.5\n"
        "C1,2024-05-02,29.5\n"
        "C2,2024-05-01,25.0\n"
        "C2,2024-05-02,27.0\n"
    )
    return path
