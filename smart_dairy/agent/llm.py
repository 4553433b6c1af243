"""
Completion clients: OpenAI-compatible endpoint (primary) or Hugging Face router (fallback).

The primary speaks the OpenAI chat completions API through the openai SDK, so
it works against OpenAI itself or a local Ollama server (LLM_BASE_URL). Clients
are built once at startup by build_completion_client() and injected into the
orchestrator; nothing here reads config per request.
"""

import logging
from typing import Any, Protocol

import httpx
from openai import AsyncOpenAI

from smart_dairy.core.config import (
    HF_API_KEY,
    HF_CHAT_URL,
    HF_LLM_MODEL,
    LLM_API_TIMEOUT,
    LLM_BASE_URL,
    LLM_MAX_TOKENS,
    LLM_MODEL,
    OPENAI_API_KEY,
)
from smart_dairy.core.errors import CompletionError

logger = logging.getLogger(__name__)

Message = dict[str, str]


class CompletionClient(Protocol):
    """Submit an ordered message list, receive generated text. Raises CompletionError."""

    async def complete(self, messages: list[Message], **options: Any) -> str: ...


def system_user(instruction: str, content: str) -> list[Message]:
    """The two-message shape every component sends: instruction, then the user turn."""
    return [
        {"role": "system", "content": instruction},
        {"role": "user", "content": content},
    ]


class OpenAICompatibleClient:
    """Chat completions via the openai SDK against any OpenAI-compatible base URL."""

    def __init__(
        self,
        *,
        model: str = LLM_MODEL,
        base_url: str | None = LLM_BASE_URL or None,
        api_key: str | None = None,
        timeout: float = LLM_API_TIMEOUT,
        max_tokens: int = LLM_MAX_TOKENS,
    ) -> None:
        self.model = model
        self.max_tokens = max_tokens
        # Ollama ignores the key but the SDK requires a non-empty one.
        self._client = AsyncOpenAI(
            api_key=api_key or OPENAI_API_KEY or "ollama",
            base_url=base_url,
            timeout=timeout,
        )

    async def complete(self, messages: list[Message], **options: Any) -> str:
        logger.info("[llm:openai] IN  model=%s messages=%d", self.model, len(messages))
        try:
            response = await self._client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=options.get("max_tokens", self.max_tokens),
                temperature=options.get("temperature", 0.2),
            )
        except Exception as e:
            raise CompletionError(f"OpenAI-compatible completion failed: {e}") from e
        msg = response.choices[0].message if response.choices else None
        out = ((msg.content if msg else None) or "").strip()
        if not out:
            raise CompletionError("OpenAI-compatible completion returned no content")
        logger.info("[llm:openai] OUT response_len=%d", len(out))
        return out


class HuggingFaceClient:
    """Chat completions via the Hugging Face router (OpenAI-style JSON over httpx)."""

    def __init__(
        self,
        *,
        api_key: str = HF_API_KEY,
        model: str = HF_LLM_MODEL,
        url: str = HF_CHAT_URL,
        timeout: float = LLM_API_TIMEOUT,
        max_tokens: int = LLM_MAX_TOKENS,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.url = url
        self.timeout = timeout
        self.max_tokens = max_tokens

    async def complete(self, messages: list[Message], **options: Any) -> str:
        if not self.api_key:
            raise CompletionError("HF_API_KEY is not set")
        logger.info("[llm:hf] IN  model=%s messages=%d", self.model, len(messages))
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        payload = {
            "model": self.model,
            "messages": messages,
            "max_tokens": options.get("max_tokens", self.max_tokens),
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise CompletionError(f"HF request failed: {e}") from e
        if response.status_code != 200:
            raise CompletionError(f"HF LLM error {response.status_code}: {response.text[:200]}")
        choices = response.json().get("choices") or []
        out = ""
        if choices and isinstance(choices[0], dict):
            out = ((choices[0].get("message") or {}).get("content") or "").strip()
        if not out:
            raise CompletionError("HF completion returned no content")
        logger.info("[llm:hf] OUT response_len=%d", len(out))
        return out


class FallbackCompletionClient:
    """Try the primary client; on CompletionError use the fallback."""

    def __init__(self, primary: CompletionClient, fallback: CompletionClient) -> None:
        self.primary = primary
        self.fallback = fallback

    async def complete(self, messages: list[Message], **options: Any) -> str:
        try:
            return await self.primary.complete(messages, **options)
        except CompletionError as e:
            logger.info("[llm] primary failed (%s); falling back", e)
        return await self.fallback.complete(messages, **options)


def build_completion_client() -> CompletionClient:
    """
    Build the completion client from configuration, once, at startup.
    Uses the OpenAI-compatible endpoint; chains the HF router behind it when HF_API_KEY is set.
    """
    primary = OpenAICompatibleClient()
    if HF_API_KEY:
        logger.info("[llm] using %s at %s with HF fallback", LLM_MODEL, LLM_BASE_URL)
        return FallbackCompletionClient(primary, HuggingFaceClient())
    logger.info("[llm] using %s at %s", LLM_MODEL, LLM_BASE_URL)
    return primary
