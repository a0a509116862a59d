"""Shared LLM calling utilities.

Centralizes every text-generation call behind :class:`LLMClient` so the
pipeline, analyzer and agent can be driven by a fake client in tests.
The production client talks to the Anthropic Messages API.
"""

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Generator
from typing import Any, Literal

import anthropic
from pydantic import BaseModel, Field

from clipcraft.config import ClipcraftConfig
from clipcraft.errors import ClipcraftError, ConfigurationError

logger = logging.getLogger(__name__)


class LLMError(ClipcraftError):
    """Base error for LLM calls."""


class Completion(BaseModel):
    """Text returned by a single generation call."""

    text: str
    model: str


class StreamChunk(BaseModel):
    """One unit of a streamed chat response.

    ``text`` chunks arrive as the model writes; ``tool_use`` chunks and the
    final ``stop`` chunk arrive once the message is complete.
    """

    type: Literal["text", "tool_use", "stop"]
    text: str = ""
    tool_use_id: str = ""
    name: str = ""
    input: dict[str, Any] = Field(default_factory=dict)
    stop_reason: str | None = None


class LLMClient(ABC):
    """Opaque text-generation capability."""

    @abstractmethod
    def generate(
        self,
        prompt: str,
        *,
        model: str,
        temperature: float,
        label: str = "generation",
    ) -> Completion:
        """Run one completion and return its text.

        Raises:
            LLMError: On any transport or provider failure.
        """

    @abstractmethod
    def stream_chat(
        self,
        *,
        system: str,
        messages: list[dict[str, Any]],
        model: str,
        temperature: float,
        tools: list[dict[str, Any]] | None = None,
        label: str = "chat",
    ) -> Generator[StreamChunk, None, None]:
        """Stream one assistant message.

        Closing the returned generator must release the upstream connection.
        """


class AnthropicClient(LLMClient):
    """LLMClient backed by the Anthropic Messages API."""

    def __init__(self, api_key: str, *, timeout: int = 120, max_tokens: int = 4096) -> None:
        if not api_key:
            raise ConfigurationError("ANTHROPIC_API_KEY not set")
        self._client = anthropic.Anthropic(api_key=api_key, timeout=timeout)
        self._max_tokens = max_tokens

    def generate(
        self,
        prompt: str,
        *,
        model: str,
        temperature: float,
        label: str = "generation",
    ) -> Completion:
        logger.debug("Calling Anthropic API model=%s (%s)", model, label)
        try:
            response = self._client.messages.create(
                model=model,
                max_tokens=self._max_tokens,
                temperature=temperature,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIError as exc:
            raise LLMError(f"Anthropic API failed (label={label}): {exc}") from exc

        text_parts: list[str] = []
        for block in response.content:
            if block.type == "text":
                text_parts.append(block.text)

        text = "".join(text_parts).strip()
        if not text:
            raise LLMError(f"Anthropic API returned empty response (label={label})")
        return Completion(text=text, model=model)

    def stream_chat(
        self,
        *,
        system: str,
        messages: list[dict[str, Any]],
        model: str,
        temperature: float,
        tools: list[dict[str, Any]] | None = None,
        label: str = "chat",
    ) -> Generator[StreamChunk, None, None]:
        logger.debug("Streaming Anthropic API model=%s (%s)", model, label)
        kwargs: dict[str, Any] = {
            "model": model,
            "max_tokens": self._max_tokens,
            "temperature": temperature,
            "system": system,
            "messages": messages,
        }
        if tools:
            kwargs["tools"] = tools

        try:
            with self._client.messages.stream(**kwargs) as stream:
                for event in stream:
                    if event.type == "text":
                        yield StreamChunk(type="text", text=event.text)
                final = stream.get_final_message()
        except anthropic.APIError as exc:
            raise LLMError(f"Anthropic stream failed (label={label}): {exc}") from exc

        for block in final.content:
            if block.type == "tool_use":
                yield StreamChunk(
                    type="tool_use",
                    tool_use_id=block.id,
                    name=block.name,
                    input=dict(block.input or {}),
                )
        yield StreamChunk(type="stop", stop_reason=final.stop_reason)


def create_llm_client(config: ClipcraftConfig) -> LLMClient:
    """Build the production client from configuration.

    Raises:
        ConfigurationError: If no API key is configured.
    """
    return AnthropicClient(
        config.api_key,
        timeout=config.models.timeout,
        max_tokens=config.models.max_tokens,
    )


# ---------------------------------------------------------------------------
# JSON output helpers
# ---------------------------------------------------------------------------

_OUTER_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.DOTALL)


def strip_json_fences(text: str) -> str:
    """Strip a markdown code fence wrapping the whole LLM output.

    Only a fence that opens at the start and closes at the end counts;
    fences inside the payload (code samples in item content) are left
    alone.
    """
    text = text.strip()
    match = _OUTER_FENCE_RE.fullmatch(text)
    if match:
        return match.group(1)
    return text


def extract_json_fragment(text: str) -> str | None:
    """Cut the outermost ``{...}`` or ``[...]`` span out of surrounding prose.

    Returns ``None`` when there is no such span.
    """
    brace_start = text.find("{")
    bracket_start = text.find("[")

    candidates: list[tuple[int, str]] = []
    if brace_start != -1:
        candidates.append((brace_start, "}"))
    if bracket_start != -1:
        candidates.append((bracket_start, "]"))

    # Earliest delimiter wins
    candidates.sort()

    for start, end_char in candidates:
        end = text.rfind(end_char)
        if end > start:
            return text[start : end + 1]
    return None
