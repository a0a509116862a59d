"""Shared fixtures: an in-memory LLM client and a deterministic config."""

from __future__ import annotations

import copy
from collections.abc import Generator
from typing import Any

import pytest

from clipcraft.config import ClipcraftConfig
from clipcraft.llm import Completion, LLMClient, StreamChunk


class FakeLLMClient(LLMClient):
    """Scripted LLMClient.

    ``by_label`` maps a label prefix to a reply: a string, an exception to
    raise, or a list consumed one reply per call. Unmatched calls fall back
    to ``default``. Every call is recorded in ``calls``.
    """

    def __init__(
        self,
        by_label: dict[str, Any] | None = None,
        default: Any = "{}",
        streams: list[list[StreamChunk]] | None = None,
    ) -> None:
        self.by_label = dict(by_label or {})
        self.default = default
        self.streams = list(streams or [])
        self.calls: list[dict[str, Any]] = []
        self.stream_calls: list[dict[str, Any]] = []
        self.closed_streams = 0

    def labels(self) -> list[str]:
        return [call["label"] for call in self.calls]

    def _reply_for(self, label: str) -> Any:
        for prefix, reply in self.by_label.items():
            if label.startswith(prefix):
                if isinstance(reply, list):
                    return reply.pop(0)
                return reply
        return self.default

    def generate(
        self,
        prompt: str,
        *,
        model: str,
        temperature: float,
        label: str = "generation",
    ) -> Completion:
        self.calls.append(
            {"prompt": prompt, "model": model, "temperature": temperature, "label": label}
        )
        reply = self._reply_for(label)
        if isinstance(reply, Exception):
            raise reply
        return Completion(text=reply, model=model)

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
        self.stream_calls.append(
            {
                "system": system,
                "messages": copy.deepcopy(messages),
                "model": model,
                "temperature": temperature,
                "tools": tools,
                "label": label,
            }
        )
        chunks = self.streams.pop(0) if self.streams else [StreamChunk(type="stop")]
        try:
            for chunk in chunks:
                if isinstance(chunk, Exception):
                    raise chunk
                yield chunk
        finally:
            self.closed_streams += 1


@pytest.fixture
def config() -> ClipcraftConfig:
    return ClipcraftConfig(api_key="test-key")


@pytest.fixture
def make_llm():
    """Factory for FakeLLMClient instances."""
    return FakeLLMClient
