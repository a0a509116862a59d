"""Streaming, cancellable tool-use conversation with the content agent.

A turn alternates model steps and tool calls on one thread: stream the
assistant message, run every tool it asked for in order, append the
results, and ask again. The caller consumes :class:`AgentEvent` objects
as they happen and can stop the turn through a :class:`CancellationToken`.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Generator, Iterator
from typing import Any, Literal

from pydantic import BaseModel

from clipcraft.agent.prompts import build_system_prompt
from clipcraft.agent.tools import ToolRegistry
from clipcraft.config import ClipcraftConfig
from clipcraft.llm import LLMClient, LLMError, StreamChunk
from clipcraft.models import StyleProfile
from clipcraft.transcripts import TranscriptSource

logger = logging.getLogger(__name__)


class CancellationToken:
    """Thread-safe flag checked between stream chunks and tool calls."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


class AgentEvent(BaseModel):
    type: Literal["text", "tool_call", "tool_result", "done", "cancelled", "error"]
    text: str | None = None
    tool_use_id: str | None = None
    name: str | None = None
    input: dict[str, Any] | None = None
    result: dict[str, Any] | None = None
    is_error: bool | None = None
    stop_reason: str | None = None
    error: str | None = None

    def to_sse(self) -> str:
        """Server-sent-events frame."""
        return f"data: {self.model_dump_json(exclude_none=True)}\n\n"


class _TurnCancelled(Exception):
    pass


class AgentSession:
    """Conversation state plus the loop that advances it one turn at a time.

    ``messages`` holds Anthropic-format messages. A cancelled or failed
    turn is removed from it again, so the next turn starts from the last
    completed one.
    """

    def __init__(
        self,
        llm: LLMClient,
        config: ClipcraftConfig,
        *,
        context: str | None = None,
        style: StyleProfile | None = None,
        purpose: str | None = None,
        messages: list[dict[str, Any]] | None = None,
        tools: ToolRegistry | None = None,
        transcript_source: TranscriptSource | None = None,
    ) -> None:
        self._llm = llm
        self._config = config
        self._tools = tools or ToolRegistry(llm, config, transcript_source)
        self.system = build_system_prompt(context, style, purpose)
        self.messages: list[dict[str, Any]] = list(messages or [])

    def run_turn(
        self,
        user_message: str,
        cancel: CancellationToken | None = None,
    ) -> Generator[AgentEvent, None, None]:
        """Send ``user_message`` and stream the agent's reply.

        Yields ``text`` deltas, ``tool_call``/``tool_result`` pairs, and
        exactly one terminal ``done``, ``cancelled`` or ``error`` event.
        Closing the iterator early also rolls the turn back.
        """
        cancel = cancel or CancellationToken()
        snapshot = list(self.messages)
        self._append_user_text(user_message)

        try:
            yield from self._steps(cancel)
        except _TurnCancelled:
            self.messages[:] = snapshot
            logger.info("Agent turn cancelled")
            yield AgentEvent(type="cancelled")
        except LLMError as exc:
            self.messages[:] = snapshot
            logger.warning("Agent turn failed: %s", exc)
            yield AgentEvent(type="error", error=str(exc))
        except (GeneratorExit, KeyboardInterrupt):
            self.messages[:] = snapshot
            raise

    def _steps(self, cancel: CancellationToken) -> Iterator[AgentEvent]:
        max_steps = self._config.agent.max_steps

        for step in range(1, max_steps + 1):
            text_parts: list[str] = []
            tool_uses: list[StreamChunk] = []
            stop_reason = None

            chunks = self._stream_step(step, cancel)
            try:
                for chunk in chunks:
                    if chunk.type == "text":
                        text_parts.append(chunk.text)
                        yield AgentEvent(type="text", text=chunk.text)
                    elif chunk.type == "tool_use":
                        tool_uses.append(chunk)
                    else:
                        stop_reason = chunk.stop_reason
            finally:
                chunks.close()

            blocks = _assistant_blocks(text_parts, tool_uses)
            if blocks:
                self.messages.append({"role": "assistant", "content": blocks})
            if not tool_uses:
                yield AgentEvent(type="done", stop_reason=stop_reason)
                return

            results: list[dict[str, Any]] = []
            for use in tool_uses:
                _check(cancel)
                yield AgentEvent(
                    type="tool_call",
                    tool_use_id=use.tool_use_id,
                    name=use.name,
                    input=use.input,
                )
                result = self._tools.invoke(use.name, use.input)
                yield AgentEvent(
                    type="tool_result",
                    tool_use_id=use.tool_use_id,
                    name=use.name,
                    result=result.content,
                    is_error=result.is_error,
                )
                block: dict[str, Any] = {
                    "type": "tool_result",
                    "tool_use_id": use.tool_use_id,
                    "content": result.to_text(),
                }
                if result.is_error:
                    block["is_error"] = True
                results.append(block)
            self.messages.append({"role": "user", "content": results})

        logger.info("Agent turn stopped after %d steps", max_steps)
        yield AgentEvent(type="done", stop_reason="max_steps")

    def _stream_step(
        self, step: int, cancel: CancellationToken
    ) -> Generator[StreamChunk, None, None]:
        _check(cancel)
        stream = self._llm.stream_chat(
            system=self.system,
            messages=self.messages,
            model=self._config.agent.model_id,
            temperature=self._config.agent.temperature,
            tools=self._tools.definitions(),
            label=f"agent:step-{step}",
        )
        try:
            for chunk in stream:
                _check(cancel)
                yield chunk
        finally:
            stream.close()

    def _append_user_text(self, text: str) -> None:
        # A turn that hit max_steps ends on a tool_result message; keep roles alternating.
        if self.messages and self.messages[-1]["role"] == "user":
            content = self.messages[-1]["content"]
            blocks = [{"type": "text", "text": content}] if isinstance(content, str) else list(content)
            blocks.append({"type": "text", "text": text})
            self.messages[-1] = {"role": "user", "content": blocks}
            return
        self.messages.append({"role": "user", "content": text})


def _check(cancel: CancellationToken) -> None:
    if cancel.cancelled:
        raise _TurnCancelled


def _assistant_blocks(text_parts: list[str], tool_uses: list[StreamChunk]) -> list[dict[str, Any]]:
    blocks: list[dict[str, Any]] = []
    text = "".join(text_parts)
    if text:
        blocks.append({"type": "text", "text": text})
    for use in tool_uses:
        blocks.append({"type": "tool_use", "id": use.tool_use_id, "name": use.name, "input": use.input})
    return blocks
