"""HTTP routes over the generation pipeline, style analyzer and agent."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Generator
from typing import Annotated, Any, TypeVar

from fastapi import APIRouter, Body, Depends, Request
from fastapi.responses import StreamingResponse
from pydantic import BaseModel
from starlette.concurrency import iterate_in_threadpool

from clipcraft.agent import AgentEvent, AgentSession, CancellationToken
from clipcraft.config import ClipcraftConfig
from clipcraft.errors import InputError
from clipcraft.generation import (
    GenerationPipeline,
    StyleAnalyzer,
    generate_single,
    generate_thread_styles,
)
from clipcraft.llm import LLMClient, create_llm_client
from clipcraft.models import (
    AgentRequest,
    GenerationRequest,
    SingleShotRequest,
    StyleAnalysisRequest,
    ThreadStylesRequest,
)
from clipcraft.transcripts import TranscriptSource
from clipcraft.validation import validate

logger = logging.getLogger(__name__)

router = APIRouter()

ModelT = TypeVar("ModelT", bound=BaseModel)


def get_config(request: Request) -> ClipcraftConfig:
    return request.app.state.config


def get_llm(request: Request) -> LLMClient:
    """The app's LLM client, created on first use.

    Raises:
        ConfigurationError: If no API key is configured.
    """
    state = request.app.state
    if state.llm is None:
        state.llm = create_llm_client(state.config)
    return state.llm


def get_transcript_source(request: Request) -> TranscriptSource:
    return request.app.state.transcript_source


ConfigDep = Annotated[ClipcraftConfig, Depends(get_config)]
LLMDep = Annotated[LLMClient, Depends(get_llm)]
SourceDep = Annotated[TranscriptSource, Depends(get_transcript_source)]
JsonBody = Annotated[Any, Body()]


def parse_body(schema: type[ModelT], payload: Any) -> ModelT:
    """Validate a request body, raising InputError with the first violation."""
    result = validate(schema, payload)
    if not result.ok:
        raise InputError(result.error)
    return result.parsed


@router.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@router.post("/generate-with-critique")
def generate_with_critique(
    payload: JsonBody,
    llm: LLMDep,
    config: ConfigDep,
    source: SourceDep,
) -> dict[str, Any]:
    """Full generate, critique and refine run."""
    request = parse_body(GenerationRequest, payload)
    result = GenerationPipeline(llm, config, source).run(request)
    return result.to_wire()


@router.post("/generate-content")
def generate_content(
    payload: JsonBody,
    llm: LLMDep,
    config: ConfigDep,
    source: SourceDep,
) -> dict[str, Any]:
    """One generation pass with no critique."""
    request = parse_body(SingleShotRequest, payload)
    wire = generate_single(request, llm, config, source).to_wire()
    wire.pop("pass_meta", None)
    return wire


@router.post("/generate-threads")
def generate_threads(
    payload: JsonBody,
    llm: LLMDep,
    config: ConfigDep,
    source: SourceDep,
) -> dict[str, Any]:
    request = parse_body(ThreadStylesRequest, payload)
    return {"result": generate_thread_styles(request, llm, config, source)}


@router.post("/analyze-style")
def analyze_style(payload: JsonBody, llm: LLMDep, config: ConfigDep) -> dict[str, Any]:
    request = parse_body(StyleAnalysisRequest, payload)
    profile = StyleAnalyzer(llm, config).analyze(request.examples)
    return profile.model_dump(by_alias=True)


@router.post("/agent")
async def agent(
    request: Request,
    payload: JsonBody,
    llm: LLMDep,
    config: ConfigDep,
    source: SourceDep,
) -> StreamingResponse:
    """Stream one agent turn as server-sent events.

    The turn runs in a worker thread. When the client goes away the
    turn is cancelled and the upstream model stream is closed.
    """
    body = parse_body(AgentRequest, payload)
    session = AgentSession(
        llm,
        config,
        context=body.context,
        style=body.style_profile,
        purpose=body.purpose,
        messages=[message.model_dump() for message in body.messages[:-1]],
        transcript_source=source,
    )
    cancel = CancellationToken()
    events = session.run_turn(body.messages[-1].content, cancel)

    return StreamingResponse(sse_events(events, request, cancel), media_type="text/event-stream")


async def sse_events(
    events: Generator[AgentEvent, None, None],
    request: Request,
    cancel: CancellationToken,
) -> AsyncIterator[str]:
    """Relay agent events as SSE frames until the turn ends or the client leaves.

    However the relay stops, the turn is cancelled and the event generator
    is closed so the upstream model stream is released.
    """
    try:
        async for event in iterate_in_threadpool(events):
            if await request.is_disconnected():
                logger.info("Agent client disconnected; turn cancelled")
                break
            yield event.to_sse()
    finally:
        cancel.cancel()
        try:
            events.close()
        except ValueError:
            # A worker thread is still inside next(); the cancelled token ends it.
            logger.debug("Agent event generator still running; left to finish on cancel")

