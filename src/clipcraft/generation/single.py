"""One-pass generation paths: no critic, no refiner."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from clipcraft.config import ClipcraftConfig
from clipcraft.generation.parser import (
    ensure_item_ids,
    normalize_items,
    parse_model_output,
    raw_fallback_item,
)
from clipcraft.generation.prompts import build_prompt, build_script_prompt, thread_styles_prompt
from clipcraft.llm import LLMClient
from clipcraft.models import (
    ContentFormat,
    PassMeta,
    SingleShotRequest,
    SingleShotResult,
    StyleProfile,
    ThreadStylesRequest,
)
from clipcraft.transcripts import TranscriptSource, resolve_transcript

logger = logging.getLogger(__name__)

SHORTS_TEMPERATURE = 0.4
SINGLE_SHOT_TEMPERATURE = 0.2
THREAD_STYLES_TEMPERATURE = 0.2
SCRIPT_TEMPERATURE = 0.7

SCRIPT_NOTES_DEFAULT = "Style matching attempted"
SCRIPT_NOTES_FORMAT_ERROR = "Output format error - returning raw script"


def _source_for(config: ClipcraftConfig, source: TranscriptSource | None) -> TranscriptSource:
    return source or TranscriptSource(timeout=config.transcripts.fetch_timeout)


def _url(value: object | None) -> str | None:
    return str(value) if value else None


def generate_single(
    request: SingleShotRequest,
    llm: LLMClient,
    config: ClipcraftConfig,
    transcript_source: TranscriptSource | None = None,
) -> SingleShotResult:
    """Build the format prompt, call the generator once, normalize.

    When nothing usable can be normalized out of the response, the whole
    text comes back as a single ``raw-1`` item and is echoed in ``raw``.
    """
    transcript = resolve_transcript(
        request.transcript,
        _url(request.transcript_url),
        _source_for(config, transcript_source),
    )
    fmt = request.format
    tone = request.tone.value if request.tone else None

    prompt = build_prompt(
        fmt,
        transcript,
        segments=request.segments,
        tone=tone,
        count=request.count,
        style=request.style,
        purpose=request.purpose,
    )
    temperature = SHORTS_TEMPERATURE if fmt is ContentFormat.SHORTS else SINGLE_SHOT_TEMPERATURE
    model = config.models.generator_id
    completion = llm.generate(prompt, model=model, temperature=temperature, label=f"single:{fmt}")

    items = normalize_items(parse_model_output(completion.text), fmt, tone)
    raw: str | None = None
    if not items:
        logger.warning("Single-shot output had no recognizable items; returning raw text")
        items = [raw_fallback_item(completion.text, fmt, tone)]
        raw = completion.text

    return SingleShotResult(
        items=ensure_item_ids(items),
        raw=raw,
        pass_meta=PassMeta(
            generator_model=model,
            passes=1,
            timestamp=datetime.now(UTC).isoformat(),
        ),
    )


def generate_thread_styles(
    request: ThreadStylesRequest,
    llm: LLMClient,
    config: ClipcraftConfig,
    transcript_source: TranscriptSource | None = None,
) -> dict[str, Any]:
    """Four threads in fixed styles plus a bullet summary.

    Returns the decoded JSON object, or ``{"raw": text}`` when the
    response is not JSON.
    """
    transcript = resolve_transcript(
        request.transcript,
        _url(request.transcript_url),
        _source_for(config, transcript_source),
    )
    completion = llm.generate(
        thread_styles_prompt(transcript, request.segments),
        model=config.models.generator_id,
        temperature=THREAD_STYLES_TEMPERATURE,
        label="thread-styles",
    )
    parsed = parse_model_output(completion.text)
    if not parsed.ok:
        logger.warning("Thread styles output is not JSON; returning raw text")
        return {"raw": completion.text}
    if isinstance(parsed.value, dict):
        return parsed.value
    return {"result": parsed.value}


def generate_script(
    reference_transcript: str,
    topic: str,
    llm: LLMClient,
    config: ClipcraftConfig,
    *,
    style: StyleProfile | None = None,
    purpose: str | None = None,
    temperature: float = SCRIPT_TEMPERATURE,
) -> dict[str, str]:
    """Write a new script on ``topic`` in the voice of the reference transcript.

    Returns ``{"script", "styleNotes"}``; unparseable output becomes the
    script verbatim with a format-error note.
    """
    completion = llm.generate(
        build_script_prompt(reference_transcript, topic, style=style, purpose=purpose),
        model=config.models.generator_id,
        temperature=temperature,
        label="script",
    )
    parsed = parse_model_output(completion.text)
    if not parsed.ok or not isinstance(parsed.value, dict):
        logger.warning("Script output is not a JSON object; returning raw text")
        return {"script": completion.text, "styleNotes": SCRIPT_NOTES_FORMAT_ERROR}

    script = parsed.value.get("script")
    notes = parsed.value.get("styleNotes")
    return {
        "script": script if isinstance(script, str) and script else completion.text,
        "styleNotes": notes if isinstance(notes, str) and notes else SCRIPT_NOTES_DEFAULT,
    }
