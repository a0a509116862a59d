"""Model output parsing and normalization.

Model responses are free-form text. This module pulls a JSON payload out
of them, recognizes which of the known shapes it is, and maps it onto
:class:`~clipcraft.models.GeneratedItem` lists. Nothing here raises:
every failure degrades to a smaller (possibly empty) result.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Literal

from pydantic import BaseModel

from clipcraft.llm import extract_json_fragment, strip_json_fences
from clipcraft.models import ContentFormat, CriticFeedback, GeneratedItem
from clipcraft.validation import validate

logger = logging.getLogger(__name__)

RAW_ITEM_ID = "raw-1"


class ParsedOutput(BaseModel):
    """Outcome of pulling JSON out of a model response.

    ``ok`` is false when the text was not JSON; ``raw`` always holds the
    original response text.
    """

    ok: bool
    value: Any = None
    raw: str = ""


def parse_model_output(text: Any) -> ParsedOutput:
    """Decode JSON from a model response, keeping the raw text on failure.

    Tried in order: the whole text, the text inside an outer code fence,
    then an object or array cut out of surrounding prose. A fragment cut
    from prose only counts when it is an object or a list of objects, so
    a stray ``[1]`` in a sentence does not turn prose into a parsed reply.
    """
    if not isinstance(text, str):
        return ParsedOutput(ok=False, raw="")

    stripped = text.strip()
    for candidate in (stripped, strip_json_fences(stripped)):
        try:
            return ParsedOutput(ok=True, value=json.loads(candidate), raw=text)
        except (json.JSONDecodeError, ValueError):
            continue

    fragment = extract_json_fragment(stripped)
    if fragment is not None:
        try:
            value = json.loads(fragment)
        except (json.JSONDecodeError, ValueError):
            value = None
        if _is_structured(value):
            logger.debug("Recovered JSON embedded in prose (%d chars)", len(fragment))
            return ParsedOutput(ok=True, value=value, raw=text)

    logger.debug("Model output is not JSON (%d chars)", len(text))
    return ParsedOutput(ok=False, raw=text)


def _is_structured(value: Any) -> bool:
    if isinstance(value, dict):
        return True
    return isinstance(value, list) and bool(value) and all(isinstance(v, dict) for v in value)


# ---------------------------------------------------------------------------
# Recognized shapes
# ---------------------------------------------------------------------------


class ItemsShape(BaseModel):
    kind: Literal["items"] = "items"
    items: list[Any]


class ThreadsShape(BaseModel):
    kind: Literal["threads"] = "threads"
    threads: list[Any]


class TweetsShape(BaseModel):
    kind: Literal["tweets"] = "tweets"
    tweets: list[Any]


class UnrecognizedShape(BaseModel):
    kind: Literal["unrecognized"] = "unrecognized"


OutputShape = ItemsShape | ThreadsShape | TweetsShape | UnrecognizedShape


def classify_output(value: Any, content_format: ContentFormat | str | None = None) -> OutputShape:
    """Decide which known shape a decoded payload has.

    A non-empty ``items`` list always wins. The legacy ``threads`` map and
    ``tweets`` list are only honored for their own formats.
    """
    if not isinstance(value, dict):
        return UnrecognizedShape()

    items = value.get("items")
    if isinstance(items, list) and items:
        return ItemsShape(items=items)

    if content_format == ContentFormat.THREAD:
        threads = value.get("threads")
        if isinstance(threads, dict):
            return ThreadsShape(threads=list(threads.values()))
        if isinstance(threads, list):
            return ThreadsShape(threads=threads)

    if content_format == ContentFormat.TWEET:
        tweets = value.get("tweets")
        if isinstance(tweets, list):
            return TweetsShape(tweets=tweets)

    return UnrecognizedShape()


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------


def _as_parts(value: Any) -> list[str] | None:
    if isinstance(value, list):
        return [str(part) for part in value if part is not None]
    return None


def _count_or_none(value: Any) -> int | None:
    if type(value) is int and value >= 0:
        return value
    return None


def _item_from_entry(
    entry: Any,
    idx: int,
    content_format: ContentFormat | None,
    tone: str | None,
) -> GeneratedItem:
    if not isinstance(entry, dict):
        return GeneratedItem(
            id=f"item-{idx + 1}",
            content="" if entry is None else str(entry),
            format=content_format,
            tone=tone,
        )

    char_count = entry.get("charCount")
    metadata = entry.get("metadata", entry.get("meta"))
    entry_id = entry.get("id")
    content = entry.get("content")
    entry_tone = entry.get("tone")
    return GeneratedItem(
        id=str(entry_id) if entry_id else f"item-{idx + 1}",
        content=content if isinstance(content, str) else "",
        parts=_as_parts(entry.get("parts")),
        char_count=_count_or_none(char_count),
        format=content_format,
        tone=tone or (entry_tone if isinstance(entry_tone, str) else None),
        metadata=metadata if isinstance(metadata, dict) else None,
    )


def normalize_items(
    parsed: Any,
    content_format: ContentFormat | str | None = None,
    tone: str | None = None,
) -> list[GeneratedItem]:
    """Map a decoded payload (or a :class:`ParsedOutput`) onto items.

    Precedence: ``{"items": [...]}``, then the legacy ``{"threads": ...}``
    shape for threads and ``{"tweets": [...]}`` for tweets. Anything else
    yields ``[]`` so the caller can fall back to :func:`raw_fallback_item`.
    """
    if isinstance(parsed, ParsedOutput):
        if not parsed.ok:
            return []
        parsed = parsed.value

    try:
        fmt: ContentFormat | None = ContentFormat(content_format) if content_format else None
    except ValueError:
        fmt = None

    shape = classify_output(parsed, fmt)

    if isinstance(shape, ItemsShape):
        return [_item_from_entry(entry, idx, fmt, tone) for idx, entry in enumerate(shape.items)]

    if isinstance(shape, ThreadsShape):
        items = []
        for idx, entry in enumerate(shape.threads):
            parts = _as_parts(entry)
            if parts is not None:
                content = "\n".join(parts)
            else:
                content = "" if entry is None else str(entry)
            items.append(
                GeneratedItem(
                    id=f"thread-{idx + 1}",
                    content=content,
                    parts=parts,
                    format=fmt,
                    tone=tone,
                )
            )
        return items

    if isinstance(shape, TweetsShape):
        return [
            GeneratedItem(
                id=f"tweet-{idx + 1}",
                content="" if tweet is None else str(tweet),
                format=fmt,
                tone=tone,
            )
            for idx, tweet in enumerate(shape.tweets)
        ]

    return []


def raw_fallback_item(
    text: str,
    content_format: ContentFormat | None = None,
    tone: str | None = None,
) -> GeneratedItem:
    """Wrap a whole unparseable response as one synthetic item."""
    return GeneratedItem(id=RAW_ITEM_ID, content=text, format=content_format, tone=tone)


class _ItemsEnvelope(BaseModel):
    items: list[GeneratedItem]


def items_from_payload(value: Any) -> list[GeneratedItem] | None:
    """Strictly validate a ``{"items": [...]}`` payload.

    Returns ``None`` when the payload does not conform.
    """
    result = validate(_ItemsEnvelope, value)
    if result.ok:
        return result.parsed.items
    logger.debug("Item payload failed validation: %s", result.error)
    return None


def salvage_items(value: Any) -> list[GeneratedItem]:
    """Keep what can be kept from a non-conforming ``items`` array.

    Only ``content``, ``charCount`` and ``tone`` survive; everything else
    (ids included) is discarded. Entries that are not objects become empty
    items so later positions keep their ids.
    """
    entries = value.get("items") if isinstance(value, dict) else None
    if not isinstance(entries, list):
        return []

    salvaged: list[GeneratedItem] = []
    for entry in entries:
        if not isinstance(entry, dict):
            salvaged.append(GeneratedItem(content=""))
            continue
        content = entry.get("content")
        char_count = entry.get("charCount")
        tone = entry.get("tone")
        salvaged.append(
            GeneratedItem(
                content=content if isinstance(content, str) else "",
                char_count=_count_or_none(char_count),
                tone=tone if isinstance(tone, str) else None,
            )
        )
    return salvaged


def ensure_item_ids(items: list[GeneratedItem]) -> list[GeneratedItem]:
    """Give every item a batch-unique id.

    Items that already have a unique id keep it; missing or duplicate ids
    become ``item-{index+1}``. Applying this twice changes nothing.
    """
    taken = {item.id for item in items if item.id}
    seen: set[str] = set()
    result: list[GeneratedItem] = []
    for idx, item in enumerate(items):
        if item.id and item.id not in seen:
            seen.add(item.id)
            result.append(item)
            continue

        candidate = f"item-{idx + 1}"
        suffix = 1
        while candidate in seen or candidate in taken:
            suffix += 1
            candidate = f"item-{idx + 1}-{suffix}"
        seen.add(candidate)
        taken.add(candidate)
        result.append(item.model_copy(update={"id": candidate}))
    return result


# ---------------------------------------------------------------------------
# Critic and refiner responses
# ---------------------------------------------------------------------------

_FEEDBACK_KEYS = ("feedback", "critiques", "items")


def parse_critic_feedback(text: Any) -> list[CriticFeedback] | None:
    """Decode a critic response into feedback records.

    Accepts a bare JSON array or an object wrapping one. Entries that fail
    validation are dropped. Returns ``None`` when nothing array-like could
    be decoded at all.
    """
    parsed = parse_model_output(text)
    if not parsed.ok:
        return None

    value = parsed.value
    if isinstance(value, dict):
        for key in _FEEDBACK_KEYS:
            if isinstance(value.get(key), list):
                value = value[key]
                break
    if not isinstance(value, list):
        return None

    feedback: list[CriticFeedback] = []
    for entry in value:
        result = validate(CriticFeedback, entry)
        if result.ok:
            feedback.append(result.parsed)
        else:
            logger.debug("Dropping critic entry: %s", result.error)
    return feedback


def parse_refined_item(text: Any) -> GeneratedItem | None:
    """Decode and validate a single refined item, or ``None``."""
    parsed = parse_model_output(text)
    if not parsed.ok or not isinstance(parsed.value, dict):
        return None
    result = validate(GeneratedItem, parsed.value)
    if not result.ok:
        logger.debug("Refined item failed validation: %s", result.error)
        return None
    return result.parsed
