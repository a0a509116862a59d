"""Prompt input sanitization.

Free text from callers (topics, purposes, style examples, transcripts)
is cleaned here before it is embedded in a model prompt. Injection
phrases are replaced by a placeholder rather than deleted so the
surrounding sentence is still readable when debugging a prompt.

Every function is pure and total: non-string input yields ``""``.
Running :func:`sanitize` on its own output returns it unchanged.
"""

from __future__ import annotations

import re
from typing import Any

FILTERED_PLACEHOLDER = "[filtered]"

DEFAULT_MAX_LENGTH = 2000
EXAMPLE_MAX_LENGTH = 500
TRANSCRIPT_MAX_LENGTH = 50000
STYLE_MAX_LENGTH = 1000
PURPOSE_MAX_LENGTH = 500

INJECTION_PATTERNS: list[re.Pattern[str]] = [
    # Instruction override
    re.compile(r"ignore\s+(all\s+)?(previous|above|prior|earlier)\s+(instructions?|prompts?|rules?|context)", re.I),
    re.compile(r"disregard\s+(all\s+)?(previous|above|prior|earlier)", re.I),
    re.compile(r"forget\s+(all\s+)?(previous|above|prior|earlier)", re.I),
    # Role/identity manipulation
    re.compile(r"you\s+are\s+now", re.I),
    re.compile(r"pretend\s+(to\s+be|you\s+are)", re.I),
    re.compile(r"act\s+as\s+(if\s+you\s+are|a)", re.I),
    re.compile(r"from\s+now\s+on", re.I),
    # Chat role markers
    re.compile(r"\[?\s*system\s*[:\]]", re.I),
    re.compile(r"\[?\s*assistant\s*[:\]]", re.I),
    re.compile(r"\[?\s*user\s*[:\]]", re.I),
    re.compile(r"<<\s*SYS\s*>>", re.I),
    re.compile(r"\[INST\]", re.I),
    re.compile(r"\[/INST\]", re.I),
    # Instruction injection
    re.compile(r"new\s+instructions?\s*:", re.I),
    re.compile(r"override\s*:", re.I),
    re.compile(r"admin\s+mode", re.I),
    re.compile(r"developer\s+mode", re.I),
    re.compile(r"jailbreak", re.I),
    re.compile(r"DAN\s+mode", re.I),
    # Output manipulation
    re.compile(r"print\s+the\s+(system\s+)?prompt", re.I),
    re.compile(r"reveal\s+(your\s+)?(system\s+)?instructions", re.I),
    re.compile(r"show\s+(your\s+)?hidden", re.I),
    # Delimiter exploitation
    re.compile(r"```\s*system", re.I),
    re.compile(r"\{\{\s*system", re.I),
    re.compile(r"<\|im_start\|>", re.I),
    re.compile(r"<\|im_end\|>", re.I),
]

# An already-escaped pair is kept as-is so escaping is a fixed point.
_ESCAPE_RE = re.compile(r'\\[\\"]|\\|"')
_INLINE_SPACE_RE = re.compile(r"[^\S\n]+")
_ANY_SPACE_RE = re.compile(r"\s+")
_BLANK_LINES_RE = re.compile(r"\n{3,}")
_TRAILING_BACKSLASHES_RE = re.compile(r"\\+$")


def contains_injection_pattern(text: Any) -> bool:
    """Check whether ``text`` contains any known injection phrase."""
    if not isinstance(text, str):
        return False
    return any(pattern.search(text) for pattern in INJECTION_PATTERNS)


def strip_injection_patterns(text: str) -> str:
    """Replace every injection phrase with the placeholder token."""
    for pattern in INJECTION_PATTERNS:
        text = pattern.sub(FILTERED_PLACEHOLDER, text)
    return text


def normalize_whitespace(text: str, *, preserve_newlines: bool = False) -> str:
    """Collapse runs of whitespace and trim.

    With ``preserve_newlines`` line breaks survive, blank-line runs are
    capped at one empty line, and each line is trimmed.
    """
    if not preserve_newlines:
        return _ANY_SPACE_RE.sub(" ", text).strip()
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    lines = [_INLINE_SPACE_RE.sub(" ", line).strip() for line in text.split("\n")]
    return _BLANK_LINES_RE.sub("\n\n", "\n".join(lines)).strip()


def escape_for_prompt(text: str) -> str:
    """Escape backslashes and double quotes for a structured text block."""

    def _replace(match: re.Match[str]) -> str:
        token = match.group(0)
        if len(token) == 2:
            return token
        return "\\" + token

    return _ESCAPE_RE.sub(_replace, text)


def _truncate(text: str, max_length: int) -> str:
    if len(text) <= max_length:
        return text
    text = text[:max(max_length, 0)]
    # Do not leave half of an escape pair at the cut.
    trailing = _TRAILING_BACKSLASHES_RE.search(text)
    if trailing and len(trailing.group(0)) % 2 == 1:
        text = text[:-1]
    return text.rstrip()


def sanitize(
    text: Any,
    *,
    max_length: int = DEFAULT_MAX_LENGTH,
    preserve_newlines: bool = False,
    strict: bool = True,
) -> str:
    """Clean free text for embedding in a model prompt.

    Args:
        text: Raw caller input. Anything that is not a string yields ``""``.
        max_length: Hard cap on the returned length.
        preserve_newlines: Keep line structure (long transcript bodies).
        strict: Replace injection phrases with the placeholder token.

    Returns:
        The sanitized string, never longer than ``max_length``.
    """
    if not isinstance(text, str) or not text:
        return ""

    if strict:
        text = strip_injection_patterns(text)
    text = text.replace("\t", " ")
    text = normalize_whitespace(text, preserve_newlines=preserve_newlines)
    text = escape_for_prompt(text)
    return _truncate(text, max_length)


def sanitize_array(
    inputs: Any,
    *,
    max_length: int = EXAMPLE_MAX_LENGTH,
    max_items: int = 20,
) -> list[str]:
    """Sanitize a list of strings, dropping empties and capping the count."""
    if not isinstance(inputs, (list, tuple)):
        return []
    cleaned = (sanitize(item, max_length=max_length) for item in inputs[:max_items])
    return [item for item in cleaned if item]


def sanitize_transcript(text: Any, *, max_length: int = TRANSCRIPT_MAX_LENGTH) -> str:
    return sanitize(text, max_length=max_length, preserve_newlines=True)


def sanitize_style(text: Any) -> str:
    """Sanitize one field of a style description."""
    return sanitize(text, max_length=STYLE_MAX_LENGTH, preserve_newlines=True)


def sanitize_purpose(text: Any) -> str:
    """Sanitize a topic or purpose line."""
    return sanitize(text, max_length=PURPOSE_MAX_LENGTH)


def sanitize_with_report(text: Any) -> tuple[str, bool, bool]:
    """Sanitize and report ``(sanitized, was_modified, had_injection_pattern)``."""
    had_injection = contains_injection_pattern(text)
    sanitized = sanitize(text)
    return sanitized, sanitized != text, had_injection
