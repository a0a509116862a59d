"""Error taxonomy.

Only terminal problems are raised as exceptions: bad caller input and
missing configuration. Model-quality problems never surface here; they
degrade to fallbacks inside the generation pipeline.
"""

from __future__ import annotations


class ClipcraftError(Exception):
    """Base error for clipcraft."""


class InputError(ClipcraftError):
    """Caller input is invalid or cannot be resolved. Never retried."""


class TranscriptUnavailableError(InputError):
    """The transcript could not be fetched or resolved to non-empty text."""


class ConfigurationError(ClipcraftError):
    """Required credentials or endpoints are missing."""
