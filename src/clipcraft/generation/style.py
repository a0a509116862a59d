"""Style profile analysis from example posts."""

from __future__ import annotations

import logging
from collections.abc import Sequence

from clipcraft.config import ClipcraftConfig
from clipcraft.errors import InputError
from clipcraft.generation.parser import parse_model_output
from clipcraft.generation.prompts import style_analysis_prompt
from clipcraft.llm import LLMClient
from clipcraft.models import MAX_STYLE_EXAMPLES, MIN_STYLE_EXAMPLES, StyleProfile
from clipcraft.sanitizer import EXAMPLE_MAX_LENGTH, sanitize_array

logger = logging.getLogger(__name__)

STYLE_TEMPERATURE = 0.3

DEFAULT_SUMMARY = "Style analysis incomplete - using default patterns"
MISSING_SUMMARY = "No summary available"

_FIELD_DEFAULTS: dict[str, str] = {
    "tone": "engaging",
    "vocabulary": "varied",
    "sentenceStructure": "mixed",
    "hooks": "direct statements",
}


def default_profile() -> StyleProfile:
    return StyleProfile(
        tone=_FIELD_DEFAULTS["tone"],
        vocabulary=_FIELD_DEFAULTS["vocabulary"],
        sentence_structure=_FIELD_DEFAULTS["sentenceStructure"],
        hooks=_FIELD_DEFAULTS["hooks"],
        patterns=[],
        summary=DEFAULT_SUMMARY,
    )


def is_default_profile(profile: StyleProfile) -> bool:
    """True when ``profile`` is the fallback returned for unusable output."""
    return profile.summary == DEFAULT_SUMMARY


class StyleAnalyzer:
    """Turns 3-15 example posts into a :class:`StyleProfile`."""

    def __init__(self, llm: LLMClient, config: ClipcraftConfig) -> None:
        self._llm = llm
        self._config = config

    def analyze(
        self,
        example_posts: Sequence[str],
        *,
        temperature: float = STYLE_TEMPERATURE,
    ) -> StyleProfile:
        """Profile the voice of ``example_posts`` with one model call.

        Raises:
            InputError: Fewer than 3 examples survive sanitization. No model
                call is made in that case.
            LLMError: The model call itself failed.
        """
        examples = sanitize_array(
            list(example_posts),
            max_length=EXAMPLE_MAX_LENGTH,
            max_items=MAX_STYLE_EXAMPLES,
        )
        if len(examples) < MIN_STYLE_EXAMPLES:
            raise InputError(f"Need at least {MIN_STYLE_EXAMPLES} example posts to analyze style")

        completion = self._llm.generate(
            style_analysis_prompt(examples),
            model=self._config.models.generator_id,
            temperature=temperature,
            label="style-analysis",
        )

        parsed = parse_model_output(completion.text)
        if not parsed.ok or not isinstance(parsed.value, dict):
            logger.warning("Style analysis output unusable; returning default profile")
            return default_profile()
        return _profile_from_partial(parsed.value)


def _profile_from_partial(data: dict) -> StyleProfile:
    """Fill each missing or empty field with its default."""

    def _text(key: str, fallback: str) -> str:
        value = data.get(key)
        return value if isinstance(value, str) and value.strip() else fallback

    patterns = data.get("patterns")
    return StyleProfile(
        tone=_text("tone", _FIELD_DEFAULTS["tone"]),
        vocabulary=_text("vocabulary", _FIELD_DEFAULTS["vocabulary"]),
        sentence_structure=_text("sentenceStructure", _FIELD_DEFAULTS["sentenceStructure"]),
        hooks=_text("hooks", _FIELD_DEFAULTS["hooks"]),
        patterns=[str(p) for p in patterns if isinstance(p, str)] if isinstance(patterns, list) else [],
        summary=_text("summary", MISSING_SUMMARY),
    )
