"""Generate → critique → refine orchestration.

One :class:`GenerationPipeline` run turns a transcript into a finished
:class:`~clipcraft.models.GenerationResult`. Only caller errors (an
unresolvable transcript) and a failed generator call are raised; every
other problem with model output degrades to a fallback so the caller
always gets a batch.
"""

from __future__ import annotations

import json
import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, Field

from clipcraft.config import ClipcraftConfig
from clipcraft.generation.parser import (
    UnrecognizedShape,
    classify_output,
    ensure_item_ids,
    items_from_payload,
    normalize_items,
    parse_critic_feedback,
    parse_model_output,
    parse_refined_item,
    raw_fallback_item,
    salvage_items,
)
from clipcraft.generation.prompts import critic_prompt, generator_prompt, refiner_prompt
from clipcraft.llm import LLMClient, LLMError
from clipcraft.models import (
    ContentFormat,
    CriticFeedback,
    GeneratedItem,
    GenerationRequest,
    GenerationResult,
    PassMeta,
    StyleProfile,
)
from clipcraft.transcripts import TranscriptSource, resolve_transcript
from clipcraft.validation import validate

logger = logging.getLogger(__name__)

QUALITY_THRESHOLD = 7
FULL_PIPELINE_PASSES = 3


class PipelineStage(StrEnum):
    GENERATING = "generating"
    CRITIQUING = "critiquing"
    REFINING = "refining"
    FINALIZING = "finalizing"


class Critique(BaseModel):
    """Critic pass output. ``heuristic`` marks synthesized feedback."""

    feedback: list[CriticFeedback] = Field(default_factory=list)
    heuristic: bool = False

    def lookup(self) -> dict[str, CriticFeedback]:
        """Feedback by item id; the first entry for an id wins."""
        by_id: dict[str, CriticFeedback] = {}
        for entry in self.feedback:
            by_id.setdefault(entry.id, entry)
        return by_id


class RefineOutcome(BaseModel):
    item: GeneratedItem
    status: Literal["unchanged", "refined", "failed"] = "unchanged"


def needs_refinement(feedback: CriticFeedback | None) -> bool:
    """An item is rewritten when the critic rejects it or scores it below 7."""
    if feedback is None:
        return False
    return (not feedback.ok) or feedback.score < QUALITY_THRESHOLD


def heuristic_feedback(items: list[GeneratedItem]) -> list[CriticFeedback]:
    """Stand-in feedback when the critic is unusable.

    Scores are derived from content length and always land in 7..10, so
    nothing is sent for refinement on the strength of a fake score.
    """
    return [
        CriticFeedback(
            id=item.id or f"item-{idx + 1}",
            ok=True,
            score=QUALITY_THRESHOLD + len(item.content) % 4,
        )
        for idx, item in enumerate(items)
    ]


class GenerationPipeline:
    """Runs the three-pass content pipeline against an :class:`LLMClient`.

    Args:
        llm: Text-generation capability used for all three passes.
        config: Model ids, temperatures and refine concurrency.
        transcript_source: Fetcher for ``transcriptUrl`` requests.
    """

    def __init__(
        self,
        llm: LLMClient,
        config: ClipcraftConfig,
        transcript_source: TranscriptSource | None = None,
    ) -> None:
        self._llm = llm
        self._config = config
        self._source = transcript_source or TranscriptSource(
            timeout=config.transcripts.fetch_timeout
        )

    def run(self, request: GenerationRequest) -> GenerationResult:
        """Run every stage for one request.

        Raises:
            TranscriptUnavailableError: If no transcript text can be resolved.
            LLMError: If the generator call itself fails.
        """
        transcript = resolve_transcript(
            request.transcript,
            str(request.transcript_url) if request.transcript_url else None,
            self._source,
        )
        tone = request.tone.value if request.tone else None

        logger.info(
            "Pipeline stage: %s (%d %s items)",
            PipelineStage.GENERATING,
            request.count,
            request.format,
        )
        items = self.generate(transcript, request)

        logger.info("Pipeline stage: %s (%d items)", PipelineStage.CRITIQUING, len(items))
        critique = self.critique(items, transcript)

        logger.info("Pipeline stage: %s", PipelineStage.REFINING)
        outcomes = self.refine(items, critique, transcript, tone=tone, style=request.style)

        logger.info("Pipeline stage: %s", PipelineStage.FINALIZING)
        return self.finalize(outcomes, critique)

    # -- generate ----------------------------------------------------------

    def generate(self, transcript: str, request: GenerationRequest) -> list[GeneratedItem]:
        """First pass: candidate items with batch-unique ids."""
        fmt = request.format
        tone = request.tone.value if request.tone else None
        prompt = generator_prompt(
            transcript,
            request.count,
            fmt,
            tone=tone,
            segments_present=request.segments_present,
            style=request.style,
            purpose=request.purpose,
        )
        completion = self._llm.generate(
            prompt,
            model=self._config.models.generator_id,
            temperature=self._config.pipeline.generator_temperature,
            label="generator",
        )

        parsed = parse_model_output(completion.text)
        items = self._items_from_value(parsed.value, fmt, tone) if parsed.ok else None
        if items is None:
            logger.warning(
                "Generator output has no recognizable items; wrapping the raw text as one item"
            )
            items = [raw_fallback_item(completion.text, fmt, tone)]

        items = ensure_item_ids(_stamp(items, fmt, tone))
        logger.debug("Generator produced %d items", len(items))
        return items

    @staticmethod
    def _items_from_value(
        value: object,
        fmt: ContentFormat,
        tone: str | None,
    ) -> list[GeneratedItem] | None:
        """Items from decoded JSON, or ``None`` when no known shape matches."""
        strict = items_from_payload(value)
        if strict is not None:
            return strict
        if isinstance(value, dict) and isinstance(value.get("items"), list):
            logger.warning("Generator items failed validation; salvaging content fields")
            return salvage_items(value)
        if isinstance(classify_output(value, fmt), UnrecognizedShape):
            return None
        return normalize_items(value, fmt, tone)

    # -- critique ----------------------------------------------------------

    def critique(self, items: list[GeneratedItem], transcript: str) -> Critique:
        """Second pass: score every item, or fall back to heuristic scores."""
        if not items:
            logger.info("No items to critique")
            return Critique()

        items_json = json.dumps(
            [{"id": item.id, "content": item.content} for item in items],
            ensure_ascii=False,
        )
        try:
            completion = self._llm.generate(
                critic_prompt(items_json, transcript),
                model=self._config.models.critic_id,
                temperature=self._config.pipeline.critic_temperature,
                label="critic",
            )
        except LLMError as exc:
            logger.warning("Critic call failed, using heuristic scores: %s", exc)
            return Critique(feedback=heuristic_feedback(items), heuristic=True)

        feedback = parse_critic_feedback(completion.text)
        if feedback is None:
            logger.warning("Critic output unparseable, using heuristic scores")
            return Critique(feedback=heuristic_feedback(items), heuristic=True)
        return Critique(feedback=feedback)

    # -- refine ------------------------------------------------------------

    def refine(
        self,
        items: list[GeneratedItem],
        critique: Critique,
        transcript: str,
        *,
        tone: str | None = None,
        style: StyleProfile | None = None,
    ) -> list[RefineOutcome]:
        """Third pass: rewrite flagged items.

        Returns one outcome per item, in input order, after every refine
        call has finished.
        """
        by_id = critique.lookup()
        flagged = sum(1 for item in items if needs_refinement(by_id.get(item.id or "")))
        logger.info("Refining %d of %d items", flagged, len(items))

        def _one(item: GeneratedItem) -> RefineOutcome:
            return self.refine_item(item, by_id.get(item.id or ""), transcript, tone=tone, style=style)

        workers = self._config.pipeline.refine_concurrency
        if workers <= 1 or flagged <= 1:
            return [_one(item) for item in items]
        with ThreadPoolExecutor(max_workers=min(workers, flagged)) as pool:
            return list(pool.map(_one, items))

    def refine_item(
        self,
        item: GeneratedItem,
        feedback: CriticFeedback | None,
        transcript: str,
        *,
        tone: str | None = None,
        style: StyleProfile | None = None,
    ) -> RefineOutcome:
        """Refine one item. Any failure keeps the original."""
        if not needs_refinement(feedback):
            return RefineOutcome(item=item)

        item_id = item.id or ""
        prompt = refiner_prompt(
            item_id,
            item.content,
            feedback.issues,
            feedback.fix_suggestion,
            transcript,
            tone=tone,
            style=style,
            content_format=item.format,
        )
        try:
            completion = self._llm.generate(
                prompt,
                model=self._config.models.refiner_id,
                temperature=self._config.pipeline.refiner_temperature,
                label=f"refiner:{item_id}",
            )
        except LLMError as exc:
            logger.warning("Refine call for %s failed, keeping original: %s", item_id, exc)
            return RefineOutcome(item=item, status="failed")

        refined = parse_refined_item(completion.text)
        if refined is None:
            logger.warning("Refined %s did not validate, keeping original", item_id)
            return RefineOutcome(item=item, status="failed")

        update: dict[str, object] = {"id": item.id}
        if refined.format is None:
            update["format"] = item.format
        if refined.tone is None:
            update["tone"] = item.tone
        return RefineOutcome(item=refined.model_copy(update=update), status="refined")

    # -- finalize ----------------------------------------------------------

    def finalize(self, outcomes: list[RefineOutcome], critique: Critique) -> GenerationResult:
        """Wrap the final items with pass metadata.

        Strict validation of the wrapped result is attempted; when it fails
        the unvalidated result is returned anyway.
        """
        pass_meta = PassMeta(
            generator_model=self._config.models.generator_id,
            critic_model=self._config.models.critic_id,
            passes=FULL_PIPELINE_PASSES,
            timestamp=datetime.now(UTC).isoformat(),
            critic_heuristic=critique.heuristic,
            refined=[o.item.id or "" for o in outcomes if o.status == "refined"],
            refine_failed=[o.item.id or "" for o in outcomes if o.status == "failed"],
        )
        items = [outcome.item for outcome in outcomes]

        payload = {
            "items": [item.model_dump(by_alias=True) for item in items],
            "pass_meta": pass_meta.model_dump(),
        }
        result = validate(GenerationResult, payload)
        if result.ok:
            return result.parsed

        logger.warning("Final batch failed validation (%s); returning it unvalidated", result.error)
        return GenerationResult.model_construct(items=items, pass_meta=pass_meta)


def _stamp(
    items: list[GeneratedItem],
    fmt: ContentFormat,
    tone: str | None,
) -> list[GeneratedItem]:
    """Fill in format and requested tone where the model left them out."""
    stamped = []
    for item in items:
        update: dict[str, object] = {}
        if item.format is None:
            update["format"] = fmt
        if item.tone is None and tone:
            update["tone"] = tone
        stamped.append(item.model_copy(update=update) if update else item)
    return stamped


def generate_batch(
    request: GenerationRequest,
    llm: LLMClient,
    config: ClipcraftConfig,
    transcript_source: TranscriptSource | None = None,
) -> GenerationResult:
    """Convenience wrapper: one pipeline run for one request."""
    return GenerationPipeline(llm, config, transcript_source).run(request)
