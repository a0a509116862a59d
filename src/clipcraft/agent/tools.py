"""Tools the content agent can call.

Each tool declares a pydantic input model (its JSON schema is what the
model sees) and a handler returning a JSON-serializable dict. Bad input
and :class:`~clipcraft.errors.ClipcraftError` failures come back as error
results so one broken tool call never ends the conversation turn.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from pydantic import AnyHttpUrl, BaseModel, ConfigDict, Field

from clipcraft.config import ClipcraftConfig
from clipcraft.errors import ClipcraftError
from clipcraft.generation.parser import parse_model_output
from clipcraft.generation.pipeline import QUALITY_THRESHOLD, heuristic_feedback
from clipcraft.generation.prompts import critic_prompt, generator_prompt, refiner_prompt
from clipcraft.generation.single import generate_script
from clipcraft.generation.style import StyleAnalyzer
from clipcraft.llm import LLMClient
from clipcraft.models import MAX_BATCH_COUNT, GeneratedItem, StyleProfile
from clipcraft.sanitizer import sanitize_purpose
from clipcraft.transcripts import TranscriptSource
from clipcraft.validation import validate

logger = logging.getLogger(__name__)

REFINE_TOOL_TEMPERATURE = 0.3
DEFAULT_CRITIC_SCORE = 5


class _ToolInput(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class AnalyzeStyleInput(_ToolInput):
    example_tweets: list[str] = Field(
        alias="exampleTweets",
        min_length=3,
        max_length=15,
        description="3-15 example posts to analyze for style",
    )


class GenerateTweetsInput(_ToolInput):
    transcript: str = Field(description="Source transcript or text to generate tweets from")
    count: int = Field(default=6, ge=1, le=MAX_BATCH_COUNT, description="Number of tweets")
    tone: str | None = Field(default=None, description="Desired tone, e.g. viral or casual")
    style: StyleProfile | None = Field(default=None, description="Writing style to emulate")
    purpose: str | None = Field(default=None, description="What the tweets are for")


class GenerateScriptInput(_ToolInput):
    reference_transcript: str = Field(
        alias="referenceTranscript",
        description="Transcript to use as a style reference",
    )
    topic: str = Field(description="Topic of the new script")
    style: StyleProfile | None = Field(default=None, description="Optional pre-analyzed style")
    purpose: str | None = Field(default=None, description="What the script is for")


class ItemRef(_ToolInput):
    id: str
    content: str


class CritiqueInput(_ToolInput):
    items: list[ItemRef] = Field(description="Content items to critique")
    transcript: str = Field(description="Original transcript for context")


class FeedbackRef(_ToolInput):
    issues: list[str] = Field(default_factory=list)
    fix_suggestion: str = Field(default="", alias="fixSuggestion")


class RefineInput(_ToolInput):
    item: ItemRef = Field(description="The content item to refine")
    feedback: FeedbackRef = Field(description="Feedback from the critic")
    transcript: str = Field(description="Original transcript for context")
    tone: str | None = Field(default=None, description="Desired tone")
    style: StyleProfile | None = Field(default=None, description="Writing style profile")


class FetchTranscriptInput(_ToolInput):
    transcript_url: AnyHttpUrl = Field(
        alias="transcriptUrl",
        description="URL to fetch the transcript from",
    )


@dataclass(frozen=True)
class Tool:
    name: str
    description: str
    input_model: type[BaseModel]
    handler: Callable[[Any], dict[str, Any]]

    def definition(self) -> dict[str, Any]:
        """Anthropic tool definition."""
        return {
            "name": self.name,
            "description": self.description,
            "input_schema": self.input_model.model_json_schema(by_alias=True),
        }


@dataclass(frozen=True)
class ToolResult:
    content: dict[str, Any]
    is_error: bool = False

    def to_text(self) -> str:
        return json.dumps(self.content, ensure_ascii=False)


class ToolRegistry:
    """The agent's tool set, bound to one client and configuration."""

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
        self._analyzer = StyleAnalyzer(llm, config)
        self._tools: dict[str, Tool] = {
            tool.name: tool
            for tool in (
                Tool(
                    "analyze_writing_style",
                    "Analyze 3-15 example posts to extract writing style characteristics."
                    " Returns a style profile usable for content generation.",
                    AnalyzeStyleInput,
                    self._analyze_style,
                ),
                Tool(
                    "generate_tweets",
                    "Generate tweets from a transcript or text, optionally in a given style.",
                    GenerateTweetsInput,
                    self._generate_tweets,
                ),
                Tool(
                    "generate_script",
                    "Write a script on a new topic in the voice of a reference transcript.",
                    GenerateScriptInput,
                    self._generate_script,
                ),
                Tool(
                    "critique_content",
                    "Score content items and suggest improvements. Uses a fast model.",
                    CritiqueInput,
                    self._critique,
                ),
                Tool(
                    "refine_content",
                    "Rewrite a single content item using critic feedback.",
                    RefineInput,
                    self._refine,
                ),
                Tool(
                    "fetch_transcript",
                    "Fetch a transcript from a URL.",
                    FetchTranscriptInput,
                    self._fetch_transcript,
                ),
            )
        }

    @property
    def names(self) -> list[str]:
        return list(self._tools)

    def definitions(self) -> list[dict[str, Any]]:
        return [tool.definition() for tool in self._tools.values()]

    def invoke(self, name: str, raw_input: Any) -> ToolResult:
        """Validate input and run one tool. Never raises for tool failures."""
        tool = self._tools.get(name)
        if tool is None:
            return ToolResult({"error": f"Unknown tool: {name}"}, is_error=True)

        parsed = validate(tool.input_model, raw_input)
        if not parsed.ok:
            logger.warning("Invalid input for tool %s: %s", name, parsed.error)
            return ToolResult({"error": parsed.error}, is_error=True)

        logger.debug("Running tool %s", name)
        try:
            return ToolResult(tool.handler(parsed.parsed))
        except ClipcraftError as exc:
            logger.warning("Tool %s failed: %s", name, exc)
            return ToolResult({"error": str(exc)}, is_error=True)

    # -- handlers ----------------------------------------------------------

    def _analyze_style(self, args: AnalyzeStyleInput) -> dict[str, Any]:
        return self._analyzer.analyze(args.example_tweets).model_dump(by_alias=True)

    def _generate_tweets(self, args: GenerateTweetsInput) -> dict[str, Any]:
        prompt = generator_prompt(
            args.transcript,
            args.count,
            "tweet",
            tone=args.tone,
            segments_present=False,
            style=args.style,
            purpose=sanitize_purpose(args.purpose) if args.purpose else None,
        )
        completion = self._llm.generate(
            prompt,
            model=self._config.models.generator_id,
            temperature=self._config.agent.tool_temperature,
            label="tool:generate_tweets",
        )
        parsed = parse_model_output(completion.text)
        if not parsed.ok or not isinstance(parsed.value, dict):
            return {"items": [], "error": "Failed to parse generated content"}

        entries = parsed.value.get("items")
        items = []
        for idx, entry in enumerate(entries if isinstance(entries, list) else []):
            content = entry.get("content") if isinstance(entry, dict) else None
            content = content if isinstance(content, str) else ""
            items.append({"id": f"tweet-{idx + 1}", "content": content, "charCount": len(content)})
        return {"items": items}

    def _generate_script(self, args: GenerateScriptInput) -> dict[str, Any]:
        return generate_script(
            args.reference_transcript,
            args.topic,
            self._llm,
            self._config,
            style=args.style,
            purpose=args.purpose,
            temperature=self._config.agent.tool_temperature,
        )

    def _critique(self, args: CritiqueInput) -> dict[str, Any]:
        items_json = json.dumps(
            [{"id": item.id, "content": item.content} for item in args.items],
            ensure_ascii=False,
        )
        completion = self._llm.generate(
            critic_prompt(items_json, args.transcript),
            model=self._config.models.critic_id,
            temperature=self._config.pipeline.critic_temperature,
            label="tool:critique_content",
        )
        parsed = parse_model_output(completion.text)
        if not parsed.ok:
            fallback = heuristic_feedback(
                [GeneratedItem(id=item.id, content=item.content) for item in args.items]
            )
            return {"critiques": [_critique_entry(f.model_dump()) for f in fallback], "heuristic": True}
        if not isinstance(parsed.value, list):
            return {"critiques": []}
        return {"critiques": [_critique_entry(c) for c in parsed.value if isinstance(c, dict)]}

    def _refine(self, args: RefineInput) -> dict[str, Any]:
        completion = self._llm.generate(
            refiner_prompt(
                args.item.id,
                args.item.content,
                args.feedback.issues,
                args.feedback.fix_suggestion,
                args.transcript,
                tone=args.tone,
                style=args.style,
            ),
            model=self._config.models.refiner_id,
            temperature=REFINE_TOOL_TEMPERATURE,
            label="tool:refine_content",
        )
        parsed = parse_model_output(completion.text)
        value = parsed.value if parsed.ok and isinstance(parsed.value, dict) else None
        content = value.get("content") if value else None
        if not isinstance(content, str) or not content:
            return {
                "id": args.item.id,
                "content": args.item.content,
                "charCount": len(args.item.content),
                "refined": False,
            }
        return {"id": args.item.id, "content": content, "charCount": len(content), "refined": True}

    def _fetch_transcript(self, args: FetchTranscriptInput) -> dict[str, Any]:
        text = self._source.fetch(str(args.transcript_url))
        return {"text": text, "length": len(text)}


def _critique_entry(raw: dict[str, Any]) -> dict[str, Any]:
    """Loose critic entry: ``ok`` defaults from the score, score defaults to 5."""
    score = raw.get("score")
    if isinstance(score, bool) or not isinstance(score, (int, float)):
        score = DEFAULT_CRITIC_SCORE
    score = min(max(score, 0), 10)
    ok = raw.get("ok")
    issues = raw.get("issues")
    return {
        "id": str(raw.get("id") or ""),
        "ok": ok if isinstance(ok, bool) else score >= QUALITY_THRESHOLD,
        "score": score,
        "issues": [str(i) for i in issues] if isinstance(issues, list) else [],
        "fixSuggestion": str(raw.get("fix_suggestion") or ""),
    }
