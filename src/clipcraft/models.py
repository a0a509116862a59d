"""Domain models as pydantic v2 data types.

Everything here is a value object owned by a single generation run.
Wire names stay camelCase through aliases; attributes are snake_case.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import (
    AfterValidator,
    AliasChoices,
    AnyHttpUrl,
    BaseModel,
    ConfigDict,
    Field,
    model_validator,
)


class ContentFormat(StrEnum):
    """Output formats the generator can produce."""

    TWEET = "tweet"
    THREAD = "thread"
    LINKEDIN = "linkedin"
    SHORTS = "shorts"
    SCRIPT = "script"


class Tone(StrEnum):
    """Tones a caller may request."""

    PROFESSIONAL = "professional"
    CASUAL = "casual"
    VIRAL = "viral"
    EDUCATIONAL = "educational"
    PROVOCATIVE = "provocative"


FORMAT_LABELS: dict[ContentFormat, str] = {
    ContentFormat.TWEET: "Tweet",
    ContentFormat.THREAD: "Thread",
    ContentFormat.LINKEDIN: "LinkedIn Post",
    ContentFormat.SHORTS: "Shorts Script",
    ContentFormat.SCRIPT: "Video Script",
}

# Per tweet for threads.
FORMAT_CHAR_LIMITS: dict[ContentFormat, int] = {
    ContentFormat.TWEET: 280,
    ContentFormat.THREAD: 280,
}

DEFAULT_BATCH_SIZE: dict[ContentFormat, int] = {
    ContentFormat.TWEET: 6,
    ContentFormat.THREAD: 4,
    ContentFormat.LINKEDIN: 3,
    ContentFormat.SHORTS: 3,
    ContentFormat.SCRIPT: 1,
}

MIN_STYLE_EXAMPLES = 3
MAX_STYLE_EXAMPLES = 15
MAX_BATCH_COUNT = 20


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class Word(_WireModel):
    start: float
    end: float
    text: str


class Segment(_WireModel):
    """A time-bounded chunk of transcript text, in seconds."""

    start: float
    end: float
    text: str
    words: list[Word] | None = None

    @model_validator(mode="after")
    def _check_bounds(self) -> Segment:
        if self.start > self.end:
            raise ValueError("segment start must not be after its end")
        return self


def _check_segment_order(segments: list[Segment]) -> list[Segment]:
    if segments:
        for previous, current in zip(segments, segments[1:]):
            if current.start < previous.start:
                raise ValueError("segments must be ordered by start time")
    return segments


OrderedSegments = Annotated[list[Segment], AfterValidator(_check_segment_order)]


class Transcript(_WireModel):
    """Transcription output, read-only generation context."""

    text: str
    segments: OrderedSegments | None = None
    language: str | None = None
    duration: float | None = None

    @property
    def has_segments(self) -> bool:
        return bool(self.segments)


class StyleProfile(_WireModel):
    """Structured description of a target writing voice."""

    tone: str
    vocabulary: str
    sentence_structure: str = Field(
        validation_alias=AliasChoices("sentenceStructure", "sentence_structure"),
        serialization_alias="sentenceStructure",
    )
    hooks: str
    patterns: list[str] = Field(default_factory=list)
    summary: str


class GeneratedItem(_WireModel):
    """One content item. When ``parts`` is set it is authoritative."""

    id: str | None = None
    content: str
    parts: list[str] | None = None
    char_count: int | None = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("charCount", "char_count"),
        serialization_alias="charCount",
    )
    tone: str | None = None
    format: ContentFormat | None = None
    metadata: dict[str, Any] | None = Field(
        default=None,
        validation_alias=AliasChoices("metadata", "meta"),
    )

    @model_validator(mode="before")
    @classmethod
    def _content_from_parts(cls, data: Any) -> Any:
        if isinstance(data, dict) and "content" not in data and isinstance(data.get("parts"), list):
            data = dict(data)
            data["content"] = "\n".join(str(p) for p in data["parts"])
        return data

    @model_validator(mode="after")
    def _derive_content(self) -> GeneratedItem:
        if self.parts:
            self.content = "\n".join(self.parts)
        return self


class CriticFeedback(_WireModel):
    """Critic verdict for one item, keyed by the item's id."""

    id: str
    ok: bool
    score: float = Field(ge=0, le=10)
    issues: list[str] = Field(default_factory=list)
    fix_suggestion: str = ""


class PassMeta(_WireModel):
    """Provenance for a finished batch."""

    generator_model: str
    critic_model: str | None = None
    passes: int
    timestamp: str
    critic_heuristic: bool = False
    refined: list[str] = Field(default_factory=list)
    refine_failed: list[str] = Field(default_factory=list)


class GenerationResult(_WireModel):
    """Terminal artifact of one orchestration run."""

    items: list[GeneratedItem]
    pass_meta: PassMeta | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class GenerationRequest(_WireModel):
    """Caller request for a batch of content."""

    transcript: str | None = None
    transcript_url: AnyHttpUrl | None = Field(
        default=None,
        validation_alias=AliasChoices("transcriptUrl", "transcript_url"),
        serialization_alias="transcriptUrl",
    )
    segments: OrderedSegments | None = None
    format: ContentFormat
    tone: Tone | None = None
    count: int = Field(default=6, ge=1, le=MAX_BATCH_COUNT)
    style: StyleProfile | None = None
    purpose: str | None = None

    @model_validator(mode="after")
    def _require_source(self) -> GenerationRequest:
        if not (self.transcript or self.transcript_url):
            raise ValueError("transcript or transcriptUrl is required")
        return self

    @property
    def segments_present(self) -> bool:
        return bool(self.segments)


class SingleShotRequest(GenerationRequest):
    """Request for one generation pass without critique."""

    count: int = Field(default=3, ge=1, le=MAX_BATCH_COUNT)


class ThreadStylesRequest(_WireModel):
    """Request for the four-style thread pack."""

    transcript: str | None = None
    transcript_url: AnyHttpUrl | None = Field(
        default=None,
        validation_alias=AliasChoices("transcriptUrl", "transcript_url"),
    )
    segments: OrderedSegments | None = None

    @model_validator(mode="after")
    def _require_source(self) -> ThreadStylesRequest:
        if not (self.transcript or self.transcript_url):
            raise ValueError("transcript or transcriptUrl is required")
        return self


class StyleAnalysisRequest(_WireModel):
    examples: list[str] = Field(min_length=MIN_STYLE_EXAMPLES, max_length=MAX_STYLE_EXAMPLES)


class SingleShotResult(_WireModel):
    """Items from one generation pass, plus the raw text when it was unparseable."""

    items: list[GeneratedItem]
    raw: str | None = None
    pass_meta: PassMeta

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ChatMessage(_WireModel):
    role: Literal["user", "assistant"]
    content: str


class AgentRequest(_WireModel):
    """One agent turn: prior conversation ending in a user message."""

    messages: list[ChatMessage] = Field(min_length=1)
    context: str | None = None
    style_profile: StyleProfile | None = Field(
        default=None,
        validation_alias=AliasChoices("styleProfile", "style_profile"),
    )
    purpose: str | None = None

    @model_validator(mode="after")
    def _ends_with_user(self) -> AgentRequest:
        if self.messages[-1].role != "user":
            raise ValueError("the last message must come from the user")
        return self
