"""LLM prompts for transcript-to-content generation.

Every builder is a pure function returning one text prompt. The JSON
shapes described in these prompts are instructions to the model only;
``clipcraft.generation.parser`` validates whatever comes back.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence

from clipcraft.models import (
    DEFAULT_BATCH_SIZE,
    FORMAT_CHAR_LIMITS,
    ContentFormat,
    Segment,
    StyleProfile,
)
from clipcraft.sanitizer import (
    sanitize_purpose,
    sanitize_style,
    sanitize_transcript,
)

# Critic and refiner only need enough of the transcript to check facts.
CONTEXT_EXCERPT_CHARS = 8000

EMPTY_RESPONSE_RULE = "If you cannot complete the task, respond with exactly {}."


def human_writing_rules(*, allow_hashtags: bool = False) -> str:
    """Shared style constraints every generated unit must follow."""
    hashtag_rule = (
        "- Hashtags: at most 3, only at the very end."
        if allow_hashtags
        else "- NEVER use hashtags."
    )
    return f"""## Non-negotiable writing rules

- NEVER use emojis.
- NEVER use em-dashes. Use a period, comma, colon, or parentheses instead.
{hashtag_rule}
- Write like a human talking to a smart friend, not like an AI.
- Use contractions naturally (don't, won't, it's).
- Vary sentence length. Short sentences land harder after long ones.
- One idea per unit. Start with the insight, not the setup.
- No filler openers ("In today's world", "Let's dive in", "Here's the thing").
- Be specific and concrete. Numbers, names, and examples beat adjectives."""


def style_block(style: StyleProfile | None) -> str:
    """Render a style-emulation block, sanitizing every field."""
    if style is None:
        return ""
    patterns = ", ".join(p for p in (sanitize_style(p) for p in style.patterns) if p)
    return f"""

## Writing style to emulate

- Tone: {sanitize_style(style.tone)}
- Vocabulary: {sanitize_style(style.vocabulary)}
- Sentence structure: {sanitize_style(style.sentence_structure)}
- Hook patterns: {sanitize_style(style.hooks)}
- Key patterns: {patterns or "none noted"}
- Summary: {sanitize_style(style.summary)}

Match this voice closely. The writing rules above still win on any conflict."""


def purpose_block(purpose: str | None) -> str:
    """Render the caller's stated purpose, sanitized."""
    cleaned = sanitize_purpose(purpose)
    if not cleaned:
        return ""
    return f"""

## Content purpose

The content is for: {cleaned}
Serve this purpose without sounding like an ad."""


def timestamp_directive(segments_present: bool) -> str:
    if segments_present:
        return (
            "You have timestamped segments; you may reference moments like"
            " [mm:ss] when it helps clarity."
        )
    return "No timestamps available; avoid time references."


def _tone_line(tone: str | None) -> str:
    return f"Tone: {tone}." if tone else "Tone: match the speaker's natural register."


def _transcript_block(transcript: str) -> str:
    return f"\n\nTranscript:\n{sanitize_transcript(transcript)}"


def _segments_present(segments: Sequence[Segment] | None) -> bool:
    return bool(segments)


# ---------------------------------------------------------------------------
# Single-shot format builders
# ---------------------------------------------------------------------------


def build_tweet_prompt(
    transcript: str,
    segments: Sequence[Segment] | None = None,
    tone: str | None = None,
    count: int | None = None,
    style: StyleProfile | None = None,
    purpose: str | None = None,
) -> str:
    """Prompt for standalone tweets."""
    count = count or DEFAULT_BATCH_SIZE[ContentFormat.TWEET]
    limit = FORMAT_CHAR_LIMITS[ContentFormat.TWEET]
    return f"""You are a ghostwriter turning a video transcript into standalone tweets.

{timestamp_directive(_segments_present(segments))}

## Task

Write {count} distinct tweets drawn from the transcript.
- Each tweet MUST be {limit} characters or fewer.
- Each tweet must stand alone without the video for context.
- Cover different ideas; never restate the same point twice.
- {_tone_line(tone)}

{human_writing_rules()}{style_block(style)}{purpose_block(purpose)}

## Output

Respond with ONLY a JSON object of this shape:
{{"items": [{{"id": "item-1", "content": "tweet text", "charCount": 123}}]}}
{EMPTY_RESPONSE_RULE}{_transcript_block(transcript)}"""


def build_thread_prompt(
    transcript: str,
    segments: Sequence[Segment] | None = None,
    tone: str | None = None,
    count: int | None = None,
    style: StyleProfile | None = None,
    purpose: str | None = None,
) -> str:
    """Prompt for multi-tweet threads with a hook, body, and CTA."""
    count = count or DEFAULT_BATCH_SIZE[ContentFormat.THREAD]
    limit = FORMAT_CHAR_LIMITS[ContentFormat.THREAD]
    return f"""You are a ghostwriter turning a video transcript into Twitter/X threads.

{timestamp_directive(_segments_present(segments))}

## Task

Write {count} threads, each taking a different angle on the transcript.
- Each thread has 5-10 tweets; each tweet MUST be {limit} characters or fewer.
- Tweet 1 is the hook: compelling and readable on its own.
- The middle tweets carry one idea each, in a logical order.
- The last tweet lands the takeaway with a short call to action.
- Do not number the tweets.
- {_tone_line(tone)}

{human_writing_rules()}{style_block(style)}{purpose_block(purpose)}

## Output

Respond with ONLY a JSON object of this shape:
{{"items": [{{"id": "item-1", "content": "full thread text", "parts": ["tweet 1", "tweet 2"]}}]}}
{EMPTY_RESPONSE_RULE}{_transcript_block(transcript)}"""


def build_linkedin_prompt(
    transcript: str,
    segments: Sequence[Segment] | None = None,
    tone: str | None = None,
    count: int | None = None,
    style: StyleProfile | None = None,
    purpose: str | None = None,
) -> str:
    """Prompt for LinkedIn posts."""
    count = count or DEFAULT_BATCH_SIZE[ContentFormat.LINKEDIN]
    return f"""You are a ghostwriter turning a video transcript into LinkedIn posts.

{timestamp_directive(_segments_present(segments))}

## Task

Write {count} LinkedIn posts of 800-1300 characters each.
- Open with a one-line hook that earns the "see more" click.
- Short paragraphs of one or two sentences, separated by blank lines.
- Share one concrete lesson or story per post, grounded in the transcript.
- Close with a question or a clear takeaway.
- {_tone_line(tone)}

{human_writing_rules(allow_hashtags=True)}{style_block(style)}{purpose_block(purpose)}

## Output

Respond with ONLY a JSON object of this shape:
{{"items": [{{"id": "item-1", "content": "post text", "charCount": 1100}}]}}
{EMPTY_RESPONSE_RULE}{_transcript_block(transcript)}"""


def build_shorts_prompt(
    transcript: str,
    segments: Sequence[Segment] | None = None,
    tone: str | None = None,
    count: int | None = None,
    style: StyleProfile | None = None,
    purpose: str | None = None,
) -> str:
    """Prompt for 30-60 second vertical video scripts."""
    count = count or DEFAULT_BATCH_SIZE[ContentFormat.SHORTS]
    return f"""You are a short-form video writer turning a transcript into Shorts/Reels scripts.

{timestamp_directive(_segments_present(segments))}

## Task

Write {count} scripts, each 30-60 seconds when spoken (75-150 words).
- First line is a spoken hook that works in under 3 seconds.
- Then 2-4 beats, one idea each, in spoken language.
- End with a payoff line, not a "like and subscribe".
- Put each spoken line in "parts", in order.
- {_tone_line(tone)}

{human_writing_rules()}{style_block(style)}{purpose_block(purpose)}

## Output

Respond with ONLY a JSON object of this shape:
{{"items": [{{"id": "item-1", "content": "full script", "parts": ["hook", "beat", "payoff"]}}]}}
{EMPTY_RESPONSE_RULE}{_transcript_block(transcript)}"""


def build_video_script_prompt(
    transcript: str,
    segments: Sequence[Segment] | None = None,
    tone: str | None = None,
    count: int | None = None,
    style: StyleProfile | None = None,
    purpose: str | None = None,
) -> str:
    """Prompt for long-form video scripts derived from the transcript."""
    count = count or DEFAULT_BATCH_SIZE[ContentFormat.SCRIPT]
    return f"""You are a video scriptwriter turning a transcript into a tighter, stronger script.

{timestamp_directive(_segments_present(segments))}

## Task

Write {count} video script(s) of 3-6 minutes spoken length.
- Hook: the first 15 seconds state the promise of the video.
- Body: 3-5 sections, each making one point with a concrete example.
- CTA: a closing line telling the viewer what to do or think next.
- Put each section (hook, body sections, CTA) in "parts", in order.
- {_tone_line(tone)}

{human_writing_rules()}{style_block(style)}{purpose_block(purpose)}

## Output

Respond with ONLY a JSON object of this shape:
{{"items": [{{"id": "item-1", "content": "full script", "parts": ["hook", "section", "cta"]}}]}}
{EMPTY_RESPONSE_RULE}{_transcript_block(transcript)}"""


PromptBuilder = Callable[..., str]

FORMAT_BUILDERS: dict[ContentFormat, PromptBuilder] = {
    ContentFormat.TWEET: build_tweet_prompt,
    ContentFormat.THREAD: build_thread_prompt,
    ContentFormat.LINKEDIN: build_linkedin_prompt,
    ContentFormat.SHORTS: build_shorts_prompt,
    ContentFormat.SCRIPT: build_video_script_prompt,
}


def get_format_builder(content_format: str | ContentFormat) -> PromptBuilder:
    """Look up the builder for a format; unknown formats get the tweet builder."""
    try:
        return FORMAT_BUILDERS[ContentFormat(content_format)]
    except ValueError:
        return build_tweet_prompt


def build_prompt(
    content_format: str | ContentFormat,
    transcript: str,
    segments: Sequence[Segment] | None = None,
    tone: str | None = None,
    count: int | None = None,
    style: StyleProfile | None = None,
    purpose: str | None = None,
) -> str:
    """Dispatch to the builder for ``content_format``."""
    builder = get_format_builder(content_format)
    return builder(
        transcript,
        segments=segments,
        tone=tone,
        count=count,
        style=style,
        purpose=purpose,
    )


# ---------------------------------------------------------------------------
# Specialized prompts
# ---------------------------------------------------------------------------


def build_script_prompt(
    transcript: str,
    topic: str,
    style: StyleProfile | None = None,
    purpose: str | None = None,
) -> str:
    """Prompt for a brand-new script on ``topic`` in the reference's voice.

    The transcript is a style reference here, not a content source.
    """
    return f"""You are a scriptwriter who can imitate any speaker's voice.

## Task

Study the reference transcript below for HOW the speaker talks: pacing,
sentence length, vocabulary, humor, how they open and close. Ignore WHAT
they talk about.

Then write a completely new video script on this topic:
{sanitize_purpose(topic)}

- Do not reuse facts, stories, or examples from the reference.
- Hook in the first two lines, 3-5 body beats, a closing call to action.

{human_writing_rules()}{style_block(style)}{purpose_block(purpose)}

## Output

Respond with ONLY a JSON object of this shape:
{{"script": "the full script", "styleNotes": "one or two sentences on which traits you matched"}}
{EMPTY_RESPONSE_RULE}

Reference transcript:
{sanitize_transcript(transcript)}"""


def style_analysis_prompt(example_posts: Sequence[str]) -> str:
    """Prompt asking for a StyleProfile-shaped description of the examples.

    Callers are expected to sanitize the examples first.
    """
    numbered = "\n".join(f"{i}. {post}" for i, post in enumerate(example_posts, start=1))
    return f"""You are an expert editor who profiles writing voices.

Analyze the example posts below and describe the author's style so another
writer could imitate it.

Examples:
{numbered}

## Output

Respond with ONLY a JSON object of this shape:
{{
  "tone": "overall tone in a few words",
  "vocabulary": "word choice, jargon, register",
  "sentenceStructure": "sentence length, rhythm, punctuation habits",
  "hooks": "how posts open",
  "patterns": ["recurring structural or rhetorical patterns"],
  "summary": "two or three sentences a ghostwriter could follow"
}}
{EMPTY_RESPONSE_RULE}"""


def thread_styles_prompt(transcript: str, segments: Sequence[Segment] | None = None) -> str:
    """Prompt for a summary plus four threads in fixed styles."""
    return f"""You are turning a video transcript into Twitter threads.

{timestamp_directive(_segments_present(segments))}

Generate:
- A concise bullet summary (3-6 bullets).
- 4 thread styles: viral, educational, actionable, founder/story.
- Each thread: 5-10 tweets, each under 280 characters.
- Include 1-2 strong hooks per thread.
- Be specific and concrete; avoid fluff.

{human_writing_rules()}

Return strict JSON:
{{
  "summary": ["bullet1", "bullet2"],
  "threads": {{
    "viral": ["tweet1", "tweet2"],
    "educational": ["..."],
    "actionable": ["..."],
    "founder": ["..."]
  }}
}}{_transcript_block(transcript)}"""


# ---------------------------------------------------------------------------
# Generator / critic / refiner trio
# ---------------------------------------------------------------------------


def _format_rules(content_format: ContentFormat) -> str:
    rules = {
        ContentFormat.TWEET: "Each item is one standalone tweet of 280 characters or fewer.",
        ContentFormat.THREAD: (
            "Each item is a thread of 5-10 tweets, each 280 characters or fewer."
            " Put the tweets in \"parts\" in order; tweet 1 is the hook, the last is the CTA."
        ),
        ContentFormat.LINKEDIN: (
            "Each item is a LinkedIn post of 800-1300 characters with a one-line hook"
            " and short paragraphs."
        ),
        ContentFormat.SHORTS: (
            "Each item is a 30-60 second spoken script. Put each spoken line in \"parts\"."
        ),
        ContentFormat.SCRIPT: (
            "Each item is a 3-6 minute video script with hook, body sections, and CTA"
            " in \"parts\"."
        ),
    }
    return rules[content_format]


def generator_prompt(
    transcript: str,
    count: int,
    content_format: str | ContentFormat,
    tone: str | None = None,
    segments_present: bool = False,
    style: StyleProfile | None = None,
    purpose: str | None = None,
) -> str:
    """First pass: produce ``count`` candidate items with stable ids."""
    try:
        fmt = ContentFormat(content_format)
    except ValueError:
        fmt = ContentFormat.TWEET
    allow_hashtags = fmt is ContentFormat.LINKEDIN
    return f"""You are a senior ghostwriter producing {fmt.value} content from a video transcript.

{timestamp_directive(segments_present)}

## Task

Produce exactly {count} items.
- {_format_rules(fmt)}
- Every item MUST have a unique "id": "item-1", "item-2", ... in order.
- Every item covers a different idea from the transcript.
- {_tone_line(tone)}

{human_writing_rules(allow_hashtags=allow_hashtags)}{style_block(style)}{purpose_block(purpose)}

## Output

Respond with ONLY a JSON object of this shape:
{{"items": [{{"id": "item-1", "content": "text", "charCount": 123, "tone": "tone used", "parts": ["optional ordered sub-units"]}}]}}
{EMPTY_RESPONSE_RULE}{_transcript_block(transcript)}"""


def critic_prompt(items_json: str, transcript: str) -> str:
    """Second pass: score every item, keyed by id."""
    excerpt = sanitize_transcript(transcript, max_length=CONTEXT_EXCERPT_CHARS)
    return f"""You are a strict social media editor reviewing drafts written from a transcript.

Score each item from 0 to 10 for hook strength, clarity, specificity,
faithfulness to the transcript, and how human it sounds. Flag any emoji,
em-dash, hashtag misuse, filler opener, or factual drift as an issue.

Set "ok" to false when the item should be rewritten.

Items (JSON):
{items_json}

## Output

Respond with ONLY a JSON array, one entry per item, using the same ids:
[{{"id": "item-1", "ok": true, "score": 8, "issues": ["short issue"], "fix_suggestion": "one concrete fix"}}]

Transcript excerpt for fact-checking:
{excerpt}"""


def refiner_prompt(
    item_id: str,
    content: str,
    issues: Sequence[str],
    fix_suggestion: str,
    transcript: str,
    tone: str | None = None,
    style: StyleProfile | None = None,
    content_format: ContentFormat | None = None,
) -> str:
    """Third pass: rewrite one flagged item using the critic's feedback.

    LinkedIn drafts keep the relaxed hashtag rule they were generated under.
    """
    issue_lines = "\n".join(f"- {issue}" for issue in issues) or "- (none listed)"
    excerpt = sanitize_transcript(transcript, max_length=CONTEXT_EXCERPT_CHARS)
    return f"""You are rewriting one piece of social content that an editor flagged.

Item id: {item_id}
Current draft:
{content}

Editor's issues:
{issue_lines}

Suggested fix: {fix_suggestion or "(none)"}

## Task

Rewrite the draft so every issue is resolved. Keep the core idea and any
facts; stay faithful to the transcript. {_tone_line(tone)}

{human_writing_rules(allow_hashtags=content_format is ContentFormat.LINKEDIN)}{style_block(style)}

## Output

Respond with ONLY a JSON object of this shape:
{{"id": "{item_id}", "content": "rewritten text", "charCount": 123}}
{EMPTY_RESPONSE_RULE}

Transcript excerpt:
{excerpt}"""
