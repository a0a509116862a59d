"""CLI interface for clipcraft."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Annotated, Any, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.prompt import Prompt

from clipcraft.config import ClipcraftConfig, load_config, merge_cli_overrides
from clipcraft.errors import ClipcraftError
from clipcraft.models import (
    ContentFormat,
    GeneratedItem,
    GenerationRequest,
    SingleShotRequest,
    StyleProfile,
    Tone,
)
from clipcraft.validation import validate

app = typer.Typer(
    name="clipcraft",
    help="Turn video transcripts into social content with a generate, critique, refine pipeline.",
)

console = Console()
logger = logging.getLogger(__name__)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        from clipcraft import __version__

        console.print(f"clipcraft {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging."),
    ] = False,
    config_path: Annotated[
        Optional[Path],
        typer.Option("--config", "-c", help="Path to a clipcraft TOML config file."),
    ] = None,
) -> None:
    """clipcraft - transcript-to-content generation."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )
    ctx.obj = {"config_path": config_path}


def _config(ctx: typer.Context, **overrides: Any) -> ClipcraftConfig:
    config_path = (ctx.obj or {}).get("config_path")
    return merge_cli_overrides(load_config(config_path), **overrides)


def _fail(message: str) -> typer.Exit:
    console.print(f"[red]Error:[/red] {message}")
    return typer.Exit(1)


def _read_text(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except OSError as exc:
        raise _fail(f"Cannot read {path}: {exc}") from exc


def _load_style(style_file: Path | None) -> dict[str, Any] | None:
    if style_file is None:
        return None
    try:
        data = json.loads(_read_text(style_file))
    except json.JSONDecodeError as exc:
        raise _fail(f"Style file is not valid JSON: {exc}") from exc
    result = validate(StyleProfile, data)
    if not result.ok:
        raise _fail(f"Invalid style profile: {result.error}")
    return result.parsed.model_dump(by_alias=True)


def _llm(config: ClipcraftConfig):
    from clipcraft.llm import create_llm_client

    try:
        return create_llm_client(config)
    except ClipcraftError as exc:
        raise _fail(str(exc)) from exc


def _print_items(items: list[GeneratedItem]) -> None:
    for item in items:
        count = item.char_count if item.char_count is not None else len(item.content)
        console.print(Panel(item.content, title=item.id or "item", subtitle=f"{count} chars"))


TranscriptFileOpt = Annotated[
    Optional[Path],
    typer.Option("--transcript-file", "-t", help="Read the transcript from this file."),
]
TranscriptUrlOpt = Annotated[
    Optional[str],
    typer.Option("--transcript-url", "-u", help="Fetch the transcript from this URL."),
]
FormatOpt = Annotated[ContentFormat, typer.Option("--format", "-f", help="Content format.")]
ToneOpt = Annotated[Optional[Tone], typer.Option("--tone", help="Requested tone.")]
CountOpt = Annotated[
    Optional[int],
    typer.Option("--count", "-n", min=1, max=20, help="Number of items to generate."),
]
StyleFileOpt = Annotated[
    Optional[Path],
    typer.Option("--style-file", help="StyleProfile JSON to emulate."),
]
PurposeOpt = Annotated[Optional[str], typer.Option("--purpose", help="What the content is for.")]


def _request_payload(
    transcript_file: Path | None,
    transcript_url: str | None,
    content_format: ContentFormat,
    tone: Tone | None,
    count: int | None,
    style_file: Path | None,
    purpose: str | None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {"format": content_format}
    if transcript_file is not None:
        payload["transcript"] = _read_text(transcript_file)
    if transcript_url:
        payload["transcriptUrl"] = transcript_url
    if tone is not None:
        payload["tone"] = tone
    if count is not None:
        payload["count"] = count
    style = _load_style(style_file)
    if style is not None:
        payload["style"] = style
    if purpose:
        payload["purpose"] = purpose
    return payload


@app.command()
def generate(
    ctx: typer.Context,
    transcript_file: TranscriptFileOpt = None,
    transcript_url: TranscriptUrlOpt = None,
    content_format: FormatOpt = ContentFormat.TWEET,
    tone: ToneOpt = None,
    count: CountOpt = None,
    style_file: StyleFileOpt = None,
    purpose: PurposeOpt = None,
    single: Annotated[
        bool,
        typer.Option("--single", help="One generation pass, no critique or refinement."),
    ] = False,
    as_json: Annotated[bool, typer.Option("--json", help="Print the result as JSON.")] = False,
    generator_model: Annotated[Optional[str], typer.Option("--generator-model")] = None,
    critic_model: Annotated[Optional[str], typer.Option("--critic-model")] = None,
    refiner_model: Annotated[Optional[str], typer.Option("--refiner-model")] = None,
    refine_concurrency: Annotated[
        Optional[int],
        typer.Option("--refine-concurrency", min=1, max=16, help="Parallel refine calls."),
    ] = None,
) -> None:
    """Generate content from a transcript."""
    from clipcraft.generation import GenerationPipeline, generate_single

    config = _config(
        ctx,
        generator_model=generator_model,
        critic_model=critic_model,
        refiner_model=refiner_model,
        refine_concurrency=refine_concurrency,
    )
    payload = _request_payload(
        transcript_file, transcript_url, content_format, tone, count, style_file, purpose
    )
    parsed = validate(SingleShotRequest if single else GenerationRequest, payload)
    if not parsed.ok:
        raise _fail(parsed.error)
    llm = _llm(config)

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
        ) as progress:
            if single:
                progress.add_task("Generating...", total=None)
                result = generate_single(parsed.parsed, llm, config)
            else:
                progress.add_task("Generating, critiquing and refining...", total=None)
                result = GenerationPipeline(llm, config).run(parsed.parsed)
    except ClipcraftError as exc:
        raise _fail(str(exc)) from exc

    if as_json:
        console.print_json(json.dumps(result.to_wire()))
        return

    _print_items(result.items)
    meta = result.pass_meta
    if meta is not None:
        console.print(
            f"[dim]{len(result.items)} item(s), {meta.passes} pass(es), "
            f"generator {meta.generator_model}[/dim]"
        )
        if meta.critic_heuristic:
            console.print("[yellow]Critic output was unusable; heuristic scores were used.[/yellow]")
        if meta.refined:
            console.print(f"[green]Refined:[/green] {', '.join(meta.refined)}")
        if meta.refine_failed:
            console.print(f"[yellow]Refinement kept original:[/yellow] {', '.join(meta.refine_failed)}")


def _split_examples(text: str) -> list[str]:
    return [block.strip() for block in text.split("\n\n") if block.strip()]


@app.command("analyze-style")
def analyze_style(
    ctx: typer.Context,
    examples_file: Annotated[
        Optional[Path],
        typer.Option("--file", help="Example posts separated by blank lines."),
    ] = None,
    example: Annotated[
        Optional[list[str]],
        typer.Option("--example", "-e", help="One example post (repeatable)."),
    ] = None,
    as_json: Annotated[bool, typer.Option("--json", help="Print the profile as JSON.")] = False,
) -> None:
    """Derive a style profile from 3-15 example posts."""
    from clipcraft.generation import StyleAnalyzer
    from clipcraft.generation.style import is_default_profile

    examples = list(example or [])
    if examples_file is not None:
        examples.extend(_split_examples(_read_text(examples_file)))

    config = _config(ctx)
    llm = _llm(config)
    try:
        profile = StyleAnalyzer(llm, config).analyze(examples)
    except ClipcraftError as exc:
        raise _fail(str(exc)) from exc

    if as_json:
        console.print_json(json.dumps(profile.model_dump(by_alias=True)))
        return

    console.print(f"[bold]Tone:[/bold] {profile.tone}")
    console.print(f"[bold]Vocabulary:[/bold] {profile.vocabulary}")
    console.print(f"[bold]Sentence structure:[/bold] {profile.sentence_structure}")
    console.print(f"[bold]Hooks:[/bold] {profile.hooks}")
    for pattern in profile.patterns:
        console.print(f"  - {pattern}")
    console.print(f"[bold]Summary:[/bold] {profile.summary}")
    if is_default_profile(profile):
        console.print("[yellow]Analysis incomplete; this is the default profile.[/yellow]")


@app.command()
def prompt(
    ctx: typer.Context,
    transcript_file: TranscriptFileOpt = None,
    transcript_url: TranscriptUrlOpt = None,
    content_format: FormatOpt = ContentFormat.TWEET,
    tone: ToneOpt = None,
    count: CountOpt = None,
    style_file: StyleFileOpt = None,
    purpose: PurposeOpt = None,
) -> None:
    """Print the single-shot prompt without calling a model."""
    from clipcraft.generation.prompts import build_prompt
    from clipcraft.transcripts import TranscriptSource, resolve_transcript

    payload = _request_payload(
        transcript_file, transcript_url, content_format, tone, count, style_file, purpose
    )
    parsed = validate(SingleShotRequest, payload)
    if not parsed.ok:
        raise _fail(parsed.error)
    request = parsed.parsed

    config = _config(ctx)
    try:
        transcript = resolve_transcript(
            request.transcript,
            str(request.transcript_url) if request.transcript_url else None,
            TranscriptSource(timeout=config.transcripts.fetch_timeout),
        )
    except ClipcraftError as exc:
        raise _fail(str(exc)) from exc

    text = build_prompt(
        request.format,
        transcript,
        segments=request.segments,
        tone=request.tone.value if request.tone else None,
        count=request.count,
        style=request.style,
        purpose=request.purpose,
    )
    console.print(text, markup=False, highlight=False)


@app.command()
def agent(
    ctx: typer.Context,
    transcript_file: Annotated[
        Optional[Path],
        typer.Option("--transcript-file", "-t", help="Transcript to give the agent as context."),
    ] = None,
    style_file: StyleFileOpt = None,
    purpose: PurposeOpt = None,
    agent_model: Annotated[Optional[str], typer.Option("--agent-model")] = None,
) -> None:
    """Chat with the content agent. Ctrl-C cancels the current reply."""
    from clipcraft.agent import AgentSession, CancellationToken

    config = _config(ctx, agent_model=agent_model)
    style = _load_style(style_file)
    session = AgentSession(
        _llm(config),
        config,
        context=_read_text(transcript_file) if transcript_file is not None else None,
        style=StyleProfile.model_validate(style) if style else None,
        purpose=purpose,
    )
    console.print("[dim]Type 'exit' or press Ctrl-D to quit.[/dim]")

    while True:
        try:
            message = Prompt.ask("[bold cyan]you[/bold cyan]", console=console)
        except (EOFError, KeyboardInterrupt):
            console.print()
            break
        if message.strip().lower() in {"exit", "quit"}:
            break
        if not message.strip():
            continue

        cancel = CancellationToken()
        try:
            for event in session.run_turn(message, cancel):
                if event.type == "text":
                    console.print(event.text, end="", markup=False, highlight=False)
                elif event.type == "tool_call":
                    console.print(f"\n[dim]> {event.name}[/dim]")
                elif event.type == "tool_result" and event.is_error:
                    console.print(f"[yellow]{event.name} failed: {event.result}[/yellow]")
                elif event.type == "error":
                    console.print(f"\n[red]Error:[/red] {event.error}")
                elif event.type == "cancelled":
                    console.print("\n[yellow]Cancelled.[/yellow]")
        except KeyboardInterrupt:
            cancel.cancel()
            console.print("\n[yellow]Cancelled.[/yellow]")
        console.print()


@app.command()
def serve(
    ctx: typer.Context,
    host: Annotated[Optional[str], typer.Option("--host", help="Bind address.")] = None,
    port: Annotated[Optional[int], typer.Option("--port", help="Bind port.")] = None,
) -> None:
    """Run the HTTP API with uvicorn."""
    import uvicorn

    from clipcraft.server import create_app

    config = _config(ctx, host=host, port=port)
    console.print(f"Serving on http://{config.server.host}:{config.server.port}")
    uvicorn.run(create_app(config), host=config.server.host, port=config.server.port)


if __name__ == "__main__":
    app()
