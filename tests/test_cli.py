"""Tests for the clipcraft CLI."""

import json
from pathlib import Path
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from clipcraft import __version__
from clipcraft.cli import app
from clipcraft.llm import StreamChunk

TRANSCRIPT = "We deleted half our feature flags and nothing broke."
ITEMS = json.dumps({"items": [{"content": "Flags are debt."}, {"content": "Delete them."}]})
ALL_GOOD = json.dumps([{"id": "item-1", "ok": True, "score": 9}, {"id": "item-2", "ok": True, "score": 9}])
PROFILE = json.dumps(
    {"tone": "dry", "vocabulary": "plain", "sentenceStructure": "short", "hooks": "facts", "patterns": [], "summary": "Dry."}
)


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def transcript_file(tmp_path: Path) -> Path:
    path = tmp_path / "talk.txt"
    path.write_text(TRANSCRIPT, encoding="utf-8")
    return path


@pytest.fixture
def cli_env(config, make_llm):
    """Patch config loading and the LLM factory; yields a function installing a fake client."""
    installed = {}

    def _install(**kwargs):
        installed["llm"] = make_llm(**kwargs)
        return installed["llm"]

    with (
        patch("clipcraft.cli.load_config", return_value=config),
        patch("clipcraft.cli._llm", side_effect=lambda cfg: installed.setdefault("llm", make_llm())) as factory,
    ):
        _install.factory = factory
        yield _install


class TestRoot:
    def test_version(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.stdout

    def test_help_lists_commands(self, runner: CliRunner) -> None:
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for name in ("generate", "analyze-style", "prompt", "agent", "serve"):
            assert name in result.stdout


class TestGenerate:
    def test_pipeline_panels(self, runner, cli_env, transcript_file) -> None:
        llm = cli_env(by_label={"generator": ITEMS, "critic": ALL_GOOD})
        result = runner.invoke(app, ["generate", "-t", str(transcript_file), "-n", "2"])

        assert result.exit_code == 0, result.output
        assert "Flags are debt." in result.stdout
        assert "item-2" in result.stdout
        assert "3 pass(es)" in result.stdout
        assert llm.labels() == ["generator", "critic"]

    def test_json_output(self, runner, cli_env, transcript_file) -> None:
        cli_env(by_label={"generator": ITEMS, "critic": ALL_GOOD})
        result = runner.invoke(app, ["generate", "-t", str(transcript_file), "--json"])

        assert result.exit_code == 0, result.output
        assert '"pass_meta"' in result.stdout
        assert '"item-1"' in result.stdout

    def test_single_pass(self, runner, cli_env, transcript_file) -> None:
        llm = cli_env(by_label={"single": ITEMS})
        result = runner.invoke(app, ["generate", "-t", str(transcript_file), "--single", "-f", "linkedin"])

        assert result.exit_code == 0, result.output
        assert llm.labels() == ["single:linkedin"]
        assert "1 pass(es)" in result.stdout

    def test_model_override(self, runner, cli_env, transcript_file) -> None:
        llm = cli_env(by_label={"generator": ITEMS, "critic": ALL_GOOD})
        result = runner.invoke(
            app, ["generate", "-t", str(transcript_file), "--generator-model", "custom-model-1"]
        )
        assert result.exit_code == 0, result.output
        assert llm.calls[0]["model"] == "custom-model-1"

    def test_heuristic_notice(self, runner, cli_env, transcript_file) -> None:
        cli_env(by_label={"generator": ITEMS, "critic": "fine"})
        result = runner.invoke(app, ["generate", "-t", str(transcript_file)])
        assert "heuristic" in result.stdout

    def test_missing_transcript(self, runner, cli_env) -> None:
        result = runner.invoke(app, ["generate"])
        assert result.exit_code == 1
        assert "transcript or transcriptUrl is required" in result.stdout
        cli_env.factory.assert_not_called()

    def test_unreadable_transcript(self, runner, cli_env, tmp_path) -> None:
        result = runner.invoke(app, ["generate", "-t", str(tmp_path / "missing.txt")])
        assert result.exit_code == 1
        assert "Cannot read" in result.stdout

    def test_style_file(self, runner, cli_env, transcript_file, tmp_path) -> None:
        style = tmp_path / "style.json"
        style.write_text(PROFILE, encoding="utf-8")
        llm = cli_env(by_label={"generator": ITEMS, "critic": ALL_GOOD})

        result = runner.invoke(app, ["generate", "-t", str(transcript_file), "--style-file", str(style)])

        assert result.exit_code == 0, result.output
        assert "Summary: Dry." in llm.calls[0]["prompt"]

    def test_invalid_style_file(self, runner, cli_env, transcript_file, tmp_path) -> None:
        style = tmp_path / "style.json"
        style.write_text('{"tone": "dry"}', encoding="utf-8")
        result = runner.invoke(app, ["generate", "-t", str(transcript_file), "--style-file", str(style)])
        assert result.exit_code == 1
        assert "Invalid style profile" in result.stdout


class TestAnalyzeStyle:
    def test_examples_from_options(self, runner, cli_env) -> None:
        llm = cli_env(by_label={"style-analysis": PROFILE})
        result = runner.invoke(app, ["analyze-style", "-e", "one post", "-e", "two post", "-e", "three post"])

        assert result.exit_code == 0, result.output
        assert "Tone:" in result.stdout
        assert "dry" in result.stdout
        assert "three post" in llm.calls[0]["prompt"]

    def test_examples_from_file(self, runner, cli_env, tmp_path) -> None:
        examples = tmp_path / "posts.txt"
        examples.write_text("first post\n\nsecond post\nstill second\n\nthird post\n", encoding="utf-8")
        llm = cli_env(by_label={"style-analysis": PROFILE})

        result = runner.invoke(app, ["analyze-style", "--file", str(examples), "--json"])

        assert result.exit_code == 0, result.output
        assert '"sentenceStructure"' in result.stdout
        assert "3. third post" in llm.calls[0]["prompt"]

    def test_too_few_examples(self, runner, cli_env) -> None:
        llm = cli_env()
        result = runner.invoke(app, ["analyze-style", "-e", "one", "-e", "two"])
        assert result.exit_code == 1
        assert "at least 3" in result.stdout
        assert llm.calls == []

    def test_default_profile_notice(self, runner, cli_env) -> None:
        cli_env(by_label={"style-analysis": "not json"})
        result = runner.invoke(app, ["analyze-style", "-e", "a", "-e", "b", "-e", "c"])
        assert result.exit_code == 0
        assert "default profile" in result.stdout


class TestPrompt:
    def test_prints_prompt_without_model_call(self, runner, cli_env, transcript_file) -> None:
        result = runner.invoke(app, ["prompt", "-t", str(transcript_file), "-f", "thread", "-n", "2"])

        assert result.exit_code == 0, result.output
        assert TRANSCRIPT in result.stdout
        cli_env.factory.assert_not_called()


class TestAgent:
    def test_one_turn_then_exit(self, runner, cli_env, transcript_file) -> None:
        llm = cli_env(
            streams=[[StreamChunk(type="text", text="Here you go."), StreamChunk(type="stop", stop_reason="end_turn")]]
        )
        result = runner.invoke(app, ["agent", "-t", str(transcript_file)], input="write a tweet\nexit\n")

        assert result.exit_code == 0, result.output
        assert "Here you go." in result.stdout
        assert TRANSCRIPT in llm.stream_calls[0]["system"]
        assert llm.stream_calls[0]["messages"] == [{"role": "user", "content": "write a tweet"}]

    def test_eof_quits(self, runner, cli_env) -> None:
        llm = cli_env()
        result = runner.invoke(app, ["agent"], input="")
        assert result.exit_code == 0
        assert llm.stream_calls == []


class TestServe:
    def test_runs_uvicorn(self, runner, cli_env) -> None:
        with patch("uvicorn.run") as run:
            result = runner.invoke(app, ["serve", "--port", "9001"])

        assert result.exit_code == 0, result.output
        kwargs = run.call_args.kwargs
        assert kwargs["port"] == 9001
        assert kwargs["host"] == "127.0.0.1"
