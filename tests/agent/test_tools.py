"""Tests for the agent tool registry."""

import json
from unittest.mock import MagicMock

import pytest

from clipcraft.agent.tools import ToolRegistry, ToolResult
from clipcraft.errors import TranscriptUnavailableError
from clipcraft.llm import LLMError

EXAMPLES = ["First sample post.", "Second sample post.", "Third sample post."]


@pytest.fixture
def source():
    return MagicMock()


def _registry(llm, config, source=None) -> ToolRegistry:
    return ToolRegistry(llm, config, source or MagicMock())


class TestDefinitions:
    def test_all_tools_registered(self, make_llm, config):
        registry = _registry(make_llm(), config)
        assert registry.names == [
            "analyze_writing_style",
            "generate_tweets",
            "generate_script",
            "critique_content",
            "refine_content",
            "fetch_transcript",
        ]

    def test_schemas_use_wire_names(self, make_llm, config):
        definitions = {d["name"]: d for d in _registry(make_llm(), config).definitions()}

        style_schema = definitions["analyze_writing_style"]["input_schema"]
        assert "exampleTweets" in style_schema["properties"]
        assert style_schema["required"] == ["exampleTweets"]
        assert "transcriptUrl" in definitions["fetch_transcript"]["input_schema"]["properties"]
        assert all(d["description"] for d in definitions.values())


class TestInvoke:
    def test_unknown_tool(self, make_llm, config):
        result = _registry(make_llm(), config).invoke("delete_everything", {})
        assert result.is_error
        assert result.content == {"error": "Unknown tool: delete_everything"}

    def test_invalid_input(self, make_llm, config):
        llm = make_llm()
        result = _registry(llm, config).invoke("analyze_writing_style", {"exampleTweets": EXAMPLES[:2]})
        assert result.is_error
        assert "exampleTweets" in result.content["error"]
        assert llm.calls == []

    def test_non_dict_input(self, make_llm, config):
        assert _registry(make_llm(), config).invoke("generate_tweets", "just text").is_error

    def test_llm_failure_is_error_result(self, make_llm, config):
        llm = make_llm({"tool:generate_tweets": LLMError("overloaded")})
        result = _registry(llm, config).invoke("generate_tweets", {"transcript": "t"})
        assert result.is_error
        assert "overloaded" in result.content["error"]

    def test_result_text_is_json(self):
        assert json.loads(ToolResult({"a": "é"}).to_text()) == {"a": "é"}


class TestAnalyzeStyle:
    def test_returns_wire_profile(self, make_llm, config):
        llm = make_llm({"style-analysis": json.dumps({"tone": "calm", "sentenceStructure": "long"})})
        result = _registry(llm, config).invoke("analyze_writing_style", {"exampleTweets": EXAMPLES})
        assert not result.is_error
        assert result.content["tone"] == "calm"
        assert result.content["sentenceStructure"] == "long"


class TestGenerateTweets:
    def test_renumbers_items(self, make_llm, config):
        reply = json.dumps({"items": [{"id": "x", "content": "first"}, {"content": "second!"}, "junk"]})
        llm = make_llm({"tool:generate_tweets": reply})
        result = _registry(llm, config).invoke("generate_tweets", {"transcript": "talk", "count": 3})

        assert result.content == {
            "items": [
                {"id": "tweet-1", "content": "first", "charCount": 5},
                {"id": "tweet-2", "content": "second!", "charCount": 7},
                {"id": "tweet-3", "content": "", "charCount": 0},
            ]
        }
        assert llm.calls[0]["temperature"] == config.agent.tool_temperature
        assert llm.calls[0]["model"] == config.models.generator_id

    def test_unparseable(self, make_llm, config):
        llm = make_llm({"tool:generate_tweets": "nope"})
        result = _registry(llm, config).invoke("generate_tweets", {"transcript": "talk"})
        assert not result.is_error
        assert result.content == {"items": [], "error": "Failed to parse generated content"}

    def test_count_bounds(self, make_llm, config):
        assert _registry(make_llm(), config).invoke("generate_tweets", {"transcript": "t", "count": 0}).is_error


class TestGenerateScript:
    def test_delegates(self, make_llm, config):
        llm = make_llm({"script": json.dumps({"script": "S", "styleNotes": "N"})})
        result = _registry(llm, config).invoke(
            "generate_script", {"referenceTranscript": "ref", "topic": "pricing"}
        )
        assert result.content == {"script": "S", "styleNotes": "N"}


class TestCritique:
    ARGS = {"items": [{"id": "tweet-1", "content": "hello"}], "transcript": "talk"}

    def test_entries_normalized(self, make_llm, config):
        reply = json.dumps(
            [
                {"id": "tweet-1", "score": 9},
                {"id": "tweet-2", "score": 14, "ok": False, "issues": ["long"], "fix_suggestion": "trim"},
                {"id": "tweet-3"},
                "junk",
            ]
        )
        llm = make_llm({"tool:critique_content": reply})
        critiques = _registry(llm, config).invoke("critique_content", self.ARGS).content["critiques"]

        assert critiques[0] == {"id": "tweet-1", "ok": True, "score": 9, "issues": [], "fixSuggestion": ""}
        assert critiques[1]["score"] == 10
        assert critiques[1]["ok"] is False
        assert critiques[1]["fixSuggestion"] == "trim"
        assert critiques[2]["score"] == 5
        assert critiques[2]["ok"] is False
        assert len(critiques) == 3

    def test_unparseable_uses_heuristic(self, make_llm, config):
        llm = make_llm({"tool:critique_content": "all good"})
        content = _registry(llm, config).invoke("critique_content", self.ARGS).content
        assert content["heuristic"] is True
        assert content["critiques"][0]["id"] == "tweet-1"
        assert content["critiques"][0]["ok"] is True

    def test_object_reply_gives_empty(self, make_llm, config):
        llm = make_llm({"tool:critique_content": '{"score": 3}'})
        assert _registry(llm, config).invoke("critique_content", self.ARGS).content == {"critiques": []}

    def test_uses_critic_model(self, make_llm, config):
        llm = make_llm({"tool:critique_content": "[]"})
        _registry(llm, config).invoke("critique_content", self.ARGS)
        assert llm.calls[0]["model"] == config.models.critic_id


class TestRefine:
    ARGS = {
        "item": {"id": "tweet-2", "content": "old text"},
        "feedback": {"issues": ["vague"], "fixSuggestion": "add a number"},
        "transcript": "talk",
    }

    def test_refined(self, make_llm, config):
        llm = make_llm({"tool:refine_content": '{"content": "new text 42"}'})
        result = _registry(llm, config).invoke("refine_content", self.ARGS)

        assert result.content == {"id": "tweet-2", "content": "new text 42", "charCount": 11, "refined": True}
        assert llm.calls[0]["temperature"] == 0.3
        assert "add a number" in llm.calls[0]["prompt"]

    def test_failure_keeps_original(self, make_llm, config):
        llm = make_llm({"tool:refine_content": "could not"})
        result = _registry(llm, config).invoke("refine_content", self.ARGS)
        assert result.content == {"id": "tweet-2", "content": "old text", "charCount": 8, "refined": False}


class TestFetchTranscript:
    def test_fetches(self, make_llm, config, source):
        source.fetch.return_value = "the words"
        result = _registry(make_llm(), config, source).invoke(
            "fetch_transcript", {"transcriptUrl": "https://example.com/t.txt"}
        )
        assert result.content == {"text": "the words", "length": 9}
        source.fetch.assert_called_once_with("https://example.com/t.txt")

    def test_fetch_error(self, make_llm, config, source):
        source.fetch.side_effect = TranscriptUnavailableError("Failed to fetch transcript: 404")
        result = _registry(make_llm(), config, source).invoke(
            "fetch_transcript", {"transcriptUrl": "https://example.com/t.txt"}
        )
        assert result.is_error
        assert result.content == {"error": "Failed to fetch transcript: 404"}

    def test_rejects_non_url(self, make_llm, config, source):
        result = _registry(make_llm(), config, source).invoke("fetch_transcript", {"transcriptUrl": "nope"})
        assert result.is_error
        source.fetch.assert_not_called()
