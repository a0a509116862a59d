"""Tests for clipcraft.generation.pipeline."""

import json
from datetime import datetime
from unittest.mock import MagicMock, patch

import pytest

from clipcraft.errors import TranscriptUnavailableError
from clipcraft.generation.pipeline import (
    QUALITY_THRESHOLD,
    Critique,
    RefineOutcome,
    GenerationPipeline,
    generate_batch,
    heuristic_feedback,
    needs_refinement,
)
from clipcraft.llm import LLMError
from clipcraft.models import CriticFeedback, GeneratedItem, GenerationRequest
from clipcraft.validation import Invalid

ABC_ITEMS = json.dumps({"items": [{"content": "a"}, {"content": "b"}, {"content": "c"}]})


def _request(**overrides) -> GenerationRequest:
    data = {"transcript": "A talk about shipping software.", "format": "tweet", "count": 3}
    data.update(overrides)
    return GenerationRequest.model_validate(data)


def _critique(*entries: tuple[str, bool, float]) -> str:
    return json.dumps(
        [
            {"id": item_id, "ok": ok, "score": score, "issues": ["weak hook"], "fix_suggestion": "Start stronger"}
            for item_id, ok, score in entries
        ]
    )


def _all_good(n: int = 3) -> str:
    return _critique(*[(f"item-{i}", True, 9) for i in range(1, n + 1)])


class TestNeedsRefinement:
    @pytest.mark.parametrize(
        ("ok", "score", "expected"),
        [
            (True, 9, False),
            (True, QUALITY_THRESHOLD, False),
            (True, 6.9, True),
            (False, 9, True),
            (False, 2, True),
        ],
    )
    def test_threshold(self, ok, score, expected):
        assert needs_refinement(CriticFeedback(id="x", ok=ok, score=score)) is expected

    def test_no_feedback(self):
        assert needs_refinement(None) is False


class TestHeuristicFeedback:
    def test_always_ok_and_at_threshold(self):
        items = [GeneratedItem(id=f"item-{n}", content="x" * n) for n in range(12)]
        feedback = heuristic_feedback(items)
        assert [f.id for f in feedback] == [i.id for i in items]
        assert all(f.ok for f in feedback)
        assert all(QUALITY_THRESHOLD <= f.score <= 10 for f in feedback)
        assert not any(needs_refinement(f) for f in feedback)

    def test_deterministic(self):
        items = [GeneratedItem(id="item-1", content="hello")]
        assert heuristic_feedback(items) == heuristic_feedback(items)


class TestPipelineHappyPath:
    def test_ids_assigned_and_content_unchanged(self, make_llm, config):
        llm = make_llm({"generator": ABC_ITEMS, "critic": _all_good()})
        result = GenerationPipeline(llm, config).run(_request())

        assert [i.id for i in result.items] == ["item-1", "item-2", "item-3"]
        assert [i.content for i in result.items] == ["a", "b", "c"]
        assert llm.labels() == ["generator", "critic"]

    def test_pass_meta(self, make_llm, config):
        llm = make_llm({"generator": ABC_ITEMS, "critic": _all_good()})
        meta = GenerationPipeline(llm, config).run(_request()).pass_meta

        assert meta.passes == 3
        assert meta.generator_model == config.models.generator_id
        assert meta.critic_model == config.models.critic_id
        assert meta.critic_heuristic is False
        assert meta.refined == []
        datetime.fromisoformat(meta.timestamp)

    def test_models_and_temperatures(self, make_llm, config):
        llm = make_llm({"generator": ABC_ITEMS, "critic": _all_good()})
        GenerationPipeline(llm, config).run(_request())

        generator, critic = llm.calls
        assert generator["temperature"] == 0.0
        assert generator["model"] == config.models.generator_id
        assert critic["temperature"] == 0.2
        assert critic["model"] == config.models.critic_id
        assert '"id": "item-2"' in critic["prompt"]

    def test_format_and_tone_stamped(self, make_llm, config):
        llm = make_llm({"generator": ABC_ITEMS, "critic": _all_good()})
        result = GenerationPipeline(llm, config).run(_request(tone="casual"))
        assert all(i.format == "tweet" and i.tone == "casual" for i in result.items)

    def test_module_level_wrapper(self, make_llm, config):
        llm = make_llm({"generator": ABC_ITEMS, "critic": _all_good()})
        assert len(generate_batch(_request(), llm, config).items) == 3


class TestGeneratorFallbacks:
    def test_legacy_tweets_shape(self, make_llm, config):
        llm = make_llm({"generator": '{"tweets": ["x", "y"]}', "critic": _critique(("tweet-1", True, 9))})
        result = GenerationPipeline(llm, config).run(_request())
        assert [(i.id, i.content) for i in result.items] == [("tweet-1", "x"), ("tweet-2", "y")]

    def test_non_json_wrapped_as_single_item(self, make_llm, config):
        llm = make_llm({"generator": "Here are some tweets: one, two", "critic": "[]"})
        result = GenerationPipeline(llm, config).run(_request())
        assert len(result.items) == 1
        assert result.items[0].content == "Here are some tweets: one, two"

    def test_prose_with_bracketed_number_kept_whole(self, make_llm, config):
        prose = "Shipping weekly beats shipping perfectly [1]."
        llm = make_llm({"generator": prose, "critic": "[]"})
        result = GenerationPipeline(llm, config).run(_request())
        assert [(i.id, i.content) for i in result.items] == [("raw-1", prose)]

    def test_unrecognized_json_wrapped_as_single_item(self, make_llm, config):
        generator = json.dumps({"posts": [{"content": "a"}]})
        llm = make_llm({"generator": generator, "critic": "[]"})
        result = GenerationPipeline(llm, config).run(_request())
        assert [(i.id, i.content) for i in result.items] == [("raw-1", generator)]

    def test_schema_failure_salvages_content(self, make_llm, config):
        generator = json.dumps({"items": [{"id": "dup", "content": "kept", "charCount": -1}, {"content": "b"}]})
        llm = make_llm({"generator": generator, "critic": "[]"})
        result = GenerationPipeline(llm, config).run(_request())
        assert [i.content for i in result.items] == ["kept", "b"]
        assert [i.id for i in result.items] == ["item-1", "item-2"]

    def test_fenced_output(self, make_llm, config):
        llm = make_llm({"generator": f"```json\n{ABC_ITEMS}\n```", "critic": _all_good()})
        assert len(GenerationPipeline(llm, config).run(_request()).items) == 3

    def test_empty_batch_skips_critic_call(self, make_llm, config):
        llm = make_llm({"generator": '{"items": []}'})
        result = GenerationPipeline(llm, config).run(_request())
        assert result.items == []
        assert result.pass_meta.passes == 3
        assert llm.labels() == ["generator"]

    def test_generator_transport_error_propagates(self, make_llm, config):
        llm = make_llm({"generator": LLMError("down")})
        with pytest.raises(LLMError):
            GenerationPipeline(llm, config).run(_request())


class TestCriticFallbacks:
    def test_invalid_json_uses_heuristic(self, make_llm, config):
        llm = make_llm({"generator": ABC_ITEMS, "critic": "Looks great to me!"})
        result = GenerationPipeline(llm, config).run(_request())

        assert [i.content for i in result.items] == ["a", "b", "c"]
        assert result.pass_meta.critic_heuristic is True
        assert not any(label.startswith("refiner") for label in llm.labels())

    def test_transport_error_uses_heuristic(self, make_llm, config):
        llm = make_llm({"generator": ABC_ITEMS, "critic": LLMError("timeout")})
        result = GenerationPipeline(llm, config).run(_request())
        assert result.pass_meta.critic_heuristic is True
        assert len(result.items) == 3

    def test_missing_feedback_passes_through(self, make_llm, config):
        llm = make_llm({"generator": ABC_ITEMS, "critic": _critique(("item-9", False, 1))})
        result = GenerationPipeline(llm, config).run(_request())
        assert [i.content for i in result.items] == ["a", "b", "c"]
        assert llm.labels() == ["generator", "critic"]

    def test_wrapped_feedback_object(self, make_llm, config):
        critic = json.dumps({"feedback": [{"id": "item-2", "ok": False, "score": 2}]})
        llm = make_llm({"generator": ABC_ITEMS, "critic": critic, "refiner": '{"content": "B!"}'})
        result = GenerationPipeline(llm, config).run(_request())
        assert [i.content for i in result.items] == ["a", "B!", "c"]


class TestRefinement:
    def test_flagged_item_replaced(self, make_llm, config):
        critic = _critique(("item-1", False, 3), ("item-2", True, 9), ("item-3", True, 9))
        llm = make_llm({"generator": ABC_ITEMS, "critic": critic, "refiner": '{"content": "Stronger version"}'})
        result = GenerationPipeline(llm, config).run(_request())

        assert result.items[0].id == "item-1"
        assert result.items[0].content == "Stronger version"
        assert [i.content for i in result.items[1:]] == ["b", "c"]
        assert result.pass_meta.refined == ["item-1"]
        assert llm.labels().count("refiner:item-1") == 1

    def test_refiner_prompt_carries_feedback(self, make_llm, config):
        critic = _critique(("item-1", False, 3))
        llm = make_llm({"generator": ABC_ITEMS, "critic": critic, "refiner": '{"content": "x"}'})
        GenerationPipeline(llm, config).run(_request(tone="viral"))

        refine_call = llm.calls[2]
        assert "weak hook" in refine_call["prompt"]
        assert "Start stronger" in refine_call["prompt"]
        assert "Tone: viral." in refine_call["prompt"]
        assert refine_call["model"] == config.models.refiner_id

    def test_refiner_prompt_follows_item_hashtag_rule(self, make_llm, config):
        critic = _critique(("item-1", False, 3))
        llm = make_llm({"generator": ABC_ITEMS, "critic": critic, "refiner": '{"content": "x"}'})
        GenerationPipeline(llm, config).run(_request(format="linkedin"))

        prompt = llm.calls[2]["prompt"]
        assert "Hashtags: at most 3" in prompt
        assert "NEVER use hashtags" not in prompt

    def test_tweet_refiner_prompt_bans_hashtags(self, make_llm, config):
        critic = _critique(("item-1", False, 3))
        llm = make_llm({"generator": ABC_ITEMS, "critic": critic, "refiner": '{"content": "x"}'})
        GenerationPipeline(llm, config).run(_request())
        assert "NEVER use hashtags" in llm.calls[2]["prompt"]

    def test_both_triggers_are_independent(self, make_llm, config):
        critic = _critique(("item-1", True, 6), ("item-2", False, 9), ("item-3", True, 7))
        llm = make_llm({"generator": ABC_ITEMS, "critic": critic, "refiner": '{"content": "new"}'})
        result = GenerationPipeline(llm, config).run(_request())

        assert [i.content for i in result.items] == ["new", "new", "c"]
        assert sorted(result.pass_meta.refined) == ["item-1", "item-2"]

    def test_refined_id_is_anchored(self, make_llm, config):
        critic = _critique(("item-2", False, 1))
        llm = make_llm({"generator": ABC_ITEMS, "critic": critic, "refiner": '{"id": "other", "content": "z"}'})
        result = GenerationPipeline(llm, config).run(_request())
        assert [i.id for i in result.items] == ["item-1", "item-2", "item-3"]

    def test_refine_failure_is_isolated(self, make_llm, config):
        critic = _critique(("item-1", False, 3), ("item-2", False, 3))
        llm = make_llm(
            {
                "generator": ABC_ITEMS,
                "critic": critic,
                "refiner:item-1": "I could not rewrite this.",
                "refiner:item-2": '{"content": "fixed"}',
            }
        )
        result = GenerationPipeline(llm, config).run(_request())

        assert [i.content for i in result.items] == ["a", "fixed", "c"]
        assert result.pass_meta.refine_failed == ["item-1"]
        assert result.pass_meta.refined == ["item-2"]

    def test_refine_validation_failure_keeps_original(self, make_llm, config):
        llm = make_llm(
            {"generator": ABC_ITEMS, "critic": _critique(("item-3", False, 0)), "refiner": '{"charCount": 3}'}
        )
        result = GenerationPipeline(llm, config).run(_request())
        assert result.items[2].content == "c"
        assert result.pass_meta.refine_failed == ["item-3"]

    def test_refine_transport_error_keeps_original(self, make_llm, config):
        critic = _critique(("item-1", False, 3), ("item-2", False, 3))
        llm = make_llm(
            {
                "generator": ABC_ITEMS,
                "critic": critic,
                "refiner:item-1": LLMError("reset"),
                "refiner:item-2": '{"content": "fixed"}',
            }
        )
        result = GenerationPipeline(llm, config).run(_request())
        assert [i.content for i in result.items] == ["a", "fixed", "c"]

    def test_parallel_refine_keeps_order(self, make_llm, config):
        config.pipeline.refine_concurrency = 4
        critic = _critique(("item-1", False, 1), ("item-2", False, 1), ("item-3", False, 1))
        llm = make_llm(
            {
                "generator": ABC_ITEMS,
                "critic": critic,
                "refiner:item-1": '{"content": "A"}',
                "refiner:item-2": '{"content": "B"}',
                "refiner:item-3": '{"content": "C"}',
            }
        )
        result = GenerationPipeline(llm, config).run(_request())
        assert [i.content for i in result.items] == ["A", "B", "C"]
        assert [i.id for i in result.items] == ["item-1", "item-2", "item-3"]


class TestTranscriptResolution:
    def test_fetches_url(self, make_llm, config):
        source = MagicMock()
        source.fetch.return_value = "fetched transcript text"
        llm = make_llm({"generator": ABC_ITEMS, "critic": _all_good()})
        request = GenerationRequest.model_validate(
            {"transcriptUrl": "https://example.com/t.txt", "format": "tweet", "count": 3}
        )

        GenerationPipeline(llm, config, source).run(request)

        source.fetch.assert_called_once_with("https://example.com/t.txt")
        assert "fetched transcript text" in llm.calls[0]["prompt"]

    def test_fetch_failure_is_terminal(self, make_llm, config):
        source = MagicMock()
        source.fetch.side_effect = TranscriptUnavailableError("Failed to fetch transcript: 404")
        llm = make_llm()
        request = GenerationRequest.model_validate({"transcriptUrl": "https://example.com/x", "format": "tweet"})

        with pytest.raises(TranscriptUnavailableError):
            GenerationPipeline(llm, config, source).run(request)
        assert llm.calls == []


class TestFinalize:
    def test_unvalidated_result_still_returned(self, make_llm, config):
        pipeline = GenerationPipeline(make_llm(), config)
        outcomes = [RefineOutcome(item=GeneratedItem(id="item-1", content="a"))]
        with patch("clipcraft.generation.pipeline.validate", return_value=Invalid(error="boom")):
            result = pipeline.finalize(outcomes, Critique())
        assert result.items[0].content == "a"
        assert result.pass_meta.passes == 3
