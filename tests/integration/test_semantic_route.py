"""
Integration tests for the semantic router
Runs the full pipeline (context -> analyzers -> decision -> normalization)
with a mocked LLM completion and the in-memory key-value store
"""
import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from coursebot.core.exceptions import ConfigurationError, ContextUnavailable, UnmappedIntentError
from coursebot.services.conversation_context import ConversationContextStore
from coursebot.services.decision_controller import FALLBACK_SUGGESTION
from coursebot.services.llm_client import LLMCompletion
from coursebot.services.semantic_router import SemanticRouter


def completion(content: str) -> LLMCompletion:
    return LLMCompletion(content=content, model="gpt-4o-mini")


async def never_answers(prompt, params):
    await asyncio.sleep(5)


class TestScenarios:
    """End-to-end routing scenarios"""

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_clear_record_request(self, semantic_router, mock_llm_client, ai_response):
        """Test a plain '記錄課程' is decided by the strong pattern match"""
        mock_llm_client.complete.return_value = completion(
            ai_response(intent="record_course", complete_reasoning=False, overall=0.6)
        )

        result = await semantic_router.route("記錄課程", "user-1")

        assert result.final_intent == "record_course"
        assert result.source == "regex"
        assert result.used_rule == "P4"
        assert result.mapping_source == "precomputed_direct"
        assert result.confidence > 0.9
        assert result.execution_time_ms > 0

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_ai_timeout_with_strong_pattern(self, semantic_router, mock_llm_client):
        semantic_router.ai_analyzer.timeout = 0.05
        mock_llm_client.complete.side_effect = never_answers

        result = await semantic_router.route("取消明天的數學課", "user-1")

        assert result.source == "regex"
        assert result.final_intent == "cancel_course"
        assert result.entities["course_name"] == "數學"
        assert result.entities["date_phrase"] == "明天"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_ai_timeout_with_weak_pattern(self, semantic_router, mock_llm_client):
        semantic_router.ai_analyzer.timeout = 0.05
        mock_llm_client.complete.side_effect = never_answers

        result = await semantic_router.route("嗯，我想想", "user-1")

        assert result.source == "fallback"
        assert result.final_intent == "unknown"
        assert result.confidence == 0.0
        assert result.suggestion == FALLBACK_SUGGESTION

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_reads_are_stable_between_routes(self, semantic_router, context_store):
        await semantic_router.route("記錄課程", "user-1")

        first = await context_store.get_context("user-1")
        second = await context_store.get_context("user-1")

        assert len(first.history) == len(second.history) == 1

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_clearing_one_user_keeps_another(self, semantic_router, context_store):
        await semantic_router.route("記錄課程", "user-a")
        await semantic_router.route("查詢這週的課表", "user-b")

        await context_store.clear_context("user-a")

        assert (await context_store.get_context("user-a")).history == []
        assert len((await context_store.get_context("user-b")).history) == 1

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_follow_up_resolves_reference(self, semantic_router, mock_llm_client, ai_response):
        """Test '那堂課' picks up the course and student of the previous turn"""
        mock_llm_client.complete.return_value = completion(
            ai_response(
                intent="cancel_course",
                entities={"course_name": "數學課", "student_name": "小明"},
                temporal_clues=["明天"],
            )
        )
        await semantic_router.route("取消明天小明的數學課", "user-1")

        mock_llm_client.complete.return_value = completion(ai_response(intent="modify_course", overall=0.85))
        result = await semantic_router.route("那堂課改到下午三點", "user-1")

        assert result.used_rule == "P3"
        assert result.final_intent == "modify_course"
        assert result.entities["course_name"] == "數學"
        assert result.entities["student_name"] == "小明"
        assert sorted(result.resolved_from_context) == ["course_name", "student_name"]

        prompt = mock_llm_client.complete.call_args.args[0]
        assert "取消明天小明的數學課" in prompt


class TestRoutingContracts:
    """Tests for invariants that hold for every routed message"""

    @pytest.mark.integration
    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "text", ["記錄課程", "取消明天的數學課", "明天有什麼課嗎？", "今天數學課學了分數", "hello", "確認"]
    )
    async def test_exactly_one_rule_and_valid_source(self, semantic_router, text):
        result = await semantic_router.route(text, "user-1", config={"debug": True})

        matched = [step["rule"] for step in result.debug_info["rule_trace"] if step["matched"]]
        assert matched == [result.used_rule]
        assert result.source in ("ai", "regex", "fallback")
        assert 0.0 <= result.confidence <= 1.0
        assert "normalization" in result.debug_info

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_explicit_history_overrides_stored(self, semantic_router, mock_llm_client):
        await semantic_router.route("記錄課程", "user-1")

        await semantic_router.route("好的", "user-1", conversation_history=[{"role": "user", "text": "鋼琴課"}])

        prompt = mock_llm_client.complete.call_args.args[0]
        assert "鋼琴課" in prompt
        assert "記錄課程" not in prompt

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_legacy_ai_intent_is_canonicalized(self, semantic_router, mock_llm_client, ai_response):
        mock_llm_client.complete.return_value = completion(ai_response(intent="add_course", overall=0.95))

        result = await semantic_router.route("幫我排一下", "user-1")

        assert result.source == "ai"
        assert result.final_intent == "record_course"
        assert result.mapping_source == "alias"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_strict_mode_rejects_unmapped(self, semantic_router, mock_llm_client, ai_response):
        mock_llm_client.complete.return_value = completion(ai_response(intent="weather_forecast", overall=0.9))

        with pytest.raises(UnmappedIntentError):
            await semantic_router.route("今天天氣如何", "user-1", config={"strict_mode": True})

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_unmapped_passes_through_when_lenient(self, semantic_router, mock_llm_client, ai_response):
        mock_llm_client.complete.return_value = completion(ai_response(intent="weather_forecast", overall=0.9))

        result = await semantic_router.route("今天天氣如何", "user-1")

        assert result.final_intent == "weather_forecast"
        assert result.mapping_source == "none"

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_configuration_error_propagates(self, semantic_router, mock_llm_client):
        mock_llm_client.complete.side_effect = ConfigurationError("OpenAI API key not configured")

        with pytest.raises(ConfigurationError):
            await semantic_router.route("記錄課程", "user-1")

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_invalid_config_rejected(self, semantic_router):
        with pytest.raises(ConfigurationError):
            await semantic_router.route("記錄課程", "user-1", config={"fallback_threshold": 3})

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_internal_failure_falls_back(self, ai_analyzer, context_store, normalizer):
        broken = Mock()
        broken.analyze.side_effect = RuntimeError("rule table corrupted")
        router = SemanticRouter(
            ai_analyzer=ai_analyzer, context_store=context_store, normalizer=normalizer, analyzer=broken
        )

        result = await router.route("記錄課程", "user-1")

        assert result.source == "fallback"
        assert result.used_rule == "P5"
        assert result.mapping_source == "none"
        assert result.reason == "System error during semantic analysis: RuntimeError"
        assert len((await context_store.get_context("user-1")).history) == 1

    @pytest.mark.integration
    @pytest.mark.asyncio
    async def test_unreachable_store_does_not_break_routing(self, ai_analyzer, normalizer, unavailable_store):
        router = SemanticRouter(ai_analyzer=ai_analyzer, context_store=unavailable_store, normalizer=normalizer)

        result = await router.route("記錄課程", "user-1")

        assert result.final_intent == "record_course"


@pytest.fixture
def unavailable_store(memory_kv):
    memory_kv.get = AsyncMock(side_effect=ContextUnavailable("down"))
    memory_kv.set = AsyncMock(side_effect=ContextUnavailable("down"))
    return ConversationContextStore(memory_kv, ttl_seconds=1800)
