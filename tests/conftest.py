"""
Shared pytest fixtures and configuration for all tests
"""
import json
import os
from typing import Any, Dict, Optional
from unittest.mock import AsyncMock, Mock

import pytest

# Settings are read at import time; keep tests off Redis and the network
os.environ.setdefault("KV_BACKEND", "memory")
os.environ.setdefault("OPENAI_API_KEY", "")
os.environ.setdefault("LOG_FORMAT", "console")

from coursebot.services.ai_analyzer import AIAnalyzer
from coursebot.services.conversation_context import ConversationContextStore
from coursebot.services.kv_store import InMemoryKeyValueStore
from coursebot.services.llm_client import LLMCompletion
from coursebot.services.regex_analyzer import PatternAnalyzer
from coursebot.services.semantic_normalizer import SemanticNormalizer
from coursebot.services.semantic_router import SemanticRouter


class FakeClock:
    """Manually advanced monotonic clock"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


def build_ai_response(
    intent: str = "record_course",
    entities: Optional[Dict[str, Any]] = None,
    temporal_clues=None,
    mood_indicators=None,
    action_verbs=None,
    question_markers=None,
    complete_reasoning: bool = True,
    overall: float = 0.9,
) -> str:
    """JSON content shaped like a well-behaved LLM analysis"""
    steps = {f"step{i}": f"reasoning step {i}" for i in range(1, 6)}
    if not complete_reasoning:
        steps.pop("step5")
    return json.dumps(
        {
            "intent": intent,
            "entities": entities or {},
            "evidence": {
                "temporal_clues": temporal_clues or [],
                "mood_indicators": mood_indicators or [],
                "action_verbs": action_verbs or [],
                "question_markers": question_markers or [],
            },
            "reasoning_chain": {**steps, "confidence_source": "keyword match"},
            "confidence": {"overall": overall, "intent_certainty": overall, "context_understanding": 0.8},
        },
        ensure_ascii=False,
    )


@pytest.fixture
def ai_response():
    """Factory for LLM analysis JSON"""
    return build_ai_response


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def memory_kv(fake_clock):
    """In-memory key-value store driven by a fake clock"""
    return InMemoryKeyValueStore(clock=fake_clock)


@pytest.fixture
def context_store(memory_kv):
    return ConversationContextStore(memory_kv, ttl_seconds=1800, history_limit=20, entity_limit=10)


@pytest.fixture
def pattern_analyzer():
    return PatternAnalyzer()


@pytest.fixture
def normalizer():
    """Fresh normalizer with its own cache"""
    return SemanticNormalizer(max_cache_size=2000, strict_mode=False, log_unmapped=True)


@pytest.fixture
def mock_llm_client():
    """LLM client whose completion content is set per test"""
    mock = Mock()
    mock.complete = AsyncMock(return_value=LLMCompletion(content=build_ai_response(), model="gpt-4o-mini"))
    return mock


@pytest.fixture
def ai_analyzer(mock_llm_client):
    return AIAnalyzer(mock_llm_client, timeout=0.5, history_turns=3)


@pytest.fixture
def semantic_router(ai_analyzer, context_store, normalizer, pattern_analyzer):
    return SemanticRouter(
        ai_analyzer=ai_analyzer,
        context_store=context_store,
        normalizer=normalizer,
        analyzer=pattern_analyzer,
    )
