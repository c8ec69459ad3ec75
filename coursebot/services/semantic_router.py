"""
Single entry point of the semantic engine: one call per inbound message.

    load context -> pattern + AI analysis (concurrent) -> decide -> normalize
    -> record the turn
"""
import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Union

from coursebot.core.exceptions import ConfigurationError, UnmappedIntentError
from coursebot.services.ai_analyzer import AIAnalyzer
from coursebot.services.conversation_context import ConversationContextStore, get_conversation_context_store
from coursebot.services.decision_controller import (
    FALLBACK_SUGGESTION,
    UNKNOWN_INTENT,
    DecisionConfig,
    DecisionController,
    SemanticDecisionResult,
)
from coursebot.services.llm_client import get_llm_client
from coursebot.services.regex_analyzer import PatternAnalyzer, pattern_analyzer
from coursebot.services.semantic_normalizer import SemanticNormalizer, get_semantic_normalizer

logger = logging.getLogger(__name__)


class SemanticRouter:
    """Combines the analyzers, decision controller, normalizer and context store"""

    def __init__(
        self,
        ai_analyzer: AIAnalyzer,
        context_store: ConversationContextStore,
        normalizer: Optional[SemanticNormalizer] = None,
        analyzer: Optional[PatternAnalyzer] = None,
        controller: Optional[DecisionController] = None,
    ):
        self.ai_analyzer = ai_analyzer
        self.context_store = context_store
        self.normalizer = normalizer or get_semantic_normalizer()
        self.pattern_analyzer = analyzer or pattern_analyzer
        self.controller = controller or DecisionController(canonicalize=self._canonical_intent)

    def _canonical_intent(self, raw_intent: str) -> str:
        return self.normalizer.normalize_intent(raw_intent, strict_mode=False, log_unmapped=False).mapped_intent

    async def route(
        self,
        user_text: str,
        user_id: str,
        conversation_history: Optional[List[Dict[str, Any]]] = None,
        config: Union[DecisionConfig, Dict[str, Any], None] = None,
    ) -> SemanticDecisionResult:
        """
        Decide the intent and entities of one message.

        Analyzer and persistence failures never escape; they lower confidence
        or fall back. ConfigurationError always propagates, and
        UnmappedIntentError propagates in strict mode.
        """
        start = time.perf_counter()
        decision_config = config if isinstance(config, DecisionConfig) else DecisionConfig.from_settings(config)

        context = await self.context_store.get_context(user_id)
        history = conversation_history if conversation_history is not None else context.history

        try:
            result = await self._decide(user_text, history, context, decision_config)
        except (ConfigurationError, UnmappedIntentError):
            raise
        except Exception as e:
            logger.error(f"Semantic routing failed for user {user_id}: {e}", exc_info=True)
            result = SemanticDecisionResult(
                final_intent=UNKNOWN_INTENT,
                source="fallback",
                reason=f"System error during semantic analysis: {type(e).__name__}",
                used_rule="P5",
                confidence=0.0,
                suggestion=FALLBACK_SUGGESTION,
                mapping_source="none",
            )

        await self.context_store.record_user_message(user_id, user_text, result.final_intent, result.entities)

        result.execution_time_ms = round((time.perf_counter() - start) * 1000, 3)
        logger.info(
            f"Routed message for user {user_id}: intent={result.final_intent}, source={result.source}, "
            f"rule={result.used_rule}, mapping={result.mapping_source}, time={result.execution_time_ms}ms"
        )
        return result

    async def _decide(
        self, text: str, history: List[Dict[str, Any]], context: Any, config: DecisionConfig
    ) -> SemanticDecisionResult:
        # AI call in flight while the pattern analyzer runs
        ai_task = asyncio.create_task(self.ai_analyzer.analyze(text, history))
        try:
            regex_result = self.pattern_analyzer.analyze(text)
        except BaseException:
            ai_task.cancel()
            raise
        ai_result = await ai_task

        decision = self.controller.decide(regex_result, ai_result, context, config)

        intent_mapping = self.normalizer.normalize_intent(
            decision.final_intent, strict_mode=config.strict_mode, log_unmapped=config.log_unmapped
        )
        entity_mapping = self.normalizer.normalize_entities(decision.entities)

        decision.final_intent = intent_mapping.mapped_intent
        decision.mapping_source = intent_mapping.mapping_source
        decision.entities = entity_mapping.mapped_entities
        if decision.debug_info is not None:
            decision.debug_info["normalization"] = {
                "intent": intent_mapping.to_dict(),
                "entities": entity_mapping.to_dict(),
            }
        return decision


_semantic_router: Optional[SemanticRouter] = None


def get_semantic_router() -> SemanticRouter:
    """Get or create the shared router"""
    global _semantic_router
    if _semantic_router is None:
        _semantic_router = SemanticRouter(
            ai_analyzer=AIAnalyzer(get_llm_client()),
            context_store=get_conversation_context_store(),
        )
    return _semantic_router
