"""
Decision controller: arbitrates between the pattern analyzer and the AI
analyzer with an ordered, auditable rule chain.

    P1  mood conflict            -> ai
    P2  temporal clues present   -> ai
    P3  AI reasoning complete    -> ai
    P4  strong pattern match     -> regex
    P5  default                  -> ai, or fallback when AI confidence is too low

The first rule whose predicate holds decides; later rules are not evaluated.
"""
import logging
import re
import time
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Callable, Dict, List, Optional

from coursebot.core.config import settings
from coursebot.core.exceptions import ConfigurationError
from coursebot.services.ai_analyzer import AIAnalysisResult
from coursebot.services.regex_analyzer import RegexAnalysisResult

logger = logging.getLogger(__name__)

UNKNOWN_INTENT = "unknown"

FALLBACK_SUGGESTION = "抱歉，我不太確定您的意思。可以說得更具體一些嗎？例如：「記錄明天下午2點小明的數學課」或「查詢這週的課表」"

# Intents that tell the assistant to do something
ACTION_INTENTS = {
    "record_course",
    "create_recurring_course",
    "modify_course",
    "modify_recurring_course",
    "cancel_course",
    "stop_recurring_course",
    "clear_schedule",
    "set_reminder",
    "record_lesson_content",
    "record_homework",
    "upload_class_photo",
    "modify_course_content",
}

# Intents that act on a course or student the user may only refer to
SUBJECT_INTENTS = {
    "modify_course",
    "modify_recurring_course",
    "cancel_course",
    "stop_recurring_course",
    "query_course_content",
    "modify_course_content",
    "record_lesson_content",
    "record_homework",
}

QUESTION_MOOD_TERMS = [
    "疑問",
    "詢問",
    "猶豫",
    "不確定",
    "好奇",
    "嗎",
    "呢",
    "?",
    "？",
    "question",
    "uncertain",
    "hesita",
    "doubt",
    "wonder",
    "confus",
]

REFERENCE_MARKERS = re.compile(r"(那個|那堂|那門|這個|這堂|這門|同一堂|剛剛那|它|\bthat one\b|\bthe same\b|\bit\b)", re.IGNORECASE)

# Entity key -> ConversationState.mentioned_entities bucket
CONTEXT_ENTITY_KEYS = {
    "course_name": "courses",
    "student_name": "students",
}


@dataclass
class DecisionConfig:
    """Thresholds and switches recognized by the controller and normalizer"""

    debug: bool = False
    ai_confidence_threshold: float = 0.3
    regex_strength_threshold: float = 0.8
    fallback_threshold: float = 0.3
    strict_mode: bool = False
    log_unmapped: bool = True
    max_cache_size: int = 2000

    def __post_init__(self):
        for name in ("ai_confidence_threshold", "regex_strength_threshold", "fallback_threshold"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0.0 <= value <= 1.0:
                raise ConfigurationError(f"{name} must be a number in [0, 1], got {value!r}")
        if isinstance(self.max_cache_size, bool) or not isinstance(self.max_cache_size, int) or self.max_cache_size < 1:
            raise ConfigurationError(f"max_cache_size must be a positive integer, got {self.max_cache_size!r}")

    @classmethod
    def from_settings(cls, overrides: Optional[Dict[str, Any]] = None) -> "DecisionConfig":
        """Application settings with per-call overrides applied on top"""
        values = {
            "debug": settings.debug,
            "ai_confidence_threshold": settings.ai_confidence_threshold,
            "regex_strength_threshold": settings.regex_strength_threshold,
            "fallback_threshold": settings.fallback_threshold,
            "strict_mode": settings.strict_mode,
            "log_unmapped": settings.log_unmapped,
            "max_cache_size": settings.normalizer_max_cache_size,
        }
        if overrides:
            known = {f.name for f in fields(cls)}
            unknown = set(overrides) - known
            if unknown:
                raise ConfigurationError(f"Unknown decision config keys: {sorted(unknown)}")
            values.update(overrides)
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SemanticDecisionResult:
    """Final decision for one message"""

    final_intent: str
    source: str  # "ai" | "regex" | "fallback"
    reason: str
    used_rule: str  # "P1".."P5"
    confidence: float
    entities: Dict[str, Any] = field(default_factory=dict)
    suggestion: Optional[str] = None
    debug_info: Optional[Dict[str, Any]] = None
    mapping_source: Optional[str] = None
    resolved_from_context: List[str] = field(default_factory=list)
    execution_time_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "final_intent": self.final_intent,
            "source": self.source,
            "reason": self.reason,
            "used_rule": self.used_rule,
            "confidence": self.confidence,
            "entities": dict(self.entities),
            "mapping_source": self.mapping_source,
            "resolved_from_context": list(self.resolved_from_context),
            "execution_time_ms": self.execution_time_ms,
        }
        if self.suggestion is not None:
            data["suggestion"] = self.suggestion
        if self.debug_info is not None:
            data["debug_info"] = self.debug_info
        return data


ConflictPredicate = Callable[[RegexAnalysisResult, AIAnalysisResult], bool]
RulePredicate = Callable[[RegexAnalysisResult, AIAnalysisResult, DecisionConfig], bool]


@dataclass
class DecisionRule:
    name: str
    description: str
    predicate: RulePredicate
    outcome: str  # "ai" | "regex" | "ai_or_fallback"


def default_conflict_predicate(regex_result: RegexAnalysisResult, ai_result: AIAnalysisResult) -> bool:
    """Regex says 'do something' while the AI hears a question or hesitation"""
    if regex_result.intent not in ACTION_INTENTS:
        return False
    if ai_result.evidence.question_markers:
        return True
    for indicator in ai_result.evidence.mood_indicators:
        lowered = indicator.lower()
        if any(term in lowered for term in QUESTION_MOOD_TERMS):
            return True
    return False


class DecisionController:
    """Applies the P1-P5 rule chain and resolves references from context"""

    def __init__(
        self,
        conflict_predicate: Optional[ConflictPredicate] = None,
        canonicalize: Optional[Callable[[str], str]] = None,
    ):
        self.conflict_predicate = conflict_predicate or default_conflict_predicate
        self.canonicalize = canonicalize or (lambda intent: intent)
        self.rules = self._build_rules()

    def _build_rules(self) -> List[DecisionRule]:
        return [
            DecisionRule(
                name="P1",
                description="Mood conflict: affect signal contradicts an action intent",
                predicate=lambda r, a, c: bool(a.evidence.mood_indicators) and self.conflict_predicate(r, a),
                outcome="ai",
            ),
            DecisionRule(
                name="P2",
                description="Temporal clues present",
                predicate=lambda r, a, c: bool(a.evidence.temporal_clues),
                outcome="ai",
            ),
            DecisionRule(
                name="P3",
                description="AI reasoning complete and confident",
                predicate=lambda r, a, c: a.reasoning_chain.is_complete
                and a.confidence.overall >= c.ai_confidence_threshold,
                outcome="ai",
            ),
            DecisionRule(
                name="P4",
                description="Strong pattern match",
                predicate=lambda r, a, c: r.match_details.pattern_strength >= c.regex_strength_threshold,
                outcome="regex",
            ),
            DecisionRule(
                name="P5",
                description="Default: trust AI unless its confidence is below the fallback threshold",
                predicate=lambda r, a, c: True,
                outcome="ai_or_fallback",
            ),
        ]

    def decide(
        self,
        regex_result: RegexAnalysisResult,
        ai_result: AIAnalysisResult,
        context: Any = None,
        config: Optional[DecisionConfig] = None,
    ) -> SemanticDecisionResult:
        """Pick one final decision. Exactly one rule fires."""
        config = config or DecisionConfig.from_settings()
        start = time.perf_counter()
        trace: Optional[List[Dict[str, Any]]] = [] if config.debug else None

        for rule in self.rules:
            matched = rule.predicate(regex_result, ai_result, config)
            if trace is not None:
                trace.append({"rule": rule.name, "description": rule.description, "matched": matched})
            if matched:
                result = self._apply(rule, regex_result, ai_result, config)
                break
        else:
            # P5 always matches
            raise RuntimeError("Decision rule chain produced no decision")

        if result.source != "fallback":
            result.resolved_from_context = self._resolve_references(result, regex_result.text, context)

        elapsed_ms = round((time.perf_counter() - start) * 1000, 3)
        result.execution_time_ms = elapsed_ms
        if trace is not None:
            result.debug_info = {
                "regex_result": regex_result.to_dict(),
                "ai_result": ai_result.to_dict(),
                "rule_trace": trace,
                "config": config.to_dict(),
                "elapsed_ms": elapsed_ms,
            }

        logger.info(
            f"Decision {result.used_rule}: intent={result.final_intent}, source={result.source}, "
            f"confidence={result.confidence:.2f}"
        )
        return result

    def _apply(
        self,
        rule: DecisionRule,
        regex_result: RegexAnalysisResult,
        ai_result: AIAnalysisResult,
        config: DecisionConfig,
    ) -> SemanticDecisionResult:
        if rule.outcome == "regex":
            return SemanticDecisionResult(
                final_intent=regex_result.intent,
                source="regex",
                reason=f"{rule.description} (strength {regex_result.pattern_strength:.2f})",
                used_rule=rule.name,
                confidence=_clamp(regex_result.pattern_strength),
                entities=_pick_entities(regex_result.entities, ai_result.entities),
            )

        overall = ai_result.confidence.overall
        if rule.outcome == "ai_or_fallback" and overall < config.fallback_threshold:
            reason = f"AI confidence {overall:.2f} below fallback threshold {config.fallback_threshold:.2f}"
            if ai_result.error:
                reason += f" (analyzer {ai_result.error})"
            return SemanticDecisionResult(
                final_intent=UNKNOWN_INTENT,
                source="fallback",
                reason=reason,
                used_rule=rule.name,
                confidence=0.0,
                entities=_pick_entities(ai_result.entities, regex_result.entities),
                suggestion=FALLBACK_SUGGESTION,
            )

        return SemanticDecisionResult(
            final_intent=ai_result.intent,
            source="ai",
            reason=f"{rule.description} (AI confidence {overall:.2f})",
            used_rule=rule.name,
            confidence=_clamp(overall),
            entities=_pick_entities(ai_result.entities, regex_result.entities),
        )

    def _resolve_references(self, result: SemanticDecisionResult, text: str, context: Any) -> List[str]:
        """Fill a missing course/student from the most recently mentioned one"""
        mentioned = getattr(context, "mentioned_entities", None)
        if not mentioned:
            return []

        has_marker = bool(REFERENCE_MARKERS.search(text or ""))
        needs_subject = self.canonicalize(result.final_intent) in SUBJECT_INTENTS
        if not (has_marker or needs_subject):
            return []

        resolved = []
        for key, bucket in CONTEXT_ENTITY_KEYS.items():
            if result.entities.get(key):
                continue
            recent = mentioned.get(bucket) or []
            if recent:
                result.entities[key] = recent[-1]
                resolved.append(key)

        if resolved:
            logger.info(f"Resolved {resolved} from conversation context")
        return resolved


def _pick_entities(primary: Dict[str, Any], secondary: Dict[str, Any]) -> Dict[str, Any]:
    return dict(primary) if primary else dict(secondary or {})


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, float(value)))
