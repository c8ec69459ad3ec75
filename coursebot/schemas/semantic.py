"""
Pydantic schemas for the semantic engine: LLM response validation and API models
"""
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class DecisionSource(str, Enum):
    """Which analyzer the final decision was taken from"""

    ai = "ai"
    regex = "regex"
    fallback = "fallback"


# ==================== LLM response payload ====================


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value.strip() else []
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value if item is not None and str(item).strip()]
    raise ValueError(f"expected a list of strings, got {type(value).__name__}")


def _clamp_unit(value: Any) -> float:
    if value is None:
        return 0.0
    if isinstance(value, bool):
        raise ValueError("confidence must be numeric")
    score = float(value)
    if score != score:  # NaN
        return 0.0
    return max(0.0, min(1.0, score))


class EvidencePayload(BaseModel):
    """Linguistic evidence reported by the model"""

    temporal_clues: List[str] = Field(default_factory=list)
    mood_indicators: List[str] = Field(default_factory=list)
    action_verbs: List[str] = Field(default_factory=list)
    question_markers: List[str] = Field(default_factory=list)

    @field_validator("temporal_clues", "mood_indicators", "action_verbs", "question_markers", mode="before")
    @classmethod
    def coerce_list(cls, v):
        return _as_list(v)


class ReasoningChainPayload(BaseModel):
    """Up to five reasoning steps plus where the confidence came from"""

    step1: Optional[str] = None
    step2: Optional[str] = None
    step3: Optional[str] = None
    step4: Optional[str] = None
    step5: Optional[str] = None
    confidence_source: str = ""

    @field_validator("step1", "step2", "step3", "step4", "step5", mode="before")
    @classmethod
    def blank_step_is_missing(cls, v):
        if v is None:
            return None
        text = str(v).strip()
        return text or None

    @field_validator("confidence_source", mode="before")
    @classmethod
    def coerce_source(cls, v):
        return "" if v is None else str(v)


class ConfidencePayload(BaseModel):
    """Model-reported confidence scores, clamped to [0, 1]"""

    overall: float = 0.0
    intent_certainty: float = 0.0
    context_understanding: float = 0.0

    @field_validator("overall", "intent_certainty", "context_understanding", mode="before")
    @classmethod
    def clamp(cls, v):
        return _clamp_unit(v)


class AIAnalysisPayload(BaseModel):
    """Shape the LLM is instructed to return"""

    intent: str = "unknown"
    entities: Dict[str, Any] = Field(default_factory=dict)
    evidence: EvidencePayload = Field(default_factory=EvidencePayload)
    reasoning_chain: ReasoningChainPayload = Field(default_factory=ReasoningChainPayload)
    confidence: ConfidencePayload = Field(default_factory=ConfidencePayload)

    @field_validator("intent", mode="before")
    @classmethod
    def coerce_intent(cls, v):
        if v is None:
            return "unknown"
        text = str(v).strip()
        return text or "unknown"

    @field_validator("entities", mode="before")
    @classmethod
    def drop_empty_entities(cls, v):
        if v is None:
            return {}
        if not isinstance(v, dict):
            raise ValueError("entities must be an object")
        return {k: val for k, val in v.items() if val is not None and val != ""}


# ==================== API models ====================


class SemanticRouteRequest(BaseModel):
    """Request body for routing one user message"""

    text: str = Field(..., min_length=1, max_length=2000, description="Raw user message")
    user_id: str = Field(..., min_length=1, description="Opaque messaging-platform user id")
    conversation_history: Optional[List[Dict[str, Any]]] = Field(
        default=None, description="Recent turns; defaults to the stored conversation history"
    )
    config: Optional[Dict[str, Any]] = Field(default=None, description="Per-call decision config overrides")


class SemanticDecisionResponse(BaseModel):
    """Final decision for one message"""

    final_intent: str
    source: DecisionSource
    reason: str
    used_rule: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    suggestion: Optional[str] = None
    entities: Dict[str, Any] = Field(default_factory=dict)
    mapping_source: Optional[str] = None
    resolved_from_context: List[str] = Field(default_factory=list)
    execution_time_ms: float = 0.0
    debug_info: Optional[Dict[str, Any]] = None


class ConversationContextResponse(BaseModel):
    """Stored dialogue state for one user"""

    user_id: str
    context: Dict[str, Any]


class StatusResponse(BaseModel):
    """Generic acknowledgement"""

    status: str
    message: str
