"""
LLM-backed analyzer: builds the analysis prompt, bounds the call with a timeout
and validates the structured response.
"""
import asyncio
import json
import logging
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from coursebot.core.config import settings
from coursebot.core.exceptions import (
    AnalyzerError,
    AnalyzerParseError,
    AnalyzerTimeout,
    ConfigurationError,
    LLMServiceError,
)
from coursebot.schemas.semantic import AIAnalysisPayload

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r"^```[a-zA-Z]*\s*(.*?)\s*```$", re.DOTALL)

ANALYSIS_INSTRUCTIONS = """你是課程管理助理的語意分析器。分析使用者訊息，判斷意圖並抽取實體。
You analyze messages sent to a course scheduling assistant.

可用意圖 (intent): record_course, create_recurring_course, modify_course, cancel_course,
stop_recurring_course, query_schedule, clear_schedule, set_reminder, record_lesson_content,
record_homework, upload_class_photo, query_course_content, modify_course_content,
correction_intent, confirm_action, cancel_action, unknown

Reply with a single JSON object and nothing else:
{
  "intent": "<intent>",
  "entities": {"course_name": "...", "student_name": "...", "date_phrase": "...", "time_phrase": "..."},
  "evidence": {
    "temporal_clues": ["時間線索原文"],
    "mood_indicators": ["語氣線索，例如疑問、猶豫、情緒"],
    "action_verbs": ["動作動詞原文"],
    "question_markers": ["嗎", "呢", "?" ...]
  },
  "reasoning_chain": {
    "step1": "辨識關鍵詞", "step2": "分析語氣", "step3": "結合對話上下文",
    "step4": "判斷意圖", "step5": "確認實體",
    "confidence_source": "信心來源"
  },
  "confidence": {"overall": 0.0, "intent_certainty": 0.0, "context_understanding": 0.0}
}
Use empty lists for evidence you did not find. Omit entities you cannot find.
Confidence values are between 0 and 1."""


@dataclass
class Evidence:
    """Linguistic evidence; empty list means none detected"""

    temporal_clues: List[str] = field(default_factory=list)
    mood_indicators: List[str] = field(default_factory=list)
    action_verbs: List[str] = field(default_factory=list)
    question_markers: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, List[str]]:
        return asdict(self)


@dataclass
class ReasoningChain:
    """Up to five reasoning steps reported by the model"""

    step1: Optional[str] = None
    step2: Optional[str] = None
    step3: Optional[str] = None
    step4: Optional[str] = None
    step5: Optional[str] = None
    confidence_source: str = ""

    @property
    def steps(self) -> List[Optional[str]]:
        return [self.step1, self.step2, self.step3, self.step4, self.step5]

    @property
    def step_count(self) -> int:
        return sum(1 for step in self.steps if step)

    @property
    def is_complete(self) -> bool:
        return self.step_count == 5

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class AIConfidence:
    """Model-reported scores in [0, 1]"""

    overall: float = 0.0
    intent_certainty: float = 0.0
    context_understanding: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass
class AIAnalysisResult:
    """Result of LLM analysis for one message"""

    intent: str = "unknown"
    entities: Dict[str, Any] = field(default_factory=dict)
    evidence: Evidence = field(default_factory=Evidence)
    reasoning_chain: ReasoningChain = field(default_factory=ReasoningChain)
    confidence: AIConfidence = field(default_factory=AIConfidence)
    error: Optional[str] = None  # "timeout" | "parse_error" | "service_error"
    kind: str = "ai"

    @classmethod
    def degraded(cls, error: str) -> "AIAnalysisResult":
        """Zero-confidence result used when the LLM call fails"""
        return cls(reasoning_chain=ReasoningChain(confidence_source=f"analyzer_{error}"), error=error)

    @classmethod
    def from_payload(cls, payload: AIAnalysisPayload) -> "AIAnalysisResult":
        return cls(
            intent=payload.intent,
            entities=dict(payload.entities),
            evidence=Evidence(**payload.evidence.model_dump()),
            reasoning_chain=ReasoningChain(**payload.reasoning_chain.model_dump()),
            confidence=AIConfidence(**payload.confidence.model_dump()),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "intent": self.intent,
            "entities": dict(self.entities),
            "evidence": self.evidence.to_dict(),
            "reasoning_chain": self.reasoning_chain.to_dict(),
            "confidence": self.confidence.to_dict(),
            "error": self.error,
        }


class AIAnalyzer:
    """Delegates language understanding to the LLM completion collaborator"""

    def __init__(self, llm_client: Any, timeout: Optional[float] = None, history_turns: Optional[int] = None):
        self.llm_client = llm_client
        self.timeout = timeout if timeout is not None else settings.ai_analyzer_timeout
        self.history_turns = history_turns if history_turns is not None else settings.ai_history_turns

    def build_prompt(self, text: str, history: Optional[List[Dict[str, Any]]] = None) -> str:
        """Instructions, then recent turns as JSON, then the message to analyze"""
        recent = list(history or [])[-self.history_turns :] if self.history_turns > 0 else []
        parts = [ANALYSIS_INSTRUCTIONS]
        if recent:
            parts.append("最近對話 (recent turns, oldest first):\n" + json.dumps(recent, ensure_ascii=False, default=str))
        parts.append(f"使用者訊息 (message): {text}")
        return "\n\n".join(parts)

    async def analyze(self, text: str, history: Optional[List[Dict[str, Any]]] = None) -> AIAnalysisResult:
        """
        Analyze one message with the LLM.

        Timeouts, service failures and unparseable responses degrade to a
        zero-confidence result. ConfigurationError propagates.
        """
        prompt = self.build_prompt(text, history)
        try:
            content = await self._complete(prompt)
            return self.parse_response(content)
        except AnalyzerTimeout as e:
            logger.warning(f"AI analysis timed out: {e}")
            return AIAnalysisResult.degraded("timeout")
        except AnalyzerParseError as e:
            raw = (e.raw_content or "")[:200]
            logger.warning(f"AI analysis response could not be parsed: {e} | raw: {raw}")
            return AIAnalysisResult.degraded("parse_error")
        except AnalyzerError as e:
            logger.error(f"AI analysis failed: {e}")
            return AIAnalysisResult.degraded("service_error")

    async def _complete(self, prompt: str) -> str:
        try:
            completion = await asyncio.wait_for(self.llm_client.complete(prompt, {"json_mode": True}), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise AnalyzerTimeout(self.timeout) from e
        except (ConfigurationError, AnalyzerError):
            raise
        except Exception as e:
            logger.error(f"Unexpected LLM client failure: {e}", exc_info=True)
            raise LLMServiceError(str(e)) from e
        return completion.content

    def parse_response(self, content: Optional[str]) -> AIAnalysisResult:
        """Strip code fences, parse JSON and validate the shape"""
        if not content or not content.strip():
            raise AnalyzerParseError("Empty response content", raw_content=content)

        cleaned = content.strip()
        fenced = _CODE_FENCE.match(cleaned)
        if fenced:
            cleaned = fenced.group(1)
        elif not cleaned.startswith("{"):
            start, end = cleaned.find("{"), cleaned.rfind("}")
            if start != -1 and end > start:
                cleaned = cleaned[start : end + 1]

        try:
            data = json.loads(cleaned)
        except json.JSONDecodeError as e:
            raise AnalyzerParseError(f"Invalid JSON: {e}", raw_content=content) from e

        if not isinstance(data, dict):
            raise AnalyzerParseError("Response JSON is not an object", raw_content=content)

        try:
            payload = AIAnalysisPayload.model_validate(data)
        except ValidationError as e:
            raise AnalyzerParseError(f"Response does not match analysis schema: {e.error_count()} errors", raw_content=content) from e

        return AIAnalysisResult.from_payload(payload)
