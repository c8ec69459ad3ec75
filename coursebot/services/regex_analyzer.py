"""
Deterministic pattern analyzer for course-assistant messages.

Extracts an intent and a handful of basic entities from a single message using
a static, ordered rule table. The analyzer never looks at conversation history
or affect; that boundary is reported on every result through RegexLimitations.
"""
import logging
import re
from dataclasses import asdict, dataclass, field
from re import Pattern
from typing import Any, Dict, List, Optional, Tuple

from coursebot.config.intent_rules import DATE_PATTERNS, INTENT_RULES, KNOWN_SUBJECTS, TIME_PATTERNS

logger = logging.getLogger(__name__)

UNKNOWN_INTENT = "unknown"


@dataclass
class MatchDetails:
    """How the winning rule matched"""

    triggered_patterns: List[str] = field(default_factory=list)
    keyword_matches: List[str] = field(default_factory=list)
    ambiguous_terms: List[str] = field(default_factory=list)
    pattern_strength: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class RegexLimitations:
    """Capability boundary of the pattern analyzer; always all True"""

    context_blind: bool = True
    temporal_blind: bool = True
    mood_blind: bool = True

    def to_dict(self) -> Dict[str, bool]:
        return asdict(self)


@dataclass
class RegexAnalysisResult:
    """Result of pattern analysis for one message"""

    intent: str
    entities: Dict[str, Any]
    match_details: MatchDetails
    text: str = ""
    limitations: RegexLimitations = field(default_factory=RegexLimitations)
    kind: str = "regex"

    @property
    def pattern_strength(self) -> float:
        return self.match_details.pattern_strength

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "intent": self.intent,
            "entities": dict(self.entities),
            "match_details": self.match_details.to_dict(),
            "limitations": self.limitations.to_dict(),
            "text": self.text,
        }


@dataclass
class _CompiledRule:
    intent: str
    patterns: List[Pattern]
    keywords: List[str]
    ambiguous: List[str]
    exclusions: List[str]
    examples: List[str]


class PatternAnalyzer:
    """Rule-table driven intent and entity extraction"""

    def __init__(self, rules: Optional[List[Dict[str, Any]]] = None):
        self._rules = self._compile_rules(rules if rules is not None else INTENT_RULES)
        self._course_patterns = self._load_course_patterns()
        self._student_patterns = self._load_student_patterns()
        self._date_patterns = [re.compile(p, re.IGNORECASE) for p in DATE_PATTERNS]
        self._time_patterns = [re.compile(p, re.IGNORECASE) for p in TIME_PATTERNS]

        logger.info(f"Pattern analyzer initialized with {len(self._rules)} rules")

    def _compile_rules(self, rules: List[Dict[str, Any]]) -> List[_CompiledRule]:
        compiled = []
        for rule in rules:
            compiled.append(
                _CompiledRule(
                    intent=rule["intent"],
                    patterns=[re.compile(p, re.IGNORECASE) for p in rule.get("patterns", [])],
                    keywords=[k.lower() for k in rule.get("keywords", [])],
                    ambiguous=[a.lower() for a in rule.get("ambiguous", [])],
                    exclusions=[e.lower() for e in rule.get("exclusions", [])],
                    examples=list(rule.get("examples", [])),
                )
            )
        return compiled

    def _load_course_patterns(self) -> List[Pattern]:
        """Known subjects with an optional 課/班 suffix, and English '<x> class'"""
        subjects = sorted(KNOWN_SUBJECTS, key=len, reverse=True)
        return [
            re.compile(rf"((?:{'|'.join(map(re.escape, subjects))})(?:課|班)?)"),
            re.compile(
                r"\b(?!(?:my|the|a|an|this|that|next|your|his|her|our|their)\b)([a-z]+) (?:class|lesson)\b",
                re.IGNORECASE,
            ),
        ]

    def _load_student_patterns(self) -> List[Pattern]:
        return [
            # 小明, 小華; not 小時, grade labels (小一..小六) or 小提琴
            re.compile(r"(小(?![時提孩朋心一二三四五六])[\u4e00-\u9fff])"),
            re.compile(r"\b([A-Z][a-z]+)'s\b"),
            re.compile(r"\b(?:for|with) ([A-Z][a-z]+)\b"),
        ]

    def analyze(self, text: Any) -> RegexAnalysisResult:
        """Analyze one message. Never raises; unmatched input yields intent 'unknown'."""
        if not isinstance(text, str):
            text = ""
        stripped = text.strip()
        if not stripped:
            return self._unmatched(text)

        lowered = stripped.lower()
        best: Optional[Tuple[int, int, _CompiledRule, List[str]]] = None

        for order, rule in enumerate(self._rules):
            if any(exclusion in lowered for exclusion in rule.exclusions):
                continue

            triggered = []
            longest = 0
            for pattern in rule.patterns:
                span = self._longest_span(pattern, stripped)
                if span > 0:
                    triggered.append(pattern.pattern)
                    longest = max(longest, span)

            if not triggered:
                continue
            # Strictly longer span replaces; equal spans keep the earlier rule
            if best is None or longest > best[0]:
                best = (longest, order, rule, triggered)

        if best is None:
            return self._unmatched(text)

        longest, _, rule, triggered = best
        keyword_matches = [k for k in rule.keywords if k in lowered]
        ambiguous_terms = [a for a in rule.ambiguous if a in lowered and not any(a in k for k in keyword_matches)]
        strength = self._pattern_strength(
            span=longest,
            text_length=len(stripped),
            keyword_hits=len(keyword_matches),
            extra_pattern_hits=len(triggered) - 1,
            ambiguous=bool(ambiguous_terms),
        )

        return RegexAnalysisResult(
            intent=rule.intent,
            entities=self._extract_entities(stripped),
            match_details=MatchDetails(
                triggered_patterns=triggered,
                keyword_matches=keyword_matches,
                ambiguous_terms=ambiguous_terms,
                pattern_strength=strength,
            ),
            text=text,
        )

    def _unmatched(self, text: str) -> RegexAnalysisResult:
        return RegexAnalysisResult(
            intent=UNKNOWN_INTENT,
            entities={},
            match_details=MatchDetails(),
            text=text,
        )

    @staticmethod
    def _longest_span(pattern: Pattern, text: str) -> int:
        longest = 0
        for match in pattern.finditer(text):
            longest = max(longest, len(match.group(0).strip()))
        return longest

    @staticmethod
    def _pattern_strength(
        span: int, text_length: int, keyword_hits: int, extra_pattern_hits: int, ambiguous: bool
    ) -> float:
        """
        Specificity of a match in [0, 1].

        Grows with the share of the message covered by the matched span, with
        keyword hits (up to 3) and additional matching patterns (up to 2).
        An ambiguous term without a stronger keyword around it costs 0.2.
        """
        coverage = min(span / text_length, 1.0) if text_length else 0.0
        strength = 0.35 + 0.5 * coverage + 0.05 * min(keyword_hits, 3) + 0.05 * min(max(extra_pattern_hits, 0), 2)
        if ambiguous:
            strength -= 0.2
        return round(max(0.0, min(1.0, strength)), 4)

    def _extract_entities(self, text: str) -> Dict[str, Any]:
        """Extract course, student, date and time phrases"""
        entities: Dict[str, Any] = {}

        course = self._first_match(self._course_patterns, text)
        if course:
            entities["course_name"] = course

        student = self._first_match(self._student_patterns, text)
        if student:
            entities["student_name"] = student

        date_phrase = self._first_match(self._date_patterns, text)
        if date_phrase:
            entities["date_phrase"] = date_phrase

        time_phrase = self._first_match(self._time_patterns, text)
        if time_phrase:
            entities["time_phrase"] = time_phrase.replace(" ", "")

        return entities

    @staticmethod
    def _first_match(patterns: List[Pattern], text: str) -> Optional[str]:
        """First capture group of the first pattern that matches"""
        for pattern in patterns:
            match = pattern.search(text)
            if match and match.group(1):
                return match.group(1).strip()
        return None

    def supported_intents(self) -> List[str]:
        """Intents the rule table can produce, in declaration order"""
        seen = []
        for rule in self._rules:
            if rule.intent not in seen:
                seen.append(rule.intent)
        return seen

    def examples(self, intent: str) -> List[str]:
        for rule in self._rules:
            if rule.intent == intent:
                return list(rule.examples)
        return []


# Global pattern analyzer instance
pattern_analyzer = PatternAnalyzer()
