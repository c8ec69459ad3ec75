"""
Semantic normalizer: maps intent and entity vocabularies from either analyzer
onto the canonical schema.

Intent resolution order:
    1. precomputed direct table (canonical names + direct Chinese labels)
    2. lookup cache
    3. fuzzy cache
    4. alias table (legacy names, script variants) -> memoized in lookup cache
    5. approximate matching: edit distance, weighted keywords, semantic
       clusters -> memoized in fuzzy cache

Unmapped intents pass through unchanged with mapping_source "none".
"""
import logging
import time
from dataclasses import asdict, dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple

from coursebot.config.semantic_mappings import (
    CANONICAL_INTENTS,
    COMMON_COURSE_NAMES,
    DEFAULT_FUZZY_CONFIG,
    ENTITY_KEY_MAPPINGS,
    GENERIC_VALUES,
    INTENT_ALIASES,
    INTENT_LABELS,
    KEYWORD_WEIGHTS,
    SEMANTIC_CLUSTERS,
    VALUE_TABLES,
)
from coursebot.core.config import settings
from coursebot.core.exceptions import ConfigurationError, UnmappedIntentError
from coursebot.services.normalizer_cache import FUZZY_TIER, LOOKUP_TIER, NormalizerCache

logger = logging.getLogger(__name__)

# Higher is more authoritative
MAPPING_PRIORITY = {
    "precomputed_direct": 5,
    "alias": 4,
    "fuzzy": 3,
    "keyword": 2,
    "cluster": 1,
    "none": 0,
}

_INTENT_PREFIX = "intent:"
_ENTITY_KEY_PREFIX = "entity_key:"
_COURSE_VALUE_PREFIX = "course_name:"


@dataclass
class IntentMappingResult:
    """Outcome of mapping one raw intent"""

    original_intent: str
    mapped_intent: str
    mapping_source: str
    confidence: float = 1.0
    cached: bool = False

    @property
    def mapped(self) -> bool:
        return self.mapping_source != "none"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class EntityMappingResult:
    """Outcome of mapping an entity map"""

    mapped_entities: Dict[str, Any] = field(default_factory=dict)
    key_mappings: Dict[str, str] = field(default_factory=dict)
    unmapped_keys: List[str] = field(default_factory=list)
    values_mapped: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class NormalizationResult:
    intent: IntentMappingResult
    entities: EntityMappingResult

    def to_dict(self) -> Dict[str, Any]:
        return {"intent": self.intent.to_dict(), "entities": self.entities.to_dict()}


def levenshtein_distance(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + (ca != cb)))
        previous = current
    return previous[-1]


def string_similarity(a: str, b: str) -> float:
    """1 - edit distance / length of the longer string"""
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0
    return 1.0 - levenshtein_distance(a, b) / max(len(a), len(b))


class SemanticNormalizer:
    """Canonicalizes intents and entities under a multi-tier cache"""

    def __init__(
        self,
        max_cache_size: Optional[int] = None,
        strict_mode: Optional[bool] = None,
        log_unmapped: Optional[bool] = None,
        fuzzy_config: Optional[Dict[str, Any]] = None,
    ):
        self.strict_mode = settings.strict_mode if strict_mode is None else strict_mode
        self.log_unmapped = settings.log_unmapped if log_unmapped is None else log_unmapped
        self.fuzzy_config = dict(DEFAULT_FUZZY_CONFIG)
        if fuzzy_config:
            self._validate_fuzzy_config(fuzzy_config)
            self.fuzzy_config.update(fuzzy_config)

        self.cache = NormalizerCache(max_cache_size or settings.normalizer_max_cache_size)
        self._known_labels = self._load_known_labels()
        self._canonical_entity_keys = set(ENTITY_KEY_MAPPINGS.values())
        self.cache.load_precomputed(self._build_precomputed())

        logger.info(
            f"Semantic normalizer initialized: strict_mode={self.strict_mode}, "
            f"max_cache_size={self.cache.max_size}"
        )

    def _build_precomputed(self) -> Dict[str, Any]:
        precomputed: Dict[str, Any] = {}
        for intent in CANONICAL_INTENTS:
            precomputed[f"{_INTENT_PREFIX}{intent}"] = intent
        for label, intent in INTENT_LABELS.items():
            precomputed[f"{_INTENT_PREFIX}{label.lower()}"] = intent
        for key, canonical in ENTITY_KEY_MAPPINGS.items():
            precomputed[f"{_ENTITY_KEY_PREFIX}{key.lower()}"] = canonical
        for canonical in set(ENTITY_KEY_MAPPINGS.values()):
            precomputed[f"{_ENTITY_KEY_PREFIX}{canonical}"] = canonical
        return precomputed

    def _load_known_labels(self) -> Dict[str, str]:
        """Every label fuzzy matching may land on, lowercased"""
        labels = {intent: intent for intent in CANONICAL_INTENTS if intent != "unknown"}
        labels.update({k.lower(): v for k, v in INTENT_LABELS.items()})
        labels.update({k.lower(): v for k, v in INTENT_ALIASES.items()})
        return labels

    # ==================== intents ====================

    def normalize_intent(
        self, raw_intent: Any, strict_mode: Optional[bool] = None, log_unmapped: Optional[bool] = None
    ) -> IntentMappingResult:
        """
        Map a raw intent label onto the canonical vocabulary.

        Raises:
            UnmappedIntentError: In strict mode, when no tier resolves the label
        """
        strict = self.strict_mode if strict_mode is None else strict_mode
        warn = self.log_unmapped if log_unmapped is None else log_unmapped

        original = raw_intent.strip() if isinstance(raw_intent, str) else ""
        original = original or "unknown"
        key = original.lower()
        start = time.perf_counter()

        cache_key = f"{_INTENT_PREFIX}{key}"

        result, outcome = self._cached_intent(original, cache_key)
        if result is None:
            result = self._resolve_intent(original, key, cache_key)
            outcome = "miss"

        self.cache.record(outcome, (time.perf_counter() - start) * 1000)

        if not result.mapped:
            if strict:
                raise UnmappedIntentError(original)
            if warn:
                logger.warning(f"Unmapped intent '{original}' passed through unchanged")
        return result

    def _cached_intent(self, original: str, cache_key: str) -> Tuple[Optional[IntentMappingResult], str]:
        with self.cache.lock:
            direct = self.cache.get_precomputed(cache_key)
            if direct is not None:
                return IntentMappingResult(original, direct, "precomputed_direct", 1.0), "precomputed"

            for tier in (LOOKUP_TIER, FUZZY_TIER):
                hit = self.cache.get(tier, cache_key)
                if hit is not None:
                    return replace(hit, original_intent=original, cached=True), tier
        return None, "miss"

    def _resolve_intent(self, original: str, key: str, cache_key: str) -> IntentMappingResult:
        alias = INTENT_ALIASES.get(original) or INTENT_ALIASES.get(key)
        if alias:
            result = IntentMappingResult(original, alias, "alias", 1.0)
            self.cache.put(LOOKUP_TIER, cache_key, result)
            return result

        result = (
            self._fuzzy_intent_match(original, key)
            or self._keyword_intent_match(original)
            or self._cluster_intent_match(original)
            or IntentMappingResult(original, original, "none", 0.0)
        )
        self.cache.put(FUZZY_TIER, cache_key, result)
        if result.mapped:
            logger.debug(f"Intent '{original}' -> '{result.mapped_intent}' via {result.mapping_source}")
        return result

    def _fuzzy_intent_match(self, original: str, key: str) -> Optional[IntentMappingResult]:
        threshold = self.fuzzy_config["intent_similarity_threshold"]
        best_label, best_score = None, 0.0
        for label in self._known_labels:
            score = string_similarity(key, label)
            if score >= threshold and score > best_score:
                best_label, best_score = label, score
        if best_label is None:
            return None
        return IntentMappingResult(original, self._known_labels[best_label], "fuzzy", round(best_score, 4))

    def _keyword_intent_match(self, original: str) -> Optional[IntentMappingResult]:
        if not self.fuzzy_config["enable_keyword_matching"]:
            return None
        scores: Dict[str, float] = {}
        for keyword, info in KEYWORD_WEIGHTS.items():
            if keyword in original:
                scores[info["intent"]] = scores.get(info["intent"], 0.0) + info["weight"]
        if not scores:
            return None
        intent = max(scores, key=scores.get)
        if scores[intent] < self.fuzzy_config["keyword_match_threshold"]:
            return None
        return IntentMappingResult(original, intent, "keyword", round(min(scores[intent], 1.0), 4))

    def _cluster_intent_match(self, original: str) -> Optional[IntentMappingResult]:
        if not self.fuzzy_config["enable_semantic_clustering"]:
            return None
        for cluster in SEMANTIC_CLUSTERS.values():
            if any(pattern in original for pattern in cluster["patterns"]):
                return IntentMappingResult(
                    original, cluster["intents"][0], "cluster", self.fuzzy_config["cluster_confidence"]
                )
        return None

    # ==================== entities ====================

    def normalize_entities(self, entities: Optional[Dict[str, Any]]) -> EntityMappingResult:
        """Map entity keys onto canonical names and normalize well-known values"""
        result = EntityMappingResult()
        if not entities:
            return result

        for raw_key, value in entities.items():
            if value is None or value == "":
                continue
            mapped_key = self._map_entity_key(str(raw_key))
            if mapped_key is None:
                mapped_key = str(raw_key)
                result.unmapped_keys.append(mapped_key)
            elif mapped_key != raw_key:
                result.key_mappings[str(raw_key)] = mapped_key

            if mapped_key in result.mapped_entities:
                continue

            normalized = self._normalize_value(mapped_key, value)
            if normalized != value:
                result.values_mapped += 1
            result.mapped_entities[mapped_key] = normalized

        return result

    def _map_entity_key(self, raw_key: str) -> Optional[str]:
        key = raw_key.strip()
        cache_key = f"{_ENTITY_KEY_PREFIX}{key.lower()}"

        with self.cache.lock:
            direct = self.cache.get_precomputed(cache_key)
            if direct is not None:
                return direct
            hit = self.cache.get(LOOKUP_TIER, cache_key)
            if hit is not None:
                return hit or None

        threshold = self.fuzzy_config["entity_similarity_threshold"]
        best, best_score = None, 0.0
        for label, canonical in ENTITY_KEY_MAPPINGS.items():
            score = string_similarity(key.lower(), label.lower())
            if score >= threshold and score > best_score:
                best, best_score = canonical, score

        # Empty string memoizes a miss
        self.cache.put(LOOKUP_TIER, cache_key, best or "")
        return best

    def _normalize_value(self, key: str, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        clean = value.strip()
        lowered = clean.lower()

        if key == "course_name":
            return self._normalize_course_name(clean)

        table = VALUE_TABLES.get(key)
        if table is not None:
            for candidate in (clean, lowered):
                if candidate in table:
                    return table[candidate]
            return clean

        return GENERIC_VALUES.get(clean, clean)

    def _normalize_course_name(self, name: str) -> str:
        lowered = name.lower()
        for candidate in (name, lowered):
            if candidate in COMMON_COURSE_NAMES:
                return COMMON_COURSE_NAMES[candidate]

        cache_key = f"{_COURSE_VALUE_PREFIX}{lowered}"
        hit = self.cache.get(FUZZY_TIER, cache_key)
        if hit is not None:
            return hit

        best, best_score = name, 0.0
        for known, canonical in COMMON_COURSE_NAMES.items():
            score = string_similarity(lowered, known.lower())
            if score > 0.8 and score > best_score:
                best, best_score = canonical, score
        self.cache.put(FUZZY_TIER, cache_key, best)
        return best

    # ==================== combined ====================

    def normalize(self, analysis_result: Any) -> NormalizationResult:
        """
        Normalize the intent and entities of an analysis or decision result.

        Accepts any object (or dict) exposing ``final_intent`` or ``intent``
        and ``entities``.
        """
        if isinstance(analysis_result, dict):
            raw_intent = analysis_result.get("final_intent", analysis_result.get("intent"))
            entities = analysis_result.get("entities") or {}
        else:
            raw_intent = getattr(analysis_result, "final_intent", None) or getattr(analysis_result, "intent", None)
            entities = getattr(analysis_result, "entities", None) or {}

        return NormalizationResult(
            intent=self.normalize_intent(raw_intent),
            entities=self.normalize_entities(entities),
        )

    # ==================== operations ====================

    def get_cache_stats(self) -> Dict[str, Any]:
        return self.cache.stats()

    def clear_cache(self):
        self.cache.clear()

    def initialize_cache_stats(self):
        self.cache.initialize_stats()

    def get_mapping_stats(self) -> Dict[str, Any]:
        """Sizes of the static vocabulary tables"""
        return {
            "canonical_intents": len(CANONICAL_INTENTS),
            "direct_intent_labels": len(INTENT_LABELS),
            "intent_aliases": len(INTENT_ALIASES),
            "keyword_weights": len(KEYWORD_WEIGHTS),
            "semantic_clusters": len(SEMANTIC_CLUSTERS),
            "entity_key_mappings": len(ENTITY_KEY_MAPPINGS),
            "value_tables": {name: len(table) for name, table in VALUE_TABLES.items()},
            "common_course_names": len(COMMON_COURSE_NAMES),
            "precomputed_mappings": self.cache.precomputed_size,
            "fuzzy_config": dict(self.fuzzy_config),
        }

    def update_fuzzy_config(self, **updates):
        """Change approximate-matching settings; memoized fuzzy results are dropped"""
        self._validate_fuzzy_config(updates)
        with self.cache.lock:
            self.fuzzy_config.update(updates)
            self.cache.clear_tier(FUZZY_TIER)
        logger.info(f"Fuzzy match config updated: {updates}")

    @staticmethod
    def _validate_fuzzy_config(updates: Dict[str, Any]):
        for name, value in updates.items():
            if name not in DEFAULT_FUZZY_CONFIG:
                raise ConfigurationError(f"Unknown fuzzy match option '{name}'")
            if name.endswith("_threshold") or name == "cluster_confidence":
                if isinstance(value, bool) or not isinstance(value, (int, float)) or not 0.0 <= value <= 1.0:
                    raise ConfigurationError(f"{name} must be a number in [0, 1], got {value!r}")


_semantic_normalizer: Optional[SemanticNormalizer] = None


def get_semantic_normalizer() -> SemanticNormalizer:
    """Get or create the shared normalizer"""
    global _semantic_normalizer
    if _semantic_normalizer is None:
        _semantic_normalizer = SemanticNormalizer()
    return _semantic_normalizer
