"""
Error taxonomy for the semantic decision engine.

Analyzer and persistence failures are absorbed where they occur and turned
into low-confidence or empty results; only configuration problems (and
unmapped intents in strict mode) reach the caller.
"""
from typing import Optional


class SemanticEngineError(Exception):
    """Base class for all engine errors"""


class ConfigurationError(SemanticEngineError):
    """Missing or invalid credentials/configuration. Fatal, never retried."""


class AnalyzerError(SemanticEngineError):
    """Base class for AI analyzer failures that degrade to zero confidence"""


class AnalyzerTimeout(AnalyzerError):
    """The LLM collaborator did not answer within the configured timeout"""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"LLM completion exceeded {timeout:.1f}s timeout")


class AnalyzerParseError(AnalyzerError):
    """The LLM response could not be parsed into an AI analysis result"""

    def __init__(self, message: str, raw_content: Optional[str] = None):
        self.raw_content = raw_content
        super().__init__(message)


class LLMServiceError(AnalyzerError):
    """The LLM collaborator failed (network, quota, server error)"""


class UnmappedIntentError(SemanticEngineError):
    """Raised in strict mode when a raw intent has no canonical mapping"""

    def __init__(self, raw_intent: str):
        self.raw_intent = raw_intent
        super().__init__(f"No canonical mapping for intent '{raw_intent}'")


class ContextUnavailable(SemanticEngineError):
    """The key-value persistence collaborator is unreachable"""
