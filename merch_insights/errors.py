"""
Error Taxonomy

Exceptions raised at the edges of the engine. The recomputation pipeline
itself never raises; it reports skipped rules and computation gaps in its
result instead.
"""

from typing import Any, Dict, Optional


class InsightEngineError(Exception):
    """Base class for all engine errors"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "message": self.message,
            "details": self.details,
        }


class InputError(InsightEngineError):
    """Malformed or empty upload. Nothing is stored or computed."""


class ValidationError(InsightEngineError):
    """Invalid settings value or argument. Prior state is retained."""


class SyncError(InsightEngineError):
    """Remote persistence or restore failed. Local state is unaffected."""
