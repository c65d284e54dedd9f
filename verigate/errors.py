"""
Error Taxonomy.

Only misconfiguration surfaces as a hard failure. Rate limits, blocks,
validation failures and suspicious patterns are returned as structured
results; internal errors are caught at the component boundary.
"""

from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    """Error and refusal codes carried by results and exceptions."""

    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    RATE_LIMIT_BLOCKED = "RATE_LIMIT_BLOCKED"
    MANUALLY_BLOCKED = "MANUALLY_BLOCKED"
    VALIDATION_FAILURE = "VALIDATION_FAILURE"
    SUSPICIOUS_PATTERN = "SUSPICIOUS_PATTERN"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    REVIEW_NOT_FOUND = "REVIEW_NOT_FOUND"
    INVALID_REVIEW_TRANSITION = "INVALID_REVIEW_TRANSITION"


class VeriGateError(Exception):
    """Base exception for VeriGate."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code.value,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(VeriGateError):
    """Invalid thresholds or limits, raised at construction time."""

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(
            message,
            code=ErrorCode.CONFIGURATION_ERROR,
            details={"field": field} if field else None,
        )
        self.field = field


class ReviewNotFoundError(VeriGateError):
    def __init__(self, review_id: str):
        super().__init__(
            f"Review {review_id} not found",
            code=ErrorCode.REVIEW_NOT_FOUND,
            details={"review_id": review_id},
        )


class InvalidReviewTransitionError(VeriGateError):
    """A reviewer tried to move an entry to a status it cannot reach."""

    def __init__(self, review_id: str, current: str, target: str):
        super().__init__(
            f"Review {review_id} cannot move from {current} to {target}",
            code=ErrorCode.INVALID_REVIEW_TRANSITION,
            details={"review_id": review_id, "current": current, "target": target},
        )


def require_unit_interval(name: str, value: float) -> float:
    """Raise ConfigurationError unless 0 <= value <= 1."""
    if not isinstance(value, (int, float)) or not 0.0 <= value <= 1.0:
        raise ConfigurationError(f"{name} must be between 0 and 1", field=name)
    return float(value)


def require_percentage(name: str, value: float) -> float:
    """Raise ConfigurationError unless 0 <= value <= 100."""
    if not isinstance(value, (int, float)) or not 0.0 <= value <= 100.0:
        raise ConfigurationError(f"{name} must be between 0 and 100", field=name)
    return float(value)


def require_positive(name: str, value: float) -> float:
    if not isinstance(value, (int, float)) or value <= 0:
        raise ConfigurationError(f"{name} must be positive", field=name)
    return value


def require_non_negative(name: str, value: float) -> float:
    if not isinstance(value, (int, float)) or value < 0:
        raise ConfigurationError(f"{name} must not be negative", field=name)
    return value
