"""Custom exception hierarchy for the suggestion engine."""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    NOT_CONFIGURED = "NOT_CONFIGURED"
    INVALID_API_KEY = "INVALID_API_KEY"
    RATE_LIMITED = "RATE_LIMITED"
    CONTEXT_TOO_LONG = "CONTEXT_TOO_LONG"
    PARSE_ERROR = "PARSE_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    FEATURE_DISABLED = "FEATURE_DISABLED"
    INVALID_INPUT = "INVALID_INPUT"


class ErrorFamily(str, Enum):
    """Coarse grouping the UI keys its messaging off."""

    CONFIGURATION = "configuration"
    TRANSIENT = "transient"
    PERMANENT = "permanent"


_RETRYABLE_BY_DEFAULT = {
    ErrorCode.RATE_LIMITED,
    ErrorCode.NETWORK_ERROR,
    ErrorCode.PARSE_ERROR,
}

_CONFIGURATION_CODES = {
    ErrorCode.NOT_CONFIGURED,
    ErrorCode.INVALID_API_KEY,
    ErrorCode.FEATURE_DISABLED,
}


class SuggestionEngineError(Exception):
    """Base exception for all suggestion engine errors."""


class ConfigurationError(SuggestionEngineError):
    """Error in system configuration."""


class AIError(SuggestionEngineError):
    """Error raised by the completion layer and everything built on it."""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        *,
        retryable: bool | None = None,
        retry_after_ms: int | None = None,
        cancelled: bool = False,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.retryable = code in _RETRYABLE_BY_DEFAULT if retryable is None else retryable
        self.retry_after_ms = retry_after_ms
        self.cancelled = cancelled

    @classmethod
    def cancelled_error(cls) -> AIError:
        return cls(ErrorCode.NETWORK_ERROR, "cancelled", retryable=False, cancelled=True)

    @property
    def family(self) -> ErrorFamily:
        if self.code in _CONFIGURATION_CODES:
            return ErrorFamily.CONFIGURATION
        if self.retryable:
            return ErrorFamily.TRANSIENT
        return ErrorFamily.PERMANENT

    def to_dict(self) -> dict:
        return {
            "code": self.code.value,
            "family": self.family.value,
            "message": self.message,
            "retryable": self.retryable,
            "retry_after_ms": self.retry_after_ms,
        }

    def __repr__(self) -> str:
        return f"AIError({self.code.value}, {self.message!r}, retryable={self.retryable})"
