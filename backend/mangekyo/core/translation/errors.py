"""Typed translation errors.

Every failure that crosses a component boundary carries an ErrorKind so
callers can decide between retrying, falling back to another engine,
degrading, or surfacing the error.
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Kinds of translation failures."""

    RATE_LIMITED = "RATE_LIMITED"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    AUTH_INVALID = "AUTH_INVALID"
    UNSUPPORTED_LANGUAGE = "UNSUPPORTED_LANGUAGE"
    TEXT_TOO_LONG = "TEXT_TOO_LONG"
    CONTENT_FILTERED = "CONTENT_FILTERED"
    INVALID_REQUEST = "INVALID_REQUEST"  # malformed request rejected by the provider
    TIMEOUT = "TIMEOUT"
    SERVER_ERROR = "SERVER_ERROR"
    CACHE_UNAVAILABLE = "CACHE_UNAVAILABLE"  # non-fatal
    CONTEXT_CORRUPT = "CONTEXT_CORRUPT"  # non-fatal, resets the session
    CANCELLED = "CANCELLED"  # batch item skipped after cancellation

    @property
    def is_transient(self) -> bool:
        """Whether an engine call failing with this kind may be retried."""
        return self in TRANSIENT_KINDS


TRANSIENT_KINDS = frozenset(
    {ErrorKind.RATE_LIMITED, ErrorKind.TIMEOUT, ErrorKind.SERVER_ERROR}
)


class TranslationError(Exception):
    """Base class for all translation errors."""

    def __init__(
        self,
        message: str,
        kind: ErrorKind,
        engine: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.kind = kind
        self.engine = engine
        self.details = details or {}

    @property
    def is_transient(self) -> bool:
        return self.kind.is_transient

    def __str__(self) -> str:
        prefix = f"[{self.engine}] " if self.engine else ""
        return f"{prefix}{self.kind.value}: {self.message}"


class EngineError(TranslationError):
    """Error raised by a translation engine adapter."""

    def __init__(
        self,
        message: str,
        kind: ErrorKind,
        engine: Optional[str] = None,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, kind, engine=engine, details=details)
        self.status_code = status_code
        self.retry_after = retry_after


class QuotaDeniedError(TranslationError):
    """Raised when the entitlement collaborator refuses a translation."""

    def __init__(self, action: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            f"Entitlement denied for action '{action}'",
            ErrorKind.QUOTA_EXCEEDED,
            details=details,
        )
        self.action = action


class CacheUnavailableError(TranslationError):
    """Persistent cache store failure. Never fails a translation."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorKind.CACHE_UNAVAILABLE, details=details)


class ContextCorruptError(TranslationError):
    """Stored or in-memory session context could not be used."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, ErrorKind.CONTEXT_CORRUPT, details=details)
