"""Error Hierarchy — typed, categorized exceptions for all Attune failure modes.

Invariants:
    - Every error has a code (str), category (ErrorCategory), severity (ErrorSeverity)
    - Domain errors (4xx) report caller-side ordering bugs; infrastructure errors (5xx) are critical
    - to_response() produces the REST envelope
    - No internal details leaked in user-facing messages

Design Decisions:
    - Single hierarchy with AttuneError base: FastAPI global handler catches all (ADR: uniform error shape)
    - ErrorContext as dataclass: rich observability without coupling to logging framework
    - TerminalStateViolationError is CRITICAL: it signals a lifecycle bug, callers must not suppress it
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from datetime import datetime, timezone


class ErrorSeverity(str, Enum):
    """Error severity for observability and client handling."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ErrorCategory(str, Enum):
    """High-level error categories for routing and handling."""
    VALIDATION = "validation"
    BUSINESS_RULE = "business_rule"
    RESOURCE_NOT_FOUND = "resource_not_found"
    FORBIDDEN = "forbidden"
    DATABASE = "database"
    EXTERNAL_API = "external_api"
    INTERNAL = "internal"
    CONFLICT = "conflict"


@dataclass
class ErrorContext:
    """Rich context for error observability and debugging."""
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    session_id: str | None = None
    user_id: str | None = None
    stage: int | None = None
    direction: str | None = None
    debug_info: dict[str, Any] | None = None
    retry_after_ms: int | None = None


class AttuneError(Exception):
    """Base exception for all Attune errors."""

    def __init__(
        self,
        message: str,
        code: str,
        category: ErrorCategory,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: ErrorContext | None = None,
        http_status: int = 500,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.http_status = http_status

    def to_response(self) -> dict:
        """Convert to standardized REST error response."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "category": self.category.value,
                "severity": self.severity.value,
                "timestamp": self.context.timestamp.isoformat(),
                "context": {
                    "session_id": self.context.session_id,
                    "user_id": self.context.user_id,
                    "stage": self.context.stage,
                    "direction": self.context.direction,
                    "retry_after_ms": self.context.retry_after_ms,
                },
            }
        }


# ─── Domain Errors (4xx) ────────────────────────────────────────

class InvalidTransitionError(AttuneError):
    """State machine transition not allowed from the current state."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "INVALID_TRANSITION", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.ERROR, context, 409,
        )


class TerminalStateViolationError(AttuneError):
    """Attempted to move an empathy attempt out of REVEALED."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "TERMINAL_STATE_VIOLATION", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.CRITICAL, context, 409,
        )


class PreconditionNotMetError(AttuneError):
    """Operation triggered before its preconditions hold. Do not retry blindly."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "PRECONDITION_NOT_MET", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.ERROR, context, 409,
        )


class GatesNotSatisfiedError(AttuneError):
    """Stage gate prerequisites not met."""
    def __init__(self, missing_gates: list[str], context: ErrorContext | None = None):
        super().__init__(
            f"Missing required stage gates: {', '.join(missing_gates)}",
            "GATES_NOT_SATISFIED", ErrorCategory.BUSINESS_RULE,
            ErrorSeverity.ERROR, context, 400,
        )
        self.missing_gates = missing_gates


class UnknownGateError(AttuneError):
    """Gate key is not defined for the stage."""
    def __init__(self, message: str, field: str, context: ErrorContext | None = None):
        super().__init__(
            message, "UNKNOWN_GATE", ErrorCategory.VALIDATION,
            ErrorSeverity.ERROR, context, 400,
        )
        self.field = field


class NotSessionMemberError(AttuneError):
    """User is not one of the two session members."""
    def __init__(self, user_id: str, context: ErrorContext | None = None):
        super().__init__(
            f"User '{user_id}' is not a member of this session",
            "NOT_SESSION_MEMBER", ErrorCategory.FORBIDDEN,
            ErrorSeverity.ERROR, context, 403,
        )


class ResourceNotFoundError(AttuneError):
    """Requested resource does not exist."""
    def __init__(
        self, resource_type: str, resource_id: str, context: ErrorContext | None = None,
    ):
        super().__init__(
            f"{resource_type} '{resource_id}' not found",
            "RESOURCE_NOT_FOUND", ErrorCategory.RESOURCE_NOT_FOUND,
            ErrorSeverity.ERROR, context, 404,
        )


class ConcurrencyError(AttuneError):
    """Concurrent modification detected."""
    def __init__(self, message: str, context: ErrorContext | None = None):
        super().__init__(
            message, "CONCURRENCY_CONFLICT", ErrorCategory.CONFLICT,
            ErrorSeverity.ERROR, context, 409,
        )


# ─── Infrastructure Errors (5xx) ────────────────────────────────

class DatabaseError(AttuneError):
    """Database operation failed."""
    def __init__(self, message: str, operation: str, context: ErrorContext | None = None):
        super().__init__(
            f"Database {operation} failed: {message}",
            "DATABASE_ERROR", ErrorCategory.DATABASE,
            ErrorSeverity.CRITICAL, context, 503,
        )
        self.operation = operation


class AnthropicAPIError(AttuneError):
    """Anthropic API call failed."""
    def __init__(
        self,
        message: str,
        api_error_type: str,
        retry_after_ms: int | None = None,
        context: ErrorContext | None = None,
    ):
        ctx = context or ErrorContext()
        ctx.retry_after_ms = retry_after_ms
        super().__init__(
            f"Anthropic API error ({api_error_type}): {message}",
            "ANTHROPIC_API_ERROR", ErrorCategory.EXTERNAL_API,
            ErrorSeverity.CRITICAL, ctx, 503,
        )
        self.api_error_type = api_error_type
