"""
Pattern Relay - Error Taxonomy
Structured failure reasons and the exception hierarchy shared by the engine.

Backend adapters report a FailureReason instead of a free-form message, so
retry decisions never depend on substring matching at the call site.
"""

from enum import Enum
from typing import Optional


class FailureReason(Enum):
    """Why a backend call failed."""
    CONNECTION_RESET = "connection_reset"
    ABORTED = "aborted"
    TIMEOUT = "timeout"
    RATE_LIMITED = "rate_limited"
    CONTEXT_LENGTH = "context_length"
    OVERLOADED = "overloaded"
    SERVER_ERROR = "server_error"
    AUTH = "auth_error"
    BAD_REQUEST = "bad_request"
    UNAVAILABLE = "unavailable"
    UNKNOWN = "unknown"


# Retried by the orchestration layer
TRANSIENT_REASONS = frozenset({
    FailureReason.CONNECTION_RESET,
    FailureReason.ABORTED,
    FailureReason.TIMEOUT,
    FailureReason.RATE_LIMITED,
})

# Never retried anywhere
FATAL_REASONS = frozenset({
    FailureReason.AUTH,
    FailureReason.BAD_REQUEST,
    FailureReason.CONTEXT_LENGTH,
})

# Eligible to move from the primary tier to the fallback tier
FAILOVER_REASONS = frozenset({
    FailureReason.TIMEOUT,
    FailureReason.CONNECTION_RESET,
    FailureReason.ABORTED,
    FailureReason.RATE_LIMITED,
    FailureReason.OVERLOADED,
    FailureReason.SERVER_ERROR,
    FailureReason.UNAVAILABLE,
})


class PatternRelayError(Exception):
    """Base class for all engine errors."""
    pass


class BackendError(PatternRelayError):
    """A generation backend call failed."""

    def __init__(self, reason: FailureReason, message: str = "", provider: Optional[str] = None):
        self.reason = reason
        self.provider = provider
        super().__init__(message or reason.value)


class TransientBackendError(BackendError):
    """Retryable failure: reset, abort, timeout, rate limit."""
    pass


class ContentTooLargeError(BackendError):
    """The backend context window was exceeded."""

    def __init__(self, message: str = "", provider: Optional[str] = None):
        super().__init__(FailureReason.CONTEXT_LENGTH, message, provider)


class FatalBackendError(BackendError):
    """Non-retryable backend failure."""
    pass


class PatternNotFoundError(PatternRelayError):
    """Pattern name is absent from the catalog and no fallback exists."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Pattern not found: {name}")


class PatternCatalogError(PatternRelayError):
    """The pattern catalog could not be loaded."""
    pass


class OperationInProgressError(PatternRelayError):
    """A pattern operation is already running for this user."""

    def __init__(self, user_id: str, operation: str = ""):
        self.user_id = user_id
        self.operation = operation
        super().__init__(f"Operation already in progress for {user_id}: {operation}")


class SessionStateMissing(PatternRelayError):
    """
    No session state for the user.

    Not a failure: the state expired or was never created, and the
    caller should offer to start over.
    """

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"No pattern session for {user_id}")


def backend_error_for(reason: FailureReason, message: str = "", provider: Optional[str] = None) -> BackendError:
    """
    Build the right BackendError subclass for a failure reason.

    Args:
        reason: Structured failure reason
        message: Human-readable detail
        provider: Provider name that failed

    Returns:
        TransientBackendError, ContentTooLargeError or FatalBackendError
    """
    if reason == FailureReason.CONTEXT_LENGTH:
        return ContentTooLargeError(message, provider)
    if reason in TRANSIENT_REASONS:
        return TransientBackendError(reason, message, provider)
    return FatalBackendError(reason, message, provider)


def classify_failure(error: Exception) -> FailureReason:
    """Map any exception to a FailureReason."""
    if isinstance(error, BackendError):
        return error.reason
    if isinstance(error, TimeoutError):
        return FailureReason.TIMEOUT
    if isinstance(error, ConnectionResetError):
        return FailureReason.CONNECTION_RESET
    if isinstance(error, ConnectionError):
        return FailureReason.UNAVAILABLE
    return FailureReason.UNKNOWN


def is_transient(error: Exception) -> bool:
    """Check if an error is retryable by the orchestration layer."""
    return classify_failure(error) in TRANSIENT_REASONS


_USER_MESSAGES = {
    FailureReason.CONNECTION_RESET: "The connection to the AI service was interrupted. Please try again.",
    FailureReason.ABORTED: "The request was aborted before it finished. Please try again.",
    FailureReason.TIMEOUT: "The AI service took too long to respond. Please try again, or try a shorter text.",
    FailureReason.RATE_LIMITED: "The AI service is receiving too many requests. Please wait a moment and try again.",
    FailureReason.CONTEXT_LENGTH: (
        "This content is too large to process in one go. "
        "Try browsing the input chunks and processing a single chunk instead."
    ),
    FailureReason.OVERLOADED: "The AI service is overloaded right now. Please try again shortly.",
    FailureReason.SERVER_ERROR: "The AI service returned an error. Please try again shortly.",
    FailureReason.AUTH: "The AI service rejected our credentials. Please contact the administrator.",
    FailureReason.BAD_REQUEST: "The AI service could not process this request.",
    FailureReason.UNAVAILABLE: "No AI service is reachable right now. Please try again later.",
    FailureReason.UNKNOWN: "An unexpected error occurred while processing your request.",
}


def describe_failure(error: Exception) -> str:
    """
    Produce a user-facing message for an error.

    Args:
        error: Any exception raised by the engine

    Returns:
        Message suitable for showing to the user
    """
    if isinstance(error, PatternNotFoundError):
        return f"The pattern '{error.name}' is not available."
    if isinstance(error, PatternCatalogError):
        return "Pattern processing is currently unavailable."
    if isinstance(error, OperationInProgressError):
        return "⏳ Still working on your previous request. Please wait for it to finish."
    if isinstance(error, SessionStateMissing):
        return "Your previous session has expired. Please send your text again to start over."
    return _USER_MESSAGES[classify_failure(error)]
