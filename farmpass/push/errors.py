"""
Tool: Push Error Taxonomy
Purpose: Error codes shared by the push server and client

Every failure surfaced to a caller carries one ErrorCode. The kind of a
code decides how callers treat it:

    capability     terminal, never retried
    permission     terminal for the session, user must act outside the app
    configuration  deployment state, logged as a warning
    transient      safe for the caller to retry with backoff
    persistence    storage failure, logged with request context
    validation     malformed input

Usage:
    from farmpass.push.errors import ErrorCode, PushError
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """How a caller should treat an error."""

    CAPABILITY = "capability"
    PERMISSION = "permission"
    CONFIGURATION = "configuration"
    TRANSIENT = "transient"
    PERSISTENCE = "persistence"
    VALIDATION = "validation"
    CANCELLED = "cancelled"


class ErrorCode(str, Enum):
    """Stable error codes returned in results and JSON envelopes."""

    UNSUPPORTED_BROWSER = "UNSUPPORTED_BROWSER"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    VAPID_KEY_MISSING = "VAPID_KEY_MISSING"
    VAPID_KEY_NOT_CONFIGURED = "VAPID_KEY_NOT_CONFIGURED"
    WORKER_NOT_ACTIVE = "WORKER_NOT_ACTIVE"
    NETWORK_ERROR = "NETWORK_ERROR"
    SUBSCRIPTION_FAILED = "SUBSCRIPTION_FAILED"
    NO_EXISTING_SUBSCRIPTION = "NO_EXISTING_SUBSCRIPTION"
    CANCELLED = "CANCELLED"
    INVALID_SUBSCRIPTION_DATA = "INVALID_SUBSCRIPTION_DATA"
    SUBSCRIPTION_VALIDATION_FAILED = "SUBSCRIPTION_VALIDATION_FAILED"
    MISSING_ENDPOINT = "MISSING_ENDPOINT"
    SUBSCRIPTION_SAVE_FAILED = "SUBSCRIPTION_SAVE_FAILED"
    SUBSCRIPTION_FETCH_FAILED = "SUBSCRIPTION_FETCH_FAILED"
    SUBSCRIPTION_UNSUBSCRIBE_FAILED = "SUBSCRIPTION_UNSUBSCRIBE_FAILED"
    SUBSCRIPTION_CLEANUP_FAILED = "SUBSCRIPTION_CLEANUP_FAILED"
    VAPID_KEY_CREATE_FAILED = "VAPID_KEY_CREATE_FAILED"
    SETTINGS_SAVE_FAILED = "SETTINGS_SAVE_FAILED"
    INVALID_REQUEST = "INVALID_REQUEST"
    AUTH_REQUIRED = "AUTH_REQUIRED"
    ADMIN_REQUIRED = "ADMIN_REQUIRED"
    INTERNAL_ERROR = "INTERNAL_ERROR"

    @property
    def kind(self) -> ErrorKind:
        return _KINDS.get(self, ErrorKind.PERSISTENCE)

    @property
    def retryable(self) -> bool:
        return self.kind is ErrorKind.TRANSIENT


_KINDS = {
    ErrorCode.UNSUPPORTED_BROWSER: ErrorKind.CAPABILITY,
    ErrorCode.PERMISSION_DENIED: ErrorKind.PERMISSION,
    ErrorCode.VAPID_KEY_MISSING: ErrorKind.CONFIGURATION,
    ErrorCode.VAPID_KEY_NOT_CONFIGURED: ErrorKind.CONFIGURATION,
    ErrorCode.WORKER_NOT_ACTIVE: ErrorKind.TRANSIENT,
    ErrorCode.NETWORK_ERROR: ErrorKind.TRANSIENT,
    ErrorCode.SUBSCRIPTION_FAILED: ErrorKind.TRANSIENT,
    ErrorCode.NO_EXISTING_SUBSCRIPTION: ErrorKind.CAPABILITY,
    ErrorCode.CANCELLED: ErrorKind.CANCELLED,
    ErrorCode.INVALID_SUBSCRIPTION_DATA: ErrorKind.VALIDATION,
    ErrorCode.SUBSCRIPTION_VALIDATION_FAILED: ErrorKind.VALIDATION,
    ErrorCode.MISSING_ENDPOINT: ErrorKind.VALIDATION,
    ErrorCode.INVALID_REQUEST: ErrorKind.VALIDATION,
    ErrorCode.AUTH_REQUIRED: ErrorKind.PERMISSION,
    ErrorCode.ADMIN_REQUIRED: ErrorKind.PERMISSION,
}


class PushError(Exception):
    """Base error for the push server. Rendered as a JSON envelope by the API."""

    status_code = 500

    def __init__(
        self,
        code: ErrorCode,
        message: str | None = None,
        status_code: int | None = None,
        details: list[str] | None = None,
    ):
        self.code = code
        self.message = message or code.value
        self.details = details
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "success": False,
            "error": self.code.value,
            "message": self.message,
        }
        if self.details:
            body["details"] = self.details
        return body


class VapidKeyNotConfiguredError(PushError):
    """Neither a stored key pair nor process configuration provides a key."""

    def __init__(self, message: str = "VAPID keys are not configured"):
        super().__init__(ErrorCode.VAPID_KEY_NOT_CONFIGURED, message, status_code=500)


class SubscriptionValidationError(PushError):
    """Subscription payload failed integrity checks."""

    def __init__(self, errors: list[str]):
        super().__init__(
            ErrorCode.SUBSCRIPTION_VALIDATION_FAILED,
            "Subscription data failed validation",
            status_code=400,
            details=errors,
        )


class PersistenceError(PushError):
    """A storage operation failed. The raw cause is kept for diagnostics only."""

    def __init__(self, code: ErrorCode, message: str = "Server error while saving push data"):
        super().__init__(code, message, status_code=500)
