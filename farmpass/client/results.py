"""Typed results and the opt-in exception for client push flows."""

from dataclasses import dataclass
from typing import Any

from farmpass.push.errors import ErrorCode


@dataclass
class PushResult:
    """Outcome of a client push flow. Failures carry a stable error code."""

    success: bool
    error: ErrorCode | None = None
    message: str | None = None
    device_id: str | None = None
    subscription: dict[str, Any] | None = None
    created: bool | None = None

    @classmethod
    def fail(cls, code: ErrorCode, message: str | None = None) -> "PushResult":
        return cls(success=False, error=code, message=message or code.value)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success}
        if self.error:
            data["error"] = self.error.value
        if self.message:
            data["message"] = self.message
        if self.device_id:
            data["deviceId"] = self.device_id
        if self.created is not None:
            data["created"] = self.created
        return data


class PushClientError(Exception):
    """Raised instead of returning a failed PushResult when a caller opts in."""

    def __init__(self, code: ErrorCode, message: str | None = None):
        self.code = code
        self.message = message or code.value
        super().__init__(self.message)

    def to_result(self) -> PushResult:
        return PushResult.fail(self.code, self.message)
