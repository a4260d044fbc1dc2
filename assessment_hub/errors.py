"""Application errors carrying an HTTP status and a machine-readable code.

Services raise these; ``main`` renders them as ``{"detail": ..., "code": ...}``.
"""

from typing import Any, Dict, Optional


class ErrorCode:
    NOT_FOUND = "NOT_FOUND"
    FORBIDDEN = "FORBIDDEN"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    CONFLICT = "CONFLICT"
    TEST_ALREADY_COMPLETED = "TEST_ALREADY_COMPLETED"
    SESSION_CLOSED = "SESSION_CLOSED"
    EMPTY_CODE = "EMPTY_CODE"
    EXECUTION_UNAVAILABLE = "EXECUTION_UNAVAILABLE"


class AppError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, extra: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.extra = extra or {}

    def to_dict(self) -> Dict[str, Any]:
        body = {"detail": self.message, "code": self.code}
        body.update(self.extra)
        return body


class NotFoundError(AppError):
    status_code = 404
    code = ErrorCode.NOT_FOUND

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        super().__init__(message, {"resource": resource, "id": resource_id})


class ForbiddenError(AppError):
    status_code = 403
    code = ErrorCode.FORBIDDEN

    def __init__(self, message: str = "Forbidden"):
        super().__init__(message)


class ValidationFailed(AppError):
    status_code = 400
    code = ErrorCode.VALIDATION_ERROR


class ConflictError(AppError):
    status_code = 409
    code = ErrorCode.CONFLICT


class TestAlreadyCompletedError(AppError):
    """Raised when a user asks for a new session on a test they may not retake."""

    __test__ = False  # not a pytest test class
    status_code = 403
    code = ErrorCode.TEST_ALREADY_COMPLETED

    def __init__(self, completed_at=None, score: Optional[int] = None):
        super().__init__(
            "Test already completed. Retaking tests is not allowed.",
            {
                "completedAt": completed_at.isoformat() if completed_at else None,
                "score": score,
            },
        )


class SessionClosedError(AppError):
    status_code = 409
    code = ErrorCode.SESSION_CLOSED

    def __init__(self, session_id: int, status: str):
        super().__init__(
            f"Session {session_id} is {status} and no longer accepts changes",
            {"status": status},
        )


class EmptyCodeError(AppError):
    status_code = 400
    code = ErrorCode.EMPTY_CODE

    def __init__(self):
        super().__init__("Please write your solution before running the code.")


class ExecutionUnavailableError(AppError):
    status_code = 501
    code = ErrorCode.EXECUTION_UNAVAILABLE
