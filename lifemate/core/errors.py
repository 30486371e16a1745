# lifemate/core/errors.py
"""
Failure taxonomy shared by services and routes.

Services raise these; `lifemate.main` renders them as
`{"success": false, "message": ..., "errors": [...]}` with `status_code`.
"""
from typing import Any, Dict, List, Optional


class AppError(Exception):
    status_code: int = 500
    code: str = "INTERNAL"
    default_message: str = "Something went wrong. Please try again."

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {"success": False, "message": self.message, "code": self.code}


class ValidationFailedError(AppError):
    status_code = 400
    code = "VALIDATION_FAILED"
    default_message = "Validation failed"

    def __init__(self, message: Optional[str] = None, errors: Optional[List[Dict[str, str]]] = None):
        super().__init__(message)
        self.errors = errors or []

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationFailedError":
        return cls(message, errors=[{"field": field, "message": message}])

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        if self.errors:
            out["errors"] = self.errors
        return out


class AlreadyExistsError(AppError):
    status_code = 409
    code = "ALREADY_EXISTS"
    default_message = "Resource already exists."


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Resource not found."


class UnauthorizedError(AppError):
    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "Unauthorized."


class ExpiredTokenError(UnauthorizedError):
    code = "EXPIRED_TOKEN"
    default_message = "Token has expired."


class InvalidTokenError(UnauthorizedError):
    code = "INVALID_TOKEN"
    default_message = "Invalid token."


class ForbiddenError(AppError):
    status_code = 403
    code = "FORBIDDEN"
    default_message = "Access denied."


class RateLimitedError(AppError):
    status_code = 429
    code = "RATE_LIMITED"

    def __init__(self, retry_after_seconds: int, message: Optional[str] = None):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(message or f"Please wait {retry_after_seconds} seconds before requesting a new OTP.")

    def to_dict(self) -> Dict[str, Any]:
        out = super().to_dict()
        out["retry_after_seconds"] = self.retry_after_seconds
        return out


class UpstreamDeliveryError(AppError):
    status_code = 502
    code = "UPSTREAM_DELIVERY_FAILURE"
    default_message = "Email service authentication failed. Please verify EMAIL_USER/EMAIL_PASS configuration."


class InternalError(AppError):
    pass
