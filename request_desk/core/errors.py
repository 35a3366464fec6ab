from __future__ import annotations


class AppError(Exception):
    """Base class for errors rendered as ``{"success": false, "error", "code"}``."""

    code = "internal_error"
    http_status = 500

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        http_status: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if http_status is not None:
            self.http_status = http_status

    def to_payload(self) -> dict[str, object]:
        return {"success": False, "error": self.message, "code": self.code}


class ValidationError(AppError):
    code = "validation_error"
    http_status = 400


class NotFoundError(AppError):
    code = "not_found"
    http_status = 404


class ConflictError(AppError):
    code = "conflict"
    http_status = 409


class AuthError(AppError):
    """Bad credentials (401) or an account that may not act (403)."""

    code = "auth_error"
    http_status = 401

    @classmethod
    def forbidden(cls, message: str, code: str = "forbidden") -> "AuthError":
        return cls(message, code=code, http_status=403)


class BackendUnavailableError(AppError):
    code = "backend_unavailable"
    http_status = 503


class InternalError(AppError):
    code = "internal_error"
    http_status = 500
