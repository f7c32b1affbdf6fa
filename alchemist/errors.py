# alchemist/errors.py
from __future__ import annotations


class AlchemistError(Exception):
    """Base error. `code` and `status` drive the JSON error response."""
    code = "server_error"
    status = 500

    def __init__(self, message: str = "Something went wrong on our side. Please try again.", *, cause: Exception | None = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message}


class ValidationError(AlchemistError):
    code = "bad_request"
    status = 400


class UploadError(AlchemistError):
    code = "upload_failed"
    status = 502


class AuthError(AlchemistError):
    code = "unauthorized"
    status = 401


class NotFoundError(AlchemistError):
    code = "not_found"
    status = 404


class ExternalServiceError(AlchemistError):
    code = "external_service_error"
    status = 502
