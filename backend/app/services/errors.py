"""
Typed failures raised by the approval engine.

Services raise these; they are never retried. The HTTP layer renders them as
{"success": false, "error": {...}} via the handler registered in main.py.
"""
from typing import Any, Optional


class ApprovalError(Exception):
    code = "approval_error"
    status_code = 400

    def __init__(self, message: str, *, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {"code": self.code, "message": self.message, "details": self.details}


class NotFoundError(ApprovalError):
    code = "not_found"
    status_code = 404


class InvalidTransitionError(ApprovalError):
    code = "invalid_transition"
    status_code = 409


class ValidationError(ApprovalError):
    code = "validation_error"
    status_code = 422


class AuthorizationError(ApprovalError):
    code = "forbidden"
    status_code = 403


class ConcurrencyError(ApprovalError):
    code = "concurrency_conflict"
    status_code = 409
