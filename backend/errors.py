# errors.py — Domain error kinds raised by services and mapped to HTTP responses
#
# Every error carries a stable kind string that clients switch on:
#   not-authorized   unauthenticated caller or insufficient permission
#   not-found        referenced entity missing
#   validation-error malformed or business-rule-violating input
#   conflict         a concurrent write won the race (optimistic lock)
from typing import Optional

from fastapi import HTTPException, status


class DomainError(HTTPException):
    """Base class: an HTTPException that also names its error kind"""

    kind = "internal-error"
    status_code_default = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, reason: str, status_code: Optional[int] = None):
        super().__init__(status_code=status_code or self.status_code_default, detail=reason)
        self.reason = reason

    def to_dict(self) -> dict:
        return {"error": self.kind, "reason": self.reason}


class NotAuthorizedError(DomainError):
    kind = "not-authorized"
    status_code_default = status.HTTP_403_FORBIDDEN


class NotFoundError(DomainError):
    kind = "not-found"
    status_code_default = status.HTTP_404_NOT_FOUND


class ValidationFailedError(DomainError):
    kind = "validation-error"
    status_code_default = status.HTTP_400_BAD_REQUEST


class ConflictError(DomainError):
    kind = "conflict"
    status_code_default = status.HTTP_409_CONFLICT


# Catalogue of non-domain failures surfaced to callers
DATASTORE_UNAVAILABLE = {
    "error": "datastore-unavailable",
    "reason": "The datastore is temporarily unavailable",
    "http_status": 503,
}
INTERNAL_ERROR = {
    "error": "internal-error",
    "reason": "Internal server error",
    "http_status": 500,
}
CONCURRENT_MODIFICATION = "The record was modified by another request; reload and retry"
