"""Typed errors raised by identity resolution.

Every failure the resolver can report is an ``IdentityError`` carrying a
stable ``status_code`` and a human-readable ``message``. The HTTP adapter maps
them to responses; nothing else needs to inspect driver exceptions.
"""

from __future__ import annotations

from typing import Any


class IdentityError(Exception):
    """Base class for identity resolution failures."""

    status_code: int = 500
    title: str = "Error"

    def __init__(self, message: str, *, meta: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.meta = dict(meta or {})

    def to_public_dict(self, *, expose_message: bool = True) -> dict[str, Any]:
        """Render the error envelope returned to HTTP callers."""
        return {
            "error": self.title,
            "message": self.message if expose_message else "Something went wrong",
            "statusCode": self.status_code,
        }


class ValidationError(IdentityError):
    """Caller input is unusable (neither email nor phone number supplied)."""

    status_code = 400
    title = "Validation Error"


class TransientStoreError(IdentityError):
    """The store aborted the transaction due to a serialization conflict.

    Safe to retry the whole identify call.
    """

    status_code = 503
    title = "Service Unavailable"


class InternalInconsistency(IdentityError):
    """An identity graph violated its invariants after normalization.

    Signals a logic defect or a concurrency-control gap in the store. Never
    retried.
    """

    status_code = 500
    title = "Internal Server Error"
