# src/flowtask/api/errors.py

"""Structured error types raised by the persistence API adapters."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any


class FlowtaskError(RuntimeError):
    """Base error carrying a machine-readable code and details."""

    code = "FLOWTASK_ERROR"

    def __init__(self, message: str, details: Mapping[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: dict[str, Any] = dict(details or {})

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class ValidationError(FlowtaskError):
    """Input rejected before any optimistic mutation is applied."""

    code = "VALIDATION_ERROR"


class NotFoundError(FlowtaskError):
    code = "NOT_FOUND"


class AuthRequiredError(FlowtaskError):
    code = "AUTH_REQUIRED"


class ApiError(FlowtaskError):
    """Non-success response that does not map to a more specific error."""

    code = "API_ERROR"

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        details: Mapping[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details)
        self.status_code = status_code
        if status_code is not None:
            self.details.setdefault("status_code", status_code)


class TransportError(FlowtaskError):
    """Network-level failure (connection refused, timeout, ...)."""

    code = "TRANSPORT_ERROR"
