"""Exceptions raised by the billing services.

Routes translate them into HTTP responses through ``status_code``; batch and
repair operations collect them into their summary objects instead of raising.
"""

from __future__ import annotations

from typing import Any


class BillingError(Exception):
    status_code: int = 500
    error_code: str = "billing_error"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.error_code, "message": self.message, "context": self.context}


class NotFoundError(BillingError):
    status_code = 404
    error_code = "not_found"


class InvalidArgumentError(BillingError, ValueError):
    status_code = 400
    error_code = "invalid_argument"


class ConflictError(BillingError):
    status_code = 409
    error_code = "conflict"


class InconsistentError(BillingError):
    status_code = 500
    error_code = "inconsistent"
