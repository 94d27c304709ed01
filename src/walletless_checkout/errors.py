"""Exception hierarchy for checkout operations.

Each error carries the HTTP status the API layer renders it with, plus an
optional ``details`` dict merged into the JSON error body.
"""

from __future__ import annotations

from typing import Any


class CheckoutError(Exception):
    """Base exception for checkout operations."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message, **self.details}


class ValidationError(CheckoutError):
    """400 - malformed address, missing fields, non-positive price."""

    status_code = 400


class ConfirmationMismatchError(CheckoutError):
    """400 - transaction does not reference the expected receiving party."""

    status_code = 400


class TransactionNotFoundError(CheckoutError):
    """404 - signature unknown locally and on the network."""

    status_code = 404


class NoEndpointAvailableError(CheckoutError):
    """503 - every RPC endpoint candidate failed its liveness probes."""

    status_code = 503


class NetworkError(CheckoutError):
    """503 - a required RPC call failed after an endpoint was selected."""

    status_code = 503
