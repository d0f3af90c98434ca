from __future__ import annotations

from typing import Any, Mapping


class FirebaseError(Exception):
    """Base error for the Firebase REST client."""


class InvalidPathError(FirebaseError, ValueError):
    """Raised when a path has the wrong segment parity for the requested reference."""


class InvalidArgumentError(FirebaseError, ValueError):
    """Raised when a query or write is built from malformed input."""


class TransactionInProgressError(FirebaseError, RuntimeError):
    """Raised when a transaction is started while another one is active on the same store."""


class RequestError(FirebaseError):
    """Raised when the HTTP request itself fails (connection, timeout)."""


class StatusError(FirebaseError):
    def __init__(self, code: int, message: str, status: str | None = None) -> None:
        self.code = code
        self.message = message
        self.status = status
        super().__init__(f"{code} {status or 'ERROR'}: {message}")

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "StatusError":
        try:
            code = int(payload.get("code", 0))
        except (TypeError, ValueError):
            code = 0
        return cls(
            code=code,
            message=str(payload.get("message", "")),
            status=payload.get("status"),
        )
