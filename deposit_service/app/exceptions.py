from __future__ import annotations


class DepositServiceError(Exception):
    """Base exception for all deposit-service errors."""


class ValidationError(DepositServiceError):
    """Missing or malformed input (e.g., empty email or goal)."""


class AuthServiceError(DepositServiceError):
    """Failures while talking to the payment authorization provider."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class HoldNotFoundError(AuthServiceError):
    """The provider has no hold for the given id (or payment not collected yet)."""


class AlreadyTerminalError(DepositServiceError):
    """Void/capture attempted on a hold that is no longer pending capture.

    Another request already resolved the hold, so callers treat this as a no-op.
    """

    def __init__(self, hold_id: str, message: str = "") -> None:
        super().__init__(message or f"hold {hold_id} is already resolved")
        self.hold_id = hold_id


class EnumerationError(DepositServiceError):
    """The sweep could not list holds at all."""
