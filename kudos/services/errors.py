"""Domain errors raised by the ledger services.

Each error carries the ``ErrorCode`` and HTTP status the API reports, so
controllers can translate any of them without a per-type branch.
"""
from __future__ import annotations

from kudos.models import ErrorCode


class LedgerError(Exception):
    code: ErrorCode = ErrorCode.BAD_REQUEST
    status_code: int = 400

    def __init__(self, message: str, **context: object) -> None:
        super().__init__(message)
        self.message = message
        self.context = context


class ValidationFailed(LedgerError):
    code = ErrorCode.VALIDATION_ERROR
    status_code = 422

    def __init__(self, field: str, message: str) -> None:
        super().__init__(f"{field}: {message}", field=field)
        self.field = field


class UserNotFound(LedgerError):
    code = ErrorCode.USER_NOT_FOUND
    status_code = 404


class BalanceNotFound(UserNotFound):
    pass


class CardNotFound(LedgerError):
    code = ErrorCode.CARD_NOT_FOUND
    status_code = 404


class SelfInteraction(LedgerError):
    code = ErrorCode.SELF_INTERACTION
    status_code = 400


class CapacityError(LedgerError):
    """Expected, user-recoverable outcome; not an operator concern."""

    status_code = 409


class LikeLimitReached(CapacityError):
    code = ErrorCode.LIKE_LIMIT_REACHED


class InsufficientBalance(CapacityError):
    code = ErrorCode.INSUFFICIENT_BALANCE


class IdempotencyConflict(LedgerError):
    code = ErrorCode.IDEMPOTENCY_CONFLICT
    status_code = 409


class TransientLedgerError(LedgerError):
    """The transaction was rolled back; retrying is safe."""

    code = ErrorCode.TRANSIENT_FAILURE
    status_code = 503


class StatsUnavailable(LedgerError):
    code = ErrorCode.STATS_UNAVAILABLE
    status_code = 503


__all__ = [
    "LedgerError",
    "ValidationFailed",
    "UserNotFound",
    "BalanceNotFound",
    "CardNotFound",
    "SelfInteraction",
    "CapacityError",
    "LikeLimitReached",
    "InsufficientBalance",
    "IdempotencyConflict",
    "TransientLedgerError",
    "StatsUnavailable",
]
