from enum import Enum


class ErrorCode(str, Enum):
    """Machine-readable codes returned in ``ErrorResponse.code``."""

    BAD_REQUEST = "BAD_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    UPGRADE_REQUIRED = "UPGRADE_REQUIRED"
    TOO_MANY_REQUESTS = "TOO_MANY_REQUESTS"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    CARD_NOT_FOUND = "CARD_NOT_FOUND"
    SELF_INTERACTION = "SELF_INTERACTION"
    LIKE_LIMIT_REACHED = "LIKE_LIMIT_REACHED"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    IDEMPOTENCY_CONFLICT = "IDEMPOTENCY_CONFLICT"
    TRANSIENT_FAILURE = "TRANSIENT_FAILURE"
    STATS_UNAVAILABLE = "STATS_UNAVAILABLE"


__all__ = ["ErrorCode"]
