from .base import Base
from .user import User
from .point_balance import PointBalance
from .card import Card, CardRecipient
from .like import Like
from .error_code import ErrorCode

__all__ = [
    "Base",
    "User",
    "PointBalance",
    "Card",
    "CardRecipient",
    "Like",
    "ErrorCode",
]
