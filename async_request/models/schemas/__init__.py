from .base import ResponseBase
from .notifications import NotificationCreate
from .sessions import SessionRead

__all__ = [
    "ResponseBase",
    "NotificationCreate",
    "SessionRead",
]
