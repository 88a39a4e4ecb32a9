"""
Dispatch package.

Validates inbound notices and forwards them to the WeCom push endpoint,
classifying the outcome as sent, sent with invalid recipients, or failed.
"""

from .dispatcher import NotificationDispatcher
from .models import DispatchResult, DispatchStatus, NotificationRequest, RawRequest

__all__ = [
    "NotificationDispatcher",
    "DispatchResult",
    "DispatchStatus",
    "NotificationRequest",
    "RawRequest",
]
