"""
Notice data models for the Notice Service.
"""

from typing import Any, Dict, List, Mapping, Optional
from dataclasses import dataclass, field
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


DEFAULT_MESSAGE_TYPE = "text"


class NotificationRequest(BaseModel):
    """Inbound notice body: ``{users, type?, content}``."""

    model_config = ConfigDict(extra="ignore")

    recipients: str = Field(..., alias="users", min_length=1, description="Recipients, e.g. 'u1|u2'")
    message_type: str = Field(DEFAULT_MESSAGE_TYPE, alias="type", min_length=1, description="Message format")
    content: str = Field(..., min_length=1, description="Message content")


@dataclass
class RawRequest:
    """What the dispatcher needs from an inbound HTTP call."""
    method: str
    headers: Mapping[str, str] = field(default_factory=dict)
    body: Any = None


class DispatchStatus(str, Enum):
    """Outcome of a dispatched notice."""
    SENT = "sent"
    SENT_WITH_INVALID_RECIPIENTS = "sent_with_invalid_recipients"


@dataclass(frozen=True)
class DispatchResult:
    """Successful outcome; failures are raised as relay errors instead."""
    status: DispatchStatus
    invalid_recipients: List[str] = field(default_factory=list)

    @classmethod
    def sent(cls) -> "DispatchResult":
        return cls(DispatchStatus.SENT)

    @classmethod
    def sent_with_invalid_recipients(cls, recipients: List[str]) -> "DispatchResult":
        return cls(DispatchStatus.SENT_WITH_INVALID_RECIPIENTS, list(recipients))

    def to_response(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "invalid_users": self.invalid_recipients,
        }


def parse_recipient_list(value: Optional[str]) -> List[str]:
    """Split a WeCom ``a|b|c`` recipient string, dropping empty entries."""
    if not value or not isinstance(value, str):
        return []
    return [item for item in value.split("|") if item]
