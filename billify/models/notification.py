"""
Email and notification value types.
"""

from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class VerificationState(str, Enum):
    """Whether an address is confirmed able to receive notifications"""
    UNKNOWN = "Unknown"
    PENDING = "Pending"
    VERIFIED = "Verified"


def may_send(state: VerificationState) -> bool:
    """The single gate deciding whether content may go to a recipient."""
    return state is VerificationState.VERIFIED


class NotificationStatus(str, Enum):
    DELIVERED = "delivered"
    VERIFICATION_REQUESTED = "verification_requested"
    FAILED = "failed"


@dataclass
class EmailContent:
    """Composed message content, independent of the wire format"""
    subject: str
    text_body: str
    html_body: str


@dataclass
class EmailMessage:
    to: List[str]
    subject: str
    text_body: str
    html_body: str
    from_address: str = "noreply@billify.local"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class EmailResult:
    """Result of an email send operation."""
    success: bool
    message_id: Optional[str] = None
    provider: str = "mock"
    error: Optional[str] = None
    timestamp: Optional[str] = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.now(timezone.utc).isoformat()


@dataclass
class NotificationResult:
    status: NotificationStatus
    recipient: str
    message_id: Optional[str] = None
    error: Optional[str] = None
