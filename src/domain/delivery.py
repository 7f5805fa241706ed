"""
Domain model for outbound email delivery bookkeeping.

Value objects (EmailRequest, EmailResult) describe one logical send as the
rest of the application sees it. Entities (IdempotencyRecord, SendAttempt,
DeduplicationLogEntry) are the rows this subsystem owns in the store.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_validator


class EmailType(str, Enum):
    """Category of an outbound email."""
    NOTIFICATION = "notification"
    APPROVAL = "approval"
    CAMPAIGN = "campaign"
    SYSTEM = "system"


class SendStatus(str, Enum):
    """Lifecycle of an idempotency record or a single send attempt."""
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


def normalize_recipient(address: str) -> str:
    """Canonical form of a recipient address used for keys and lookups."""
    return address.strip().lower()


class EmailRequest(BaseModel):
    """A fully rendered email the caller wants delivered exactly once."""
    to: str = Field(..., min_length=3, description="Recipient address")
    subject: str = Field(..., description="Subject line")
    html: Optional[str] = Field(default=None, description="HTML body")
    text: Optional[str] = Field(default=None, description="Plain text body")
    from_email: Optional[str] = Field(default=None, description="Sender override")
    email_type: EmailType = Field(default=EmailType.SYSTEM, description="Email category")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Caller context")
    idempotency_key: Optional[str] = Field(
        default=None,
        description="Explicit key; derived from the request when omitted",
    )

    @field_validator("idempotency_key")
    @classmethod
    def _blank_key_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not value.strip():
            return None
        return value

    @property
    def recipient(self) -> str:
        return normalize_recipient(self.to)

    @property
    def body(self) -> str:
        """Body used for content hashing (HTML wins over text)."""
        return self.html or self.text or ""


class EmailResult(BaseModel):
    """Outcome of one call to the delivery service. Never raised, always returned."""
    success: bool
    idempotency_key: str
    is_duplicate: bool = False
    message: str = ""
    attempt_number: int = 0


@dataclass
class IdempotencyRecord:
    """One logical send: this email, to this recipient, at this logical moment."""
    idempotency_key: str
    email_type: EmailType
    recipient: str
    content_hash: str
    status: SendStatus
    expires_at: datetime
    created_at: datetime
    sent_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_sent(self) -> bool:
        return self.status == SendStatus.SENT

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        data = asdict(self)
        data["email_type"] = self.email_type.value
        data["status"] = self.status.value
        for name in ("expires_at", "created_at", "sent_at"):
            if data[name] is not None:
                data[name] = data[name].isoformat()
        return data


@dataclass
class SendAttempt:
    """One physical call to the transport for an idempotency key."""
    idempotency_key: str
    attempt_number: int
    status: SendStatus
    attempted_at: datetime
    id: Optional[int] = None
    error_message: Optional[str] = None
    completed_at: Optional[datetime] = None


@dataclass
class DeduplicationLogEntry:
    """Audit row written when a content duplicate is suppressed."""
    recipient: str
    email_type: EmailType
    content_hash: str
    original_key: str
    duplicate_key: str
    prevented_at: datetime
    id: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "recipient_email": self.recipient,
            "email_type": self.email_type.value,
            "content_hash": self.content_hash,
            "original_idempotency_key": self.original_key,
            "duplicate_idempotency_key": self.duplicate_key,
            "prevented_at": self.prevented_at.isoformat(),
            "metadata": self.metadata,
        }


@dataclass
class DeliveryStats:
    """Aggregate counters over a trailing window."""
    total_sent: int = 0
    total_failed: int = 0
    duplicates_prevented: int = 0
    retry_attempts: int = 0
    unique_recipients: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class CleanupResult:
    """Row counts removed by one retention sweep."""
    deleted_keys: int = 0
    deleted_attempts: int = 0
    deleted_logs: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)
