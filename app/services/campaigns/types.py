"""
Types and enums for campaigns and communication logs.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from app.core.timezone import parse_datetime


class CampaignStatus(str, Enum):
    """Campaign lifecycle."""

    PENDING = "PENDING"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


class LogStatus(str, Enum):
    """Per-recipient delivery status."""

    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


@dataclass
class DeliveryStats:
    """Aggregate delivery counters."""

    sent: int = 0
    failed: int = 0
    pending: int = 0

    @property
    def total(self) -> int:
        return self.sent + self.failed + self.pending

    def to_dict(self) -> dict:
        return {"sent": self.sent, "failed": self.failed, "pending": self.pending}

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "DeliveryStats":
        if not data:
            return cls()
        return cls(
            sent=int(data.get("sent") or 0),
            failed=int(data.get("failed") or 0),
            pending=int(data.get("pending") or 0),
        )


@dataclass
class CampaignData:
    """A campaign."""

    id: str
    user_id: str
    name: str
    message: str
    rules: List[dict] = field(default_factory=list)
    audience_size: int = 0
    status: CampaignStatus = CampaignStatus.PENDING
    sent_count: int = 0
    failed_count: int = 0
    delivery_stats: DeliveryStats = field(default_factory=DeliveryStats)
    created_at: Optional[datetime] = None

    @classmethod
    def from_db_row(cls, row: dict) -> "CampaignData":
        """Creates from a database row."""
        try:
            status = CampaignStatus(row.get("status", "PENDING"))
        except ValueError:
            status = CampaignStatus.PENDING

        return cls(
            id=str(row["id"]),
            user_id=str(row.get("user_id", "")),
            name=row.get("name", ""),
            message=row.get("message", ""),
            rules=row.get("rules") or [],
            audience_size=int(row.get("audience_size") or 0),
            status=status,
            sent_count=int(row.get("sent_count") or 0),
            failed_count=int(row.get("failed_count") or 0),
            delivery_stats=DeliveryStats.from_dict(row.get("delivery_stats")),
            created_at=parse_datetime(row.get("created_at")),
        )

    def to_dict(self) -> dict:
        """API representation."""
        return {
            "_id": self.id,
            "userId": self.user_id,
            "name": self.name,
            "rules": self.rules,
            "message": self.message,
            "audienceSize": self.audience_size,
            "status": self.status.value,
            "sentCount": self.sent_count,
            "failedCount": self.failed_count,
            "deliveryStats": self.delivery_stats.to_dict(),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class CommunicationLogData:
    """Per-recipient delivery record."""

    id: str
    campaign_id: str
    customer_id: str
    customer_email: str
    customer_name: str
    message: str
    personalized_message: str
    status: LogStatus = LogStatus.PENDING
    delivery_attempts: int = 0
    sent_at: Optional[datetime] = None
    failed_at: Optional[datetime] = None
    vendor_response: Optional[str] = None
    error_message: Optional[str] = None
    delivery_id: Optional[str] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_db_row(cls, row: dict) -> "CommunicationLogData":
        try:
            status = LogStatus(row.get("status", "PENDING"))
        except ValueError:
            status = LogStatus.PENDING

        return cls(
            id=str(row["id"]),
            campaign_id=str(row.get("campaign_id", "")),
            customer_id=str(row.get("customer_id", "")),
            customer_email=row.get("customer_email", ""),
            customer_name=row.get("customer_name", ""),
            message=row.get("message", ""),
            personalized_message=row.get("personalized_message", ""),
            status=status,
            delivery_attempts=int(row.get("delivery_attempts") or 0),
            sent_at=parse_datetime(row.get("sent_at")),
            failed_at=parse_datetime(row.get("failed_at")),
            vendor_response=row.get("vendor_response"),
            error_message=row.get("error_message"),
            delivery_id=row.get("delivery_id"),
            created_at=parse_datetime(row.get("created_at")),
        )

    def to_dict(self) -> dict:
        return {
            "_id": self.id,
            "campaignId": self.campaign_id,
            "customerId": self.customer_id,
            "customerEmail": self.customer_email,
            "customerName": self.customer_name,
            "message": self.message,
            "personalizedMessage": self.personalized_message,
            "status": self.status.value,
            "deliveryAttempts": self.delivery_attempts,
            "sentAt": self.sent_at.isoformat() if self.sent_at else None,
            "failedAt": self.failed_at.isoformat() if self.failed_at else None,
            "vendorResponse": self.vendor_response,
            "errorMessage": self.error_message,
            "deliveryId": self.delivery_id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


def personalize(template: str, name: str) -> str:
    """Fills the {name} placeholder ({{name}} is accepted too)."""
    result = template or ""
    result = result.replace("{{name}}", name or "")
    result = result.replace("{name}", name or "")
    return result
