"""
Payroll Readiness Engine - Notification Model

In-app notifications sent by the payroll tracking and cutoff services.

Notification Types:
- Claim / dispute status changes
- Refund processed
- Payroll cutoff escalation alerts and reminders
"""

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, String, Text, Enum as SQLEnum
from sqlalchemy.dialects.postgresql import UUID, JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.models.base import BaseModel


class NotificationType(str, Enum):
    """Types of notifications."""
    # Claims & disputes
    CLAIM_STATUS_CHANGED = "claim_status_changed"
    DISPUTE_STATUS_CHANGED = "dispute_status_changed"
    READY_FOR_REFUND = "ready_for_refund"
    REFUND_PROCESSED = "refund_processed"

    # Payroll cutoff
    CUTOFF_ESCALATION = "cutoff_escalation"
    CUTOFF_REMINDER = "cutoff_reminder"
    EXCEPTION_ESCALATED = "exception_escalated"

    # General
    INFO = "info"
    WARNING = "warning"


class Notification(BaseModel):
    """Notification addressed to a single employee."""

    __tablename__ = "notifications"

    # Recipient
    recipient_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        nullable=False,
        index=True,
    )

    notification_type: Mapped[NotificationType] = mapped_column(
        SQLEnum(NotificationType),
        default=NotificationType.INFO,
        nullable=False,
        index=True,
    )
    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    message: Mapped[str] = mapped_column(Text, nullable=False)

    # Additional data (JSON)
    extra_data: Mapped[Optional[dict]] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"),
        nullable=True,
        comment="Additional notification data",
    )

    # Status tracking
    is_read: Mapped[bool] = mapped_column(
        Boolean,
        default=False,
        nullable=False,
        index=True,
    )
    read_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<Notification(id={self.id}, type={self.notification_type}, recipient={self.recipient_id})>"

    def mark_as_read(self) -> None:
        """Mark notification as read."""
        if not self.is_read:
            self.is_read = True
            self.read_at = datetime.utcnow()
