"""
Payroll Readiness Engine - Audit Trail Model

Append-only audit trail for state transitions, escalations and
readiness checks. Escalation history is read back from this table.

This table should have no UPDATE or DELETE permissions.
"""

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, String
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class AuditTrailEntry(Base):
    """
    Immutable audit record.

    `entity` is the event name (e.g. "claim.approve_by_specialist",
    "time_exception.auto_escalated"); `change_set` holds the event payload.
    """

    __tablename__ = "audit_trail"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    entity: Mapped[str] = mapped_column(
        String(100),
        nullable=False,
        index=True,
        comment="Event name, <entity>.<action>",
    )
    entity_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        index=True,
        comment="ID of the affected entity",
    )
    change_set: Mapped[dict] = mapped_column(
        JSON().with_variant(JSONB, "postgresql"),
        nullable=False,
        default=dict,
    )
    actor_id: Mapped[Optional[str]] = mapped_column(
        String(100),
        nullable=True,
        index=True,
        comment="Actor id, or 'system' for scheduled jobs",
    )

    # Timestamp (immutable)
    recorded_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
        index=True,
    )

    def __repr__(self) -> str:
        return f"<AuditTrailEntry(id={self.id}, entity={self.entity}, actor={self.actor_id})>"
