"""
Payroll Readiness Engine - Audit Trail Service

Append-only audit sink for state transitions, escalations and readiness
checks. Entries are written in the caller's transaction (flush only), so an
audit row is committed together with the change it describes.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.audit import AuditTrailEntry

SYSTEM_ACTOR = "system"

ActorId = Optional[Union[str, uuid.UUID]]


def as_uuid(value: ActorId) -> Optional[uuid.UUID]:
    """Actor ids that are not UUIDs (e.g. "system") map to None."""
    if value is None or isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


def _jsonable(value: Any) -> Any:
    """Convert change-set values to JSON-safe primitives."""
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonable(v) for v in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if hasattr(value, "value") and isinstance(getattr(value, "value"), str):
        return value.value
    return str(value)


class AuditTrailService:
    """Service for recording and querying the audit trail."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def record(
        self,
        entity: str,
        change_set: Optional[Dict[str, Any]] = None,
        actor_id: Optional[Union[str, uuid.UUID]] = None,
        timestamp: Optional[datetime] = None,
        entity_id: Optional[Union[str, uuid.UUID]] = None,
    ) -> AuditTrailEntry:
        """
        Append an entry to the audit trail.

        Args:
            entity: Event name, e.g. "claim.approve_by_specialist"
            change_set: Event payload (converted to JSON-safe values)
            actor_id: Who performed the action; defaults to "system"
            timestamp: When it happened; defaults to now (UTC)
            entity_id: Id of the affected record

        Returns:
            The pending AuditTrailEntry (flushed, not committed)
        """
        entry = AuditTrailEntry(
            entity=entity,
            entity_id=str(entity_id) if entity_id is not None else None,
            change_set=_jsonable(change_set or {}),
            actor_id=str(actor_id) if actor_id is not None else SYSTEM_ACTOR,
            recorded_at=timestamp or datetime.utcnow(),
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def query(
        self,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        entities: Optional[Sequence[str]] = None,
        entity_id: Optional[Union[str, uuid.UUID]] = None,
    ) -> List[AuditTrailEntry]:
        """Entries recorded in [start, end], oldest first."""
        query = select(AuditTrailEntry)
        if start is not None:
            query = query.where(AuditTrailEntry.recorded_at >= start)
        if end is not None:
            query = query.where(AuditTrailEntry.recorded_at <= end)
        if entities:
            query = query.where(AuditTrailEntry.entity.in_(list(entities)))
        if entity_id is not None:
            query = query.where(AuditTrailEntry.entity_id == str(entity_id))
        query = query.order_by(AuditTrailEntry.recorded_at, AuditTrailEntry.id)

        result = await self.db.execute(query)
        return list(result.scalars().all())


def get_audit_trail_service(db: AsyncSession) -> AuditTrailService:
    """Factory function for AuditTrailService"""
    return AuditTrailService(db)
