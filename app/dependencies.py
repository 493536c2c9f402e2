"""
Payroll Readiness Engine - FastAPI Dependencies

Shared dependencies for database sessions and the acting user.

Authentication is handled in front of this service; callers pass the
authenticated user's id in the X-Actor-Id header and it is recorded on
every audit entry.
"""

from typing import Optional

from fastapi import Header

from app.database import get_async_session, get_db
from app.services.audit_service import SYSTEM_ACTOR


async def get_actor_id(
    x_actor_id: Optional[str] = Header(default=None, alias="X-Actor-Id"),
) -> str:
    """Acting user id from the X-Actor-Id header; "system" when absent."""
    if x_actor_id is None or not x_actor_id.strip():
        return SYSTEM_ACTOR
    return x_actor_id.strip()


__all__ = ["get_actor_id", "get_async_session", "get_db"]
