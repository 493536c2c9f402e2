"""
Payroll Readiness Engine - Status Transitions

Applies a (status, operation) -> status table to a row with a
compare-and-swap UPDATE, so two concurrent callers cannot both move the
same row out of the same status.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple, Type

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.utils.error_handling import InvalidStateTransitionException, NotFoundException


# Hint shown when an operation hits a status that does not allow it
REMEDIATION_BY_STATUS = {
    "pending": "A payroll specialist must approve or reject the item first",
    "approved_by_specialist": "The item already has a specialist decision; a payroll manager must confirm it",
    "rejected_by_specialist": "Rejected items are final; submit a new request instead",
    "confirmed": "The item is already confirmed; generate a refund for it instead",
    "processed": "The refund has already been paid; create a new refund for any further adjustment",
}


def remediation_for(current_state: str, operation: str) -> str:
    hint = REMEDIATION_BY_STATUS.get(current_state)
    if hint is None:
        return f"Check the item's status before retrying '{operation}'"
    return hint


async def load_or_404(db: AsyncSession, model: Type, entity_id: Any, resource_type: str, refresh: bool = False):
    """Fetch a row by primary key or raise NotFoundException."""
    query = select(model).where(model.id == entity_id)
    if refresh:
        query = query.execution_options(populate_existing=True)
    result = await db.execute(query)
    entity = result.scalar_one_or_none()
    if entity is None:
        raise NotFoundException(resource_type, entity_id)
    return entity


def next_status(
    table: Mapping[Tuple[Enum, Enum], Enum],
    resource_type: str,
    entity: Any,
    operation: Enum,
) -> Enum:
    """Look up the target status or raise InvalidStateTransitionException."""
    target = table.get((entity.status, operation))
    if target is None:
        raise InvalidStateTransitionException(
            resource_type=resource_type,
            current_state=entity.status.value,
            attempted_operation=operation.value,
            remediation=remediation_for(entity.status.value, operation.value),
            resource_id=entity.id,
        )
    return target


async def apply_transition(
    db: AsyncSession,
    model: Type,
    table: Mapping[Tuple[Enum, Enum], Enum],
    resource_type: str,
    entity: Any,
    operation: Enum,
    values: Optional[Dict[str, Any]] = None,
):
    """
    Move `entity` along `table` for `operation` and return the fresh row.

    The UPDATE only matches while the row still holds the status we read.
    If another writer got there first the row is re-read and the error
    reports the status actually observed. Nothing is committed here.
    """
    expected = entity.status
    target = next_status(table, resource_type, entity, operation)

    result = await db.execute(
        update(model)
        .where(model.id == entity.id)
        .where(model.status == expected)
        .values(status=target, updated_at=datetime.utcnow(), **(values or {}))
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        await db.rollback()
        current = await load_or_404(db, model, entity.id, resource_type, refresh=True)
        raise InvalidStateTransitionException(
            resource_type=resource_type,
            current_state=current.status.value,
            attempted_operation=operation.value,
            message=(
                f"{resource_type} {entity.id} changed to '{current.status.value}' "
                f"while '{operation.value}' was in progress"
            ),
            remediation=remediation_for(current.status.value, operation.value),
            resource_id=entity.id,
        )

    return await load_or_404(db, model, entity.id, resource_type, refresh=True)
