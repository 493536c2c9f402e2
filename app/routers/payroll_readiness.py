"""
Payroll Readiness Engine - Payroll Readiness Router

API endpoints for the readiness gate, the cutoff scheduler and the
downstream data packages.
"""

import uuid
from datetime import date, datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_actor_id
from app.schemas.payroll_readiness import (
    AutoEscalateRequest,
    DownstreamDataRequest,
    FinalizeRecordsRequest,
    ManualEscalationRequest,
    PeriodRequest,
    ReminderRequest,
)
from app.services.downstream_data_service import get_downstream_data_service
from app.services.payroll_cutoff_service import EscalationKind, get_payroll_cutoff_service
from app.services.payroll_readiness_service import get_payroll_readiness_service

router = APIRouter(prefix="/payroll-readiness", tags=["Payroll Readiness"])


# ===========================================
# READINESS GATE
# ===========================================

@router.post("/validate", summary="Validate attendance data for payroll sync")
async def validate_for_payroll_sync(
    request: PeriodRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
) -> Dict[str, Any]:
    service = get_payroll_readiness_service(db)
    report = await service.validate_data_for_payroll_sync(
        request.start_date, request.end_date, employee_id=request.employee_id, actor_id=actor_id,
    )
    return report.to_dict()


@router.post("/consistency", summary="Cross-module consistency check")
async def check_consistency(
    request: PeriodRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
) -> Dict[str, Any]:
    service = get_payroll_readiness_service(db)
    report = await service.check_cross_module_data_consistency(
        request.start_date, request.end_date, employee_id=request.employee_id, actor_id=actor_id,
    )
    return report.to_dict()


@router.post("/finalize", summary="Finalise attendance records for payroll")
async def finalize_records(
    request: FinalizeRecordsRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
) -> Dict[str, Any]:
    service = get_payroll_readiness_service(db)
    result = await service.finalize_records_for_payroll(request.record_ids, actor_id=actor_id)
    return result.to_dict()


@router.get("/exceptions", summary="Time exception data for payroll sync")
async def exception_data(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    employee_id: Optional[uuid.UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    service = get_payroll_readiness_service(db)
    return await service.get_exception_data_for_payroll_sync(start_date, end_date, employee_id)


@router.get("/sync/pending", summary="Attendance records not yet finalised for payroll")
async def pending_sync_data(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    employee_id: Optional[uuid.UUID] = Query(None),
    department_id: Optional[uuid.UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    service = get_payroll_readiness_service(db)
    return await service.get_pending_payroll_sync_data(start_date, end_date, employee_id, department_id)


@router.get("/sync/history", summary="Payroll sync history")
async def sync_history(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    service = get_payroll_readiness_service(db)
    return await service.get_payroll_sync_history(start_date, end_date, limit=limit)


@router.get("/sync/status", summary="Cross-module sync status")
async def sync_status(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
) -> Dict[str, Any]:
    service = get_payroll_readiness_service(db)
    return await service.get_cross_module_sync_status(start_date, end_date, actor_id=actor_id)


# ===========================================
# CUTOFF SCHEDULER
# ===========================================

@router.get("/cutoff/config", summary="Payroll cutoff configuration")
async def cutoff_config(db: AsyncSession = Depends(get_db)) -> Dict[str, Any]:
    return get_payroll_cutoff_service(db).get_cutoff_config()


@router.get("/cutoff/pending", summary="Pending exceptions grouped by urgency")
async def pending_before_cutoff(
    cutoff_date: Optional[date] = Query(None),
    department_id: Optional[uuid.UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
) -> Dict[str, Any]:
    service = get_payroll_cutoff_service(db)
    return await service.get_pending_requests_before_cutoff(cutoff_date, department_id, actor_id=actor_id)


@router.get("/cutoff/status", summary="Payroll readiness status")
async def cutoff_status(
    cutoff_date: Optional[date] = Query(None),
    department_id: Optional[uuid.UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    return await get_payroll_cutoff_service(db).readiness_status(cutoff_date, department_id)


@router.post("/cutoff/escalate", summary="Auto-escalate pending exceptions")
async def auto_escalate(
    request: AutoEscalateRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
) -> Dict[str, Any]:
    service = get_payroll_cutoff_service(db)
    result = await service.auto_escalate(
        cutoff_date=request.cutoff_date,
        escalation_days_before=request.escalation_days_before,
        notify_managers=request.notify_managers,
        actor_id=actor_id,
    )
    return result.to_dict()


@router.post("/cutoff/reminders", summary="Send cutoff reminders to assignees")
async def send_reminders(
    request: ReminderRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
) -> Dict[str, Any]:
    service = get_payroll_cutoff_service(db)
    result = await service.send_cutoff_reminders(
        cutoff_date=request.cutoff_date,
        reminder_days_before=request.reminder_days_before,
        actor_id=actor_id,
    )
    return result.to_dict()


@router.post("/exceptions/{exception_id}/escalate", summary="Escalate one time exception")
async def escalate_exception(
    exception_id: uuid.UUID,
    request: ManualEscalationRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
) -> Dict[str, Any]:
    service = get_payroll_cutoff_service(db)
    exc = await service.escalate_time_exception(exception_id, actor_id=actor_id, note=request.note)
    return {
        "id": str(exc.id),
        "status": exc.status.value,
        "type": exc.exception_type.value,
        "reason": exc.reason,
    }


@router.get("/escalations", summary="Escalation history")
async def escalation_history(
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    kind: EscalationKind = Query(EscalationKind.ALL),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    return await get_payroll_cutoff_service(db).get_escalation_history(start, end, kind)


# ===========================================
# DOWNSTREAM DATA
# ===========================================

@router.post("/downstream", summary="Data packages for payroll, leave and benefits")
async def downstream_data(
    request: DownstreamDataRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
) -> Dict[str, Any]:
    service = get_downstream_data_service(db)
    return await service.get_data_for_downstream_modules(
        request.start_date,
        request.end_date,
        [m.value for m in request.modules],
        department_id=request.department_id,
        actor_id=actor_id,
    )
