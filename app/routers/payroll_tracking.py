"""
Payroll Readiness Engine - Payroll Tracking Router

API endpoints for the claim, dispute and refund workflow.
"""

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.dependencies import get_actor_id
from app.schemas.payroll_tracking import (
    ClaimApproval,
    ClaimCreate,
    ClaimResponse,
    DecisionComment,
    DisputeCreate,
    DisputeResponse,
    RefundCreate,
    RefundGenerate,
    RefundProcess,
    RefundResponse,
    RejectionRequest,
)
from app.services.payroll_tracking_service import get_payroll_tracking_service
from app.services.refund_service import get_refund_service

router = APIRouter(prefix="/payroll-tracking", tags=["Payroll Tracking"])


# ===========================================
# CLAIMS
# ===========================================

@router.post(
    "/claims",
    response_model=ClaimResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a payroll claim",
)
async def create_claim(
    request: ClaimCreate,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    service = get_payroll_tracking_service(db)
    return await service.create_claim(
        employee_id=request.employee_id,
        claim_type=request.claim_type,
        description=request.description,
        amount=request.amount,
        finance_staff_id=request.finance_staff_id,
        actor_id=actor_id,
    )


@router.get(
    "/claims/confirmed",
    response_model=List[ClaimResponse],
    summary="Confirmed claims awaiting a refund",
)
async def list_confirmed_claims(db: AsyncSession = Depends(get_db)):
    return await get_payroll_tracking_service(db).get_confirmed_claims_for_finance()


@router.get("/claims/{claim_id}", response_model=ClaimResponse, summary="Get claim")
async def get_claim(claim_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await get_payroll_tracking_service(db).get_claim(claim_id)


@router.post("/claims/{claim_id}/approve", response_model=ClaimResponse, summary="Specialist approval")
async def approve_claim(
    claim_id: uuid.UUID,
    request: ClaimApproval,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    service = get_payroll_tracking_service(db)
    return await service.approve_claim_by_specialist(
        claim_id, approved_amount=request.approved_amount, comment=request.comment, actor_id=actor_id,
    )


@router.post("/claims/{claim_id}/reject", response_model=ClaimResponse, summary="Specialist rejection")
async def reject_claim(
    claim_id: uuid.UUID,
    request: RejectionRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    service = get_payroll_tracking_service(db)
    return await service.reject_claim_by_specialist(claim_id, reason=request.reason, actor_id=actor_id)


@router.post("/claims/{claim_id}/confirm", response_model=ClaimResponse, summary="Manager confirmation")
async def confirm_claim(
    claim_id: uuid.UUID,
    request: DecisionComment,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    service = get_payroll_tracking_service(db)
    return await service.confirm_claim_approval(claim_id, actor_id=actor_id, comment=request.comment)


@router.post(
    "/claims/{claim_id}/refund",
    response_model=RefundResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Generate refund for a confirmed claim",
)
async def generate_claim_refund(
    claim_id: uuid.UUID,
    request: RefundGenerate,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    service = get_refund_service(db)
    return await service.generate_refund_for_claim(
        claim_id, request.refund_details.as_dict(),
        finance_staff_id=request.finance_staff_id, actor_id=actor_id,
    )


# ===========================================
# DISPUTES
# ===========================================

@router.post(
    "/disputes",
    response_model=DisputeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Dispute a payslip",
)
async def create_dispute(
    request: DisputeCreate,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    service = get_payroll_tracking_service(db)
    return await service.create_dispute(
        employee_id=request.employee_id,
        payslip_id=request.payslip_id,
        description=request.description,
        finance_staff_id=request.finance_staff_id,
        actor_id=actor_id,
    )


@router.get(
    "/disputes/confirmed",
    response_model=List[DisputeResponse],
    summary="Confirmed disputes awaiting a refund",
)
async def list_confirmed_disputes(db: AsyncSession = Depends(get_db)):
    return await get_payroll_tracking_service(db).get_confirmed_disputes_for_finance()


@router.get("/disputes/{dispute_id}", response_model=DisputeResponse, summary="Get dispute")
async def get_dispute(dispute_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await get_payroll_tracking_service(db).get_dispute(dispute_id)


@router.post("/disputes/{dispute_id}/approve", response_model=DisputeResponse, summary="Specialist approval")
async def approve_dispute(
    dispute_id: uuid.UUID,
    request: DecisionComment,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    service = get_payroll_tracking_service(db)
    return await service.approve_dispute_by_specialist(dispute_id, comment=request.comment, actor_id=actor_id)


@router.post("/disputes/{dispute_id}/reject", response_model=DisputeResponse, summary="Specialist rejection")
async def reject_dispute(
    dispute_id: uuid.UUID,
    request: RejectionRequest,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    service = get_payroll_tracking_service(db)
    return await service.reject_dispute_by_specialist(dispute_id, reason=request.reason, actor_id=actor_id)


@router.post("/disputes/{dispute_id}/confirm", response_model=DisputeResponse, summary="Manager confirmation")
async def confirm_dispute(
    dispute_id: uuid.UUID,
    request: DecisionComment,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    service = get_payroll_tracking_service(db)
    return await service.confirm_dispute_approval(dispute_id, actor_id=actor_id, comment=request.comment)


@router.post(
    "/disputes/{dispute_id}/refund",
    response_model=RefundResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Generate refund for a confirmed dispute",
)
async def generate_dispute_refund(
    dispute_id: uuid.UUID,
    request: RefundGenerate,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    service = get_refund_service(db)
    return await service.generate_refund_for_dispute(
        dispute_id, request.refund_details.as_dict(),
        finance_staff_id=request.finance_staff_id, actor_id=actor_id,
    )


# ===========================================
# REFUNDS
# ===========================================

@router.post(
    "/refunds",
    response_model=RefundResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a direct refund",
)
async def create_refund(
    request: RefundCreate,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    service = get_refund_service(db)
    return await service.create_refund(
        request.employee_id, request.refund_details.as_dict(),
        finance_staff_id=request.finance_staff_id, actor_id=actor_id,
    )


@router.get("/refunds/pending", response_model=List[RefundResponse], summary="Pending refunds")
async def list_pending_refunds(
    employee_id: Optional[uuid.UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
):
    return await get_refund_service(db).get_pending_refunds(employee_id)


@router.get("/refunds/{refund_id}", response_model=RefundResponse, summary="Get refund")
async def get_refund(refund_id: uuid.UUID, db: AsyncSession = Depends(get_db)):
    return await get_refund_service(db).get_refund(refund_id)


@router.post("/refunds/{refund_id}/process", response_model=RefundResponse, summary="Pay refund in a payroll run")
async def process_refund(
    refund_id: uuid.UUID,
    request: RefundProcess,
    db: AsyncSession = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
):
    service = get_refund_service(db)
    return await service.process_refund(refund_id, request.payroll_run_id, actor_id=actor_id)
