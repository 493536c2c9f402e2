"""
Payroll Readiness Engine - Payroll Run Registry

Narrow read interface over payroll runs and payslips.
"""

import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.payroll import PayrollRun, Payslip, CLOSED_RUN_STATUSES


class PayrollRunRegistry:
    """Looks up payroll runs by their human key (e.g. RUN-2025-01)."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_run(self, run_id: str) -> Optional[PayrollRun]:
        result = await self.db.execute(select(PayrollRun).where(PayrollRun.run_id == run_id))
        return result.scalar_one_or_none()

    async def is_open_run(self, run_id: str) -> bool:
        """True while the run exists and has not been paid out or locked."""
        run = await self.get_run(run_id)
        return run is not None and run.is_open

    async def next_open_run(self, exclude_run_id: Optional[str] = None) -> Optional[PayrollRun]:
        """Earliest open run by period, optionally skipping one run."""
        query = select(PayrollRun).where(PayrollRun.status.not_in(list(CLOSED_RUN_STATUSES)))
        if exclude_run_id:
            query = query.where(PayrollRun.run_id != exclude_run_id)
        query = query.order_by(PayrollRun.period_start, PayrollRun.run_id).limit(1)
        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_payslip(self, payslip_id: uuid.UUID) -> Optional[Payslip]:
        result = await self.db.execute(select(Payslip).where(Payslip.id == payslip_id))
        return result.scalar_one_or_none()
