"""
Payroll Readiness Engine - Readiness Schemas

Request bodies for readiness checks, finalization, escalation and
downstream data packages. Reports are returned as plain dicts built by the
services.
"""

from datetime import date
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator

from app.services.downstream_data_service import DownstreamModule


class PeriodRequest(BaseModel):
    """Date range, inclusive on both ends."""
    start_date: date
    end_date: date
    employee_id: Optional[UUID] = None

    @model_validator(mode="after")
    def check_range(self):
        if self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date")
        return self


class FinalizeRecordsRequest(BaseModel):
    """Attendance records to mark as finalised for payroll."""
    record_ids: List[UUID] = Field(..., min_length=1)


class AutoEscalateRequest(BaseModel):
    """Overrides for an auto-escalation run; omitted fields use settings."""
    cutoff_date: Optional[date] = None
    escalation_days_before: Optional[int] = Field(None, ge=0)
    notify_managers: Optional[bool] = None


class ReminderRequest(BaseModel):
    """Overrides for a reminder run."""
    cutoff_date: Optional[date] = None
    reminder_days_before: Optional[int] = Field(None, ge=0)


class ManualEscalationRequest(BaseModel):
    """Manual escalation of one time exception."""
    note: Optional[str] = None


class DownstreamDataRequest(BaseModel):
    """Period, modules and optional department for downstream packages."""
    start_date: date
    end_date: date
    modules: List[DownstreamModule] = Field(
        default_factory=lambda: list(DownstreamModule), min_length=1,
    )
    department_id: Optional[UUID] = None
