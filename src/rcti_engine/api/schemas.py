"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ErrorResponse(BaseModel):
    """Schema for error responses."""

    detail: str
    code: str | None = None


# ============================================================================
# RCTI schemas
# ============================================================================


class RctiCreate(BaseModel):
    """Schema for creating a draft RCTI from a driver's week of jobs."""

    driver_id: UUID
    week_ending: date
    gst_status: str | None = None
    gst_mode: str | None = None
    driver_name: str | None = None
    driver_abn: str | None = None
    driver_address: str | None = None
    notes: str | None = None


class RctiUpdate(BaseModel):
    """Schema for updating payee details, GST settings or notes."""

    gst_status: str | None = None
    gst_mode: str | None = None
    driver_name: str | None = None
    driver_abn: str | None = None
    driver_address: str | None = None
    notes: str | None = None


class RctiLineResponse(BaseModel):
    """Schema for an RCTI line."""

    model_config = ConfigDict(from_attributes=True)

    rcti_line_id: UUID
    rcti_id: UUID
    job_id: UUID | None = None
    job_date: date
    customer: str
    truck_type: str
    description: str | None = None
    charged_hours: Decimal
    rate_per_hour: Decimal
    amount_ex_gst: Decimal
    gst_amount: Decimal
    amount_inc_gst: Decimal


class RctiSummaryResponse(BaseModel):
    """Schema for an RCTI without its lines."""

    model_config = ConfigDict(from_attributes=True)

    rcti_id: UUID
    driver_id: UUID
    invoice_number: str
    week_ending: date
    driver_name: str
    driver_abn: str | None = None
    driver_address: str | None = None
    gst_status: str
    gst_mode: str
    subtotal: Decimal
    gst: Decimal
    total: Decimal
    status: str
    notes: str | None = None
    finalised_at: datetime | None = None
    paid_at: datetime | None = None
    reverted_to_draft_at: datetime | None = None
    reverted_to_draft_reason: str | None = None


class RctiResponse(RctiSummaryResponse):
    """Schema for an RCTI with its lines."""

    lines: list[RctiLineResponse] = Field(default_factory=list)
    next_statuses: list[str] = Field(default_factory=list)


class RctiListResponse(BaseModel):
    """Schema for listing RCTIs."""

    items: list[RctiSummaryResponse]
    total: int


class ManualLineCreate(BaseModel):
    """Schema for a manual line (not backed by a job)."""

    job_date: date
    customer: str
    truck_type: str
    charged_hours: Decimal
    rate_per_hour: Decimal
    description: str | None = None


class ImportJobsRequest(BaseModel):
    """Schema for importing jobs into a draft RCTI."""

    job_ids: list[UUID] = Field(min_length=1)


class LineUpdate(BaseModel):
    """Schema for editing a line. Omitted fields are left unchanged."""

    job_date: date | None = None
    customer: str | None = None
    truck_type: str | None = None
    description: str | None = None
    charged_hours: Decimal | None = None
    rate_per_hour: Decimal | None = None


class FinaliseRequest(BaseModel):
    """Schema for finalising an RCTI.

    Keys are deduction IDs. A null value skips that deduction for this period;
    deductions not listed use their scheduled amount.
    """

    amount_overrides: dict[UUID, Decimal | None] = Field(default_factory=dict)


class FinaliseResponse(BaseModel):
    """Schema for finalisation results."""

    rcti: RctiResponse
    deductions_applied: int
    total_deductions: Decimal
    total_reimbursements: Decimal
    net_adjustment: Decimal


class RevertRequest(BaseModel):
    """Schema for reverting a finalised RCTI to draft."""

    reason: str | None = None


class DisplayTotalsResponse(BaseModel):
    """Schema for totals shown on rendered invoices."""

    original_total: Decimal
    net_adjustment: Decimal
    adjusted_total: Decimal


# ============================================================================
# Deduction schemas
# ============================================================================


class DeductionCreate(BaseModel):
    """Schema for creating a deduction or reimbursement."""

    driver_id: UUID
    deduction_type: str
    description: str
    total_amount: Decimal
    frequency: str
    amount_per_cycle: Decimal | None = None
    start_date: date | None = None
    notes: str | None = None


class DeductionUpdate(BaseModel):
    """Schema for updating a deduction that has never been applied."""

    description: str | None = None
    total_amount: Decimal | None = None
    frequency: str | None = None
    amount_per_cycle: Decimal | None = None
    start_date: date | None = None
    notes: str | None = None


class DeductionResponse(BaseModel):
    """Schema for a deduction."""

    model_config = ConfigDict(from_attributes=True)

    deduction_id: UUID
    driver_id: UUID
    deduction_type: str
    description: str
    total_amount: Decimal
    amount_paid: Decimal
    amount_remaining: Decimal
    amount_per_cycle: Decimal | None = None
    frequency: str
    start_date: date
    status: str
    completed_at: datetime | None = None
    notes: str | None = None


class DeductionListResponse(BaseModel):
    """Schema for listing deductions."""

    items: list[DeductionResponse]
    total: int


class DeductionRemovedResponse(BaseModel):
    """Result of removing a deduction: deleted outright or cancelled."""

    deduction_id: UUID
    action: str
    deduction: DeductionResponse | None = None


class PendingDeductionResponse(BaseModel):
    """Schema for a deduction due on the next finalisation."""

    model_config = ConfigDict(from_attributes=True)

    deduction_id: UUID
    deduction_type: str
    description: str
    amount_to_apply: Decimal
    amount_remaining: Decimal
    frequency: str


class PendingDeductionsResponse(BaseModel):
    """Schema for the pending deductions preview."""

    driver_id: UUID
    week_ending: date
    items: list[PendingDeductionResponse]
    count: int
    total_deductions: Decimal
    total_reimbursements: Decimal
    net_adjustment: Decimal


class AppliedDeductionResponse(BaseModel):
    """Schema for an application recorded against an RCTI."""

    model_config = ConfigDict(from_attributes=True)

    application_id: UUID
    deduction_id: UUID
    description: str
    deduction_type: str
    amount: Decimal
    applied_at: datetime


class DeductionSummaryResponse(BaseModel):
    """Schema for the deductions applied to one RCTI."""

    rcti_id: UUID
    applications: list[AppliedDeductionResponse]
    total_deductions: Decimal
    total_reimbursements: Decimal
    net_adjustment: Decimal
