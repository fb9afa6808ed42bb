"""RCTI API endpoints."""

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, Response, status

from rcti_engine.api.dependencies import DbSession
from rcti_engine.api.schemas import (
    AppliedDeductionResponse,
    DeductionSummaryResponse,
    DisplayTotalsResponse,
    ErrorResponse,
    FinaliseRequest,
    FinaliseResponse,
    ImportJobsRequest,
    LineUpdate,
    ManualLineCreate,
    RctiCreate,
    RctiListResponse,
    RctiResponse,
    RctiSummaryResponse,
    RctiUpdate,
    RevertRequest,
)
from rcti_engine.services.rcti_service import RctiService
from rcti_engine.services.state_machine import RctiStateMachine

router = APIRouter(prefix="/rctis", tags=["rctis"])

NOT_FOUND = {404: {"model": ErrorResponse}}
CONFLICT = {400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}}


async def _rcti_response(service: RctiService, rcti_id: UUID) -> RctiResponse:
    rcti = await service.get_rcti(rcti_id)
    return RctiResponse.model_validate(rcti).model_copy(
        update={"next_statuses": RctiStateMachine.get_next_statuses(rcti.status)}
    )


# ============================================================================
# RCTI CRUD
# ============================================================================


@router.post(
    "",
    response_model=RctiResponse,
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
async def create_rcti(db: DbSession, payload: RctiCreate) -> RctiResponse:
    """Create a draft RCTI from the driver's unbilled jobs for the week."""
    service = RctiService(db)
    rcti = await service.create_rcti(**payload.model_dump())
    return await _rcti_response(service, rcti.rcti_id)


@router.get("", response_model=RctiListResponse)
async def list_rctis(
    db: DbSession,
    driver_id: UUID | None = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    start_date: date | None = None,
    end_date: date | None = None,
) -> RctiListResponse:
    """List RCTIs with optional filters, newest week first."""
    rctis = await RctiService(db).list_rctis(
        driver_id=driver_id,
        status=status_filter,
        start_date=start_date,
        end_date=end_date,
    )
    return RctiListResponse(
        items=[RctiSummaryResponse.model_validate(r) for r in rctis],
        total=len(rctis),
    )


@router.get("/{rcti_id}", response_model=RctiResponse, responses=NOT_FOUND)
async def get_rcti(db: DbSession, rcti_id: Annotated[UUID, Path()]) -> RctiResponse:
    """Get an RCTI with its lines."""
    return await _rcti_response(RctiService(db), rcti_id)


@router.patch("/{rcti_id}", response_model=RctiResponse, responses=CONFLICT)
async def update_rcti(
    db: DbSession,
    rcti_id: Annotated[UUID, Path()],
    payload: RctiUpdate,
) -> RctiResponse:
    """Update payee details, notes or GST settings."""
    service = RctiService(db)
    await service.update_rcti(rcti_id, **payload.model_dump(exclude_unset=True))
    return await _rcti_response(service, rcti_id)


@router.delete(
    "/{rcti_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    responses=CONFLICT,
)
async def delete_rcti(db: DbSession, rcti_id: Annotated[UUID, Path()]) -> Response:
    """Delete a draft RCTI."""
    await RctiService(db).delete_rcti(rcti_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============================================================================
# Lines (draft only)
# ============================================================================


@router.post(
    "/{rcti_id}/lines",
    response_model=RctiResponse,
    status_code=status.HTTP_201_CREATED,
    responses=CONFLICT,
)
async def add_manual_line(
    db: DbSession,
    rcti_id: Annotated[UUID, Path()],
    payload: ManualLineCreate,
) -> RctiResponse:
    """Add a manual line to a draft RCTI."""
    service = RctiService(db)
    await service.add_manual_line(rcti_id, **payload.model_dump())
    return await _rcti_response(service, rcti_id)


@router.post("/{rcti_id}/lines/import", response_model=RctiResponse, responses=CONFLICT)
async def import_jobs(
    db: DbSession,
    rcti_id: Annotated[UUID, Path()],
    payload: ImportJobsRequest,
) -> RctiResponse:
    """Import jobs as lines of a draft RCTI."""
    service = RctiService(db)
    await service.import_jobs(rcti_id, payload.job_ids)
    return await _rcti_response(service, rcti_id)


@router.patch("/{rcti_id}/lines/{line_id}", response_model=RctiResponse, responses=CONFLICT)
async def update_line(
    db: DbSession,
    rcti_id: Annotated[UUID, Path()],
    line_id: Annotated[UUID, Path()],
    payload: LineUpdate,
) -> RctiResponse:
    """Edit a line of a draft RCTI."""
    service = RctiService(db)
    await service.update_line(rcti_id, line_id, **payload.model_dump(exclude_unset=True))
    return await _rcti_response(service, rcti_id)


@router.delete("/{rcti_id}/lines/{line_id}", response_model=RctiResponse, responses=CONFLICT)
async def delete_line(
    db: DbSession,
    rcti_id: Annotated[UUID, Path()],
    line_id: Annotated[UUID, Path()],
) -> RctiResponse:
    """Remove a line from a draft RCTI."""
    service = RctiService(db)
    await service.delete_line(rcti_id, line_id)
    return await _rcti_response(service, rcti_id)


# ============================================================================
# Status transitions
# ============================================================================


@router.post("/{rcti_id}/finalise", response_model=FinaliseResponse, responses=CONFLICT)
async def finalise_rcti(
    db: DbSession,
    rcti_id: Annotated[UUID, Path()],
    payload: FinaliseRequest | None = None,
) -> FinaliseResponse:
    """Finalise a draft RCTI and apply the driver's due deductions."""
    service = RctiService(db)
    overrides = payload.amount_overrides if payload else None
    result = await service.finalise(rcti_id, overrides)
    applied = result.deductions
    return FinaliseResponse(
        rcti=await _rcti_response(service, rcti_id),
        deductions_applied=applied.applied,
        total_deductions=applied.total_deduction_amount,
        total_reimbursements=applied.total_reimbursement_amount,
        net_adjustment=applied.net_adjustment,
    )


@router.post("/{rcti_id}/pay", response_model=RctiResponse, responses=CONFLICT)
async def mark_paid(db: DbSession, rcti_id: Annotated[UUID, Path()]) -> RctiResponse:
    """Mark a finalised RCTI as paid."""
    service = RctiService(db)
    await service.mark_paid(rcti_id)
    return await _rcti_response(service, rcti_id)


@router.post("/{rcti_id}/revert", response_model=RctiResponse, responses=CONFLICT)
async def revert_to_draft(
    db: DbSession,
    rcti_id: Annotated[UUID, Path()],
    payload: RevertRequest | None = None,
) -> RctiResponse:
    """Revert an unpaid finalised RCTI to draft, reversing its deductions."""
    service = RctiService(db)
    await service.revert_to_draft(rcti_id, payload.reason if payload else None)
    return await _rcti_response(service, rcti_id)


# ============================================================================
# Deductions and display totals
# ============================================================================


@router.get("/{rcti_id}/deductions", response_model=DeductionSummaryResponse, responses=NOT_FOUND)
async def get_rcti_deductions(
    db: DbSession, rcti_id: Annotated[UUID, Path()]
) -> DeductionSummaryResponse:
    """Deductions and reimbursements applied to an RCTI."""
    service = RctiService(db)
    await service.get_rcti(rcti_id, load_lines=False)
    summary = await service.deductions.get_deduction_summary(rcti_id)
    return DeductionSummaryResponse(
        rcti_id=rcti_id,
        applications=[AppliedDeductionResponse.model_validate(a) for a in summary.applications],
        total_deductions=summary.total_deductions,
        total_reimbursements=summary.total_reimbursements,
        net_adjustment=summary.net_adjustment,
    )


@router.get("/{rcti_id}/totals", response_model=DisplayTotalsResponse, responses=NOT_FOUND)
async def get_display_totals(
    db: DbSession, rcti_id: Annotated[UUID, Path()]
) -> DisplayTotalsResponse:
    """Original, adjustment and adjusted totals for rendering."""
    totals = await RctiService(db).get_display_totals(rcti_id)
    return DisplayTotalsResponse(
        original_total=totals.original_total,
        net_adjustment=totals.net_adjustment,
        adjusted_total=totals.adjusted_total,
    )
