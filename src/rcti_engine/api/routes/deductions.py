"""Deduction and reimbursement API endpoints."""

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from rcti_engine.api.dependencies import DbSession
from rcti_engine.api.schemas import (
    DeductionCreate,
    DeductionListResponse,
    DeductionRemovedResponse,
    DeductionResponse,
    DeductionUpdate,
    ErrorResponse,
    PendingDeductionResponse,
    PendingDeductionsResponse,
)
from rcti_engine.services.deduction_service import DeductionService

router = APIRouter(prefix="/deductions", tags=["deductions"])

ERRORS = {400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}}


@router.post(
    "",
    response_model=DeductionResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERRORS,
)
async def create_deduction(db: DbSession, payload: DeductionCreate) -> DeductionResponse:
    """Create a deduction or reimbursement for a driver."""
    deduction = await DeductionService(db).create_deduction(**payload.model_dump())
    return DeductionResponse.model_validate(deduction)


@router.get("", response_model=DeductionListResponse, responses={400: {"model": ErrorResponse}})
async def list_deductions(
    db: DbSession,
    driver_id: UUID | None = None,
    status_filter: Annotated[str, Query(alias="status")] = "active",
    deduction_type: Annotated[str | None, Query(alias="type")] = None,
) -> DeductionListResponse:
    """List deductions. Only active ones unless ``status`` is given; ``all`` lists every status."""
    deductions = await DeductionService(db).list_deductions(
        driver_id=driver_id,
        status=None if status_filter == "all" else status_filter,
        deduction_type=deduction_type,
    )
    return DeductionListResponse(
        items=[DeductionResponse.model_validate(d) for d in deductions],
        total=len(deductions),
    )


@router.get("/pending", response_model=PendingDeductionsResponse, responses=ERRORS)
async def get_pending_deductions(
    db: DbSession,
    driver_id: UUID,
    week_ending: date,
) -> PendingDeductionsResponse:
    """Preview the deductions the next RCTI for this driver and week would apply."""
    pending = await DeductionService(db).get_pending_deductions(driver_id, week_ending)
    return PendingDeductionsResponse(
        driver_id=driver_id,
        week_ending=week_ending,
        items=[PendingDeductionResponse.model_validate(p) for p in pending.items],
        count=pending.count,
        total_deductions=pending.total_deductions,
        total_reimbursements=pending.total_reimbursements,
        net_adjustment=pending.net_adjustment,
    )


@router.get("/{deduction_id}", response_model=DeductionResponse, responses=ERRORS)
async def get_deduction(
    db: DbSession, deduction_id: Annotated[UUID, Path()]
) -> DeductionResponse:
    """Get a deduction."""
    deduction = await DeductionService(db).get_deduction(deduction_id)
    return DeductionResponse.model_validate(deduction)


@router.patch("/{deduction_id}", response_model=DeductionResponse, responses=ERRORS)
async def update_deduction(
    db: DbSession,
    deduction_id: Annotated[UUID, Path()],
    payload: DeductionUpdate,
) -> DeductionResponse:
    """Update a deduction that has not been applied to any RCTI."""
    deduction = await DeductionService(db).update_deduction(
        deduction_id, **payload.model_dump(exclude_unset=True)
    )
    return DeductionResponse.model_validate(deduction)


@router.delete("/{deduction_id}", response_model=DeductionRemovedResponse, responses=ERRORS)
async def remove_deduction(
    db: DbSession, deduction_id: Annotated[UUID, Path()]
) -> DeductionRemovedResponse:
    """Delete a deduction, or cancel it when it already has application history."""
    service = DeductionService(db)
    await service.get_deduction(deduction_id)
    cancelled = await service.remove_deduction(deduction_id)
    if cancelled is None:
        return DeductionRemovedResponse(deduction_id=deduction_id, action="deleted")
    return DeductionRemovedResponse(
        deduction_id=deduction_id,
        action="cancelled",
        deduction=DeductionResponse.model_validate(cancelled),
    )


@router.post("/{deduction_id}/cancel", response_model=DeductionResponse, responses=ERRORS)
async def cancel_deduction(
    db: DbSession, deduction_id: Annotated[UUID, Path()]
) -> DeductionResponse:
    """Cancel a deduction, keeping its application history."""
    deduction = await DeductionService(db).cancel_deduction(deduction_id)
    return DeductionResponse.model_validate(deduction)
