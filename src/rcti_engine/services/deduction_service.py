"""Deduction ledger service.

Applies due deductions and reimbursements to an RCTI at finalisation and
reverses them when the RCTI goes back to draft.

Key invariants:
1. A deduction is applied at most once per RCTI (unique constraint) and at
   most once per period (scheduler due-date check).
2. Balance updates are compare-and-swap on (amount_remaining, status). Losing
   the race is not an error; the deduction is left out of this pass.
3. Nothing here commits. Callers run a whole pass inside one transaction so a
   failure leaves no partial ledger mutation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Mapping
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from rcti_engine.calculators.amounts import bankers_round, to_decimal
from rcti_engine.calculators.types import (
    DeductionFrequency,
    DeductionStatus,
    DeductionType,
    parse_enum,
)
from rcti_engine.errors import ConflictError, NotFoundError, ValidationError
from rcti_engine.models import Driver, Rcti, RctiDeduction, RctiDeductionApplication
from rcti_engine.services.scheduler import LastApplication, should_apply

logger = logging.getLogger(__name__)

ZERO = Decimal("0.00")

AmountOverrides = Mapping[UUID, Any]


def _parse_amount(value: Any, label: str) -> Decimal:
    try:
        amount = to_decimal(value)
    except (TypeError, ArithmeticError):
        raise ValidationError(f"{label} must be a number") from None
    if not amount.is_finite():
        raise ValidationError(f"{label} must be a number")
    return amount


@dataclass(frozen=True)
class DeductionSnapshot:
    """Deduction row as read at the start of an application pass."""

    deduction_id: UUID
    driver_id: UUID
    deduction_type: str
    description: str
    total_amount: Decimal
    amount_paid: Decimal
    amount_remaining: Decimal
    amount_per_cycle: Decimal | None
    frequency: str
    start_date: date
    status: str
    last_application: LastApplication | None = None

    @classmethod
    def from_model(
        cls, deduction: RctiDeduction, last_application: LastApplication | None
    ) -> DeductionSnapshot:
        return cls(
            deduction_id=deduction.deduction_id,
            driver_id=deduction.driver_id,
            deduction_type=deduction.deduction_type,
            description=deduction.description,
            total_amount=to_decimal(deduction.total_amount),
            amount_paid=to_decimal(deduction.amount_paid),
            amount_remaining=to_decimal(deduction.amount_remaining),
            amount_per_cycle=(
                to_decimal(deduction.amount_per_cycle)
                if deduction.amount_per_cycle is not None
                else None
            ),
            frequency=deduction.frequency,
            start_date=deduction.start_date,
            status=deduction.status,
            last_application=last_application,
        )

    @property
    def default_amount(self) -> Decimal:
        """Per-cycle amount (or the whole balance) capped at the balance."""
        amount = self.amount_per_cycle or self.amount_remaining
        return bankers_round(min(amount, self.amount_remaining))


@dataclass(frozen=True)
class ApplyResult:
    """Outcome of one application pass."""

    applied: int = 0
    total_deduction_amount: Decimal = ZERO
    total_reimbursement_amount: Decimal = ZERO

    @property
    def net_adjustment(self) -> Decimal:
        """Effect on the RCTI total: reimbursements minus deductions."""
        return self.total_reimbursement_amount - self.total_deduction_amount


@dataclass(frozen=True)
class PendingDeduction:
    """A deduction that would be applied to the next RCTI."""

    deduction_id: UUID
    deduction_type: str
    description: str
    amount_to_apply: Decimal
    amount_remaining: Decimal
    frequency: str


@dataclass(frozen=True)
class PendingDeductions:
    """Read-only preview of due deductions for a driver and period."""

    items: list[PendingDeduction] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.items)

    @property
    def total_deductions(self) -> Decimal:
        return sum(
            (i.amount_to_apply for i in self.items if i.deduction_type == DeductionType.DEDUCTION),
            ZERO,
        )

    @property
    def total_reimbursements(self) -> Decimal:
        return sum(
            (
                i.amount_to_apply
                for i in self.items
                if i.deduction_type == DeductionType.REIMBURSEMENT
            ),
            ZERO,
        )

    @property
    def net_adjustment(self) -> Decimal:
        return self.total_reimbursements - self.total_deductions


@dataclass(frozen=True)
class AppliedDeduction:
    application_id: UUID
    deduction_id: UUID
    description: str
    deduction_type: str
    amount: Decimal
    applied_at: datetime


@dataclass(frozen=True)
class DeductionSummary:
    """Deductions and reimbursements recorded against one RCTI."""

    total_deductions: Decimal
    total_reimbursements: Decimal
    applications: list[AppliedDeduction]

    @property
    def net_adjustment(self) -> Decimal:
        return self.total_reimbursements - self.total_deductions


class DeductionService:
    """Service for the deduction ledger and its management.

    Operations:
    - apply_deductions: apply every due deduction to an RCTI being finalised
    - remove_deductions_from_rcti: reverse all applications of an RCTI
    - get_pending_deductions: preview without side effects
    - create/update/delete/cancel deductions
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    # ------------------------------------------------------------------
    # Ledger application
    # ------------------------------------------------------------------

    async def apply_deductions(
        self,
        rcti_id: UUID,
        driver_id: UUID,
        week_ending: date,
        amount_overrides: AmountOverrides | None = None,
    ) -> ApplyResult:
        """Apply all due deductions for a driver and period to an RCTI.

        ``amount_overrides`` maps deduction ids to an amount, or to ``None``
        to skip that deduction for this period with a $0 application.
        """
        due = await self.load_due_deductions(driver_id, week_ending, exclude_rcti_id=rcti_id)
        return await self.apply_due(rcti_id, due, amount_overrides)

    async def load_due_deductions(
        self,
        driver_id: UUID,
        week_ending: date,
        exclude_rcti_id: UUID | None = None,
    ) -> list[DeductionSnapshot]:
        """Read active deductions that the scheduler says are due.

        Deductions that already have an application on ``exclude_rcti_id`` are
        left out so a retried pass never applies twice to the same RCTI.
        """
        result = await self.session.execute(
            select(RctiDeduction)
            .where(
                RctiDeduction.driver_id == driver_id,
                RctiDeduction.status == DeductionStatus.ACTIVE.value,
                RctiDeduction.start_date <= week_ending,
            )
            .order_by(RctiDeduction.start_date, RctiDeduction.created_at)
            .execution_options(populate_existing=True)
        )
        deductions = list(result.scalars().all())
        if not deductions:
            return []

        ids = [d.deduction_id for d in deductions]
        last_by_id = await self._last_applications(ids)

        already_applied: set[UUID] = set()
        if exclude_rcti_id is not None:
            applied_result = await self.session.execute(
                select(RctiDeductionApplication.deduction_id).where(
                    RctiDeductionApplication.rcti_id == exclude_rcti_id,
                    RctiDeductionApplication.deduction_id.in_(ids),
                )
            )
            already_applied = set(applied_result.scalars().all())

        due: list[DeductionSnapshot] = []
        for deduction in deductions:
            if deduction.deduction_id in already_applied:
                continue
            snapshot = DeductionSnapshot.from_model(
                deduction, last_by_id.get(deduction.deduction_id)
            )
            if should_apply(snapshot, week_ending, snapshot.last_application):
                due.append(snapshot)
        return due

    async def apply_due(
        self,
        rcti_id: UUID,
        due: list[DeductionSnapshot],
        amount_overrides: AmountOverrides | None = None,
    ) -> ApplyResult:
        """Apply previously loaded snapshots to an RCTI."""
        overrides = amount_overrides or {}
        applied = 0
        total_deductions = ZERO
        total_reimbursements = ZERO

        for snapshot in due:
            amount = self.resolve_amount(snapshot, overrides)
            recorded = await self._apply_one(rcti_id, snapshot, amount)
            if not recorded or amount == 0:
                continue

            applied += 1
            if snapshot.deduction_type == DeductionType.DEDUCTION:
                total_deductions += amount
            else:
                total_reimbursements += amount

        await self.session.flush()
        logger.info(
            "Applied %d deduction(s) to RCTI %s: deductions=%s reimbursements=%s",
            applied,
            rcti_id,
            total_deductions,
            total_reimbursements,
        )
        return ApplyResult(
            applied=applied,
            total_deduction_amount=total_deductions,
            total_reimbursement_amount=total_reimbursements,
        )

    @staticmethod
    def resolve_amount(snapshot: DeductionSnapshot, overrides: AmountOverrides) -> Decimal:
        """Amount to apply this cycle, honouring overrides."""
        if snapshot.deduction_id not in overrides:
            return snapshot.default_amount

        override = overrides[snapshot.deduction_id]
        if override is None:
            return ZERO

        amount = _parse_amount(override, f"Override for deduction {snapshot.deduction_id}")
        if amount < 0:
            raise ValidationError(
                f"Override for deduction {snapshot.deduction_id} must not be negative"
            )
        return bankers_round(min(amount, snapshot.amount_remaining))

    async def _apply_one(
        self, rcti_id: UUID, snapshot: DeductionSnapshot, amount: Decimal
    ) -> bool:
        """Record one application. Returns False if a concurrent pass won."""
        if amount > 0:
            new_paid = snapshot.amount_paid + amount
            new_remaining = snapshot.total_amount - new_paid
            completed = new_remaining <= 0

            result = await self.session.execute(
                update(RctiDeduction)
                .where(
                    RctiDeduction.deduction_id == snapshot.deduction_id,
                    RctiDeduction.amount_remaining == snapshot.amount_remaining,
                    RctiDeduction.status == DeductionStatus.ACTIVE.value,
                )
                .values(
                    amount_paid=new_paid,
                    amount_remaining=new_remaining,
                    status=(
                        DeductionStatus.COMPLETED.value
                        if completed
                        else DeductionStatus.ACTIVE.value
                    ),
                    completed_at=datetime.now(timezone.utc) if completed else None,
                )
            )
            if result.rowcount == 0:
                logger.info(
                    "Deduction %s changed concurrently; not applied to RCTI %s",
                    snapshot.deduction_id,
                    rcti_id,
                )
                return False
        else:
            logger.debug("Skipping deduction %s on RCTI %s", snapshot.deduction_id, rcti_id)

        self.session.add(
            RctiDeductionApplication(
                deduction_id=snapshot.deduction_id,
                rcti_id=rcti_id,
                amount=amount,
            )
        )
        return True

    async def _last_applications(self, deduction_ids: list[UUID]) -> dict[UUID, LastApplication]:
        """Most recent application per deduction, keyed by deduction id."""
        result = await self.session.execute(
            select(
                RctiDeductionApplication.deduction_id,
                RctiDeductionApplication.amount,
                Rcti.week_ending,
            )
            .join(Rcti, Rcti.rcti_id == RctiDeductionApplication.rcti_id)
            .where(RctiDeductionApplication.deduction_id.in_(deduction_ids))
            .order_by(
                Rcti.week_ending.desc(),
                RctiDeductionApplication.applied_at.desc(),
            )
        )
        last: dict[UUID, LastApplication] = {}
        for deduction_id, amount, week_ending in result.all():
            if deduction_id not in last:
                last[deduction_id] = LastApplication(
                    period_date=week_ending, amount=to_decimal(amount)
                )
        return last

    async def remove_deductions_from_rcti(self, rcti_id: UUID) -> int:
        """Reverse every application recorded on an RCTI.

        Restores each deduction's balance, reactivates it and deletes the
        application row. Returns the number of applications reversed.
        """
        result = await self.session.execute(
            select(RctiDeductionApplication)
            .where(RctiDeductionApplication.rcti_id == rcti_id)
            .options(selectinload(RctiDeductionApplication.deduction))
            .execution_options(populate_existing=True)
        )
        applications = list(result.scalars().all())

        for application in applications:
            deduction = application.deduction
            new_paid = to_decimal(deduction.amount_paid) - to_decimal(application.amount)
            deduction.amount_paid = new_paid
            deduction.amount_remaining = to_decimal(deduction.total_amount) - new_paid
            deduction.status = DeductionStatus.ACTIVE.value
            deduction.completed_at = None
            await self.session.delete(application)

        await self.session.flush()
        if applications:
            logger.info(
                "Reversed %d deduction application(s) on RCTI %s", len(applications), rcti_id
            )
        return len(applications)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    async def get_pending_deductions(
        self, driver_id: UUID, week_ending: date
    ) -> PendingDeductions:
        """Preview what the next RCTI for this driver and period would apply."""
        due = await self.load_due_deductions(driver_id, week_ending)
        return PendingDeductions(
            items=[
                PendingDeduction(
                    deduction_id=s.deduction_id,
                    deduction_type=s.deduction_type,
                    description=s.description,
                    amount_to_apply=s.default_amount,
                    amount_remaining=s.amount_remaining,
                    frequency=s.frequency,
                )
                for s in due
            ]
        )

    async def get_deduction_summary(self, rcti_id: UUID) -> DeductionSummary:
        """Applications recorded on an RCTI with deduction/reimbursement totals."""
        result = await self.session.execute(
            select(RctiDeductionApplication)
            .where(RctiDeductionApplication.rcti_id == rcti_id)
            .options(selectinload(RctiDeductionApplication.deduction))
            .order_by(RctiDeductionApplication.applied_at)
        )
        total_deductions = ZERO
        total_reimbursements = ZERO
        applications: list[AppliedDeduction] = []
        for app in result.scalars().all():
            amount = to_decimal(app.amount)
            if app.deduction.deduction_type == DeductionType.DEDUCTION:
                total_deductions += amount
            else:
                total_reimbursements += amount
            applications.append(
                AppliedDeduction(
                    application_id=app.application_id,
                    deduction_id=app.deduction_id,
                    description=app.deduction.description,
                    deduction_type=app.deduction.deduction_type,
                    amount=amount,
                    applied_at=app.applied_at,
                )
            )
        return DeductionSummary(
            total_deductions=total_deductions,
            total_reimbursements=total_reimbursements,
            applications=applications,
        )

    # ------------------------------------------------------------------
    # Deduction management
    # ------------------------------------------------------------------

    async def get_deduction(self, deduction_id: UUID) -> RctiDeduction:
        """Load a deduction with its applications, newest first."""
        result = await self.session.execute(
            select(RctiDeduction)
            .where(RctiDeduction.deduction_id == deduction_id)
            .options(selectinload(RctiDeduction.applications))
            .execution_options(populate_existing=True)
        )
        deduction = result.scalar_one_or_none()
        if deduction is None:
            raise NotFoundError("Deduction", deduction_id)
        return deduction

    async def list_deductions(
        self,
        driver_id: UUID | None = None,
        status: str | None = DeductionStatus.ACTIVE.value,
        deduction_type: str | None = None,
    ) -> list[RctiDeduction]:
        """List deductions; only active ones unless another status is asked for."""
        query = (
            select(RctiDeduction)
            .options(selectinload(RctiDeduction.applications))
            .execution_options(populate_existing=True)
        )
        if driver_id is not None:
            query = query.where(RctiDeduction.driver_id == driver_id)
        if status is not None:
            query = query.where(
                RctiDeduction.status == parse_enum(DeductionStatus, status, "Status").value
            )
        if deduction_type is not None:
            query = query.where(
                RctiDeduction.deduction_type
                == parse_enum(DeductionType, deduction_type, "Type").value
            )
        query = query.order_by(RctiDeduction.status, RctiDeduction.start_date.desc())
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def create_deduction(
        self,
        driver_id: UUID,
        deduction_type: str,
        description: str,
        total_amount: Any,
        frequency: str,
        amount_per_cycle: Any = None,
        start_date: date | None = None,
        notes: str | None = None,
    ) -> RctiDeduction:
        """Create an active deduction or reimbursement for a driver."""
        dtype = parse_enum(DeductionType, deduction_type, "Type")
        freq = parse_enum(DeductionFrequency, frequency, "Frequency")
        if not description or not description.strip():
            raise ValidationError("Description is required")

        total = bankers_round(_parse_amount(total_amount, "Total amount"))
        if total <= 0:
            raise ValidationError("Total amount must be greater than 0")

        if freq == DeductionFrequency.ONCE:
            per_cycle = total
        else:
            if amount_per_cycle is None:
                raise ValidationError("Amount per cycle required for recurring deductions")
            per_cycle = bankers_round(_parse_amount(amount_per_cycle, "Amount per cycle"))
            if per_cycle <= 0:
                raise ValidationError("Amount per cycle required for recurring deductions")

        driver = await self.session.get(Driver, driver_id)
        if driver is None:
            raise NotFoundError("Driver", driver_id)
        if not driver.receives_rctis:
            raise ValidationError("Deductions only apply to contractors and subcontractors")

        deduction = RctiDeduction(
            driver_id=driver_id,
            deduction_type=dtype.value,
            description=description.strip(),
            total_amount=total,
            amount_paid=ZERO,
            amount_remaining=total,
            amount_per_cycle=per_cycle,
            frequency=freq.value,
            start_date=start_date or date.today(),
            status=DeductionStatus.ACTIVE.value,
            notes=notes,
        )
        self.session.add(deduction)
        await self.session.flush()
        logger.info(
            "Created %s %s for driver %s: %s %s",
            freq.value,
            dtype.value,
            driver_id,
            total,
            description,
        )
        return deduction

    async def update_deduction(self, deduction_id: UUID, **changes: Any) -> RctiDeduction:
        """Edit a deduction that has never been applied.

        Every field is validated before any is written.
        """
        deduction = await self.get_deduction(deduction_id)
        if deduction.applications:
            raise ConflictError("Cannot update deduction that has already been applied to RCTIs")

        description = changes.get("description")
        if description is not None and not description.strip():
            raise ValidationError("Description is required")
        frequency = None
        if changes.get("frequency") is not None:
            frequency = parse_enum(DeductionFrequency, changes["frequency"], "Frequency")
        total = None
        if changes.get("total_amount") is not None:
            total = bankers_round(_parse_amount(changes["total_amount"], "Total amount"))
            if total <= 0:
                raise ValidationError("Total amount must be greater than 0")
        per_cycle = None
        if changes.get("amount_per_cycle") is not None:
            per_cycle = bankers_round(_parse_amount(changes["amount_per_cycle"], "Amount per cycle"))
            if per_cycle <= 0:
                raise ValidationError("Amount per cycle must be greater than 0")

        if description is not None:
            deduction.description = description.strip()
        if "notes" in changes:
            deduction.notes = changes["notes"]
        if changes.get("start_date") is not None:
            deduction.start_date = changes["start_date"]
        if frequency is not None:
            deduction.frequency = frequency.value
        if total is not None:
            deduction.total_amount = total
            deduction.amount_remaining = total - to_decimal(deduction.amount_paid)
        if per_cycle is not None:
            deduction.amount_per_cycle = per_cycle
        if deduction.frequency == DeductionFrequency.ONCE:
            deduction.amount_per_cycle = deduction.total_amount

        await self.session.flush()
        return deduction

    async def delete_deduction(self, deduction_id: UUID) -> None:
        """Hard-delete a deduction with no application history."""
        deduction = await self.get_deduction(deduction_id)
        if deduction.applications:
            raise ConflictError(
                "Cannot delete deduction with application history; cancel it instead"
            )
        await self.session.delete(deduction)
        await self.session.flush()

    async def cancel_deduction(self, deduction_id: UUID) -> RctiDeduction:
        """Soft-cancel a deduction, keeping its history."""
        deduction = await self.get_deduction(deduction_id)
        deduction.status = DeductionStatus.CANCELLED.value
        await self.session.flush()
        logger.info("Cancelled deduction %s", deduction_id)
        return deduction

    async def remove_deduction(self, deduction_id: UUID) -> RctiDeduction | None:
        """Delete when never applied, otherwise cancel.

        Returns the cancelled deduction, or None when it was deleted.
        """
        count = await self.session.scalar(
            select(func.count())
            .select_from(RctiDeductionApplication)
            .where(RctiDeductionApplication.deduction_id == deduction_id)
        )
        if count:
            return await self.cancel_deduction(deduction_id)
        await self.delete_deduction(deduction_id)
        return None

