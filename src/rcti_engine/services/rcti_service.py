"""RCTI service - main orchestrator for the invoice lifecycle."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from rcti_engine.calculators.amounts import calculate_line_amounts, to_decimal
from rcti_engine.calculators.breaks import (
    BREAK_LINE_CUSTOMER,
    calculate_break_lines,
    is_break_line,
)
from rcti_engine.calculators.rates import generate_invoice_number, rate_for_truck_type
from rcti_engine.calculators.totals import (
    apply_net_adjustment,
    calculate_display_totals,
    calculate_rcti_totals,
)
from rcti_engine.calculators.types import (
    DisplayTotals,
    GstMode,
    GstStatus,
    JobChargeLine,
    parse_enum,
)
from rcti_engine.config import get_settings
from rcti_engine.errors import ConflictError, NotFoundError, ValidationError
from rcti_engine.models import Driver, Job, Rcti, RctiLine
from rcti_engine.services.deduction_service import (
    AmountOverrides,
    ApplyResult,
    DeductionService,
)
from rcti_engine.services.state_machine import RctiStateMachine, RctiStatus

logger = logging.getLogger(__name__)

PAYEE_FIELDS = ("driver_name", "driver_abn", "driver_address")


@dataclass(frozen=True)
class FinaliseResult:
    """Finalised RCTI and the deductions applied to it."""

    rcti: Rcti
    deductions: ApplyResult


def week_range(week_ending: date) -> tuple[date, date]:
    """Monday to Sunday of the week containing ``week_ending``."""
    start = week_ending - timedelta(days=week_ending.weekday())
    return start, start + timedelta(days=6)


def _unless_none(value: Any, default: Any) -> Any:
    return default if value is None else value


def job_to_charge_line(job: Job) -> JobChargeLine:
    return JobChargeLine(
        job_id=job.job_id,
        job_date=job.job_date,
        customer=job.customer,
        truck_type=job.truck_type or "",
        charged_hours=to_decimal(job.charged_hours),
        description=job.line_description,
    )


class RctiService:
    """Service for managing the RCTI lifecycle.

    Operations:
    - create_rcti: new draft from the driver's unbilled jobs for the week
    - import_jobs / add_manual_line / update_line / delete_line: draft-only edits
    - update_rcti: payee details and GST settings (GST change recalculates lines)
    - finalise: apply due deductions and lock the RCTI
    - mark_paid: terminal
    - revert_to_draft: reverse deductions and unlock an unpaid RCTI

    Every line change regenerates the unpaid-break lines and the totals.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.deductions = DeductionService(session)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def get_rcti(
        self,
        rcti_id: UUID,
        load_lines: bool = True,
        for_update: bool = False,
    ) -> Rcti:
        """Load an RCTI, optionally locking its row for the transaction."""
        query = select(Rcti).where(Rcti.rcti_id == rcti_id)
        if load_lines:
            query = query.options(selectinload(Rcti.lines))
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query.execution_options(populate_existing=True))
        rcti = result.scalar_one_or_none()
        if rcti is None:
            raise NotFoundError("RCTI", rcti_id)
        return rcti

    async def list_rctis(
        self,
        driver_id: UUID | None = None,
        status: str | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> list[Rcti]:
        """List RCTIs, newest week first."""
        query = select(Rcti).options(selectinload(Rcti.lines))
        if driver_id is not None:
            query = query.where(Rcti.driver_id == driver_id)
        if status is not None:
            query = query.where(Rcti.status == parse_enum(RctiStatus, status, "Status").value)
        if start_date is not None:
            query = query.where(Rcti.week_ending >= start_date)
        if end_date is not None:
            query = query.where(Rcti.week_ending <= end_date)
        result = await self.session.execute(query.order_by(Rcti.week_ending.desc()))
        return list(result.scalars().all())

    async def _get_driver(self, driver_id: UUID) -> Driver:
        driver = await self.session.get(Driver, driver_id)
        if driver is None:
            raise NotFoundError("Driver", driver_id)
        return driver

    # ------------------------------------------------------------------
    # Creation and line edits
    # ------------------------------------------------------------------

    async def create_rcti(
        self,
        driver_id: UUID,
        week_ending: date,
        gst_status: str | None = None,
        gst_mode: str | None = None,
        driver_name: str | None = None,
        driver_abn: str | None = None,
        driver_address: str | None = None,
        notes: str | None = None,
    ) -> Rcti:
        """Create a draft RCTI from the driver's unbilled jobs in the week."""
        driver = await self._get_driver(driver_id)
        if not driver.receives_rctis:
            raise ValidationError("RCTIs can only be created for contractors and subcontractors")

        week_start, week_end = week_range(week_ending)
        result = await self.session.execute(
            select(Job)
            .where(
                Job.driver_id == driver_id,
                Job.job_date >= week_start,
                Job.job_date <= week_end,
                Job.job_id.not_in(self._billed_job_ids()),
            )
            .order_by(Job.job_date)
        )
        jobs = list(result.scalars().all())
        if not jobs:
            raise ValidationError("No eligible jobs found for this driver and week")

        name = driver_name or driver.name
        rcti = Rcti(
            driver_id=driver_id,
            invoice_number=await self._next_invoice_number(week_ending, name),
            week_ending=week_ending,
            driver_name=name,
            driver_abn=driver_abn or driver.abn,
            driver_address=driver_address or driver.address,
            gst_status=parse_enum(GstStatus, gst_status or driver.gst_status, "GST status").value,
            gst_mode=parse_enum(GstMode, gst_mode or driver.gst_mode, "GST mode").value,
            status=RctiStatus.DRAFT.value,
            notes=notes,
            lines=[],
        )
        for job in jobs:
            rcti.lines.append(self._job_line(rcti, driver, job))

        self.session.add(rcti)
        await self._lines_changed(rcti, driver)
        logger.info(
            "Created RCTI %s for driver %s with %d job line(s)",
            rcti.invoice_number,
            driver_id,
            len(jobs),
        )
        return rcti

    async def import_jobs(self, rcti_id: UUID, job_ids: Iterable[UUID]) -> list[RctiLine]:
        """Add lines for the given jobs, ignoring jobs already on an RCTI."""
        rcti = await self.get_rcti(rcti_id)
        RctiStateMachine.ensure_lines_mutable(rcti)
        driver = await self._get_driver(rcti.driver_id)

        result = await self.session.execute(
            select(Job)
            .where(
                Job.job_id.in_(list(job_ids)),
                Job.driver_id == rcti.driver_id,
                Job.job_id.not_in(self._billed_job_ids()),
            )
            .order_by(Job.job_date)
        )
        jobs = list(result.scalars().all())
        if not jobs:
            raise ValidationError("No valid jobs found")

        new_lines = [self._job_line(rcti, driver, job) for job in jobs]
        rcti.lines.extend(new_lines)
        await self._lines_changed(rcti, driver)
        return new_lines

    async def add_manual_line(
        self,
        rcti_id: UUID,
        job_date: date,
        customer: str,
        truck_type: str,
        charged_hours: Any,
        rate_per_hour: Any,
        description: str | None = None,
    ) -> RctiLine:
        """Add a line that is not backed by a job (tolls, levies, extras)."""
        rcti = await self.get_rcti(rcti_id)
        RctiStateMachine.ensure_lines_mutable(rcti)

        if not customer or not customer.strip() or not truck_type or not truck_type.strip():
            raise ValidationError("Missing required fields for manual line entry")
        if customer.strip() == BREAK_LINE_CUSTOMER:
            raise ValidationError(f"Customer '{BREAK_LINE_CUSTOMER}' is reserved for break lines")
        hours, rate = self._validate_hours_and_rate(charged_hours, rate_per_hour)

        amounts = calculate_line_amounts(hours, rate, rcti.gst_status, rcti.gst_mode)
        line = RctiLine(
            job_id=None,
            job_date=job_date,
            customer=customer.strip(),
            truck_type=truck_type.strip(),
            description=description.strip() if description else None,
            charged_hours=hours,
            rate_per_hour=rate,
            amount_ex_gst=amounts.amount_ex_gst,
            gst_amount=amounts.gst_amount,
            amount_inc_gst=amounts.amount_inc_gst,
        )
        rcti.lines.append(line)
        await self._lines_changed(rcti)
        return line

    async def update_line(self, rcti_id: UUID, line_id: UUID, **changes: Any) -> RctiLine:
        """Edit a line of a draft RCTI and recalculate its amounts."""
        rcti = await self.get_rcti(rcti_id)
        RctiStateMachine.ensure_lines_mutable(rcti)
        line = self._find_line(rcti, line_id)
        if is_break_line(line):
            raise ConflictError("Break lines are generated and cannot be edited")

        hours, rate = self._validate_hours_and_rate(
            _unless_none(changes.get("charged_hours"), line.charged_hours),
            _unless_none(changes.get("rate_per_hour"), line.rate_per_hour),
        )
        fields = {
            name: changes[name]
            for name in ("job_date", "customer", "truck_type", "description")
            if changes.get(name) is not None
        }
        if fields.get("customer", line.customer).strip() == BREAK_LINE_CUSTOMER:
            raise ValidationError(f"Customer '{BREAK_LINE_CUSTOMER}' is reserved for break lines")

        for name, value in fields.items():
            setattr(line, name, value)
        line.charged_hours = hours
        line.rate_per_hour = rate
        self._apply_amounts(line, rcti)
        await self._lines_changed(rcti)
        return line

    async def delete_line(self, rcti_id: UUID, line_id: UUID) -> None:
        """Remove a line from a draft RCTI."""
        rcti = await self.get_rcti(rcti_id)
        RctiStateMachine.ensure_lines_mutable(rcti)
        rcti.lines.remove(self._find_line(rcti, line_id))
        await self._lines_changed(rcti)

    async def update_rcti(self, rcti_id: UUID, **changes: Any) -> Rcti:
        """Update payee details, notes or GST settings.

        Payee details and GST settings are draft-only. Changing GST status or
        mode recalculates every line and then the totals.
        """
        rcti = await self.get_rcti(rcti_id)

        gst_status = changes.get("gst_status")
        gst_mode = changes.get("gst_mode")
        payee = {k: changes[k] for k in PAYEE_FIELDS if changes.get(k) is not None}

        if gst_status is not None or gst_mode is not None or payee:
            RctiStateMachine.ensure_lines_mutable(rcti)

        for name, value in payee.items():
            setattr(rcti, name, value)
        if "notes" in changes:
            if rcti.status == RctiStatus.PAID:
                raise ConflictError("Cannot modify a paid RCTI")
            rcti.notes = changes["notes"]

        if gst_status is not None or gst_mode is not None:
            rcti.gst_status = parse_enum(GstStatus, gst_status or rcti.gst_status, "GST status").value
            rcti.gst_mode = parse_enum(GstMode, gst_mode or rcti.gst_mode, "GST mode").value
            for line in rcti.lines:
                self._apply_amounts(line, rcti)
            self._recalculate_totals(rcti)
            logger.info(
                "Recalculated %d line(s) of RCTI %s for GST %s/%s",
                len(rcti.lines),
                rcti.invoice_number,
                rcti.gst_status,
                rcti.gst_mode,
            )

        await self.session.flush()
        return rcti

    async def delete_rcti(self, rcti_id: UUID) -> None:
        """Delete a draft RCTI and its lines."""
        rcti = await self.get_rcti(rcti_id)
        if rcti.status != RctiStatus.DRAFT:
            raise ConflictError("Only draft RCTIs can be deleted")
        await self.session.delete(rcti)
        await self.session.flush()

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    async def finalise(
        self,
        rcti_id: UUID,
        amount_overrides: AmountOverrides | None = None,
    ) -> FinaliseResult:
        """Finalise a draft RCTI, applying due deductions in the same transaction.

        The stored total becomes the line total plus the net adjustment.
        """
        rcti = await self.get_rcti(rcti_id, for_update=True)
        RctiStateMachine.validate_rcti_for_transition(rcti, RctiStatus.FINALISED)

        applied = await self.deductions.apply_deductions(
            rcti.rcti_id,
            rcti.driver_id,
            rcti.week_ending,
            amount_overrides,
        )

        totals = self._recalculate_totals(rcti)
        rcti.total = apply_net_adjustment(totals.total, applied.net_adjustment)
        rcti.status = RctiStatus.FINALISED.value
        rcti.finalised_at = datetime.now(timezone.utc)
        await self.session.flush()

        logger.info(
            "Finalised RCTI %s: lines total %s, net adjustment %s, stored total %s",
            rcti.invoice_number,
            totals.total,
            applied.net_adjustment,
            rcti.total,
        )
        return FinaliseResult(rcti=rcti, deductions=applied)

    async def mark_paid(self, rcti_id: UUID) -> Rcti:
        """Mark a finalised RCTI as paid. No further changes are possible."""
        rcti = await self.get_rcti(rcti_id, load_lines=False, for_update=True)
        RctiStateMachine.validate_transition(rcti.status, RctiStatus.PAID)
        rcti.status = RctiStatus.PAID.value
        rcti.paid_at = datetime.now(timezone.utc)
        await self.session.flush()
        logger.info("RCTI %s marked paid", rcti.invoice_number)
        return rcti

    async def revert_to_draft(self, rcti_id: UUID, reason: str | None = None) -> Rcti:
        """Return an unpaid finalised RCTI to draft, reversing its deductions."""
        rcti = await self.get_rcti(rcti_id, for_update=True)
        RctiStateMachine.validate_rcti_for_transition(rcti, RctiStatus.DRAFT)

        reversed_count = await self.deductions.remove_deductions_from_rcti(rcti.rcti_id)
        self._recalculate_totals(rcti)
        rcti.status = RctiStatus.DRAFT.value
        rcti.finalised_at = None
        rcti.reverted_to_draft_at = datetime.now(timezone.utc)
        rcti.reverted_to_draft_reason = reason.strip() if reason else None
        await self.session.flush()

        logger.info(
            "Reverted RCTI %s to draft, %d deduction application(s) reversed",
            rcti.invoice_number,
            reversed_count,
        )
        return rcti

    async def get_display_totals(self, rcti_id: UUID) -> DisplayTotals:
        """Totals for rendering: original line total, net adjustment, stored total."""
        rcti = await self.get_rcti(rcti_id, load_lines=False)
        summary = await self.deductions.get_deduction_summary(rcti.rcti_id)
        return calculate_display_totals(rcti.total, summary.net_adjustment)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _billed_job_ids(self) -> Any:
        return select(RctiLine.job_id).where(RctiLine.job_id.is_not(None))

    async def _next_invoice_number(self, week_ending: date, name: str) -> str:
        prefix = f"RCTI-{week_ending:%d%m%Y}-"
        result = await self.session.execute(
            select(Rcti.invoice_number).where(Rcti.invoice_number.like(f"{prefix}%"))
        )
        return generate_invoice_number(result.scalars().all(), week_ending, name)

    def _job_line(self, rcti: Rcti, driver: Driver, job: Job) -> RctiLine:
        charge = job_to_charge_line(job)
        rate = to_decimal(
            job.driver_charge or rate_for_truck_type(charge.truck_type, driver) or 0
        )
        amounts = calculate_line_amounts(
            charge.charged_hours, rate, rcti.gst_status, rcti.gst_mode
        )
        return RctiLine(
            job_id=charge.job_id,
            job_date=charge.job_date,
            customer=charge.customer,
            truck_type=charge.truck_type,
            description=charge.description,
            charged_hours=charge.charged_hours,
            rate_per_hour=rate,
            amount_ex_gst=amounts.amount_ex_gst,
            gst_amount=amounts.gst_amount,
            amount_inc_gst=amounts.amount_inc_gst,
        )

    @staticmethod
    def _find_line(rcti: Rcti, line_id: UUID) -> RctiLine:
        for line in rcti.lines:
            if line.rcti_line_id == line_id:
                return line
        raise NotFoundError("RCTI line", line_id)

    @staticmethod
    def _validate_hours_and_rate(charged_hours: Any, rate_per_hour: Any) -> tuple[Any, Any]:
        try:
            hours = to_decimal(charged_hours)
            rate = to_decimal(rate_per_hour)
        except (TypeError, ArithmeticError):
            raise ValidationError("Invalid hours or rate") from None
        if not hours.is_finite() or not rate.is_finite() or hours < 0 or rate < 0:
            raise ValidationError("Invalid hours or rate")
        return hours, rate

    @staticmethod
    def _apply_amounts(line: RctiLine, rcti: Rcti) -> None:
        amounts = calculate_line_amounts(
            line.charged_hours, line.rate_per_hour, rcti.gst_status, rcti.gst_mode
        )
        line.amount_ex_gst = amounts.amount_ex_gst
        line.gst_amount = amounts.gst_amount
        line.amount_inc_gst = amounts.amount_inc_gst

    @staticmethod
    def _recalculate_totals(rcti: Rcti) -> Any:
        totals = calculate_rcti_totals(rcti.lines)
        rcti.subtotal = totals.subtotal
        rcti.gst = totals.gst
        rcti.total = totals.total
        return totals

    async def _lines_changed(self, rcti: Rcti, driver: Driver | None = None) -> None:
        """Regenerate break lines, then totals, then flush."""
        if driver is None:
            driver = await self._get_driver(rcti.driver_id)
        self._refresh_break_lines(rcti, driver)
        self._recalculate_totals(rcti)
        await self.session.flush()

    def _refresh_break_lines(self, rcti: Rcti, driver: Driver) -> None:
        """Replace any previous break lines with freshly calculated ones."""
        for line in [ln for ln in rcti.lines if is_break_line(ln)]:
            rcti.lines.remove(line)

        break_lines = calculate_break_lines(
            rcti.lines,
            driver.break_hours,
            rcti.gst_status,
            rcti.gst_mode,
            min_shift_hours=get_settings().break_min_shift_hours,
        )
        for brk in break_lines:
            rcti.lines.append(
                RctiLine(
                    job_id=None,
                    job_date=rcti.week_ending,
                    customer=BREAK_LINE_CUSTOMER,
                    truck_type=brk.truck_type,
                    description=brk.description,
                    charged_hours=brk.charged_hours,
                    rate_per_hour=brk.rate_per_hour,
                    amount_ex_gst=brk.amounts.amount_ex_gst,
                    gst_amount=brk.amounts.gst_amount,
                    amount_inc_gst=brk.amounts.amount_inc_gst,
                )
            )
