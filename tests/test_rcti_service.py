"""Tests for the RCTI lifecycle service."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from rcti_engine.calculators.breaks import BREAK_LINE_CUSTOMER
from rcti_engine.errors import ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from rcti_engine.services.deduction_service import DeductionService
from rcti_engine.services.rcti_service import RctiService, week_range

WEEK_ENDING = date(2025, 11, 9)


def break_lines(rcti):
    return [line for line in rcti.lines if line.customer == BREAK_LINE_CUSTOMER]


def job_lines(rcti):
    return [line for line in rcti.lines if line.job_id is not None]


@pytest.fixture
def service(session) -> RctiService:
    return RctiService(session)


@pytest.fixture
async def draft(service, contractor, week_jobs):
    """Draft RCTI built from the contractor's week of jobs."""
    rcti = await service.create_rcti(contractor.driver_id, WEEK_ENDING)
    return await service.get_rcti(rcti.rcti_id)


@pytest.fixture
async def weekly_loan(session, contractor):
    return await DeductionService(session).create_deduction(
        driver_id=contractor.driver_id,
        deduction_type="deduction",
        description="Truck hire recovery",
        total_amount=Decimal("2000"),
        frequency="weekly",
        amount_per_cycle=Decimal("150"),
        start_date=date(2025, 11, 3),
    )


class TestWeekRange:
    def test_monday_to_sunday(self):
        assert week_range(date(2025, 11, 9)) == (date(2025, 11, 3), date(2025, 11, 9))
        assert week_range(date(2025, 11, 5)) == (date(2025, 11, 3), date(2025, 11, 9))


class TestCreateRcti:
    """Draft creation from jobs."""

    async def test_lines_breaks_and_totals(self, draft):
        """Two tray shifts over 7h earn one hour of unpaid break at the tray rate."""
        assert draft.status == "draft"
        assert draft.invoice_number == "RCTI-09112025-JANESMITH"
        assert draft.gst_status == "registered"
        assert draft.driver_abn == "12 345 678 901"
        assert len(job_lines(draft)) == 3

        (brk,) = break_lines(draft)
        assert brk.truck_type == "Tray"
        assert brk.charged_hours == Decimal("-1")
        assert brk.rate_per_hour == Decimal("60")
        assert brk.amount_inc_gst == Decimal("-66")
        assert brk.description == "Lunch Breaks - Tray"

        assert draft.subtotal == Decimal("1280")
        assert draft.gst == Decimal("128")
        assert draft.total == Decimal("1408")

    async def test_rates_from_truck_type(self, draft):
        rates = {line.truck_type: line.rate_per_hour for line in job_lines(draft)}

        assert rates == {"Tray": Decimal("60"), "Crane": Decimal("80")}

    async def test_job_driver_charge_wins(self, service, contractor, make_job):
        await make_job(contractor, date(2025, 11, 4), "5", truck_type="Semi", driver_charge="95")

        rcti = await service.create_rcti(contractor.driver_id, WEEK_ENDING)

        assert rcti.lines[0].rate_per_hour == Decimal("95")

    async def test_jobs_only_billed_once(self, service, contractor, draft):
        with pytest.raises(ValidationError):
            await service.create_rcti(contractor.driver_id, WEEK_ENDING)

    async def test_jobs_outside_week_ignored(self, service, contractor, make_job):
        await make_job(contractor, date(2025, 11, 2), "8")

        with pytest.raises(ValidationError):
            await service.create_rcti(contractor.driver_id, WEEK_ENDING)

    async def test_employee_rejected(self, service, employee, make_job):
        await make_job(employee, date(2025, 11, 4), "8")

        with pytest.raises(ValidationError):
            await service.create_rcti(employee.driver_id, WEEK_ENDING)

    async def test_unknown_driver(self, service):
        from uuid import uuid4

        with pytest.raises(NotFoundError):
            await service.create_rcti(uuid4(), WEEK_ENDING)

    async def test_gst_override(self, service, contractor, week_jobs):
        rcti = await service.create_rcti(
            contractor.driver_id, WEEK_ENDING, gst_status="not_registered"
        )

        assert rcti.gst == Decimal("0")
        assert rcti.total == Decimal("1280")

    async def test_invoice_number_suffix(self, service, contractor, draft, make_job):
        await service.delete_line(draft.rcti_id, job_lines(draft)[0].rcti_line_id)
        await make_job(contractor, date(2025, 11, 6), "3")

        second = await service.create_rcti(contractor.driver_id, WEEK_ENDING)

        assert second.invoice_number == "RCTI-09112025-JANESMITH-1"


class TestLineEdits:
    """Draft-only line changes regenerate breaks and totals."""

    async def test_add_manual_line(self, service, draft):
        await service.add_manual_line(
            draft.rcti_id,
            job_date=date(2025, 11, 7),
            customer="Tolls",
            truck_type="Tray",
            charged_hours=Decimal("1"),
            rate_per_hour=Decimal("25"),
            description="M1 tolls",
        )

        rcti = await service.get_rcti(draft.rcti_id)
        assert len(rcti.lines) == 5
        assert rcti.total == Decimal("1435.50")
        # Manual lines never count as shifts
        assert break_lines(rcti)[0].charged_hours == Decimal("-1")

    @pytest.mark.parametrize(
        "hours,rate",
        [(Decimal("-1"), Decimal("25")), (Decimal("1"), Decimal("-25")), ("NaN", Decimal("1"))],
    )
    async def test_manual_line_rejects_bad_amounts(self, service, draft, hours, rate):
        with pytest.raises(ValidationError):
            await service.add_manual_line(
                draft.rcti_id,
                job_date=date(2025, 11, 7),
                customer="Tolls",
                truck_type="Tray",
                charged_hours=hours,
                rate_per_hour=rate,
            )

    async def test_manual_line_requires_customer(self, service, draft):
        with pytest.raises(ValidationError):
            await service.add_manual_line(
                draft.rcti_id,
                job_date=date(2025, 11, 7),
                customer=" ",
                truck_type="Tray",
                charged_hours=1,
                rate_per_hour=1,
            )

    async def test_break_customer_reserved(self, service, draft):
        with pytest.raises(ValidationError):
            await service.add_manual_line(
                draft.rcti_id,
                job_date=date(2025, 11, 7),
                customer=BREAK_LINE_CUSTOMER,
                truck_type="Tray",
                charged_hours=1,
                rate_per_hour=1,
            )

    async def test_update_line_regenerates_breaks(self, service, draft):
        eight_hour = next(line for line in job_lines(draft) if line.charged_hours == Decimal("8"))

        await service.update_line(draft.rcti_id, eight_hour.rcti_line_id, charged_hours=Decimal("6"))

        rcti = await service.get_rcti(draft.rcti_id)
        (brk,) = break_lines(rcti)
        assert brk.charged_hours == Decimal("-0.5")
        # 360 + 540 + 320 - 30 ex GST, plus 10%
        assert rcti.subtotal == Decimal("1190")
        assert rcti.total == Decimal("1309")

    async def test_rejected_line_update_leaves_line_unchanged(self, service, draft):
        line = next(line for line in job_lines(draft) if line.charged_hours == Decimal("8"))
        customer, description = line.customer, line.description

        with pytest.raises(ValidationError):
            await service.update_line(
                draft.rcti_id,
                line.rcti_line_id,
                customer=BREAK_LINE_CUSTOMER,
                description="changed",
                charged_hours=Decimal("6"),
            )

        assert line.customer == customer
        assert line.description == description
        assert line.charged_hours == Decimal("8")

        rcti = await service.get_rcti(draft.rcti_id)
        assert len(job_lines(rcti)) == 3

    async def test_break_lines_not_editable(self, service, draft):
        (brk,) = break_lines(draft)

        with pytest.raises(ConflictError):
            await service.update_line(draft.rcti_id, brk.rcti_line_id, charged_hours=Decimal("1"))

    async def test_delete_line(self, service, draft):
        nine_hour = next(line for line in job_lines(draft) if line.charged_hours == Decimal("9"))

        await service.delete_line(draft.rcti_id, nine_hour.rcti_line_id)

        rcti = await service.get_rcti(draft.rcti_id)
        assert len(job_lines(rcti)) == 2
        assert break_lines(rcti)[0].charged_hours == Decimal("-0.5")
        assert rcti.total == Decimal("847")

    async def test_unknown_line(self, service, draft):
        from uuid import uuid4

        with pytest.raises(NotFoundError):
            await service.delete_line(draft.rcti_id, uuid4())

    async def test_import_jobs(self, service, contractor, draft, make_job):
        job = await make_job(contractor, date(2025, 11, 6), "10", truck_type="Semi", driver_charge="95")

        await service.import_jobs(draft.rcti_id, [job.job_id])

        rcti = await service.get_rcti(draft.rcti_id)
        semi_break = next(b for b in break_lines(rcti) if b.truck_type == "Semi")
        assert semi_break.charged_hours == Decimal("-0.5")
        assert semi_break.rate_per_hour == Decimal("95")

    async def test_import_already_billed_job(self, service, draft):
        with pytest.raises(ValidationError):
            await service.import_jobs(draft.rcti_id, [job_lines(draft)[0].job_id])

    async def test_gst_change_recalculates_every_line(self, service, draft):
        await service.update_rcti(draft.rcti_id, gst_status="not_registered")

        rcti = await service.get_rcti(draft.rcti_id)
        assert all(line.gst_amount == Decimal("0") for line in rcti.lines)
        assert rcti.subtotal == Decimal("1280")
        assert rcti.gst == Decimal("0")
        assert rcti.total == Decimal("1280")

    async def test_inclusive_mode(self, service, draft):
        await service.update_rcti(draft.rcti_id, gst_mode="inclusive")

        rcti = await service.get_rcti(draft.rcti_id)
        # Inclusive rates: line totals equal hours x rate
        assert rcti.total == Decimal("1280")
        assert rcti.subtotal + rcti.gst == rcti.total

    async def test_invalid_gst_status(self, service, draft):
        with pytest.raises(ValidationError):
            await service.update_rcti(draft.rcti_id, gst_status="exempt")


class TestLifecycle:
    """Finalise, pay and revert."""

    async def test_finalise_applies_deductions(self, service, draft, weekly_loan):
        result = await service.finalise(draft.rcti_id)

        assert result.deductions.applied == 1
        assert result.rcti.status == "finalised"
        assert result.rcti.finalised_at is not None
        assert result.rcti.total == Decimal("1258")

        display = await service.get_display_totals(draft.rcti_id)
        assert display.original_total == Decimal("1408")
        assert display.net_adjustment == Decimal("-150")
        assert display.adjusted_total == Decimal("1258")

    async def test_finalise_with_skip_override(self, service, draft, weekly_loan):
        result = await service.finalise(
            draft.rcti_id, amount_overrides={weekly_loan.deduction_id: None}
        )

        assert result.deductions.applied == 0
        assert result.rcti.total == Decimal("1408")

    async def test_finalise_twice_rejected(self, service, draft):
        await service.finalise(draft.rcti_id)

        with pytest.raises(InvalidTransitionError):
            await service.finalise(draft.rcti_id)

    async def test_finalise_without_lines(self, service, draft):
        for line in job_lines(draft):
            await service.delete_line(draft.rcti_id, line.rcti_line_id)

        with pytest.raises(InvalidTransitionError):
            await service.finalise(draft.rcti_id)

    async def test_finalised_lines_are_locked(self, service, draft):
        await service.finalise(draft.rcti_id)

        with pytest.raises(ConflictError):
            await service.add_manual_line(
                draft.rcti_id,
                job_date=date(2025, 11, 7),
                customer="Tolls",
                truck_type="Tray",
                charged_hours=1,
                rate_per_hour=1,
            )
        with pytest.raises(ConflictError):
            await service.update_rcti(draft.rcti_id, gst_status="not_registered")
        with pytest.raises(ConflictError):
            await service.delete_rcti(draft.rcti_id)

    async def test_notes_editable_after_finalise(self, service, draft):
        await service.finalise(draft.rcti_id)

        rcti = await service.update_rcti(draft.rcti_id, notes="Paid by EFT")

        assert rcti.notes == "Paid by EFT"

    async def test_revert_reverses_deductions(self, session, service, draft, weekly_loan):
        await service.finalise(draft.rcti_id)

        rcti = await service.revert_to_draft(draft.rcti_id, reason="Wrong hours on Tuesday")

        assert rcti.status == "draft"
        assert rcti.total == Decimal("1408")
        assert rcti.reverted_to_draft_at is not None
        assert rcti.reverted_to_draft_reason == "Wrong hours on Tuesday"
        deduction = await DeductionService(session).get_deduction(weekly_loan.deduction_id)
        assert deduction.amount_remaining == Decimal("2000")
        assert deduction.applications == []

        # Finalising again re-applies the same cycle
        result = await service.finalise(draft.rcti_id)
        assert result.rcti.total == Decimal("1258")

    async def test_mark_paid(self, service, draft):
        await service.finalise(draft.rcti_id)

        rcti = await service.mark_paid(draft.rcti_id)

        assert rcti.status == "paid"
        assert rcti.paid_at is not None

    async def test_paid_is_terminal(self, service, draft):
        await service.finalise(draft.rcti_id)
        await service.mark_paid(draft.rcti_id)

        with pytest.raises(ConflictError):
            await service.revert_to_draft(draft.rcti_id)
        with pytest.raises(ConflictError):
            await service.update_line(
                draft.rcti_id, job_lines(draft)[0].rcti_line_id, charged_hours=Decimal("1")
            )
        with pytest.raises(ConflictError):
            await service.update_rcti(draft.rcti_id, notes="too late")

    async def test_draft_cannot_be_paid(self, service, draft):
        with pytest.raises(InvalidTransitionError):
            await service.mark_paid(draft.rcti_id)

    async def test_delete_draft_releases_jobs(self, service, contractor, draft):
        await service.delete_rcti(draft.rcti_id)

        with pytest.raises(NotFoundError):
            await service.get_rcti(draft.rcti_id)
        again = await service.create_rcti(contractor.driver_id, WEEK_ENDING)
        assert len(job_lines(again)) == 3

    async def test_list_rctis(self, service, contractor, draft):
        await service.finalise(draft.rcti_id)

        assert len(await service.list_rctis(driver_id=contractor.driver_id)) == 1
        assert len(await service.list_rctis(status="finalised")) == 1
        assert await service.list_rctis(status="draft") == []
        assert await service.list_rctis(start_date=date(2025, 11, 10)) == []

        with pytest.raises(ValidationError):
            await service.list_rctis(status="void")
