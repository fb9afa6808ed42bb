"""RCTI and RCTI line models."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rcti_engine.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from rcti_engine.models.deduction import RctiDeductionApplication
    from rcti_engine.models.driver import Driver


class Rcti(Base, TimestampMixin):
    """Recipient Created Tax Invoice for one driver and week."""

    __tablename__ = "rcti"

    rcti_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    driver_id: Mapped[UUID] = mapped_column(
        ForeignKey("driver.driver_id", ondelete="RESTRICT"),
        nullable=False,
    )
    invoice_number: Mapped[str] = mapped_column(String, nullable=False)
    week_ending: Mapped[date] = mapped_column(Date, nullable=False)

    # Payee snapshot at creation time
    driver_name: Mapped[str] = mapped_column(String, nullable=False)
    driver_abn: Mapped[str | None] = mapped_column(String, nullable=True)
    driver_address: Mapped[str | None] = mapped_column(Text, nullable=True)

    gst_status: Mapped[str] = mapped_column(String, nullable=False, default="not_registered")
    gst_mode: Mapped[str] = mapped_column(String, nullable=False, default="exclusive")

    # Derived from lines; total also carries the net deduction adjustment once finalised
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    gst: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))

    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    finalised_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reverted_to_draft_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    reverted_to_draft_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("invoice_number", name="rcti_invoice_number_unique"),
        CheckConstraint(
            "status IN ('draft', 'finalised', 'paid')",
            name="rcti_status_check",
        ),
        CheckConstraint(
            "gst_status IN ('registered', 'not_registered')",
            name="rcti_gst_status_check",
        ),
        CheckConstraint(
            "gst_mode IN ('exclusive', 'inclusive')",
            name="rcti_gst_mode_check",
        ),
    )

    # Relationships
    driver: Mapped[Driver] = relationship()
    lines: Mapped[list[RctiLine]] = relationship(
        back_populates="rcti",
        cascade="all, delete-orphan",
        order_by="RctiLine.job_date",
    )
    deduction_applications: Mapped[list[RctiDeductionApplication]] = relationship(
        back_populates="rcti",
        passive_deletes="all",
    )


class RctiLine(Base, TimestampMixin):
    """A single charge line of an RCTI."""

    __tablename__ = "rcti_line"

    rcti_line_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    rcti_id: Mapped[UUID] = mapped_column(
        ForeignKey("rcti.rcti_id", ondelete="CASCADE"),
        nullable=False,
    )
    # Null for manual and break lines
    job_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("job.job_id", ondelete="SET NULL"),
        nullable=True,
    )
    job_date: Mapped[date] = mapped_column(Date, nullable=False)
    customer: Mapped[str] = mapped_column(String, nullable=False)
    truck_type: Mapped[str] = mapped_column(String, nullable=False, default="")
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Negative hours encode an unpaid-break reduction
    charged_hours: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    rate_per_hour: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    amount_ex_gst: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    gst_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    amount_inc_gst: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    rcti: Mapped[Rcti] = relationship(back_populates="lines")
