"""Deduction ledger models."""

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

from rcti_engine.models.base import Base, TimestampMixin, utcnow

if TYPE_CHECKING:
    from rcti_engine.models.driver import Driver
    from rcti_engine.models.rcti import Rcti


class RctiDeduction(Base, TimestampMixin):
    """Recurring or one-off deduction/reimbursement tracked as a depleting balance.

    Invariants:
    - amount_paid + amount_remaining == total_amount
    - status == 'completed' iff amount_remaining <= 0
    - rows with applications are cancelled, never deleted
    """

    __tablename__ = "rcti_deduction"

    deduction_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    driver_id: Mapped[UUID] = mapped_column(
        ForeignKey("driver.driver_id", ondelete="RESTRICT"),
        nullable=False,
    )
    deduction_type: Mapped[str] = mapped_column(String, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    amount_paid: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, default=Decimal("0"))
    amount_remaining: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    amount_per_cycle: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    frequency: Mapped[str] = mapped_column(String, nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "deduction_type IN ('deduction', 'reimbursement')",
            name="rcti_deduction_type_check",
        ),
        CheckConstraint(
            "frequency IN ('once', 'weekly', 'fortnightly', 'monthly')",
            name="rcti_deduction_frequency_check",
        ),
        CheckConstraint(
            "status IN ('active', 'completed', 'cancelled')",
            name="rcti_deduction_status_check",
        ),
        CheckConstraint("total_amount > 0", name="rcti_deduction_total_positive"),
    )

    driver: Mapped[Driver] = relationship()
    applications: Mapped[list[RctiDeductionApplication]] = relationship(
        back_populates="deduction",
        order_by="RctiDeductionApplication.applied_at.desc()",
        passive_deletes="all",
    )


class RctiDeductionApplication(Base):
    """Immutable record of a deduction applied (or skipped at $0) on one RCTI."""

    __tablename__ = "rcti_deduction_application"

    application_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    deduction_id: Mapped[UUID] = mapped_column(
        ForeignKey("rcti_deduction.deduction_id", ondelete="RESTRICT"),
        nullable=False,
    )
    rcti_id: Mapped[UUID] = mapped_column(
        ForeignKey("rcti.rcti_id", ondelete="RESTRICT"),
        nullable=False,
    )
    # Zero marks an explicit skip for this period
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    applied_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        UniqueConstraint("deduction_id", "rcti_id", name="rcti_deduction_application_unique"),
        CheckConstraint("amount >= 0", name="rcti_deduction_application_amount_check"),
    )

    deduction: Mapped[RctiDeduction] = relationship(back_populates="applications")
    rcti: Mapped[Rcti] = relationship(back_populates="deduction_applications")
