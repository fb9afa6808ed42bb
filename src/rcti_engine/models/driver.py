"""Driver and job models.

Jobs are owned by the job-tracking side of the business; the engine only reads
them when importing lines into a draft RCTI.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, Date, ForeignKey, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rcti_engine.models.base import Base, TimestampMixin


class Driver(Base, TimestampMixin):
    """Driver or subcontractor receiving RCTIs."""

    __tablename__ = "driver"

    driver_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    driver_type: Mapped[str] = mapped_column(String, nullable=False, default="contractor")
    abn: Mapped[str | None] = mapped_column(String, nullable=True)
    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    gst_status: Mapped[str] = mapped_column(String, nullable=False, default="not_registered")
    gst_mode: Mapped[str] = mapped_column(String, nullable=False, default="exclusive")

    # Unpaid break allowance per rostered shift, in hours
    break_hours: Mapped[Decimal | None] = mapped_column(Numeric(6, 2), nullable=True)

    # Hourly rates by truck category
    rate_tray: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    rate_crane: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    rate_semi: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    rate_semi_crane: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "driver_type IN ('contractor', 'subcontractor', 'employee')",
            name="driver_type_check",
        ),
        CheckConstraint(
            "gst_status IN ('registered', 'not_registered')",
            name="driver_gst_status_check",
        ),
        CheckConstraint(
            "gst_mode IN ('exclusive', 'inclusive')",
            name="driver_gst_mode_check",
        ),
    )

    jobs: Mapped[list[Job]] = relationship(back_populates="driver")

    @property
    def receives_rctis(self) -> bool:
        return self.driver_type != "employee"


class Job(Base, TimestampMixin):
    """Completed trucking job."""

    __tablename__ = "job"

    job_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    driver_id: Mapped[UUID] = mapped_column(
        ForeignKey("driver.driver_id", ondelete="CASCADE"),
        nullable=False,
    )
    job_date: Mapped[date] = mapped_column(Date, nullable=False)
    customer: Mapped[str] = mapped_column(String, nullable=False)
    truck_type: Mapped[str] = mapped_column(String, nullable=False, default="")
    charged_hours: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    driver_charge: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    pickup: Mapped[str | None] = mapped_column(String, nullable=True)
    dropoff: Mapped[str | None] = mapped_column(String, nullable=True)
    job_reference: Mapped[str | None] = mapped_column(String, nullable=True)

    driver: Mapped[Driver] = relationship(back_populates="jobs")

    @property
    def line_description(self) -> str:
        """Description used when the job becomes an RCTI line."""
        if self.dropoff:
            return f"{self.pickup or ''} → {self.dropoff}"
        return self.job_reference or self.pickup or ""
