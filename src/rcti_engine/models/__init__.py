"""ORM models."""

from rcti_engine.models.base import Base, TimestampMixin
from rcti_engine.models.deduction import RctiDeduction, RctiDeductionApplication
from rcti_engine.models.driver import Driver, Job
from rcti_engine.models.rcti import Rcti, RctiLine

__all__ = [
    "Base",
    "Driver",
    "Job",
    "Rcti",
    "RctiDeduction",
    "RctiDeductionApplication",
    "RctiLine",
    "TimestampMixin",
]
