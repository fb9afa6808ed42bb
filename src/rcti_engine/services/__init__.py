"""Stateful services: scheduling, the deduction ledger and the RCTI lifecycle."""

from rcti_engine.services.deduction_service import ApplyResult, DeductionService
from rcti_engine.services.rcti_service import FinaliseResult, RctiService
from rcti_engine.services.state_machine import RctiStateMachine, RctiStatus

__all__ = [
    "ApplyResult",
    "DeductionService",
    "FinaliseResult",
    "RctiService",
    "RctiStateMachine",
    "RctiStatus",
]
