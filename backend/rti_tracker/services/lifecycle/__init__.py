"""Request lifecycle, complaint protocol and ledger reconciliation."""
from .complaint_protocol import ComplaintResolutionProtocol, ResolutionOutcome
from .lifecycle_engine import DEFAULT_OVERDUE_THRESHOLD_MS, Document, LifecycleEngine
from .reconciler import (
    LedgerProjector,
    LedgerReconciler,
    ProjectionOutcome,
    ProjectionResult,
    ReconciliationReport,
)
from .state_machine import RequestStateMachine, check_request_invariants
from .timing import TimingTelemetry, TransitionTimer

__all__ = [
    "ComplaintResolutionProtocol",
    "DEFAULT_OVERDUE_THRESHOLD_MS",
    "Document",
    "LedgerProjector",
    "LedgerReconciler",
    "LifecycleEngine",
    "ProjectionOutcome",
    "ProjectionResult",
    "ReconciliationReport",
    "RequestStateMachine",
    "ResolutionOutcome",
    "TimingTelemetry",
    "TransitionTimer",
    "check_request_invariants",
]
