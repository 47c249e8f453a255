"""
Scheduler API Routes

Internal endpoints for operator and cron jobs: ledger reconciliation and
the overdue assignment scan. Protected by the internal API key.
"""
import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from ..auth import verify_internal_key
from ..runtime import Runtime, get_runtime

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/internal", tags=["scheduler"])


class ReconcileRequest(BaseModel):
    since: int = 0


# =============================================================================
# SCHEDULER ENDPOINTS (SYSTEM-ONLY)
# =============================================================================

@router.post("/reconcile", response_model=dict)
async def run_reconcile(
    body: ReconcileRequest = ReconcileRequest(),
    runtime: Runtime = Depends(get_runtime),
    _: bool = Depends(verify_internal_key),
):
    """
    Replay ledger events into the mirror.

    Repairs requests left behind by a MirrorWriteError. Safe to run
    repeatedly; events already reflected in the mirror are skipped.
    """
    events = runtime.ledger.events(since=body.since)
    report = runtime.reconciler.replay(events)
    return {"events": len(events), **report.to_dict()}


@router.post("/overdue-scan", response_model=dict)
async def run_overdue_scan(
    runtime: Runtime = Depends(get_runtime),
    _: bool = Depends(verify_internal_key),
):
    """
    List assignments past the configured threshold.

    Recomputed on every call; nothing is persisted.
    """
    threshold_ms = runtime.settings.overdue_threshold_ms
    overdue = runtime.engine.overdue_assigned(threshold_ms)
    if overdue:
        logger.warning(f"{len(overdue)} assigned request(s) overdue (> {threshold_ms} ms)")
    return {
        "threshold_ms": threshold_ms,
        "overdue": [
            {"request_id": r.id, "officer_user_id": r.assigned_officer_user_id,
             "assigned_at": r.assigned_at.isoformat() if r.assigned_at else None}
            for r in overdue
        ],
    }
