"""
Ledger Projection and Reconciliation

The ledger is the durable fact; the mirror is a projection of it. Every
mirror write that follows a ledger commit goes through
LedgerProjector.apply(), which is idempotent:

- an event whose effect is already present is ALREADY_APPLIED (no write)
- an event that would move a request backwards is a CONFLICT (no write)

The engine calls apply() inline on the happy path. LedgerReconciler
replays a ledger event stream through the same projector to repair the
mirror after a MirrorWriteError, or to rebuild it from scratch.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional

from ...errors import LedgerIdentifierMissing
from ...models.domain import Request, RequestStatus, utcnow
from ..gateways.ledger import (
    LedgerEvent,
    REQUEST_ASSIGNED,
    REQUEST_CREATED,
    RESPONSE_SUBMITTED,
)
from ..mirror.base import MirrorStore

logger = logging.getLogger(__name__)


class ProjectionOutcome(str, Enum):
    APPLIED = "applied"
    ALREADY_APPLIED = "already_applied"
    MISSING = "missing"          # event targets a request the mirror does not have
    CONFLICT = "conflict"        # mirror state contradicts the event
    IGNORED = "ignored"          # event kind not projected
    UNIDENTIFIED = "unidentified"  # event carries no request id


@dataclass
class ProjectionResult:
    outcome: ProjectionOutcome
    request: Optional[Request] = None
    detail: str = ""


class LedgerProjector:
    """Projects ledger events into the mirror, idempotently."""

    def __init__(self, store: MirrorStore, clock: Callable[[], datetime] = utcnow) -> None:
        self.store = store
        self._clock = clock

    def apply(
        self,
        event: LedgerEvent,
        request_id: Optional[str] = None,
        filename: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> ProjectionResult:
        """
        Project one event.

        Args:
            event: Committed ledger event
            request_id: Overrides the id carried by the event
            filename: Original document name (not recorded on the ledger)
            at: Transition time; defaults to the ledger commit time

        Raises:
            LedgerIdentifierMissing: RequestCreated with no usable id
        """
        rid = request_id or event.args.get("requestId")
        timestamp = at or event.committed_at or self._clock()

        if event.name == REQUEST_CREATED:
            if not rid:
                raise LedgerIdentifierMissing(
                    "Ledger receipt carried no request identifier",
                )
            return self._apply_created(event, str(rid), filename, timestamp)
        if not rid:
            return ProjectionResult(ProjectionOutcome.UNIDENTIFIED, detail=f"{event.name} without requestId")
        if event.name == REQUEST_ASSIGNED:
            return self._apply_assigned(event, str(rid), timestamp)
        if event.name == RESPONSE_SUBMITTED:
            return self._apply_responded(event, str(rid), filename, timestamp)
        return ProjectionResult(ProjectionOutcome.IGNORED, detail=event.name)

    # =========================================================================
    # EVENT HANDLERS
    # =========================================================================

    def _apply_created(
        self,
        event: LedgerEvent,
        request_id: str,
        filename: Optional[str],
        timestamp: datetime,
    ) -> ProjectionResult:
        with self.store.locked():
            existing = self.store.get_request(request_id)
            if existing is not None:
                if existing.request_hash != event.args.get("ipfsHash"):
                    logger.warning(
                        f"Request {request_id} in mirror has hash {existing.request_hash}, "
                        f"ledger has {event.args.get('ipfsHash')}"
                    )
                    return ProjectionResult(ProjectionOutcome.CONFLICT, existing, "request hash differs")
                return ProjectionResult(ProjectionOutcome.ALREADY_APPLIED, existing)

            request = self.store.add_request(Request(
                id=request_id,
                client_id=event.args["clientId"],
                description=event.args.get("description", ""),
                request_hash=event.args["ipfsHash"],
                request_filename=filename,
                status=RequestStatus.PENDING,
                created_at=timestamp,
                ledger_tx_id=event.transaction_id or None,
            ))
        return ProjectionResult(ProjectionOutcome.APPLIED, request)

    def _apply_assigned(self, event: LedgerEvent, request_id: str, timestamp: datetime) -> ProjectionResult:
        officer = event.args.get("officerUserId")
        with self.store.locked():
            current = self.store.get_request(request_id)
            if current is None:
                return ProjectionResult(ProjectionOutcome.MISSING, detail=f"request {request_id}")
            if current.status == RequestStatus.PENDING:
                updated = self.store.update_request(request_id, {
                    "status": RequestStatus.ASSIGNED,
                    "assigned_officer_user_id": officer,
                    "assigned_at": timestamp,
                })
                return ProjectionResult(ProjectionOutcome.APPLIED, updated)
            if current.assigned_officer_user_id == officer:
                return ProjectionResult(ProjectionOutcome.ALREADY_APPLIED, current)
        logger.warning(
            f"Assignment of request {request_id} to {officer} conflicts with mirror "
            f"({current.status.value}, officer {current.assigned_officer_user_id})"
        )
        return ProjectionResult(ProjectionOutcome.CONFLICT, current, "assigned to another officer")

    def _apply_responded(
        self,
        event: LedgerEvent,
        request_id: str,
        filename: Optional[str],
        timestamp: datetime,
    ) -> ProjectionResult:
        response_hash = event.args.get("responseHash")
        with self.store.locked():
            current = self.store.get_request(request_id)
            if current is None:
                return ProjectionResult(ProjectionOutcome.MISSING, detail=f"request {request_id}")
            if current.status == RequestStatus.ASSIGNED:
                patch = {
                    "status": RequestStatus.RESPONDED,
                    "response_hash": response_hash,
                    "responded_at": timestamp,
                }
                if filename is not None:
                    patch["response_filename"] = filename
                updated = self.store.update_request(request_id, patch)
                return ProjectionResult(ProjectionOutcome.APPLIED, updated)
            if current.status == RequestStatus.RESPONDED and current.response_hash == response_hash:
                return ProjectionResult(ProjectionOutcome.ALREADY_APPLIED, current)
        logger.warning(
            f"Response for request {request_id} conflicts with mirror state {current.status.value}"
        )
        return ProjectionResult(ProjectionOutcome.CONFLICT, current, f"mirror status {current.status.value}")


# =============================================================================
# RECONCILER
# =============================================================================

@dataclass
class ReconciliationReport:
    counts: Dict[str, int] = field(default_factory=lambda: {o.value: 0 for o in ProjectionOutcome})
    problems: List[str] = field(default_factory=list)

    @property
    def applied(self) -> int:
        return self.counts[ProjectionOutcome.APPLIED.value]

    def to_dict(self) -> Dict[str, object]:
        return {"counts": dict(self.counts), "problems": list(self.problems)}


class LedgerReconciler:
    """
    Replays ledger events into the mirror.

    Usage:
        report = LedgerReconciler(store).replay(ledger.events())
    """

    def __init__(self, store: MirrorStore, projector: Optional[LedgerProjector] = None) -> None:
        self.store = store
        self.projector = projector or LedgerProjector(store)

    def replay(self, events: Iterable[LedgerEvent]) -> ReconciliationReport:
        report = ReconciliationReport()
        for event in events:
            try:
                result = self.projector.apply(event)
            except LedgerIdentifierMissing:
                result = ProjectionResult(ProjectionOutcome.UNIDENTIFIED, detail=f"{event.name} without requestId")
            report.counts[result.outcome.value] += 1
            if result.outcome in (
                ProjectionOutcome.CONFLICT,
                ProjectionOutcome.MISSING,
                ProjectionOutcome.UNIDENTIFIED,
            ):
                report.problems.append(
                    f"{event.transaction_id or '?'} {event.name}: {result.outcome.value} {result.detail}".strip()
                )
        logger.info(f"Reconciliation finished: {report.counts}")
        return report
