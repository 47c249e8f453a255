"""
Ledger Gateway

Contract for the append-only ledger that holds the authoritative record of
request creation, assignment and response. Signing and submission
mechanics belong to the gateway implementation; the engine only sees
submit(call, signing_key) -> receipt.

InMemoryLedger is a reference ledger that emulates the RTI contract. It
is used for development and tests, and exposes its event log so the
reconciler can replay it. JournalLedger is the same contract backed by an
append-only journal file, for deployments whose mirror outlives the process.
"""
import asyncio
import copy
import hashlib
import json
import logging
import os
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Tuple, runtime_checkable
from uuid import uuid4

from dateutil.parser import isoparse

from ...errors import LedgerError
from ...models.domain import utcnow

logger = logging.getLogger(__name__)


# =============================================================================
# CONTRACT VOCABULARY
# =============================================================================

# Contract methods
CREATE_REQUEST = "createRequest"
ASSIGN_REQUEST = "assignRequest"
SUBMIT_RESPONSE = "submitResponse"

# Emitted events
REQUEST_CREATED = "RequestCreated"
REQUEST_ASSIGNED = "RequestAssigned"
RESPONSE_SUBMITTED = "ResponseSubmitted"

# On-ledger status codes
STATUS_PENDING = 0
STATUS_ASSIGNED = 1
STATUS_RESPONDED = 2


@dataclass(frozen=True)
class LedgerCall:
    """A contract method invocation, prior to signing."""
    method: str
    args: Tuple[Any, ...]

    def encode(self) -> bytes:
        """Canonical encoding submitted to the ledger."""
        return json.dumps(
            {"method": self.method, "args": list(self.args)},
            sort_keys=True,
            ensure_ascii=False,
        ).encode("utf-8")


@dataclass(frozen=True)
class LedgerEvent:
    """An event emitted by a committed transaction."""
    name: str
    args: Dict[str, Any]
    transaction_id: str = ""
    committed_at: Optional[datetime] = None


@dataclass(frozen=True)
class LedgerReceipt:
    transaction_id: str
    events: Tuple[LedgerEvent, ...] = ()
    committed_at: datetime = field(default_factory=utcnow)

    def event(self, name: str) -> Optional[LedgerEvent]:
        """First emitted event with this name, if any."""
        for event in self.events:
            if event.name == name:
                return event
        return None


@runtime_checkable
class LedgerGateway(Protocol):
    async def submit(self, call: LedgerCall, signing_key: str) -> LedgerReceipt:
        """Sign and submit a call. Raises LedgerError on failure."""
        ...


# =============================================================================
# REFERENCE LEDGER
# =============================================================================

class InMemoryLedger:
    """
    Append-only in-process ledger emulating the RTI contract.

    Contract rules enforced (a violation reverts the call with LedgerError):
    - assignRequest only on a pending request
    - submitResponse only by the assigned officer of an assigned request

    Test hooks:
    - fail_next(error): the next submit raises error without committing
    - emit_request_ids=False: RequestCreated events omit requestId
    - latency: seconds to sleep before committing
    """

    def __init__(self, emit_request_ids: bool = True, latency: float = 0.0) -> None:
        self.emit_request_ids = emit_request_ids
        self.latency = latency
        self._request_count = 0
        self._requests: Dict[int, Dict[str, Any]] = {}
        self._events: List[LedgerEvent] = []
        self._transactions: Dict[str, bytes] = {}
        self._failures: List[Exception] = []
        self._lock = threading.Lock()

    def fail_next(self, error: Optional[Exception] = None) -> None:
        self._failures.append(error or LedgerError("Transaction reverted"))

    @property
    def submissions(self) -> int:
        """Number of committed transactions."""
        return len(self._transactions)

    def events(self, since: int = 0) -> List[LedgerEvent]:
        """Committed events in commit order, starting at index since."""
        return list(self._events[since:])

    async def submit(self, call: LedgerCall, signing_key: str) -> LedgerReceipt:
        if not signing_key:
            raise LedgerError("Ledger signing key not set")
        if self.latency:
            await asyncio.sleep(self.latency)

        with self._lock:
            if self._failures:
                raise self._failures.pop(0)

            encoded = call.encode()
            tx_id = "0x" + hashlib.sha256(encoded + uuid4().bytes).hexdigest()
            committed_at = utcnow()
            state = (self._request_count, copy.deepcopy(self._requests))
            event = self._apply(call, tx_id, committed_at)
            try:
                self._record(call, event)
            except OSError as e:
                self._request_count, self._requests = state
                raise LedgerError(f"Ledger journal write failed: {e}") from e
            self._transactions[tx_id] = encoded
            self._events.append(event)

        logger.info(f"Ledger committed {call.method} tx={tx_id}")
        return LedgerReceipt(transaction_id=tx_id, events=(event,), committed_at=committed_at)

    def _apply(self, call: LedgerCall, tx_id: str, committed_at: datetime) -> LedgerEvent:
        """Run a contract method against ledger state. Caller holds the lock."""
        handler = {
            CREATE_REQUEST: self._create_request,
            ASSIGN_REQUEST: self._assign_request,
            SUBMIT_RESPONSE: self._submit_response,
        }.get(call.method)
        if handler is None:
            raise LedgerError(f"Unknown contract method: {call.method}")
        event_name, event_args = handler(*call.args)
        return LedgerEvent(
            name=event_name,
            args=event_args,
            transaction_id=tx_id,
            committed_at=committed_at,
        )

    def _record(self, call: LedgerCall, event: LedgerEvent) -> None:
        """Make a commit durable before it becomes visible. No-op in memory."""

    # =========================================================================
    # CONTRACT METHODS
    # =========================================================================

    def _lookup(self, request_id: Any) -> Dict[str, Any]:
        try:
            return self._requests[int(request_id)]
        except (KeyError, TypeError, ValueError):
            raise LedgerError(f"Request does not exist: {request_id}")

    def _create_request(self, client_user_id: str, content_id: str, description: str):
        self._request_count += 1
        request_id = self._request_count
        self._requests[request_id] = {
            "clientId": client_user_id,
            "requestHash": content_id,
            "description": description,
            "status": STATUS_PENDING,
            "assignedOfficer": None,
            "responseHash": None,
        }
        args = {
            "clientId": client_user_id,
            "ipfsHash": content_id,
            "description": description,
        }
        if self.emit_request_ids:
            args["requestId"] = str(request_id)
        return REQUEST_CREATED, args

    def _assign_request(self, request_id: str, officer_user_id: str):
        record = self._lookup(request_id)
        if record["status"] != STATUS_PENDING:
            raise LedgerError("Request is not pending")
        record["status"] = STATUS_ASSIGNED
        record["assignedOfficer"] = officer_user_id
        return REQUEST_ASSIGNED, {"requestId": str(request_id), "officerUserId": officer_user_id}

    def _submit_response(self, request_id: str, officer_user_id: str, response_hash: str):
        record = self._lookup(request_id)
        if record["status"] != STATUS_ASSIGNED:
            raise LedgerError("Request is not assigned")
        if record["assignedOfficer"] != officer_user_id:
            raise LedgerError("Only the assigned officer can respond")
        record["status"] = STATUS_RESPONDED
        record["responseHash"] = response_hash
        return RESPONSE_SUBMITTED, {
            "requestId": str(request_id),
            "officerUserId": officer_user_id,
            "responseHash": response_hash,
        }


class JournalLedger(InMemoryLedger):
    """
    Reference ledger persisted as a JSON-lines journal of committed calls.

    Opening replays the journal through the contract methods, so request
    numbering and on-ledger status continue where the previous process
    stopped. Each commit is appended and fsynced before submit returns.
    """

    def __init__(self, path: Path, emit_request_ids: bool = True, latency: float = 0.0) -> None:
        super().__init__(emit_request_ids=emit_request_ids, latency=latency)
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._replay()

    def _replay(self) -> None:
        if not self.path.exists():
            return
        with self._lock, self.path.open("r", encoding="utf-8") as f:
            for line in f:
                if not line.strip():
                    continue
                entry = json.loads(line)
                call = LedgerCall(method=entry["method"], args=tuple(entry["args"]))
                event = self._apply(call, entry["transactionId"], isoparse(entry["committedAt"]))
                self._transactions[event.transaction_id] = call.encode()
                self._events.append(event)
        logger.info(f"Replayed {len(self._events)} ledger transactions from {self.path}")

    def _record(self, call: LedgerCall, event: LedgerEvent) -> None:
        line = json.dumps({
            "transactionId": event.transaction_id,
            "committedAt": event.committed_at.isoformat(),
            "method": call.method,
            "args": list(call.args),
        }, ensure_ascii=False)
        with self.path.open("a", encoding="utf-8") as f:
            f.write(line + "\n")
            f.flush()
            os.fsync(f.fileno())
