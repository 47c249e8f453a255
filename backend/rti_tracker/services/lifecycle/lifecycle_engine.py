"""
Request Lifecycle Engine

Drives a request through Pending -> Assigned -> Responded.

Every mutating operation follows the same order:
1. Validate preconditions against the mirror (no side effects on failure)
2. Upload documents to the content store (ContentStoreError)
3. Submit the contract call to the ledger (LedgerError)
4. Project the committed event into the mirror (MirrorWriteError)
5. Append a timing record (failures logged, never raised)

The ledger call completes before the mirror is touched, so a failure in
steps 2-3 leaves no local trace and can simply be retried. A failure in
step 4 is the one inconsistency window: the MirrorWriteError carries the
ledger receipt and LedgerReconciler repairs the mirror from it.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, List, Optional, Type, TypeVar
from uuid import uuid4

from ...errors import (
    ContentStoreError,
    InvalidAssignee,
    LedgerError,
    LedgerIdentifierMissing,
    MirrorWriteError,
    RequestNotFound,
    RTIError,
    Unauthorized,
)
from ...models.domain import Request, RequestStatus, Role, TimingKind, utcnow
from ..gateways.content_store import ContentStore
from ..gateways.ledger import (
    ASSIGN_REQUEST,
    CREATE_REQUEST,
    LedgerCall,
    LedgerEvent,
    LedgerGateway,
    LedgerReceipt,
    REQUEST_ASSIGNED,
    REQUEST_CREATED,
    RESPONSE_SUBMITTED,
    SUBMIT_RESPONSE,
)
from ..mirror.base import MirrorStore, RequestPredicate
from .predicates import all_of, by_content, by_status
from .reconciler import LedgerProjector, ProjectionOutcome
from .state_machine import RequestStateMachine
from .timing import TimingTelemetry, TransitionTimer

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_OVERDUE_THRESHOLD_MS = 5 * 60 * 1000
DEFAULT_DOCUMENT_NAME = "document"


@dataclass(frozen=True)
class Document:
    """A downloaded blob and the filename it was uploaded under."""
    content_id: str
    content: bytes
    filename: str


class LifecycleEngine:
    """
    Orchestrates content store, ledger and mirror for request transitions.

    Usage:
        engine = LifecycleEngine(store, content_store, ledger, signing_key="...")
        request = await engine.submit_request(client_id, blob, "Road repair budget")
        await engine.assign_request(admin_id, request.id, officer_id)
    """

    def __init__(
        self,
        store: MirrorStore,
        content_store: ContentStore,
        ledger: LedgerGateway,
        signing_key: str,
        timeout: float = 30.0,
        allow_fallback_request_id: bool = False,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.content_store = content_store
        self.ledger = ledger
        self.timeout = timeout
        self.allow_fallback_request_id = allow_fallback_request_id
        self.state_machine = RequestStateMachine()
        self.projector = LedgerProjector(store, clock)
        self.telemetry = TimingTelemetry(store)
        self._signing_key = signing_key
        self._clock = clock

    # =========================================================================
    # MUTATING OPERATIONS
    # =========================================================================

    async def submit_request(
        self,
        client_id: str,
        blob: bytes,
        description: str,
        filename: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Request:
        """
        Upload the request document, record it on the ledger and mirror it.

        Raises:
            ContentStoreError: Upload failed; nothing was recorded
            LedgerError: Ledger submission failed; mirror untouched
            LedgerIdentifierMissing: Receipt had no request id (and no fallback allowed)
            MirrorWriteError: Ledger committed but the mirror write failed
        """
        timer = TransitionTimer(self._clock)
        content_id = await self._upload(blob, timer, timeout)

        call = LedgerCall(CREATE_REQUEST, (client_id, content_id, description))
        receipt = await self._submit(call, timer, timeout)

        event = receipt.event(REQUEST_CREATED)
        if event is None:
            event = LedgerEvent(
                name=REQUEST_CREATED,
                args={"clientId": client_id, "ipfsHash": content_id, "description": description},
                transaction_id=receipt.transaction_id,
                committed_at=receipt.committed_at,
            )
        request_id = event.args.get("requestId")
        if not request_id:
            if not self.allow_fallback_request_id:
                logger.error(
                    f"Ledger tx {receipt.transaction_id} committed without a request id; "
                    f"mirror not updated for client {client_id}"
                )
                raise LedgerIdentifierMissing(
                    f"Ledger tx {receipt.transaction_id} carried no request identifier",
                    receipt=receipt,
                )
            request_id = f"local-{uuid4()}"
            logger.warning(
                f"Ledger tx {receipt.transaction_id} carried no request id, "
                f"using locally generated id {request_id}"
            )

        request = self._project(event, receipt, str(request_id), filename=filename)
        self.telemetry.record(
            TimingKind.REQUEST,
            timer.finish(request.id, client_id, receipt.transaction_id, content_id),
        )
        logger.info(f"Request {request.id} submitted by {client_id} (content {content_id})")
        return request

    async def assign_request(
        self,
        admin_id: str,
        request_id: str,
        officer_user_id: str,
        timeout: Optional[float] = None,
    ) -> Request:
        """
        Assign a pending request to an officer.

        Raises:
            Unauthorized: admin_id is not an admin
            InvalidAssignee: officer_user_id is not an officer
            RequestNotFound / InvalidTransition: request missing or not Pending
        """
        admin = self.store.find_user_by_id(admin_id)
        if admin is None or admin.role != Role.ADMIN:
            raise Unauthorized(f"User {admin_id} cannot assign requests")
        officer = self.store.find_user_by_id(officer_user_id)
        if officer is None or officer.role != Role.OFFICER:
            raise InvalidAssignee(f"{officer_user_id} is not an officer")
        request = self._get_request(request_id)
        self.state_machine.transition(request.status, "assign")

        timer = TransitionTimer(self._clock)
        call = LedgerCall(ASSIGN_REQUEST, (request.id, officer_user_id))
        receipt = await self._submit(call, timer, timeout)

        event = receipt.event(REQUEST_ASSIGNED) or LedgerEvent(
            name=REQUEST_ASSIGNED,
            args={"requestId": request.id, "officerUserId": officer_user_id},
            transaction_id=receipt.transaction_id,
            committed_at=receipt.committed_at,
        )
        updated = self._project(event, receipt, request.id)
        self.telemetry.record(
            TimingKind.ASSIGNMENT,
            timer.finish(request.id, admin_id, receipt.transaction_id),
        )
        logger.info(f"Request {request.id} assigned to {officer_user_id} by {admin_id}")
        return updated

    async def submit_response(
        self,
        officer_id: str,
        request_id: str,
        blob: bytes,
        filename: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Request:
        """
        Upload the officer's response and close the request.

        Raises:
            RequestNotFound / InvalidTransition: request missing or not Assigned
            Unauthorized: officer_id is not the assigned officer
        """
        request = self._get_request(request_id)
        self.state_machine.transition(request.status, "respond")
        if request.assigned_officer_user_id != officer_id:
            raise Unauthorized(f"Request {request.id} is not assigned to {officer_id}")

        timer = TransitionTimer(self._clock)
        content_id = await self._upload(blob, timer, timeout)

        call = LedgerCall(SUBMIT_RESPONSE, (request.id, officer_id, content_id))
        receipt = await self._submit(call, timer, timeout)

        event = receipt.event(RESPONSE_SUBMITTED) or LedgerEvent(
            name=RESPONSE_SUBMITTED,
            args={"requestId": request.id, "officerUserId": officer_id, "responseHash": content_id},
            transaction_id=receipt.transaction_id,
            committed_at=receipt.committed_at,
        )
        updated = self._project(event, receipt, request.id, filename=filename)
        self.telemetry.record(
            TimingKind.RESPONSE,
            timer.finish(request.id, officer_id, receipt.transaction_id, content_id),
        )
        logger.info(f"Request {request.id} responded by {officer_id} (content {content_id})")
        return updated

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_request(self, request_id: str) -> Request:
        return self._get_request(request_id)

    def list_requests_by(self, predicate: Optional[RequestPredicate] = None) -> List[Request]:
        return self.store.list_requests_by(predicate)

    def overdue_assigned(
        self,
        threshold_ms: int = DEFAULT_OVERDUE_THRESHOLD_MS,
        now: Optional[datetime] = None,
    ) -> List[Request]:
        """Assigned requests whose assignment age is strictly greater than threshold_ms."""
        now = now or self._clock()

        def is_overdue(request: Request) -> bool:
            if request.assigned_at is None:
                return False
            age_ms = (now - request.assigned_at).total_seconds() * 1000
            return age_ms > threshold_ms

        return self.store.list_requests_by(all_of(by_status(RequestStatus.ASSIGNED), is_overdue))

    async def fetch_document(self, content_id: str, timeout: Optional[float] = None) -> Document:
        """
        Download a blob and resolve the filename it was uploaded under.

        Raises:
            ContentNotFound: Nothing is stored under content_id
            ContentStoreError: Download failed
        """
        content = await self._call(
            self.content_store.get(content_id), ContentStoreError, "Content download", timeout,
        )
        return Document(content_id, content, self.resolve_filename(content_id))

    def resolve_filename(self, content_id: str) -> str:
        for request in self.store.list_requests_by(by_content(content_id)):
            if request.request_hash == content_id and request.request_filename:
                return request.request_filename
            if request.response_hash == content_id and request.response_filename:
                return request.response_filename
        for complaint in self.store.list_complaints_by(lambda c: c.resolution_hash == content_id):
            if complaint.resolution_filename:
                return complaint.resolution_filename
        return DEFAULT_DOCUMENT_NAME

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _get_request(self, request_id: str) -> Request:
        request = self.store.get_request(str(request_id))
        if request is None:
            raise RequestNotFound(f"Request not found: {request_id}")
        return request

    async def _call(
        self,
        awaitable: Awaitable[T],
        error_cls: Type[RTIError],
        what: str,
        timeout: Optional[float],
    ) -> T:
        """Await a gateway call, mapping timeouts and foreign errors to error_cls."""
        timeout = self.timeout if timeout is None else timeout
        try:
            return await asyncio.wait_for(awaitable, timeout)
        except asyncio.TimeoutError:
            raise error_cls(f"{what} timed out after {timeout}s")
        except error_cls:
            raise
        except Exception as e:
            raise error_cls(f"{what} failed: {e}") from e

    async def _upload(self, blob: bytes, timer: TransitionTimer, timeout: Optional[float]) -> str:
        with timer.span("content"):
            content_id = await self._call(
                self.content_store.put(blob), ContentStoreError, "Content upload", timeout,
            )
            await self._call(
                self.content_store.pin(content_id), ContentStoreError, "Content pin", timeout,
            )
        return content_id

    async def _submit(self, call: LedgerCall, timer: TransitionTimer, timeout: Optional[float]) -> LedgerReceipt:
        with timer.span("ledger"):
            return await self._call(
                self.ledger.submit(call, self._signing_key), LedgerError, f"Ledger {call.method}", timeout,
            )

    def _project(
        self,
        event: LedgerEvent,
        receipt: LedgerReceipt,
        request_id: str,
        filename: Optional[str] = None,
    ) -> Request:
        """Apply a committed event to the mirror; any failure becomes MirrorWriteError."""
        try:
            result = self.projector.apply(event, request_id=request_id, filename=filename, at=self._clock())
        except Exception as e:
            logger.error(
                f"Mirror write failed after ledger commit: tx={receipt.transaction_id} "
                f"event={event.name} request={request_id}: {e}"
            )
            raise MirrorWriteError(
                f"Ledger tx {receipt.transaction_id} committed but mirror write failed: {e}",
                receipt=receipt,
                request_id=request_id,
            ) from e

        if result.outcome not in (ProjectionOutcome.APPLIED, ProjectionOutcome.ALREADY_APPLIED):
            logger.error(
                f"Mirror projection {result.outcome.value} after ledger commit: "
                f"tx={receipt.transaction_id} event={event.name} request={request_id} {result.detail}"
            )
            raise MirrorWriteError(
                f"Ledger tx {receipt.transaction_id} committed but mirror is {result.outcome.value}",
                receipt=receipt,
                request_id=request_id,
            )
        return result.request
