"""
Complaint Resolution Protocol

A client may raise one complaint against a responded request. Closing it
takes two independent acknowledgements:

    Open --+--> resolved_by_admin --+--> Archived
           +--> resolved_by_user  --+

Either flag may be set first. The flag write and the quorum check run in
one store critical section, so two acknowledgements racing each other are
both observed and the complaint is archived exactly once. Archival is one
way: an archived complaint is no longer addressable by this protocol.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional
from uuid import uuid4

from ...errors import (
    ComplaintNotFound,
    ContentStoreError,
    DuplicateComplaint,
    NotYetResponded,
    RequestNotFound,
    Unauthorized,
)
from ...models.domain import (
    COMPLAINT_TEXT_LIMIT,
    ArchivedComplaint,
    Complaint,
    RequestStatus,
    utcnow,
)
from ..gateways.content_store import ContentStore
from ..mirror.base import ComplaintPredicate, MirrorStore
from .predicates import complaint_for_request

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolutionOutcome:
    """Result of an acknowledgement: the complaint as updated, and its archive record if quorum was reached."""
    complaint: Complaint
    archived: Optional[ArchivedComplaint] = None

    @property
    def is_archived(self) -> bool:
        return self.archived is not None


def new_complaint_id() -> str:
    return f"C-{uuid4().hex[:12]}"


class ComplaintResolutionProtocol:
    def __init__(
        self,
        store: MirrorStore,
        content_store: ContentStore,
        timeout: float = 30.0,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.content_store = content_store
        self.timeout = timeout
        self._clock = clock

    # =========================================================================
    # FILING
    # =========================================================================

    def file_complaint(self, client_id: str, request_id: str, text: str) -> Complaint:
        """
        Open a complaint against a responded request.

        Raises:
            RequestNotFound: No such request
            Unauthorized: client_id did not submit the request
            NotYetResponded: Request is not Responded
            DuplicateComplaint: An active complaint already exists for it
        """
        text = (text or "")[:COMPLAINT_TEXT_LIMIT]
        with self.store.locked():
            request = self.store.get_request(str(request_id))
            if request is None:
                raise RequestNotFound(f"Request not found: {request_id}")
            if request.client_id != client_id:
                raise Unauthorized(f"Request {request.id} does not belong to {client_id}")
            if request.status != RequestStatus.RESPONDED:
                raise NotYetResponded(f"Request {request.id} is {request.status.value}")
            if self.store.list_complaints_by(complaint_for_request(request.id)):
                raise DuplicateComplaint(f"Request {request.id} already has an open complaint")

            complaint = self.store.add_complaint(Complaint(
                id=new_complaint_id(),
                request_id=request.id,
                client_user_id=client_id,
                officer_user_id=request.assigned_officer_user_id,
                text=text,
                created_at=self._clock(),
            ))
        logger.info(f"Complaint {complaint.id} filed by {client_id} on request {request.id}")
        return complaint

    def notify_admin(self, complaint_id: str) -> Complaint:
        """Flag the complaint for admin attention. Repeated calls keep the first notified_at."""
        with self.store.locked():
            complaint = self._get_active(complaint_id)
            if complaint.notified:
                return complaint
            updated = self.store.update_complaint(complaint.id, {
                "notified": True,
                "notified_at": self._clock(),
            })
        logger.info(f"Admin notified of complaint {complaint.id}")
        return updated

    async def attach_resolution_evidence(
        self,
        officer_id: str,
        complaint_id: str,
        blob: bytes,
        filename: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> Complaint:
        """
        Upload the officer's resolution document. Does not set either resolution flag.

        Raises:
            ComplaintNotFound: No active complaint with this id
            Unauthorized: officer_id is not the complaint's officer
            ContentStoreError: Upload failed; complaint unchanged
        """
        complaint = self._get_active(complaint_id)
        if complaint.officer_user_id != officer_id:
            raise Unauthorized(f"Complaint {complaint.id} is not assigned to {officer_id}")

        timeout = self.timeout if timeout is None else timeout
        try:
            content_id = await asyncio.wait_for(self.content_store.put(blob), timeout)
            await asyncio.wait_for(self.content_store.pin(content_id), timeout)
        except asyncio.TimeoutError:
            raise ContentStoreError(f"Evidence upload timed out after {timeout}s")
        except ContentStoreError:
            raise
        except Exception as e:
            raise ContentStoreError(f"Evidence upload failed: {e}") from e

        with self.store.locked():
            updated = self.store.update_complaint(complaint.id, {
                "resolution_hash": content_id,
                "resolution_filename": filename,
                "resolution_at": self._clock(),
            })
        if updated is None:
            # Archived while the upload was in flight
            raise ComplaintNotFound(f"Complaint not found: {complaint.id}")
        logger.info(f"Resolution evidence {content_id} attached to complaint {complaint.id}")
        return updated

    # =========================================================================
    # ACKNOWLEDGEMENTS
    # =========================================================================

    def mark_resolved_by_admin(self, complaint_id: str) -> ResolutionOutcome:
        return self._acknowledge(complaint_id, "resolved_by_admin")

    def mark_resolved_by_client(self, client_id: str, complaint_id: str) -> ResolutionOutcome:
        """
        Raises:
            Unauthorized: client_id did not file the complaint
        """
        return self._acknowledge(complaint_id, "resolved_by_user", client_id=client_id)

    def _acknowledge(self, complaint_id: str, flag: str, client_id: Optional[str] = None) -> ResolutionOutcome:
        with self.store.locked():
            complaint = self._get_active(complaint_id)
            if client_id is not None and complaint.client_user_id != client_id:
                raise Unauthorized(f"Complaint {complaint.id} was not filed by {client_id}")
            # Flag and quorum archive are one store write
            result = self.store.acknowledge_complaint(complaint.id, flag, self._clock())
        if result is None:
            raise ComplaintNotFound(f"Complaint not found: {complaint.id}")
        updated, archived = result
        if archived is not None:
            logger.info(f"Complaint {complaint.id} archived (request {archived.request_id})")
        else:
            logger.info(f"Complaint {complaint.id} marked {flag}")
        return ResolutionOutcome(updated, archived)

    # =========================================================================
    # QUERIES
    # =========================================================================

    def get_complaint(self, complaint_id: str) -> Complaint:
        return self._get_active(complaint_id)

    def list_complaints_by(self, predicate: Optional[ComplaintPredicate] = None) -> List[Complaint]:
        return self.store.list_complaints_by(predicate)

    def list_archived(self) -> List[ArchivedComplaint]:
        return self.store.list_archived_complaints()

    def _get_active(self, complaint_id: str) -> Complaint:
        complaint = self.store.get_complaint(complaint_id)
        if complaint is None:
            raise ComplaintNotFound(f"Complaint not found: {complaint_id}")
        return complaint
