"""
In-Memory Mirror Store

Dict-backed implementation used by tests and as the working set of the
JSON document store. Records are replaced on update, never mutated in
place, so a shallow snapshot of the collections is enough to roll back a
failed write.
"""
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

from ...errors import DuplicateUser
from ...models.domain import (
    ArchivedComplaint,
    Complaint,
    Request,
    Role,
    TimingKind,
    TimingRecord,
    User,
    utcnow,
)
from .base import ACKNOWLEDGEMENT_FLAGS, AcknowledgeResult, ComplaintPredicate, MirrorStore, RequestPredicate


# Document names used by _flush()
DB_DOCUMENT = "db"
TIMINGS_DOCUMENT = "timings"


class InMemoryMirrorStore(MirrorStore):
    """Mirror store held entirely in process memory."""

    def __init__(self) -> None:
        super().__init__()
        self._users: Dict[str, User] = {}
        self._requests: Dict[str, Request] = {}
        self._complaints: Dict[str, Complaint] = {}
        self._archived: List[ArchivedComplaint] = []
        self._timings: Dict[TimingKind, List[TimingRecord]] = {kind: [] for kind in TimingKind}

    # =========================================================================
    # TRANSACTION PLUMBING
    # =========================================================================

    def _snapshot(self, document: str) -> Any:
        if document == TIMINGS_DOCUMENT:
            return {kind: list(records) for kind, records in self._timings.items()}
        return (
            dict(self._users),
            dict(self._requests),
            dict(self._complaints),
            list(self._archived),
        )

    def _restore(self, document: str, snapshot: Any) -> None:
        if document == TIMINGS_DOCUMENT:
            self._timings = snapshot
        else:
            self._users, self._requests, self._complaints, self._archived = snapshot

    def _flush(self, document: str) -> None:
        """Persist a document after a mutation. No-op in memory."""

    @contextmanager
    def _transaction(self, document: str = DB_DOCUMENT) -> Iterator[None]:
        """Mutate under the lock; roll back in-memory state if the flush fails."""
        with self._lock:
            snapshot = self._snapshot(document)
            try:
                yield
                self._flush(document)
            except BaseException:
                self._restore(document, snapshot)
                raise

    # =========================================================================
    # USERS
    # =========================================================================

    def create_user(self, user: User) -> User:
        with self._transaction():
            if self.find_user_by_identity(user.external_identity_number) is not None:
                raise DuplicateUser("External identity number already registered")
            if user.id in self._users:
                raise ValueError(f"User id already present: {user.id}")
            self._users[user.id] = user.copy()
        return user.copy()

    def find_user_by_id(self, user_id: str) -> Optional[User]:
        with self._lock:
            user = self._users.get(user_id)
            return user.copy() if user else None

    def find_user_by_identity(self, external_identity_number: str) -> Optional[User]:
        with self._lock:
            for user in self._users.values():
                if user.external_identity_number == external_identity_number:
                    return user.copy()
        return None

    def list_users_by_role(self, role: Role) -> List[User]:
        with self._lock:
            return [u.copy() for u in self._users.values() if u.role == role]

    # =========================================================================
    # REQUESTS
    # =========================================================================

    def add_request(self, request: Request) -> Request:
        with self._transaction():
            if request.id in self._requests:
                raise ValueError(f"Request id already present: {request.id}")
            self._requests[request.id] = request.copy()
        return request.copy()

    def get_request(self, request_id: str) -> Optional[Request]:
        with self._lock:
            request = self._requests.get(str(request_id))
            return request.copy() if request else None

    def list_requests_by(self, predicate: Optional[RequestPredicate] = None) -> List[Request]:
        with self._lock:
            records = [r.copy() for r in self._requests.values()]
        if predicate is None:
            return records
        return [r for r in records if predicate(r)]

    def update_request(self, request_id: str, patch: Dict[str, Any]) -> Optional[Request]:
        with self._transaction():
            current = self._requests.get(str(request_id))
            if current is None:
                return None
            updated = replace(current, **patch)
            self._requests[current.id] = updated
        return updated.copy()

    # =========================================================================
    # COMPLAINTS
    # =========================================================================

    def add_complaint(self, complaint: Complaint) -> Complaint:
        with self._transaction():
            if complaint.id in self._complaints:
                raise ValueError(f"Complaint id already present: {complaint.id}")
            self._complaints[complaint.id] = complaint.copy()
        return complaint.copy()

    def get_complaint(self, complaint_id: str) -> Optional[Complaint]:
        with self._lock:
            complaint = self._complaints.get(complaint_id)
            return complaint.copy() if complaint else None

    def list_complaints_by(self, predicate: Optional[ComplaintPredicate] = None) -> List[Complaint]:
        with self._lock:
            records = [c.copy() for c in self._complaints.values()]
        if predicate is None:
            return records
        return [c for c in records if predicate(c)]

    def update_complaint(self, complaint_id: str, patch: Dict[str, Any]) -> Optional[Complaint]:
        with self._transaction():
            current = self._complaints.get(complaint_id)
            if current is None:
                return None
            updated = replace(current, **patch)
            self._complaints[complaint_id] = updated
        return updated.copy()

    def acknowledge_complaint(
        self,
        complaint_id: str,
        flag: str,
        resolved_at: Optional[datetime] = None,
    ) -> Optional[AcknowledgeResult]:
        if flag not in ACKNOWLEDGEMENT_FLAGS:
            raise ValueError(f"Not an acknowledgement flag: {flag}")
        with self._transaction():
            current = self._complaints.get(complaint_id)
            if current is None:
                return None
            updated = replace(current, **{flag: True})
            archived = None
            if updated.quorum_reached:
                del self._complaints[complaint_id]
                archived = ArchivedComplaint.from_complaint(updated, resolved_at or utcnow())
                self._archived.append(archived)
            else:
                self._complaints[complaint_id] = updated
        return updated.copy(), archived

    def list_archived_complaints(self) -> List[ArchivedComplaint]:
        with self._lock:
            return list(self._archived)

    # =========================================================================
    # TIMINGS
    # =========================================================================

    def append_timing(self, kind: TimingKind, record: TimingRecord) -> None:
        with self._transaction(TIMINGS_DOCUMENT):
            self._timings[TimingKind(kind)].append(record)

    def list_timings(self, kind: TimingKind) -> List[TimingRecord]:
        with self._lock:
            return list(self._timings[TimingKind(kind)])
