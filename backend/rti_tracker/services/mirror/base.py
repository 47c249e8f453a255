"""
Mirror Store Contract

The mirror is a rebuildable, queryable projection of ledger state plus the
complaint workflow records that live only locally.

Contract shared by every backend:
- Reads return copies. Callers can never mutate stored records in place.
- update_* and acknowledge_complaint return None when the id is absent (no exception);
  callers check the return value to detect "not found".
- Every mutation is a read-modify-write performed under one store-scoped
  re-entrant lock. locked() exposes that lock so multi-step sequences
  (check-then-insert) run as one critical section. The lock does not roll
  anything back, so writes that must land together get their own primitive
  (acknowledge_complaint).
"""
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

from ...models.domain import (
    ArchivedComplaint,
    Complaint,
    Request,
    Role,
    TimingKind,
    TimingRecord,
    User,
)


RequestPredicate = Callable[[Request], bool]
ComplaintPredicate = Callable[[Complaint], bool]

# Current layout version of persisted mirror documents/tables
SCHEMA_VERSION = 1

# Complaint fields that count toward the two-party resolution quorum
ACKNOWLEDGEMENT_FLAGS = ("resolved_by_user", "resolved_by_admin")

# (complaint after the flag is set, archive record if quorum was reached)
AcknowledgeResult = Tuple[Complaint, Optional[ArchivedComplaint]]


class MirrorStore(ABC):
    """Abstract mirror store. See module docstring for the contract."""

    def __init__(self) -> None:
        self._lock = threading.RLock()

    @contextmanager
    def locked(self) -> Iterator["MirrorStore"]:
        """Hold the store lock across several operations."""
        with self._lock:
            yield self

    # =========================================================================
    # USERS
    # =========================================================================

    @abstractmethod
    def create_user(self, user: User) -> User:
        """Insert a user. Raises DuplicateUser on a reused external identity number."""

    @abstractmethod
    def find_user_by_id(self, user_id: str) -> Optional[User]:
        ...

    @abstractmethod
    def find_user_by_identity(self, external_identity_number: str) -> Optional[User]:
        ...

    @abstractmethod
    def list_users_by_role(self, role: Role) -> List[User]:
        ...

    # =========================================================================
    # REQUESTS
    # =========================================================================

    @abstractmethod
    def add_request(self, request: Request) -> Request:
        """Insert a request. Raises ValueError if the id is already present."""

    @abstractmethod
    def get_request(self, request_id: str) -> Optional[Request]:
        ...

    @abstractmethod
    def list_requests_by(self, predicate: Optional[RequestPredicate] = None) -> List[Request]:
        ...

    @abstractmethod
    def update_request(self, request_id: str, patch: Dict[str, Any]) -> Optional[Request]:
        """Apply patch; returns the updated copy or None if absent."""

    # =========================================================================
    # COMPLAINTS
    # =========================================================================

    @abstractmethod
    def add_complaint(self, complaint: Complaint) -> Complaint:
        ...

    @abstractmethod
    def get_complaint(self, complaint_id: str) -> Optional[Complaint]:
        ...

    @abstractmethod
    def list_complaints_by(self, predicate: Optional[ComplaintPredicate] = None) -> List[Complaint]:
        ...

    @abstractmethod
    def update_complaint(self, complaint_id: str, patch: Dict[str, Any]) -> Optional[Complaint]:
        ...

    @abstractmethod
    def acknowledge_complaint(
        self,
        complaint_id: str,
        flag: str,
        resolved_at: Optional[datetime] = None,
    ) -> Optional[AcknowledgeResult]:
        """
        Set one acknowledgement flag and, once both flags hold, archive the
        complaint. Both happen in one write: either the flag and the archive
        both persist, or neither does.

        Returns None when the complaint is not active.
        """

    @abstractmethod
    def list_archived_complaints(self) -> List[ArchivedComplaint]:
        ...

    # =========================================================================
    # TIMINGS
    # =========================================================================

    @abstractmethod
    def append_timing(self, kind: TimingKind, record: TimingRecord) -> None:
        ...

    @abstractmethod
    def list_timings(self, kind: TimingKind) -> List[TimingRecord]:
        ...

    def close(self) -> None:
        """Release backend resources."""
