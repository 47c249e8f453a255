"""
SQL Mirror Store

SQLAlchemy-backed mirror for production deployments. Each public method
runs in its own session and commits before returning; the store lock still
serializes read-modify-write sequences inside this process.

Predicates are plain Python callables, so filtered listings load the
collection and filter in memory.
"""
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...database import create_db_engine, create_session_factory, init_db
from ...errors import DuplicateUser
from ...models.db_models import (
    ArchivedComplaintDB,
    ComplaintDB,
    RequestDB,
    StoreMetaDB,
    TimingRecordDB,
    UserDB,
)
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
from .base import (
    ACKNOWLEDGEMENT_FLAGS,
    SCHEMA_VERSION,
    AcknowledgeResult,
    ComplaintPredicate,
    MirrorStore,
    RequestPredicate,
)

logger = logging.getLogger(__name__)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite drops tzinfo; everything stored is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# =============================================================================
# ROW <-> RECORD
# =============================================================================

def _user_from_row(row: UserDB) -> User:
    return User(
        id=row.id,
        name=row.name,
        external_identity_number=row.external_identity_number,
        role=row.role,
        credential_hash=row.credential_hash,
        wallet_address=row.wallet_address or "",
        created_at=_aware(row.created_at),
    )


_REQUEST_FIELDS = (
    "id", "client_id", "description", "request_hash", "request_filename", "status",
    "assigned_officer_user_id", "assigned_at", "response_hash", "response_filename",
    "responded_at", "created_at", "ledger_tx_id",
)

_COMPLAINT_FIELDS = (
    "id", "request_id", "client_user_id", "officer_user_id", "text", "created_at",
    "notified", "notified_at", "resolution_hash", "resolution_filename", "resolution_at",
    "resolved_by_user", "resolved_by_admin",
)


def _request_from_row(row: RequestDB) -> Request:
    values = {name: getattr(row, name) for name in _REQUEST_FIELDS}
    for name in ("assigned_at", "responded_at", "created_at"):
        values[name] = _aware(values[name])
    return Request(**values)


def _complaint_from_row(row: ComplaintDB) -> Complaint:
    values = {name: getattr(row, name) for name in _COMPLAINT_FIELDS}
    for name in ("created_at", "notified_at", "resolution_at"):
        values[name] = _aware(values[name])
    return Complaint(**values)


def _archived_from_row(row: ArchivedComplaintDB) -> ArchivedComplaint:
    return ArchivedComplaint(
        id=row.id,
        request_id=row.request_id,
        client_user_id=row.client_user_id,
        officer_user_id=row.officer_user_id,
        complaint_created_at=_aware(row.complaint_created_at),
        resolved_at=_aware(row.resolved_at),
    )


def _timing_from_row(row: TimingRecordDB) -> TimingRecord:
    return TimingRecord(
        request_id=row.request_id,
        actor_user_id=row.actor_user_id,
        start_time=_aware(row.start_time),
        ledger_start=_aware(row.ledger_start),
        ledger_end=_aware(row.ledger_end),
        end_time=_aware(row.end_time),
        ledger_tx_id=row.ledger_tx_id,
        content_start=_aware(row.content_start),
        content_end=_aware(row.content_end),
        content_id=row.content_id,
    )


class SqlMirrorStore(MirrorStore):
    """
    Mirror store on SQLAlchemy.

    Usage:
        store = SqlMirrorStore("postgresql://rti@localhost:5432/rti")
    """

    def __init__(self, database_url: str, echo: bool = False) -> None:
        super().__init__()
        self._engine = create_db_engine(database_url, echo=echo)
        self._session_factory = create_session_factory(self._engine)
        self._migrate()

    @contextmanager
    def _session(self) -> Iterator[Session]:
        """Session that commits on success and rolls back on any failure."""
        with self._lock:
            db = self._session_factory()
            try:
                yield db
                db.commit()
            except BaseException:
                db.rollback()
                raise
            finally:
                db.close()

    def _migrate(self) -> None:
        """Create tables and stamp the schema version on first open."""
        init_db(self._engine)
        with self._session() as db:
            meta = db.get(StoreMetaDB, 1)
            if meta is None:
                db.add(StoreMetaDB(id=1, schema_version=SCHEMA_VERSION))
                logger.info(f"Initialized SQL mirror at schema_version {SCHEMA_VERSION}")
            elif meta.schema_version > SCHEMA_VERSION:
                raise ValueError(
                    f"Database schema_version {meta.schema_version} is newer than supported {SCHEMA_VERSION}"
                )
            elif meta.schema_version < SCHEMA_VERSION:
                # Tables are created by init_db; only the stamp moves forward
                meta.schema_version = SCHEMA_VERSION

    @property
    def schema_version(self) -> int:
        with self._session() as db:
            return db.get(StoreMetaDB, 1).schema_version

    def close(self) -> None:
        self._engine.dispose()

    # =========================================================================
    # USERS
    # =========================================================================

    def create_user(self, user: User) -> User:
        try:
            with self._session() as db:
                exists = db.query(UserDB).filter(
                    UserDB.external_identity_number == user.external_identity_number
                ).first()
                if exists is not None:
                    raise DuplicateUser("External identity number already registered")
                db.add(UserDB(
                    id=user.id,
                    name=user.name,
                    external_identity_number=user.external_identity_number,
                    role=user.role,
                    credential_hash=user.credential_hash,
                    wallet_address=user.wallet_address,
                    created_at=user.created_at,
                ))
        except IntegrityError as e:
            raise DuplicateUser("External identity number already registered") from e
        return user.copy()

    def find_user_by_id(self, user_id: str) -> Optional[User]:
        with self._session() as db:
            row = db.get(UserDB, user_id)
            return _user_from_row(row) if row else None

    def find_user_by_identity(self, external_identity_number: str) -> Optional[User]:
        with self._session() as db:
            row = db.query(UserDB).filter(
                UserDB.external_identity_number == external_identity_number
            ).first()
            return _user_from_row(row) if row else None

    def list_users_by_role(self, role: Role) -> List[User]:
        with self._session() as db:
            rows = db.query(UserDB).filter(UserDB.role == role).order_by(UserDB.created_at).all()
            return [_user_from_row(r) for r in rows]

    # =========================================================================
    # REQUESTS
    # =========================================================================

    def add_request(self, request: Request) -> Request:
        with self._session() as db:
            if db.get(RequestDB, request.id) is not None:
                raise ValueError(f"Request id already present: {request.id}")
            db.add(RequestDB(**{name: getattr(request, name) for name in _REQUEST_FIELDS}))
        return request.copy()

    def get_request(self, request_id: str) -> Optional[Request]:
        with self._session() as db:
            row = db.get(RequestDB, str(request_id))
            return _request_from_row(row) if row else None

    def list_requests_by(self, predicate: Optional[RequestPredicate] = None) -> List[Request]:
        with self._session() as db:
            records = [_request_from_row(r) for r in db.query(RequestDB).order_by(RequestDB.created_at).all()]
        if predicate is None:
            return records
        return [r for r in records if predicate(r)]

    def update_request(self, request_id: str, patch: Dict[str, Any]) -> Optional[Request]:
        unknown = set(patch) - set(_REQUEST_FIELDS)
        if unknown:
            raise TypeError(f"Unknown request fields: {sorted(unknown)}")
        with self._session() as db:
            row = db.get(RequestDB, str(request_id))
            if row is None:
                return None
            for name, value in patch.items():
                setattr(row, name, value)
            db.flush()
            return _request_from_row(row)

    # =========================================================================
    # COMPLAINTS
    # =========================================================================

    def add_complaint(self, complaint: Complaint) -> Complaint:
        with self._session() as db:
            if db.get(ComplaintDB, complaint.id) is not None:
                raise ValueError(f"Complaint id already present: {complaint.id}")
            db.add(ComplaintDB(**{name: getattr(complaint, name) for name in _COMPLAINT_FIELDS}))
        return complaint.copy()

    def get_complaint(self, complaint_id: str) -> Optional[Complaint]:
        with self._session() as db:
            row = db.get(ComplaintDB, complaint_id)
            return _complaint_from_row(row) if row else None

    def list_complaints_by(self, predicate: Optional[ComplaintPredicate] = None) -> List[Complaint]:
        with self._session() as db:
            records = [
                _complaint_from_row(r)
                for r in db.query(ComplaintDB).order_by(ComplaintDB.created_at).all()
            ]
        if predicate is None:
            return records
        return [c for c in records if predicate(c)]

    def update_complaint(self, complaint_id: str, patch: Dict[str, Any]) -> Optional[Complaint]:
        unknown = set(patch) - set(_COMPLAINT_FIELDS)
        if unknown:
            raise TypeError(f"Unknown complaint fields: {sorted(unknown)}")
        with self._session() as db:
            row = db.get(ComplaintDB, complaint_id)
            if row is None:
                return None
            for name, value in patch.items():
                setattr(row, name, value)
            db.flush()
            return _complaint_from_row(row)

    def acknowledge_complaint(
        self,
        complaint_id: str,
        flag: str,
        resolved_at: Optional[datetime] = None,
    ) -> Optional[AcknowledgeResult]:
        if flag not in ACKNOWLEDGEMENT_FLAGS:
            raise ValueError(f"Not an acknowledgement flag: {flag}")
        with self._session() as db:
            row = db.get(ComplaintDB, complaint_id)
            if row is None:
                return None
            setattr(row, flag, True)
            db.flush()
            updated = _complaint_from_row(row)
            archived = None
            if updated.quorum_reached:
                archived = ArchivedComplaint.from_complaint(updated, resolved_at or utcnow())
                db.add(ArchivedComplaintDB(
                    id=archived.id,
                    request_id=archived.request_id,
                    client_user_id=archived.client_user_id,
                    officer_user_id=archived.officer_user_id,
                    complaint_created_at=archived.complaint_created_at,
                    resolved_at=archived.resolved_at,
                ))
                db.delete(row)
        return updated, archived

    def list_archived_complaints(self) -> List[ArchivedComplaint]:
        with self._session() as db:
            rows = db.query(ArchivedComplaintDB).order_by(ArchivedComplaintDB.resolved_at).all()
            return [_archived_from_row(r) for r in rows]

    # =========================================================================
    # TIMINGS
    # =========================================================================

    def append_timing(self, kind: TimingKind, record: TimingRecord) -> None:
        with self._session() as db:
            db.add(TimingRecordDB(
                kind=TimingKind(kind),
                request_id=record.request_id,
                actor_user_id=record.actor_user_id,
                start_time=record.start_time,
                content_start=record.content_start,
                content_end=record.content_end,
                ledger_start=record.ledger_start,
                ledger_end=record.ledger_end,
                end_time=record.end_time,
                content_ms=record.content_ms,
                ledger_ms=record.ledger_ms,
                total_ms=record.total_ms,
                content_id=record.content_id,
                ledger_tx_id=record.ledger_tx_id,
            ))

    def list_timings(self, kind: TimingKind) -> List[TimingRecord]:
        with self._session() as db:
            rows = (
                db.query(TimingRecordDB)
                .filter(TimingRecordDB.kind == TimingKind(kind))
                .order_by(TimingRecordDB.seq)
                .all()
            )
            return [_timing_from_row(r) for r in rows]
