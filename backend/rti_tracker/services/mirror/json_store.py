"""
JSON Document Mirror Store

File-backed mirror using two JSON documents under a data directory:

    db.json       users, requests, complaints, resolvedComplaints
    timings.json  request, assignment, response

Every mutation rewrites the whole affected document (temp file + rename).
This caps practical scale to what fits comfortably in one document; use
SqlMirrorStore beyond that.
"""
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict

from ...models.domain import (
    ArchivedComplaint,
    Complaint,
    Request,
    TimingKind,
    TimingRecord,
    User,
)
from .base import SCHEMA_VERSION
from .memory import DB_DOCUMENT, TIMINGS_DOCUMENT, InMemoryMirrorStore
from .migrations import empty_db_document, empty_timings_document, migrate_documents

logger = logging.getLogger(__name__)


class JsonMirrorStore(InMemoryMirrorStore):
    """
    Mirror store persisted as whole JSON documents.

    Usage:
        store = JsonMirrorStore(Path("data"))
        store.create_user(user)
        store.list_requests_by(by_status(RequestStatus.PENDING))
    """

    DB_FILENAME = "db.json"
    TIMINGS_FILENAME = "timings.json"

    def __init__(self, data_dir: Path) -> None:
        super().__init__()
        self._data_dir = Path(data_dir)
        self._db_path = self._data_dir / self.DB_FILENAME
        self._timings_path = self._data_dir / self.TIMINGS_FILENAME
        self._legacy_timings: Dict[str, Any] = {}
        self._open()

    @property
    def db_path(self) -> Path:
        return self._db_path

    @property
    def timings_path(self) -> Path:
        return self._timings_path

    # =========================================================================
    # LOAD / MIGRATE
    # =========================================================================

    def _read(self, path: Path, default: Dict[str, Any]) -> Dict[str, Any]:
        if not path.exists():
            return default
        raw = path.read_text(encoding="utf-8")
        return json.loads(raw) if raw.strip() else default

    def _open(self) -> None:
        self._data_dir.mkdir(parents=True, exist_ok=True)
        fresh = not self._db_path.exists() or not self._timings_path.exists()

        # A missing file is an empty version-0 document, so it still migrates
        db_doc = self._read(self._db_path, {"users": [], "requests": []})
        timings_doc = self._read(self._timings_path, {})

        db_doc, timings_doc, changed = migrate_documents(db_doc, timings_doc)

        with self._lock:
            self._users = {u["id"]: User.from_dict(u) for u in db_doc["users"]}
            self._requests = {str(r["id"]): Request.from_dict(r) for r in db_doc["requests"]}
            self._complaints = {c["id"]: Complaint.from_dict(c) for c in db_doc["complaints"]}
            self._archived = [ArchivedComplaint.from_dict(a) for a in db_doc["resolvedComplaints"]]
            self._timings = {
                kind: [TimingRecord.from_dict(t) for t in timings_doc.get(kind.value, [])]
                for kind in TimingKind
            }
            self._legacy_timings = timings_doc.get("legacy", {})

            if changed or fresh:
                self._flush(DB_DOCUMENT)
                self._flush(TIMINGS_DOCUMENT)

        logger.info(
            f"Opened JSON mirror at {self._data_dir}: {len(self._users)} users, "
            f"{len(self._requests)} requests, {len(self._complaints)} active complaints"
        )

    # =========================================================================
    # PERSISTENCE
    # =========================================================================

    def _db_document(self) -> Dict[str, Any]:
        doc = empty_db_document()
        doc["users"] = [u.to_dict() for u in self._users.values()]
        doc["requests"] = [r.to_dict() for r in self._requests.values()]
        doc["complaints"] = [c.to_dict() for c in self._complaints.values()]
        doc["resolvedComplaints"] = [a.to_dict() for a in self._archived]
        return doc

    def _timings_document(self) -> Dict[str, Any]:
        doc = empty_timings_document()
        for kind in TimingKind:
            doc[kind.value] = [t.to_dict() for t in self._timings[kind]]
        if self._legacy_timings:
            doc["legacy"] = self._legacy_timings
        return doc

    def _write_atomic(self, path: Path, doc: Dict[str, Any]) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=path.name, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(doc, f, indent=2, ensure_ascii=False)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

    def _flush(self, document: str) -> None:
        if document == TIMINGS_DOCUMENT:
            self._write_atomic(self._timings_path, self._timings_document())
        else:
            self._write_atomic(self._db_path, self._db_document())


def read_schema_version(path: Path) -> int:
    """Schema version stored in a mirror document (0 if absent)."""
    with Path(path).open("r", encoding="utf-8") as f:
        return int(json.load(f).get("schema_version", 0))


__all__ = ["JsonMirrorStore", "read_schema_version", "SCHEMA_VERSION"]
