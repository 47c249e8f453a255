"""
Mirror Document Migrations

Stored documents carry a schema_version. Migrations run once, when a store
is opened, and upgrade the documents step by step to SCHEMA_VERSION.
Records are never defaulted at read time.

Version 0 is the original layout:
- db.json had only `users` and `requests`
- users carried `aadhaar` and a bare SHA-256 `signinKeyHash`
- request status was a numeric code ('0' pending, '1' assigned, '2' responded)
- request ids were numbers or timestamps
"""
import logging
from typing import Any, Callable, Dict, List, Tuple

from ...models.domain import TimingKind, TimingRecord, utcnow
from .base import SCHEMA_VERSION

logger = logging.getLogger(__name__)


# Numeric status codes used by version 0 documents and the ledger contract
LEGACY_STATUS_CODES = {
    "0": "Pending",
    "1": "Assigned",
    "2": "Responded",
}

# Prefix marking credential hashes written before bcrypt was adopted
LEGACY_CREDENTIAL_PREFIX = "sha256$"

DB_COLLECTIONS = ("users", "requests", "complaints", "resolvedComplaints")

Document = Dict[str, Any]


def empty_db_document() -> Document:
    doc: Document = {name: [] for name in DB_COLLECTIONS}
    doc["schema_version"] = SCHEMA_VERSION
    return doc


def empty_timings_document() -> Document:
    doc: Document = {kind.value: [] for kind in TimingKind}
    doc["schema_version"] = SCHEMA_VERSION
    return doc


# =============================================================================
# VERSION 0 -> 1
# =============================================================================

def _upgrade_user_v0(user: Dict[str, Any]) -> Dict[str, Any]:
    upgraded = dict(user)
    if "externalIdentityNumber" not in upgraded and "aadhaar" in upgraded:
        upgraded["externalIdentityNumber"] = str(upgraded.pop("aadhaar"))
    if "credentialHash" not in upgraded and "signinKeyHash" in upgraded:
        upgraded["credentialHash"] = LEGACY_CREDENTIAL_PREFIX + upgraded.pop("signinKeyHash")
    upgraded.setdefault("walletAddress", "")
    upgraded.setdefault("createdAt", utcnow().isoformat())
    return upgraded


def _upgrade_request_v0(request: Dict[str, Any]) -> Dict[str, Any]:
    upgraded = dict(request)
    upgraded["id"] = str(upgraded["id"])
    status = str(upgraded.get("status", "0"))
    upgraded["status"] = LEGACY_STATUS_CODES.get(status, status)
    upgraded.setdefault("createdAt", utcnow().isoformat())
    return upgraded


def _db_v0_to_v1(doc: Document) -> Document:
    upgraded = dict(doc)
    upgraded["users"] = [_upgrade_user_v0(u) for u in doc.get("users", [])]
    upgraded["requests"] = [_upgrade_request_v0(r) for r in doc.get("requests", [])]
    upgraded.setdefault("complaints", [])
    upgraded.setdefault("resolvedComplaints", [])
    return upgraded


def _timings_v0_to_v1(doc: Document) -> Document:
    """Keep parseable timing entries; park the rest under `legacy`."""
    upgraded: Document = {}
    legacy: Dict[str, List[Any]] = {}
    for kind in TimingKind:
        kept = []
        for entry in doc.get(kind.value, []):
            try:
                TimingRecord.from_dict(entry)
                kept.append(entry)
            except (KeyError, TypeError, ValueError):
                legacy.setdefault(kind.value, []).append(entry)
        upgraded[kind.value] = kept
    if legacy:
        logger.warning(f"Parked {sum(len(v) for v in legacy.values())} unparseable legacy timing entries")
        upgraded["legacy"] = legacy
    return upgraded


# from_version -> upgrade step producing from_version + 1
DB_MIGRATIONS: Dict[int, Callable[[Document], Document]] = {
    0: _db_v0_to_v1,
}

TIMINGS_MIGRATIONS: Dict[int, Callable[[Document], Document]] = {
    0: _timings_v0_to_v1,
}


def _migrate(doc: Document, steps: Dict[int, Callable[[Document], Document]], name: str) -> Tuple[Document, bool]:
    version = int(doc.get("schema_version", 0))
    if version > SCHEMA_VERSION:
        raise ValueError(
            f"{name} document has schema_version {version}, newer than supported {SCHEMA_VERSION}"
        )
    changed = False
    while version < SCHEMA_VERSION:
        step = steps[version]
        doc = step(doc)
        version += 1
        doc["schema_version"] = version
        changed = True
        logger.info(f"Migrated {name} document to schema_version {version}")
    return doc, changed


def migrate_documents(db_doc: Document, timings_doc: Document) -> Tuple[Document, Document, bool]:
    """
    Upgrade both mirror documents to the current schema version.

    Returns (db_doc, timings_doc, changed). Callers persist the documents
    when changed is True.
    """
    db_doc, db_changed = _migrate(db_doc, DB_MIGRATIONS, "db")
    timings_doc, timings_changed = _migrate(timings_doc, TIMINGS_MIGRATIONS, "timings")
    return db_doc, timings_doc, db_changed or timings_changed
