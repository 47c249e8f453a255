"""
RTI Tracker - Domain Records

Plain dataclasses shared by every mirror store implementation.
Stores hand out copies of these records, never live references.
Persisted form uses the camelCase keys of the original JSON documents.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from dateutil.parser import isoparse


# =============================================================================
# ENUMS
# =============================================================================

class Role(str, Enum):
    CLIENT = "client"
    OFFICER = "officer"
    ADMIN = "admin"


class RequestStatus(str, Enum):
    """Request lifecycle states. Transitions are strictly forward."""
    PENDING = "Pending"
    ASSIGNED = "Assigned"
    RESPONDED = "Responded"


class TimingKind(str, Enum):
    """Timing collections, one per lifecycle transition."""
    REQUEST = "request"
    ASSIGNMENT = "assignment"
    RESPONSE = "response"


# Text cap for complaint bodies (characters)
COMPLAINT_TEXT_LIMIT = 5000


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _dump_dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _load_dt(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = isoparse(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


# =============================================================================
# RECORDS
# =============================================================================

@dataclass
class User:
    id: str
    name: str
    external_identity_number: str
    role: Role
    credential_hash: str
    wallet_address: str = ""
    created_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "externalIdentityNumber": self.external_identity_number,
            "role": self.role.value,
            "credentialHash": self.credential_hash,
            "walletAddress": self.wallet_address,
            "createdAt": _dump_dt(self.created_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        return cls(
            id=data["id"],
            name=data["name"],
            external_identity_number=data["externalIdentityNumber"],
            role=Role(data["role"]),
            credential_hash=data["credentialHash"],
            wallet_address=data.get("walletAddress") or "",
            created_at=_load_dt(data.get("createdAt")) or utcnow(),
        )

    def copy(self) -> "User":
        return replace(self)


@dataclass
class Request:
    """
    Mirror of an on-ledger information request.

    Invariants:
    - response_hash is never set while status is PENDING
    - assigned_officer_user_id is set iff status is ASSIGNED or RESPONDED
    """
    id: str
    client_id: str
    description: str
    request_hash: str
    request_filename: Optional[str] = None
    status: RequestStatus = RequestStatus.PENDING
    assigned_officer_user_id: Optional[str] = None
    assigned_at: Optional[datetime] = None
    response_hash: Optional[str] = None
    response_filename: Optional[str] = None
    responded_at: Optional[datetime] = None
    created_at: datetime = field(default_factory=utcnow)
    ledger_tx_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "clientId": self.client_id,
            "description": self.description,
            "requestHash": self.request_hash,
            "requestFilename": self.request_filename,
            "status": self.status.value,
            "assignedOfficerUserId": self.assigned_officer_user_id,
            "assignedAt": _dump_dt(self.assigned_at),
            "responseHash": self.response_hash,
            "responseFilename": self.response_filename,
            "respondedAt": _dump_dt(self.responded_at),
            "createdAt": _dump_dt(self.created_at),
            "ledgerTxId": self.ledger_tx_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Request":
        return cls(
            id=str(data["id"]),
            client_id=data["clientId"],
            description=data.get("description") or "",
            request_hash=data["requestHash"],
            request_filename=data.get("requestFilename"),
            status=RequestStatus(data["status"]),
            assigned_officer_user_id=data.get("assignedOfficerUserId"),
            assigned_at=_load_dt(data.get("assignedAt")),
            response_hash=data.get("responseHash"),
            response_filename=data.get("responseFilename"),
            responded_at=_load_dt(data.get("respondedAt")),
            created_at=_load_dt(data.get("createdAt")) or utcnow(),
            ledger_tx_id=data.get("ledgerTxId"),
        )

    def copy(self) -> "Request":
        return replace(self)


@dataclass
class Complaint:
    id: str
    request_id: str
    client_user_id: str
    officer_user_id: Optional[str]
    text: str
    created_at: datetime = field(default_factory=utcnow)
    notified: bool = False
    notified_at: Optional[datetime] = None
    resolution_hash: Optional[str] = None
    resolution_filename: Optional[str] = None
    resolution_at: Optional[datetime] = None
    resolved_by_user: bool = False
    resolved_by_admin: bool = False

    @property
    def quorum_reached(self) -> bool:
        """Both parties have acknowledged resolution."""
        return self.resolved_by_user and self.resolved_by_admin

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "requestId": self.request_id,
            "clientUserId": self.client_user_id,
            "officerUserId": self.officer_user_id,
            "text": self.text,
            "createdAt": _dump_dt(self.created_at),
            "notified": self.notified,
            "notifiedAt": _dump_dt(self.notified_at),
            "resolutionHash": self.resolution_hash,
            "resolutionFilename": self.resolution_filename,
            "resolutionAt": _dump_dt(self.resolution_at),
            "resolvedByUser": self.resolved_by_user,
            "resolvedByAdmin": self.resolved_by_admin,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Complaint":
        return cls(
            id=data["id"],
            request_id=str(data["requestId"]),
            client_user_id=data["clientUserId"],
            officer_user_id=data.get("officerUserId"),
            text=data.get("text") or "",
            created_at=_load_dt(data.get("createdAt")) or utcnow(),
            notified=bool(data.get("notified", False)),
            notified_at=_load_dt(data.get("notifiedAt")),
            resolution_hash=data.get("resolutionHash"),
            resolution_filename=data.get("resolutionFilename"),
            resolution_at=_load_dt(data.get("resolutionAt")),
            resolved_by_user=bool(data.get("resolvedByUser", False)),
            resolved_by_admin=bool(data.get("resolvedByAdmin", False)),
        )

    def copy(self) -> "Complaint":
        return replace(self)


@dataclass(frozen=True)
class ArchivedComplaint:
    """Minimal permanent record of a complaint both parties resolved."""
    id: str
    request_id: str
    client_user_id: str
    officer_user_id: Optional[str]
    complaint_created_at: datetime
    resolved_at: datetime

    @classmethod
    def from_complaint(cls, complaint: Complaint, resolved_at: Optional[datetime] = None) -> "ArchivedComplaint":
        return cls(
            id=complaint.id,
            request_id=complaint.request_id,
            client_user_id=complaint.client_user_id,
            officer_user_id=complaint.officer_user_id,
            complaint_created_at=complaint.created_at,
            resolved_at=resolved_at or utcnow(),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "requestId": self.request_id,
            "clientUserId": self.client_user_id,
            "officerUserId": self.officer_user_id,
            "complaintCreatedAt": _dump_dt(self.complaint_created_at),
            "resolvedAt": _dump_dt(self.resolved_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ArchivedComplaint":
        return cls(
            id=data["id"],
            request_id=str(data["requestId"]),
            client_user_id=data["clientUserId"],
            officer_user_id=data.get("officerUserId"),
            complaint_created_at=_load_dt(data.get("complaintCreatedAt")) or utcnow(),
            resolved_at=_load_dt(data.get("resolvedAt")) or utcnow(),
        )


@dataclass(frozen=True)
class TimingRecord:
    """
    Duration breakdown for one lifecycle transition.

    Audit/performance data only. The state machine never reads it.
    Content fields are None for transitions that upload nothing (assignment).
    """
    request_id: str
    actor_user_id: str
    start_time: datetime
    ledger_start: datetime
    ledger_end: datetime
    end_time: datetime
    ledger_tx_id: str
    content_start: Optional[datetime] = None
    content_end: Optional[datetime] = None
    content_id: Optional[str] = None

    @staticmethod
    def _ms(start: Optional[datetime], end: Optional[datetime]) -> Optional[float]:
        if start is None or end is None:
            return None
        return round((end - start).total_seconds() * 1000.0, 3)

    @property
    def content_ms(self) -> Optional[float]:
        return self._ms(self.content_start, self.content_end)

    @property
    def ledger_ms(self) -> float:
        return self._ms(self.ledger_start, self.ledger_end)

    @property
    def total_ms(self) -> float:
        return self._ms(self.start_time, self.end_time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "requestId": self.request_id,
            "actorUserId": self.actor_user_id,
            "startTime": _dump_dt(self.start_time),
            "contentStart": _dump_dt(self.content_start),
            "contentEnd": _dump_dt(self.content_end),
            "ledgerStart": _dump_dt(self.ledger_start),
            "ledgerEnd": _dump_dt(self.ledger_end),
            "endTime": _dump_dt(self.end_time),
            "contentMs": self.content_ms,
            "ledgerMs": self.ledger_ms,
            "totalMs": self.total_ms,
            "contentId": self.content_id,
            "ledgerTxId": self.ledger_tx_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TimingRecord":
        return cls(
            request_id=str(data["requestId"]),
            actor_user_id=data["actorUserId"],
            start_time=_load_dt(data["startTime"]),
            ledger_start=_load_dt(data["ledgerStart"]),
            ledger_end=_load_dt(data["ledgerEnd"]),
            end_time=_load_dt(data["endTime"]),
            ledger_tx_id=data["ledgerTxId"],
            content_start=_load_dt(data.get("contentStart")),
            content_end=_load_dt(data.get("contentEnd")),
            content_id=data.get("contentId"),
        )
