"""RTI Tracker - Models"""
from .domain import (
    Role,
    RequestStatus,
    TimingKind,
    User,
    Request,
    Complaint,
    ArchivedComplaint,
    TimingRecord,
    COMPLAINT_TEXT_LIMIT,
    utcnow,
)

__all__ = [
    "Role",
    "RequestStatus",
    "TimingKind",
    "User",
    "Request",
    "Complaint",
    "ArchivedComplaint",
    "TimingRecord",
    "COMPLAINT_TEXT_LIMIT",
    "utcnow",
]
