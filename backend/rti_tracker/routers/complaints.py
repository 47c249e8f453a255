"""
RTI Tracker - Complaints Router
Complaint filing, resolution evidence and two-party resolution.
"""
import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from pydantic import BaseModel, Field

from ..auth import get_current_user, require_admin, require_client, require_officer
from ..models.domain import COMPLAINT_TEXT_LIMIT, ArchivedComplaint, Complaint, Role, User
from ..runtime import get_complaints
from ..services.lifecycle import ComplaintResolutionProtocol
from ..services.lifecycle.predicates import complaint_by_client, complaint_by_officer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/complaints", tags=["complaints"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class FileComplaintRequest(BaseModel):
    request_id: str
    # Longer text is truncated, not rejected
    text: str = Field(..., min_length=1)


class ComplaintResponse(BaseModel):
    id: str
    request_id: str
    client_user_id: str
    officer_user_id: Optional[str] = None
    text: str
    created_at: datetime
    notified: bool
    notified_at: Optional[datetime] = None
    resolution_hash: Optional[str] = None
    resolution_filename: Optional[str] = None
    resolution_at: Optional[datetime] = None
    resolved_by_user: bool
    resolved_by_admin: bool

    @classmethod
    def from_record(cls, complaint: Complaint) -> "ComplaintResponse":
        return cls(
            id=complaint.id,
            request_id=complaint.request_id,
            client_user_id=complaint.client_user_id,
            officer_user_id=complaint.officer_user_id,
            text=complaint.text,
            created_at=complaint.created_at,
            notified=complaint.notified,
            notified_at=complaint.notified_at,
            resolution_hash=complaint.resolution_hash,
            resolution_filename=complaint.resolution_filename,
            resolution_at=complaint.resolution_at,
            resolved_by_user=complaint.resolved_by_user,
            resolved_by_admin=complaint.resolved_by_admin,
        )


class ArchivedComplaintResponse(BaseModel):
    id: str
    request_id: str
    client_user_id: str
    officer_user_id: Optional[str] = None
    complaint_created_at: datetime
    resolved_at: datetime

    @classmethod
    def from_record(cls, archived: ArchivedComplaint) -> "ArchivedComplaintResponse":
        return cls(
            id=archived.id,
            request_id=archived.request_id,
            client_user_id=archived.client_user_id,
            officer_user_id=archived.officer_user_id,
            complaint_created_at=archived.complaint_created_at,
            resolved_at=archived.resolved_at,
        )


class ResolveResponse(BaseModel):
    complaint: ComplaintResponse
    archived: Optional[ArchivedComplaintResponse] = None


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.post("", response_model=ComplaintResponse, status_code=status.HTTP_201_CREATED)
async def file_complaint(
    body: FileComplaintRequest,
    current_user: User = Depends(require_client),
    complaints: ComplaintResolutionProtocol = Depends(get_complaints),
):
    """
    File a complaint against a responded request.

    Text beyond the storage cap is truncated.
    """
    if len(body.text) > COMPLAINT_TEXT_LIMIT:
        logger.info(f"Complaint text from {current_user.id} truncated to {COMPLAINT_TEXT_LIMIT} characters")
    complaint = complaints.file_complaint(current_user.id, body.request_id, body.text)
    return ComplaintResponse.from_record(complaint)


@router.get("", response_model=List[ComplaintResponse])
async def list_complaints(
    current_user: User = Depends(get_current_user),
    complaints: ComplaintResolutionProtocol = Depends(get_complaints),
):
    """List active complaints visible to the caller."""
    if current_user.role == Role.CLIENT:
        predicate = complaint_by_client(current_user.id)
    elif current_user.role == Role.OFFICER:
        predicate = complaint_by_officer(current_user.id)
    else:
        predicate = None
    return [ComplaintResponse.from_record(c) for c in complaints.list_complaints_by(predicate)]


@router.get("/archived", response_model=List[ArchivedComplaintResponse])
async def list_archived(
    current_user: User = Depends(require_admin),
    complaints: ComplaintResolutionProtocol = Depends(get_complaints),
):
    return [ArchivedComplaintResponse.from_record(a) for a in complaints.list_archived()]


@router.post("/{complaint_id}/notify", response_model=ComplaintResponse)
async def notify_admin(
    complaint_id: str,
    current_user: User = Depends(get_current_user),
    complaints: ComplaintResolutionProtocol = Depends(get_complaints),
):
    """Flag a complaint for admin attention. Safe to call repeatedly."""
    complaint = complaints.get_complaint(complaint_id)
    if current_user.role != Role.ADMIN and complaint.client_user_id != current_user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not your complaint")
    return ComplaintResponse.from_record(complaints.notify_admin(complaint_id))


@router.post("/{complaint_id}/evidence", response_model=ComplaintResponse)
async def attach_evidence(
    complaint_id: str,
    file: UploadFile = File(...),
    current_user: User = Depends(require_officer),
    complaints: ComplaintResolutionProtocol = Depends(get_complaints),
):
    """
    Upload the officer's resolution evidence. Does not resolve the complaint.
    """
    blob = await file.read()
    complaint = await complaints.attach_resolution_evidence(
        current_user.id, complaint_id, blob, filename=file.filename,
    )
    return ComplaintResponse.from_record(complaint)


@router.post("/{complaint_id}/resolve", response_model=ResolveResponse)
async def resolve_complaint(
    complaint_id: str,
    current_user: User = Depends(get_current_user),
    complaints: ComplaintResolutionProtocol = Depends(get_complaints),
):
    """
    Acknowledge resolution as admin or as the filing client.

    The complaint is archived once both sides have acknowledged.
    """
    if current_user.role == Role.ADMIN:
        outcome = complaints.mark_resolved_by_admin(complaint_id)
    elif current_user.role == Role.CLIENT:
        outcome = complaints.mark_resolved_by_client(current_user.id, complaint_id)
    else:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Officers cannot resolve complaints")

    return ResolveResponse(
        complaint=ComplaintResponse.from_record(outcome.complaint),
        archived=ArchivedComplaintResponse.from_record(outcome.archived) if outcome.archived else None,
    )
