"""
RTI Tracker - Requests Router
Submission, assignment, response and document download.
"""
import logging
from datetime import datetime
from typing import List, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, File, Form, HTTPException, Query, Response, UploadFile, status
from pydantic import BaseModel

from ..auth import get_current_user, require_admin, require_client, require_officer
from ..models.domain import Request, RequestStatus, Role, User
from ..runtime import get_engine
from ..services.lifecycle import LifecycleEngine
from ..services.lifecycle.lifecycle_engine import DEFAULT_DOCUMENT_NAME
from ..services.lifecycle.predicates import all_of, by_client, by_officer, by_status

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/requests", tags=["requests"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class AssignRequest(BaseModel):
    officer_user_id: str


class RequestResponse(BaseModel):
    id: str
    client_id: str
    description: str
    request_hash: str
    request_filename: Optional[str] = None
    status: RequestStatus
    assigned_officer_user_id: Optional[str] = None
    assigned_at: Optional[datetime] = None
    response_hash: Optional[str] = None
    response_filename: Optional[str] = None
    responded_at: Optional[datetime] = None
    created_at: datetime
    ledger_tx_id: Optional[str] = None

    @classmethod
    def from_record(cls, request: Request) -> "RequestResponse":
        return cls(
            id=request.id,
            client_id=request.client_id,
            description=request.description,
            request_hash=request.request_hash,
            request_filename=request.request_filename,
            status=request.status,
            assigned_officer_user_id=request.assigned_officer_user_id,
            assigned_at=request.assigned_at,
            response_hash=request.response_hash,
            response_filename=request.response_filename,
            responded_at=request.responded_at,
            created_at=request.created_at,
            ledger_tx_id=request.ledger_tx_id,
        )


def _can_view(user: User, request: Request) -> bool:
    if user.role == Role.ADMIN:
        return True
    if user.role == Role.OFFICER:
        return request.assigned_officer_user_id == user.id
    return request.client_id == user.id


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.post("", response_model=RequestResponse, status_code=status.HTTP_201_CREATED)
async def submit_request(
    description: str = Form(...),
    file: UploadFile = File(...),
    current_user: User = Depends(require_client),
    engine: LifecycleEngine = Depends(get_engine),
):
    """
    Submit a new information request with its supporting document.
    """
    blob = await file.read()
    request = await engine.submit_request(current_user.id, blob, description, filename=file.filename)
    return RequestResponse.from_record(request)


@router.get("", response_model=List[RequestResponse])
async def list_requests(
    status_filter: Optional[RequestStatus] = Query(None, alias="status"),
    current_user: User = Depends(get_current_user),
    engine: LifecycleEngine = Depends(get_engine),
):
    """
    List requests visible to the caller.

    Clients see their own requests, officers the ones assigned to them,
    admins everything.
    """
    predicates = []
    if current_user.role == Role.CLIENT:
        predicates.append(by_client(current_user.id))
    elif current_user.role == Role.OFFICER:
        predicates.append(by_officer(current_user.id))
    if status_filter is not None:
        predicates.append(by_status(status_filter))

    requests = engine.list_requests_by(all_of(*predicates))
    return [RequestResponse.from_record(r) for r in requests]


def content_disposition(filename: str) -> str:
    """
    Attachment header carrying the original name as RFC 5987 UTF-8, plus a
    printable-ASCII filename= fallback for clients that ignore filename*.
    """
    fallback = "".join(c for c in filename if 32 <= ord(c) < 127 and c not in '"\\').strip()
    if not fallback or fallback.startswith("."):
        fallback = DEFAULT_DOCUMENT_NAME + fallback
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename, safe='')}"


@router.get("/documents/{content_id}")
async def download_document(
    content_id: str,
    current_user: User = Depends(get_current_user),
    engine: LifecycleEngine = Depends(get_engine),
):
    """Download a stored document under the filename it was uploaded with."""
    document = await engine.fetch_document(content_id)
    return Response(
        content=document.content,
        media_type="application/octet-stream",
        headers={"Content-Disposition": content_disposition(document.filename)},
    )


@router.get("/{request_id}", response_model=RequestResponse)
async def get_request(
    request_id: str,
    current_user: User = Depends(get_current_user),
    engine: LifecycleEngine = Depends(get_engine),
):
    request = engine.get_request(request_id)
    if not _can_view(current_user, request):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Request not found")
    return RequestResponse.from_record(request)


@router.post("/{request_id}/assign", response_model=RequestResponse)
async def assign_request(
    request_id: str,
    body: AssignRequest,
    current_user: User = Depends(require_admin),
    engine: LifecycleEngine = Depends(get_engine),
):
    """
    Assign a pending request to an officer.
    """
    request = await engine.assign_request(current_user.id, request_id, body.officer_user_id)
    return RequestResponse.from_record(request)


@router.post("/{request_id}/respond", response_model=RequestResponse)
async def submit_response(
    request_id: str,
    file: UploadFile = File(...),
    current_user: User = Depends(require_officer),
    engine: LifecycleEngine = Depends(get_engine),
):
    """
    Upload the response document for an assigned request.
    """
    blob = await file.read()
    request = await engine.submit_response(current_user.id, request_id, blob, filename=file.filename)
    return RequestResponse.from_record(request)
