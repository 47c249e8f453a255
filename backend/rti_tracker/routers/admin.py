"""
RTI Tracker - Admin Router
Officer directory, dashboard buckets, overdue assignments and timing summaries.
"""
import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from ..auth import require_admin
from ..models.domain import RequestStatus, Role, TimingKind, User
from ..runtime import Runtime, get_engine, get_runtime, get_users
from ..services.lifecycle import LifecycleEngine
from ..services.users import UserRegistry
from .auth import RegisterResponse, UserResponse
from .requests import RequestResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])


class OfficerCreateRequest(BaseModel):
    name: str = Field(..., min_length=1)
    external_identity_number: str = Field(..., min_length=1)
    wallet_address: Optional[str] = None


class DashboardResponse(BaseModel):
    pending: List[RequestResponse]
    assigned: List[RequestResponse]
    responded: List[RequestResponse]
    overdue: List[str]
    officers: List[UserResponse]


@router.get("/officers", response_model=List[UserResponse])
async def list_officers(
    admin: User = Depends(require_admin),
    users: UserRegistry = Depends(get_users),
):
    return [UserResponse.from_record(u) for u in users.list_officers()]


@router.post("/officers", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
async def add_officer(
    request: OfficerCreateRequest,
    admin: User = Depends(require_admin),
    users: UserRegistry = Depends(get_users),
):
    """
    Register an officer and return their one-time sign-in key.
    """
    officer, signin_key = users.register_user(
        request.name,
        request.external_identity_number,
        Role.OFFICER,
        request.wallet_address or "",
    )
    logger.info(f"Officer {officer.id} added by admin {admin.id}")
    return RegisterResponse(user=UserResponse.from_record(officer), signin_key=signin_key)


@router.get("/dashboard", response_model=DashboardResponse)
async def dashboard(
    admin: User = Depends(require_admin),
    engine: LifecycleEngine = Depends(get_engine),
    users: UserRegistry = Depends(get_users),
    runtime: Runtime = Depends(get_runtime),
):
    """
    Requests bucketed by status, with overdue assignments flagged.
    """
    buckets: Dict[RequestStatus, List[RequestResponse]] = {s: [] for s in RequestStatus}
    for request in engine.list_requests_by():
        buckets[request.status].append(RequestResponse.from_record(request))

    overdue = engine.overdue_assigned(runtime.settings.overdue_threshold_ms)
    return DashboardResponse(
        pending=buckets[RequestStatus.PENDING],
        assigned=buckets[RequestStatus.ASSIGNED],
        responded=buckets[RequestStatus.RESPONDED],
        overdue=[r.id for r in overdue],
        officers=[UserResponse.from_record(u) for u in users.list_officers()],
    )


@router.get("/overdue", response_model=List[RequestResponse])
async def overdue_requests(
    threshold_ms: Optional[int] = Query(None, ge=0),
    admin: User = Depends(require_admin),
    engine: LifecycleEngine = Depends(get_engine),
    runtime: Runtime = Depends(get_runtime),
):
    """Assigned requests older than threshold_ms (default from settings)."""
    if threshold_ms is None:
        threshold_ms = runtime.settings.overdue_threshold_ms
    return [RequestResponse.from_record(r) for r in engine.overdue_assigned(threshold_ms)]


@router.get("/timings", response_model=List[dict])
async def timing_summary(
    admin: User = Depends(require_admin),
    engine: LifecycleEngine = Depends(get_engine),
):
    """Duration breakdown per transition kind."""
    return [engine.telemetry.summary(kind) for kind in TimingKind]
