"""
RTI Tracker - FastAPI Application

Main entry point for the RTI request tracker backend.

Architecture:
- Client submits a request document -> Content Store -> Ledger -> Mirror
- Admin assigns it to an officer     -> Ledger -> Mirror
- Officer uploads the response       -> Content Store -> Ledger -> Mirror
- Client complaints close only when both client and admin acknowledge

The ledger is authoritative. The mirror is a local projection used for
every read, repaired from the ledger by the reconciler.
"""
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request as HTTPRequest
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .config import Settings, get_settings
from .errors import MirrorWriteError, RTIError
from .routers import admin_router, auth_router, complaints_router, requests_router, scheduler_router
from .runtime import Runtime, build_runtime

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, runtime: Optional[Runtime] = None) -> FastAPI:
    """
    Build the API.

    A prebuilt runtime (tests) is used as-is and left open; otherwise one is
    built from settings on startup and closed on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owned = None
        if getattr(app.state, "runtime", None) is None:
            owned = build_runtime(settings or get_settings())
            app.state.runtime = owned
        yield
        if owned is not None:
            owned.close()
            app.state.runtime = None

    app = FastAPI(
        lifespan=lifespan,
        title="RTI Tracker",
        description="""
        RTI Tracker - Right to Information request tracking

        ## Lifecycle
        1. **Submit**: client uploads the request document (Pending)
        2. **Assign**: admin routes it to an officer (Assigned)
        3. **Respond**: officer uploads the response (Responded)

        ## Complaints
        A client may complain about a response. The complaint is archived
        once both the client and an admin have marked it resolved.
        """,
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
    )
    app.state.runtime = runtime

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RTIError)
    async def rti_error_handler(request: HTTPRequest, exc: RTIError):
        content = {"detail": exc.message, "error": type(exc).__name__}
        if isinstance(exc, MirrorWriteError):
            # Operators need the committed transaction to reconcile
            content["transaction_id"] = exc.receipt.transaction_id if exc.receipt else None
            content["request_id"] = exc.request_id
        return JSONResponse(status_code=exc.http_status, content=content)

    app.include_router(auth_router)
    app.include_router(requests_router)
    app.include_router(complaints_router)
    app.include_router(admin_router)
    app.include_router(scheduler_router)

    @app.get("/")
    async def root():
        """Root endpoint - API information."""
        return {
            "name": "RTI Tracker",
            "version": __version__,
            "description": "Right to Information request tracking",
            "docs": "/docs",
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "version": __version__}

    return app


logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app()


# For running with: python -m rti_tracker.main
if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8001)
