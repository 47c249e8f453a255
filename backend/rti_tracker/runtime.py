"""
RTI Tracker - Runtime Wiring

Builds the mirror store, gateways and services from Settings. The API keeps
one Runtime on app.state; routes reach it through the get_* dependencies.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

from fastapi import Depends, Request as HTTPRequest

from .config import Settings
from .models.domain import utcnow
from .services.gateways import (
    ContentStore,
    InMemoryContentStore,
    InMemoryLedger,
    JournalLedger,
    IpfsContentStore,
)
from .services.lifecycle import (
    ComplaintResolutionProtocol,
    LedgerReconciler,
    LifecycleEngine,
)
from .services.mirror import MirrorStore, create_store
from .services.users import UserRegistry

logger = logging.getLogger(__name__)


@dataclass
class Runtime:
    settings: Settings
    store: MirrorStore
    content_store: ContentStore
    ledger: InMemoryLedger
    engine: LifecycleEngine
    complaints: ComplaintResolutionProtocol
    users: UserRegistry
    reconciler: LedgerReconciler

    def close(self) -> None:
        self.store.close()


LEDGER_JOURNAL_FILENAME = "ledger.jsonl"

_VOLATILE_DATABASE_URLS = ("sqlite://", "sqlite:///:memory:")


def mirror_is_durable(settings: Settings) -> bool:
    if settings.store_backend == "memory":
        return False
    if settings.store_backend == "sql":
        return settings.database_url not in _VOLATILE_DATABASE_URLS
    return True


def create_ledger(settings: Settings) -> InMemoryLedger:
    """
    Reference ledger matching the mirror's lifetime.

    A durable mirror gets a journaled ledger in data_dir; pairing it with
    an in-process ledger would restart request numbering after every
    restart and collide with ids already in the mirror.
    """
    if not mirror_is_durable(settings):
        return InMemoryLedger()
    return JournalLedger(Path(settings.data_dir) / LEDGER_JOURNAL_FILENAME)


def build_runtime(
    settings: Settings,
    store: Optional[MirrorStore] = None,
    content_store: Optional[ContentStore] = None,
    ledger: Optional[InMemoryLedger] = None,
    clock: Callable[[], datetime] = utcnow,
) -> Runtime:
    """Wire services from settings; explicit arguments override the configured backends."""
    store = store or create_store(settings)
    if content_store is None:
        if settings.ipfs_url:
            content_store = IpfsContentStore(settings.ipfs_url, settings.gateway_timeout_seconds)
        else:
            content_store = InMemoryContentStore()
    ledger = ledger or create_ledger(settings)

    engine = LifecycleEngine(
        store,
        content_store,
        ledger,
        signing_key=settings.ledger_signing_key,
        timeout=settings.gateway_timeout_seconds,
        allow_fallback_request_id=settings.allow_fallback_request_id,
        clock=clock,
    )
    complaints = ComplaintResolutionProtocol(
        store, content_store, timeout=settings.gateway_timeout_seconds, clock=clock,
    )
    logger.info(
        f"Runtime ready: store={type(store).__name__} content={type(content_store).__name__} "
        f"ledger={type(ledger).__name__}"
    )
    return Runtime(
        settings=settings,
        store=store,
        content_store=content_store,
        ledger=ledger,
        engine=engine,
        complaints=complaints,
        users=UserRegistry(store),
        reconciler=LedgerReconciler(store, engine.projector),
    )


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_runtime(request: HTTPRequest) -> Runtime:
    return request.app.state.runtime


def get_engine(runtime: Runtime = Depends(get_runtime)) -> LifecycleEngine:
    return runtime.engine


def get_complaints(runtime: Runtime = Depends(get_runtime)) -> ComplaintResolutionProtocol:
    return runtime.complaints


def get_users(runtime: Runtime = Depends(get_runtime)) -> UserRegistry:
    return runtime.users
