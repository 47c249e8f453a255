"""
Mirror Store

Injected storage abstraction for users, requests, complaints, archived
complaints and timing records.
"""
from ...config import Settings
from .base import MirrorStore, RequestPredicate, ComplaintPredicate, SCHEMA_VERSION
from .memory import InMemoryMirrorStore
from .json_store import JsonMirrorStore
from .sql_store import SqlMirrorStore
from .migrations import migrate_documents


def create_store(settings: Settings) -> MirrorStore:
    """Build the mirror backend named by settings.store_backend."""
    if settings.store_backend == "memory":
        return InMemoryMirrorStore()
    if settings.store_backend == "sql":
        return SqlMirrorStore(settings.database_url)
    return JsonMirrorStore(settings.data_dir)


__all__ = [
    "MirrorStore",
    "RequestPredicate",
    "ComplaintPredicate",
    "SCHEMA_VERSION",
    "InMemoryMirrorStore",
    "JsonMirrorStore",
    "SqlMirrorStore",
    "migrate_documents",
    "create_store",
]
