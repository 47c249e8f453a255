"""External collaborator contracts: ledger and content store."""
from .ledger import (
    LedgerGateway,
    LedgerCall,
    LedgerEvent,
    LedgerReceipt,
    InMemoryLedger,
    JournalLedger,
    CREATE_REQUEST,
    ASSIGN_REQUEST,
    SUBMIT_RESPONSE,
    REQUEST_CREATED,
    REQUEST_ASSIGNED,
    RESPONSE_SUBMITTED,
)
from .content_store import (
    ContentStore,
    InMemoryContentStore,
    IpfsContentStore,
    content_id_for,
)

__all__ = [
    "LedgerGateway",
    "LedgerCall",
    "LedgerEvent",
    "LedgerReceipt",
    "InMemoryLedger",
    "JournalLedger",
    "CREATE_REQUEST",
    "ASSIGN_REQUEST",
    "SUBMIT_RESPONSE",
    "REQUEST_CREATED",
    "REQUEST_ASSIGNED",
    "RESPONSE_SUBMITTED",
    "ContentStore",
    "InMemoryContentStore",
    "IpfsContentStore",
    "content_id_for",
]
