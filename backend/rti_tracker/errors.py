"""
RTI Tracker - Error Kinds

Every failure of a lifecycle or complaint operation is raised as one of
these typed errors. Each carries the HTTP status the API layer maps it to.

Retry guidance:
- ContentStoreError, LedgerError: retry the whole operation; the mirror
  was not touched.
- MirrorWriteError: do NOT retry. The ledger committed; run the
  reconciler to project the ledger event into the mirror.
- Everything else: permanent precondition failure.
"""
from typing import Optional


class RTIError(Exception):
    """Base class for all lifecycle engine errors."""
    http_status = 400

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


# =============================================================================
# GATEWAY FAILURES (recoverable, no mirror side effects)
# =============================================================================

class ContentStoreError(RTIError):
    """Blob upload or download failed."""
    http_status = 502


class ContentNotFound(ContentStoreError):
    """No blob is stored under the requested content id."""
    http_status = 404


class LedgerError(RTIError):
    """Ledger submission failed or timed out. No mirror write occurred."""
    http_status = 502


# =============================================================================
# INCONSISTENCY WINDOW
# =============================================================================

class MirrorWriteError(RTIError):
    """
    Ledger committed but the mirror could not be updated.

    Carries the ledger receipt so operators can reconcile without a
    second ledger submission.
    """
    http_status = 500

    def __init__(self, message: str = "", receipt=None, request_id: Optional[str] = None):
        super().__init__(message)
        self.receipt = receipt
        self.request_id = request_id


class LedgerIdentifierMissing(MirrorWriteError):
    """The ledger receipt carried no request identifier to index the mirror under."""


# =============================================================================
# PRECONDITION FAILURES (permanent)
# =============================================================================

class InvalidTransition(RTIError):
    """State machine precondition violated."""
    http_status = 409


class InvalidAssignee(RTIError):
    """Assignee does not resolve to a user with the officer role."""
    http_status = 400


class Unauthorized(RTIError):
    """Actor does not own or is not assigned to the record."""
    http_status = 403


class DuplicateComplaint(RTIError):
    """An active complaint already exists for the request."""
    http_status = 409


class NotYetResponded(RTIError):
    """Complaints can only be filed against responded requests."""
    http_status = 409


class DuplicateUser(RTIError):
    """A user with this external identity number is already registered."""
    http_status = 409


class InvalidCredential(RTIError):
    http_status = 401


class RecordNotFound(RTIError):
    http_status = 404


class RequestNotFound(RecordNotFound):
    pass


class ComplaintNotFound(RecordNotFound):
    pass


class UserNotFound(RecordNotFound):
    pass
