"""
Tests for the request lifecycle engine.

Test Coverage:
1. Submit -> assign -> respond happy path
2. Precondition failures leave the mirror untouched
3. Gateway failures (content store, ledger, timeouts) have no mirror side effects
4. Mirror failure after ledger commit surfaces MirrorWriteError with the receipt
5. Missing ledger request id (fallback disabled / enabled)
6. Overdue detection boundary
7. Document download and filename resolution
"""
import asyncio
from unittest.mock import MagicMock

import pytest

from rti_tracker.errors import (
    ContentNotFound,
    ContentStoreError,
    InvalidAssignee,
    InvalidTransition,
    LedgerError,
    LedgerIdentifierMissing,
    MirrorWriteError,
    RequestNotFound,
    Unauthorized,
)
from rti_tracker.models.domain import RequestStatus, TimingKind
from rti_tracker.services.gateways import InMemoryLedger, content_id_for
from rti_tracker.services.lifecycle import LifecycleEngine
from rti_tracker.services.lifecycle.predicates import all_of, by_client, by_officer, by_status
from rti_tracker.services.lifecycle.state_machine import check_request_invariants


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def submitted(engine):
    return run(engine.submit_request("client", b"request body", "Road repair budget", filename="ask.pdf"))


@pytest.fixture
def assigned(engine, submitted):
    return run(engine.assign_request("admin", submitted.id, "officer"))


# =============================================================================
# TEST: HAPPY PATH
# =============================================================================

class TestHappyPath:

    def test_submit_creates_pending_request(self, engine, submitted, content_store, ledger):
        assert submitted.status == RequestStatus.PENDING
        assert submitted.request_hash == content_id_for(b"request body")
        assert submitted.client_id == "client"
        assert submitted.description == "Road repair budget"
        assert submitted.request_filename == "ask.pdf"
        assert submitted.ledger_tx_id
        assert content_store.is_pinned(submitted.request_hash)
        assert ledger.submissions == 1
        assert engine.get_request(submitted.id) == submitted

    def test_assign_sets_officer_and_time(self, engine, submitted, clock):
        clock.advance(minutes=1)
        request = run(engine.assign_request("admin", submitted.id, "officer"))

        assert request.status == RequestStatus.ASSIGNED
        assert request.assigned_officer_user_id == "officer"
        assert request.assigned_at == clock.now

    def test_respond_sets_response_fields(self, engine, assigned, clock):
        clock.advance(minutes=2)
        request = run(engine.submit_response("officer", assigned.id, b"answer", filename="answer.pdf"))

        assert request.status == RequestStatus.RESPONDED
        assert request.response_hash == content_id_for(b"answer")
        assert request.response_filename == "answer.pdf"
        assert request.responded_at == clock.now
        assert check_request_invariants(request) == []

    def test_each_transition_records_timing(self, engine, assigned, store):
        run(engine.submit_response("officer", assigned.id, b"answer"))

        request_timings = store.list_timings(TimingKind.REQUEST)
        assignment_timings = store.list_timings(TimingKind.ASSIGNMENT)
        response_timings = store.list_timings(TimingKind.RESPONSE)

        assert [t.request_id for t in request_timings] == [assigned.id]
        assert assignment_timings[0].actor_user_id == "admin"
        assert assignment_timings[0].content_id is None
        assert response_timings[0].content_id == content_id_for(b"answer")

    def test_list_requests_by_composed_predicates(self, engine, assigned):
        run(engine.submit_request("other_client", b"second", "Water supply"))

        assert [r.id for r in engine.list_requests_by(by_client("client"))] == [assigned.id]
        mine = engine.list_requests_by(all_of(by_officer("officer"), by_status(RequestStatus.ASSIGNED)))
        assert [r.id for r in mine] == [assigned.id]
        assert len(engine.list_requests_by(by_status(RequestStatus.PENDING))) == 1
        assert len(engine.list_requests_by()) == 2


# =============================================================================
# TEST: PRECONDITIONS
# =============================================================================

class TestPreconditions:

    def test_assign_to_non_officer_rejected(self, engine, submitted, ledger):
        with pytest.raises(InvalidAssignee):
            run(engine.assign_request("admin", submitted.id, "other_client"))
        with pytest.raises(InvalidAssignee):
            run(engine.assign_request("admin", submitted.id, "nobody"))
        assert ledger.submissions == 1

    def test_assign_by_non_admin_rejected(self, engine, submitted):
        with pytest.raises(Unauthorized):
            run(engine.assign_request("client", submitted.id, "officer"))

    def test_assign_unknown_request(self, engine):
        with pytest.raises(RequestNotFound):
            run(engine.assign_request("admin", "999", "officer"))

    def test_reassign_fails_and_leaves_mirror_unchanged(self, engine, assigned, ledger):
        before = engine.get_request(assigned.id)
        submissions = ledger.submissions

        with pytest.raises(InvalidTransition):
            run(engine.assign_request("admin", assigned.id, "other_officer"))

        assert engine.get_request(assigned.id) == before
        assert ledger.submissions == submissions

    def test_respond_on_pending_request(self, engine, submitted):
        with pytest.raises(InvalidTransition):
            run(engine.submit_response("officer", submitted.id, b"answer"))

    def test_respond_by_other_officer(self, engine, assigned, content_store):
        with pytest.raises(Unauthorized):
            run(engine.submit_response("other_officer", assigned.id, b"answer"))
        with pytest.raises(ContentNotFound):
            run(content_store.get(content_id_for(b"answer")))

    def test_respond_twice(self, engine, assigned):
        run(engine.submit_response("officer", assigned.id, b"answer"))
        with pytest.raises(InvalidTransition):
            run(engine.submit_response("officer", assigned.id, b"again"))


# =============================================================================
# TEST: GATEWAY FAILURES
# =============================================================================

class TestGatewayFailures:

    def test_content_failure_skips_ledger(self, engine, content_store, ledger, store):
        content_store.put = MagicMock(side_effect=ContentStoreError("node unreachable"))

        with pytest.raises(ContentStoreError):
            run(engine.submit_request("client", b"body", "D"))

        assert ledger.submissions == 0
        assert store.list_requests_by() == []

    def test_unexpected_content_error_is_wrapped(self, engine, content_store):
        async def broken(data):
            raise OSError("connection reset")

        content_store.put = broken
        with pytest.raises(ContentStoreError, match="connection reset"):
            run(engine.submit_request("client", b"body", "D"))

    def test_ledger_failure_on_submit_leaves_no_request(self, engine, ledger, store):
        ledger.fail_next()

        with pytest.raises(LedgerError):
            run(engine.submit_request("client", b"body", "D"))

        assert store.list_requests_by() == []
        assert store.list_timings(TimingKind.REQUEST) == []

    def test_ledger_failure_on_response_leaves_request_assigned(self, engine, assigned, ledger, store):
        ledger.fail_next()

        with pytest.raises(LedgerError):
            run(engine.submit_response("officer", assigned.id, b"answer"))

        request = engine.get_request(assigned.id)
        assert request.status == RequestStatus.ASSIGNED
        assert request.response_hash is None
        assert store.list_timings(TimingKind.RESPONSE) == []

    def test_ledger_timeout(self, store, content_store, clock, users):
        slow = InMemoryLedger(latency=0.5)
        engine = LifecycleEngine(store, content_store, slow, signing_key="k", timeout=0.05, clock=clock)

        with pytest.raises(LedgerError, match="timed out"):
            run(engine.submit_request("client", b"body", "D"))
        assert store.list_requests_by() == []

    def test_missing_signing_key(self, store, content_store, ledger, users):
        engine = LifecycleEngine(store, content_store, ledger, signing_key="")
        with pytest.raises(LedgerError):
            run(engine.submit_request("client", b"body", "D"))


# =============================================================================
# TEST: LEDGER / MIRROR WINDOW
# =============================================================================

class TestMirrorWriteFailure:

    def test_mirror_failure_after_commit(self, engine, store, ledger):
        store.add_request = MagicMock(side_effect=OSError("disk full"))

        with pytest.raises(MirrorWriteError) as exc_info:
            run(engine.submit_request("client", b"body", "D"))

        error = exc_info.value
        assert ledger.submissions == 1
        assert error.receipt.transaction_id == ledger.events()[0].transaction_id
        assert error.request_id == "1"
        assert store.list_timings(TimingKind.REQUEST) == []

    def test_mirror_failure_on_assign_keeps_pending(self, engine, submitted, store):
        store.update_request = MagicMock(side_effect=OSError("disk full"))

        with pytest.raises(MirrorWriteError) as exc_info:
            run(engine.assign_request("admin", submitted.id, "officer"))

        assert exc_info.value.request_id == submitted.id
        assert store.get_request(submitted.id).status == RequestStatus.PENDING

    def test_timing_failure_does_not_fail_transition(self, engine, store):
        store.append_timing = MagicMock(side_effect=OSError("disk full"))

        request = run(engine.submit_request("client", b"body", "D"))

        assert store.get_request(request.id).status == RequestStatus.PENDING


class TestMissingRequestIdentifier:

    def test_missing_id_raises_without_fallback(self, store, content_store, clock, users):
        ledger = InMemoryLedger(emit_request_ids=False)
        engine = LifecycleEngine(store, content_store, ledger, signing_key="k", clock=clock)

        with pytest.raises(LedgerIdentifierMissing) as exc_info:
            run(engine.submit_request("client", b"body", "D"))

        assert isinstance(exc_info.value, MirrorWriteError)
        assert exc_info.value.receipt is not None
        assert store.list_requests_by() == []

    def test_fallback_id_when_enabled(self, store, content_store, clock, users):
        ledger = InMemoryLedger(emit_request_ids=False)
        engine = LifecycleEngine(
            store, content_store, ledger, signing_key="k", clock=clock, allow_fallback_request_id=True,
        )

        request = run(engine.submit_request("client", b"body", "D"))

        assert request.id.startswith("local-")
        assert store.get_request(request.id) is not None


# =============================================================================
# TEST: OVERDUE
# =============================================================================

class TestOverdue:

    def test_boundary_is_excluded(self, engine, assigned, clock):
        threshold_ms = 5 * 60 * 1000

        clock.advance(milliseconds=threshold_ms)
        assert engine.overdue_assigned(threshold_ms) == []

        clock.advance(milliseconds=1)
        assert [r.id for r in engine.overdue_assigned(threshold_ms)] == [assigned.id]

    def test_explicit_now(self, engine, assigned, clock):
        later = clock.now.replace(hour=clock.now.hour + 1)
        assert [r.id for r in engine.overdue_assigned(now=later)] == [assigned.id]

    def test_responded_requests_are_never_overdue(self, engine, assigned, clock):
        run(engine.submit_response("officer", assigned.id, b"answer"))
        clock.advance(hours=2)
        assert engine.overdue_assigned() == []


# =============================================================================
# TEST: DOCUMENTS
# =============================================================================

class TestDocuments:

    def test_round_trip_with_filename(self, engine, assigned):
        run(engine.submit_response("officer", assigned.id, b"\x00\xffanswer", filename="reply.pdf"))

        request_doc = run(engine.fetch_document(assigned.request_hash))
        response_doc = run(engine.fetch_document(content_id_for(b"\x00\xffanswer")))

        assert request_doc.content == b"request body"
        assert request_doc.filename == "ask.pdf"
        assert response_doc.content == b"\x00\xffanswer"
        assert response_doc.filename == "reply.pdf"

    def test_unknown_filename_defaults(self, engine, content_store):
        content_id = run(content_store.put(b"orphan"))
        assert run(engine.fetch_document(content_id)).filename == "document"

    def test_missing_content(self, engine):
        with pytest.raises(ContentNotFound):
            run(engine.fetch_document("sha256-missing"))
