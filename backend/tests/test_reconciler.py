"""
Tests for ledger projection and reconciliation.

The reconciler repairs the mirror after a MirrorWriteError by replaying
committed ledger events. Replay must be idempotent and must never move a
request backwards.
"""
import asyncio
from unittest.mock import MagicMock

import pytest

from rti_tracker.errors import LedgerIdentifierMissing, MirrorWriteError
from rti_tracker.models.domain import RequestStatus
from rti_tracker.services.gateways import LedgerEvent, REQUEST_ASSIGNED, REQUEST_CREATED, RESPONSE_SUBMITTED
from rti_tracker.services.lifecycle import LedgerProjector, LedgerReconciler, ProjectionOutcome
from rti_tracker.services.mirror import InMemoryMirrorStore


def run(coro):
    return asyncio.run(coro)


def created(request_id="7", client="client", content="sha256-aa"):
    args = {"clientId": client, "ipfsHash": content, "description": "D"}
    if request_id is not None:
        args["requestId"] = request_id
    return LedgerEvent(REQUEST_CREATED, args, transaction_id=f"0xc{request_id}")


def assigned(request_id="7", officer="officer"):
    return LedgerEvent(REQUEST_ASSIGNED, {"requestId": request_id, "officerUserId": officer}, "0xa")


def responded(request_id="7", officer="officer", content="sha256-bb"):
    return LedgerEvent(
        RESPONSE_SUBMITTED,
        {"requestId": request_id, "officerUserId": officer, "responseHash": content},
        "0xr",
    )


@pytest.fixture
def projector(store, clock):
    return LedgerProjector(store, clock)


# =============================================================================
# TEST: PROJECTOR
# =============================================================================

class TestLedgerProjector:

    def test_lifecycle_projection(self, projector, store):
        assert projector.apply(created()).outcome == ProjectionOutcome.APPLIED
        assert projector.apply(assigned()).outcome == ProjectionOutcome.APPLIED
        assert projector.apply(responded()).outcome == ProjectionOutcome.APPLIED

        request = store.get_request("7")
        assert request.status == RequestStatus.RESPONDED
        assert request.assigned_officer_user_id == "officer"
        assert request.response_hash == "sha256-bb"
        assert request.ledger_tx_id == "0xc7"

    def test_reapplying_is_a_no_op(self, projector, store):
        for event in (created(), assigned(), responded()):
            projector.apply(event)
        snapshot = store.get_request("7")

        for event in (created(), assigned(), responded()):
            assert projector.apply(event).outcome == ProjectionOutcome.ALREADY_APPLIED
        assert store.get_request("7") == snapshot

    def test_backwards_move_is_ignored(self, projector, store):
        for event in (created(), assigned(), responded()):
            projector.apply(event)

        result = projector.apply(assigned(officer="other_officer"))

        assert result.outcome == ProjectionOutcome.CONFLICT
        assert store.get_request("7").status == RequestStatus.RESPONDED

    def test_event_for_unknown_request(self, projector):
        assert projector.apply(assigned(request_id="99")).outcome == ProjectionOutcome.MISSING

    def test_created_without_id(self, projector):
        with pytest.raises(LedgerIdentifierMissing):
            projector.apply(created(request_id=None))

    def test_unrelated_event_ignored(self, projector):
        event = LedgerEvent("OwnershipTransferred", {"requestId": "7"})
        assert projector.apply(event).outcome == ProjectionOutcome.IGNORED

    def test_commit_time_used_when_no_override(self, projector, store, clock):
        committed = clock.advance(minutes=3)
        clock.advance(minutes=3)
        projector.apply(created())
        event = LedgerEvent(REQUEST_ASSIGNED, {"requestId": "7", "officerUserId": "officer"}, "0xa", committed)

        projector.apply(event)

        assert store.get_request("7").assigned_at == committed


# =============================================================================
# TEST: RECONCILER
# =============================================================================

class TestLedgerReconciler:

    def test_repairs_mirror_after_write_failure(self, engine, store, ledger):
        request = run(engine.submit_request("client", b"body", "D"))
        original_update = store.update_request
        store.update_request = MagicMock(side_effect=OSError("disk full"))
        with pytest.raises(MirrorWriteError):
            run(engine.assign_request("admin", request.id, "officer"))
        store.update_request = original_update
        assert store.get_request(request.id).status == RequestStatus.PENDING

        report = LedgerReconciler(store).replay(ledger.events())

        assert report.applied == 1
        assert report.counts[ProjectionOutcome.ALREADY_APPLIED.value] == 1
        repaired = store.get_request(request.id)
        assert repaired.status == RequestStatus.ASSIGNED
        assert repaired.assigned_officer_user_id == "officer"

    def test_rebuilds_empty_mirror(self, engine, ledger):
        request = run(engine.submit_request("client", b"body", "D"))
        run(engine.assign_request("admin", request.id, "officer"))
        run(engine.submit_response("officer", request.id, b"answer"))

        fresh = InMemoryMirrorStore()
        report = LedgerReconciler(fresh).replay(ledger.events())

        assert report.applied == 3
        assert report.problems == []
        assert fresh.get_request(request.id).status == RequestStatus.RESPONDED

    def test_replay_twice_is_idempotent(self, engine, store, ledger):
        run(engine.submit_request("client", b"body", "D"))
        reconciler = LedgerReconciler(store)

        first = reconciler.replay(ledger.events())
        second = reconciler.replay(ledger.events())

        assert first.applied == 0
        assert second.applied == 0
        assert second.counts[ProjectionOutcome.ALREADY_APPLIED.value] == 1

    def test_unidentified_events_are_reported(self, store):
        report = LedgerReconciler(store).replay([created(request_id=None), assigned(request_id="")])

        assert report.counts[ProjectionOutcome.UNIDENTIFIED.value] == 2
        assert len(report.problems) == 2
        assert store.list_requests_by() == []
