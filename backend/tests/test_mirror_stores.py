"""
Contract tests shared by every mirror store backend.

Each test runs against the in-memory, JSON document and SQLite-backed
stores.
"""
import json
from datetime import datetime, timedelta, timezone

import pytest

from rti_tracker.errors import DuplicateUser
from rti_tracker.models.domain import (
    Complaint,
    Request,
    RequestStatus,
    Role,
    TimingKind,
    TimingRecord,
    User,
)
from rti_tracker.services.lifecycle.predicates import by_client, by_status, complaint_by_client
from rti_tracker.services.mirror import (
    SCHEMA_VERSION,
    InMemoryMirrorStore,
    JsonMirrorStore,
    SqlMirrorStore,
)

T0 = datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture(params=["memory", "json", "sql"])
def mirror(request, tmp_path):
    if request.param == "memory":
        store = InMemoryMirrorStore()
    elif request.param == "json":
        store = JsonMirrorStore(tmp_path / "data")
    else:
        store = SqlMirrorStore("sqlite://")
    yield store
    store.close()


def _user(user_id, role=Role.CLIENT, identity=None):
    return User(
        id=user_id,
        name=f"User {user_id}",
        external_identity_number=identity or f"ID-{user_id}",
        role=role,
        credential_hash="hash",
        created_at=T0,
    )


def _request(request_id, client_id="U-1", minutes=0):
    return Request(
        id=request_id,
        client_id=client_id,
        description="D",
        request_hash=f"sha256-{request_id}",
        request_filename="ask.pdf",
        created_at=T0 + timedelta(minutes=minutes),
    )


def _complaint(complaint_id, request_id="1"):
    return Complaint(
        id=complaint_id,
        request_id=request_id,
        client_user_id="U-1",
        officer_user_id="U-2",
        text="T",
        created_at=T0,
    )


# =============================================================================
# TEST: USERS
# =============================================================================

class TestUsers:

    def test_create_and_find(self, mirror):
        mirror.create_user(_user("U-1"))
        mirror.create_user(_user("U-2", Role.OFFICER))

        assert mirror.find_user_by_id("U-1").name == "User U-1"
        assert mirror.find_user_by_identity("ID-U-2").id == "U-2"
        assert [u.id for u in mirror.list_users_by_role(Role.OFFICER)] == ["U-2"]
        assert mirror.find_user_by_id("U-404") is None

    def test_identity_number_is_unique(self, mirror):
        mirror.create_user(_user("U-1", identity="1234"))
        with pytest.raises(DuplicateUser):
            mirror.create_user(_user("U-2", identity="1234"))
        assert mirror.find_user_by_id("U-2") is None


# =============================================================================
# TEST: REQUESTS
# =============================================================================

class TestRequests:

    def test_add_get_update(self, mirror):
        mirror.add_request(_request("1"))

        updated = mirror.update_request("1", {
            "status": RequestStatus.ASSIGNED,
            "assigned_officer_user_id": "U-2",
            "assigned_at": T0 + timedelta(minutes=5),
        })

        assert updated.status == RequestStatus.ASSIGNED
        stored = mirror.get_request("1")
        assert stored.assigned_officer_user_id == "U-2"
        assert stored.assigned_at == T0 + timedelta(minutes=5)
        assert stored.created_at == T0

    def test_duplicate_id_rejected(self, mirror):
        mirror.add_request(_request("1"))
        with pytest.raises(ValueError):
            mirror.add_request(_request("1"))

    def test_update_absent_returns_none(self, mirror):
        assert mirror.update_request("missing", {"status": RequestStatus.ASSIGNED}) is None

    def test_snapshots_are_copies(self, mirror):
        mirror.add_request(_request("1"))
        snapshot = mirror.get_request("1")
        snapshot.status = RequestStatus.RESPONDED

        assert mirror.get_request("1").status == RequestStatus.PENDING

    def test_list_by_predicate(self, mirror):
        mirror.add_request(_request("1", "U-1"))
        mirror.add_request(_request("2", "U-9", minutes=1))
        mirror.update_request("2", {"status": RequestStatus.ASSIGNED, "assigned_officer_user_id": "U-2"})

        assert [r.id for r in mirror.list_requests_by(by_client("U-1"))] == ["1"]
        assert [r.id for r in mirror.list_requests_by(by_status(RequestStatus.ASSIGNED))] == ["2"]
        assert len(mirror.list_requests_by()) == 2


# =============================================================================
# TEST: COMPLAINTS
# =============================================================================

class TestComplaints:

    def test_update(self, mirror):
        mirror.add_complaint(_complaint("C-1"))

        updated = mirror.update_complaint("C-1", {"notified": True, "notified_at": T0})

        assert updated.notified is True
        assert mirror.get_complaint("C-1").notified_at == T0

    def test_update_absent(self, mirror):
        assert mirror.update_complaint("C-404", {"notified": True}) is None

    def test_acknowledge_single_flag_stays_active(self, mirror):
        mirror.add_complaint(_complaint("C-1"))

        updated, archived = mirror.acknowledge_complaint("C-1", "resolved_by_admin", T0)

        assert archived is None
        assert updated.resolved_by_admin is True
        assert mirror.get_complaint("C-1").resolved_by_admin is True
        assert mirror.list_archived_complaints() == []

    def test_acknowledge_second_flag_archives(self, mirror):
        mirror.add_complaint(_complaint("C-1"))
        mirror.acknowledge_complaint("C-1", "resolved_by_user", T0)

        updated, archived = mirror.acknowledge_complaint("C-1", "resolved_by_admin", T0 + timedelta(hours=1))

        assert updated.quorum_reached
        assert archived.resolved_at == T0 + timedelta(hours=1)
        assert mirror.get_complaint("C-1") is None
        assert [a.id for a in mirror.list_archived_complaints()] == ["C-1"]

    def test_acknowledge_absent_or_bad_flag(self, mirror):
        mirror.add_complaint(_complaint("C-1"))

        assert mirror.acknowledge_complaint("C-404", "resolved_by_admin") is None
        with pytest.raises(ValueError):
            mirror.acknowledge_complaint("C-1", "notified")

    def test_list_by_predicate(self, mirror):
        mirror.add_complaint(_complaint("C-1", "1"))
        mirror.add_complaint(_complaint("C-2", "2"))

        assert len(mirror.list_complaints_by(complaint_by_client("U-1"))) == 2
        assert mirror.list_complaints_by(lambda c: c.request_id == "2")[0].id == "C-2"


# =============================================================================
# TEST: TIMINGS
# =============================================================================

class TestTimings:

    def test_append_in_order_per_kind(self, mirror):
        for i in range(3):
            mirror.append_timing(TimingKind.REQUEST, TimingRecord(
                request_id=str(i),
                actor_user_id="U-1",
                start_time=T0,
                ledger_start=T0,
                ledger_end=T0 + timedelta(milliseconds=10 * i),
                end_time=T0 + timedelta(milliseconds=20 * i),
                ledger_tx_id=f"0x{i}",
            ))

        records = mirror.list_timings(TimingKind.REQUEST)

        assert [r.request_id for r in records] == ["0", "1", "2"]
        assert records[2].ledger_ms == 20.0
        assert mirror.list_timings(TimingKind.RESPONSE) == []


# =============================================================================
# TEST: JSON PERSISTENCE
# =============================================================================

class TestJsonPersistence:

    def test_reopen_sees_committed_state(self, tmp_path):
        store = JsonMirrorStore(tmp_path)
        store.create_user(_user("U-1"))
        store.add_request(_request("1"))
        store.add_complaint(_complaint("C-1"))

        reopened = JsonMirrorStore(tmp_path)

        assert reopened.find_user_by_id("U-1") is not None
        assert reopened.get_request("1") == store.get_request("1")
        assert reopened.get_complaint("C-1") is not None

    def test_document_layout(self, tmp_path):
        store = JsonMirrorStore(tmp_path)
        store.add_request(_request("1"))

        db = json.loads(store.db_path.read_text())
        timings = json.loads(store.timings_path.read_text())

        assert db["schema_version"] == SCHEMA_VERSION
        assert set(db) >= {"users", "requests", "complaints", "resolvedComplaints"}
        assert db["requests"][0]["requestHash"] == "sha256-1"
        assert set(timings) >= {"request", "assignment", "response"}

    def test_failed_flush_rolls_back(self, tmp_path, monkeypatch):
        store = JsonMirrorStore(tmp_path)

        def broken(document):
            raise OSError("disk full")

        monkeypatch.setattr(store, "_flush", broken)
        with pytest.raises(OSError):
            store.add_request(_request("1"))

        assert store.get_request("1") is None

    def test_failed_quorum_write_keeps_neither_flag_nor_archive(self, tmp_path, monkeypatch):
        store = JsonMirrorStore(tmp_path)
        store.add_complaint(_complaint("C-1"))
        store.acknowledge_complaint("C-1", "resolved_by_admin", T0)

        def broken(document):
            raise OSError("disk full")

        monkeypatch.setattr(store, "_flush", broken)
        with pytest.raises(OSError):
            store.acknowledge_complaint("C-1", "resolved_by_user", T0)

        for view in (store, JsonMirrorStore(tmp_path)):
            complaint = view.get_complaint("C-1")
            assert (complaint.resolved_by_admin, complaint.resolved_by_user) == (True, False)
            assert view.list_archived_complaints() == []


class TestSqlSchema:

    def test_schema_version_stamped(self):
        store = SqlMirrorStore("sqlite://")
        assert store.schema_version == SCHEMA_VERSION
        store.close()
