"""
Tests for the operator scripts.
"""
from rti_tracker.config import Settings
from rti_tracker.models.domain import Request, RequestStatus, Role
from rti_tracker.services.mirror import JsonMirrorStore
from scripts.check_mirror import check_mirror
from scripts.seed_admin import create_admin_user


def test_seed_admin_once(tmp_path):
    settings = Settings(data_dir=tmp_path)

    user, key = create_admin_user(settings, "District Admin", "1234")

    assert user.role == Role.ADMIN
    assert key
    assert JsonMirrorStore(tmp_path).find_user_by_id(user.id) is not None
    assert create_admin_user(settings, "Again", "1234") is None


def test_check_mirror_counts_broken_requests(tmp_path, capsys):
    store = JsonMirrorStore(tmp_path)
    store.add_request(Request(id="1", client_id="U-1", description="D", request_hash="sha256-a"))
    store.add_request(Request(
        id="2", client_id="U-1", description="D", request_hash="sha256-b",
        status=RequestStatus.ASSIGNED,
    ))

    assert check_mirror(Settings(data_dir=tmp_path)) == 1
    assert "Request 2" in capsys.readouterr().out
