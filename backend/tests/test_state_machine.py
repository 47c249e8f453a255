"""
Tests for the request state machine.
"""
import pytest

from rti_tracker.errors import InvalidTransition
from rti_tracker.models.domain import Request, RequestStatus
from rti_tracker.services.lifecycle import RequestStateMachine, check_request_invariants


@pytest.fixture
def machine():
    return RequestStateMachine()


class TestTransitions:

    def test_forward_path(self, machine):
        assert machine.transition(RequestStatus.PENDING, "assign") == RequestStatus.ASSIGNED
        assert machine.transition(RequestStatus.ASSIGNED, "respond") == RequestStatus.RESPONDED

    @pytest.mark.parametrize("state,action", [
        (RequestStatus.PENDING, "respond"),
        (RequestStatus.ASSIGNED, "assign"),
        (RequestStatus.RESPONDED, "assign"),
        (RequestStatus.RESPONDED, "respond"),
    ])
    def test_invalid_transitions(self, machine, state, action):
        allowed, message = machine.can_transition(state, action)
        assert not allowed
        assert message
        with pytest.raises(InvalidTransition):
            machine.transition(state, action)

    def test_available_actions(self, machine):
        assert machine.get_available_actions(RequestStatus.PENDING) == ["assign"]
        assert machine.get_available_actions(RequestStatus.ASSIGNED) == ["respond"]
        assert machine.is_terminal_state(RequestStatus.RESPONDED)

    def test_is_forward(self):
        assert RequestStateMachine.is_forward(RequestStatus.PENDING, RequestStatus.RESPONDED)
        assert not RequestStateMachine.is_forward(RequestStatus.RESPONDED, RequestStatus.ASSIGNED)
        assert not RequestStateMachine.is_forward(RequestStatus.ASSIGNED, RequestStatus.ASSIGNED)


class TestInvariants:

    def _request(self, **overrides):
        fields = dict(id="1", client_id="client", description="D", request_hash="sha256-aa")
        fields.update(overrides)
        return Request(**fields)

    def test_consistent_records(self):
        assert check_request_invariants(self._request()) == []
        assigned = self._request(status=RequestStatus.ASSIGNED, assigned_officer_user_id="officer")
        assert check_request_invariants(assigned) == []

    def test_response_hash_on_pending(self):
        problems = check_request_invariants(self._request(response_hash="sha256-bb"))
        assert problems == ["response_hash set on a pending request"]

    def test_officer_without_assignment(self):
        assert check_request_invariants(self._request(assigned_officer_user_id="officer"))
        assert check_request_invariants(self._request(status=RequestStatus.RESPONDED))
