"""
Request State Machine

Single RequestStatus enum is the source of truth.
State transitions:
    Pending --assign--> Assigned --respond--> Responded

Transitions are strictly forward. Responded is terminal.
"""
from typing import List, Optional, Tuple

from ...errors import InvalidTransition
from ...models.domain import Request, RequestStatus


class RequestStateMachine:
    """Deterministic transition table for requests."""

    # (current_state, action) -> new_state
    TRANSITIONS = {
        (RequestStatus.PENDING, "assign"): RequestStatus.ASSIGNED,
        (RequestStatus.ASSIGNED, "respond"): RequestStatus.RESPONDED,
    }

    def can_transition(
        self,
        current_state: RequestStatus,
        action: str,
    ) -> Tuple[bool, Optional[str]]:
        """
        Check if a state transition is allowed.

        Returns:
            Tuple of (is_allowed, error_message)
        """
        if (current_state, action) not in self.TRANSITIONS:
            return False, f"Invalid transition: {current_state.value} + {action}"
        return True, None

    def transition(self, current_state: RequestStatus, action: str) -> RequestStatus:
        """
        Resolve the next state.

        Raises:
            InvalidTransition: If the action is not allowed from current_state
        """
        allowed, error = self.can_transition(current_state, action)
        if not allowed:
            raise InvalidTransition(error)
        return self.TRANSITIONS[(current_state, action)]

    def get_available_actions(self, current_state: RequestStatus) -> List[str]:
        return [action for (state, action) in self.TRANSITIONS if state == current_state]

    def is_terminal_state(self, state: RequestStatus) -> bool:
        return not self.get_available_actions(state)

    @staticmethod
    def is_forward(current: RequestStatus, target: RequestStatus) -> bool:
        """True if target is strictly later in the lifecycle than current."""
        order = list(RequestStatus)
        return order.index(target) > order.index(current)


def check_request_invariants(request: Request) -> List[str]:
    """
    Invariant violations on a mirror record (empty list if consistent).

    - response_hash is never set while Pending
    - assigned_officer_user_id is set iff Assigned or Responded
    """
    problems = []
    if request.status == RequestStatus.PENDING and request.response_hash:
        problems.append("response_hash set on a pending request")
    assigned_states = (RequestStatus.ASSIGNED, RequestStatus.RESPONDED)
    if (request.assigned_officer_user_id is not None) != (request.status in assigned_states):
        problems.append("assigned_officer_user_id does not match status")
    return problems
