"""
Authentication state machine.

Each browser session is in exactly one GateState. The state is not stored
as such; it is read back from the session contents (principal, pending
authorization request, logged-out marker) by ``session_state`` in
``auth.session``. Every change of state goes through ``transition`` so that
an impossible (state, event) pair fails loudly instead of silently
producing a half-authenticated session.
"""

from enum import Enum
from typing import Dict, Tuple


class GateState(str, Enum):
    ANONYMOUS = "ANONYMOUS"
    AUTHENTICATING = "AUTHENTICATING"
    AUTHENTICATED = "AUTHENTICATED"
    LOGGED_OUT = "LOGGED_OUT"


class GateEvent(str, Enum):
    PROTECTED_REQUEST = "PROTECTED_REQUEST"  # protected path, no principal
    LOGIN_REQUESTED = "LOGIN_REQUESTED"      # /oauth2/authorization/{id}
    CALLBACK_SUCCEEDED = "CALLBACK_SUCCEEDED"
    CALLBACK_FAILED = "CALLBACK_FAILED"
    LOGOUT = "LOGOUT"
    EXEMPT_REQUEST = "EXEMPT_REQUEST"


class InvalidTransitionError(Exception):
    """Raised for a (state, event) pair the state machine does not allow."""

    def __init__(self, state: GateState, event: GateEvent):
        super().__init__(f"No transition from {state.value} on {event.value}")
        self.state = state
        self.event = event


_UNAUTHENTICATED = (GateState.ANONYMOUS, GateState.AUTHENTICATING, GateState.LOGGED_OUT)

TRANSITIONS: Dict[Tuple[GateState, GateEvent], GateState] = {}

for _state in _UNAUTHENTICATED:
    TRANSITIONS[(_state, GateEvent.PROTECTED_REQUEST)] = GateState.AUTHENTICATING

for _state in GateState:
    TRANSITIONS[(_state, GateEvent.LOGIN_REQUESTED)] = GateState.AUTHENTICATING
    TRANSITIONS[(_state, GateEvent.LOGOUT)] = GateState.LOGGED_OUT
    TRANSITIONS[(_state, GateEvent.EXEMPT_REQUEST)] = _state

TRANSITIONS[(GateState.AUTHENTICATING, GateEvent.CALLBACK_SUCCEEDED)] = GateState.AUTHENTICATED
TRANSITIONS[(GateState.AUTHENTICATING, GateEvent.CALLBACK_FAILED)] = GateState.ANONYMOUS


def transition(state: GateState, event: GateEvent) -> GateState:
    """
    Next state for ``event`` in ``state``.

    Raises:
        InvalidTransitionError: If the pair is not in the table
    """
    try:
        return TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransitionError(state, event) from None
