"""
Authentication State Machine Tests
"""

import pytest

from gateway.app.auth.session import (
    authenticated_session,
    authenticating_session,
    logged_out_session,
    session_state,
)
from gateway.app.auth.state import GateEvent, GateState, InvalidTransitionError, transition
from gateway.app.models import Principal


UNAUTHENTICATED = [GateState.ANONYMOUS, GateState.AUTHENTICATING, GateState.LOGGED_OUT]


class TestTransitions:
    """Test suite for the transition table"""

    @pytest.mark.parametrize("state", UNAUTHENTICATED)
    def test_protected_request_starts_authentication(self, state):
        assert transition(state, GateEvent.PROTECTED_REQUEST) is GateState.AUTHENTICATING

    def test_valid_callback(self):
        assert transition(GateState.AUTHENTICATING, GateEvent.CALLBACK_SUCCEEDED) is GateState.AUTHENTICATED

    def test_invalid_callback(self):
        assert transition(GateState.AUTHENTICATING, GateEvent.CALLBACK_FAILED) is GateState.ANONYMOUS

    @pytest.mark.parametrize("state", list(GateState))
    def test_logout_from_any_state(self, state):
        assert transition(state, GateEvent.LOGOUT) is GateState.LOGGED_OUT

    @pytest.mark.parametrize("state", list(GateState))
    def test_exempt_request_keeps_state(self, state):
        assert transition(state, GateEvent.EXEMPT_REQUEST) is state

    @pytest.mark.parametrize("state,event", [
        (GateState.ANONYMOUS, GateEvent.CALLBACK_SUCCEEDED),
        (GateState.LOGGED_OUT, GateEvent.CALLBACK_SUCCEEDED),
        (GateState.AUTHENTICATED, GateEvent.CALLBACK_SUCCEEDED),
        (GateState.ANONYMOUS, GateEvent.CALLBACK_FAILED),
        (GateState.AUTHENTICATED, GateEvent.PROTECTED_REQUEST),
    ])
    def test_invalid_transitions(self, state, event):
        with pytest.raises(InvalidTransitionError) as exc_info:
            transition(state, event)

        assert exc_info.value.state is state
        assert exc_info.value.event is event


class TestSessionState:
    """State is read back from the session contents"""

    def test_empty_session_is_anonymous(self):
        assert session_state({}) is GateState.ANONYMOUS

    def test_pending_request_is_authenticating(self):
        session = authenticating_session({"state": "abc", "registration_id": "google"})

        assert session_state(session) is GateState.AUTHENTICATING

    def test_principal_is_authenticated(self):
        session = authenticated_session(Principal(subject="123", name="Ada"))

        assert session_state(session) is GateState.AUTHENTICATED

    def test_logged_out_marker(self):
        assert session_state(logged_out_session()) is GateState.LOGGED_OUT

    def test_malformed_principal_is_ignored(self):
        assert session_state({"principal": {"name": "no subject"}}) is GateState.ANONYMOUS
