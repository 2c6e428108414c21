"""
tests/test_authorization.py
Authorization state machine: access level mapping, prompt rules, listener
notification.
"""

import pytest

from pinpoint.authorization import AuthorizationStateMachine, access_level_for, is_granted
from pinpoint.models.state import AccessLevel, AuthorizationState
from pinpoint.sources.external import ExternalPositionSource


def _machine(initial=AuthorizationState.UNDETERMINED):
    source = ExternalPositionSource(status=initial)
    machine = AuthorizationStateMachine(source, initial=initial)
    source.set_authorization_handler(machine.on_authorization_changed)
    return source, machine


class TestAccessLevel:

    @pytest.mark.parametrize("state,level", [
        (AuthorizationState.SERVICES_DISABLED, AccessLevel.SERVICES_DISABLED),
        (AuthorizationState.ALWAYS,            AccessLevel.ALWAYS),
        (AuthorizationState.WHEN_IN_USE,       AccessLevel.NOT_ALWAYS),
        (AuthorizationState.UNDETERMINED,      AccessLevel.NOT_ALWAYS),
        (AuthorizationState.DENIED,            AccessLevel.NOT_ALWAYS),
    ])
    def test_mapping(self, state, level):
        assert access_level_for(state) == level

    def test_only_when_in_use_and_always_are_granted(self):
        granted = {s for s in AuthorizationState if is_granted(s)}
        assert granted == {AuthorizationState.WHEN_IN_USE, AuthorizationState.ALWAYS}


class TestRequestPermission:

    def test_prompts_only_when_undetermined(self):
        source, machine = _machine()
        assert machine.request_permission() is True
        assert source.prompt_requests == 1

    @pytest.mark.parametrize("state", [
        AuthorizationState.DENIED,
        AuthorizationState.WHEN_IN_USE,
        AuthorizationState.ALWAYS,
        AuthorizationState.SERVICES_DISABLED,
    ])
    def test_no_prompt_once_decided(self, state):
        source, machine = _machine(state)
        assert machine.request_permission() is False
        assert source.prompt_requests == 0
        assert machine.state == state

    def test_prompt_answer_applies_reported_state(self):
        source, machine = _machine()
        source.prompt_answer = AuthorizationState.WHEN_IN_USE
        machine.request_permission()
        assert machine.state == AuthorizationState.WHEN_IN_USE
        assert machine.is_granted


class TestTransitions:

    def test_listener_receives_previous_and_current(self):
        source, machine = _machine()
        seen = []
        machine.add_listener(lambda prev, cur: seen.append((prev, cur)))
        source.report_authorization(AuthorizationState.WHEN_IN_USE)
        source.report_authorization(AuthorizationState.ALWAYS)
        assert seen == [
            (AuthorizationState.UNDETERMINED, AuthorizationState.WHEN_IN_USE),
            (AuthorizationState.WHEN_IN_USE,  AuthorizationState.ALWAYS),
        ]

    def test_repeated_state_not_notified(self):
        source, machine = _machine(AuthorizationState.ALWAYS)
        seen = []
        machine.add_listener(lambda prev, cur: seen.append(cur))
        source.report_authorization(AuthorizationState.ALWAYS)
        assert seen == []

    def test_downgrade_and_revoke(self):
        source, machine = _machine(AuthorizationState.ALWAYS)
        source.report_authorization(AuthorizationState.WHEN_IN_USE)
        assert machine.access_level == AccessLevel.NOT_ALWAYS
        source.report_authorization(AuthorizationState.DENIED)
        assert not machine.is_granted
        assert machine.access_level == AccessLevel.NOT_ALWAYS

    def test_services_toggle_round_trip(self):
        source, machine = _machine(AuthorizationState.ALWAYS)
        source.report_services(False)
        assert machine.access_level == AccessLevel.SERVICES_DISABLED
        source.report_services(True, restored=AuthorizationState.ALWAYS)
        assert machine.access_level == AccessLevel.ALWAYS

    def test_string_states_accepted(self):
        _, machine = _machine()
        machine.on_authorization_changed('always')
        assert machine.state == AuthorizationState.ALWAYS
        with pytest.raises(ValueError):
            machine.on_authorization_changed('sometimes')
