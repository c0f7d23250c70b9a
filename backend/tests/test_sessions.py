from __future__ import annotations

import json

import pytest

from backend.app.services.sessions import (
    ConversationSessionStore,
    InvalidSessionTransition,
    SessionNotFoundError,
    SessionState,
    SessionStoreError,
    can_transition,
    customer_id_candidates,
    session_customer_id,
    strip_channel_prefix,
)


@pytest.fixture
def store(fake_redis) -> ConversationSessionStore:
    return ConversationSessionStore(fake_redis)


@pytest.mark.parametrize(
    ("current", "target", "allowed"),
    [
        (SessionState.NEW, SessionState.ACTIVE, True),
        (SessionState.NEW, SessionState.WAITING_AGENT, False),
        (SessionState.ACTIVE, SessionState.WAITING_AGENT, True),
        (SessionState.ACTIVE, SessionState.IDLE, True),
        (SessionState.IDLE, SessionState.ACTIVE, True),
        (SessionState.IDLE, SessionState.WAITING_AGENT, False),
        (SessionState.WAITING_AGENT, SessionState.ACTIVE, True),
        (SessionState.WAITING_AGENT, SessionState.CLOSED, True),
        (SessionState.CLOSED, SessionState.ACTIVE, False),
    ],
)
def test_state_machine(current, target, allowed):
    assert can_transition(current, target) is allowed


def test_customer_id_helpers():
    assert session_customer_id("+201234567890") == "whatsapp:+201234567890"
    assert session_customer_id("whatsapp:+201234567890") == "whatsapp:+201234567890"
    assert strip_channel_prefix("whatsapp:+201234567890") == "+201234567890"
    assert ConversationSessionStore.key("whatsapp:+20") == "session:whatsapp:+20"


def test_customer_id_candidates_try_the_given_form_first():
    assert customer_id_candidates("201234567890") == [
        "201234567890",
        "whatsapp:201234567890",
    ]
    assert customer_id_candidates(" whatsapp:+201234567890 ") == [
        "whatsapp:+201234567890",
        "+201234567890",
        "201234567890",
    ]


def test_find_falls_back_to_other_key_forms(store, put_session):
    put_session(customer_id="201234567890")

    session = store.find("whatsapp:+201234567890")

    assert session is not None
    assert session.customer_id == "201234567890"
    assert store.find("+209999999999") is None


def test_unknown_state_is_a_store_error(store, put_session):
    put_session(state="ESCALATED")

    with pytest.raises(SessionStoreError, match="unknown state"):
        store.get("whatsapp:+201234567890")


def test_get_returns_none_for_missing_session(store):
    assert store.get("whatsapp:+201234567890") is None
    with pytest.raises(SessionNotFoundError):
        store.require("whatsapp:+201234567890")


def test_invalid_json_is_reported(store, fake_redis):
    fake_redis.values["session:whatsapp:+1"] = "[1, 2]"

    with pytest.raises(SessionStoreError):
        store.get("whatsapp:+1")


def test_escalate_then_transition_back_clears_escalation(store, put_session, read_session):
    put_session()

    store.escalate("whatsapp:+201234567890", "customer_request")
    escalated = read_session()
    assert escalated["state"] == "WAITING_AGENT"
    assert escalated["context"]["escalationReason"] == "customer_request"
    assert escalated["context"]["escalationTime"]

    store.transition("whatsapp:+201234567890", SessionState.ACTIVE)
    restored = read_session()
    assert restored["state"] == "ACTIVE"
    assert "escalationReason" not in restored["context"]
    assert restored["customerId"] == "whatsapp:+201234567890"


def test_closed_sessions_cannot_be_reopened(store, put_session):
    put_session(state="CLOSED")

    with pytest.raises(InvalidSessionTransition):
        store.transition("whatsapp:+201234567890", SessionState.ACTIVE)
    with pytest.raises(InvalidSessionTransition):
        store.escalate("whatsapp:+201234567890", "agent_takeover")


def test_reset_escalation_overrides_any_state(store, put_session, read_session, fake_redis):
    put_session(state="CLOSED", escalationReason="stale")

    previous, session = store.reset_escalation("whatsapp:+201234567890")

    assert previous is SessionState.CLOSED
    assert session.state is SessionState.ACTIVE
    assert "escalationReason" not in read_session()["context"]
    assert fake_redis.set_calls[-1]["keepttl"] is True
    assert fake_redis.ttls["session:whatsapp:+201234567890"] == 86400


def test_save_keeps_unknown_fields(store, put_session, read_session):
    document = put_session()
    document_extra = {**document, "channel": "whatsapp"}
    store.client.values["session:whatsapp:+201234567890"] = json.dumps(document_extra)

    store.transition("whatsapp:+201234567890", SessionState.IDLE)

    assert read_session()["channel"] == "whatsapp"


def test_delete(store, put_session, fake_redis):
    put_session()

    assert store.delete("whatsapp:+201234567890") is True
    assert store.delete("whatsapp:+201234567890") is False
    assert fake_redis.values == {}
