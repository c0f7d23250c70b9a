from __future__ import annotations

import pytest

from backend.app import models
from backend.app.scripts import reset_session


@pytest.fixture(autouse=True)
def _use_fake_redis(monkeypatch, fake_redis):
    urls: list[str] = []

    def _client(url=None):
        urls.append(url)
        return fake_redis

    monkeypatch.setattr(reset_session, "get_redis_client", _client)
    return urls


def test_reset_session_clears_escalation_and_syncs_conversations(
    agent, make_conversation, put_session, read_session, db_session, capsys
):
    waiting = make_conversation(agent, status=models.ConversationStatus.WAITING_AGENT)
    other_customer = make_conversation(
        agent,
        customer_phone="+201009998887",
        status=models.ConversationStatus.WAITING_AGENT,
    )
    put_session(
        state="WAITING_AGENT",
        escalationTime="2024-10-01T10:06:00+00:00",
        escalationReason="customer_request",
    )

    exit_code = reset_session.main(["whatsapp:+201234567890"])

    assert exit_code == 0
    output = capsys.readouterr().out
    assert "State: WAITING_AGENT" in output
    assert "Escalated at: 2024-10-01T10:06:00+00:00" in output
    assert "Conversations moved back to active: 1" in output

    session = read_session()
    assert session["state"] == "ACTIVE"
    assert "escalationTime" not in session["context"]
    assert "escalationReason" not in session["context"]

    db_session.expire_all()
    assert db_session.get(models.Conversation, waiting.id).status == models.ConversationStatus.ACTIVE
    assert (
        db_session.get(models.Conversation, other_customer.id).status
        == models.ConversationStatus.WAITING_AGENT
    )


def test_reset_session_accepts_bare_phone_and_no_sync(
    agent, make_conversation, put_session, read_session, db_session
):
    waiting = make_conversation(agent, status=models.ConversationStatus.WAITING_AGENT)
    put_session(state="WAITING_AGENT")

    exit_code = reset_session.main(["+201234567890", "--no-sync"])

    assert exit_code == 0
    assert read_session()["state"] == "ACTIVE"
    db_session.expire_all()
    assert (
        db_session.get(models.Conversation, waiting.id).status
        == models.ConversationStatus.WAITING_AGENT
    )


def test_reset_session_uses_redis_url_option(put_session, _use_fake_redis):
    put_session()

    reset_session.main(["+201234567890", "--redis-url", "redis://cache:6380/2", "--no-sync"])

    assert _use_fake_redis == ["redis://cache:6380/2"]


def test_missing_session_exits_with_error():
    assert reset_session.main(["whatsapp:+209999999999"]) == 1


def test_missing_phone_exits_with_error():
    assert reset_session.main([]) == 1


def test_sync_matches_conversations_stored_with_channel_prefix(
    agent, make_conversation, put_session, db_session
):
    prefixed = make_conversation(
        agent,
        customer_phone="whatsapp:+201234567890",
        status=models.ConversationStatus.WAITING_AGENT,
    )
    bare = make_conversation(agent, status=models.ConversationStatus.WAITING_AGENT)
    put_session(state="WAITING_AGENT")

    assert reset_session.main(["whatsapp:+201234567890"]) == 0

    db_session.expire_all()
    for conversation in (prefixed, bare):
        assert (
            db_session.get(models.Conversation, conversation.id).status
            == models.ConversationStatus.ACTIVE
        )


def test_session_keyed_by_raw_sender_is_found(put_session, read_session, capsys):
    put_session(state="WAITING_AGENT", customer_id="201234567890")

    assert reset_session.main(["201234567890", "--no-sync"]) == 0

    assert read_session(customer_id="201234567890")["state"] == "ACTIVE"
    assert "Session reset from WAITING_AGENT to ACTIVE" in capsys.readouterr().out


def test_session_with_unknown_state_exits_with_error(put_session):
    put_session(state="ESCALATED")

    assert reset_session.main(["+201234567890", "--no-sync"]) == 1
