from __future__ import annotations

import csv
import io
from datetime import datetime, timedelta, timezone

import pytest

from backend.app import models
from backend.app.main import app
from backend.app.services.conversations import ConversationService
from backend.app.services.sessions import ConversationSessionStore, get_session_store
from backend.app.services.whatsapp import (
    ConsoleWhatsAppClient,
    DeliveryResult,
    WhatsAppClient,
    get_whatsapp_client,
)


class RejectingWhatsAppClient(WhatsAppClient):
    channel = "test"

    def send_text(self, *, recipient: str, body: str) -> DeliveryResult:
        return DeliveryResult(success=False, status_code=400, error="Recipient not on WhatsApp")


@pytest.fixture
def session_store(fake_redis) -> ConversationSessionStore:
    store = ConversationSessionStore(fake_redis)
    app.dependency_overrides[get_session_store] = lambda: store
    return store


@pytest.fixture
def whatsapp() -> ConsoleWhatsAppClient:
    client = ConsoleWhatsAppClient()
    app.dependency_overrides[get_whatsapp_client] = lambda: client
    return client


def test_list_conversations_filters_and_searches(client, agent, make_agent, make_conversation):
    make_conversation(agent, customer_name="Ahmed Ali", lead_quality=models.LeadQuality.HOT)
    make_conversation(
        agent,
        customer_name="Sara Mahmoud",
        customer_phone="+201009998887",
        status=models.ConversationStatus.WAITING_AGENT,
    )
    make_conversation(agent, customer_name="Khaled", status=models.ConversationStatus.CLOSED)
    make_conversation(make_agent(), customer_name="Ahmed Foreign")

    everything = client.get("/conversations", params={"status": "all"}).json()
    assert everything["pagination"]["total"] == 3

    waiting = client.get("/conversations", params={"status": "waiting_agent"}).json()
    assert [item["customer_name"] for item in waiting["items"]] == ["Sara Mahmoud"]

    by_name = client.get("/conversations", params={"search": "AHMED"}).json()
    assert [item["customer_name"] for item in by_name["items"]] == ["Ahmed Ali"]

    by_phone = client.get("/conversations", params={"search": "999888"}).json()
    assert [item["customer_name"] for item in by_phone["items"]] == ["Sara Mahmoud"]

    hot = client.get("/conversations", params={"lead_quality": "hot"}).json()
    assert [item["lead_quality"] for item in hot["items"]] == ["hot"]


def test_search_treats_wildcards_literally(client, agent, make_conversation):
    make_conversation(agent, customer_name="Ahmed Ali")
    make_conversation(agent, customer_name="Sara", customer_phone="+201009998887")
    make_conversation(agent, customer_name="Deal_100%", customer_phone="+201005554443")

    for term in ("%", "_", "0%"):
        body = client.get("/conversations", params={"search": term}).json()
        assert [item["customer_name"] for item in body["items"]] == ["Deal_100%"], term

    assert client.get("/conversations", params={"search": "a%i"}).json()["pagination"]["total"] == 0


def test_list_conversations_sorted_by_lead_score(client, agent, make_conversation):
    for score in (40, 90, 10):
        make_conversation(agent, lead_score=score)

    body = client.get(
        "/conversations", params={"sort_by": "lead_score", "sort_order": "asc", "limit": 2}
    ).json()

    assert [item["lead_score"] for item in body["items"]] == [10, 40]
    assert body["pagination"]["has_more"] is True


def test_conversation_detail_includes_messages(client, agent, make_conversation):
    conversation = make_conversation(agent, messages=("Hi", "Welcome!", "Any villas?"))

    response = client.get(f"/conversations/{conversation.id}")

    assert response.status_code == 200
    body = response.json()
    assert [message["content"] for message in body["messages"]] == [
        "Hi",
        "Welcome!",
        "Any villas?",
    ]
    assert body["message_count"] == 3
    assert body["active_session"] is None


def test_conversation_detail_includes_live_session(
    client, agent, make_conversation, session_store, put_session
):
    conversation = make_conversation(agent)
    put_session(currentIntent="property_search")

    body = client.get(f"/conversations/{conversation.id}").json()

    assert body["active_session"]["state"] == "ACTIVE"
    assert body["active_session"]["current_intent"] == "property_search"
    assert body["active_session"]["extracted_info"] == {"budget": 3000000}
    assert body["active_session"]["message_count"] == 1


def test_conversation_detail_survives_corrupt_session(
    client, agent, make_conversation, session_store, fake_redis
):
    conversation = make_conversation(agent)
    fake_redis.values["session:whatsapp:+201234567890"] = "{not json"

    response = client.get(f"/conversations/{conversation.id}")

    assert response.status_code == 200
    assert response.json()["active_session"] is None


def test_conversation_detail_ignores_session_with_unknown_state(
    client, agent, make_conversation, session_store, put_session
):
    conversation = make_conversation(agent)
    put_session(state="ESCALATED")

    response = client.get(f"/conversations/{conversation.id}")

    assert response.status_code == 200
    assert response.json()["active_session"] is None


def test_conversation_detail_finds_session_keyed_without_prefix(
    client, agent, make_conversation, session_store, put_session
):
    conversation = make_conversation(agent)
    put_session(customer_id="+201234567890", currentIntent="pricing")

    body = client.get(f"/conversations/{conversation.id}").json()

    assert body["active_session"]["current_intent"] == "pricing"


def test_foreign_conversation_is_not_found(client, make_agent, make_conversation):
    foreign = make_conversation(make_agent())

    assert client.get(f"/conversations/{foreign.id}").status_code == 404
    assert client.post(f"/conversations/{foreign.id}/takeover").status_code == 404


def test_takeover_escalates_live_session(
    client, agent, make_conversation, session_store, put_session, read_session, fake_redis
):
    conversation = make_conversation(agent)
    put_session()

    response = client.post(f"/conversations/{conversation.id}/takeover")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "waiting_agent"
    assert body["metadata"]["taken_over_by"] == agent.id
    session = read_session()
    assert session["state"] == "WAITING_AGENT"
    assert session["context"]["escalationReason"] == "agent_takeover"
    assert all(call["keepttl"] for call in fake_redis.set_calls)


def test_takeover_escalates_session_keyed_by_raw_sender(
    client, agent, make_conversation, session_store, put_session, read_session
):
    conversation = make_conversation(agent, customer_phone="201234567890")
    put_session(customer_id="201234567890")

    response = client.post(f"/conversations/{conversation.id}/takeover")

    assert response.status_code == 200
    assert read_session(customer_id="201234567890")["state"] == "WAITING_AGENT"


def test_takeover_without_live_session_still_succeeds(client, agent, make_conversation, session_store):
    conversation = make_conversation(agent)

    response = client.post(f"/conversations/{conversation.id}/takeover")

    assert response.status_code == 200
    assert response.json()["status"] == "waiting_agent"


def test_release_returns_conversation_to_assistant(
    client, agent, make_conversation, session_store, put_session, read_session
):
    conversation = make_conversation(agent, status=models.ConversationStatus.WAITING_AGENT)
    put_session(
        state="WAITING_AGENT",
        escalationTime="2024-10-01T10:06:00+00:00",
        escalationReason="agent_takeover",
    )

    response = client.post(f"/conversations/{conversation.id}/release")

    assert response.status_code == 200
    assert response.json()["status"] == "active"
    session = read_session()
    assert session["state"] == "ACTIVE"
    assert "escalationTime" not in session["context"]
    assert "escalationReason" not in session["context"]


def test_release_requires_waiting_agent(client, agent, make_conversation):
    conversation = make_conversation(agent)

    response = client.post(f"/conversations/{conversation.id}/release")

    assert response.status_code == 409


def test_close_records_reason_and_closes_session(
    client, agent, make_conversation, session_store, put_session, read_session
):
    conversation = make_conversation(agent)
    put_session()

    response = client.post(
        f"/conversations/{conversation.id}/close", json={"reason": "Bought a unit"}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "closed"
    assert body["closed_at"] is not None
    assert body["metadata"]["close_reason"] == "Bought a unit"
    assert body["metadata"]["closed_by"] == "agent"
    assert read_session()["state"] == "CLOSED"

    again = client.post(f"/conversations/{conversation.id}/close")
    assert again.status_code == 409

    takeover = client.post(f"/conversations/{conversation.id}/takeover")
    assert takeover.status_code == 409


def test_agent_message_is_sent_and_stored(client, agent, make_conversation, whatsapp, db_session):
    conversation = make_conversation(agent, status=models.ConversationStatus.IDLE)

    response = client.post(
        f"/conversations/{conversation.id}/messages", json={"content": "I can call you at 5pm"}
    )

    assert response.status_code == 201, response.text
    body = response.json()
    assert body["role"] == "agent"
    assert body["whatsapp_message_id"] == "console-1"
    assert whatsapp.records == [{"recipient": "+201234567890", "body": "I can call you at 5pm"}]
    db_session.expire_all()
    refreshed = db_session.get(models.Conversation, conversation.id)
    assert refreshed.status == models.ConversationStatus.ACTIVE


def test_agent_message_rejected_by_provider(client, agent, make_conversation):
    conversation = make_conversation(agent)
    app.dependency_overrides[get_whatsapp_client] = RejectingWhatsAppClient

    response = client.post(f"/conversations/{conversation.id}/messages", json={"content": "Hi"})

    assert response.status_code == 502


def test_agent_message_to_closed_conversation(client, agent, make_conversation, whatsapp):
    conversation = make_conversation(agent, status=models.ConversationStatus.CLOSED)

    response = client.post(f"/conversations/{conversation.id}/messages", json={"content": "Hi"})

    assert response.status_code == 409
    assert whatsapp.records == []


def test_agent_message_length_is_validated(client, agent, make_conversation, whatsapp):
    conversation = make_conversation(agent)

    empty = client.post(f"/conversations/{conversation.id}/messages", json={"content": ""})
    too_long = client.post(
        f"/conversations/{conversation.id}/messages", json={"content": "x" * 4097}
    )

    assert empty.status_code == 422
    assert too_long.status_code == 422


def test_export_text(client, agent, make_conversation):
    conversation = make_conversation(
        agent,
        messages=("Hello", "Welcome"),
        lead_quality=models.LeadQuality.WARM,
    )

    response = client.get(f"/conversations/{conversation.id}/export", params={"format": "text"})

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert "attachment" in response.headers["content-disposition"]
    lines = response.text.splitlines()
    assert lines[0] == "Conversation Export"
    assert "Customer: Ahmed Ali (+20 123 456 7890)" in lines
    assert "Lead Quality: warm" in lines
    assert any(line.endswith("USER:") for line in lines)
    assert "Welcome" in lines


def test_export_csv(client, agent, make_conversation):
    conversation = make_conversation(agent, messages=('Budget is "3M"', "Noted"))

    response = client.get(f"/conversations/{conversation.id}/export", params={"format": "csv"})

    assert response.status_code == 200
    rows = list(csv.reader(io.StringIO(response.text)))
    assert rows[0] == ["Timestamp", "Role", "Message Type", "Content"]
    assert rows[1][1:] == ["user", "text", 'Budget is "3M"']
    assert rows[2][1] == "assistant"


def test_export_json(client, agent, make_conversation):
    conversation = make_conversation(agent, messages=("Hello",))

    response = client.get(f"/conversations/{conversation.id}/export")

    assert response.status_code == 200
    assert response.json()["messages"][0]["content"] == "Hello"


def test_mark_idle_conversations(db_session, agent, make_conversation):
    now = datetime.now(timezone.utc)
    stale = make_conversation(agent, last_activity_at=now - timedelta(minutes=45))
    fresh = make_conversation(agent, last_activity_at=now - timedelta(minutes=5))
    waiting = make_conversation(
        agent,
        status=models.ConversationStatus.WAITING_AGENT,
        last_activity_at=now - timedelta(hours=3),
    )

    updated = ConversationService.mark_idle_conversations(
        db_session, idle_after=timedelta(minutes=30), now=now
    )
    db_session.commit()

    assert updated == 1
    db_session.expire_all()
    assert db_session.get(models.Conversation, stale.id).status == models.ConversationStatus.IDLE
    assert db_session.get(models.Conversation, fresh.id).status == models.ConversationStatus.ACTIVE
    assert (
        db_session.get(models.Conversation, waiting.id).status
        == models.ConversationStatus.WAITING_AGENT
    )
