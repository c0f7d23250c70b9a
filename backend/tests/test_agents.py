from __future__ import annotations

from decimal import Decimal

from backend.app import models


def test_get_profile(client, agent):
    response = client.get("/agents/profile")

    assert response.status_code == 200
    body = response.json()
    assert body["id"] == agent.id
    assert body["full_name"] == "Mona Hassan"


def test_update_profile(client):
    response = client.put(
        "/agents/profile",
        json={"full_name": "Mona H. Hassan", "company_name": "Delta Realty"},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["full_name"] == "Mona H. Hassan"
    assert body["company_name"] == "Delta Realty"


def test_update_profile_rejects_taken_whatsapp_number(client, make_agent):
    other = make_agent()

    response = client.put("/agents/profile", json={"whatsapp_number": other.whatsapp_number})

    assert response.status_code == 409


def test_settings_are_merged(client):
    first = client.put("/agents/settings", json={"settings": {"language": "ar", "greeting": "Hi"}})
    assert first.status_code == 200

    second = client.put("/agents/settings", json={"settings": {"greeting": "Ahlan"}})

    assert second.status_code == 200
    assert second.json()["settings"] == {"language": "ar", "greeting": "Ahlan"}


def test_stats(client, agent, make_agent, make_conversation, make_property):
    make_conversation(agent, lead_quality=models.LeadQuality.HOT)
    make_conversation(
        agent,
        status=models.ConversationStatus.CLOSED,
        lead_quality=models.LeadQuality.HOT,
    )
    make_conversation(agent, lead_quality=models.LeadQuality.WARM)
    make_conversation(
        agent, status=models.ConversationStatus.IDLE, lead_quality=models.LeadQuality.COLD
    )
    make_property(agent)
    make_property(agent, status=models.PropertyStatus.SOLD)
    make_conversation(make_agent(), lead_quality=models.LeadQuality.HOT)

    response = client.get("/agents/stats")

    assert response.status_code == 200
    body = response.json()
    assert body["total_conversations"] == 4
    assert body["active_conversations"] == 2
    assert body["total_leads"] == 4
    assert (body["hot_leads"], body["warm_leads"], body["cold_leads"]) == (2, 1, 1)
    assert body["total_properties"] == 2
    assert body["available_properties"] == 1
    assert Decimal(str(body["conversion_rate"])) == Decimal("25.00")
