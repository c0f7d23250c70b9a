from __future__ import annotations

from backend.app import models
from backend.app.scripts import create_agent
from backend.app.security import verify_password


def test_create_agent_with_generated_password(db_session, capsys):
    exit_code = create_agent.main(
        [
            "--email",
            "Broker@Example.com",
            "--full-name",
            "Youssef Adel",
            "--whatsapp-number",
            "+201551112223",
        ]
    )

    assert exit_code == 0
    output = capsys.readouterr().out
    password = output.split("Temporary password: ")[1].strip()
    created = db_session.query(models.Agent).filter_by(email="broker@example.com").one()
    assert verify_password(password, created.password_hash)


def test_create_agent_rejects_duplicates(agent):
    exit_code = create_agent.main(
        [
            "--email",
            agent.email,
            "--full-name",
            "Someone Else",
            "--whatsapp-number",
            "+201551112224",
            "--password",
            "Secur3Pass",
        ]
    )

    assert exit_code == 1


def test_create_agent_validates_input():
    exit_code = create_agent.main(
        [
            "--email",
            "broker@example.com",
            "--full-name",
            "Youssef Adel",
            "--whatsapp-number",
            "0155",
            "--password",
            "weak",
        ]
    )

    assert exit_code == 2
