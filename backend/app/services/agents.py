"""Business logic for agent accounts, credentials and profile statistics."""

from __future__ import annotations

import logging
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Mapping

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from .. import models, schemas
from ..security import (
    TOKEN_TYPE_REFRESH,
    TokenError,
    decode_token,
    generate_password_hash,
    verify_password,
)

LOGGER = logging.getLogger(__name__)


class AgentServiceError(RuntimeError):
    """Base error for agent account operations."""


class AgentAlreadyExistsError(AgentServiceError):
    """Raised when the email or WhatsApp number is already registered."""


class InvalidCredentialsError(AgentServiceError):
    """Raised when an email/password pair or refresh token is not valid."""


class InactiveAgentError(AgentServiceError):
    """Raised when a suspended or inactive agent tries to authenticate."""


class AgentService:
    """Encapsulates agent account operations."""

    @staticmethod
    def get_by_email(db: Session, email: str) -> models.Agent | None:
        normalized = email.strip().lower()
        return db.scalars(select(models.Agent).where(models.Agent.email == normalized)).first()

    @staticmethod
    def register(db: Session, data: schemas.AgentRegisterRequest) -> models.Agent:
        if AgentService.get_by_email(db, data.email) is not None:
            raise AgentAlreadyExistsError("An agent with this email already exists")
        duplicate_number = db.scalars(
            select(models.Agent).where(models.Agent.whatsapp_number == data.whatsapp_number)
        ).first()
        if duplicate_number is not None:
            raise AgentAlreadyExistsError("This WhatsApp number is already registered")

        agent = models.Agent(
            email=data.email,
            password_hash=generate_password_hash(data.password),
            full_name=data.full_name,
            phone_number=data.phone_number,
            company_name=data.company_name,
            whatsapp_number=data.whatsapp_number,
            status=models.AgentStatus.ACTIVE,
            settings={},
        )
        db.add(agent)
        db.commit()
        db.refresh(agent)
        LOGGER.info("Registered agent %s", agent.id)
        return agent

    @staticmethod
    def _ensure_active(agent: models.Agent) -> None:
        if agent.status != models.AgentStatus.ACTIVE:
            raise InactiveAgentError(f"Account is {agent.status.value}")

    @staticmethod
    def authenticate(db: Session, email: str, password: str) -> models.Agent:
        agent = AgentService.get_by_email(db, email)
        if agent is None or not verify_password(password, agent.password_hash):
            LOGGER.info("Failed login attempt for %s", email)
            raise InvalidCredentialsError("Invalid email or password")
        AgentService._ensure_active(agent)
        return agent

    @staticmethod
    def resolve_refresh_token(db: Session, refresh_token: str) -> models.Agent:
        try:
            payload = decode_token(refresh_token, expected_type=TOKEN_TYPE_REFRESH)
        except TokenError as exc:
            raise InvalidCredentialsError(str(exc)) from exc
        agent = db.get(models.Agent, payload["sub"])
        if agent is None:
            raise InvalidCredentialsError("Invalid refresh token")
        AgentService._ensure_active(agent)
        return agent

    @staticmethod
    def change_password(
        db: Session, agent: models.Agent, old_password: str, new_password: str
    ) -> None:
        if not verify_password(old_password, agent.password_hash):
            raise InvalidCredentialsError("Current password is incorrect")
        agent.password_hash = generate_password_hash(new_password)
        db.commit()
        LOGGER.info("Password changed for agent %s", agent.id)

    @staticmethod
    def update_profile(
        db: Session, agent: models.Agent, data: schemas.AgentProfileUpdate
    ) -> models.Agent:
        changes = data.model_dump(exclude_unset=True)
        new_number = changes.get("whatsapp_number")
        if new_number and new_number != agent.whatsapp_number:
            duplicate = db.scalars(
                select(models.Agent).where(
                    models.Agent.whatsapp_number == new_number,
                    models.Agent.id != agent.id,
                )
            ).first()
            if duplicate is not None:
                raise AgentAlreadyExistsError("This WhatsApp number is already registered")
        for field, value in changes.items():
            setattr(agent, field, value.strip() if isinstance(value, str) else value)
        db.commit()
        db.refresh(agent)
        return agent

    @staticmethod
    def merge_settings(
        db: Session, agent: models.Agent, settings: Mapping[str, Any]
    ) -> models.Agent:
        merged = dict(agent.settings or {})
        merged.update(settings)
        agent.settings = merged
        db.commit()
        db.refresh(agent)
        return agent

    @staticmethod
    def get_stats(db: Session, agent: models.Agent) -> schemas.AgentStats:
        conversation = models.Conversation
        quality = conversation.lead_quality
        row = db.execute(
            select(
                func.count(conversation.id),
                func.count(case((conversation.status == models.ConversationStatus.ACTIVE, 1))),
                func.count(quality),
                func.count(case((quality == models.LeadQuality.HOT, 1))),
                func.count(case((quality == models.LeadQuality.WARM, 1))),
                func.count(case((quality == models.LeadQuality.COLD, 1))),
                func.count(
                    case(
                        (
                            (conversation.status == models.ConversationStatus.CLOSED)
                            & (quality == models.LeadQuality.HOT),
                            1,
                        )
                    )
                ),
            ).where(conversation.agent_id == agent.id)
        ).one()
        total, active, leads, hot, warm, cold, converted = (int(value or 0) for value in row)

        property_row = db.execute(
            select(
                func.count(models.Property.id),
                func.count(
                    case((models.Property.status == models.PropertyStatus.AVAILABLE, 1))
                ),
            ).where(models.Property.agent_id == agent.id)
        ).one()

        conversion_rate = Decimal("0")
        if total:
            conversion_rate = (Decimal(converted) * 100 / Decimal(total)).quantize(
                Decimal("0.01"), rounding=ROUND_HALF_UP
            )

        return schemas.AgentStats(
            total_conversations=total,
            active_conversations=active,
            total_leads=leads,
            hot_leads=hot,
            warm_leads=warm,
            cold_leads=cold,
            total_properties=int(property_row[0] or 0),
            available_properties=int(property_row[1] or 0),
            conversion_rate=conversion_rate,
        )
