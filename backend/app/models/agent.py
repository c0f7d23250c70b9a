"""SQLAlchemy model definitions for agents using the admin portal."""

from __future__ import annotations

import enum

from sqlalchemy import JSON, Column, DateTime, Enum, String, func
from sqlalchemy.orm import relationship

from ..database import Base
from ..db_types import GUID, new_identifier, utcnow


class AgentStatus(str, enum.Enum):
    """Lifecycle states of an agent account."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


class Agent(Base):
    """A real-estate agent who owns properties and conversations."""

    __tablename__ = "agents"

    id = Column("agent_id", GUID(), primary_key=True, default=new_identifier)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=False)
    full_name = Column(String(255), nullable=False)
    phone_number = Column(String(32), nullable=True)
    company_name = Column(String(255), nullable=True)
    whatsapp_number = Column(String(32), nullable=True, unique=True)
    status = Column(
        Enum(
            AgentStatus,
            name="agent_status_enum",
            native_enum=False,
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
        default=AgentStatus.ACTIVE,
        server_default=AgentStatus.ACTIVE.value,
    )
    settings = Column(JSON, nullable=False, default=dict)
    created_at = Column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    properties = relationship("Property", back_populates="agent", cascade="all, delete-orphan")
    conversations = relationship(
        "Conversation", back_populates="agent", cascade="all, delete-orphan"
    )
