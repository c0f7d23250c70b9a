"""SQLAlchemy model definitions for WhatsApp conversations and messages."""

from __future__ import annotations

import enum

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    func,
    select,
)
from sqlalchemy.orm import column_property, relationship

from ..database import Base
from ..db_types import GUID, new_identifier, utcnow


class ConversationStatus(str, enum.Enum):
    """Lifecycle of a customer conversation as seen by the agent."""

    ACTIVE = "active"
    IDLE = "idle"
    WAITING_AGENT = "waiting_agent"
    CLOSED = "closed"


class LeadQuality(str, enum.Enum):
    HOT = "hot"
    WARM = "warm"
    COLD = "cold"


class MessageRole(str, enum.Enum):
    USER = "user"
    ASSISTANT = "assistant"
    AGENT = "agent"


class MessageType(str, enum.Enum):
    TEXT = "text"
    IMAGE = "image"
    VIDEO = "video"
    DOCUMENT = "document"
    LOCATION = "location"


def _enum_column(enum_cls, name: str) -> Enum:
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        values_callable=lambda members: [member.value for member in members],
    )


class Message(Base):
    """A single message exchanged inside a conversation."""

    __tablename__ = "messages"

    id = Column("message_id", GUID(), primary_key=True, default=new_identifier)
    conversation_id = Column(
        GUID(),
        ForeignKey("conversations.conversation_id", ondelete="CASCADE"),
        nullable=False,
    )
    role = Column(_enum_column(MessageRole, "message_role_enum"), nullable=False)
    content = Column(Text, nullable=False)
    message_type = Column(
        _enum_column(MessageType, "message_type_enum"),
        nullable=False,
        default=MessageType.TEXT,
        server_default=MessageType.TEXT.value,
    )
    whatsapp_message_id = Column(String(128), nullable=True)
    media_url = Column(String, nullable=True)
    intent = Column(String(64), nullable=True)
    created_at = Column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )

    conversation = relationship("Conversation", back_populates="messages")


class Conversation(Base):
    """Conversation between a customer and the assistant on behalf of an agent."""

    __tablename__ = "conversations"

    id = Column("conversation_id", GUID(), primary_key=True, default=new_identifier)
    agent_id = Column(
        GUID(),
        ForeignKey("agents.agent_id", ondelete="CASCADE"),
        nullable=False,
    )
    customer_phone = Column(String(64), nullable=False)
    customer_name = Column(String(100), nullable=True)
    status = Column(
        _enum_column(ConversationStatus, "conversation_status_enum"),
        nullable=False,
        default=ConversationStatus.ACTIVE,
        server_default=ConversationStatus.ACTIVE.value,
    )
    lead_score = Column(Integer, nullable=False, default=0, server_default="0")
    lead_quality = Column(_enum_column(LeadQuality, "lead_quality_enum"), nullable=True)
    started_at = Column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    last_activity_at = Column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    closed_at = Column(DateTime(timezone=True), nullable=True)
    meta = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    agent = relationship("Agent", back_populates="conversations")
    messages = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by=Message.created_at,
    )

    message_count = column_property(
        select(func.count(Message.id))
        .where(Message.conversation_id == id)
        .correlate_except(Message)
        .scalar_subquery()
    )


Index("conversations_agent_status_idx", Conversation.agent_id, Conversation.status)
Index("conversations_customer_phone_idx", Conversation.customer_phone)
Index("conversations_last_activity_idx", Conversation.last_activity_at)
Index("messages_conversation_created_idx", Message.conversation_id, Message.created_at)
