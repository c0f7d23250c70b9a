"""Expose SQLAlchemy models for convenient imports."""

from .agent import Agent, AgentStatus
from .conversation import (
    Conversation,
    ConversationStatus,
    LeadQuality,
    Message,
    MessageRole,
    MessageType,
)
from .property import PaymentPlan, Property, PropertyStatus

__all__ = [
    "Agent",
    "AgentStatus",
    "Conversation",
    "ConversationStatus",
    "LeadQuality",
    "Message",
    "MessageRole",
    "MessageType",
    "PaymentPlan",
    "Property",
    "PropertyStatus",
]
