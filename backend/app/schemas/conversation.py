"""Pydantic schemas for conversations, messages and live session summaries."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from ..models.conversation import ConversationStatus, LeadQuality, MessageRole, MessageType
from .common import PaginatedResponse


class MessageRead(BaseModel):
    id: str
    role: MessageRole
    content: str
    message_type: MessageType
    whatsapp_message_id: Optional[str] = None
    media_url: Optional[str] = None
    intent: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ConversationSummary(BaseModel):
    """Conversation row as shown in listings."""

    id: str
    customer_phone: str
    customer_name: Optional[str] = None
    status: ConversationStatus
    lead_score: int
    lead_quality: Optional[LeadQuality] = None
    started_at: datetime
    last_activity_at: datetime
    closed_at: Optional[datetime] = None
    message_count: int = 0
    metadata: dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("meta", "metadata")
    )

    model_config = ConfigDict(from_attributes=True)


class LiveSessionSummary(BaseModel):
    """Snapshot of the assistant's in-memory session for a customer."""

    state: str
    last_activity: Optional[str] = None
    current_intent: Optional[str] = None
    extracted_info: dict[str, Any] = Field(default_factory=dict)
    message_count: int = 0
    escalation_reason: Optional[str] = None


class ConversationDetail(ConversationSummary):
    messages: list[MessageRead] = Field(default_factory=list)
    active_session: Optional[LiveSessionSummary] = None


class ConversationListResponse(PaginatedResponse[ConversationSummary]):
    """Paginated collection of conversations."""


class ConversationCloseRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class AgentMessageCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=4096)
