"""Pydantic schemas for the agent profile resources."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models.agent import AgentStatus

PHONE_PATTERN = r"^\+?[1-9]\d{1,14}$"


class AgentRead(BaseModel):
    """Agent profile as exposed to the admin portal."""

    id: str
    email: str
    full_name: str
    phone_number: Optional[str] = None
    company_name: Optional[str] = None
    whatsapp_number: Optional[str] = None
    status: AgentStatus
    settings: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AgentProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(default=None, min_length=2, max_length=255)
    phone_number: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)
    company_name: Optional[str] = Field(default=None, max_length=255)
    whatsapp_number: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)


class AgentSettingsUpdate(BaseModel):
    settings: dict[str, Any] = Field(
        default_factory=dict, description="Keys merged into the stored settings"
    )


class AgentStats(BaseModel):
    total_conversations: int = Field(..., ge=0)
    active_conversations: int = Field(..., ge=0)
    total_leads: int = Field(..., ge=0)
    hot_leads: int = Field(..., ge=0)
    warm_leads: int = Field(..., ge=0)
    cold_leads: int = Field(..., ge=0)
    total_properties: int = Field(..., ge=0)
    available_properties: int = Field(..., ge=0)
    conversion_rate: Decimal = Field(..., ge=0, description="Percentage of closed hot leads")
