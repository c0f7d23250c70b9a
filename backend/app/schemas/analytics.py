"""Pydantic schemas for the analytics endpoints."""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from pydantic import BaseModel, Field

from .conversation import ConversationSummary


class ConversationTotals(BaseModel):
    total: int = Field(..., ge=0)
    active: int = Field(..., ge=0)
    idle: int = Field(..., ge=0)
    waiting_agent: int = Field(..., ge=0)
    closed: int = Field(..., ge=0)
    total_messages: int = Field(..., ge=0)
    avg_messages_per_conversation: Decimal = Field(..., ge=0)


class PropertyTotals(BaseModel):
    total: int = Field(..., ge=0)
    available: int = Field(..., ge=0)
    sold: int = Field(..., ge=0)
    reserved: int = Field(..., ge=0)


class LeadDistribution(BaseModel):
    hot: int = Field(0, ge=0)
    warm: int = Field(0, ge=0)
    cold: int = Field(0, ge=0)
    unqualified: int = Field(0, ge=0)
    total: int = Field(0, ge=0)
    average_score: Decimal = Field(Decimal("0"), ge=0)


class AnalyticsOverview(BaseModel):
    conversations: ConversationTotals
    properties: PropertyTotals
    leads: LeadDistribution
    recent_activity: list[ConversationSummary]


class ConversationTimeBucket(BaseModel):
    period_start: date
    started: int = Field(..., ge=0)
    closed: int = Field(..., ge=0)
    escalated: int = Field(..., ge=0)


class ConversationAnalytics(BaseModel):
    group_by: str
    series: list[ConversationTimeBucket]
    status_distribution: dict[str, int]
    average_duration_minutes: Decimal = Field(..., ge=0)


class PropertyAnalytics(BaseModel):
    total: int = Field(..., ge=0)
    by_type: dict[str, int]
    by_status: dict[str, int]
    by_city: dict[str, int]
    price_ranges: dict[str, int]
