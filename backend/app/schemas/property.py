"""Pydantic schemas for properties and payment plans."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models.property import PropertyStatus
from .common import PaginatedResponse


def _validate_urls(values: Optional[list[str]]) -> Optional[list[str]]:
    if values is None:
        return values
    for value in values:
        if not value.startswith(("http://", "https://")):
            raise ValueError(f"Invalid URL: {value}")
    return values


class PaymentPlanBase(BaseModel):
    plan_name: str = Field(..., min_length=1, max_length=100)
    down_payment_percentage: Decimal = Field(..., ge=0, le=100)
    installment_years: int = Field(..., gt=0, le=30)
    monthly_payment: Decimal = Field(..., gt=0)
    description: Optional[str] = None


class PaymentPlanCreate(PaymentPlanBase):
    """Schema used to attach a payment plan to a new property."""

    pass


class PaymentPlanRead(PaymentPlanBase):
    id: str

    model_config = ConfigDict(from_attributes=True)


class PropertyBase(BaseModel):
    project_name: str = Field(..., min_length=1, max_length=200)
    developer_name: Optional[str] = Field(default=None, max_length=200)
    property_type: str = Field(..., min_length=1, max_length=50)
    city: str = Field(..., min_length=1, max_length=100)
    district: Optional[str] = Field(default=None, max_length=100)
    address: Optional[str] = Field(default=None, max_length=255)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    area: Decimal = Field(..., gt=0, description="Built-up area in square meters")
    bedrooms: int = Field(default=0, ge=0)
    bathrooms: int = Field(default=0, ge=0)
    floors: Optional[int] = Field(default=None, gt=0)
    base_price: Decimal = Field(..., gt=0)
    price_per_meter: Optional[Decimal] = Field(default=None, gt=0)
    currency: str = Field(default="EGP", min_length=3, max_length=3)
    amenities: list[str] = Field(default_factory=list)
    description: Optional[str] = None
    delivery_date: Optional[date] = None
    images: list[str] = Field(default_factory=list)
    documents: list[str] = Field(default_factory=list)
    video_url: Optional[str] = None
    status: PropertyStatus = PropertyStatus.AVAILABLE


class PropertyCreate(PropertyBase):
    """Schema used to create properties together with their payment plans."""

    payment_plans: list[PaymentPlanCreate] = Field(default_factory=list)

    @field_validator("images", "documents")
    @classmethod
    def _urls(cls, value: list[str]) -> list[str]:
        return _validate_urls(value)  # type: ignore[return-value]

    @field_validator("video_url")
    @classmethod
    def _video_url(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            _validate_urls([value])
        return value


class PropertyUpdate(BaseModel):
    """Partial update of property attributes; ``payment_plans`` replaces all plans."""

    project_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    developer_name: Optional[str] = Field(default=None, max_length=200)
    property_type: Optional[str] = Field(default=None, min_length=1, max_length=50)
    city: Optional[str] = Field(default=None, min_length=1, max_length=100)
    district: Optional[str] = Field(default=None, max_length=100)
    address: Optional[str] = Field(default=None, max_length=255)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    area: Optional[Decimal] = Field(default=None, gt=0)
    bedrooms: Optional[int] = Field(default=None, ge=0)
    bathrooms: Optional[int] = Field(default=None, ge=0)
    floors: Optional[int] = Field(default=None, gt=0)
    base_price: Optional[Decimal] = Field(default=None, gt=0)
    price_per_meter: Optional[Decimal] = Field(default=None, gt=0)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    amenities: Optional[list[str]] = None
    description: Optional[str] = None
    delivery_date: Optional[date] = None
    images: Optional[list[str]] = None
    documents: Optional[list[str]] = None
    video_url: Optional[str] = None
    status: Optional[PropertyStatus] = None
    payment_plans: Optional[list[PaymentPlanCreate]] = None

    @field_validator("images", "documents")
    @classmethod
    def _urls(cls, value: Optional[list[str]]) -> Optional[list[str]]:
        return _validate_urls(value)


class PropertyRead(PropertyBase):
    """Schema representing stored properties."""

    id: str
    agent_id: str
    payment_plans: list[PaymentPlanRead] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PropertyListResponse(PaginatedResponse[PropertyRead]):
    """Paginated collection of properties."""


class PropertyBulkUploadRequest(BaseModel):
    properties: list[dict[str, Any]] = Field(
        ..., description="Raw property rows; each is validated independently"
    )


class PropertyRowError(BaseModel):
    index: int = Field(..., ge=0)
    errors: list[str]


class PropertyBulkUploadResult(BaseModel):
    created: int = Field(..., ge=0)
    property_ids: list[str] = Field(default_factory=list)
