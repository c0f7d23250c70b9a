"""SQLAlchemy model definitions for listed properties and their payment plans."""

from __future__ import annotations

import enum

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import relationship

from ..database import Base
from ..db_types import GUID, new_identifier, utcnow


class PropertyStatus(str, enum.Enum):
    """Sales status of a property."""

    AVAILABLE = "available"
    SOLD = "sold"
    RESERVED = "reserved"


class Property(Base):
    """A unit offered by an agent to WhatsApp customers."""

    __tablename__ = "properties"
    __table_args__ = (
        CheckConstraint("area > 0", name="ck_properties_area_positive"),
        CheckConstraint("base_price > 0", name="ck_properties_base_price_positive"),
        CheckConstraint("bedrooms >= 0", name="ck_properties_bedrooms_non_negative"),
        CheckConstraint("bathrooms >= 0", name="ck_properties_bathrooms_non_negative"),
    )

    id = Column("property_id", GUID(), primary_key=True, default=new_identifier)
    agent_id = Column(
        GUID(),
        ForeignKey("agents.agent_id", ondelete="CASCADE"),
        nullable=False,
    )
    project_name = Column(String(200), nullable=False)
    developer_name = Column(String(200), nullable=True)
    property_type = Column(String(50), nullable=False)
    city = Column(String(100), nullable=False)
    district = Column(String(100), nullable=True)
    address = Column(String(255), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    area = Column(Numeric(10, 2), nullable=False)
    bedrooms = Column(Integer, nullable=False, default=0)
    bathrooms = Column(Integer, nullable=False, default=0)
    floors = Column(Integer, nullable=True)
    base_price = Column(Numeric(14, 2), nullable=False)
    price_per_meter = Column(Numeric(12, 2), nullable=True)
    currency = Column(String(3), nullable=False, default="EGP", server_default="EGP")
    amenities = Column(JSON, nullable=False, default=list)
    description = Column(Text, nullable=True)
    delivery_date = Column(Date, nullable=True)
    images = Column(JSON, nullable=False, default=list)
    documents = Column(JSON, nullable=False, default=list)
    video_url = Column(String, nullable=True)
    status = Column(
        Enum(
            PropertyStatus,
            name="property_status_enum",
            native_enum=False,
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
        default=PropertyStatus.AVAILABLE,
        server_default=PropertyStatus.AVAILABLE.value,
    )
    created_at = Column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    agent = relationship("Agent", back_populates="properties")
    payment_plans = relationship(
        "PaymentPlan",
        back_populates="property",
        cascade="all, delete-orphan",
        order_by="PaymentPlan.installment_years",
    )


class PaymentPlan(Base):
    """Installment plan offered for a property."""

    __tablename__ = "payment_plans"
    __table_args__ = (
        CheckConstraint(
            "down_payment_percentage >= 0 AND down_payment_percentage <= 100",
            name="ck_payment_plans_down_payment_range",
        ),
        CheckConstraint("installment_years > 0", name="ck_payment_plans_years_positive"),
    )

    id = Column("payment_plan_id", GUID(), primary_key=True, default=new_identifier)
    property_id = Column(
        GUID(),
        ForeignKey("properties.property_id", ondelete="CASCADE"),
        nullable=False,
    )
    plan_name = Column(String(100), nullable=False)
    down_payment_percentage = Column(Numeric(5, 2), nullable=False)
    installment_years = Column(Integer, nullable=False)
    monthly_payment = Column(Numeric(12, 2), nullable=False)
    description = Column(Text, nullable=True)

    property = relationship("Property", back_populates="payment_plans")


Index("properties_agent_status_idx", Property.agent_id, Property.status)
Index("properties_city_idx", Property.city)
Index("payment_plans_property_idx", PaymentPlan.property_id)
