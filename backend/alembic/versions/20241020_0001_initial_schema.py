"""Initial schema for agents, properties and WhatsApp conversations."""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "20241020_0001"
down_revision = None
branch_labels = None
depends_on = None


def _uuid_type():
    bind = op.get_bind()
    if bind is not None and bind.dialect.name == "postgresql":
        return postgresql.UUID(as_uuid=True)
    return sa.CHAR(length=36)


def _enum(name: str, *values: str) -> sa.Enum:
    return sa.Enum(*values, name=name, native_enum=False)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    uuid_type = _uuid_type()

    op.create_table(
        "agents",
        sa.Column("agent_id", uuid_type, primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("phone_number", sa.String(length=32), nullable=True),
        sa.Column("company_name", sa.String(length=255), nullable=True),
        sa.Column("whatsapp_number", sa.String(length=32), nullable=True, unique=True),
        sa.Column(
            "status",
            _enum("agent_status_enum", "active", "inactive", "suspended"),
            nullable=False,
            server_default="active",
        ),
        sa.Column("settings", sa.JSON(), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "properties",
        sa.Column("property_id", uuid_type, primary_key=True),
        sa.Column(
            "agent_id",
            uuid_type,
            sa.ForeignKey("agents.agent_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("project_name", sa.String(length=200), nullable=False),
        sa.Column("developer_name", sa.String(length=200), nullable=True),
        sa.Column("property_type", sa.String(length=50), nullable=False),
        sa.Column("city", sa.String(length=100), nullable=False),
        sa.Column("district", sa.String(length=100), nullable=True),
        sa.Column("address", sa.String(length=255), nullable=True),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("area", sa.Numeric(10, 2), nullable=False),
        sa.Column("bedrooms", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("bathrooms", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("floors", sa.Integer(), nullable=True),
        sa.Column("base_price", sa.Numeric(14, 2), nullable=False),
        sa.Column("price_per_meter", sa.Numeric(12, 2), nullable=True),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="EGP"),
        sa.Column("amenities", sa.JSON(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("delivery_date", sa.Date(), nullable=True),
        sa.Column("images", sa.JSON(), nullable=False),
        sa.Column("documents", sa.JSON(), nullable=False),
        sa.Column("video_url", sa.String(), nullable=True),
        sa.Column(
            "status",
            _enum("property_status_enum", "available", "sold", "reserved"),
            nullable=False,
            server_default="available",
        ),
        *_timestamps(),
        sa.CheckConstraint("area > 0", name="ck_properties_area_positive"),
        sa.CheckConstraint("base_price > 0", name="ck_properties_base_price_positive"),
        sa.CheckConstraint("bedrooms >= 0", name="ck_properties_bedrooms_non_negative"),
        sa.CheckConstraint("bathrooms >= 0", name="ck_properties_bathrooms_non_negative"),
    )
    op.create_index("properties_agent_status_idx", "properties", ["agent_id", "status"])
    op.create_index("properties_city_idx", "properties", ["city"])

    op.create_table(
        "payment_plans",
        sa.Column("payment_plan_id", uuid_type, primary_key=True),
        sa.Column(
            "property_id",
            uuid_type,
            sa.ForeignKey("properties.property_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("plan_name", sa.String(length=100), nullable=False),
        sa.Column("down_payment_percentage", sa.Numeric(5, 2), nullable=False),
        sa.Column("installment_years", sa.Integer(), nullable=False),
        sa.Column("monthly_payment", sa.Numeric(12, 2), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.CheckConstraint(
            "down_payment_percentage >= 0 AND down_payment_percentage <= 100",
            name="ck_payment_plans_down_payment_range",
        ),
        sa.CheckConstraint("installment_years > 0", name="ck_payment_plans_years_positive"),
    )
    op.create_index("payment_plans_property_idx", "payment_plans", ["property_id"])

    op.create_table(
        "conversations",
        sa.Column("conversation_id", uuid_type, primary_key=True),
        sa.Column(
            "agent_id",
            uuid_type,
            sa.ForeignKey("agents.agent_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("customer_phone", sa.String(length=64), nullable=False),
        sa.Column("customer_name", sa.String(length=100), nullable=True),
        sa.Column(
            "status",
            _enum("conversation_status_enum", "active", "idle", "waiting_agent", "closed"),
            nullable=False,
            server_default="active",
        ),
        sa.Column("lead_score", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "lead_quality",
            _enum("lead_quality_enum", "hot", "warm", "cold"),
            nullable=True,
        ),
        sa.Column(
            "started_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "last_activity_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False),
        *_timestamps(),
    )
    op.create_index(
        "conversations_agent_status_idx", "conversations", ["agent_id", "status"]
    )
    op.create_index("conversations_customer_phone_idx", "conversations", ["customer_phone"])
    op.create_index("conversations_last_activity_idx", "conversations", ["last_activity_at"])

    op.create_table(
        "messages",
        sa.Column("message_id", uuid_type, primary_key=True),
        sa.Column(
            "conversation_id",
            uuid_type,
            sa.ForeignKey("conversations.conversation_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "role",
            _enum("message_role_enum", "user", "assistant", "agent"),
            nullable=False,
        ),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column(
            "message_type",
            _enum("message_type_enum", "text", "image", "video", "document", "location"),
            nullable=False,
            server_default="text",
        ),
        sa.Column("whatsapp_message_id", sa.String(length=128), nullable=True),
        sa.Column("media_url", sa.String(), nullable=True),
        sa.Column("intent", sa.String(length=64), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "messages_conversation_created_idx", "messages", ["conversation_id", "created_at"]
    )


def downgrade() -> None:
    op.drop_index("messages_conversation_created_idx", table_name="messages")
    op.drop_table("messages")
    op.drop_index("conversations_last_activity_idx", table_name="conversations")
    op.drop_index("conversations_customer_phone_idx", table_name="conversations")
    op.drop_index("conversations_agent_status_idx", table_name="conversations")
    op.drop_table("conversations")
    op.drop_index("payment_plans_property_idx", table_name="payment_plans")
    op.drop_table("payment_plans")
    op.drop_index("properties_city_idx", table_name="properties")
    op.drop_index("properties_agent_status_idx", table_name="properties")
    op.drop_table("properties")
    op.drop_table("agents")
