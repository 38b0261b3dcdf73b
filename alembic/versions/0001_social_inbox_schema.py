"""Create conversation, message, integration and template tables.

Revision ID: 0001_social_inbox
Revises:
Create Date: 2026-10-19

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_social_inbox"
down_revision = None
branch_labels = None
depends_on = None

_ENUMS = {
    "platform": ("facebook", "instagram"),
    "deliverystatus": ("confirmed", "hold", "cancel", "delivered"),
    "conversationeventtype": ("assigned", "released", "status_changed"),
    "sender": ("customer", "bot"),
    "senderrole": ("customer", "admin", "seller", "ai"),
    "mediatype": ("image", "video", "audio", "file"),
    "integrationplatform": ("facebook", "instagram", "whatsapp"),
    "templatescope": ("global", "seller"),
    "templatetype": ("text", "media"),
}


def _enum(name: str):
    return postgresql.ENUM(*_ENUMS[name], name=name, create_type=False)


def upgrade() -> None:
    bind = op.get_bind()
    for name, values in _ENUMS.items():
        postgresql.ENUM(*values, name=name).create(bind, checkfirst=True)

    op.create_table(
        "conversation_locks",
        sa.Column("conversation_id", sa.String(128), primary_key=True),
        sa.Column("platform", _enum("platform"), nullable=False),
        sa.Column("page_id", sa.String(128), nullable=False),
        sa.Column("customer_id", sa.String(128), nullable=False),
        sa.Column("customer_name", sa.String(255)),
        sa.Column("customer_profile_pic", sa.Text()),
        sa.Column("seller_id", sa.String(64)),
        sa.Column("assigned_by", sa.String(64)),
        sa.Column("assigned_at", sa.DateTime(timezone=True)),
        sa.Column("locked_at", sa.DateTime(timezone=True)),
        sa.Column(
            "delivery_status",
            _enum("deliverystatus"),
            nullable=False,
            server_default="confirmed",
        ),
        sa.Column("last_message_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("idx_seller_id", "conversation_locks", ["seller_id"])
    op.create_index("idx_delivery_status", "conversation_locks", ["delivery_status"])
    op.create_index("idx_last_message_at", "conversation_locks", ["last_message_at"])

    op.create_table(
        "conversation_events",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column(
            "conversation_id",
            sa.String(128),
            sa.ForeignKey("conversation_locks.conversation_id"),
            nullable=False,
        ),
        sa.Column("event_type", _enum("conversationeventtype"), nullable=False),
        sa.Column("seller_id", sa.String(64)),
        sa.Column("actor", sa.String(64)),
        sa.Column("from_status", _enum("deliverystatus")),
        sa.Column("to_status", _enum("deliverystatus")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "idx_conversation_events_conv", "conversation_events", ["conversation_id", "id"]
    )

    op.create_table(
        "social_chat_messages",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column(
            "conversation_id",
            sa.String(128),
            sa.ForeignKey("conversation_locks.conversation_id"),
            nullable=False,
        ),
        sa.Column("customer_name", sa.String(255), server_default=""),
        sa.Column("customer_profile_pic", sa.Text()),
        sa.Column("sender", _enum("sender"), nullable=False),
        sa.Column("sender_role", _enum("senderrole"), nullable=False, server_default="customer"),
        sa.Column("sender_name", sa.String(255), server_default=""),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("media_urls", sa.JSON()),
        sa.Column("media_type", _enum("mediatype")),
        sa.Column("platform", _enum("platform"), nullable=False),
        sa.Column("page_id", sa.String(128), nullable=False),
        sa.Column("platform_message_id", sa.String(255)),
        sa.Column("idempotency_key", sa.String(255), unique=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("idx_conv_time", "social_chat_messages", ["conversation_id", "timestamp"])
    op.create_index("idx_time", "social_chat_messages", ["timestamp"])

    op.create_table(
        "api_integrations",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("platform", _enum("integrationplatform"), nullable=False),
        sa.Column("page_id", sa.String(128), nullable=False, server_default=""),
        sa.Column("page_token", sa.Text()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("platform", "page_id", name="uniq_platform_page"),
    )
    op.create_index("idx_platform_active", "api_integrations", ["platform", "is_active"])

    op.create_table(
        "saved_templates",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("scope", _enum("templatescope"), nullable=False, server_default="seller"),
        sa.Column("seller_id", sa.String(64)),
        sa.Column("title", sa.String(255), nullable=False, server_default=""),
        sa.Column("type", _enum("templatetype"), nullable=False),
        sa.Column("text", sa.Text()),
        sa.Column("media_urls", sa.JSON()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("idx_scope", "saved_templates", ["scope"])
    op.create_index("idx_seller", "saved_templates", ["seller_id"])
    op.create_index("idx_type", "saved_templates", ["type"])


def downgrade() -> None:
    op.drop_table("saved_templates")
    op.drop_table("api_integrations")
    op.drop_table("social_chat_messages")
    op.drop_table("conversation_events")
    op.drop_table("conversation_locks")
    bind = op.get_bind()
    for name in reversed(list(_ENUMS)):
        postgresql.ENUM(name=name).drop(bind, checkfirst=True)
