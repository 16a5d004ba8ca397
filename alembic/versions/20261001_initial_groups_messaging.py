"""
initial: users, groups, group_members, group_messages, message_reactions,
group_read_markers, events
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "20261001_initial"
down_revision: str | None = None
branch_labels = None
depends_on = None


def _json():
    return sa.JSON().with_variant(postgresql.JSONB(), "postgresql")


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("telegram_id", sa.BigInteger(), nullable=False),
        sa.Column("username", sa.String(), nullable=True),
        sa.Column("first_name", sa.String(), nullable=True),
        sa.Column("last_name", sa.String(), nullable=True),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_users_telegram_id", "users", ["telegram_id"], unique=True)

    op.create_table(
        "groups",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.String(), nullable=False),
        sa.Column("invite_code", sa.String(length=6), nullable=False),
        sa.Column("owner_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "status",
            sa.Enum("active", "archived", name="group_status"),
            nullable=False,
            server_default=sa.text("'active'"),
            comment="Статус группы: active|archived",
        ),
        sa.Column("max_members", sa.Integer(), nullable=False, comment="Вместимость, фиксируется при создании"),
        sa.Column(
            "current_member_count",
            sa.Integer(),
            nullable=False,
            comment="Счётчик участников; меняется только вместе со строками group_members",
        ),
        sa.Column("settings", _json(), nullable=False, comment="GroupSettings: видимость, цели активности, уведомления"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=True, comment="Когда перевели в archived (UTC)"),
        sa.CheckConstraint(
            "current_member_count > 0 AND current_member_count <= max_members",
            name="ck_groups_member_count_bounds",
        ),
    )
    op.create_index("ix_groups_id", "groups", ["id"])
    op.create_index("ix_groups_name", "groups", ["name"])
    op.create_index("ix_groups_invite_code", "groups", ["invite_code"], unique=True)
    op.create_index("ix_groups_status", "groups", ["status"])

    op.create_table(
        "group_members",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("group_id", sa.Integer(), sa.ForeignKey("groups.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column(
            "role",
            sa.Enum("member", "sponsor", "super_admin", name="group_role"),
            nullable=False,
        ),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_active_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("group_id", "user_id", name="uq_group_members_group_user"),
    )
    op.create_index("ix_group_members_id", "group_members", ["id"])
    op.create_index("ix_group_members_group_id", "group_members", ["group_id"])
    op.create_index("ix_group_members_user_id", "group_members", ["user_id"])
    op.create_index("ix_group_members_group_role", "group_members", ["group_id", "role"])

    op.create_table(
        "group_messages",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("group_id", sa.Integer(), sa.ForeignKey("groups.id", ondelete="CASCADE"), nullable=False),
        sa.Column("sender_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=True),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column(
            "message_type",
            sa.Enum("text", "system_notification", name="message_type"),
            nullable=False,
        ),
        sa.Column(
            "reply_to_id",
            sa.Integer(),
            sa.ForeignKey("group_messages.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("edited_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_group_messages_id", "group_messages", ["id"])
    op.create_index("ix_group_messages_group_order", "group_messages", ["group_id", "created_at", "id"])

    op.create_table(
        "message_reactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "message_id",
            sa.Integer(),
            sa.ForeignKey("group_messages.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("emoji", sa.String(length=32), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("message_id", "user_id", "emoji", name="uq_message_reactions_msg_user_emoji"),
    )
    op.create_index("ix_message_reactions_id", "message_reactions", ["id"])
    op.create_index("ix_message_reactions_message_id", "message_reactions", ["message_id"])

    op.create_table(
        "group_read_markers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("group_id", sa.Integer(), sa.ForeignKey("groups.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("last_read_message_id", sa.Integer(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("user_id", "group_id", name="uq_group_read_markers_user_group"),
    )
    op.create_index("ix_group_read_markers_user_id", "group_read_markers", ["user_id"])

    # журнал без FK на groups: переживает удаление группы
    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("actor_id", sa.Integer(), nullable=False),
        sa.Column("group_id", sa.Integer(), nullable=True),
        sa.Column("target_user_id", sa.Integer(), nullable=True),
        sa.Column("type", sa.String(length=64), nullable=False),
        sa.Column("data", _json(), nullable=True),
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_events_id", "events", ["id"])
    op.create_index("ix_events_group_created", "events", ["group_id", "created_at"])


def downgrade() -> None:
    op.drop_index("ix_events_group_created", table_name="events")
    op.drop_index("ix_events_id", table_name="events")
    op.drop_table("events")

    op.drop_index("ix_group_read_markers_user_id", table_name="group_read_markers")
    op.drop_table("group_read_markers")

    op.drop_index("ix_message_reactions_message_id", table_name="message_reactions")
    op.drop_index("ix_message_reactions_id", table_name="message_reactions")
    op.drop_table("message_reactions")

    op.drop_index("ix_group_messages_group_order", table_name="group_messages")
    op.drop_index("ix_group_messages_id", table_name="group_messages")
    op.drop_table("group_messages")

    op.drop_index("ix_group_members_group_role", table_name="group_members")
    op.drop_index("ix_group_members_user_id", table_name="group_members")
    op.drop_index("ix_group_members_group_id", table_name="group_members")
    op.drop_index("ix_group_members_id", table_name="group_members")
    op.drop_table("group_members")

    op.drop_index("ix_groups_status", table_name="groups")
    op.drop_index("ix_groups_invite_code", table_name="groups")
    op.drop_index("ix_groups_name", table_name="groups")
    op.drop_index("ix_groups_id", table_name="groups")
    op.drop_table("groups")

    op.drop_index("ix_users_telegram_id", table_name="users")
    op.drop_table("users")

    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        for enum_name in ("message_type", "group_role", "group_status"):
            op.execute(f"DROP TYPE IF EXISTS {enum_name}")
