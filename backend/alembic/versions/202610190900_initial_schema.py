"""Initial DayGuard schema."""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "202610190900"
down_revision = None
branch_labels = None
depends_on = None


def _uuid_pk() -> sa.Column:
    return sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False)


def _user_fk() -> sa.Column:
    return sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False)


def _created_at() -> sa.Column:
    return sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))


def _updated_at() -> sa.Column:
    return sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()"))


def upgrade() -> None:
    op.create_table("users", _uuid_pk(), _created_at())

    op.create_table(
        "user_preferences",
        sa.Column("user_id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("timezone", sa.Text(), nullable=True),
        sa.Column("working_hours_start", sa.String(length=8), nullable=False, server_default=sa.text("'09:00'")),
        sa.Column("working_hours_end", sa.String(length=8), nullable=False, server_default=sa.text("'17:00'")),
        sa.Column(
            "conflict_resolution_style",
            sa.String(length=20),
            nullable=False,
            server_default=sa.text("'balanced'"),
        ),
        sa.Column("auto_resolve_conflicts", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column(
            "preferred_resolution_strategy",
            sa.String(length=40),
            nullable=False,
            server_default=sa.text("'protect_focus'"),
        ),
        sa.Column("ai_preferences", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        _created_at(),
        _updated_at(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )

    op.create_table(
        "calendar_events",
        _uuid_pk(),
        _user_fk(),
        sa.Column("title", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("start_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("end_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("location", sa.Text(), nullable=True),
        sa.Column("all_day", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("external_id", sa.Text(), nullable=True),
        sa.Column("event_data", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("user_id", "external_id", name="uq_calendar_events_user_external"),
    )
    op.create_index("ix_calendar_events_user_id_start_at", "calendar_events", ["user_id", "start_at"], unique=False)

    op.create_table(
        "schedule_blocks",
        _uuid_pk(),
        _user_fk(),
        sa.Column("title", sa.Text(), nullable=False),
        sa.Column("block_type", sa.String(length=20), nullable=False),
        sa.Column("start_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("task_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("event_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("pinned", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("rationale", sa.Text(), nullable=True),
        sa.Column("explain", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'{}'::jsonb")),
        _created_at(),
        _updated_at(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.CheckConstraint("start_time < end_time", name="ck_schedule_blocks_positive_duration"),
    )
    op.create_index("ix_schedule_blocks_user_id_start_time", "schedule_blocks", ["user_id", "start_time"], unique=False)

    op.create_table(
        "schedule_alerts",
        _uuid_pk(),
        _user_fk(),
        sa.Column("type", sa.String(length=20), nullable=False),
        sa.Column("severity", sa.Integer(), nullable=True),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("recommended_action", sa.String(length=40), nullable=True),
        sa.Column(
            "related_block_ids",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("source_event_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False, server_default=sa.text("'pending'")),
        _created_at(),
        _updated_at(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_schedule_alerts_user_id_status", "schedule_alerts", ["user_id", "status"], unique=False)

    op.create_table(
        "agent_events",
        _uuid_pk(),
        _user_fk(),
        sa.Column("event_type", sa.Text(), nullable=False),
        sa.Column("event_source", sa.Text(), nullable=False),
        sa.Column("payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column(
            "processed_by",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
        sa.Column("fully_processed", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("lease_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivery_attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("dead_lettered_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_agent_events_pending", "agent_events", ["fully_processed", "created_at"], unique=False)
    op.create_index("ix_agent_events_user_id", "agent_events", ["user_id"], unique=False)

    op.create_table(
        "agent_actions_log",
        _uuid_pk(),
        _user_fk(),
        sa.Column("alert_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("action_type", sa.Text(), nullable=False),
        sa.Column("action_payload", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column("undo_available", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("undone_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_agent_actions_log_user_id", "agent_actions_log", ["user_id"], unique=False)
    op.create_index("ix_agent_actions_log_alert_id", "agent_actions_log", ["alert_id"], unique=False)

    op.create_table(
        "agent_decisions",
        _uuid_pk(),
        _user_fk(),
        sa.Column("agent_name", sa.Text(), nullable=False),
        sa.Column("decision_type", sa.Text(), nullable=False),
        sa.Column("context", postgresql.JSONB(astext_type=sa.Text()), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("options_presented", postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column("option_chosen", sa.Text(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_agent_decisions_user_id", "agent_decisions", ["user_id"], unique=False)

    op.create_table(
        "proactive_suggestions",
        _uuid_pk(),
        _user_fk(),
        sa.Column("type", sa.String(length=40), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("action_type", sa.String(length=40), nullable=False),
        sa.Column(
            "action_payload",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("status", sa.String(length=20), nullable=False, server_default=sa.text("'pending'")),
        _created_at(),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index(
        "ix_proactive_suggestions_user_id_status",
        "proactive_suggestions",
        ["user_id", "status"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_proactive_suggestions_user_id_status", table_name="proactive_suggestions")
    op.drop_table("proactive_suggestions")
    op.drop_index("ix_agent_decisions_user_id", table_name="agent_decisions")
    op.drop_table("agent_decisions")
    op.drop_index("ix_agent_actions_log_alert_id", table_name="agent_actions_log")
    op.drop_index("ix_agent_actions_log_user_id", table_name="agent_actions_log")
    op.drop_table("agent_actions_log")
    op.drop_index("ix_agent_events_user_id", table_name="agent_events")
    op.drop_index("ix_agent_events_pending", table_name="agent_events")
    op.drop_table("agent_events")
    op.drop_index("ix_schedule_alerts_user_id_status", table_name="schedule_alerts")
    op.drop_table("schedule_alerts")
    op.drop_index("ix_schedule_blocks_user_id_start_time", table_name="schedule_blocks")
    op.drop_table("schedule_blocks")
    op.drop_index("ix_calendar_events_user_id_start_at", table_name="calendar_events")
    op.drop_table("calendar_events")
    op.drop_table("user_preferences")
    op.drop_table("users")
