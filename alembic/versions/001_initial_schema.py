"""Initial schema: appointments, reminders, follow-up sequences and executions.

Revision ID: 001
Revises: None
Create Date: 2026-10-18
"""
from __future__ import annotations

from typing import Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, tuple[str, ...], None] = None
depends_on: Union[str, tuple[str, ...], None] = None


def _base_columns(table: str) -> list[sa.SchemaItem]:
    """Columns and primary key shared by every table (see TimestampMixin)."""
    return [
        sa.Column("id", postgresql.UUID(as_uuid=True), server_default=sa.text("gen_random_uuid()"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False),
        sa.PrimaryKeyConstraint("id", name=f"pk_{table}"),
    ]


def upgrade() -> None:
    # ── Standalone tables (no FKs) ─────────────────────────────────────

    op.create_table(
        "audit_log",
        sa.Column("event_type", sa.String(100), nullable=False, index=True),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), index=True),
        sa.Column("entity_id", postgresql.UUID(as_uuid=True), index=True),
        sa.Column("actor_id", sa.String(255), nullable=False),
        sa.Column("source_module", sa.String(100)),
        sa.Column("data", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        *_base_columns("audit_log"),
    )

    op.create_table(
        "contacts",
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("display_name", sa.String(255)),
        sa.Column("email", sa.String(255)),
        sa.Column("tags", postgresql.ARRAY(sa.String(100)), nullable=False),
        *_base_columns("contacts"),
    )

    op.create_table(
        "appointments",
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("contact_id", postgresql.UUID(as_uuid=True), index=True),
        sa.Column("lead_id", postgresql.UUID(as_uuid=True)),
        sa.Column("email_thread_id", sa.String(255)),
        sa.Column("appointment_type", sa.String(20), nullable=False),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration", sa.Integer(), nullable=False, comment="Minutes"),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("location", sa.String(500)),
        sa.Column("property_address", sa.String(500)),
        sa.Column("lockbox_code", sa.String(50)),
        sa.Column("showing_instructions", sa.Text()),
        sa.Column("attendee_emails", postgresql.ARRAY(sa.String(255)), nullable=False),
        sa.Column("requirements", sa.Text()),
        sa.Column("confirmation_token", sa.String(64), nullable=False),
        sa.Column("reschedule_token", sa.String(64), nullable=False),
        sa.Column("created_by", sa.String(255)),
        sa.Column("notes", sa.Text()),
        sa.Column("reminders_sent", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("cancelled_at", sa.DateTime(timezone=True)),
        sa.Column("cancel_reason", sa.String(500)),
        *_base_columns("appointments"),
        sa.UniqueConstraint("confirmation_token", name="uq_appointments_confirmation_token"),
        sa.UniqueConstraint("reschedule_token", name="uq_appointments_reschedule_token"),
    )
    op.create_index(
        "ix_appointments_org_window",
        "appointments",
        ["organization_id", "scheduled_at", "ends_at"],
    )

    op.create_table(
        "followup_sequences",
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text()),
        sa.Column("sequence_type", sa.String(50), nullable=False),
        sa.Column("trigger_event", sa.String(100)),
        sa.Column("steps", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("conditions", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_by", sa.String(255)),
        *_base_columns("followup_sequences"),
    )
    op.create_index(
        "ix_followup_sequences_trigger",
        "followup_sequences",
        ["organization_id", "trigger_event", "is_active"],
    )

    # ── Dependent tables ───────────────────────────────────────────────

    op.create_table(
        "leads",
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("contact_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("contacts.id")),
        sa.Column("title", sa.String(255)),
        sa.Column("stage", sa.String(50)),
        sa.Column("property_value", sa.Numeric(14, 2)),
        *_base_columns("leads"),
    )

    op.create_table(
        "reminder_work_items",
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "appointment_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("appointments.id"),
            nullable=False,
            index=True,
        ),
        sa.Column("kind", sa.String(20), nullable=False),
        sa.Column("trigger_at", sa.DateTime(timezone=True), nullable=False, index=True),
        *_base_columns("reminder_work_items"),
    )

    op.create_table(
        "followup_executions",
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "sequence_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("followup_sequences.id"),
            nullable=False,
            index=True,
        ),
        sa.Column("contact_id", postgresql.UUID(as_uuid=True), index=True),
        sa.Column("lead_id", postgresql.UUID(as_uuid=True)),
        sa.Column("email_thread_id", sa.String(255)),
        sa.Column("target_key", sa.String(100), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("next_action_at", sa.DateTime(timezone=True)),
        sa.Column("completed_steps", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("paused_at", sa.DateTime(timezone=True)),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("customizations", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("personalized_steps", postgresql.JSONB(astext_type=sa.Text()), nullable=False),
        sa.Column("personalized_at", sa.DateTime(timezone=True)),
        *_base_columns("followup_executions"),
    )
    # At most one active execution per (org, sequence, target)
    op.create_index(
        "uq_followup_executions_active_target",
        "followup_executions",
        ["organization_id", "sequence_id", "target_key"],
        unique=True,
        postgresql_where=sa.text("status = 'active'"),
    )
    op.create_index(
        "ix_followup_executions_due",
        "followup_executions",
        ["status", "next_action_at"],
    )


def downgrade() -> None:
    # Drop in reverse dependency order
    op.drop_table("followup_executions")
    op.drop_table("reminder_work_items")
    op.drop_table("leads")
    op.drop_table("followup_sequences")
    op.drop_table("appointments")
    op.drop_table("contacts")
    op.drop_table("audit_log")
