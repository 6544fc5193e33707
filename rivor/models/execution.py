"""Follow-up execution model: a live, per-target run of a sequence."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import DateTime, ForeignKey, Index, String, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from rivor.models.base import Base, TimestampMixin
from rivor.models.enums import ExecutionStatus


def make_target_key(contact_id: uuid.UUID | None, lead_id: uuid.UUID | None) -> str:
    """Key for the one-active-execution-per-target constraint."""
    return f"{contact_id or '-'}:{lead_id or '-'}"


class FollowUpExecution(TimestampMixin, Base):
    """Tracks progress of one sequence for one contact/lead.

    ``completed_steps`` and ``personalized_steps`` are JSON columns: always
    reassign them, never mutate in place.
    """

    __tablename__ = "followup_executions"

    organization_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    sequence_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("followup_sequences.id"), nullable=False, index=True
    )

    # Target
    contact_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), index=True)
    lead_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True))
    email_thread_id: Mapped[str | None] = mapped_column(String(255))
    target_key: Mapped[str] = mapped_column(String(100), nullable=False)

    # Progress
    status: Mapped[str] = mapped_column(
        String(20), default=ExecutionStatus.ACTIVE.value, nullable=False
    )
    next_action_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_steps: Mapped[list[int]] = mapped_column(JSONB, default=list, nullable=False)
    paused_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    # Personalization
    customizations: Mapped[dict[str, Any]] = mapped_column(JSONB, default=dict, nullable=False)
    personalized_steps: Mapped[list[dict[str, Any]]] = mapped_column(JSONB, default=list, nullable=False)
    personalized_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

    __table_args__ = (
        Index(
            "uq_followup_executions_active_target",
            "organization_id",
            "sequence_id",
            "target_key",
            unique=True,
            postgresql_where=text("status = 'active'"),
        ),
        Index("ix_followup_executions_due", "status", "next_action_at"),
    )

    def __repr__(self) -> str:
        return f"<FollowUpExecution id={self.id} status={self.status} next={self.next_action_at}>"
