"""Follow-up sequence model: a reusable, ordered template of timed steps."""

from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import Boolean, Index, String, Text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from rivor.models.base import Base, TimestampMixin


class FollowUpSequence(TimestampMixin, Base):
    """A named sequence triggered by a free-form event tag.

    ``steps`` holds the validated step dicts in step-number order
    (see ``rivor.schemas.sequences.SequenceStep``).
    """

    __tablename__ = "followup_sequences"

    organization_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    sequence_type: Mapped[str] = mapped_column(String(50), nullable=False)
    trigger_event: Mapped[str | None] = mapped_column(String(100))
    steps: Mapped[list[dict[str, Any]]] = mapped_column(JSONB, nullable=False)
    conditions: Mapped[dict[str, Any]] = mapped_column(JSONB, default=dict, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_by: Mapped[str | None] = mapped_column(String(255))

    __table_args__ = (
        Index("ix_followup_sequences_trigger", "organization_id", "trigger_event", "is_active"),
    )

    def __repr__(self) -> str:
        return f"<FollowUpSequence id={self.id} name={self.name!r} steps={len(self.steps or [])}>"
