"""Contact and lead models: read by the automation core for conditions and personalization."""

from __future__ import annotations

import uuid
from decimal import Decimal

from sqlalchemy import ForeignKey, Numeric, String
from sqlalchemy.dialects.postgresql import ARRAY, UUID
from sqlalchemy.orm import Mapped, mapped_column

from rivor.models.base import Base, TimestampMixin


class Contact(TimestampMixin, Base):
    """A person the organization corresponds with."""

    __tablename__ = "contacts"

    organization_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    display_name: Mapped[str | None] = mapped_column(String(255))
    email: Mapped[str | None] = mapped_column(String(255))
    tags: Mapped[list[str]] = mapped_column(ARRAY(String(100)), default=list, nullable=False)

    def __repr__(self) -> str:
        return f"<Contact id={self.id}>"


class Lead(TimestampMixin, Base):
    """A pipeline opportunity, optionally tied to a contact."""

    __tablename__ = "leads"

    organization_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    contact_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), ForeignKey("contacts.id"))
    title: Mapped[str | None] = mapped_column(String(255))
    stage: Mapped[str | None] = mapped_column(String(50))
    property_value: Mapped[Decimal | None] = mapped_column(Numeric(14, 2))

    def __repr__(self) -> str:
        return f"<Lead id={self.id} stage={self.stage}>"
