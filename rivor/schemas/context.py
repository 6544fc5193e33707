"""Read-only snapshots returned by the contact/lead lookup."""

from __future__ import annotations

import uuid
from decimal import Decimal

from pydantic import BaseModel, Field


class ContactSnapshot(BaseModel):
    """What automation may know about a contact."""

    id: uuid.UUID
    display_name: str | None = None
    tags: list[str] = Field(default_factory=list)


class LeadSnapshot(BaseModel):
    """What automation may know about a lead."""

    id: uuid.UUID
    title: str | None = None
    stage: str | None = None
    property_value: Decimal | None = None
