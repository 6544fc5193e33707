"""Template personalization for follow-up step content.

Two independent rewrites:
- a leading greeting (``Hi``/``Hello``/``Dear`` at the start of a line, plus
  up to two words and a comma) becomes ``Hi <FirstName>, `` when the contact's
  real name is known;
- ``{{variable}}`` placeholders are filled from caller-supplied variables
  (case-insensitive keys). Unknown placeholders are left as they are.
"""

from __future__ import annotations

import logging
import re
import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from rivor.errors import LookupFailure
from rivor.repositories.base import ContactLookup
from rivor.schemas.sequences import PersonalizedStep, SequenceStep

logger = logging.getLogger(__name__)

FALLBACK_NAME = "Valued Client"

GREETING_PATTERN = re.compile(
    r"^(?:hi|hello|dear)\b(?:(?:[ \t]+[^\s,]+){0,2},)?[ \t]*",
    re.IGNORECASE | re.MULTILINE,
)
VARIABLE_PATTERN = re.compile(r"\{\{\s*([A-Za-z0-9_]+)\s*\}\}")


@dataclass(frozen=True)
class PersonalizationContext:
    """Resolved recipient details plus a one-line summary."""

    contact_name: str | None = None
    lead_title: str | None = None
    lead_stage: str | None = None
    lead_value: Any = None

    @property
    def first_name(self) -> str | None:
        if not self.contact_name or self.contact_name == FALLBACK_NAME:
            return None
        parts = self.contact_name.split()
        return parts[0] if parts else None

    @property
    def summary(self) -> str:
        parts = [f"Contact Name: {self.contact_name or FALLBACK_NAME}"]
        if self.lead_title or self.lead_stage:
            parts.append(f"Lead: {self.lead_title or 'Unknown Lead'} ({self.lead_stage or 'unknown'})")
        if self.lead_value:
            parts.append(f"Value: {self.lead_value}")
        return " | ".join(parts)


def personalize(
    template: str,
    context: PersonalizationContext,
    variables: Mapping[str, Any] | None = None,
) -> str:
    """Apply the greeting rewrite and variable substitution to ``template``."""
    content = template

    first_name = context.first_name
    if first_name:
        greeting = f"Hi {first_name}, "
        content = GREETING_PATTERN.sub(lambda _match: greeting, content)

    if variables:
        lookup = {str(k).lower(): v for k, v in variables.items()}

        def _replace(match: re.Match[str]) -> str:
            key = match.group(1).lower()
            if key not in lookup:
                return match.group(0)
            return str(lookup[key])

        content = VARIABLE_PATTERN.sub(_replace, content)

    return content


class PersonalizationEngine:
    """Resolves recipient context and personalizes step content."""

    def __init__(self, contacts: ContactLookup) -> None:
        self._contacts = contacts

    async def build_context(
        self,
        org_id: uuid.UUID,
        contact_id: uuid.UUID | None,
        lead_id: uuid.UUID | None,
    ) -> PersonalizationContext:
        """Lookup failures degrade to the neutral fallback label."""
        contact_name: str | None = None
        if contact_id is not None:
            try:
                contact = await self._contacts.get_contact(org_id, contact_id)
            except LookupFailure as exc:
                logger.warning("Contact lookup failed for personalization (contact=%s): %s", contact_id, exc)
                contact_name = FALLBACK_NAME
            else:
                if contact is not None:
                    contact_name = contact.display_name or FALLBACK_NAME

        lead_title = lead_stage = lead_value = None
        if lead_id is not None:
            try:
                lead = await self._contacts.get_lead(org_id, lead_id)
            except LookupFailure as exc:
                logger.warning("Lead lookup failed for personalization (lead=%s): %s", lead_id, exc)
                lead = None
            if lead is not None:
                lead_title, lead_stage, lead_value = lead.title, lead.stage, lead.property_value

        return PersonalizationContext(
            contact_name=contact_name,
            lead_title=lead_title,
            lead_stage=lead_stage,
            lead_value=lead_value,
        )

    async def personalize_steps(
        self,
        org_id: uuid.UUID,
        contact_id: uuid.UUID | None,
        lead_id: uuid.UUID | None,
        steps: Iterable[SequenceStep],
        variables: Mapping[str, Any] | None = None,
    ) -> list[PersonalizedStep]:
        """Personalized copies of every step flagged for personalization."""
        context = await self.build_context(org_id, contact_id, lead_id)
        logger.debug("Personalizing with context: %s", context.summary)
        return [
            PersonalizedStep(
                step_number=step.step_number,
                subject=personalize(step.subject, context, variables) if step.subject else None,
                original_content=step.content,
                personalized_content=personalize(step.content, context, variables),
            )
            for step in steps
            if step.ai_personalization
        ]
