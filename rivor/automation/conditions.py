"""Declarative match conditions for follow-up sequences.

Recognized keys (all present keys are ANDed, anything else is ignored):

    {"leadStage": "qualified",
     "contactTags": ["buyer", "vip"],
     "timeOfDay": {"start": 9, "end": 17}}

An empty or unrecognized map matches. Lookup errors fail open: the
condition set is treated as matching and the failure is logged.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from zoneinfo import ZoneInfo

from rivor.clock import Clock, utcnow
from rivor.config import settings
from rivor.errors import LookupFailure
from rivor.repositories.base import ContactLookup

logger = logging.getLogger(__name__)

RECOGNIZED_KEYS = frozenset({"leadStage", "contactTags", "timeOfDay"})


@dataclass(frozen=True)
class EvaluationContext:
    """Who a sequence would run for."""

    org_id: uuid.UUID
    contact_id: uuid.UUID | None = None
    lead_id: uuid.UUID | None = None
    email_thread_id: str | None = None


class ConditionEvaluator:
    """Evaluates sequence conditions against a target."""

    def __init__(
        self,
        contacts: ContactLookup,
        clock: Clock = utcnow,
        timezone: str | None = None,
    ) -> None:
        self._contacts = contacts
        self._clock = clock
        self._timezone = timezone if timezone is not None else settings.automation.local_timezone

    async def evaluate(self, conditions: dict[str, Any] | None, context: EvaluationContext) -> bool:
        if not conditions or not RECOGNIZED_KEYS.intersection(conditions):
            return True

        try:
            if not await self._lead_stage_matches(conditions, context):
                return False
            if not await self._contact_tags_match(conditions, context):
                return False
            return self._time_of_day_matches(conditions)
        except LookupFailure as exc:
            logger.warning("Condition lookup failed, treating as match (org=%s): %s", context.org_id, exc)
            return True
        except Exception:
            logger.exception("Condition evaluation error, treating as match (org=%s)", context.org_id)
            return True

    async def _lead_stage_matches(self, conditions: dict[str, Any], context: EvaluationContext) -> bool:
        expected = conditions.get("leadStage")
        if not expected or context.lead_id is None:
            return True
        lead = await self._contacts.get_lead(context.org_id, context.lead_id)
        return lead is not None and lead.stage == expected

    async def _contact_tags_match(self, conditions: dict[str, Any], context: EvaluationContext) -> bool:
        required = conditions.get("contactTags")
        if not required or context.contact_id is None:
            return True
        if isinstance(required, str):
            required = [required]
        contact = await self._contacts.get_contact(context.org_id, context.contact_id)
        if contact is None:
            return False
        return set(required).issubset(contact.tags)

    def _time_of_day_matches(self, conditions: dict[str, Any]) -> bool:
        window = conditions.get("timeOfDay")
        if not window:
            return True
        try:
            start = int(window["start"])
            end = int(window["end"])
        except (KeyError, TypeError, ValueError):
            logger.warning("Ignoring malformed timeOfDay condition: %r", window)
            return True
        hour = self._local_now().hour
        return start <= hour <= end

    def _local_now(self) -> datetime:
        now = self._clock()
        if self._timezone:
            return now.astimezone(ZoneInfo(self._timezone))
        # Host local zone
        return now.astimezone()
