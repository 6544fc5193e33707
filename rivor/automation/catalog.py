"""Built-in follow-up templates, keyed by trigger event.

When an organization has no active sequence for an event, the engine
synthesizes one from this catalog. New events are added by registering a
template, not by touching the engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from rivor.models.enums import StepAction


@dataclass(frozen=True)
class StepTemplate:
    delay: str
    action: StepAction
    content: str
    subject: str | None = None


@dataclass(frozen=True)
class SequenceTemplate:
    name: str
    steps: tuple[StepTemplate, ...]


@dataclass
class TemplateCatalog:
    """Registry of default sequences."""

    templates: dict[str, SequenceTemplate] = field(default_factory=dict)

    def register(self, trigger_event: str, template: SequenceTemplate) -> None:
        self.templates[trigger_event] = template

    def get(self, trigger_event: str) -> SequenceTemplate | None:
        return self.templates.get(trigger_event)

    def events(self) -> list[str]:
        return sorted(self.templates)


# ── Defaults ─────────────────────────────────────────────────────────

DEFAULT_TEMPLATES: dict[str, SequenceTemplate] = {
    "email_received": SequenceTemplate(
        name="Smart Email Follow-up",
        steps=(
            StepTemplate(
                delay="2 hours",
                action=StepAction.SEND_EMAIL,
                subject="Thank you for reaching out!",
                content=(
                    "Thanks for your email. I'll review your inquiry and get back "
                    "to you with a detailed response shortly."
                ),
            ),
            StepTemplate(
                delay="1 day",
                action=StepAction.SEND_EMAIL,
                subject="Following up on your inquiry",
                content=(
                    "I wanted to follow up on your previous email. Do you have any "
                    "questions I can help answer?"
                ),
            ),
        ),
    ),
    "appointment_completed": SequenceTemplate(
        name="Post-Appointment Follow-up",
        steps=(
            StepTemplate(
                delay="1 hour",
                action=StepAction.SEND_EMAIL,
                subject="Thank you for meeting with me today",
                content=(
                    "It was great meeting with you today! I've attached some "
                    "additional information we discussed."
                ),
            ),
            StepTemplate(
                delay="2 days",
                action=StepAction.CREATE_TASK,
                content="Check in with client about next steps after appointment",
            ),
        ),
    ),
    "lead_created": SequenceTemplate(
        name="New Lead Nurturing",
        steps=(
            StepTemplate(
                delay="15 minutes",
                action=StepAction.SEND_EMAIL,
                subject="Welcome! Let's find your perfect property",
                content=(
                    "Welcome to our real estate family! I'm excited to help you "
                    "find the perfect property."
                ),
            ),
            StepTemplate(
                delay="3 days",
                action=StepAction.SEND_EMAIL,
                subject="Market insights for your area",
                content=(
                    "I've prepared some market insights that might interest you "
                    "based on your preferences."
                ),
            ),
        ),
    ),
}


def default_catalog() -> TemplateCatalog:
    """A fresh catalog holding the built-in templates."""
    return TemplateCatalog(templates=dict(DEFAULT_TEMPLATES))
