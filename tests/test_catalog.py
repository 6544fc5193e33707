"""Tests for the default follow-up template catalog."""

from __future__ import annotations

from rivor.automation.catalog import (
    DEFAULT_TEMPLATES,
    SequenceTemplate,
    StepTemplate,
    default_catalog,
)
from rivor.automation.delays import parse_delay
from rivor.models.enums import StepAction


class TestDefaultCatalog:
    def test_known_events(self):
        assert default_catalog().events() == ["appointment_completed", "email_received", "lead_created"]

    def test_lead_created_is_two_step_nurturing(self):
        template = default_catalog().get("lead_created")
        assert template is not None
        assert template.name == "New Lead Nurturing"
        assert [parse_delay(s.delay) for s in template.steps] == [15, 3 * 1440]
        assert all(s.action == StepAction.SEND_EMAIL for s in template.steps)

    def test_appointment_completed_ends_with_task(self):
        template = default_catalog().get("appointment_completed")
        assert template.steps[-1].action == StepAction.CREATE_TASK
        assert template.steps[-1].subject is None

    def test_every_step_has_delay_action_content(self):
        for template in DEFAULT_TEMPLATES.values():
            for step in template.steps:
                assert parse_delay(step.delay) > 0
                assert step.action in StepAction
                assert step.content

    def test_unknown_event(self):
        assert default_catalog().get("contract_signed") is None


class TestRegister:
    def test_register_new_event(self):
        catalog = default_catalog()
        catalog.register(
            "contract_signed",
            SequenceTemplate(
                name="Closing Checklist",
                steps=(StepTemplate(delay="1 day", action=StepAction.CREATE_TASK, content="Order inspection"),),
            ),
        )
        assert catalog.get("contract_signed").name == "Closing Checklist"

    def test_catalogs_are_independent(self):
        catalog = default_catalog()
        catalog.register("custom", SequenceTemplate(name="x", steps=()))
        assert default_catalog().get("custom") is None
