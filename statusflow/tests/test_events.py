"""
Unit tests for statusflow.events module.
"""
from typing import Literal

import pytest

from statusflow.events import (
    EventBase,
    StatusAdded,
    TransitionChanged,
    WorkflowCreated,
    workflow_event_adapter,
)
from statusflow.values import StatusCode, Transition


class TestEventBase:
    """Tests for EventBase abstract class."""

    def test_event_base_requires_type_override(self):
        """Subclasses must override the type field."""
        with pytest.raises(TypeError, match="must override `type` with a Literal"):
            class InvalidEvent(EventBase):
                code: str

    def test_valid_event_subclass(self):
        class ValidEvent(EventBase):
            type: Literal["valid_event"] = "valid_event"
            data: str

        event = ValidEvent(data="test")
        assert event.type == "valid_event"


class TestWorkflowEventUnion:
    """Tests for parsing stored events back into their classes."""

    def test_dispatches_on_type(self):
        event = workflow_event_adapter.validate_python(
            {"type": "workflow.status_added", "code": "review"}
        )
        assert isinstance(event, StatusAdded)
        assert event.code == StatusCode("review")

    def test_json_round_trip_keeps_nested_transitions(self):
        event = TransitionChanged(
            source="draft",
            destination="review",
            old_transition=Transition(source="draft", destination="review"),
            new_transition=Transition(
                source="draft", destination="review", label="Submit", role_ids=("editor",)
            ),
        )
        data = workflow_event_adapter.dump_python(event, mode="json")
        assert data["new_transition"]["source"] == "draft"
        assert workflow_event_adapter.validate_python(data) == event

    def test_unknown_type_rejected(self):
        with pytest.raises(ValueError):
            workflow_event_adapter.validate_python({"type": "workflow.renamed"})

    def test_created_event_defaults(self):
        event = WorkflowCreated(id="wf-1", code="publishing")
        assert event.statuses == []
        assert event.type == "workflow.created"
