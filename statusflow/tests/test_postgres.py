"""
Unit tests for statusflow.postgres module.
"""
from sqlalchemy import select, text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.dialects.postgresql import JSONB

from statusflow.events import StatusAdded, WorkflowEvent
from statusflow.postgres import PydanticType, StoredEvent


class TestPydanticType:
    """Tests for PydanticType column type."""

    def test_bind_dumps_json_mode(self):
        column_type = PydanticType(WorkflowEvent)
        value = column_type.process_bind_param(StatusAdded(code="review"), None)
        assert value == {"type": "workflow.status_added", "code": "review"}

    def test_result_parses_event(self):
        column_type = PydanticType(WorkflowEvent)
        event = column_type.process_result_value(
            {"type": "workflow.status_added", "code": "review"}, None
        )
        assert event == StatusAdded(code="review")

    def test_none_passthrough(self):
        column_type = PydanticType(WorkflowEvent)
        assert column_type.process_bind_param(None, None) is None
        assert column_type.process_result_value(None, None) is None

    def test_jsonb_on_postgresql(self):
        column_type = PydanticType(WorkflowEvent)
        assert isinstance(column_type.load_dialect_impl(postgresql.dialect()), JSONB)
        assert not isinstance(column_type.load_dialect_impl(sqlite.dialect()), JSONB)


class TestStoredEvent:
    """Tests for the event table."""

    async def test_body_stored_as_json(self, sql_repo, test_session_maker, publishing):
        await sql_repo.save(publishing)
        async with test_session_maker() as s:
            raw = await s.scalar(
                text("SELECT event_type FROM workflow_events WHERE workflow_version = 1")
            )
            stored = await s.scalar(
                select(StoredEvent.body)
                .where(StoredEvent.workflow_id == publishing.id)
            )
        assert raw == "workflow.created"
        assert stored.statuses == publishing.get_statuses()

    def test_version_unique_per_workflow(self):
        constraints = {
            tuple(c.name for c in constraint.columns)
            for constraint in StoredEvent.__table__.constraints
            if constraint.__class__.__name__ == "UniqueConstraint"
        }
        assert ("workflow_id", "workflow_version") in constraints
