"""
Unit tests for statusflow.commands and statusflow.handlers modules.
"""
import pytest

from statusflow.commands import (
    CmdAddStatus,
    CmdAddTransition,
    CmdChangeTransition,
    CmdCreateWorkflow,
    CmdRemoveStatus,
    CmdRemoveTransition,
    CmdSetDefaultStatus,
    CmdUpdateWorkflow,
    parse_command,
)
from statusflow.errors import (
    AlreadyExists,
    ConcurrencyConflict,
    NotFound,
    ValidationError,
    WorkflowNotFound,
)
from statusflow.events import StatusAdded, StatusRemoved
from statusflow.handlers import WorkflowCommandHandler, apply_command
from statusflow.model import Workflow
from statusflow.repo import InMemoryWorkflowRepository
from statusflow.values import StatusCode, Transition, workflow_id_from_code

WF_ID = workflow_id_from_code("publishing")


class ConflictingRepo(InMemoryWorkflowRepository):
    """Fails the next ``conflicts`` saves as if another writer got there first."""

    def __init__(self) -> None:
        super().__init__()
        self.conflicts = 0
        self.save_calls = 0

    async def save(self, workflow) -> None:
        self.save_calls += 1
        if self.conflicts:
            self.conflicts -= 1
            raise ConcurrencyConflict(workflow.id, workflow.version)
        await super().save(workflow)


@pytest.fixture
async def handler(memory_repo) -> WorkflowCommandHandler:
    handler = WorkflowCommandHandler(memory_repo)
    await handler.handle(
        CmdCreateWorkflow(code="publishing", statuses=["draft", "review", "published"])
    )
    return handler


class TestParseCommand:
    """Tests for parse_command."""

    def test_parses_by_type(self):
        cmd = parse_command("add_status", {"workflow_id": WF_ID, "code": "archived"})
        assert cmd == CmdAddStatus(workflow_id=WF_ID, code="archived")

    def test_parses_nested_transition(self):
        cmd = parse_command(
            "add_transition",
            {"workflow_id": WF_ID, "transition": {"source": "draft", "destination": "review"}},
        )
        assert isinstance(cmd, CmdAddTransition)
        assert cmd.transition == Transition(source="draft", destination="review")

    def test_unknown_type(self):
        with pytest.raises(ValidationError, match="rename"):
            parse_command("rename", {"workflow_id": WF_ID})

    def test_missing_field(self):
        with pytest.raises(ValidationError):
            parse_command("add_status", {"workflow_id": WF_ID})


class TestApplyCommand:
    """Tests for apply_command."""

    def test_create_cannot_be_applied(self, publishing):
        with pytest.raises(TypeError):
            apply_command(publishing, CmdCreateWorkflow(code="publishing"))

    def test_update_adds_then_removes(self, publishing):
        publishing.mark_committed()
        apply_command(
            publishing,
            CmdUpdateWorkflow(workflow_id=publishing.id, statuses=["review", "archived"]),
        )
        assert publishing.pending_events == (
            StatusAdded(code="archived"),
            StatusRemoved(code="draft"),
            StatusRemoved(code="published"),
        )
        assert publishing.get_statuses() == [StatusCode("review"), StatusCode("archived")]
        assert publishing.get_default_status() == StatusCode("review")

    def test_update_with_same_statuses_records_nothing(self, publishing):
        publishing.mark_committed()
        apply_command(
            publishing,
            CmdUpdateWorkflow(
                workflow_id=publishing.id, statuses=["draft", "review", "published"]
            ),
        )
        assert publishing.pending_events == ()


class TestWorkflowCommandHandler:
    """Tests for WorkflowCommandHandler."""

    async def test_create(self, handler, memory_repo):
        workflow = await memory_repo.load(WF_ID)
        assert workflow.version == 1
        assert workflow.get_default_status() == StatusCode("draft")

    async def test_create_existing_fails(self, handler):
        with pytest.raises(AlreadyExists):
            await handler.handle(CmdCreateWorkflow(code="publishing", statuses=["x"]))

    async def test_commands_are_saved(self, handler, memory_repo):
        await handler.handle(CmdAddStatus(workflow_id=WF_ID, code="archived"))
        await handler.handle(
            CmdAddTransition(
                workflow_id=WF_ID,
                transition=Transition(source="draft", destination="review"),
            )
        )
        await handler.handle(
            CmdChangeTransition(
                workflow_id=WF_ID,
                source="draft",
                destination="review",
                transition=Transition(source="draft", destination="review", label="Submit"),
            )
        )
        await handler.handle(CmdSetDefaultStatus(workflow_id=WF_ID, code="review"))
        await handler.handle(CmdRemoveStatus(workflow_id=WF_ID, code="published"))
        workflow = await handler.handle(
            CmdRemoveTransition(workflow_id=WF_ID, source="review", destination="draft")
        )

        assert workflow.version == 7
        loaded = await memory_repo.load(WF_ID)
        assert loaded.state == workflow.state
        assert loaded.get_transition("draft", "review").label == "Submit"
        assert loaded.get_default_status() == StatusCode("review")

    async def test_noop_command_does_not_save(self, handler, memory_repo):
        workflow = await handler.handle(CmdSetDefaultStatus(workflow_id=WF_ID, code="draft"))
        assert workflow.version == 1
        assert len(await memory_repo.history(WF_ID)) == 1

    async def test_domain_errors_propagate(self, handler, memory_repo):
        with pytest.raises(AlreadyExists):
            await handler.handle(CmdAddStatus(workflow_id=WF_ID, code="draft"))
        with pytest.raises(NotFound):
            await handler.handle(CmdRemoveStatus(workflow_id=WF_ID, code="archived"))
        assert len(await memory_repo.history(WF_ID)) == 1

    async def test_missing_workflow(self, handler):
        with pytest.raises(WorkflowNotFound):
            await handler.handle(CmdAddStatus(workflow_id="missing", code="draft"))


class TestConflictRetry:
    """Tests for reload-and-retry on ConcurrencyConflict."""

    @pytest.fixture
    async def repo(self) -> ConflictingRepo:
        repo = ConflictingRepo()
        await WorkflowCommandHandler(repo).handle(
            CmdCreateWorkflow(code="publishing", statuses=["draft"])
        )
        repo.save_calls = 0
        return repo

    async def test_retries_until_saved(self, repo):
        repo.conflicts = 2
        handler = WorkflowCommandHandler(repo, max_conflict_retries=3)

        workflow = await handler.handle(CmdAddStatus(workflow_id=WF_ID, code="review"))

        assert repo.save_calls == 3
        assert workflow.version == 2
        assert (await repo.load(WF_ID)).has_status("review")

    async def test_gives_up_after_max_retries(self, repo):
        repo.conflicts = 5
        handler = WorkflowCommandHandler(repo, max_conflict_retries=2)

        with pytest.raises(ConcurrencyConflict):
            await handler.handle(CmdAddStatus(workflow_id=WF_ID, code="review"))

        assert repo.save_calls == 3
        assert not (await repo.load(WF_ID)).has_status("review")

    async def test_retry_sees_concurrent_change(self, memory_repo):
        """A command that became invalid after the conflicting write fails on retry."""
        await memory_repo.save(Workflow.create("publishing", ["draft"]))

        handler = WorkflowCommandHandler(memory_repo)
        original_load = memory_repo.load
        raced = False

        async def racing_load(id):
            nonlocal raced
            workflow = await original_load(id)
            if not raced:
                raced = True
                other = await original_load(id)
                other.add_status("review")
                await memory_repo.save(other)
            return workflow

        memory_repo.load = racing_load

        with pytest.raises(AlreadyExists):
            await handler.handle(CmdAddStatus(workflow_id=WF_ID, code="review"))
