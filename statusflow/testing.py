"""Test helpers for status workflows.

``WorkflowTestHarness`` runs commands against workflows kept in memory. It
does **not** need a database, so given/when/then style tests of the
aggregate and its commands stay fast.

Example::

    harness = WorkflowTestHarness()
    workflow_id = harness.given(
        WorkflowCreated(id="wf-1", code="publishing", statuses=["draft", "published"]),
    )

    workflow, events = await harness.send_command(
        CmdAddTransition(
            workflow_id=workflow_id,
            transition=Transition(source="draft", destination="published"),
        )
    )
    harness.assert_events(workflow_id, [TransitionAdded(...)])

    # What-if simulation (does not mutate harness state)
    workflow, events = harness.simulate(CmdRemoveStatus(workflow_id=workflow_id, code="draft"))
"""

from __future__ import annotations

from statusflow.commands import CmdCreateWorkflow, WorkflowCommand
from statusflow.errors import AlreadyExists
from statusflow.events import WorkflowCreated, WorkflowEvent
from statusflow.handlers import apply_command
from statusflow.model import Workflow


class WorkflowTestHarness:
    """In-memory workflow harness for testing.

    Supports:
    - ``given`` - seed a workflow from already stored events
    - ``create_new`` - create a new workflow from a create command
    - ``send_command`` - run a command and return the workflow + new events
    - ``simulate`` - what-if command without mutating harness state
    - ``assert_events`` - assert the events recorded after ``given``

    Domain errors raised by the aggregate propagate unchanged.
    """

    def __init__(self) -> None:
        self._histories: dict[str, list[WorkflowEvent]] = {}
        self._seeded: dict[str, int] = {}

    # ------------------------------------------------------------------
    # Core commands
    # ------------------------------------------------------------------

    def given(self, *events: WorkflowEvent) -> str:
        """Seed a workflow with ``events`` and return its id."""
        if not events or not isinstance(events[0], WorkflowCreated):
            raise ValueError("given() needs a history starting with WorkflowCreated")
        workflow_id = events[0].id
        self._histories[workflow_id] = list(events)
        self._seeded[workflow_id] = len(events)
        return workflow_id

    async def create_new(
        self, cmd: CmdCreateWorkflow
    ) -> tuple[Workflow, list[WorkflowEvent]]:
        workflow = Workflow.create(cmd.code, cmd.statuses)
        if workflow.id in self._histories:
            raise AlreadyExists(f"Workflow '{workflow.id}' already exists")
        events = list(workflow.pending_events)
        workflow.mark_committed()
        self._histories[workflow.id] = events
        self._seeded[workflow.id] = 0
        return workflow, events

    async def send_command(
        self, cmd: WorkflowCommand
    ) -> tuple[Workflow, list[WorkflowEvent]]:
        """Process a command against an existing workflow.

        Raises ``KeyError`` if the workflow does not exist.
        """
        if isinstance(cmd, CmdCreateWorkflow):
            return await self.create_new(cmd)
        workflow, events = self.simulate(cmd)
        self._histories[workflow.id].extend(events)
        return workflow, events

    def simulate(self, cmd: WorkflowCommand) -> tuple[Workflow, list[WorkflowEvent]]:
        """Apply a command without storing the resulting events."""
        workflow = self.get_workflow(cmd.workflow_id)
        apply_command(workflow, cmd)
        events = list(workflow.pending_events)
        workflow.mark_committed()
        return workflow, events

    # ------------------------------------------------------------------
    # Assertions
    # ------------------------------------------------------------------

    def assert_events(self, workflow_id: str, expected: list[WorkflowEvent]) -> None:
        """Assert the events recorded for ``workflow_id`` since ``given``.

        Raises ``AssertionError`` on mismatch.
        """
        if workflow_id not in self._histories:
            raise AssertionError(f"Workflow '{workflow_id}' not found in harness")
        actual = self._histories[workflow_id][self._seeded[workflow_id]:]
        assert actual == expected, (
            f"Event mismatch for '{workflow_id}':\n"
            f"  expected: {expected}\n"
            f"  actual:   {actual}"
        )

    # ------------------------------------------------------------------
    # State access
    # ------------------------------------------------------------------

    def get_workflow(self, workflow_id: str) -> Workflow:
        """Rebuild ``workflow_id`` from its events.

        Raises ``KeyError`` if not found.
        """
        if workflow_id not in self._histories:
            raise KeyError(f"Workflow '{workflow_id}' not found in harness")
        return Workflow.from_history(self._histories[workflow_id])

    def history(self, workflow_id: str) -> list[WorkflowEvent]:
        return list(self._histories[workflow_id])

    @property
    def workflow_ids(self) -> list[str]:
        """All workflow IDs currently tracked by the harness."""
        return list(self._histories.keys())
