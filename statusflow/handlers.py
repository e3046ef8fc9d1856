import logging

from typing_extensions import assert_never

from statusflow.commands import (
    CmdAddStatus,
    CmdAddTransition,
    CmdChangeTransition,
    CmdCreateWorkflow,
    CmdRemoveStatus,
    CmdRemoveTransition,
    CmdSetDefaultStatus,
    CmdUpdateWorkflow,
    WorkflowCommand,
)
from statusflow.errors import ConcurrencyConflict
from statusflow.model import Workflow
from statusflow.repo import WorkflowRepository

logger = logging.getLogger(__name__)


def apply_command(workflow: Workflow, cmd: WorkflowCommand) -> None:
    """Invoke the aggregate operation behind ``cmd``. Errors propagate."""
    if isinstance(cmd, CmdCreateWorkflow):
        raise TypeError("CmdCreateWorkflow creates a workflow; it cannot be applied")
    elif isinstance(cmd, CmdUpdateWorkflow):
        for code in cmd.statuses:
            if not workflow.has_status(code):
                workflow.add_status(code)
        for code in workflow.get_statuses():
            if code not in cmd.statuses:
                workflow.remove_status(code)
    elif isinstance(cmd, CmdAddStatus):
        workflow.add_status(cmd.code)
    elif isinstance(cmd, CmdRemoveStatus):
        workflow.remove_status(cmd.code)
    elif isinstance(cmd, CmdSetDefaultStatus):
        workflow.set_default_status(cmd.code)
    elif isinstance(cmd, CmdAddTransition):
        workflow.add_transition(cmd.transition)
    elif isinstance(cmd, CmdChangeTransition):
        workflow.change_transition(cmd.source, cmd.destination, cmd.transition)
    elif isinstance(cmd, CmdRemoveTransition):
        workflow.remove_transition(cmd.source, cmd.destination)
    else:
        assert_never(cmd)


class WorkflowCommandHandler:
    """Loads a workflow, runs one command against it and saves the result.

    A ``ConcurrencyConflict`` on save reloads the workflow and runs the
    command again, at most ``max_conflict_retries`` times; after that the
    conflict is raised to the caller. Every other error is raised unchanged.
    """

    def __init__(self, repo: WorkflowRepository, max_conflict_retries: int = 3) -> None:
        self._repo = repo
        self._max_conflict_retries = max_conflict_retries

    async def handle(self, cmd: WorkflowCommand) -> Workflow:
        if isinstance(cmd, CmdCreateWorkflow):
            return await self.create(cmd)

        attempt = 0
        while True:
            workflow = await self._repo.load(cmd.workflow_id)
            apply_command(workflow, cmd)
            if not workflow.pending_events:
                return workflow
            try:
                await self._repo.save(workflow)
                return workflow
            except ConcurrencyConflict:
                attempt += 1
                if attempt > self._max_conflict_retries:
                    raise
                logger.warning(
                    "Retrying %s on workflow %s after conflict (attempt %d/%d)",
                    cmd.type,
                    cmd.workflow_id,
                    attempt,
                    self._max_conflict_retries,
                )

    async def create(self, cmd: CmdCreateWorkflow) -> Workflow:
        workflow = Workflow.create(cmd.code, cmd.statuses)
        await self._repo.save(workflow)
        logger.info("Created workflow %s (%s)", workflow.code, workflow.id)
        return workflow
