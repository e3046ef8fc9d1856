"""HTTP command gateway for status workflows.

Exposes workflow commands via REST API for non-Python clients.
"""
from fastapi import APIRouter, HTTPException

from statusflow.commands import CmdCreateWorkflow, parse_command
from statusflow.errors import (
    AlreadyExists,
    ConcurrencyConflict,
    NotFound,
    StatusflowError,
    ValidationError,
)
from statusflow.handlers import WorkflowCommandHandler
from statusflow.model import Workflow
from statusflow.repo import WorkflowRepository


def _http_error(e: StatusflowError) -> HTTPException:
    if isinstance(e, NotFound):
        return HTTPException(404, detail=str(e))
    if isinstance(e, (AlreadyExists, ConcurrencyConflict)):
        return HTTPException(409, detail=str(e))
    return HTTPException(400, detail=str(e))


def _summary(workflow: Workflow) -> dict:
    return {
        "status": "ok",
        "workflow_id": workflow.id,
        "code": workflow.code,
        "version": workflow.version,
    }


class WorkflowCommandGateway:
    """FastAPI router for ingesting workflow commands via HTTP."""

    def __init__(
        self,
        repo: WorkflowRepository,
        handler: WorkflowCommandHandler | None = None,
    ):
        self.router = APIRouter(prefix="/workflows", tags=["workflows"])
        self._repo = repo
        self._handler = handler or WorkflowCommandHandler(repo)
        self._setup_routes()

    def _setup_routes(self):
        @self.router.post("")
        async def create_workflow(body: dict):
            """Create a new workflow."""
            code = body.get("code", "")
            if not code:
                raise HTTPException(400, detail="code is required")
            try:
                cmd = CmdCreateWorkflow(code=code, statuses=body.get("statuses", []))
            except ValueError as e:
                raise HTTPException(400, detail=str(e))
            try:
                workflow = await self._handler.create(cmd)
            except StatusflowError as e:
                raise _http_error(e)
            return _summary(workflow)

        @self.router.post("/{workflow_id}/commands")
        async def process_command(workflow_id: str, body: dict):
            """Process a command for an existing workflow."""
            cmd_type = body.get("command_type", "")
            payload = body.get("payload", {})
            if not isinstance(payload, dict):
                raise HTTPException(400, detail="payload must be a JSON object")
            payload = {**payload, "workflow_id": workflow_id}
            try:
                cmd = parse_command(cmd_type, payload)
                if isinstance(cmd, CmdCreateWorkflow):
                    raise ValidationError("Use POST /workflows to create a workflow")
                workflow = await self._handler.handle(cmd)
            except StatusflowError as e:
                raise _http_error(e)
            return _summary(workflow)

        @self.router.get("/{workflow_id}")
        async def get_workflow(workflow_id: str):
            """Current state of a workflow, rebuilt from its events."""
            try:
                workflow = await self._repo.load(workflow_id)
            except StatusflowError as e:
                raise _http_error(e)
            return {
                **workflow.state.model_dump(mode="json"),
                "version": workflow.version,
            }

        @self.router.get("/{workflow_id}/history")
        async def get_history(workflow_id: str):
            """Stored events of a workflow in order."""
            try:
                history = await self._repo.history(workflow_id)
            except StatusflowError as e:
                raise _http_error(e)
            return [
                {"version": r.version, "event": r.event.model_dump(mode="json")}
                for r in history
            ]
