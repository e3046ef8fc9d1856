"""Commands accepted by ``WorkflowCommandHandler``."""
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from statusflow.errors import ValidationError
from statusflow.values import StatusCode, Transition


class CmdCreateWorkflow(BaseModel):
    type: Literal["create"] = "create"
    code: str
    statuses: list[StatusCode] = Field(default_factory=list)


class CmdUpdateWorkflow(BaseModel):
    """Make the workflow's status set equal to ``statuses``.

    Missing statuses are added in the given order, statuses not listed are
    removed.
    """

    type: Literal["update"] = "update"
    workflow_id: str
    statuses: list[StatusCode]


class CmdAddStatus(BaseModel):
    type: Literal["add_status"] = "add_status"
    workflow_id: str
    code: StatusCode


class CmdRemoveStatus(BaseModel):
    type: Literal["remove_status"] = "remove_status"
    workflow_id: str
    code: StatusCode


class CmdSetDefaultStatus(BaseModel):
    type: Literal["set_default_status"] = "set_default_status"
    workflow_id: str
    code: StatusCode


class CmdAddTransition(BaseModel):
    type: Literal["add_transition"] = "add_transition"
    workflow_id: str
    transition: Transition


class CmdChangeTransition(BaseModel):
    type: Literal["change_transition"] = "change_transition"
    workflow_id: str
    source: StatusCode
    destination: StatusCode
    transition: Transition


class CmdRemoveTransition(BaseModel):
    type: Literal["remove_transition"] = "remove_transition"
    workflow_id: str
    source: StatusCode
    destination: StatusCode


WorkflowCommand = Annotated[
    Union[
        CmdCreateWorkflow,
        CmdUpdateWorkflow,
        CmdAddStatus,
        CmdRemoveStatus,
        CmdSetDefaultStatus,
        CmdAddTransition,
        CmdChangeTransition,
        CmdRemoveTransition,
    ],
    Field(discriminator="type"),
]

_command_adapter: TypeAdapter[WorkflowCommand] = TypeAdapter(WorkflowCommand)


def parse_command(command_type: str, payload: dict[str, Any]) -> WorkflowCommand:
    """Build a command from untyped input, e.g. an HTTP body."""
    try:
        return _command_adapter.validate_python({**payload, "type": command_type})
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid {command_type!r} command: {e}") from e
