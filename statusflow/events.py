"""Domain events of the Workflow aggregate.

Events are pure data: the aggregate validates a command, builds exactly one
event and applies it. Replaying the stored events in order rebuilds the
aggregate.
"""
from abc import ABC
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from statusflow.values import StatusCode, Transition


class EventBase(BaseModel, ABC):
    model_config = ConfigDict(frozen=True)

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)

        if cls is EventBase or ABC in cls.__bases__:
            return

        # ``type`` is both the stored event_type and the union discriminator.
        annotation = cls.__annotations__.get("type")
        if annotation is None:
            raise TypeError(
                f"{cls.__name__} must override `type` with a Literal[...] default."
            )


class WorkflowCreated(EventBase):
    type: Literal["workflow.created"] = "workflow.created"
    id: str
    code: str
    statuses: list[StatusCode] = Field(default_factory=list)


class StatusAdded(EventBase):
    type: Literal["workflow.status_added"] = "workflow.status_added"
    code: StatusCode


class StatusRemoved(EventBase):
    type: Literal["workflow.status_removed"] = "workflow.status_removed"
    code: StatusCode


class TransitionAdded(EventBase):
    type: Literal["workflow.transition_added"] = "workflow.transition_added"
    transition: Transition


class TransitionChanged(EventBase):
    """Replaces the transition at ``(source, destination)``.

    Both the old and the new value are kept for auditing.
    """

    type: Literal["workflow.transition_changed"] = "workflow.transition_changed"
    source: StatusCode
    destination: StatusCode
    old_transition: Transition
    new_transition: Transition


class TransitionRemoved(EventBase):
    type: Literal["workflow.transition_removed"] = "workflow.transition_removed"
    source: StatusCode
    destination: StatusCode


class DefaultStatusSet(EventBase):
    type: Literal["workflow.default_status_set"] = "workflow.default_status_set"
    code: StatusCode


WorkflowEvent = Annotated[
    Union[
        WorkflowCreated,
        StatusAdded,
        StatusRemoved,
        TransitionAdded,
        TransitionChanged,
        TransitionRemoved,
        DefaultStatusSet,
    ],
    Field(discriminator="type"),
]

workflow_event_adapter: TypeAdapter[WorkflowEvent] = TypeAdapter(WorkflowEvent)
