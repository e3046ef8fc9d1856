from collections import deque
from collections.abc import Iterable, Sequence

from pydantic import BaseModel, Field
from typing_extensions import Self, assert_never

from statusflow.errors import AlreadyExists, NotFound, ValidationError
from statusflow.events import (
    DefaultStatusSet,
    StatusAdded,
    StatusRemoved,
    TransitionAdded,
    TransitionChanged,
    TransitionRemoved,
    WorkflowCreated,
    WorkflowEvent,
)
from statusflow.values import (
    StatusCode,
    Transition,
    as_status_code,
    workflow_id_from_code,
)


class WorkflowState(BaseModel):
    """Current state of a workflow, derived from its events.

    ``statuses`` keeps insertion order; the first remaining status becomes
    the default when the default status is removed.
    """

    id: str
    code: str
    statuses: list[StatusCode] = Field(default_factory=list)
    transitions: list[Transition] = Field(default_factory=list)
    default_status: StatusCode | None = None


def evolve(state: WorkflowState | None, event: WorkflowEvent) -> WorkflowState:
    """Apply one event. Never fails for a history produced by ``Workflow``."""
    if isinstance(event, WorkflowCreated):
        statuses: list[StatusCode] = []
        for code in event.statuses:
            if code not in statuses:
                statuses.append(code)
        return WorkflowState(
            id=event.id,
            code=event.code,
            statuses=statuses,
            transitions=[],
            default_status=statuses[0] if statuses else None,
        )

    assert state is not None, f"{event.type} applied before workflow.created"

    if isinstance(event, StatusAdded):
        if event.code in state.statuses:
            return state
        default = state.default_status
        if default is None:
            default = event.code
        return state.model_copy(
            update={"statuses": state.statuses + [event.code], "default_status": default}
        )
    elif isinstance(event, StatusRemoved):
        statuses = [s for s in state.statuses if s != event.code]
        default = state.default_status
        if default == event.code:
            default = statuses[0] if statuses else None
        return state.model_copy(
            update={"statuses": statuses, "default_status": default}
        )
    elif isinstance(event, TransitionAdded):
        return state.model_copy(
            update={"transitions": state.transitions + [event.transition]}
        )
    elif isinstance(event, TransitionChanged):
        transitions = [
            event.new_transition if t.matches(event.source, event.destination) else t
            for t in state.transitions
        ]
        return state.model_copy(update={"transitions": transitions})
    elif isinstance(event, TransitionRemoved):
        transitions = [
            t
            for t in state.transitions
            if not t.matches(event.source, event.destination)
        ]
        return state.model_copy(update={"transitions": transitions})
    elif isinstance(event, DefaultStatusSet):
        return state.model_copy(update={"default_status": event.code})
    else:
        assert_never(event)


def evolve_(state: WorkflowState | None, events: Iterable[WorkflowEvent]) -> WorkflowState:
    """Evolve state through events."""
    for e in events:
        state = evolve(state, e)
    assert state
    return state


def _code(code: StatusCode | str) -> StatusCode:
    try:
        return as_status_code(code)
    except ValueError as e:
        raise ValidationError(f"Invalid status code {code!r}") from e


def _lookup_code(code: StatusCode | str) -> StatusCode | None:
    """Like ``_code`` for read-only queries: an invalid code matches nothing."""
    try:
        return as_status_code(code)
    except ValueError:
        return None


class Workflow:
    """Aggregate root of a status workflow.

    Every mutating method validates against the in-memory state first; on
    success it records exactly one event and applies it immediately, on
    failure it raises and leaves the aggregate untouched. Recorded events
    stay in ``pending_events`` until the repository persists them and calls
    ``mark_committed``.
    """

    def __init__(self, state: WorkflowState, version: int = 0) -> None:
        self._state = state
        self._version = version
        self._pending: list[WorkflowEvent] = []

    @classmethod
    def create(cls, code: str, statuses: Iterable[StatusCode | str] = ()) -> Self:
        if not code or not code.strip():
            raise ValidationError("Workflow code must be a non-empty string")
        codes = [_code(s) for s in statuses]

        seen: set[StatusCode] = set()
        duplicates: list[str] = []
        for c in codes:
            if c in seen and str(c) not in duplicates:
                duplicates.append(str(c))
            seen.add(c)
        if duplicates:
            raise ValidationError(
                f"Duplicate status codes: {', '.join(duplicates)}"
            )

        event = WorkflowCreated(
            id=workflow_id_from_code(code), code=code, statuses=codes
        )
        workflow = cls(evolve(None, event))
        workflow._pending.append(event)
        return workflow

    @classmethod
    def from_history(
        cls, events: Sequence[WorkflowEvent], version: int | None = None
    ) -> Self:
        """Rebuild a workflow by replaying its stored events from scratch."""
        if not events or not isinstance(events[0], WorkflowCreated):
            raise ValidationError("Workflow history must start with workflow.created")
        state = evolve_(None, events)
        return cls(state, version=len(events) if version is None else version)

    @property
    def id(self) -> str:
        return self._state.id

    @property
    def code(self) -> str:
        return self._state.code

    @property
    def version(self) -> int:
        """Number of events already persisted for this workflow."""
        return self._version

    @property
    def state(self) -> WorkflowState:
        return self._state.model_copy(deep=True)

    @property
    def pending_events(self) -> tuple[WorkflowEvent, ...]:
        return tuple(self._pending)

    def mark_committed(self) -> None:
        self._version += len(self._pending)
        self._pending.clear()

    def _record(self, event: WorkflowEvent) -> None:
        self._state = evolve(self._state, event)
        self._pending.append(event)

    # Statuses

    def has_status(self, code: StatusCode | str) -> bool:
        return _lookup_code(code) in self._state.statuses

    def get_statuses(self) -> list[StatusCode]:
        return list(self._state.statuses)

    def add_status(self, code: StatusCode | str) -> None:
        code = _code(code)
        if self.has_status(code):
            raise AlreadyExists(f'Status "{code}" already exists')
        self._record(StatusAdded(code=code))

    def remove_status(self, code: StatusCode | str) -> None:
        code = _code(code)
        if not self.has_status(code):
            raise NotFound(f'Status "{code}" does not exist')
        self._record(StatusRemoved(code=code))

    def has_default_status(self) -> bool:
        return self._state.default_status is not None

    def get_default_status(self) -> StatusCode:
        if self._state.default_status is None:
            raise NotFound(f"Workflow {self.code} has no default status")
        return self._state.default_status

    def set_default_status(self, code: StatusCode | str) -> None:
        code = _code(code)
        if not self.has_status(code):
            raise NotFound(f'Status "{code}" does not exist')
        if code == self._state.default_status:
            return
        self._record(DefaultStatusSet(code=code))

    # Transitions

    def has_transition(
        self, source: StatusCode | str, destination: StatusCode | str
    ) -> bool:
        source, destination = _lookup_code(source), _lookup_code(destination)
        if source is None or destination is None:
            return False
        return any(t.matches(source, destination) for t in self._state.transitions)

    def get_transition(
        self, source: StatusCode | str, destination: StatusCode | str
    ) -> Transition:
        s, d = _lookup_code(source), _lookup_code(destination)
        for t in self._state.transitions:
            if t.matches(s, d):
                return t
        raise NotFound(f'Transition from "{source}" to "{destination}" does not exist')

    def get_transitions(self) -> list[Transition]:
        return list(self._state.transitions)

    def get_transitions_from_status(self, code: StatusCode | str) -> list[Transition]:
        code = _lookup_code(code)
        return [t for t in self._state.transitions if t.source == code]

    def _check_endpoints(self, transition: Transition) -> None:
        if not self.has_status(transition.source):
            raise NotFound(
                f'Transition source status "{transition.source}" does not exist'
            )
        if not self.has_status(transition.destination):
            raise NotFound(
                f'Transition destination status "{transition.destination}" does not exist'
            )

    def add_transition(self, transition: Transition) -> None:
        if self.has_transition(transition.source, transition.destination):
            raise AlreadyExists(
                f'Transition from "{transition.source}" to "{transition.destination}" already exists'
            )
        self._check_endpoints(transition)
        self._record(TransitionAdded(transition=transition))

    def change_transition(
        self,
        source: StatusCode | str,
        destination: StatusCode | str,
        transition: Transition,
    ) -> None:
        source, destination = _code(source), _code(destination)
        current = self.get_transition(source, destination)
        if not self.has_status(source):
            raise NotFound(f'Transition source status "{source}" does not exist')
        if not self.has_status(destination):
            raise NotFound(
                f'Transition destination status "{destination}" does not exist'
            )
        if transition.key != current.key:
            self._check_endpoints(transition)
            if self.has_transition(transition.source, transition.destination):
                raise AlreadyExists(
                    f'Transition from "{transition.source}" to "{transition.destination}" already exists'
                )
        self._record(
            TransitionChanged(
                source=source,
                destination=destination,
                old_transition=current,
                new_transition=transition,
            )
        )

    def remove_transition(
        self, source: StatusCode | str, destination: StatusCode | str
    ) -> None:
        # No existence check: removing a missing transition still records the
        # event and replays as a no-op.
        self._record(
            TransitionRemoved(source=_code(source), destination=_code(destination))
        )

    def get_sorted_transition_statuses(self) -> list[StatusCode]:
        """Statuses in the order a record moves through them.

        Walks transitions breadth-first from the default status; statuses not
        reachable that way follow in insertion order.
        """
        statuses = self._state.statuses
        ordered: list[StatusCode] = []
        seen: set[StatusCode] = set()
        if self._state.default_status is not None:
            queue = deque([self._state.default_status])
            seen.add(self._state.default_status)
            while queue:
                code = queue.popleft()
                ordered.append(code)
                for t in self.get_transitions_from_status(code):
                    if t.destination in statuses and t.destination not in seen:
                        seen.add(t.destination)
                        queue.append(t.destination)
        return ordered + [s for s in statuses if s not in seen]

    def __repr__(self) -> str:
        return (
            f"Workflow(code={self.code!r}, version={self.version}, "
            f"pending={len(self._pending)})"
        )
