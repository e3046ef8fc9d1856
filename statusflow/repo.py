import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from datetime import datetime

from pydantic import BaseModel, ConfigDict
from sqlalchemy import insert, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from statusflow.errors import AlreadyExists, ConcurrencyConflict, WorkflowNotFound
from statusflow.events import WorkflowEvent
from statusflow.model import Workflow, WorkflowState, evolve_
from statusflow.postgres import StoredEvent
from statusflow.values import workflow_id_from_code

logger = logging.getLogger(__name__)

# Callable run inside the same transaction as event insertion to update
# denormalized/auxiliary DB data. Args: (session, workflow_id, old_state, new_state, events).
# Must not commit.
SyncDbHandler = Callable[
    [AsyncSession, str, WorkflowState | None, WorkflowState, list[WorkflowEvent]],
    Awaitable[None],
]


class RecordedEvent(BaseModel):
    """An event as it sits in a workflow's stream."""

    model_config = ConfigDict(frozen=True)

    workflow_id: str
    version: int
    event: WorkflowEvent
    at: datetime | None = None


class WorkflowRepository(ABC):
    """Loads workflows by replaying their events and appends new ones.

    ``save`` is optimistic: it fails with ``ConcurrencyConflict`` when the
    stream grew after the workflow was loaded, and with ``AlreadyExists``
    when a freshly created workflow collides with an existing stream.
    """

    @abstractmethod
    async def load(self, id: str) -> Workflow:
        pass

    @abstractmethod
    async def save(self, workflow: Workflow) -> None:
        pass

    @abstractmethod
    async def exists(self, id: str) -> bool:
        pass

    @abstractmethod
    async def history(self, id: str) -> list[RecordedEvent]:
        pass

    async def load_by_code(self, code: str) -> Workflow:
        return await self.load(workflow_id_from_code(code))


class InMemoryWorkflowRepository(WorkflowRepository):
    """Dict-backed repository. No persistence across restarts."""

    def __init__(self) -> None:
        self._streams: dict[str, list[RecordedEvent]] = {}
        self._lock = asyncio.Lock()

    async def load(self, id: str) -> Workflow:
        stream = self._streams.get(id)
        if not stream:
            raise WorkflowNotFound(id)
        return Workflow.from_history([r.event for r in stream], version=len(stream))

    async def save(self, workflow: Workflow) -> None:
        events = list(workflow.pending_events)
        if not events:
            return
        async with self._lock:
            stream = self._streams.get(workflow.id, [])
            if len(stream) != workflow.version:
                if workflow.version == 0:
                    raise AlreadyExists(f"Workflow with id {workflow.id} already exists")
                raise ConcurrencyConflict(workflow.id, workflow.version)
            self._streams[workflow.id] = stream + [
                RecordedEvent(workflow_id=workflow.id, version=workflow.version + i, event=e)
                for i, e in enumerate(events, start=1)
            ]
        workflow.mark_committed()
        logger.debug("Appended %d events to %s", len(events), workflow.id)

    async def exists(self, id: str) -> bool:
        return bool(self._streams.get(id))

    async def history(self, id: str) -> list[RecordedEvent]:
        if not self._streams.get(id):
            raise WorkflowNotFound(id)
        return list(self._streams[id])


class SqlWorkflowRepository(WorkflowRepository):
    """Event store on SQLAlchemy asyncio (PostgreSQL in production).

    Concurrent writers are serialized by the ``(workflow_id,
    workflow_version)`` unique constraint: the loser of a race gets an
    ``IntegrityError`` which surfaces as ``ConcurrencyConflict``.

    Optional sync_db runs in the same transaction, after the event insert and
    before commit. Use it for strongly consistent projections.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        db_event_model: type[StoredEvent] = StoredEvent,
        sync_db: SyncDbHandler | None = None,
    ) -> None:
        self._session_maker = session_maker
        self.db_event_model = db_event_model
        self._sync_db_handler = sync_db

    async def load(self, id: str) -> Workflow:
        async with self._session_maker() as s:
            events = await self._load_events(s, id)
        if not events:
            raise WorkflowNotFound(id)
        return Workflow.from_history(events, version=len(events))

    async def _load_events(self, s: AsyncSession, id: str) -> list[WorkflowEvent]:
        c = await s.execute(
            select(self.db_event_model.body)
            .where(self.db_event_model.workflow_id == id)
            .order_by(self.db_event_model.workflow_version)
        )
        return [row.body for row in c.fetchall()]

    async def save(self, workflow: Workflow) -> None:
        events = list(workflow.pending_events)
        if not events:
            return

        async with self._session_maker() as s:
            try:
                old_state: WorkflowState | None = None
                if self._sync_db_handler and workflow.version:
                    old_state = evolve_(None, await self._load_events(s, workflow.id))

                await s.execute(
                    insert(self.db_event_model).values(
                        [
                            {
                                "workflow_id": workflow.id,
                                "workflow_version": workflow.version + i,
                                "event_type": e.type,
                                "body": e,
                            }
                            for i, e in enumerate(events, start=1)
                        ]
                    )
                )

                if self._sync_db_handler:
                    await self._sync_db_handler(
                        s, workflow.id, old_state, workflow.state, events
                    )

                await s.commit()
            except IntegrityError:
                await s.rollback()
                if workflow.version == 0:
                    raise AlreadyExists(
                        f"Workflow with id {workflow.id} already exists"
                    ) from None
                logger.warning(
                    "Concurrent write on %s at version %d", workflow.id, workflow.version
                )
                raise ConcurrencyConflict(workflow.id, workflow.version) from None

        workflow.mark_committed()
        logger.debug(
            "Appended %d events to %s, now at version %d",
            len(events),
            workflow.id,
            workflow.version,
        )

    async def exists(self, id: str) -> bool:
        async with self._session_maker() as s:
            found = await s.scalar(
                select(self.db_event_model.global_id)
                .where(self.db_event_model.workflow_id == id)
                .limit(1)
            )
        return found is not None

    async def history(self, id: str) -> list[RecordedEvent]:
        async with self._session_maker() as s:
            c = await s.execute(
                select(
                    self.db_event_model.workflow_version,
                    self.db_event_model.body,
                    self.db_event_model.at,
                )
                .where(self.db_event_model.workflow_id == id)
                .order_by(self.db_event_model.workflow_version)
            )
            rows = c.fetchall()
        if not rows:
            raise WorkflowNotFound(id)
        return [
            RecordedEvent(
                workflow_id=id, version=row.workflow_version, event=row.body, at=row.at
            )
            for row in rows
        ]

    async def replay_workflow(self, id: str, at_version: int) -> WorkflowState:
        """State of a workflow as it was right after event ``at_version``."""
        async with self._session_maker() as s:
            c = await s.execute(
                select(self.db_event_model.body)
                .where(
                    self.db_event_model.workflow_id == id,
                    self.db_event_model.workflow_version <= at_version,
                )
                .order_by(self.db_event_model.workflow_version)
            )
            events = [row.body for row in c.fetchall()]
        if not events:
            raise WorkflowNotFound(id)
        return evolve_(None, events)
