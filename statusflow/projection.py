"""Read side: denormalized workflow tables for listings and counts.

``WorkflowProjection`` is handed to ``SqlWorkflowRepository(sync_db=...)``
so the tables change in the same transaction as the event insert.
``StatusQuery`` only reads them.
"""
import logging
from typing import Any

from sqlalchemy import delete, func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from statusflow.events import WorkflowEvent
from statusflow.model import Workflow, WorkflowState
from statusflow.postgres import (
    StoredEvent,
    WorkflowRow,
    WorkflowStatusRow,
    WorkflowTransitionRow,
)

logger = logging.getLogger(__name__)


class WorkflowProjection:
    """Rewrites the read-model rows of one workflow from its new state."""

    async def __call__(
        self,
        s: AsyncSession,
        workflow_id: str,
        old_state: WorkflowState | None,
        new_state: WorkflowState,
        events: list[WorkflowEvent],
    ) -> None:
        version = await s.scalar(
            select(func.count()).where(StoredEvent.workflow_id == workflow_id)
        )
        await s.execute(
            delete(WorkflowStatusRow).where(WorkflowStatusRow.workflow_id == workflow_id)
        )
        await s.execute(
            delete(WorkflowTransitionRow).where(
                WorkflowTransitionRow.workflow_id == workflow_id
            )
        )
        await s.execute(delete(WorkflowRow).where(WorkflowRow.workflow_id == workflow_id))

        default = (
            str(new_state.default_status)
            if new_state.default_status is not None
            else None
        )
        await s.execute(
            insert(WorkflowRow).values(
                workflow_id=workflow_id,
                code=new_state.code,
                default_status=default,
                version=version,
            )
        )

        ordered = Workflow(new_state).get_sorted_transition_statuses()
        if ordered:
            await s.execute(
                insert(WorkflowStatusRow).values(
                    [
                        {
                            "workflow_id": workflow_id,
                            "code": str(code),
                            "position": i,
                            "is_default": code == new_state.default_status,
                        }
                        for i, code in enumerate(ordered)
                    ]
                )
            )
        if new_state.transitions:
            await s.execute(
                insert(WorkflowTransitionRow).values(
                    [
                        {
                            "workflow_id": workflow_id,
                            "source": str(t.source),
                            "destination": str(t.destination),
                            "position": i,
                            "label": t.label,
                        }
                        for i, t in enumerate(new_state.transitions)
                    ]
                )
            )
        logger.debug(
            "Projected %s: %d statuses, %d transitions",
            new_state.code,
            len(ordered),
            len(new_state.transitions),
        )


class StatusQuery:
    def __init__(self, session_maker: async_sessionmaker[AsyncSession]) -> None:
        self._session_maker = session_maker

    async def list_workflows(self) -> list[dict[str, Any]]:
        """Every workflow with its status and transition counts."""
        status_count = (
            select(func.count())
            .where(WorkflowStatusRow.workflow_id == WorkflowRow.workflow_id)
            .correlate(WorkflowRow)
            .scalar_subquery()
        )
        transition_count = (
            select(func.count())
            .where(WorkflowTransitionRow.workflow_id == WorkflowRow.workflow_id)
            .correlate(WorkflowRow)
            .scalar_subquery()
        )
        async with self._session_maker() as s:
            c = await s.execute(
                select(
                    WorkflowRow.workflow_id,
                    WorkflowRow.code,
                    WorkflowRow.default_status,
                    WorkflowRow.version,
                    status_count.label("status_count"),
                    transition_count.label("transition_count"),
                ).order_by(WorkflowRow.code)
            )
            return [dict(row._mapping) for row in c.fetchall()]

    async def get_statuses(self, workflow_id: str) -> list[dict[str, Any]]:
        async with self._session_maker() as s:
            c = await s.execute(
                select(
                    WorkflowStatusRow.code,
                    WorkflowStatusRow.position,
                    WorkflowStatusRow.is_default,
                )
                .where(WorkflowStatusRow.workflow_id == workflow_id)
                .order_by(WorkflowStatusRow.position)
            )
            return [dict(row._mapping) for row in c.fetchall()]

    async def get_transitions(self, workflow_id: str) -> list[dict[str, Any]]:
        async with self._session_maker() as s:
            c = await s.execute(
                select(
                    WorkflowTransitionRow.source,
                    WorkflowTransitionRow.destination,
                    WorkflowTransitionRow.label,
                )
                .where(WorkflowTransitionRow.workflow_id == workflow_id)
                .order_by(WorkflowTransitionRow.position)
            )
            return [dict(row._mapping) for row in c.fetchall()]

    async def get_all_codes(self) -> list[str]:
        """Distinct status codes used by any workflow."""
        async with self._session_maker() as s:
            c = await s.execute(
                select(WorkflowStatusRow.code)
                .distinct()
                .order_by(WorkflowStatusRow.code)
            )
            return list(c.scalars().all())
