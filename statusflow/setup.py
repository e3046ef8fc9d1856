"""Simplified setup utilities for statusflow.

Builds everything needed to run workflow commands against a database:

- Database engine and table creation
- Event-sourced repository with the read-model projection attached
- Command handler and status query

Example:
    async with create_repository(load_config()) as resources:
        workflow = await resources.handler.handle(
            CmdCreateWorkflow(code="publishing", statuses=["draft", "published"])
        )
"""
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from statusflow.config import StatusflowConfig
from statusflow.handlers import WorkflowCommandHandler
from statusflow.postgres import Base
from statusflow.projection import StatusQuery, WorkflowProjection
from statusflow.repo import SqlWorkflowRepository


@dataclass
class StatusflowResources:
    """Resources created by create_repository."""

    repo: SqlWorkflowRepository
    handler: WorkflowCommandHandler
    query: StatusQuery
    session_maker: async_sessionmaker[AsyncSession]
    engine: AsyncEngine


@asynccontextmanager
async def create_repository(
    config: StatusflowConfig,
) -> AsyncIterator[StatusflowResources]:
    """Create the engine, tables and repository described by ``config``.

    The engine is disposed when the context exits.
    """
    engine = create_async_engine(config.database_url, echo=config.engine_echo)
    try:
        if config.create_tables:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

        session_maker = async_sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False
        )
        repo = SqlWorkflowRepository(session_maker, sync_db=WorkflowProjection())
        yield StatusflowResources(
            repo=repo,
            handler=WorkflowCommandHandler(
                repo, max_conflict_retries=config.max_conflict_retries
            ),
            query=StatusQuery(session_maker),
            session_maker=session_maker,
            engine=engine,
        )
    finally:
        await engine.dispose()
