"""
Pytest configuration and shared fixtures for statusflow tests.
"""

import os
from typing import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from statusflow.model import Workflow
from statusflow.postgres import Base
from statusflow.projection import StatusQuery, WorkflowProjection
from statusflow.repo import InMemoryWorkflowRepository, SqlWorkflowRepository

# Set TEST_DATABASE_URL to run the SQL tests against PostgreSQL instead.
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")


@pytest.fixture
def database_url(tmp_path) -> str:
    if TEST_DATABASE_URL:
        return TEST_DATABASE_URL
    return f"sqlite+aiosqlite:///{tmp_path / 'statusflow.db'}"


# Database fixtures
@pytest.fixture(scope="function")
async def test_engine(database_url) -> AsyncGenerator[AsyncEngine, None]:
    """Create a test database engine and recreate tables for each test."""
    engine = create_async_engine(database_url)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def test_session_maker(test_engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def sql_repo(test_session_maker) -> SqlWorkflowRepository:
    """SQL repository with the read-model projection attached."""
    return SqlWorkflowRepository(test_session_maker, sync_db=WorkflowProjection())


@pytest.fixture
def status_query(test_session_maker) -> StatusQuery:
    return StatusQuery(test_session_maker)


@pytest.fixture
def memory_repo() -> InMemoryWorkflowRepository:
    return InMemoryWorkflowRepository()


@pytest.fixture(params=["memory", "sql"])
def any_repo(request, memory_repo, sql_repo):
    """Run a test against both repository implementations."""
    return memory_repo if request.param == "memory" else sql_repo


@pytest.fixture
def publishing() -> Workflow:
    """Unsaved workflow with statuses draft, review, published."""
    return Workflow.create("publishing", ["draft", "review", "published"])
