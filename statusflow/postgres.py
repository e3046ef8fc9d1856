from datetime import datetime
from typing import Any, TypeVar

from pydantic import BaseModel, TypeAdapter
from sqlalchemy import (
    JSON,
    TIMESTAMP,
    BigInteger,
    Boolean,
    Dialect,
    ForeignKey,
    Integer,
    String,
    TypeDecorator,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, declarative_base, mapped_column
from sqlalchemy.schema import Index

from statusflow.events import WorkflowEvent

ModelT = TypeVar("ModelT", bound=BaseModel)

# SQLite only autoincrements INTEGER PRIMARY KEY columns.
BigIntegerPK = BigInteger().with_variant(Integer, "sqlite")


class PydanticType(TypeDecorator[ModelT]):
    """SQLAlchemy type for storing Pydantic models (JSONB on PostgreSQL)"""

    cache_ok = True
    impl = JSON

    def __init__(self, pydantic_type: Any) -> None:
        super().__init__()
        self._pydantic_type = pydantic_type
        self._adapter: TypeAdapter[Any] = TypeAdapter(pydantic_type)

    def load_dialect_impl(self, dialect: Dialect) -> Any:
        if dialect.name == "postgresql":
            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(JSON())

    def process_bind_param(self, value: ModelT | None, _dialect: Dialect) -> Any:
        if value is None:
            return None
        return self._adapter.dump_python(value, mode="json")

    def process_result_value(self, value: Any, _dialect: Dialect) -> ModelT | None:
        if value is None:
            return None
        return self._adapter.validate_python(value)


Base = declarative_base()


class StoredEvent(Base):
    """One row per workflow event; ``workflow_version`` numbers a stream from 1."""

    __tablename__ = "workflow_events"

    global_id: Mapped[int] = mapped_column(
        BigIntegerPK, primary_key=True, autoincrement=True
    )
    workflow_id: Mapped[str] = mapped_column(String(256), nullable=False)
    workflow_version: Mapped[int] = mapped_column(BigInteger, nullable=False)
    event_type: Mapped[str] = mapped_column(String, nullable=False)
    body: Mapped[Any] = mapped_column(PydanticType(WorkflowEvent), nullable=False)
    at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("workflow_id", "workflow_version"),
        Index("idx__workflow_events_workflow_id", "workflow_id"),
    )


# Read model. Rewritten from workflow state on every save; never read back
# into the aggregate.


class WorkflowRow(Base):
    __tablename__ = "workflow"

    workflow_id: Mapped[str] = mapped_column(String(256), primary_key=True)
    code: Mapped[str] = mapped_column(String(256), nullable=False, unique=True)
    default_status: Mapped[str | None] = mapped_column(String(256), nullable=True)
    version: Mapped[int] = mapped_column(BigInteger, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )


class WorkflowStatusRow(Base):
    __tablename__ = "workflow_status"

    workflow_id: Mapped[str] = mapped_column(
        String(256),
        ForeignKey("workflow.workflow_id", ondelete="CASCADE"),
        primary_key=True,
    )
    code: Mapped[str] = mapped_column(String(256), primary_key=True)
    # Position in Workflow.get_sorted_transition_statuses()
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (Index("idx_workflow_status_code", "code"),)


class WorkflowTransitionRow(Base):
    __tablename__ = "workflow_transition"

    workflow_id: Mapped[str] = mapped_column(
        String(256),
        ForeignKey("workflow.workflow_id", ondelete="CASCADE"),
        primary_key=True,
    )
    source: Mapped[str] = mapped_column(String(256), primary_key=True)
    destination: Mapped[str] = mapped_column(String(256), primary_key=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    label: Mapped[str | None] = mapped_column(String, nullable=True)
