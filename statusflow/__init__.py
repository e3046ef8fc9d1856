"""
statusflow - event-sourced status workflows

A workflow is a named set of statuses with a default status and the
transitions allowed between them. Every change is stored as an event and the
current state is rebuilt by replaying those events.
"""

__version__ = "0.1.0"

# Core aggregate
from statusflow.model import Workflow, WorkflowState, evolve, evolve_
from statusflow.values import StatusCode, Transition, workflow_id_from_code

# Events
from statusflow.events import (
    DefaultStatusSet,
    EventBase,
    StatusAdded,
    StatusRemoved,
    TransitionAdded,
    TransitionChanged,
    TransitionRemoved,
    WorkflowCreated,
    WorkflowEvent,
)

# Errors
from statusflow.errors import (
    AlreadyExists,
    ConcurrencyConflict,
    NotFound,
    StatusflowError,
    ValidationError,
    WorkflowNotFound,
)

# Repository and storage
from statusflow.repo import (
    InMemoryWorkflowRepository,
    RecordedEvent,
    SqlWorkflowRepository,
    WorkflowRepository,
)
from statusflow.postgres import Base, PydanticType, StoredEvent
from statusflow.projection import StatusQuery, WorkflowProjection

# Commands
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
    parse_command,
)
from statusflow.handlers import WorkflowCommandHandler, apply_command

# Configuration
from statusflow.config import StatusflowConfig, load_config, load_statusflow_toml

# Setup
from statusflow.setup import StatusflowResources, create_repository

# Testing
from statusflow.testing import WorkflowTestHarness

__all__ = [
    "__version__",
    # Core
    "Workflow",
    "WorkflowState",
    "evolve",
    "evolve_",
    "StatusCode",
    "Transition",
    "workflow_id_from_code",
    # Events
    "EventBase",
    "WorkflowCreated",
    "StatusAdded",
    "StatusRemoved",
    "TransitionAdded",
    "TransitionChanged",
    "TransitionRemoved",
    "DefaultStatusSet",
    "WorkflowEvent",
    # Errors
    "StatusflowError",
    "ValidationError",
    "AlreadyExists",
    "NotFound",
    "WorkflowNotFound",
    "ConcurrencyConflict",
    # Repository
    "WorkflowRepository",
    "InMemoryWorkflowRepository",
    "SqlWorkflowRepository",
    "RecordedEvent",
    "Base",
    "PydanticType",
    "StoredEvent",
    "WorkflowProjection",
    "StatusQuery",
    # Commands
    "CmdCreateWorkflow",
    "CmdUpdateWorkflow",
    "CmdAddStatus",
    "CmdRemoveStatus",
    "CmdSetDefaultStatus",
    "CmdAddTransition",
    "CmdChangeTransition",
    "CmdRemoveTransition",
    "WorkflowCommand",
    "parse_command",
    "WorkflowCommandHandler",
    "apply_command",
    # Configuration
    "StatusflowConfig",
    "load_config",
    "load_statusflow_toml",
    # Setup
    "create_repository",
    "StatusflowResources",
    # Testing
    "WorkflowTestHarness",
]
