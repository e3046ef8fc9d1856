class StatusflowError(Exception):
    """Base class for errors raised by statusflow."""


class ValidationError(StatusflowError):
    """Malformed input, e.g. duplicate status codes at creation."""


class AlreadyExists(StatusflowError):
    pass


class NotFound(StatusflowError):
    pass


class WorkflowNotFound(NotFound):
    def __init__(self, workflow_id: str, *args: object) -> None:
        self.workflow_id = workflow_id
        super().__init__(f"Workflow {workflow_id} could not be found in the repo", *args)


class ConcurrencyConflict(StatusflowError):
    """The workflow's event stream advanced between load and save."""

    def __init__(self, workflow_id: str, expected_version: int, *args: object) -> None:
        self.workflow_id = workflow_id
        self.expected_version = expected_version
        super().__init__(
            f"Workflow {workflow_id} changed since version {expected_version}", *args
        )
