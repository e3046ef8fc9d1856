"""Value objects for status workflows."""

import uuid
from typing import Any

from pydantic import BaseModel, ConfigDict, RootModel, field_validator

# Namespace for deriving workflow ids from their codes. Changing it changes
# every workflow id, so it is fixed for the lifetime of the stored data.
WORKFLOW_NAMESPACE = uuid.UUID("3c5a1b9e-7d2f-5e48-9a06-1f4b2c8d7e31")


def workflow_id_from_code(code: str) -> str:
    """Return the workflow id for ``code``. Same code, same id."""
    return str(uuid.uuid5(WORKFLOW_NAMESPACE, code))


class StatusCode(RootModel[str]):
    """Opaque identifier of a status, compared by value."""

    model_config = ConfigDict(frozen=True)

    @field_validator("root")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("status code must be a non-empty string")
        return v

    @property
    def value(self) -> str:
        return self.root

    def __str__(self) -> str:
        return self.root

    def __repr__(self) -> str:
        return f"StatusCode({self.root!r})"


def as_status_code(code: "StatusCode | str") -> StatusCode:
    if isinstance(code, StatusCode):
        return code
    return StatusCode(code)


class Transition(BaseModel):
    """A permitted directed edge between two statuses.

    Lookup identity is the ``(source, destination)`` pair; the remaining
    fields are display metadata.
    """

    model_config = ConfigDict(frozen=True)

    source: StatusCode
    destination: StatusCode
    label: str | None = None
    description: str | None = None
    role_ids: tuple[str, ...] = ()

    @field_validator("source", "destination", mode="before")
    @classmethod
    def _coerce_code(cls, v: Any) -> Any:
        if isinstance(v, str):
            return StatusCode(v)
        return v

    @property
    def key(self) -> tuple[StatusCode, StatusCode]:
        return (self.source, self.destination)

    def matches(self, source: StatusCode, destination: StatusCode) -> bool:
        return self.source == source and self.destination == destination

    def with_metadata(self, **changes: Any) -> "Transition":
        """Return a copy with the given metadata fields replaced."""
        unknown = set(changes) - {"label", "description", "role_ids"}
        if unknown:
            raise TypeError(f"Not transition metadata: {', '.join(sorted(unknown))}")
        return type(self)(**{**dict(self), **changes})

    def __str__(self) -> str:
        return f"{self.source}->{self.destination}"
