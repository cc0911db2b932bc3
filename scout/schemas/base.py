"""
Common enums and the API base model.

Status vocabularies for candidates, runs, tasks and alerts live here so the
store, the services and the HTTP layer share one definition.
"""

from enum import Enum

from pydantic import BaseModel
from pydantic.alias_generators import to_camel


class CandidateStatus(str, Enum):
    """Candidate lifecycle states."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"


class RunStatus(str, Enum):
    """Run roll-up states, in lattice order."""
    QUEUED = "queued"
    RUNNING = "running"
    RUNNING_WITH_ERRORS = "running_with_errors"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_RUN_STATUSES

    @property
    def rank(self) -> int:
        # Terminal states share the top rank; none may follow another.
        return min(_RUN_ORDER.index(self), 3)


_RUN_ORDER = list(RunStatus)

TERMINAL_RUN_STATUSES = frozenset({
    RunStatus.COMPLETED, RunStatus.COMPLETED_WITH_ERRORS, RunStatus.FAILED,
})


class TaskStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class TaskSource(str, Enum):
    """Where a task's keyword came from."""
    ROOT = "root"
    RISING = "rising"


class ClassifierLabel(str, Enum):
    """Labels the candidate judge may return."""
    TOOL = "tool"
    NON_TOOL = "non_tool"
    UNCLEAR = "unclear"


class AlertPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class CamelModel(BaseModel):
    """Base for API-facing models: snake_case in Python, camelCase on the wire."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        use_enum_values = True
