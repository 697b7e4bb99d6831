"""Data models for executions, vertex statuses, match rules and jobs.

Uses Pydantic so snapshots round-trip through YAML/JSON unchanged.
"""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field, field_validator


class VertexPhase(str, Enum):
    """Lifecycle phase shared by executions and vertices."""

    PENDING = "Pending"
    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"
    ERROR = "Error"


TERMINAL_PHASES = frozenset({VertexPhase.SUCCEEDED, VertexPhase.FAILED, VertexPhase.ERROR})


class VertexType(str, Enum):
    """Kind of work backing a vertex."""

    JOB = "Job"


class MatchOperator(str, Enum):
    """Operators understood by the match rule evaluator."""

    EQUAL = "="
    DOUBLE_EQUAL = "=="
    IN = "In"
    NOT_EQUAL = "!="
    NOT_IN = "NotIn"
    EXISTS = "Exists"
    DOES_NOT_EXIST = "DoesNotExist"
    GREATER_THAN = "Gt"
    LESS_THAN = "Lt"


class JobConditionType(str, Enum):
    """Condition types reported by a batch job."""

    COMPLETE = "Complete"
    FAILED = "Failed"


class ConditionStatus(str, Enum):
    """Tri-state status of a job condition."""

    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


# --- Match Rules ---


class MatchRule(BaseModel):
    """A single conditional predicate gating an edge.

    ``operator`` accepts any string so that definitions written against a
    newer operator set still load; unknown operators never match.
    """

    key: str
    operator: MatchOperator | str
    values: list[str] = Field(default_factory=list)


# --- Jobs ---


class JobCondition(BaseModel):
    """A reported fact about a job's outcome."""

    type: JobConditionType | str
    status: ConditionStatus = ConditionStatus.UNKNOWN
    message: str = ""

    @field_validator("status", mode="before")
    @classmethod
    def coerce_bool_status(cls, v):
        """Accept plain booleans (true/false) alongside True/False/Unknown."""
        if isinstance(v, bool):
            return ConditionStatus.TRUE if v else ConditionStatus.FALSE
        return v


class Job(BaseModel):
    """Observed state of the unit of work backing a vertex."""

    name: str
    conditions: list[JobCondition] = Field(default_factory=list)


# --- Execution State ---


class VertexStatus(BaseModel):
    """Status of one vertex within an execution."""

    id: str
    name: str
    phase: VertexPhase = VertexPhase.PENDING
    message: str = ""
    started_at: datetime | None = None
    finished_at: datetime | None = None
    children: list[str] = Field(default_factory=list)
    type: VertexType = VertexType.JOB


class ExecutionStatus(BaseModel):
    """Overall status of an execution.

    ``phase`` and ``vertices`` stay ``None`` on a freshly created execution
    until the status engine touches it.
    """

    phase: VertexPhase | None = None
    message: str = ""
    started_at: datetime | None = None
    finished_at: datetime | None = None
    vertices: dict[str, VertexStatus] | None = None


class ObjectMeta(BaseModel):
    """Identity of a stored object."""

    name: str = ""
    namespace: str = ""
    # Opaque to this package; the store uses it for optimistic concurrency.
    resource_version: str = ""


class Execution(BaseModel):
    """One run of a workflow graph."""

    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    status: ExecutionStatus = Field(default_factory=ExecutionStatus)
