"""Core modules for the execution status controller."""

from dagctl.core.errors import (
    IllegalTransitionError,
    StatusError,
    VertexNotInitializedError,
)
from dagctl.core.graph_schema import Edge, Graph, JobRef, Vertex
from dagctl.core.jobs import is_job_finished, job_outcome
from dagctl.core.models import (
    Execution,
    Job,
    JobCondition,
    MatchOperator,
    MatchRule,
    VertexPhase,
    VertexStatus,
)
from dagctl.core.rules import rule_satisfied, rules_satisfied
from dagctl.core.status import ExecutionStatusEngine, TransitionEvent, VertexStatusStore

__all__ = [
    "Edge",
    "Execution",
    "ExecutionStatusEngine",
    "Graph",
    "IllegalTransitionError",
    "Job",
    "JobCondition",
    "JobRef",
    "MatchOperator",
    "MatchRule",
    "StatusError",
    "TransitionEvent",
    "Vertex",
    "VertexNotInitializedError",
    "VertexPhase",
    "VertexStatus",
    "VertexStatusStore",
    "is_job_finished",
    "job_outcome",
    "rule_satisfied",
    "rules_satisfied",
]
