"""Execution and vertex status state machine.

Executions and their vertices share one phase lattice:

    Pending -> Running -> Succeeded | Failed | Error   (terminal)

Every operation here is a synchronous, in-memory mutation of the Execution
passed in. The surrounding reconcile loop owns fetching and persisting it and
may re-apply the same observations any number of times, so:

- phase and message are only written when they differ,
- started_at / finished_at are stamped once and never overwritten,
- a transition is checked for legality before any field is written.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime

from dagctl.core.errors import IllegalTransitionError, VertexNotInitializedError
from dagctl.core.graph_schema import Edge, Graph, Vertex
from dagctl.core.jobs import job_outcome
from dagctl.core.keys import VertexIdFunc, identity_vertex_id, key_of
from dagctl.core.models import (
    TERMINAL_PHASES,
    Execution,
    Job,
    JobConditionType,
    VertexPhase,
    VertexStatus,
    VertexType,
)
from dagctl.core.rules import rules_satisfied

logger = logging.getLogger(__name__)

_ALL_PHASES = frozenset(VertexPhase)

# Requested phases accepted from each current phase (None = never set).
ALLOWED_TRANSITIONS: dict[VertexPhase | None, frozenset[VertexPhase]] = {
    None: _ALL_PHASES,
    VertexPhase.PENDING: _ALL_PHASES,
    VertexPhase.RUNNING: frozenset({VertexPhase.RUNNING}) | TERMINAL_PHASES,
    VertexPhase.SUCCEEDED: frozenset({VertexPhase.SUCCEEDED}),
    VertexPhase.FAILED: frozenset({VertexPhase.FAILED}),
    VertexPhase.ERROR: frozenset({VertexPhase.ERROR}),
}


def utcnow() -> datetime:
    return datetime.now(UTC)


def is_completed_phase(phase: VertexPhase | None) -> bool:
    """True for Succeeded, Failed and Error."""
    return phase in TERMINAL_PHASES


def is_transition_allowed(current: VertexPhase | None, requested: VertexPhase) -> bool:
    return requested in ALLOWED_TRANSITIONS[current]


# --- Transition Observers ---


@dataclass(frozen=True)
class TransitionEvent:
    """A field change applied by the status engine."""

    entity: str  # "execution" or "vertex"
    key: str  # Execution key, or vertex name
    field: str  # "phase" or "message"
    old: str | None
    new: str | None


TransitionObserver = Callable[[TransitionEvent], None]


def log_transition(event: TransitionEvent) -> None:
    """Default observer: phase changes at INFO, message changes at DEBUG."""
    if event.field == "phase":
        logger.info(f"{event.entity} {event.key} phase {event.old} -> {event.new}")
    else:
        logger.debug(f"{event.entity} {event.key} message: {event.new!r}")


def _phase_value(phase: VertexPhase | None) -> str | None:
    return phase.value if phase is not None else None


def _execution_label(execution: Execution) -> str:
    return key_of(execution) if execution.metadata.name else "<unnamed>"


# --- Vertex Status ---


class VertexStatusStore:
    """Per-vertex status records of one execution's ``status.vertices`` map.

    The store holds no execution state of its own; every method takes the
    execution it operates on.
    """

    def __init__(
        self,
        vertex_id: VertexIdFunc = identity_vertex_id,
        clock: Callable[[], datetime] = utcnow,
        observers: Iterable[TransitionObserver] | None = None,
        strict: bool = True,
    ):
        self.vertex_id = vertex_id
        self.clock = clock
        self.observers = list(observers) if observers is not None else [log_transition]
        self.strict = strict

    def _notify(self, events: list[TransitionEvent]) -> None:
        for event in events:
            for observer in self.observers:
                observer(event)

    def initialize(
        self,
        vertex_name: str,
        phase: VertexPhase,
        message: str,
        children: Iterable[Vertex],
        vertex_type: VertexType = VertexType.JOB,
    ) -> VertexStatus:
        """Build a new status record for a vertex.

        Child IDs are derived from each child's backing job name. The record
        is not inserted; see ``insert``.
        """
        logger.debug(f"Initial {vertex_name} status, phase: {phase.value}")
        return VertexStatus(
            id=self.vertex_id(vertex_name),
            name=vertex_name,
            phase=phase,
            message=message,
            started_at=self.clock(),
            children=[self.vertex_id(child.job.name) for child in children],
            type=vertex_type,
        )

    def insert(self, execution: Execution, status: VertexStatus) -> None:
        if execution.status.vertices is None:
            execution.status.vertices = {}
        execution.status.vertices[status.id] = status

    def lookup(self, execution: Execution, vertex_name: str) -> VertexStatus | None:
        """Return the live status record for ``vertex_name`` or None."""
        if execution.status.vertices is None:
            return None
        return execution.status.vertices.get(self.vertex_id(vertex_name))

    def ensure_initialized(self, execution: Execution, graph: Graph) -> list[str]:
        """Insert Pending records for graph vertices that have none.

        Returns:
            Names of the vertices that were initialized by this call
        """
        created = []
        for vertex in graph.vertices:
            if self.lookup(execution, vertex.name) is not None:
                continue
            status = self.initialize(
                vertex.name,
                VertexPhase.PENDING,
                "",
                graph.children(vertex.name),
                vertex.type,
            )
            self.insert(execution, status)
            created.append(vertex.name)
        return created

    def transition_phase(
        self,
        execution: Execution,
        vertex_name: str,
        phase: VertexPhase,
        message: str,
    ) -> VertexStatus:
        """Move a vertex to ``phase`` with ``message``.

        Raises:
            VertexNotInitializedError: If the vertex has no status record
            IllegalTransitionError: If strict and the move goes backwards
        """
        status = self.lookup(execution, vertex_name)
        if status is None:
            raise VertexNotInitializedError(vertex_name, _execution_label(execution))

        if self.strict and not is_transition_allowed(status.phase, phase):
            raise IllegalTransitionError(
                f"vertex {vertex_name}", _phase_value(status.phase), phase.value
            )

        events = []
        if status.phase != phase:
            events.append(
                TransitionEvent("vertex", vertex_name, "phase", status.phase.value, phase.value)
            )
            status.phase = phase

        if status.message != message:
            events.append(TransitionEvent("vertex", vertex_name, "message", status.message, message))
            status.message = message

        if status.phase == VertexPhase.SUCCEEDED and status.finished_at is None:
            status.finished_at = self.clock()

        self._notify(events)
        return status

    def mark_succeeded(self, execution: Execution, vertex_name: str, message: str) -> VertexStatus:
        return self.transition_phase(execution, vertex_name, VertexPhase.SUCCEEDED, message)

    def mark_failed(self, execution: Execution, vertex_name: str, message: str) -> VertexStatus:
        return self.transition_phase(execution, vertex_name, VertexPhase.FAILED, message)

    def mark_error(self, execution: Execution, vertex_name: str, err: BaseException) -> VertexStatus:
        return self.transition_phase(execution, vertex_name, VertexPhase.ERROR, str(err))

    def mark_running(self, execution: Execution, vertex_name: str, message: str) -> VertexStatus:
        return self.transition_phase(execution, vertex_name, VertexPhase.RUNNING, message)

    @staticmethod
    def is_completed(status: VertexStatus) -> bool:
        return is_completed_phase(status.phase)


# --- Execution Status ---


class ExecutionStatusEngine:
    """Drive execution and vertex phases from job outcomes and match rules.

    USAGE (one reconcile pass):
        engine = ExecutionStatusEngine()
        engine.sync(execution, graph, jobs, context)
        store.update(execution)  # caller persists, retrying on conflicts

    The lower-level operations (transition_phase, apply_job_outcome,
    recompute_phase) are available for loops that interleave their own work.
    """

    def __init__(
        self,
        vertex_id: VertexIdFunc = identity_vertex_id,
        clock: Callable[[], datetime] = utcnow,
        observers: Iterable[TransitionObserver] | None = None,
        strict: bool = True,
    ):
        self.clock = clock
        self.strict = strict
        self.vertices = VertexStatusStore(
            vertex_id=vertex_id,
            clock=clock,
            observers=observers,
            strict=strict,
        )

    @property
    def observers(self) -> list[TransitionObserver]:
        """Observers shared with the vertex store."""
        return self.vertices.observers

    def _notify(self, events: list[TransitionEvent]) -> None:
        self.vertices._notify(events)

    @staticmethod
    def is_completed(execution: Execution) -> bool:
        """True once the execution reached Succeeded, Failed or Error."""
        return is_completed_phase(execution.status.phase)

    def initialize(self, execution: Execution) -> Execution:
        """Give a freshly created execution its Pending phase and vertex map."""
        if execution.status.phase is None:
            execution.status.phase = VertexPhase.PENDING
        if execution.status.vertices is None:
            execution.status.vertices = {}
        return execution

    def transition_phase(self, execution: Execution, phase: VertexPhase, message: str) -> Execution:
        """Move the execution to ``phase`` with ``message``.

        Stamps started_at on first touch (whatever the phase) and finished_at
        on first completion, and allocates the vertex map if missing.

        Raises:
            IllegalTransitionError: If strict and the move goes backwards
        """
        status = execution.status
        label = _execution_label(execution)

        if self.strict and not is_transition_allowed(status.phase, phase):
            raise IllegalTransitionError(
                f"execution {label}", _phase_value(status.phase), phase.value
            )

        events = []
        if status.phase != phase:
            events.append(
                TransitionEvent("execution", label, "phase", _phase_value(status.phase), phase.value)
            )
            status.phase = phase

        if status.started_at is None:
            status.started_at = self.clock()

        if status.message != message:
            events.append(TransitionEvent("execution", label, "message", status.message, message))
            status.message = message

        if self.is_completed(execution) and status.finished_at is None:
            status.finished_at = self.clock()

        if status.vertices is None:
            status.vertices = {}

        self._notify(events)
        return execution

    def mark_succeeded(self, execution: Execution, message: str) -> Execution:
        return self.transition_phase(execution, VertexPhase.SUCCEEDED, message)

    def mark_failed(self, execution: Execution, message: str) -> Execution:
        return self.transition_phase(execution, VertexPhase.FAILED, message)

    def mark_error(self, execution: Execution, err: BaseException) -> Execution:
        return self.transition_phase(execution, VertexPhase.ERROR, str(err))

    def mark_running(self, execution: Execution, message: str) -> Execution:
        return self.transition_phase(execution, VertexPhase.RUNNING, message)

    # ========== Job Outcomes ==========

    def apply_job_outcome(self, execution: Execution, vertex_name: str, job: Job) -> VertexPhase:
        """Fold a job's conditions into its vertex's phase.

        Complete -> Succeeded, Failed -> Failed, unfinished -> Running.
        Vertices already in a terminal phase are left untouched.

        Raises:
            VertexNotInitializedError: If the vertex has no status record
        """
        status = self.vertices.lookup(execution, vertex_name)
        if status is None:
            raise VertexNotInitializedError(vertex_name, _execution_label(execution))
        if self.vertices.is_completed(status):
            return status.phase

        kind, message = job_outcome(job)
        if kind == JobConditionType.COMPLETE:
            self.vertices.mark_succeeded(execution, vertex_name, message)
        elif kind == JobConditionType.FAILED:
            self.vertices.mark_failed(execution, vertex_name, message)
        elif status.phase == VertexPhase.PENDING:
            self.vertices.mark_running(execution, vertex_name, status.message)
        return status.phase

    # ========== Conditional Routing ==========

    def _phase_of(self, execution: Execution, vertex_name: str) -> VertexPhase:
        status = self.vertices.lookup(execution, vertex_name)
        return status.phase if status is not None else VertexPhase.PENDING

    def _edge_open(self, execution: Execution, edge: Edge, context: Mapping[str, str]) -> bool:
        return self._phase_of(execution, edge.source) == VertexPhase.SUCCEEDED and rules_satisfied(
            edge.when, context
        )

    def eligible_vertices(
        self,
        execution: Execution,
        graph: Graph,
        context: Mapping[str, str] | None = None,
    ) -> list[str]:
        """Pending vertices whose incoming edges are all open.

        An edge is open when its parent Succeeded and all its match rules
        hold against ``context``. Vertices without a status record count as
        Pending.
        """
        context = context or {}
        return [
            vertex.name
            for vertex in graph.vertices
            if self._phase_of(execution, vertex.name) == VertexPhase.PENDING
            and all(self._edge_open(execution, e, context) for e in graph.incoming_edges(vertex.name))
        ]

    def unreachable_vertices(
        self,
        execution: Execution,
        graph: Graph,
        context: Mapping[str, str] | None = None,
    ) -> list[str]:
        """Pending vertices that can no longer become eligible.

        A vertex is unreachable when one of its incoming edges is dead: the
        parent ended in Failed/Error, the parent Succeeded but the edge's
        rules do not hold, or the parent is itself unreachable.
        """
        context = context or {}
        unreachable: set[str] = set()
        for name in graph.topological_order():
            if self._phase_of(execution, name) != VertexPhase.PENDING:
                continue
            for edge in graph.incoming_edges(name):
                parent_phase = self._phase_of(execution, edge.source)
                if (
                    edge.source in unreachable
                    or parent_phase in (VertexPhase.FAILED, VertexPhase.ERROR)
                    or (
                        parent_phase == VertexPhase.SUCCEEDED
                        and not rules_satisfied(edge.when, context)
                    )
                ):
                    unreachable.add(name)
                    break
        return [v.name for v in graph.vertices if v.name in unreachable]

    def recompute_phase(
        self,
        execution: Execution,
        graph: Graph,
        context: Mapping[str, str] | None = None,
    ) -> VertexPhase:
        """Derive the execution phase from its vertices.

        Any vertex in Error -> Error; any in Failed -> Failed; every vertex
        Succeeded or unreachable -> Succeeded; otherwise Running. A completed
        execution is left as is.

        Unreachable vertices are not written: they stay Pending after the
        execution Succeeds, so ``VertexStatusStore.is_completed`` is False
        for them. Loops that poll per vertex should stop once the execution
        itself is completed, or consult ``unreachable_vertices``.
        """
        if self.is_completed(execution):
            return execution.status.phase

        for phase in (VertexPhase.ERROR, VertexPhase.FAILED):
            for vertex in graph.vertices:
                if self._phase_of(execution, vertex.name) == phase:
                    status = self.vertices.lookup(execution, vertex.name)
                    message = f"Vertex '{vertex.name}' {phase.value.lower()}: {status.message}"
                    self.transition_phase(execution, phase, message)
                    return phase

        unreachable = set(self.unreachable_vertices(execution, graph, context))
        settled = all(
            v.name in unreachable or self._phase_of(execution, v.name) == VertexPhase.SUCCEEDED
            for v in graph.vertices
        )
        if settled:
            message = "All vertices succeeded"
            if unreachable:
                message = f"All reachable vertices succeeded ({len(unreachable)} skipped)"
            self.mark_succeeded(execution, message)
            return VertexPhase.SUCCEEDED

        self.mark_running(execution, execution.status.message)
        return VertexPhase.RUNNING

    def sync(
        self,
        execution: Execution,
        graph: Graph,
        jobs: Mapping[str, Job] | Iterable[Job] = (),
        context: Mapping[str, str] | None = None,
    ) -> Execution:
        """Run one reconcile pass over ``execution``.

        Initializes missing status records, folds in the observed jobs
        (matched to vertices by backing job name) and recomputes the overall
        phase. Completed executions are returned unchanged.
        """
        if self.is_completed(execution):
            return execution

        jobs_by_name = dict(jobs) if isinstance(jobs, Mapping) else {j.name: j for j in jobs}

        self.initialize(execution)
        created = self.vertices.ensure_initialized(execution, graph)
        if created:
            logger.debug(f"Initialized {len(created)} vertices for {_execution_label(execution)}")

        for vertex in graph.vertices:
            job = jobs_by_name.get(vertex.job.name)
            if job is not None:
                self.apply_job_outcome(execution, vertex.name, job)

        self.recompute_phase(execution, graph, context)
        return execution
