"""Tests for the execution/vertex status state machine.

Covers:
- Vertex status initialization, lookup and insertion
- Monotone timestamps and idempotent phase writes
- Strict transition table vs. lenient mode
- Typed errors for uninitialized vertices
- Transition observers
"""

from __future__ import annotations

import logging

import pytest

from dagctl.core.errors import IllegalTransitionError, VertexNotInitializedError
from dagctl.core.graph_schema import JobRef, Vertex
from dagctl.core.keys import fnv32a_vertex_id
from dagctl.core.models import Execution, VertexPhase, VertexType
from dagctl.core.status import (
    ALLOWED_TRANSITIONS,
    ExecutionStatusEngine,
    TransitionEvent,
    VertexStatusStore,
    is_completed_phase,
    is_transition_allowed,
    log_transition,
)


def add_vertex(engine: ExecutionStatusEngine, execution: Execution, name: str, phase=VertexPhase.PENDING):
    status = engine.vertices.initialize(name, phase, "", [])
    engine.vertices.insert(execution, status)
    return status


# =============================================================================
# Terminal Set
# =============================================================================


class TestTerminalSet:
    """IsCompleted is true exactly for Succeeded, Failed and Error."""

    @pytest.mark.parametrize(
        "phase,expected",
        [
            (VertexPhase.SUCCEEDED, True),
            (VertexPhase.FAILED, True),
            (VertexPhase.ERROR, True),
            (VertexPhase.PENDING, False),
            (VertexPhase.RUNNING, False),
            (None, False),
        ],
    )
    def test_is_completed(self, phase, expected):
        execution = Execution()
        execution.status.phase = phase

        assert is_completed_phase(phase) is expected
        assert ExecutionStatusEngine.is_completed(execution) is expected


# =============================================================================
# Vertex Status Store
# =============================================================================


class TestVertexInitialize:
    """Tests for building vertex status records."""

    def test_initialize_fields(self, engine, clock):
        children = [Vertex(name="b", job=JobRef(name="b-job")), Vertex(name="c", job=JobRef(name="c"))]

        status = engine.vertices.initialize("a", VertexPhase.PENDING, "created", children)

        assert status.id == "a"
        assert status.name == "a"
        assert status.phase == VertexPhase.PENDING
        assert status.message == "created"
        assert status.started_at is not None
        assert status.finished_at is None
        # Children come from the backing job names
        assert status.children == ["b-job", "c"]
        assert status.type == VertexType.JOB

    def test_initialize_does_not_insert(self, engine, execution):
        engine.vertices.initialize("a", VertexPhase.PENDING, "", [])
        assert engine.vertices.lookup(execution, "a") is None

    def test_insert_allocates_map(self, engine, execution):
        assert execution.status.vertices is None
        add_vertex(engine, execution, "a")
        assert list(execution.status.vertices) == ["a"]

    def test_hashed_ids(self, clock):
        store = VertexStatusStore(vertex_id=fnv32a_vertex_id, clock=clock, observers=[])
        execution = Execution()
        status = store.initialize("a", VertexPhase.PENDING, "", [Vertex(name="b", job=JobRef(name="b"))])
        store.insert(execution, status)

        assert status.id == fnv32a_vertex_id("a")
        assert status.children == [fnv32a_vertex_id("b")]
        assert store.lookup(execution, "a") is status

    def test_ensure_initialized_is_idempotent(self, engine, execution, linear_graph):
        created = engine.vertices.ensure_initialized(execution, linear_graph)
        assert created == ["a", "b", "c"]
        assert execution.status.vertices["a"].children == ["b"]
        assert execution.status.vertices["c"].children == []

        engine.vertices.mark_running(execution, "a", "")
        assert engine.vertices.ensure_initialized(execution, linear_graph) == []
        assert execution.status.vertices["a"].phase == VertexPhase.RUNNING


class TestVertexLookup:
    """Tests for lookup of vertex statuses."""

    def test_lookup_missing_returns_none(self, engine, execution):
        assert engine.vertices.lookup(execution, "nope") is None
        execution.status.vertices = {}
        assert engine.vertices.lookup(execution, "nope") is None

    def test_lookup_returns_live_record(self, engine, execution):
        status = add_vertex(engine, execution, "a")
        assert engine.vertices.lookup(execution, "a") is status


class TestVertexTransition:
    """Tests for vertex phase transitions."""

    def test_uninitialized_vertex_raises_typed_error(self, engine, execution):
        with pytest.raises(VertexNotInitializedError) as exc_info:
            engine.vertices.mark_succeeded(execution, "ghost", "done")

        assert exc_info.value.vertex_name == "ghost"
        assert exc_info.value.execution_key == "genomics/exec-1"

    def test_succeeded_stamps_finished_at_once(self, engine, execution, clock):
        add_vertex(engine, execution, "a")

        status = engine.vertices.mark_succeeded(execution, "a", "done")
        finished = status.finished_at
        assert status.phase == VertexPhase.SUCCEEDED
        assert finished is not None

        engine.vertices.mark_succeeded(execution, "a", "done again")
        assert status.finished_at == finished
        assert status.message == "done again"

    def test_failed_does_not_stamp_finished_at(self, engine, execution):
        add_vertex(engine, execution, "a")
        status = engine.vertices.mark_failed(execution, "a", "exit 137")

        assert status.phase == VertexPhase.FAILED
        assert status.finished_at is None

    def test_mark_error_uses_exception_text(self, engine, execution):
        add_vertex(engine, execution, "a")
        status = engine.vertices.mark_error(execution, "a", RuntimeError("image pull failed"))

        assert status.phase == VertexPhase.ERROR
        assert status.message == "image pull failed"

    def test_idempotent_write(self, engine, execution):
        add_vertex(engine, execution, "a")
        engine.vertices.mark_running(execution, "a", "started")
        once = engine.vertices.lookup(execution, "a").model_copy(deep=True)

        engine.vertices.mark_running(execution, "a", "started")
        assert engine.vertices.lookup(execution, "a") == once

    def test_backward_transition_rejected_without_writes(self, engine, execution):
        add_vertex(engine, execution, "a")
        engine.vertices.mark_succeeded(execution, "a", "done")
        before = engine.vertices.lookup(execution, "a").model_copy(deep=True)

        with pytest.raises(IllegalTransitionError) as exc_info:
            engine.vertices.mark_running(execution, "a", "restarted")

        assert exc_info.value.current == "Succeeded"
        assert exc_info.value.requested == "Running"
        assert engine.vertices.lookup(execution, "a") == before

    def test_lenient_store_allows_backward_moves(self, lenient_engine):
        execution = Execution()
        add_vertex(lenient_engine, execution, "a")
        lenient_engine.vertices.mark_succeeded(execution, "a", "done")

        status = lenient_engine.vertices.mark_running(execution, "a", "again")
        assert status.phase == VertexPhase.RUNNING
        # finished_at is never cleared
        assert status.finished_at is not None

    def test_is_completed(self, engine, execution):
        status = add_vertex(engine, execution, "a")
        assert VertexStatusStore.is_completed(status) is False
        engine.vertices.mark_failed(execution, "a", "")
        assert VertexStatusStore.is_completed(status) is True


# =============================================================================
# Execution Transitions
# =============================================================================


class TestExecutionTransition:
    """Tests for execution-level phase transitions."""

    def test_initialize(self, engine, execution):
        engine.initialize(execution)

        assert execution.status.phase == VertexPhase.PENDING
        assert execution.status.vertices == {}
        assert execution.status.started_at is None

    def test_running_stamps_started_at(self, engine, execution):
        engine.mark_running(execution, "")

        assert execution.status.phase == VertexPhase.RUNNING
        assert execution.status.started_at is not None
        assert execution.status.finished_at is None
        assert execution.status.vertices == {}

    def test_started_at_set_even_for_terminal_first_touch(self, engine, execution):
        engine.mark_failed(execution, "template error")

        assert execution.status.started_at is not None
        assert execution.status.finished_at is not None

    def test_vertices_preserved(self, engine, execution):
        add_vertex(engine, execution, "a")
        engine.mark_running(execution, "")
        assert list(execution.status.vertices) == ["a"]

    def test_monotone_timestamps(self, engine, execution):
        engine.mark_running(execution, "go")
        started = execution.status.started_at
        engine.mark_succeeded(execution, "ok")
        finished = execution.status.finished_at

        for message in ("ok", "different", ""):
            engine.mark_succeeded(execution, message)
            assert execution.status.started_at == started
            assert execution.status.finished_at == finished

    def test_idempotent_phase_write(self, engine, execution):
        engine.mark_succeeded(execution, "done")
        once = execution.model_copy(deep=True)

        engine.mark_succeeded(execution, "done")
        assert execution == once

    def test_backward_transition_rejected(self, engine, execution):
        engine.mark_error(execution, ValueError("bad graph"))
        before = execution.model_copy(deep=True)

        with pytest.raises(IllegalTransitionError):
            engine.mark_running(execution, "")
        assert execution == before

    def test_terminal_to_other_terminal_rejected(self, engine, execution):
        engine.mark_failed(execution, "x")
        with pytest.raises(IllegalTransitionError):
            engine.mark_succeeded(execution, "x")

    def test_lenient_engine_suppresses_only_redundant_writes(self, lenient_engine, execution):
        lenient_engine.mark_succeeded(execution, "done")
        finished = execution.status.finished_at

        lenient_engine.mark_running(execution, "again")
        assert execution.status.phase == VertexPhase.RUNNING
        assert execution.status.finished_at == finished


class TestTransitionTable:
    """Tests for the forward-only lattice."""

    def test_unset_may_move_anywhere(self):
        for phase in VertexPhase:
            assert is_transition_allowed(None, phase)

    def test_running_cannot_return_to_pending(self):
        assert not is_transition_allowed(VertexPhase.RUNNING, VertexPhase.PENDING)

    def test_terminal_phases_only_repeat(self):
        for terminal in (VertexPhase.SUCCEEDED, VertexPhase.FAILED, VertexPhase.ERROR):
            assert ALLOWED_TRANSITIONS[terminal] == frozenset({terminal})


# =============================================================================
# Observers
# =============================================================================


class TestObservers:
    """Tests for transition notifications."""

    def test_phase_and_message_events(self, engine, execution, observer):
        engine.mark_running(execution, "started")
        engine.mark_running(execution, "started")

        assert observer.events == [
            TransitionEvent("execution", "genomics/exec-1", "phase", None, "Running"),
            TransitionEvent("execution", "genomics/exec-1", "message", "", "started"),
        ]

    def test_vertex_events(self, engine, execution, observer):
        add_vertex(engine, execution, "a")
        engine.vertices.mark_succeeded(execution, "a", "")

        assert observer.phases() == [("a", "Pending", "Succeeded")]

    def test_no_events_for_rejected_transition(self, engine, execution, observer):
        engine.mark_succeeded(execution, "")
        observer.events.clear()

        with pytest.raises(IllegalTransitionError):
            engine.mark_failed(execution, "late failure")
        assert observer.events == []

    def test_engine_and_store_share_observers(self, clock, observer):
        engine = ExecutionStatusEngine(clock=clock, observers=[observer])
        assert engine.observers is engine.vertices.observers

        engine.observers.append(log_transition)
        assert engine.vertices.observers == [observer, log_transition]

    def test_default_observer_logs(self, caplog, clock):
        engine = ExecutionStatusEngine(clock=clock)
        assert engine.observers == [log_transition]

        with caplog.at_level(logging.INFO, logger="dagctl.core.status"):
            engine.mark_running(Execution(), "")
        assert "execution <unnamed> phase None -> Running" in caplog.text
