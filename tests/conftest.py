# conftest.py - Shared pytest fixtures for all tests
"""Shared pytest fixtures for the dagctl test suite.

This module provides foundational fixtures used across all test modules:
- A deterministic clock for timestamp assertions
- Status engines wired with a recording observer
- Sample graphs (linear, conditional, diamond) and executions
- Job factories for condition lists

Usage:
    Import fixtures implicitly via pytest's fixture discovery.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
import yaml

from dagctl.core.graph_schema import Edge, Graph, JobRef, Vertex
from dagctl.core.models import (
    ConditionStatus,
    Execution,
    Job,
    JobCondition,
    MatchOperator,
    MatchRule,
    ObjectMeta,
)
from dagctl.core.status import ExecutionStatusEngine, TransitionEvent


class FakeClock:
    """Clock that advances one second per call."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 1, 1, tzinfo=UTC)
        self.calls = 0

    def __call__(self) -> datetime:
        value = self.now
        self.now += timedelta(seconds=1)
        self.calls += 1
        return value


class RecordingObserver:
    """Collects transition events for assertions."""

    def __init__(self):
        self.events: list[TransitionEvent] = []

    def __call__(self, event: TransitionEvent) -> None:
        self.events.append(event)

    def phases(self) -> list[tuple[str, str | None, str | None]]:
        return [(e.key, e.old, e.new) for e in self.events if e.field == "phase"]


def make_vertex(name: str, job_name: str | None = None) -> Vertex:
    return Vertex(name=name, job=JobRef(name=job_name or name))


def make_job(name: str, *conditions: tuple[str, bool, str]) -> Job:
    """Build a Job from (type, status, message) tuples."""
    return Job(
        name=name,
        conditions=[
            JobCondition(
                type=ctype,
                status=ConditionStatus.TRUE if status else ConditionStatus.FALSE,
                message=message,
            )
            for ctype, status, message in conditions
        ],
    )


# =============================================================================
# Engine Fixtures
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def observer() -> RecordingObserver:
    return RecordingObserver()


@pytest.fixture
def engine(clock: FakeClock, observer: RecordingObserver) -> ExecutionStatusEngine:
    """Strict engine with a fake clock and a recording observer."""
    return ExecutionStatusEngine(clock=clock, observers=[observer])


@pytest.fixture
def lenient_engine(clock: FakeClock) -> ExecutionStatusEngine:
    """Engine that only suppresses redundant writes."""
    return ExecutionStatusEngine(clock=clock, observers=[], strict=False)


@pytest.fixture
def execution() -> Execution:
    """Freshly created execution with zero-valued status."""
    return Execution(metadata=ObjectMeta(name="exec-1", namespace="genomics"))


# =============================================================================
# Graph Fixtures
# =============================================================================


@pytest.fixture
def linear_graph() -> Graph:
    """A -> B -> C"""
    return Graph(
        name="linear",
        vertices=[make_vertex("a"), make_vertex("b"), make_vertex("c")],
        edges=[Edge(source="a", target="b"), Edge(source="b", target="c")],
    )


@pytest.fixture
def conditional_graph() -> Graph:
    """A -> B only when A reported quality > 30; A -> C unconditionally."""
    return Graph(
        name="conditional",
        vertices=[make_vertex("a"), make_vertex("b"), make_vertex("c")],
        edges=[
            Edge(
                source="a",
                target="b",
                when=[MatchRule(key="quality", operator=MatchOperator.GREATER_THAN, values=["30"])],
            ),
            Edge(source="a", target="c"),
        ],
    )


@pytest.fixture
def diamond_graph() -> Graph:
    """align -> (call-snp, call-indel) -> merge"""
    return Graph(
        name="diamond",
        vertices=[
            make_vertex("align"),
            make_vertex("call-snp"),
            make_vertex("call-indel"),
            make_vertex("merge"),
        ],
        edges=[
            Edge(source="align", target="call-snp"),
            Edge(source="align", target="call-indel"),
            Edge(source="call-snp", target="merge"),
            Edge(source="call-indel", target="merge"),
        ],
    )


# =============================================================================
# Snapshot File Fixtures
# =============================================================================


@pytest.fixture
def snapshot_dir(tmp_path: Path, conditional_graph: Graph) -> Path:
    """Directory with graph.yaml, execution.yaml and jobs.yaml.

    Job ``a`` completed, the others have not been observed yet.
    """
    (tmp_path / "graph.yaml").write_text(
        yaml.safe_dump(conditional_graph.model_dump(mode="json"), sort_keys=False)
    )
    (tmp_path / "execution.yaml").write_text(
        yaml.safe_dump({"metadata": {"name": "exec-1", "namespace": "genomics"}})
    )
    (tmp_path / "jobs.yaml").write_text(
        yaml.safe_dump(
            {
                "jobs": [
                    {
                        "name": "a",
                        "conditions": [{"type": "Complete", "status": "True", "message": "done"}],
                    }
                ]
            }
        )
    )
    return tmp_path
