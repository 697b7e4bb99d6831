"""Exception hierarchy for the status core."""

from __future__ import annotations


class StatusError(Exception):
    """Base error raised by the status core."""

    pass


class VertexNotInitializedError(StatusError):
    """A phase transition was requested for a vertex with no status record.

    Indicates a bug in graph construction or in the calling reconcile loop;
    callers should abort the current reconcile rather than retry it.
    """

    def __init__(self, vertex_name: str, execution_key: str = ""):
        self.vertex_name = vertex_name
        self.execution_key = execution_key
        where = f" in execution {execution_key}" if execution_key else ""
        super().__init__(f"No status for vertex '{vertex_name}'{where}; initialize it first")


class IllegalTransitionError(StatusError):
    """Requested phase would move an entity backwards through the lattice."""

    def __init__(self, entity: str, current: str | None, requested: str):
        self.entity = entity
        self.current = current
        self.requested = requested
        super().__init__(f"{entity}: illegal phase transition {current} -> {requested}")


class KeyDerivationError(StatusError):
    """Cannot derive a store key for an object."""

    pass


class ConfigError(StatusError):
    """Invalid controller configuration."""

    pass


class SnapshotError(StatusError):
    """Snapshot file is missing, unreadable or does not match the model."""

    pass
