"""Identifier and store-key helpers.

Vertex IDs key ``ExecutionStatus.vertices``. The derivation is a pure,
pluggable function so collision-resistant schemes can be swapped in without
touching the status engine. The default is the identity: two vertices sharing
a name collide in the status map.
"""

from collections.abc import Callable

from dagctl.core.errors import ConfigError, KeyDerivationError
from dagctl.core.models import Execution

VertexIdFunc = Callable[[str], str]

_FNV32_OFFSET_BASIS = 0x811C9DC5
_FNV32_PRIME = 0x01000193


def identity_vertex_id(vertex_name: str) -> str:
    """Vertex ID equal to the vertex name."""
    return vertex_name


def fnv32a_vertex_id(vertex_name: str) -> str:
    """Vertex ID as the decimal FNV-1a 32-bit hash of the UTF-8 name."""
    digest = _FNV32_OFFSET_BASIS
    for byte in vertex_name.encode("utf-8"):
        digest ^= byte
        digest = (digest * _FNV32_PRIME) & 0xFFFFFFFF
    return str(digest)


VERTEX_ID_STRATEGIES: dict[str, VertexIdFunc] = {
    "identity": identity_vertex_id,
    "fnv32a": fnv32a_vertex_id,
}


def get_vertex_id_func(strategy: str) -> VertexIdFunc:
    """Look up a vertex ID strategy by name.

    Raises:
        ConfigError: If the strategy is not registered
    """
    try:
        return VERTEX_ID_STRATEGIES[strategy]
    except KeyError:
        raise ConfigError(
            f"Unknown vertex ID strategy '{strategy}'. "
            f"Available: {', '.join(sorted(VERTEX_ID_STRATEGIES))}"
        ) from None


def key_of(execution: Execution) -> str:
    """Return the store key ``namespace/name`` (``name`` without a namespace).

    Raises:
        KeyDerivationError: If the execution has no name
    """
    meta = execution.metadata
    if not meta.name:
        raise KeyDerivationError("Cannot derive key for execution without a name")
    if meta.namespace:
        return f"{meta.namespace}/{meta.name}"
    return meta.name
