"""Load and dump YAML/JSON snapshots of graphs, executions and jobs.

JSON is a subset of YAML, so every loader goes through ``yaml.safe_load``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, TypeVar

import pydantic
import yaml

from dagctl.core.errors import SnapshotError
from dagctl.core.graph_schema import Graph
from dagctl.core.models import Execution, Job

ModelT = TypeVar("ModelT", bound=pydantic.BaseModel)


def _read_yaml(path: Path) -> Any:
    try:
        with open(path, encoding="utf-8") as f:
            return yaml.safe_load(f)
    except FileNotFoundError:
        raise SnapshotError(f"Snapshot file not found: {path}") from None
    except yaml.YAMLError as e:
        raise SnapshotError(f"Invalid YAML in {path}: {e}") from e


def load_model(path: Path, model: type[ModelT]) -> ModelT:
    """Load ``path`` and validate it against ``model``.

    Raises:
        SnapshotError: If the file is missing, unparsable or invalid
    """
    data = _read_yaml(path)
    if not isinstance(data, dict):
        raise SnapshotError(f"{path}: expected a mapping at top level")
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as e:
        raise SnapshotError(f"{path}: invalid {model.__name__}: {e}") from e


def load_graph(path: Path) -> Graph:
    return load_model(path, Graph)


def load_execution(path: Path) -> Execution:
    return load_model(path, Execution)


def load_jobs(path: Path) -> list[Job]:
    """Load jobs from a list, or from a mapping with a ``jobs`` list."""
    data = _read_yaml(path)
    if isinstance(data, dict):
        data = data.get("jobs")
    if not isinstance(data, list):
        raise SnapshotError(f"{path}: expected a list of jobs")
    try:
        return [Job.model_validate(item) for item in data]
    except pydantic.ValidationError as e:
        raise SnapshotError(f"{path}: invalid Job: {e}") from e


def dump_model(model: pydantic.BaseModel, path: Path) -> None:
    """Write ``model`` to ``path`` as YAML (JSON when the suffix is .json)."""
    if path.suffix == ".json":
        path.write_text(model.model_dump_json(indent=2) + "\n", encoding="utf-8")
        return
    data = model.model_dump(mode="json")
    path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
