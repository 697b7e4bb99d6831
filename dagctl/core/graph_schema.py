"""Graph definitions consumed by the status engine.

A workflow graph is a DAG of job-backed vertices joined by edges that may
carry match rules. Edges point from a parent to its dependent; an edge is
traversable only when all of its rules hold against the execution context.

Graph construction from workflow templates happens elsewhere; this module
only models the result and validates its structure.
"""

import networkx as nx
from pydantic import BaseModel, Field

from dagctl.core.models import MatchRule, VertexType


class JobRef(BaseModel):
    """Reference to the job backing a vertex."""

    name: str


class Vertex(BaseModel):
    """One node of the graph."""

    name: str
    job: JobRef
    type: VertexType = VertexType.JOB


class Edge(BaseModel):
    """Directed edge from ``source`` (parent) to ``target`` (dependent)."""

    source: str
    target: str
    when: list[MatchRule] = Field(default_factory=list)  # All must hold


class Graph(BaseModel):
    """Complete workflow graph."""

    name: str = ""
    vertices: list[Vertex]
    edges: list[Edge] = Field(default_factory=list)

    def validate_graph(self) -> list[str]:
        """
        Validate graph structure using NetworkX.
        Returns list of validation errors.
        """
        errors = []

        # Duplicate names would collide in the execution's status map
        seen_names = set()
        for vertex in self.vertices:
            if vertex.name in seen_names:
                errors.append(f"Duplicate vertex name: '{vertex.name}'")
            seen_names.add(vertex.name)

        seen_pairs = set()
        for edge in self.edges:
            pair = (edge.source, edge.target)
            if pair in seen_pairs:
                errors.append(f"Duplicate edge from '{edge.source}' to '{edge.target}'")
            seen_pairs.add(pair)

            if edge.source not in seen_names:
                errors.append(f"Edge {edge.source}->{edge.target}: source '{edge.source}' not found")
            if edge.target not in seen_names:
                errors.append(f"Edge {edge.source}->{edge.target}: target '{edge.target}' not found")
            if edge.source == edge.target:
                errors.append(f"Vertex '{edge.source}' depends on itself")

        G = self._to_networkx()
        try:
            cycle = nx.find_cycle(G)
            cycle_path = " -> ".join(str(e[0]) for e in cycle)
            errors.append(f"Cycle detected: {cycle_path}")
        except nx.NetworkXNoCycle:
            pass

        return errors

    def _to_networkx(self) -> nx.DiGraph:
        """Convert to NetworkX DiGraph for analysis"""
        G = nx.DiGraph()
        for vertex in self.vertices:
            G.add_node(vertex.name)
        for edge in self.edges:
            G.add_edge(edge.source, edge.target)
        return G

    def get_vertex(self, name: str) -> Vertex | None:
        for vertex in self.vertices:
            if vertex.name == name:
                return vertex
        return None

    def children(self, name: str) -> list[Vertex]:
        """Dependents of ``name`` in edge order (unresolved targets skipped)."""
        targets = (self.get_vertex(e.target) for e in self.edges if e.source == name)
        return [vertex for vertex in targets if vertex is not None]

    def incoming_edges(self, name: str) -> list[Edge]:
        return [e for e in self.edges if e.target == name]

    def topological_order(self) -> list[str]:
        """Vertex names with every parent before its dependents.

        Ties keep declaration order. Raises ``networkx.NetworkXUnfeasible``
        on a cyclic graph.
        """
        position = {v.name: i for i, v in enumerate(self.vertices)}
        return list(
            nx.lexicographical_topological_sort(
                self._to_networkx(), key=lambda n: position.get(n, len(position))
            )
        )
