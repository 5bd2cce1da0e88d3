"""
causal_manifold/graph/model.py

In-memory causal graph.

Nodes are concepts; edges are directed, typed, confidence-weighted causal
relations.  The graph keeps three adjacency indexes that are updated on
every insertion and deletion:

  _out       node id -> ids of nodes it points to
  _in        node id -> ids of nodes pointing to it
  _incident  node id -> ids of every edge touching it

The graph is the only long-lived mutable object in the pipeline.  Everything
derived from it (simplicial complex, statistics, embeddings, projections) is
recomputed per call.  Callers must not mutate a graph while a derivation over
it is running; there is no internal locking.
"""
from __future__ import annotations

import re
from collections import deque
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterable

import structlog

from causal_manifold.errors import (
    DuplicateEdgeError,
    DuplicateNodeError,
    InputValidationError,
    MissingEndpointError,
)

if TYPE_CHECKING:
    from causal_manifold.embeddings.simplicial import SimplicialComplex

logger = structlog.get_logger(__name__)

SERIALIZATION_VERSION = "1.0.0"


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------

class NodeType(str, Enum):
    """Kind of concept a node stands for."""

    CONCEPT  = "concept"
    EVENT    = "event"
    ENTITY   = "entity"
    VARIABLE = "variable"


class RelationType(str, Enum):
    """Closed set of causal relation types carried by edges."""

    CAUSES          = "causes"           # direct causation
    ENABLES         = "enables"          # necessary condition
    PREVENTS        = "prevents"         # inhibitory effect
    INCREASES       = "increases"        # positive quantitative effect
    DECREASES       = "decreases"        # negative quantitative effect
    CORRELATES_WITH = "correlates_with"  # association, not causation
    REQUIRES        = "requires"         # prerequisite
    PRODUCES        = "produces"         # generates as output
    INHIBITS        = "inhibits"         # suppresses
    MODULATES       = "modulates"        # adjusts intensity
    TRIGGERS        = "triggers"         # initiates
    AMPLIFIES       = "amplifies"        # strengthens effect
    MEDIATES        = "mediates"         # intermediate mechanism


# ---------------------------------------------------------------------------
# Value types
# ---------------------------------------------------------------------------

@dataclass
class Node:
    """A concept in the causal graph.

    ``id``, ``label``, ``type`` and ``domain`` are fixed at creation.  Only
    ``description`` and ``metadata`` may be changed afterwards, through
    CausalGraph.annotate_node().
    """

    id: str
    label: str
    type: NodeType | None = None
    domain: str | None = None
    description: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.id:
            raise InputValidationError("Node id must be a non-empty string")
        if self.type is not None and not isinstance(self.type, NodeType):
            try:
                self.type = NodeType(self.type)
            except ValueError as exc:
                raise InputValidationError(f"Unknown node type {self.type!r}") from exc


@dataclass
class Edge:
    """A directed causal relation ``source --relation_type--> target``."""

    id: str
    source: str
    target: str
    relation_type: RelationType
    confidence: float = 1.0
    weight: float | None = None
    statement_text: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.id:
            raise InputValidationError("Edge id must be a non-empty string")
        if not isinstance(self.relation_type, RelationType):
            try:
                self.relation_type = RelationType(self.relation_type)
            except ValueError as exc:
                raise InputValidationError(
                    f"Edge {self.id!r}: unknown relation type {self.relation_type!r}"
                ) from exc
        if not 0.0 <= self.confidence <= 1.0:
            raise InputValidationError(
                f"Edge {self.id!r}: confidence {self.confidence} outside [0, 1]"
            )


@dataclass(frozen=True)
class HubNode:
    id: str
    label: str
    degree: int


@dataclass(frozen=True)
class GraphStats:
    """Snapshot of graph-level statistics.

    ``density`` here is the directed density E / (V·(V−1)); the undirected
    density of the simplicial complex lives in ComplexStats.
    """

    node_count: int
    edge_count: int
    triangle_count: int
    domains: list[str]
    relation_type_counts: dict[str, int]
    avg_degree: float
    density: float
    hub_nodes: list[HubNode]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

_WHITESPACE = re.compile(r"\s+")


def generate_edge_id(source: str, target: str, relation_type: RelationType | str) -> str:
    """Return a deterministic edge id for a (source, relation, target) triple."""
    rel = relation_type.value if isinstance(relation_type, RelationType) else relation_type
    return f"{source}--{rel}-->{target}"


def normalize_concept_name(name: str) -> str:
    """Lower-case, trim and collapse whitespace so concept names can be matched."""
    return _WHITESPACE.sub(" ", name.strip().lower())


# ---------------------------------------------------------------------------
# Graph
# ---------------------------------------------------------------------------

class CausalGraph:
    """Directed multigraph of concepts and typed causal relations."""

    def __init__(self) -> None:
        self._nodes: dict[str, Node] = {}
        self._edges: dict[str, Edge] = {}
        self._out: dict[str, set[str]] = {}
        self._in: dict[str, set[str]] = {}
        self._incident: dict[str, set[str]] = {}

    # ── Nodes ────────────────────────────────────────────

    def add_node(self, node: Node) -> None:
        """Insert *node*.  Raises DuplicateNodeError if the id is taken."""
        if node.id in self._nodes:
            raise DuplicateNodeError(node.id)
        self._nodes[node.id] = replace(node, metadata=dict(node.metadata))
        self._out[node.id] = set()
        self._in[node.id] = set()
        self._incident[node.id] = set()

    def get_node(self, node_id: str) -> Node | None:
        return self._nodes.get(node_id)

    def has_node(self, node_id: str) -> bool:
        return node_id in self._nodes

    def annotate_node(
        self,
        node_id: str,
        *,
        description: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Node:
        """Update the annotation fields of an existing node and return it."""
        node = self._nodes.get(node_id)
        if node is None:
            raise KeyError(f"Node {node_id!r} not found")
        if description is not None:
            node.description = description
        if metadata is not None:
            node.metadata.update(metadata)
        return node

    def remove_node(self, node_id: str) -> bool:
        """Delete a node and every edge touching it.  Returns False if absent."""
        if node_id not in self._nodes:
            return False
        for edge_id in list(self._incident[node_id]):
            self.remove_edge(edge_id)
        del self._out[node_id]
        del self._in[node_id]
        del self._incident[node_id]
        del self._nodes[node_id]
        return True

    @property
    def nodes(self) -> list[Node]:
        return list(self._nodes.values())

    @property
    def node_ids(self) -> list[str]:
        return list(self._nodes)

    @property
    def node_count(self) -> int:
        return len(self._nodes)

    # ── Edges ────────────────────────────────────────────

    def add_edge(self, edge: Edge) -> None:
        """Insert *edge*.

        Raises:
            DuplicateEdgeError:   the edge id is already present.
            MissingEndpointError: source or target is not a node of this graph.
        """
        if edge.id in self._edges:
            raise DuplicateEdgeError(edge.id)
        if edge.source not in self._nodes:
            raise MissingEndpointError(edge.id, edge.source, "source")
        if edge.target not in self._nodes:
            raise MissingEndpointError(edge.id, edge.target, "target")

        self._edges[edge.id] = replace(edge, metadata=dict(edge.metadata))
        self._out[edge.source].add(edge.target)
        self._in[edge.target].add(edge.source)
        self._incident[edge.source].add(edge.id)
        self._incident[edge.target].add(edge.id)

    def add_edges(self, edges: Iterable[Edge], *, skip_missing: bool = True) -> list[Edge]:
        """Insert a batch of edges.

        With *skip_missing* (the default) edges whose endpoints are absent are
        logged and skipped instead of aborting the batch.

        Returns:
            The edges that were skipped.
        """
        skipped: list[Edge] = []
        for edge in edges:
            try:
                self.add_edge(edge)
            except MissingEndpointError as exc:
                if not skip_missing:
                    raise
                logger.warning(
                    "graph_edge_skipped",
                    edge_id=exc.edge_id,
                    missing_node=exc.node_id,
                    role=exc.role,
                )
                skipped.append(edge)
        return skipped

    def get_edge(self, edge_id: str) -> Edge | None:
        return self._edges.get(edge_id)

    def has_edge(self, edge_id: str) -> bool:
        return edge_id in self._edges

    def remove_edge(self, edge_id: str) -> bool:
        """Delete an edge and refresh adjacency.  Returns False if absent."""
        edge = self._edges.pop(edge_id, None)
        if edge is None:
            return False
        self._incident[edge.source].discard(edge_id)
        self._incident[edge.target].discard(edge_id)
        # Parallel edges may still connect the pair.
        if not self.edges_between(edge.source, edge.target):
            self._out[edge.source].discard(edge.target)
            self._in[edge.target].discard(edge.source)
        return True

    @property
    def edges(self) -> list[Edge]:
        return list(self._edges.values())

    @property
    def edge_count(self) -> int:
        return len(self._edges)

    # ── Adjacency ────────────────────────────────────────

    def out_neighbors(self, node_id: str) -> list[str]:
        return sorted(self._out.get(node_id, ()))

    def in_neighbors(self, node_id: str) -> list[str]:
        return sorted(self._in.get(node_id, ()))

    def neighbors(self, node_id: str) -> set[str]:
        """Undirected neighbourhood: nodes linked in either direction, excluding self."""
        result = self._out.get(node_id, set()) | self._in.get(node_id, set())
        result.discard(node_id)
        return result

    def edges_between(self, source: str, target: str) -> list[Edge]:
        """Directed edges from *source* to *target*."""
        return [
            self._edges[eid]
            for eid in sorted(self._incident.get(source, ()))
            if self._edges[eid].source == source and self._edges[eid].target == target
        ]

    def incident_edges(self, node_id: str) -> list[Edge]:
        return [self._edges[eid] for eid in sorted(self._incident.get(node_id, ()))]

    def are_connected(self, a: str, b: str) -> bool:
        return b in self._out.get(a, ()) or a in self._out.get(b, ())

    def out_degree(self, node_id: str) -> int:
        return len(self._out.get(node_id, ()))

    def in_degree(self, node_id: str) -> int:
        return len(self._in.get(node_id, ()))

    def degree(self, node_id: str) -> int:
        return self.out_degree(node_id) + self.in_degree(node_id)

    # ── Causal queries ───────────────────────────────────

    def find_causes(self, node_id: str) -> list[Node]:
        """Direct causes: nodes with an edge pointing at *node_id*."""
        return [self._nodes[n] for n in self.in_neighbors(node_id)]

    def find_effects(self, node_id: str) -> list[Node]:
        """Direct effects: nodes *node_id* points at."""
        return [self._nodes[n] for n in self.out_neighbors(node_id)]

    def _reach(self, node_id: str, step: dict[str, set[str]]) -> list[str]:
        visited: set[str] = set()
        order: list[str] = []
        queue = deque(sorted(step.get(node_id, ())))
        while queue:
            current = queue.popleft()
            if current in visited:
                continue
            visited.add(current)
            order.append(current)
            queue.extend(sorted(n for n in step.get(current, ()) if n not in visited))
        return order

    def find_ancestors(self, node_id: str) -> list[Node]:
        """Every upstream node, in BFS order."""
        return [self._nodes[n] for n in self._reach(node_id, self._in)]

    def find_descendants(self, node_id: str) -> list[Node]:
        """Every downstream node, in BFS order."""
        return [self._nodes[n] for n in self._reach(node_id, self._out)]

    def find_root_causes(self, node_id: str) -> list[Node]:
        """Ancestors that have no causes of their own."""
        return [n for n in self.find_ancestors(node_id) if self.in_degree(n.id) == 0]

    def find_ultimate_effects(self, node_id: str) -> list[Node]:
        """Descendants that have no effects of their own."""
        return [n for n in self.find_descendants(node_id) if self.out_degree(n.id) == 0]

    def shortest_path(self, from_id: str, to_id: str) -> list[str] | None:
        """Shortest directed path as a list of node ids, or None if unreachable."""
        if from_id not in self._nodes or to_id not in self._nodes:
            return None
        if from_id == to_id:
            return [from_id]

        parents: dict[str, str] = {}
        queue = deque([from_id])
        seen = {from_id}
        while queue:
            current = queue.popleft()
            for nxt in self.out_neighbors(current):
                if nxt in seen:
                    continue
                parents[nxt] = current
                if nxt == to_id:
                    path = [to_id]
                    while path[-1] != from_id:
                        path.append(parents[path[-1]])
                    return path[::-1]
                seen.add(nxt)
                queue.append(nxt)
        return None

    def causal_paths(self, from_id: str, to_id: str, max_depth: int = 10) -> list[list[str]]:
        """All simple directed paths from *from_id* to *to_id* with at most *max_depth* nodes."""
        if from_id not in self._nodes or to_id not in self._nodes:
            return []
        if from_id == to_id:
            return [[from_id]]

        paths: list[list[str]] = []
        path = [from_id]
        on_path = {from_id}

        def dfs(current: str) -> None:
            if len(path) > max_depth:
                return
            if current == to_id:
                paths.append(list(path))
                return
            for nxt in self.out_neighbors(current):
                if nxt in on_path:
                    continue
                path.append(nxt)
                on_path.add(nxt)
                dfs(nxt)
                on_path.discard(nxt)
                path.pop()

        dfs(from_id)
        return paths

    # ── Derivations ──────────────────────────────────────

    def to_simplicial_complex(self) -> SimplicialComplex:
        """Build the 0/1/2-simplex view of the current graph state."""
        from causal_manifold.embeddings.simplicial import build_complex

        return build_complex(self)

    def stats(self) -> GraphStats:
        """Compute a statistics snapshot of the current graph state."""
        from causal_manifold.embeddings.simplicial import count_triangles

        nodes = self.nodes
        edges = self.edges
        n = len(nodes)

        relation_counts: dict[str, int] = {}
        for edge in edges:
            key = edge.relation_type.value
            relation_counts[key] = relation_counts.get(key, 0) + 1

        domains = sorted({node.domain for node in nodes if node.domain})
        total_degree = sum(self.degree(node.id) for node in nodes)
        max_edges = n * (n - 1)

        hubs = sorted(
            (HubNode(id=node.id, label=node.label, degree=self.degree(node.id)) for node in nodes),
            key=lambda h: (-h.degree, h.id),
        )[:10]

        return GraphStats(
            node_count=n,
            edge_count=len(edges),
            triangle_count=count_triangles(self),
            domains=domains,
            relation_type_counts=relation_counts,
            avg_degree=total_degree / n if n else 0.0,
            density=len(edges) / max_edges if max_edges else 0.0,
            hub_nodes=hubs,
        )

    def subgraph_by_domain(self, domain: str) -> CausalGraph:
        """Return a new graph with the nodes of *domain* and the edges among them."""
        sub = CausalGraph()
        for node in self.nodes:
            if node.domain == domain:
                sub.add_node(node)
        for edge in self.edges:
            if sub.has_node(edge.source) and sub.has_node(edge.target):
                sub.add_edge(edge)
        return sub

    def merge(self, other: CausalGraph) -> None:
        """Copy nodes and edges from *other* that are not already present."""
        for node in other.nodes:
            if not self.has_node(node.id):
                self.add_node(node)
        self.add_edges((e for e in other.edges if not self.has_edge(e.id)), skip_missing=True)

    def clone(self) -> CausalGraph:
        return CausalGraph.from_dict(self.to_dict())

    def clear(self) -> None:
        self._nodes.clear()
        self._edges.clear()
        self._out.clear()
        self._in.clear()
        self._incident.clear()

    # ── Serialization ────────────────────────────────────

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible dict."""
        def _node(node: Node) -> dict[str, Any]:
            data = asdict(node)
            data["type"] = node.type.value if node.type else None
            return data

        def _edge(edge: Edge) -> dict[str, Any]:
            data = asdict(edge)
            data["relation_type"] = edge.relation_type.value
            return data

        return {
            "version": SERIALIZATION_VERSION,
            "nodes": [_node(n) for n in self.nodes],
            "edges": [_edge(e) for e in self.edges],
            "metadata": {
                "created_at": datetime.now(timezone.utc).isoformat(),
                "node_count": self.node_count,
                "edge_count": self.edge_count,
                "domains": sorted({n.domain for n in self.nodes if n.domain}),
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CausalGraph:
        """Rebuild a graph from to_dict() output.  Nodes are inserted before edges."""
        graph = cls()
        for raw in data.get("nodes", []):
            graph.add_node(Node(**raw))
        for raw in data.get("edges", []):
            graph.add_edge(Edge(**raw))
        return graph
