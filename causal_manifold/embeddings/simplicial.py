"""
causal_manifold/embeddings/simplicial.py

Simplicial complex derived from a causal graph.

  0-simplices  the graph's nodes.
  1-simplices  the undirected closure of the causal edges: one simplex per
               unordered node pair linked in either direction.  Parallel and
               reciprocal edges are folded into a single simplex.
  2-simplices  unordered triples whose three pairs are all 1-simplices.

Triangles are enumerated edge by edge: for every 1-simplex (u, v) the
neighbour sets of u and v are intersected and each common neighbour w > v
closes a triangle.  Work is bounded by the sum over edges of
min(deg(u), deg(v)).

Identifiers are built from the sorted member node ids (``"a|b"``,
``"a|b|c"``) so two builds over the same graph produce identical ids in
identical order.  A complex is a frozen snapshot; rebuild it after the graph
changes.

Aggregation choices
-------------------
  edge confidence      max over the folded directed edges (mean also kept)
  triangle confidence  product of the three edge confidences (mean also kept)
  closure type         the shared polarity group of the three edges' dominant
                       relation types, or MIXED when they disagree
"""
from __future__ import annotations

import math
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from functools import cached_property
from typing import Mapping, Sequence

import numpy as np
import structlog

from causal_manifold.graph.model import CausalGraph, Edge, Node, RelationType

logger = structlog.get_logger(__name__)

RELATION_ORDER: tuple[RelationType, ...] = tuple(RelationType)

_SEPARATOR = "|"


class ClosureType(str, Enum):
    """Polarity of a triangular causal motif."""

    GENERATIVE  = "generative"
    INHIBITORY  = "inhibitory"
    ASSOCIATIVE = "associative"
    REGULATORY  = "regulatory"
    MIXED       = "mixed"


CLOSURE_ORDER: tuple[ClosureType, ...] = tuple(ClosureType)

_RELATION_GROUP: dict[RelationType, ClosureType] = {
    RelationType.CAUSES:          ClosureType.GENERATIVE,
    RelationType.ENABLES:         ClosureType.GENERATIVE,
    RelationType.INCREASES:       ClosureType.GENERATIVE,
    RelationType.REQUIRES:        ClosureType.GENERATIVE,
    RelationType.PRODUCES:        ClosureType.GENERATIVE,
    RelationType.TRIGGERS:        ClosureType.GENERATIVE,
    RelationType.AMPLIFIES:       ClosureType.GENERATIVE,
    RelationType.PREVENTS:        ClosureType.INHIBITORY,
    RelationType.DECREASES:       ClosureType.INHIBITORY,
    RelationType.INHIBITS:        ClosureType.INHIBITORY,
    RelationType.CORRELATES_WITH: ClosureType.ASSOCIATIVE,
    RelationType.MODULATES:       ClosureType.REGULATORY,
    RelationType.MEDIATES:        ClosureType.REGULATORY,
}

# Length of EdgeSimplex.feature_vector(): confidence, reciprocity, relation mix.
EDGE_FEATURE_DIM = 2 + len(RELATION_ORDER)
# Length of TriangleSimplex.feature_vector(): confidence, closure one-hot.
TRIANGLE_FEATURE_DIM = 1 + len(CLOSURE_ORDER)


def simplex_id(*node_ids: str) -> str:
    """Canonical identifier of the simplex spanned by *node_ids*."""
    return _SEPARATOR.join(sorted(node_ids))


# ---------------------------------------------------------------------------
# Simplex records
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class EdgeSimplex:
    """A 1-simplex {u, v} with u < v.

    Attributes:
        edge_ids:         Ids of the directed causal edges folded into it.
        confidence:       Max confidence across those edges.
        mean_confidence:  Mean confidence across those edges.
        relation_types:   Relation-type multiset, sorted by enum order.
        reciprocal:       True when edges exist in both directions.
        source_degree:    Graph degree (in + out neighbours) of u.
        target_degree:    Graph degree of v.
        common_neighbors: Size of the shared undirected neighbourhood.
        jaccard:          |N(u) ∩ N(v)| / |N(u) ∪ N(v)|.
    """

    id: str
    u: str
    v: str
    edge_ids: tuple[str, ...]
    confidence: float
    mean_confidence: float
    relation_types: tuple[RelationType, ...]
    reciprocal: bool
    source_degree: int
    target_degree: int
    common_neighbors: int
    jaccard: float

    @property
    def nodes(self) -> tuple[str, str]:
        return (self.u, self.v)

    @property
    def dominant_relation(self) -> RelationType:
        """Most frequent relation type; ties go to the earlier enum member."""
        counts = Counter(self.relation_types)
        return max(RELATION_ORDER, key=lambda r: (counts.get(r, 0), -RELATION_ORDER.index(r)))

    def other(self, node_id: str) -> str:
        return self.v if node_id == self.u else self.u

    def relation_encoding(self) -> np.ndarray:
        """Relation-type multiset as normalised counts over RELATION_ORDER."""
        counts = Counter(self.relation_types)
        vec = np.array([counts.get(r, 0) for r in RELATION_ORDER], dtype=float)
        return vec / max(len(self.relation_types), 1)

    def feature_vector(self) -> np.ndarray:
        return np.concatenate(
            [[self.confidence, 1.0 if self.reciprocal else 0.0], self.relation_encoding()]
        )


@dataclass(frozen=True)
class TriangleSimplex:
    """A 2-simplex {a, b, c} with a < b < c."""

    id: str
    nodes: tuple[str, str, str]
    edge_ids: tuple[str, str, str]
    confidence: float
    mean_confidence: float
    closure_type: ClosureType
    relation_types: tuple[RelationType, ...]
    transitivity: float
    sum_degree: int
    avg_degree: float
    domain_homogeneity: float

    def others(self, node_id: str) -> tuple[str, str]:
        a, b = (n for n in self.nodes if n != node_id)
        return a, b

    def feature_vector(self) -> np.ndarray:
        onehot = [1.0 if self.closure_type is c else 0.0 for c in CLOSURE_ORDER]
        return np.array([self.confidence, *onehot], dtype=float)


@dataclass(frozen=True)
class ComplexStats:
    num_vertices: int
    num_edges: int
    num_triangles: int
    avg_degree: float
    avg_clustering: float
    density: float


# ---------------------------------------------------------------------------
# Complex
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SimplicialComplex:
    """Read-only 0/1/2-simplex snapshot of a CausalGraph."""

    vertices: tuple[Node, ...]
    edges: tuple[EdgeSimplex, ...]
    triangles: tuple[TriangleSimplex, ...]

    @cached_property
    def vertex_ids(self) -> tuple[str, ...]:
        return tuple(v.id for v in self.vertices)

    @cached_property
    def vertex_index(self) -> dict[str, int]:
        return {vid: i for i, vid in enumerate(self.vertex_ids)}

    @cached_property
    def _edges_by_vertex(self) -> dict[str, list[EdgeSimplex]]:
        index: dict[str, list[EdgeSimplex]] = {vid: [] for vid in self.vertex_ids}
        for edge in self.edges:
            index[edge.u].append(edge)
            index[edge.v].append(edge)
        return index

    @cached_property
    def _triangles_by_vertex(self) -> dict[str, list[TriangleSimplex]]:
        index: dict[str, list[TriangleSimplex]] = {vid: [] for vid in self.vertex_ids}
        for tri in self.triangles:
            for vid in tri.nodes:
                index[vid].append(tri)
        return index

    @cached_property
    def _edge_lookup(self) -> dict[str, EdgeSimplex]:
        return {edge.id: edge for edge in self.edges}

    def edge(self, a: str, b: str) -> EdgeSimplex | None:
        return self._edge_lookup.get(simplex_id(a, b))

    def incident_edges(self, node_id: str) -> list[EdgeSimplex]:
        return list(self._edges_by_vertex.get(node_id, ()))

    def incident_triangles(self, node_id: str) -> list[TriangleSimplex]:
        return list(self._triangles_by_vertex.get(node_id, ()))

    def degree(self, node_id: str) -> int:
        """Number of 1-simplices touching *node_id*."""
        return len(self._edges_by_vertex.get(node_id, ()))

    def clustering_coefficient(self, node_id: str) -> float:
        """Fraction of the node's neighbour pairs that are themselves linked."""
        k = self.degree(node_id)
        if k < 2:
            return 0.0
        return len(self._triangles_by_vertex[node_id]) / (k * (k - 1) / 2)

    def stats(self) -> ComplexStats:
        n = len(self.vertices)
        e = len(self.edges)
        clustering = (
            sum(self.clustering_coefficient(vid) for vid in self.vertex_ids) / n if n else 0.0
        )
        pairs = n * (n - 1) / 2
        return ComplexStats(
            num_vertices=n,
            num_edges=e,
            num_triangles=len(self.triangles),
            avg_degree=2 * e / n if n else 0.0,
            avg_clustering=clustering,
            density=e / pairs if pairs else 0.0,
        )

    def adjacency_matrix(self) -> np.ndarray:
        """Symmetric 0/1 adjacency of the 1-skeleton, ordered like vertex_ids."""
        n = len(self.vertices)
        adj = np.zeros((n, n), dtype=float)
        idx = self.vertex_index
        for edge in self.edges:
            i, j = idx[edge.u], idx[edge.v]
            adj[i, j] = adj[j, i] = 1.0
        return adj

    def normalized_laplacian(self) -> np.ndarray:
        """Return ``I - D^{-1/2} A D^{-1/2}`` of the 1-skeleton."""
        adj = self.adjacency_matrix()
        deg = adj.sum(axis=1)
        d_inv_sqrt = np.divide(1.0, np.sqrt(deg), out=np.zeros_like(deg), where=deg > 0)
        return np.eye(adj.shape[0]) - d_inv_sqrt[:, None] * adj * d_inv_sqrt[None, :]


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------

def _undirected_pairs(graph: CausalGraph) -> dict[tuple[str, str], list[Edge]]:
    """Group directed edges by sorted endpoint pair, dropping self-loops."""
    pairs: dict[tuple[str, str], list[Edge]] = {}
    for edge in graph.edges:
        if edge.source == edge.target:
            continue
        key = (edge.source, edge.target) if edge.source < edge.target else (edge.target, edge.source)
        pairs.setdefault(key, []).append(edge)
    return dict(sorted(pairs.items()))


def _iter_triangles(
    pairs: Sequence[tuple[str, str]],
    neighbors: Mapping[str, set[str]],
):
    for u, v in pairs:
        nu, nv = neighbors[u], neighbors[v]
        small, large = (nu, nv) if len(nu) <= len(nv) else (nv, nu)
        for w in sorted(x for x in small if x > v and x in large):
            yield u, v, w


def count_triangles(graph: CausalGraph) -> int:
    """Number of 2-simplices the complex of *graph* would contain."""
    neighbors = {vid: graph.neighbors(vid) for vid in graph.node_ids}
    return sum(1 for _ in _iter_triangles(list(_undirected_pairs(graph)), neighbors))


def _build_edge(graph: CausalGraph, u: str, v: str, members: list[Edge],
                neighbors: Mapping[str, set[str]]) -> EdgeSimplex:
    members = sorted(members, key=lambda e: e.id)
    confidences = [e.confidence for e in members]
    forward = any(e.source == u for e in members)
    backward = any(e.source == v for e in members)
    shared = neighbors[u] & neighbors[v]
    union = neighbors[u] | neighbors[v]
    return EdgeSimplex(
        id=simplex_id(u, v),
        u=u,
        v=v,
        edge_ids=tuple(e.id for e in members),
        confidence=max(confidences),
        mean_confidence=sum(confidences) / len(confidences),
        relation_types=tuple(sorted((e.relation_type for e in members), key=RELATION_ORDER.index)),
        reciprocal=forward and backward,
        source_degree=graph.degree(u),
        target_degree=graph.degree(v),
        common_neighbors=len(shared),
        jaccard=len(shared) / len(union) if union else 0.0,
    )


def _closure_type(sides: Sequence[EdgeSimplex]) -> ClosureType:
    groups = {_RELATION_GROUP[side.dominant_relation] for side in sides}
    return groups.pop() if len(groups) == 1 else ClosureType.MIXED


def _domain_homogeneity(nodes: Sequence[Node]) -> float:
    domains = [n.domain for n in nodes if n.domain]
    if not domains:
        return 0.0
    return 1 - (len(set(domains)) - 1) / len(domains)


def _build_triangle(graph: CausalGraph, a: str, b: str, c: str,
                    edge_lookup: Mapping[str, EdgeSimplex]) -> TriangleSimplex:
    sides = (
        edge_lookup[simplex_id(a, b)],
        edge_lookup[simplex_id(b, c)],
        edge_lookup[simplex_id(a, c)],
    )
    confidences = [s.confidence for s in sides]
    degrees = [graph.degree(n) for n in (a, b, c)]
    directed = sum(len(s.edge_ids) for s in sides)
    relation_types = sorted({r for s in sides for r in s.relation_types}, key=RELATION_ORDER.index)
    return TriangleSimplex(
        id=simplex_id(a, b, c),
        nodes=(a, b, c),
        edge_ids=tuple(s.id for s in sides),
        confidence=math.prod(confidences),
        mean_confidence=sum(confidences) / 3,
        closure_type=_closure_type(sides),
        relation_types=tuple(relation_types),
        transitivity=min(directed, 6) / 6,
        sum_degree=sum(degrees),
        avg_degree=sum(degrees) / 3,
        domain_homogeneity=_domain_homogeneity([graph.get_node(n) for n in (a, b, c)]),
    )


def build_complex(graph: CausalGraph) -> SimplicialComplex:
    """Derive the simplicial complex of *graph*.

    Args:
        graph: Source graph.  It must not be mutated while this runs.

    Returns:
        A frozen SimplicialComplex; later graph changes do not affect it.
    """
    neighbors = {vid: graph.neighbors(vid) for vid in graph.node_ids}
    pairs = _undirected_pairs(graph)

    edges = tuple(
        _build_edge(graph, u, v, members, neighbors) for (u, v), members in pairs.items()
    )
    lookup = {e.id: e for e in edges}
    triangles = tuple(
        _build_triangle(graph, a, b, c, lookup)
        for a, b, c in _iter_triangles(list(pairs), neighbors)
    )

    logger.debug(
        "simplicial_complex_built",
        vertices=graph.node_count,
        edges=len(edges),
        triangles=len(triangles),
    )
    return SimplicialComplex(vertices=tuple(graph.nodes), edges=edges, triangles=triangles)


# ---------------------------------------------------------------------------
# Embedding preparation
# ---------------------------------------------------------------------------

def positional_encoding(position: int, dim: int) -> np.ndarray:
    """Sinusoidal code: sin on even slots, cos on odd slots."""
    i = np.arange(dim)
    angle = position / np.power(10000.0, (2 * (i // 2)) / dim)
    return np.where(i % 2 == 0, np.sin(angle), np.cos(angle))


def add_positional_encoding(
    embeddings: Mapping[str, Sequence[float]],
    complex_: SimplicialComplex,
    scale: float = 0.1,
) -> dict[str, np.ndarray]:
    """Offset each node's embedding by *scale* times its positional code.

    The position of a node is its index in ``complex_.vertex_ids``.  Nodes
    not in the complex keep position 0.
    """
    index = complex_.vertex_index
    result: dict[str, np.ndarray] = {}
    for node_id, vector in embeddings.items():
        vec = np.asarray(vector, dtype=float)
        result[node_id] = vec + scale * positional_encoding(index.get(node_id, 0), vec.shape[0])
    return result
