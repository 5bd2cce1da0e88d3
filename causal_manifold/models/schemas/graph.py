from typing import Any

from pydantic import Field

from causal_manifold.graph.model import CausalGraph, Edge, Node, NodeType, RelationType, generate_edge_id
from causal_manifold.models.schemas.common import CamelModel, ComplexStatsOut, SkippedEdgeOut
from causal_manifold.pipeline import build_graph


class NodeIn(CamelModel):
    """A concept node."""
    id: str = Field(..., min_length=1)
    label: str | None = Field(default=None, description="Display label; defaults to the id")
    type: NodeType | None = None
    domain: str | None = None
    description: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    def to_node(self) -> Node:
        return Node(
            id=self.id,
            label=self.label or self.id,
            type=self.type,
            domain=self.domain,
            description=self.description,
            metadata=dict(self.metadata),
        )


class EdgeIn(CamelModel):
    """A directed causal relation source -> target."""
    id: str | None = Field(default=None, description="Generated from source, relation and target when omitted")
    source: str = Field(..., min_length=1)
    target: str = Field(..., min_length=1)
    relation_type: RelationType = RelationType.CAUSES
    confidence: float = Field(default=1.0, ge=0.0, le=1.0)
    weight: float | None = None
    statement_text: str | None = None

    def to_edge(self) -> Edge:
        return Edge(
            id=self.id or generate_edge_id(self.source, self.target, self.relation_type),
            source=self.source,
            target=self.target,
            relation_type=self.relation_type,
            confidence=self.confidence,
            weight=self.weight,
            statement_text=self.statement_text,
        )


class GraphRequest(CamelModel):
    """A graph supplied inline with the request."""
    nodes: list[NodeIn] = Field(default_factory=list)
    edges: list[EdgeIn] = Field(default_factory=list)

    def build(self) -> tuple[CausalGraph, list[Edge]]:
        """Assemble the graph; edges with a missing endpoint are returned, not added."""
        return build_graph(
            (n.to_node() for n in self.nodes),
            (e.to_edge() for e in self.edges),
        )


class HubNodeOut(CamelModel):
    id: str
    label: str
    degree: int


class GraphStatsOut(CamelModel):
    """Graph-level statistics; density is directed, E / (V(V-1))."""
    node_count: int
    edge_count: int
    triangle_count: int
    domains: list[str]
    relation_type_counts: dict[str, int]
    avg_degree: float
    density: float
    hub_nodes: list[HubNodeOut]


class CentralityOut(CamelModel):
    node_id: str
    pagerank: float
    betweenness: float
    closeness: float


class AnalyzeResponse(CamelModel):
    """Statistics, complex statistics and networkx analytics for a graph."""
    stats: GraphStatsOut
    complex_stats: ComplexStatsOut
    centrality: list[CentralityOut] = Field(default_factory=list, description="Ordered by PageRank, highest first")
    weak_components: list[list[str]] = Field(default_factory=list)
    strong_components: list[list[str]] = Field(default_factory=list)
    skipped_edges: list[SkippedEdgeOut] = Field(default_factory=list)


class GraphQueryRequest(GraphRequest):
    """Causal traversal queries anchored on one node."""
    node_id: str = Field(..., min_length=1)
    target_id: str | None = Field(default=None, description="Path queries run from node_id to target_id")
    max_depth: int = Field(default=10, ge=1, le=20, description="Max length of enumerated causal paths")


class GraphQueryResponse(CamelModel):
    node_id: str
    causes: list[str] = Field(default_factory=list)
    effects: list[str] = Field(default_factory=list)
    ancestors: list[str] = Field(default_factory=list)
    descendants: list[str] = Field(default_factory=list)
    root_causes: list[str] = Field(default_factory=list)
    ultimate_effects: list[str] = Field(default_factory=list)
    shortest_path: list[str] | None = None
    causal_paths: list[list[str]] = Field(default_factory=list)
