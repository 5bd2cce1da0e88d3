from causal_manifold.graph.analytics import GraphAnalytics, analyze, to_networkx
from causal_manifold.graph.model import (
    CausalGraph,
    Edge,
    GraphStats,
    HubNode,
    Node,
    NodeType,
    RelationType,
    generate_edge_id,
    normalize_concept_name,
)

__all__ = [
    "GraphAnalytics",
    "analyze",
    "to_networkx",
    "CausalGraph",
    "Edge",
    "GraphStats",
    "HubNode",
    "Node",
    "NodeType",
    "RelationType",
    "generate_edge_id",
    "normalize_concept_name",
]
