"""
causal_manifold/api/routes/graph.py

Graph analysis endpoints.  The graph travels in the request body.

POST /graph/analyze
    Graph statistics (counts, domains, relation types, hubs), simplicial
    complex statistics and networkx analytics: PageRank, betweenness and
    closeness centrality, weakly and strongly connected components.

POST /graph/query
    Causal traversals anchored on one node: direct causes and effects, all
    ancestors and descendants, root causes, ultimate effects and, when a
    target is given, the shortest directed path and every simple causal
    path up to max_depth.  Unknown node ids return HTTP 404.
"""
from __future__ import annotations

import asyncio
from dataclasses import asdict

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from causal_manifold.api.routes import require_api_key
from causal_manifold.graph.analytics import analyze
from causal_manifold.graph.model import CausalGraph
from causal_manifold.models.schemas import (
    AnalyzeResponse,
    CentralityOut,
    ComplexStatsOut,
    GraphQueryRequest,
    GraphQueryResponse,
    GraphRequest,
    GraphStatsOut,
    SkippedEdgeOut,
)

logger = structlog.get_logger(__name__)

router = APIRouter()


def _analyze_sync(graph: CausalGraph) -> tuple[GraphStatsOut, ComplexStatsOut, list[CentralityOut], list, list]:
    stats = graph.stats()
    complex_stats = graph.to_simplicial_complex().stats()
    analytics = analyze(graph)
    centrality = [
        CentralityOut(
            node_id=node_id,
            pagerank=score,
            betweenness=analytics.betweenness.get(node_id, 0.0),
            closeness=analytics.closeness.get(node_id, 0.0),
        )
        for node_id, score in analytics.top("pagerank", limit=graph.node_count)
    ]
    return (
        GraphStatsOut(**asdict(stats)),
        ComplexStatsOut.from_stats(complex_stats),
        centrality,
        analytics.weak_components,
        analytics.strong_components,
    )


@router.post(
    "/analyze",
    response_model=AnalyzeResponse,
    status_code=status.HTTP_200_OK,
    summary="Statistics and centrality analytics for a graph",
)
async def analyze_graph(
    body: GraphRequest,
    _key: str = Depends(require_api_key),
) -> AnalyzeResponse:
    graph, skipped = body.build()

    loop = asyncio.get_running_loop()
    stats, complex_stats, centrality, weak, strong = await loop.run_in_executor(
        None, _analyze_sync, graph
    )

    logger.info(
        "graph_analyze_served",
        nodes=stats.node_count,
        edges=stats.edge_count,
        triangles=stats.triangle_count,
    )
    return AnalyzeResponse(
        stats=stats,
        complex_stats=complex_stats,
        centrality=centrality,
        weak_components=weak,
        strong_components=strong,
        skipped_edges=[SkippedEdgeOut.from_edge(e) for e in skipped],
    )


@router.post(
    "/query",
    response_model=GraphQueryResponse,
    status_code=status.HTTP_200_OK,
    summary="Causal traversals from one node",
)
async def query_graph(
    body: GraphQueryRequest,
    _key: str = Depends(require_api_key),
) -> GraphQueryResponse:
    graph, _ = body.build()
    for node_id in filter(None, (body.node_id, body.target_id)):
        if not graph.has_node(node_id):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Node {node_id} not found.",
            )

    def ids(nodes) -> list[str]:
        return [n.id for n in nodes]

    response = GraphQueryResponse(
        node_id=body.node_id,
        causes=ids(graph.find_causes(body.node_id)),
        effects=ids(graph.find_effects(body.node_id)),
        ancestors=ids(graph.find_ancestors(body.node_id)),
        descendants=ids(graph.find_descendants(body.node_id)),
        root_causes=ids(graph.find_root_causes(body.node_id)),
        ultimate_effects=ids(graph.find_ultimate_effects(body.node_id)),
    )
    if body.target_id:
        response.shortest_path = graph.shortest_path(body.node_id, body.target_id)
        response.causal_paths = graph.causal_paths(body.node_id, body.target_id, body.max_depth)

    logger.info(
        "graph_query_served",
        node_id=body.node_id,
        ancestors=len(response.ancestors),
        descendants=len(response.descendants),
    )
    return response
