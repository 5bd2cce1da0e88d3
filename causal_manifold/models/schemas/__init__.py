from causal_manifold.models.schemas.common import CamelModel, ComplexStatsOut, RangeIn, SkippedEdgeOut
from causal_manifold.models.schemas.graph import (
    AnalyzeResponse,
    CentralityOut,
    EdgeIn,
    GraphQueryRequest,
    GraphQueryResponse,
    GraphRequest,
    GraphStatsOut,
    HubNodeOut,
    NodeIn,
)
from causal_manifold.models.schemas.embedding import (
    ComputeInfoResponse,
    ComputeRequest,
    ComputeResponse,
    TransformerOptions,
)
from causal_manifold.models.schemas.projection import (
    ManifoldPoint,
    ManifoldRequest,
    ManifoldResponse,
    ProjectionRequest,
    ProjectionResponse,
    ProjectorOptions,
)

__all__ = [
    "CamelModel",
    "ComplexStatsOut",
    "RangeIn",
    "SkippedEdgeOut",
    "AnalyzeResponse",
    "CentralityOut",
    "EdgeIn",
    "GraphQueryRequest",
    "GraphQueryResponse",
    "GraphRequest",
    "GraphStatsOut",
    "HubNodeOut",
    "NodeIn",
    "ComputeInfoResponse",
    "ComputeRequest",
    "ComputeResponse",
    "TransformerOptions",
    "ManifoldPoint",
    "ManifoldRequest",
    "ManifoldResponse",
    "ProjectionRequest",
    "ProjectionResponse",
    "ProjectorOptions",
]
