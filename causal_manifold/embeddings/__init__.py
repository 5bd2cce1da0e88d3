from causal_manifold.embeddings.postprocess import (
    normalize_projection,
    normalized_projection_map,
    projections_to_map,
)
from causal_manifold.embeddings.progress import CancellationToken, ProgressCallback
from causal_manifold.embeddings.projector import ManifoldProjector, ProjectionResult, ProjectorConfig
from causal_manifold.embeddings.simplicial import (
    ClosureType,
    ComplexStats,
    EdgeSimplex,
    SimplicialComplex,
    TriangleSimplex,
    add_positional_encoding,
    build_complex,
)
from causal_manifold.embeddings.synthetic import generate_random_embeddings
from causal_manifold.embeddings.transformer import (
    GeometricTransformer,
    TransformerConfig,
    transformer_scope,
)

__all__ = [
    "normalize_projection",
    "normalized_projection_map",
    "projections_to_map",
    "CancellationToken",
    "ProgressCallback",
    "ManifoldProjector",
    "ProjectionResult",
    "ProjectorConfig",
    "ClosureType",
    "ComplexStats",
    "EdgeSimplex",
    "SimplicialComplex",
    "TriangleSimplex",
    "add_positional_encoding",
    "build_complex",
    "generate_random_embeddings",
    "GeometricTransformer",
    "TransformerConfig",
    "transformer_scope",
]
