from typing import Any

from pydantic import Field

from causal_manifold.models.schemas.common import CamelModel, ComplexStatsOut, SkippedEdgeOut
from causal_manifold.models.schemas.graph import GraphRequest


class TransformerOptions(CamelModel):
    """Geometric transformer options; unset fields fall back to the defaults."""
    embedding_dim: int | None = Field(default=None, ge=1, description="Defaults to the supplied vectors' length")
    hidden_dim: int | None = Field(default=None, ge=1)
    num_heads: int | None = Field(default=None, ge=1)
    num_layers: int | None = Field(default=None, ge=1)
    use_layer_norm: bool | None = None
    output_dim: int | None = Field(default=None, ge=1, description="Defaults to embedding_dim")
    seed: int | None = None

    def overrides(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ComputeRequest(GraphRequest):
    """Graph, per-node embeddings and optional transformer options."""
    embeddings: dict[str, list[float]] = Field(default_factory=dict)
    config: TransformerOptions | None = None


class ComputeResponse(CamelModel):
    success: bool = True
    refined_embeddings: dict[str, list[float]]
    complex_stats: ComplexStatsOut
    skipped_edges: list[SkippedEdgeOut] = Field(default_factory=list)
    config: TransformerOptions


class ComputeInfoResponse(CamelModel):
    """Describes POST /embeddings/compute and its default options."""
    endpoint: str
    method: str
    description: str
    default_config: TransformerOptions
    request_fields: dict[str, str]
