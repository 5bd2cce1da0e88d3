from typing import Any, Literal

from pydantic import Field

from causal_manifold.graph.model import NodeType
from causal_manifold.models.schemas.common import CamelModel, ComplexStatsOut, RangeIn, SkippedEdgeOut
from causal_manifold.models.schemas.embedding import TransformerOptions
from causal_manifold.models.schemas.graph import GraphRequest


class ProjectorOptions(CamelModel):
    """UMAP projector options; unset fields fall back to the defaults."""
    n_components: Literal[2, 3] | None = None
    n_neighbors: int | None = Field(default=None, ge=2)
    min_dist: float | None = Field(default=None, ge=0.0)
    metric: Literal["euclidean", "cosine", "manhattan"] | None = None
    spread: float | None = Field(default=None, gt=0.0)
    n_epochs: int | None = Field(default=None, ge=1, le=2000)
    learning_rate: float | None = Field(default=None, gt=0.0)
    negative_sample_rate: int | None = Field(default=None, ge=0)
    init: Literal["spectral", "random"] | None = None
    random_state: int | None = None

    def overrides(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ProjectionRequest(CamelModel):
    """Vectors keyed by id; the response keeps the same key order."""
    embeddings: dict[str, list[float]]
    config: ProjectorOptions | None = None
    range: RangeIn | None = None


class ProjectionResponse(CamelModel):
    coordinates: dict[str, list[float]]
    n_components: int
    n_epochs: int
    epochs_completed: int
    cancelled: bool = False


class ManifoldRequest(GraphRequest):
    """Graph and embeddings to refine, project and normalise in one call."""
    embeddings: dict[str, list[float]] = Field(default_factory=dict)
    transformer: TransformerOptions | None = None
    projector: ProjectorOptions | None = None
    range: RangeIn | None = None


class ManifoldPoint(CamelModel):
    """One node placed in the projected space, tagged for visual encoding."""
    id: str
    label: str
    type: NodeType | None = None
    domain: str | None = None
    position: list[float]


class ManifoldResponse(CamelModel):
    success: bool = True
    points: list[ManifoldPoint]
    complex_stats: ComplexStatsOut
    skipped_edges: list[SkippedEdgeOut] = Field(default_factory=list)
    n_components: int
    epochs_completed: int
    cancelled: bool = False
