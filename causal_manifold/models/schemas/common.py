from dataclasses import asdict

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model: snake_case attributes, camelCase on the wire."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RangeIn(CamelModel):
    """Target coordinate range for normalised projections."""
    min: float = Field(default=-50.0, description="Lower bound of every axis")
    max: float = Field(default=50.0, description="Upper bound of every axis")


class ComplexStatsOut(CamelModel):
    """Statistics of the simplicial complex built from a graph."""
    num_vertices: int
    num_edges: int
    num_triangles: int
    avg_degree: float
    avg_clustering: float
    density: float

    @classmethod
    def from_stats(cls, stats) -> "ComplexStatsOut":
        return cls(**asdict(stats))


class SkippedEdgeOut(CamelModel):
    """An edge dropped during graph assembly because an endpoint was missing."""
    id: str
    source: str
    target: str

    @classmethod
    def from_edge(cls, edge) -> "SkippedEdgeOut":
        return cls(id=edge.id, source=edge.source, target=edge.target)
