"""Manifold pipeline orchestrator.

Chains the core stages in order:
  1. Graph assembly          (graph/model.py)
  2. Embedding validation    (this module)
  3. Complex construction    (embeddings/simplicial.py)
  4. Geometric refinement    (embeddings/transformer.py)
  5. Manifold projection     (embeddings/projector.py)
  6. Range normalisation     (embeddings/postprocess.py)

Every stage has a synchronous entry point meant for a thread-pool worker and
an async wrapper that offloads it with run_in_executor.  Progress callbacks
passed to the async wrappers are delivered on the caller's event loop.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass
from functools import partial
from typing import Any, Iterable, Mapping, Sequence

import numpy as np
import structlog

from causal_manifold.config import settings
from causal_manifold.embeddings.postprocess import Projection, normalized_projection_map, resolve_range
from causal_manifold.embeddings.progress import (
    CancellationToken,
    ProgressCallback,
    progress_or_noop,
    threadsafe_progress,
)
from causal_manifold.embeddings.projector import ManifoldProjector, ProjectorConfig
from causal_manifold.embeddings.simplicial import ComplexStats
from causal_manifold.embeddings.transformer import TransformerConfig, transformer_scope
from causal_manifold.errors import (
    EmbeddingDimensionError,
    InputValidationError,
    InsufficientPointsError,
    MissingEmbeddingError,
    NonFiniteInputError,
)
from causal_manifold.graph.model import CausalGraph, Edge, Node

logger = structlog.get_logger(__name__)


@dataclass
class RefinementResult:
    """Refined embeddings plus the statistics of the complex they were refined over."""

    refined: dict[str, list[float]]
    complex_stats: ComplexStats
    config: TransformerConfig


@dataclass
class ProjectionOutcome:
    """Normalised projection keyed by node id."""

    coordinates: Projection
    n_components: int
    n_epochs: int
    epochs_completed: int
    cancelled: bool = False


@dataclass
class ManifoldResult:
    """Outputs of the end-to-end run."""

    refinement: RefinementResult
    projection: ProjectionOutcome


# ── Stage helpers ────────────────────────────────────────


def build_graph(nodes: Iterable[Node], edges: Iterable[Edge]) -> tuple[CausalGraph, list[Edge]]:
    """Assemble a graph, skipping edges whose endpoints are absent.

    Duplicate node or edge ids still raise.
    """
    graph = CausalGraph()
    for node in nodes:
        graph.add_node(node)
    skipped = graph.add_edges(edges, skip_missing=True)
    return graph, skipped


def check_node_count(count: int) -> None:
    """Enforce the settings.min_nodes .. settings.max_nodes request bounds."""
    if count < settings.min_nodes:
        raise InsufficientPointsError(f"Need at least {settings.min_nodes} nodes, got {count}")
    if count > settings.max_nodes:
        raise InputValidationError(f"At most {settings.max_nodes} nodes are accepted, got {count}")


def validate_embeddings(
    node_ids: Sequence[str],
    embeddings: Mapping[str, Sequence[float]],
) -> int:
    """Check that *embeddings* covers *node_ids* with uniform finite vectors.

    Returns:
        The common embedding dimension.

    Raises:
        InsufficientPointsError: fewer than settings.min_nodes nodes.
        InputValidationError:    more than settings.max_nodes nodes.
        MissingEmbeddingError:   a node has no vector.
        EmbeddingDimensionError: vectors of different or zero length.
        NonFiniteInputError:     a NaN or infinite value.
    """
    check_node_count(len(node_ids))

    missing = [nid for nid in node_ids if nid not in embeddings]
    if missing:
        raise MissingEmbeddingError(missing)

    lengths = {len(embeddings[nid]) for nid in node_ids}
    if len(lengths) > 1:
        raise EmbeddingDimensionError(
            f"Inconsistent embedding dimensions: {', '.join(map(str, sorted(lengths)))}"
        )
    dim = lengths.pop()
    if dim == 0:
        raise EmbeddingDimensionError("Embedding vectors must not be empty")

    for nid in node_ids:
        if not np.isfinite(np.asarray(embeddings[nid], dtype=float)).all():
            raise NonFiniteInputError(f"Embedding for node '{nid}' contains NaN or infinite values")
    return dim


def resolve_transformer_config(
    embedding_dim: int,
    overrides: Mapping[str, Any] | None = None,
) -> TransformerConfig:
    """Settings defaults, then the input dimension, then caller overrides."""
    explicit = {k: v for k, v in (overrides or {}).items() if v is not None}
    explicit.setdefault("embedding_dim", embedding_dim)
    return TransformerConfig.from_settings().with_overrides(**explicit)


def _scaled(report: ProgressCallback, start: float, end: float) -> ProgressCallback:
    def inner(pct: float, msg: str) -> None:
        report(start + (end - start) * pct / 100.0, msg)

    return inner


# ── Refinement ───────────────────────────────────────────


def refine_embeddings_sync(
    graph: CausalGraph,
    embeddings: Mapping[str, Sequence[float]],
    config: TransformerConfig | None = None,
    on_progress: ProgressCallback | None = None,
) -> RefinementResult:
    """Validate, build the complex and refine *embeddings* over it.

    When *config* is None the settings defaults are used with embedding_dim
    taken from the input vectors.  The transformer is disposed before this
    returns or raises.
    """
    dim = validate_embeddings(graph.node_ids, embeddings)
    cfg = config or resolve_transformer_config(dim)
    log = logger.bind(nodes=graph.node_count, embedding_dim=dim)

    complex_ = graph.to_simplicial_complex()
    with transformer_scope(cfg) as transformer:
        refined = transformer.refine(complex_, embeddings, on_progress)

    stats = complex_.stats()
    log.info(
        "embeddings_refined",
        edges=stats.num_edges,
        triangles=stats.num_triangles,
        output_dim=cfg.resolved_output_dim,
    )
    return RefinementResult(refined=refined, complex_stats=stats, config=cfg)


async def refine_embeddings(
    graph: CausalGraph,
    embeddings: Mapping[str, Sequence[float]],
    config: TransformerConfig | None = None,
    on_progress: ProgressCallback | None = None,
) -> RefinementResult:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(
        None,
        refine_embeddings_sync,
        graph,
        embeddings,
        config,
        threadsafe_progress(loop, on_progress),
    )


# ── Projection ───────────────────────────────────────────


def project_embeddings_sync(
    embeddings: Mapping[str, Sequence[float]],
    config: ProjectorConfig | None = None,
    range_min: float | None = None,
    range_max: float | None = None,
    on_progress: ProgressCallback | None = None,
    cancel: CancellationToken | None = None,
) -> ProjectionOutcome:
    """Project *embeddings* and normalise the layout into [range_min, range_max].

    The returned map follows the iteration order of *embeddings*.  A
    cancelled run still maps every id, using the last completed epoch.
    Raises InputValidationError above settings.max_nodes points.
    """
    range_min, range_max = resolve_range(range_min, range_max)
    node_ids = list(embeddings)
    check_node_count(len(node_ids))
    projector = ManifoldProjector(config)
    result = projector.fit_transform([embeddings[nid] for nid in node_ids], on_progress, cancel)
    coordinates = normalized_projection_map(node_ids, result.coordinates, range_min, range_max)
    return ProjectionOutcome(
        coordinates=coordinates,
        n_components=projector.config.n_components,
        n_epochs=result.n_epochs,
        epochs_completed=result.epochs_completed,
        cancelled=result.cancelled,
    )


async def project_embeddings(
    embeddings: Mapping[str, Sequence[float]],
    config: ProjectorConfig | None = None,
    range_min: float | None = None,
    range_max: float | None = None,
    on_progress: ProgressCallback | None = None,
    cancel: CancellationToken | None = None,
) -> ProjectionOutcome:
    loop = asyncio.get_running_loop()
    job = partial(
        project_embeddings_sync,
        embeddings,
        config,
        range_min,
        range_max,
        threadsafe_progress(loop, on_progress),
        cancel,
    )
    return await loop.run_in_executor(None, job)


# ── End to end ───────────────────────────────────────────


def run_manifold_pipeline_sync(
    graph: CausalGraph,
    embeddings: Mapping[str, Sequence[float]],
    transformer_config: TransformerConfig | None = None,
    projector_config: ProjectorConfig | None = None,
    range_min: float | None = None,
    range_max: float | None = None,
    on_progress: ProgressCallback | None = None,
    cancel: CancellationToken | None = None,
) -> ManifoldResult:
    """Refine then project *embeddings* over *graph*.

    Refinement reports 0-40 % and projection 40-100 % of overall progress.
    Coordinates are keyed in graph node order.
    """
    range_min, range_max = resolve_range(range_min, range_max)
    report = progress_or_noop(on_progress)
    refinement = refine_embeddings_sync(
        graph, embeddings, transformer_config, _scaled(report, 0.0, 40.0)
    )
    ordered = {nid: refinement.refined[nid] for nid in graph.node_ids}
    projection = project_embeddings_sync(
        ordered,
        projector_config,
        range_min,
        range_max,
        _scaled(report, 40.0, 100.0),
        cancel,
    )
    logger.info(
        "manifold_pipeline_complete",
        nodes=graph.node_count,
        epochs_completed=projection.epochs_completed,
        cancelled=projection.cancelled,
    )
    return ManifoldResult(refinement=refinement, projection=projection)


async def run_manifold_pipeline(
    graph: CausalGraph,
    embeddings: Mapping[str, Sequence[float]],
    transformer_config: TransformerConfig | None = None,
    projector_config: ProjectorConfig | None = None,
    range_min: float | None = None,
    range_max: float | None = None,
    on_progress: ProgressCallback | None = None,
    cancel: CancellationToken | None = None,
) -> ManifoldResult:
    """Async entry point; the whole run shares one thread-pool worker."""
    loop = asyncio.get_running_loop()
    job = partial(
        run_manifold_pipeline_sync,
        graph,
        embeddings,
        transformer_config,
        projector_config,
        range_min,
        range_max,
        threadsafe_progress(loop, on_progress),
        cancel,
    )
    return await loop.run_in_executor(None, job)
