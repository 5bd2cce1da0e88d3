"""
causal_manifold/embeddings/postprocess.py

Projection post-processing.

normalize_projection()
    Rescale each axis independently so its minimum lands on range_min and its
    maximum on range_max.  A constant axis maps to the midpoint of the range.

projections_to_map()
    Zip node ids with coordinate rows into an id-keyed dict, in the caller's
    id order.
"""
from __future__ import annotations

from typing import Sequence

import numpy as np

from causal_manifold.config import settings
from causal_manifold.errors import ConfigurationError, EmbeddingDimensionError, NonFiniteInputError

Projection = dict[str, tuple[float, ...]]


def resolve_range(range_min: float | None = None, range_max: float | None = None) -> tuple[float, float]:
    """Fill unset bounds from settings and check that min < max."""
    default_min, default_max = settings.projection_range
    lo = default_min if range_min is None else float(range_min)
    hi = default_max if range_max is None else float(range_max)
    if not lo < hi:
        raise ConfigurationError(f"range_min ({lo}) must be less than range_max ({hi})")
    return lo, hi


def normalize_projection(
    coordinates: Sequence[Sequence[float]] | np.ndarray,
    range_min: float | None = None,
    range_max: float | None = None,
) -> np.ndarray:
    """Return a rescaled copy of *coordinates* ((N, k) array).

    Bounds default to settings.projection_range.  The per-axis extremes are
    written as the exact bounds rather than computed, so min/max comparisons
    against the requested range hold without tolerance.
    """
    lo_bound, hi_bound = resolve_range(range_min, range_max)

    coords = np.array(coordinates, dtype=float)
    if coords.ndim != 2:
        raise EmbeddingDimensionError(f"Expected an (N, k) coordinate array, got shape {coords.shape}")
    if not np.isfinite(coords).all():
        raise NonFiniteInputError("Projection contains NaN or infinite values")

    out = np.empty_like(coords)
    if coords.shape[0] == 0:
        return out

    midpoint = (lo_bound + hi_bound) / 2.0
    width = hi_bound - lo_bound
    for axis in range(coords.shape[1]):
        column = coords[:, axis]
        lo, hi = column.min(), column.max()
        if hi == lo:
            out[:, axis] = midpoint
            continue
        scaled = lo_bound + (column - lo) / (hi - lo) * width
        out[:, axis] = np.clip(scaled, lo_bound, hi_bound)
        out[column == lo, axis] = lo_bound
        out[column == hi, axis] = hi_bound
    return out


def projections_to_map(
    node_ids: Sequence[str],
    coordinates: Sequence[Sequence[float]] | np.ndarray,
) -> Projection:
    """Map each id to its coordinate tuple, preserving the order of *node_ids*."""
    rows = np.asarray(coordinates, dtype=float)
    if len(node_ids) != len(rows):
        raise ValueError(
            f"Got {len(node_ids)} node ids for {len(rows)} coordinate rows"
        )
    return {node_id: tuple(float(v) for v in row) for node_id, row in zip(node_ids, rows)}


def normalized_projection_map(
    node_ids: Sequence[str],
    coordinates: Sequence[Sequence[float]] | np.ndarray,
    range_min: float | None = None,
    range_max: float | None = None,
) -> Projection:
    """normalize_projection() followed by projections_to_map()."""
    return projections_to_map(node_ids, normalize_projection(coordinates, range_min, range_max))
