"""
tests/unit/test_postprocess.py

Unit tests for causal_manifold.embeddings.postprocess.

Coverage
--------
  - Per-axis min / max land exactly on the requested bounds
  - Constant axis maps to the midpoint
  - Default range comes from settings ([-50, 50])
  - Invalid range, non-finite and malformed input rejected
  - Input is not modified
  - projections_to_map keeps caller id order and rejects length mismatch
  - normalized_projection_map composes both steps
"""
from __future__ import annotations

import numpy as np
import pytest

from causal_manifold.embeddings.postprocess import (
    normalize_projection,
    normalized_projection_map,
    projections_to_map,
    resolve_range,
)
from causal_manifold.errors import ConfigurationError, EmbeddingDimensionError, NonFiniteInputError


class TestNormalizeProjection:
    def test_extremes_hit_bounds_exactly(self) -> None:
        rng = np.random.default_rng(5)
        coords = rng.normal(scale=3.7, size=(25, 3))
        out = normalize_projection(coords, -50.0, 50.0)
        assert out.min(axis=0).tolist() == [-50.0, -50.0, -50.0]
        assert out.max(axis=0).tolist() == [50.0, 50.0, 50.0]

    def test_awkward_range_still_exact(self) -> None:
        coords = [[0.1, 7.0], [0.7, -3.3], [0.3, 1.1]]
        out = normalize_projection(coords, -0.3, 1.7)
        assert out[:, 0].min() == -0.3 and out[:, 0].max() == 1.7
        assert out[:, 1].min() == -0.3 and out[:, 1].max() == 1.7

    def test_linear_in_between(self) -> None:
        out = normalize_projection([[0.0], [1.0], [4.0]], 0.0, 100.0)
        assert out[:, 0].tolist() == pytest.approx([0.0, 25.0, 100.0])

    def test_constant_axis_maps_to_midpoint(self) -> None:
        out = normalize_projection([[1.0, 2.0], [1.0, 5.0], [1.0, 9.0]], -50.0, 50.0)
        assert out[:, 0].tolist() == [0.0, 0.0, 0.0]
        assert out[:, 1].min() == -50.0

    def test_defaults_from_settings(self) -> None:
        out = normalize_projection([[0.0, 1.0], [2.0, 3.0]])
        assert out.min() == -50.0
        assert out.max() == 50.0

    def test_input_untouched(self) -> None:
        coords = np.array([[0.0, 1.0], [2.0, 3.0]])
        normalize_projection(coords)
        assert coords.tolist() == [[0.0, 1.0], [2.0, 3.0]]

    @pytest.mark.parametrize("bounds", [(1.0, 1.0), (5.0, -5.0)])
    def test_invalid_range(self, bounds: tuple[float, float]) -> None:
        with pytest.raises(ConfigurationError):
            normalize_projection([[0.0], [1.0]], *bounds)

    def test_non_finite_rejected(self) -> None:
        with pytest.raises(NonFiniteInputError):
            normalize_projection([[0.0], [float("inf")]])

    def test_one_dimensional_input_rejected(self) -> None:
        with pytest.raises(EmbeddingDimensionError):
            normalize_projection([0.0, 1.0])

    def test_resolve_range_fills_missing_bound(self) -> None:
        assert resolve_range(None, 10.0) == (-50.0, 10.0)


class TestProjectionsToMap:
    def test_keeps_caller_order(self) -> None:
        mapping = projections_to_map(["z", "a", "m"], [[1, 2], [3, 4], [5, 6]])
        assert list(mapping) == ["z", "a", "m"]
        assert mapping["a"] == (3.0, 4.0)

    def test_length_mismatch(self) -> None:
        with pytest.raises(ValueError):
            projections_to_map(["a"], [[1, 2], [3, 4]])

    def test_normalized_map(self) -> None:
        mapping = normalized_projection_map(["a", "b"], [[0.0, 5.0], [1.0, 5.0]], -1.0, 1.0)
        assert mapping == {"a": (-1.0, 0.0), "b": (1.0, 0.0)}
