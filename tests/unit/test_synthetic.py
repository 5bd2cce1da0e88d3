"""
tests/unit/test_synthetic.py

Unit tests for causal_manifold.embeddings.synthetic.

Coverage
--------
  - Count, dimension, ids and labels
  - Round-robin cluster / domain assignment
  - Seeded output is reproducible
  - Points sit closer to their own cluster than to others
  - Invalid arguments rejected
"""
from __future__ import annotations

import numpy as np
import pytest

from causal_manifold.embeddings.synthetic import SAMPLE_DOMAINS, generate_random_embeddings
from causal_manifold.errors import ConfigurationError


class TestGenerateRandomEmbeddings:
    def test_shape_and_ids(self) -> None:
        items = generate_random_embeddings(7, dimension=4, clusters=2, seed=0)
        assert len(items) == 7
        assert items[3].concept_id == "concept-3"
        assert items[3].label == "Concept 3"
        assert {len(i.vector) for i in items} == {4}

    def test_domains_round_robin(self) -> None:
        items = generate_random_embeddings(6, dimension=2, clusters=3, seed=0)
        assert [i.domain for i in items] == [
            SAMPLE_DOMAINS[0], SAMPLE_DOMAINS[1], SAMPLE_DOMAINS[2],
            SAMPLE_DOMAINS[0], SAMPLE_DOMAINS[1], SAMPLE_DOMAINS[2],
        ]

    def test_seeded_is_reproducible(self) -> None:
        first = generate_random_embeddings(5, dimension=3, seed=42)
        second = generate_random_embeddings(5, dimension=3, seed=42)
        assert [i.vector for i in first] == [i.vector for i in second]

    def test_jitter_is_bounded(self) -> None:
        items = generate_random_embeddings(20, dimension=16, clusters=2, seed=3)
        same = np.array(items[0].vector) - np.array(items[2].vector)
        assert np.abs(same).max() <= 0.5

    @pytest.mark.parametrize("kwargs", [{"count": -1}, {"count": 3, "dimension": 0},
                                        {"count": 3, "clusters": 0}])
    def test_invalid_arguments(self, kwargs: dict) -> None:
        with pytest.raises(ConfigurationError):
            generate_random_embeddings(**kwargs)
