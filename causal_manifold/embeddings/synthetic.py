"""
causal_manifold/embeddings/synthetic.py

Clustered random embeddings for demos and tests.
"""
from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from causal_manifold.errors import ConfigurationError

SAMPLE_DOMAINS: tuple[str, ...] = ("archaeology", "biology", "economics", "climate", "medicine")


@dataclass
class SyntheticEmbedding:
    concept_id: str
    label: str
    domain: str
    vector: list[float]


def generate_random_embeddings(
    count: int,
    dimension: int = 128,
    clusters: int = 3,
    seed: int | None = None,
) -> list[SyntheticEmbedding]:
    """Generate *count* vectors scattered around *clusters* random centres.

    Point i belongs to cluster ``i % clusters`` and is tagged with that
    cluster's sample domain.  Centres are drawn from U(-1, 1); points add
    U(-0.25, 0.25) jitter per component.
    """
    if count < 0:
        raise ConfigurationError(f"count must be non-negative, got {count}")
    if dimension < 1:
        raise ConfigurationError(f"dimension must be positive, got {dimension}")
    if clusters < 1:
        raise ConfigurationError(f"clusters must be positive, got {clusters}")

    rng = np.random.default_rng(seed)
    centers = rng.uniform(-1.0, 1.0, size=(clusters, dimension))
    jitter = rng.uniform(-0.25, 0.25, size=(count, dimension))

    out: list[SyntheticEmbedding] = []
    for i in range(count):
        cluster = i % clusters
        out.append(
            SyntheticEmbedding(
                concept_id=f"concept-{i}",
                label=f"Concept {i}",
                domain=SAMPLE_DOMAINS[cluster % len(SAMPLE_DOMAINS)],
                vector=(centers[cluster] + jitter[i]).tolist(),
            )
        )
    return out
