"""
causal_manifold/embeddings/projector.py

UMAP-style manifold projection of N high-dimensional vectors into 2 or 3
components.

Stages
------
1. Neighbour graph    k = min(n_neighbors, N - 1) nearest neighbours per
                      point.  Exact pairwise distances up to
                      _EXACT_KNN_LIMIT points, sklearn NearestNeighbors
                      above it.  Ties keep ascending distance, then input
                      order.
2. Calibration        per-point rho (distance to the local_connectivity-th
                      neighbour) and sigma found by bisection so that
                      sum_j exp(-(d_ij - rho_i) / sigma_i) = log2(k).
3. Symmetrisation     fuzzy union  P + Pᵀ − P ∘ Pᵀ.
4. Initial layout     spectral (normalised Laplacian eigenvectors) when the
                      graph is connected and large enough, otherwise uniform
                      random.  Seeded by random_state.
5. Optimisation       n_epochs of edge-sampled attraction and negative-sampled
                      repulsion under the kernel 1 / (1 + a·d^(2b)), with a
                      linearly decaying learning rate.  Each epoch applies its
                      updates as one vectorised batch.
6. Output             (N, n_components) array in input order.

Inputs are first divided by the power of two that brings max |x| into
[0.5, 1), so very large or very small magnitudes neither overflow nor
underflow while distances keep their order.

Progress is reported as (percent, message).  A CancellationToken is polled
at every epoch boundary; once set, the projector stops and returns the
layout of the last completed epoch with ``cancelled=True``.  All input
checks run before any of the above.
"""
from __future__ import annotations

import asyncio
from dataclasses import asdict, dataclass, fields, replace
from functools import lru_cache
from typing import Any, Sequence

import numpy as np
import scipy.sparse
import scipy.sparse.linalg
import structlog
from scipy.optimize import curve_fit
from scipy.sparse.csgraph import connected_components, laplacian
from sklearn.metrics import pairwise_distances
from sklearn.neighbors import NearestNeighbors

from causal_manifold.config import settings
from causal_manifold.embeddings.progress import (
    CancellationToken,
    ProgressCallback,
    progress_or_noop,
    threadsafe_progress,
)
from causal_manifold.errors import (
    ConfigurationError,
    EmbeddingDimensionError,
    InsufficientPointsError,
    NonFiniteInputError,
)

logger = structlog.get_logger(__name__)

METRICS: tuple[str, ...] = ("euclidean", "cosine", "manhattan")
INITS: tuple[str, ...] = ("spectral", "random")

_EXACT_KNN_LIMIT = 4096
_DENSE_EIGEN_LIMIT = 2000
_SMOOTH_K_TOLERANCE = 1e-5
_MIN_K_DIST_SCALE = 1e-3
_BISECTION_STEPS = 64
_GRAD_CLIP = 4.0


def _is_int_at_least(value: Any, minimum: int) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= minimum


def unit_scale(x: np.ndarray) -> np.ndarray:
    """Divide *x* by the power of two that brings max |x| into [0.5, 1).

    Exact for normal floats, so neighbour order and ties are unchanged while
    squared distances can no longer overflow or underflow.
    """
    peak = float(np.abs(x).max()) if x.size else 0.0
    if peak == 0.0:
        return x
    _, exponent = np.frexp(peak)
    return np.ldexp(x, -int(exponent))


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProjectorConfig:
    """UMAP projector configuration.

    Attributes:
        n_components:         Output dimensionality, 2 or 3 (default 3).
        n_neighbors:          Local neighbourhood size (default 15).
        min_dist:             How tightly close points may pack (default 0.1).
        metric:               euclidean | cosine | manhattan.
        spread:               Overall scale of the layout (default 1.0).
        n_epochs:             Optimisation epochs; None picks 500 for N <= 10 000
                              and 200 above.
        learning_rate:        Initial step size, decayed linearly to zero.
        negative_sample_rate: Repulsive samples per attractive sample.
        init:                 spectral | random.
        local_connectivity:   Neighbours assumed fully connected to each point.
        random_state:         Seed for initialisation and negative sampling.
    """

    n_components: int = 3
    n_neighbors: int = 15
    min_dist: float = 0.1
    metric: str = "euclidean"
    spread: float = 1.0
    n_epochs: int | None = None
    learning_rate: float = 1.0
    negative_sample_rate: int = 5
    init: str = "spectral"
    local_connectivity: float = 1.0
    random_state: int = 42

    def __post_init__(self) -> None:
        if self.n_components not in (2, 3):
            raise ConfigurationError(f"n_components must be 2 or 3, got {self.n_components!r}")
        if not _is_int_at_least(self.n_neighbors, 2):
            raise ConfigurationError(f"n_neighbors must be an integer >= 2, got {self.n_neighbors!r}")
        if self.metric not in METRICS:
            raise ConfigurationError(f"metric must be one of {', '.join(METRICS)}, got {self.metric!r}")
        if self.init not in INITS:
            raise ConfigurationError(f"init must be one of {', '.join(INITS)}, got {self.init!r}")
        if not self.spread > 0:
            raise ConfigurationError(f"spread must be positive, got {self.spread!r}")
        if not 0 <= self.min_dist <= self.spread:
            raise ConfigurationError(
                f"min_dist must lie in [0, spread={self.spread}], got {self.min_dist!r}"
            )
        if self.n_epochs is not None and not _is_int_at_least(self.n_epochs, 1):
            raise ConfigurationError(f"n_epochs must be a positive integer, got {self.n_epochs!r}")
        if not self.learning_rate > 0:
            raise ConfigurationError(f"learning_rate must be positive, got {self.learning_rate!r}")
        if not _is_int_at_least(self.negative_sample_rate, 0):
            raise ConfigurationError(
                f"negative_sample_rate must be a non-negative integer, got {self.negative_sample_rate!r}"
            )
        if not self.local_connectivity >= 0:
            raise ConfigurationError(
                f"local_connectivity must be non-negative, got {self.local_connectivity!r}"
            )

    @classmethod
    def from_settings(cls) -> ProjectorConfig:
        return cls(
            n_components=settings.umap_n_components,
            n_neighbors=settings.umap_n_neighbors,
            min_dist=settings.umap_min_dist,
            metric=settings.umap_metric,
            spread=settings.umap_spread,
            random_state=settings.umap_random_state,
        )

    def with_overrides(self, **overrides: Any) -> ProjectorConfig:
        """Return a copy with the non-None *overrides* applied."""
        known = {f.name for f in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ConfigurationError(f"Unknown projector option(s): {', '.join(unknown)}")
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def epochs_for(self, n_points: int) -> int:
        if self.n_epochs is not None:
            return self.n_epochs
        return 500 if n_points <= 10_000 else 200

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class ProjectionResult:
    """Output of ManifoldProjector.fit_transform()."""

    coordinates: np.ndarray   # (N, n_components), input order
    n_epochs: int             # epochs requested
    epochs_completed: int     # epochs actually run
    cancelled: bool = False

    def to_list(self) -> list[list[float]]:
        return self.coordinates.tolist()


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate_vectors(vectors: Sequence[Sequence[float]] | np.ndarray) -> np.ndarray:
    """Return *vectors* as a float (N, D) array or raise before any work is done.

    Raises:
        InsufficientPointsError: fewer than two vectors.
        EmbeddingDimensionError: vectors of different or zero length.
        NonFiniteInputError:     any NaN or infinite value.
    """
    if isinstance(vectors, np.ndarray):
        if vectors.ndim != 2:
            raise EmbeddingDimensionError(f"Expected a 2-D array, got shape {vectors.shape}")
        rows = vectors
    else:
        rows = list(vectors)
        lengths = {len(row) for row in rows}
        if len(lengths) > 1:
            raise EmbeddingDimensionError(
                f"Inconsistent embedding dimensions: {', '.join(map(str, sorted(lengths)))}"
            )
    if len(rows) < 2:
        raise InsufficientPointsError(f"Need at least 2 vectors to project, got {len(rows)}")

    x = np.asarray(rows, dtype=float)
    if x.shape[1] == 0:
        raise EmbeddingDimensionError("Embedding vectors must not be empty")
    if not np.isfinite(x).all():
        bad = int(np.flatnonzero(~np.isfinite(x).all(axis=1))[0])
        raise NonFiniteInputError(f"Vector at position {bad} contains NaN or infinite values")
    return x


# ---------------------------------------------------------------------------
# Stage 1: nearest neighbours
# ---------------------------------------------------------------------------

def nearest_neighbors(x: np.ndarray, k: int, metric: str) -> tuple[np.ndarray, np.ndarray]:
    """Return (indices, distances), each (N, k), self excluded, nearest first."""
    n = x.shape[0]
    if n <= _EXACT_KNN_LIMIT:
        dist = np.maximum(pairwise_distances(x, metric=metric), 0.0)
        np.fill_diagonal(dist, np.inf)
        indices = np.argsort(dist, axis=1, kind="stable")[:, :k]
        return indices, np.take_along_axis(dist, indices, axis=1)

    nn = NearestNeighbors(n_neighbors=k + 1, metric=metric).fit(x)
    dist, idx = nn.kneighbors(x)
    keep = idx != np.arange(n)[:, None]
    # Rows where self was not returned first (duplicates) drop their last column instead.
    keep[keep.all(axis=1), -1] = False
    idx = idx[keep].reshape(n, k)
    dist = np.maximum(dist[keep].reshape(n, k), 0.0)
    order = np.lexsort((idx, dist), axis=1)
    return np.take_along_axis(idx, order, axis=1), np.take_along_axis(dist, order, axis=1)


# ---------------------------------------------------------------------------
# Stage 2: local connectivity calibration
# ---------------------------------------------------------------------------

def smooth_knn_dist(
    distances: np.ndarray,
    k: int,
    local_connectivity: float = 1.0,
) -> tuple[np.ndarray, np.ndarray]:
    """Calibrate (sigmas, rhos) so each row's smoothed weights sum to log2(k).

    All rows are bisected together; a row stops moving once it is within
    tolerance of the target.
    """
    n = distances.shape[0]
    target = np.log2(k)

    rhos = np.zeros(n)
    index = int(np.floor(local_connectivity))
    interp = local_connectivity - index
    for i in range(n):
        non_zero = distances[i][distances[i] > 0.0]
        if non_zero.size == 0:
            continue
        if non_zero.size >= local_connectivity:
            if index > 0:
                rhos[i] = non_zero[index - 1]
                if interp > _SMOOTH_K_TOLERANCE:
                    rhos[i] += interp * (non_zero[index] - non_zero[index - 1])
            else:
                rhos[i] = interp * non_zero[0]
        else:
            rhos[i] = non_zero.max()

    lo = np.zeros(n)
    hi = np.full(n, np.inf)
    mid = np.ones(n)
    active = np.ones(n, dtype=bool)
    shifted = np.maximum(distances - rhos[:, None], 0.0)
    for _ in range(_BISECTION_STEPS):
        psum = np.exp(-shifted / mid[:, None]).sum(axis=1)
        active &= np.abs(psum - target) >= _SMOOTH_K_TOLERANCE
        if not active.any():
            break
        over = active & (psum > target)
        under = active & ~(psum > target)
        hi[over] = mid[over]
        mid[over] = (lo[over] + hi[over]) / 2.0
        lo[under] = mid[under]
        unbounded = under & np.isinf(hi)
        mid[unbounded] *= 2.0
        bounded = under & ~np.isinf(hi)
        mid[bounded] = (lo[bounded] + hi[bounded]) / 2.0

    mean_all = distances.mean()
    floor = np.where(rhos > 0.0, distances.mean(axis=1), mean_all) * _MIN_K_DIST_SCALE
    sigmas = np.maximum(mid, floor)
    return sigmas, rhos


# ---------------------------------------------------------------------------
# Stage 3: fuzzy simplicial set
# ---------------------------------------------------------------------------

def membership_strengths(
    indices: np.ndarray,
    distances: np.ndarray,
    sigmas: np.ndarray,
    rhos: np.ndarray,
) -> scipy.sparse.csr_matrix:
    """Directed membership p(i -> j) as an (N, N) sparse matrix."""
    n, k = indices.shape
    shifted = distances - rhos[:, None]
    vals = np.where(shifted <= 0.0, 1.0, np.exp(-np.maximum(shifted, 0.0) / sigmas[:, None]))
    rows = np.repeat(np.arange(n), k)
    return scipy.sparse.csr_matrix((vals.ravel(), (rows, indices.ravel())), shape=(n, n))


def fuzzy_union(directed: scipy.sparse.csr_matrix) -> scipy.sparse.csr_matrix:
    """Probabilistic union  p(u→v) + p(v→u) − p(u→v)·p(v→u)."""
    transpose = directed.transpose().tocsr()
    union = directed + transpose - directed.multiply(transpose)
    union = scipy.sparse.csr_matrix(union)
    union.eliminate_zeros()
    return union


def fuzzy_simplicial_set(
    x: np.ndarray,
    n_neighbors: int,
    metric: str = "euclidean",
    local_connectivity: float = 1.0,
) -> scipy.sparse.csr_matrix:
    """Symmetric fuzzy neighbour graph of the rows of *x*."""
    k = min(n_neighbors, x.shape[0] - 1)
    indices, distances = nearest_neighbors(x, k, metric)
    sigmas, rhos = smooth_knn_dist(distances, k, local_connectivity)
    return fuzzy_union(membership_strengths(indices, distances, sigmas, rhos))


# ---------------------------------------------------------------------------
# Stage 4: initial layout
# ---------------------------------------------------------------------------

@lru_cache(maxsize=32)
def find_ab_params(spread: float, min_dist: float) -> tuple[float, float]:
    """Fit (a, b) so 1 / (1 + a·x^(2b)) follows the min_dist/spread target curve."""
    def curve(x: np.ndarray, a: float, b: float) -> np.ndarray:
        return 1.0 / (1.0 + a * x ** (2 * b))

    xv = np.linspace(0, spread * 3, 300)
    yv = np.where(xv < min_dist, 1.0, np.exp(-(xv - min_dist) / spread))
    params, _ = curve_fit(curve, xv, yv)
    return float(params[0]), float(params[1])


def spectral_layout(graph: scipy.sparse.csr_matrix, dim: int) -> np.ndarray | None:
    """Eigenvectors 1..dim of the normalised Laplacian, or None when unusable."""
    n = graph.shape[0]
    if n <= dim + 1:
        return None
    n_parts, _ = connected_components(graph, directed=False)
    if n_parts > 1:
        return None

    lap = laplacian(graph, normed=True)
    if n <= _DENSE_EIGEN_LIMIT:
        _, vecs = np.linalg.eigh(lap.toarray())
        layout = vecs[:, 1 : dim + 1]
    else:
        try:
            vals, vecs = scipy.sparse.linalg.eigsh(
                lap, k=dim + 1, which="SM", tol=1e-4, v0=np.ones(n), maxiter=n * 5
            )
        except scipy.sparse.linalg.ArpackError:
            logger.warning("umap_spectral_init_failed", n_points=n)
            return None
        layout = vecs[:, np.argsort(vals)[1 : dim + 1]]

    # Eigenvector signs are arbitrary; pin them for reproducibility.
    pivots = np.abs(layout).argmax(axis=0)
    signs = np.sign(layout[pivots, np.arange(layout.shape[1])])
    signs[signs == 0] = 1.0
    return layout * signs


def initial_layout(
    graph: scipy.sparse.csr_matrix,
    dim: int,
    init: str,
    rng: np.random.Generator,
) -> np.ndarray:
    n = graph.shape[0]
    layout = spectral_layout(graph, dim) if init == "spectral" else None
    if layout is None:
        return rng.uniform(-10.0, 10.0, size=(n, dim))

    expansion = 10.0 / max(np.abs(layout).max(), 1e-12)
    layout = layout * expansion + rng.normal(scale=1e-4, size=(n, dim))
    lo = layout.min(axis=0)
    span = layout.max(axis=0) - lo
    span[span == 0] = 1.0
    return 10.0 * (layout - lo) / span


# ---------------------------------------------------------------------------
# Stage 5: optimisation
# ---------------------------------------------------------------------------

def make_epochs_per_sample(weights: np.ndarray, n_epochs: int) -> np.ndarray:
    """How often (in epochs) each edge is sampled; -1 means never."""
    result = np.full(weights.shape[0], -1.0)
    n_samples = n_epochs * (weights / weights.max())
    positive = n_samples > 0
    result[positive] = n_epochs / n_samples[positive]
    return result


def _clip(grad: np.ndarray) -> np.ndarray:
    return np.clip(grad, -_GRAD_CLIP, _GRAD_CLIP)


class _LayoutOptimizer:
    """Edge-sampled SGD state for one projection run."""

    def __init__(
        self,
        embedding: np.ndarray,
        graph: scipy.sparse.csr_matrix,
        n_epochs: int,
        a: float,
        b: float,
        config: ProjectorConfig,
        rng: np.random.Generator,
    ) -> None:
        coo = graph.tocoo()
        self.embedding = embedding
        self.head = coo.row.astype(np.intp)
        self.tail = coo.col.astype(np.intp)
        self.n_epochs = n_epochs
        self.a = a
        self.b = b
        self.learning_rate = config.learning_rate
        self.alpha = config.learning_rate
        self.rng = rng
        self.n_vertices = embedding.shape[0]

        self.epochs_per_sample = make_epochs_per_sample(coo.data, n_epochs)
        self.epoch_of_next_sample = self.epochs_per_sample.copy()
        # Rate 0 disables repulsion; the negative-sample counters are never read.
        self.negative_sampling = config.negative_sample_rate > 0
        if self.negative_sampling:
            self.epochs_per_negative_sample = self.epochs_per_sample / config.negative_sample_rate
            self.epoch_of_next_negative_sample = self.epochs_per_negative_sample.copy()

    def _attract(self, heads: np.ndarray, tails: np.ndarray) -> None:
        a, b = self.a, self.b
        diff = self.embedding[heads] - self.embedding[tails]
        d2 = (diff ** 2).sum(axis=1)
        safe = np.maximum(d2, np.finfo(float).tiny)
        coeff = np.where(d2 > 0.0, (-2.0 * a * b * safe ** (b - 1.0)) / (a * safe ** b + 1.0), 0.0)
        step = self.alpha * _clip(coeff[:, None] * diff)
        np.add.at(self.embedding, heads, step)
        np.add.at(self.embedding, tails, -step)

    def _repel(self, heads: np.ndarray, counts: np.ndarray) -> None:
        a, b = self.a, self.b
        rep_heads = np.repeat(heads, counts)
        if rep_heads.size == 0:
            return
        rep_tails = self.rng.integers(0, self.n_vertices, size=rep_heads.size)
        diff = self.embedding[rep_heads] - self.embedding[rep_tails]
        d2 = (diff ** 2).sum(axis=1)
        coeff = np.where(d2 > 0.0, 2.0 * b / ((0.001 + d2) * (a * d2 ** b + 1.0)), 0.0)
        grad = np.where(coeff[:, None] > 0.0, _clip(coeff[:, None] * diff), _GRAD_CLIP)
        grad[rep_tails == rep_heads] = 0.0
        np.add.at(self.embedding, rep_heads, self.alpha * grad)

    def _negative_step(self, n: int, due: np.ndarray, heads: np.ndarray) -> None:
        lag = n - self.epoch_of_next_negative_sample[due]
        counts = np.maximum(np.floor(lag / self.epochs_per_negative_sample[due]), 0).astype(np.intp)
        self._repel(heads, counts)
        self.epoch_of_next_negative_sample[due] += counts * self.epochs_per_negative_sample[due]

    def run_epoch(self, n: int) -> None:
        due = (self.epochs_per_sample > 0) & (self.epoch_of_next_sample <= n)
        if due.any():
            heads, tails = self.head[due], self.tail[due]
            self._attract(heads, tails)
            self.epoch_of_next_sample[due] += self.epochs_per_sample[due]
            if self.negative_sampling:
                self._negative_step(n, due, heads)

        self.alpha = self.learning_rate * (1.0 - float(n + 1) / float(self.n_epochs))


# ---------------------------------------------------------------------------
# Projector
# ---------------------------------------------------------------------------

class ManifoldProjector:
    """Project vectors to 2-D or 3-D while preserving local topology."""

    def __init__(self, config: ProjectorConfig | None = None) -> None:
        self.config = config or ProjectorConfig.from_settings()

    def fit_transform(
        self,
        vectors: Sequence[Sequence[float]] | np.ndarray,
        on_progress: ProgressCallback | None = None,
        cancel: CancellationToken | None = None,
    ) -> ProjectionResult:
        """Project *vectors* and return one coordinate row per input vector.

        Args:
            vectors:     N >= 2 finite vectors of one common length.
            on_progress: Optional callback receiving (percent, message).
            cancel:      Optional token polled at every epoch boundary.

        Returns:
            ProjectionResult.  When cancelled, ``coordinates`` holds the
            layout after the last completed epoch.

        Raises:
            InsufficientPointsError, EmbeddingDimensionError,
            NonFiniteInputError: raised before any optimisation work.
        """
        cfg = self.config
        report = progress_or_noop(on_progress)
        x = unit_scale(validate_vectors(vectors))
        n = x.shape[0]
        n_epochs = cfg.epochs_for(n)
        k = min(cfg.n_neighbors, n - 1)
        log = logger.bind(n_points=n, dim=x.shape[1], n_neighbors=k, n_components=cfg.n_components)

        report(10.0, "Initializing UMAP...")
        rng = np.random.default_rng(cfg.random_state)
        a, b = find_ab_params(cfg.spread, cfg.min_dist)

        report(30.0, "Computing nearest neighbors...")
        graph = fuzzy_simplicial_set(x, k, cfg.metric, cfg.local_connectivity)
        if graph.nnz:
            graph.data[graph.data < graph.data.max() / float(n_epochs)] = 0.0
            graph.eliminate_zeros()

        embedding = initial_layout(graph, cfg.n_components, cfg.init, rng)

        report(40.0, f"Running {n_epochs} optimization epochs...")
        optimizer = _LayoutOptimizer(embedding, graph, n_epochs, a, b, cfg, rng)
        update_every = max(1, n_epochs // 20)
        completed = 0
        cancelled = False
        for epoch in range(n_epochs):
            if cancel is not None and cancel.cancelled:
                cancelled = True
                break
            optimizer.run_epoch(epoch)
            completed = epoch + 1
            if completed % update_every == 0 or completed == n_epochs:
                report(40.0 + 50.0 * completed / n_epochs, f"Epoch {completed}/{n_epochs}")

        if cancelled:
            report(40.0 + 50.0 * completed / n_epochs, f"Cancelled after {completed}/{n_epochs} epochs")
            log.info("umap_cancelled", epochs_completed=completed, n_epochs=n_epochs)
        else:
            report(95.0, "Extracting embeddings...")
            log.info("umap_complete", n_epochs=n_epochs, edges=int(graph.nnz))
        report(100.0, "Complete" if not cancelled else "Cancelled")

        return ProjectionResult(
            coordinates=optimizer.embedding.copy(),
            n_epochs=n_epochs,
            epochs_completed=completed,
            cancelled=cancelled,
        )

    async def fit_transform_async(
        self,
        vectors: Sequence[Sequence[float]] | np.ndarray,
        on_progress: ProgressCallback | None = None,
        cancel: CancellationToken | None = None,
    ) -> ProjectionResult:
        """Run fit_transform() in a thread pool to avoid blocking the event loop."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, self.fit_transform, vectors, threadsafe_progress(loop, on_progress), cancel
        )
