"""
causal_manifold/embeddings/transformer.py

Geometric transformer: refines node embeddings with multi-head attention
over the node's incident 1-simplices and 2-simplices.

Per layer, node v attends over one contribution per incident simplex:

  edge (v, u)        h_u + f_e · W_edge      f_e = [confidence, reciprocal, relation mix]
  triangle (v, a, b) (h_a + h_b) / 2 + f_t · W_tri
                                              f_t = [confidence, closure one-hot]

Each head scores q_v · k_c / sqrt(d_head) plus log(simplex confidence),
softmax-normalises the scores over v's contributions and sums the values.
Heads are concatenated and projected by W_o, added back to h_v (residual)
and optionally layer-normalised.  A node with no incident simplices gets a
zero aggregate, so the operation is defined for every node.

Inputs are divided by the power of two that brings max |x| into [0.5, 1)
before W_in, so the output is finite for any finite input magnitude.

Shapes: input (N, embedding_dim) -> W_in -> (N, hidden_dim) -> layers ->
W_out -> (N, output_dim).

Weights live in numpy buffers allocated at construction.  dispose() frees
them exactly once; calling it again is a no-op and any other use afterwards
raises TransformerDisposedError.  Prefer ``with GeometricTransformer(cfg) as t``
or transformer_scope(), which release the buffers on every exit path.
"""
from __future__ import annotations

import asyncio
import math
from contextlib import contextmanager
from dataclasses import asdict, dataclass, fields, replace
from typing import Any, Iterator, Mapping, Sequence

import numpy as np
import structlog

from causal_manifold.config import settings
from causal_manifold.embeddings.progress import (
    ProgressCallback,
    progress_or_noop,
    threadsafe_progress,
)
from causal_manifold.embeddings.projector import unit_scale
from causal_manifold.embeddings.simplicial import (
    EDGE_FEATURE_DIM,
    TRIANGLE_FEATURE_DIM,
    SimplicialComplex,
)
from causal_manifold.errors import (
    ConfigurationError,
    EmbeddingDimensionError,
    MissingEmbeddingError,
    NonFiniteInputError,
    TransformerDisposedError,
)

logger = structlog.get_logger(__name__)

_LAYER_NORM_EPS = 1e-6
# Floor for log(confidence) so zero-confidence simplices are down-weighted, not -inf.
_MIN_CONFIDENCE = 1e-6


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TransformerConfig:
    """Geometric transformer configuration.

    Attributes:
        embedding_dim:  Length of the input vectors (default 128).
        hidden_dim:     Working width of the attention layers (default 256).
                        Must be divisible by num_heads.
        num_heads:      Attention heads per layer (default 4).
        num_layers:     Number of attention layers (default 2).
        use_layer_norm: Re-centre and re-scale each vector after every layer.
        output_dim:     Length of the refined vectors.  None means embedding_dim.
        seed:           Seed for weight initialisation.
    """

    embedding_dim: int = 128
    hidden_dim: int = 256
    num_heads: int = 4
    num_layers: int = 2
    use_layer_norm: bool = True
    output_dim: int | None = None
    seed: int = 0

    def __post_init__(self) -> None:
        for name in ("embedding_dim", "hidden_dim", "num_heads", "num_layers"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise ConfigurationError(f"{name} must be a positive integer, got {value!r}")
        if self.output_dim is not None and (
            isinstance(self.output_dim, bool) or not isinstance(self.output_dim, int)
            or self.output_dim < 1
        ):
            raise ConfigurationError(f"output_dim must be a positive integer, got {self.output_dim!r}")
        if self.hidden_dim % self.num_heads != 0:
            raise ConfigurationError(
                f"hidden_dim ({self.hidden_dim}) must be divisible by num_heads ({self.num_heads})"
            )

    @property
    def resolved_output_dim(self) -> int:
        return self.output_dim if self.output_dim is not None else self.embedding_dim

    @property
    def head_dim(self) -> int:
        return self.hidden_dim // self.num_heads

    @classmethod
    def from_settings(cls) -> TransformerConfig:
        return cls(
            embedding_dim=settings.transformer_embedding_dim,
            hidden_dim=settings.transformer_hidden_dim,
            num_heads=settings.transformer_num_heads,
            num_layers=settings.transformer_num_layers,
            use_layer_norm=settings.transformer_use_layer_norm,
            seed=settings.transformer_seed,
        )

    def with_overrides(self, **overrides: Any) -> TransformerConfig:
        """Return a copy with the non-None *overrides* applied."""
        known = {f.name for f in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ConfigurationError(f"Unknown transformer option(s): {', '.join(unknown)}")
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Numeric helpers
# ---------------------------------------------------------------------------

def _glorot(rng: np.random.Generator, fan_in: int, fan_out: int) -> np.ndarray:
    limit = math.sqrt(6.0 / (fan_in + fan_out))
    return rng.uniform(-limit, limit, size=(fan_in, fan_out))


def layer_norm(x: np.ndarray, gamma: np.ndarray, beta: np.ndarray) -> np.ndarray:
    mean = x.mean(axis=-1, keepdims=True)
    var = ((x - mean) ** 2).mean(axis=-1, keepdims=True)
    return (x - mean) / np.sqrt(var + _LAYER_NORM_EPS) * gamma + beta


def segment_softmax(scores: np.ndarray, segments: np.ndarray, num_segments: int) -> np.ndarray:
    """Softmax of *scores* (M, H) within groups of rows sharing a segment id."""
    seg_max = np.full((num_segments, scores.shape[1]), -np.inf)
    np.maximum.at(seg_max, segments, scores)
    exp = np.exp(scores - seg_max[segments])
    seg_sum = np.zeros((num_segments, scores.shape[1]))
    np.add.at(seg_sum, segments, exp)
    return exp / seg_sum[segments]


@dataclass(frozen=True)
class _Incidence:
    """Index arrays describing who attends to what, built once per call."""

    edge_target: np.ndarray      # (Me,)   receiving node
    edge_source: np.ndarray      # (Me,)   neighbour providing the message
    edge_features: np.ndarray    # (Me, EDGE_FEATURE_DIM)
    edge_log_conf: np.ndarray    # (Me,)
    tri_target: np.ndarray       # (Mt,)
    tri_first: np.ndarray        # (Mt,)
    tri_second: np.ndarray       # (Mt,)
    tri_features: np.ndarray     # (Mt, TRIANGLE_FEATURE_DIM)
    tri_log_conf: np.ndarray     # (Mt,)


def _incidence(complex_: SimplicialComplex) -> _Incidence:
    idx = complex_.vertex_index
    e_tgt: list[int] = []
    e_src: list[int] = []
    e_feat: list[np.ndarray] = []
    e_conf: list[float] = []
    for edge in complex_.edges:
        feat = edge.feature_vector()
        for tgt, src in ((edge.u, edge.v), (edge.v, edge.u)):
            e_tgt.append(idx[tgt])
            e_src.append(idx[src])
            e_feat.append(feat)
            e_conf.append(edge.confidence)

    t_tgt: list[int] = []
    t_a: list[int] = []
    t_b: list[int] = []
    t_feat: list[np.ndarray] = []
    t_conf: list[float] = []
    for tri in complex_.triangles:
        feat = tri.feature_vector()
        for vid in tri.nodes:
            a, b = tri.others(vid)
            t_tgt.append(idx[vid])
            t_a.append(idx[a])
            t_b.append(idx[b])
            t_feat.append(feat)
            t_conf.append(tri.confidence)

    def _ints(values: list[int]) -> np.ndarray:
        return np.asarray(values, dtype=np.intp)

    def _feats(values: list[np.ndarray], width: int) -> np.ndarray:
        return np.vstack(values) if values else np.zeros((0, width))

    def _logc(values: list[float]) -> np.ndarray:
        return np.log(np.maximum(np.asarray(values, dtype=float), _MIN_CONFIDENCE))

    return _Incidence(
        edge_target=_ints(e_tgt),
        edge_source=_ints(e_src),
        edge_features=_feats(e_feat, EDGE_FEATURE_DIM),
        edge_log_conf=_logc(e_conf),
        tri_target=_ints(t_tgt),
        tri_first=_ints(t_a),
        tri_second=_ints(t_b),
        tri_features=_feats(t_feat, TRIANGLE_FEATURE_DIM),
        tri_log_conf=_logc(t_conf),
    )


# ---------------------------------------------------------------------------
# Transformer
# ---------------------------------------------------------------------------

class GeometricTransformer:
    """Multi-layer, multi-head attention over a simplicial complex."""

    def __init__(self, config: TransformerConfig | None = None) -> None:
        self.config = config or TransformerConfig.from_settings()
        self._disposed = False
        self._params: dict[str, np.ndarray] = self._allocate()
        logger.debug(
            "transformer_allocated",
            layers=self.config.num_layers,
            heads=self.config.num_heads,
            bytes=self.nbytes,
        )

    def _allocate(self) -> dict[str, np.ndarray]:
        cfg = self.config
        rng = np.random.default_rng(cfg.seed)
        hid = cfg.hidden_dim
        params = {
            "w_in": _glorot(rng, cfg.embedding_dim, hid),
            "w_out": _glorot(rng, hid, cfg.resolved_output_dim),
        }
        for layer in range(cfg.num_layers):
            p = f"l{layer}."
            params[p + "w_q"] = _glorot(rng, hid, hid)
            params[p + "w_k"] = _glorot(rng, hid, hid)
            params[p + "w_v"] = _glorot(rng, hid, hid)
            params[p + "w_o"] = _glorot(rng, hid, hid)
            params[p + "w_edge"] = _glorot(rng, EDGE_FEATURE_DIM, hid)
            params[p + "w_tri"] = _glorot(rng, TRIANGLE_FEATURE_DIM, hid)
            if cfg.use_layer_norm:
                params[p + "gamma"] = np.ones(hid)
                params[p + "beta"] = np.zeros(hid)
        return params

    # ── Lifecycle ────────────────────────────────────────

    @property
    def disposed(self) -> bool:
        return self._disposed

    @property
    def nbytes(self) -> int:
        return sum(arr.nbytes for arr in self._params.values())

    def _ensure_live(self) -> None:
        if self._disposed:
            raise TransformerDisposedError("GeometricTransformer used after dispose()")

    def dispose(self) -> None:
        """Release the weight buffers.  Safe to call more than once."""
        if self._disposed:
            return
        released = self.nbytes
        self._params.clear()
        self._disposed = True
        logger.debug("transformer_disposed", bytes_released=released)

    def __enter__(self) -> GeometricTransformer:
        self._ensure_live()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.dispose()

    # ── Validation ───────────────────────────────────────

    def _input_matrix(
        self,
        complex_: SimplicialComplex,
        embeddings: Mapping[str, Sequence[float]],
    ) -> np.ndarray:
        missing = [vid for vid in complex_.vertex_ids if vid not in embeddings]
        if missing:
            raise MissingEmbeddingError(missing)

        lengths = {len(embeddings[vid]) for vid in complex_.vertex_ids}
        if len(lengths) > 1:
            raise EmbeddingDimensionError(
                f"Inconsistent embedding dimensions: {', '.join(map(str, sorted(lengths)))}"
            )
        dim = lengths.pop() if lengths else self.config.embedding_dim
        if dim != self.config.embedding_dim:
            raise EmbeddingDimensionError(
                f"Embedding dimension mismatch: expected {self.config.embedding_dim}, got {dim}"
            )

        x = np.asarray([embeddings[vid] for vid in complex_.vertex_ids], dtype=float)
        x = x.reshape(len(complex_.vertex_ids), self.config.embedding_dim)
        if not np.isfinite(x).all():
            raise NonFiniteInputError("Input embeddings contain NaN or infinite values")
        return x

    # ── Forward pass ─────────────────────────────────────

    def _layer(self, h: np.ndarray, inc: _Incidence, layer: int) -> np.ndarray:
        cfg = self.config
        p = self._params
        pre = f"l{layer}."
        n = h.shape[0]
        heads, dh = cfg.num_heads, cfg.head_dim

        edge_c = h[inc.edge_source] + inc.edge_features @ p[pre + "w_edge"]
        tri_c = 0.5 * (h[inc.tri_first] + h[inc.tri_second]) + inc.tri_features @ p[pre + "w_tri"]
        contrib = np.vstack([edge_c, tri_c])
        target = np.concatenate([inc.edge_target, inc.tri_target])
        log_conf = np.concatenate([inc.edge_log_conf, inc.tri_log_conf])

        aggregate = np.zeros((n, heads, dh))
        if contrib.shape[0]:
            q = (h @ p[pre + "w_q"]).reshape(n, heads, dh)
            k = (contrib @ p[pre + "w_k"]).reshape(-1, heads, dh)
            v = (contrib @ p[pre + "w_v"]).reshape(-1, heads, dh)
            scores = (q[target] * k).sum(axis=-1) / math.sqrt(dh) + log_conf[:, None]
            weights = segment_softmax(scores, target, n)
            np.add.at(aggregate, target, weights[..., None] * v)

        out = h + aggregate.reshape(n, cfg.hidden_dim) @ p[pre + "w_o"]
        if cfg.use_layer_norm:
            out = layer_norm(out, p[pre + "gamma"], p[pre + "beta"])
        return out

    def refine(
        self,
        complex_: SimplicialComplex,
        embeddings: Mapping[str, Sequence[float]],
        on_progress: ProgressCallback | None = None,
    ) -> dict[str, list[float]]:
        """Refine *embeddings* over *complex_*.

        Args:
            complex_:    Simplicial complex whose vertices define the node set.
            embeddings:  node id -> vector of length config.embedding_dim.
                         Must cover every vertex; extra ids are ignored.
            on_progress: Optional callback receiving (percent, message).

        Returns:
            node id -> refined vector of length config.resolved_output_dim,
            in vertex order.

        Raises:
            TransformerDisposedError: dispose() was already called.
            MissingEmbeddingError:    a vertex has no input vector.
            EmbeddingDimensionError:  vectors are ragged or the wrong length.
            NonFiniteInputError:      an input value is NaN or infinite.
        """
        self._ensure_live()
        report = progress_or_noop(on_progress)
        log = logger.bind(nodes=len(complex_.vertices), layers=self.config.num_layers)

        report(0.0, "Validating embeddings...")
        x = self._input_matrix(complex_, embeddings)
        if x.shape[0] == 0:
            report(100.0, "Complete")
            return {}

        report(5.0, "Preparing simplices...")
        inc = _incidence(complex_)

        # Power-of-two rescale keeps attention scores finite for any input magnitude.
        h = unit_scale(x) @ self._params["w_in"]
        for layer in range(self.config.num_layers):
            h = self._layer(h, inc, layer)
            pct = 10.0 + 80.0 * (layer + 1) / self.config.num_layers
            report(pct, f"Layer {layer + 1}/{self.config.num_layers}")

        out = h @ self._params["w_out"]
        if not np.isfinite(out).all():
            raise FloatingPointError("Transformer produced non-finite values")

        report(100.0, "Complete")
        log.info(
            "transformer_refined",
            edges=len(complex_.edges),
            triangles=len(complex_.triangles),
            output_dim=out.shape[1],
        )
        return {vid: out[i].tolist() for i, vid in enumerate(complex_.vertex_ids)}

    async def refine_async(
        self,
        complex_: SimplicialComplex,
        embeddings: Mapping[str, Sequence[float]],
        on_progress: ProgressCallback | None = None,
    ) -> dict[str, list[float]]:
        """Run refine() in a thread pool to avoid blocking the event loop.

        Progress callbacks are delivered on the event loop thread.
        """
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, self.refine, complex_, embeddings, threadsafe_progress(loop, on_progress)
        )


@contextmanager
def transformer_scope(config: TransformerConfig | None = None) -> Iterator[GeometricTransformer]:
    """Yield a transformer and dispose it when the block exits, error or not."""
    transformer = GeometricTransformer(config)
    try:
        yield transformer
    finally:
        transformer.dispose()
