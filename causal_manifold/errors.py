"""
causal_manifold/errors.py

Exception hierarchy shared by the graph model, the embedding pipeline and
the HTTP layer.

Kinds
-----
  InputValidationError     bad input or configuration; nothing was computed.
  MissingEndpointError     an edge references a node that does not exist.
                           Raised per edge so batch callers can skip it.
  TransformerDisposedError a transformer was used after dispose().

Cancellation of a projection is not an error and has no exception type.
"""
from __future__ import annotations


class ManifoldError(Exception):
    """Base class for every error raised by causal_manifold."""

    code: str = "MANIFOLD_ERROR"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

class InputValidationError(ManifoldError, ValueError):
    """Input rejected before any work was attempted."""

    code = "VALIDATION_ERROR"


class DuplicateNodeError(InputValidationError):
    code = "DUPLICATE_NODE"

    def __init__(self, node_id: str) -> None:
        super().__init__(f"Node with id {node_id!r} already exists")
        self.node_id = node_id


class DuplicateEdgeError(InputValidationError):
    code = "DUPLICATE_EDGE"

    def __init__(self, edge_id: str) -> None:
        super().__init__(f"Edge with id {edge_id!r} already exists")
        self.edge_id = edge_id


class MissingEmbeddingError(InputValidationError):
    code = "MISSING_EMBEDDING"

    def __init__(self, node_ids: list[str]) -> None:
        preview = ", ".join(node_ids[:5])
        more = f" (+{len(node_ids) - 5} more)" if len(node_ids) > 5 else ""
        super().__init__(f"Missing embedding for node(s): {preview}{more}")
        self.node_ids = node_ids


class EmbeddingDimensionError(InputValidationError):
    code = "DIMENSION_MISMATCH"


class InsufficientPointsError(InputValidationError):
    code = "INSUFFICIENT_POINTS"


class NonFiniteInputError(InputValidationError):
    code = "NON_FINITE_INPUT"


class ConfigurationError(InputValidationError):
    code = "INVALID_CONFIGURATION"


# ---------------------------------------------------------------------------
# Structural
# ---------------------------------------------------------------------------

class MissingEndpointError(ManifoldError, ValueError):
    """An edge references a source or target node that is not in the graph."""

    code = "MISSING_ENDPOINT"

    def __init__(self, edge_id: str, node_id: str, role: str) -> None:
        super().__init__(f"Edge {edge_id!r}: {role} node {node_id!r} not found")
        self.edge_id = edge_id
        self.node_id = node_id
        self.role = role


# ---------------------------------------------------------------------------
# Resource lifecycle
# ---------------------------------------------------------------------------

class TransformerDisposedError(ManifoldError, RuntimeError):
    """A GeometricTransformer was used after its buffers were released."""

    code = "TRANSFORMER_DISPOSED"
