"""Causal graphs refined over simplicial complexes and projected onto 2-D/3-D manifolds."""

__version__ = "0.1.0"
