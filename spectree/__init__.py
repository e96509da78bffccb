"""Hierarchical clustering of large sparse graphs by recursive spectral bisection."""

__version__ = "0.1.0"
