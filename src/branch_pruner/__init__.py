"""Detect and prune local git branches whose remote counterpart is gone."""

__version__ = "0.1.0"

__all__ = ["__version__"]
