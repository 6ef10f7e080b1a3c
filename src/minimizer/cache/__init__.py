"""
Cache package for transform memoization.

This package provides:
- TransformCache (transform_cache.py): content-id keyed memo of document
  transforms with deterministic, crash-safe persistence
"""

from minimizer.cache.transform_cache import CACHE_HEADER, TransformCache

__all__ = ["CACHE_HEADER", "TransformCache"]
