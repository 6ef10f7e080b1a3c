"""
Transform package.

- document.py: minify + gzip + brotli for one HTML document
- memoized.py: cache-backed lookup, at most one transform per content id
- tree.py: recursive tree rebuild with pruning and exclusion rules
"""

from minimizer.transform.document import (
    DocumentTransform,
    DocumentTransformer,
    TransformOptions,
    TransformOutput,
)
from minimizer.transform.memoized import transform_cached
from minimizer.transform.tree import (
    ExclusionRule,
    SizeTotals,
    TreeTransformer,
)

__all__ = [
    "DocumentTransform",
    "DocumentTransformer",
    "ExclusionRule",
    "SizeTotals",
    "TransformOptions",
    "TransformOutput",
    "TreeTransformer",
    "transform_cached",
]
