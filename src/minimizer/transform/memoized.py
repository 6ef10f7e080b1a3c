"""
Memoized document lookup.

Identical documents at different paths share one content id, so they are
transformed once and every occurrence reuses the same output ids.
"""

from __future__ import annotations

from minimizer.cache import TransformCache
from minimizer.exceptions import TransformError
from minimizer.logging import get_logger
from minimizer.store import ContentStore
from minimizer.transform.document import DocumentTransform
from minimizer.types import CacheRecord, ContentId

logger = get_logger(__name__)


def transform_cached(
    cache: TransformCache,
    store: ContentStore,
    id: ContentId,
    transform: DocumentTransform,
    name: str | None = None,
) -> CacheRecord:
    """Get the transform record for a blob, computing it on a cache miss.

    On a miss the blob is read, transformed, and the three outputs are
    written to the store as new blobs before the record is inserted.

    Args:
        cache: Transform cache for this run.
        store: Store holding the input blob and receiving the outputs.
        id: Content id of the input document.
        transform: Document transform to apply.
        name: Entry name, only used for progress output.

    Returns:
        The cache record for id.
    """

    def compute() -> CacheRecord:
        data = store.read_blob(id)
        try:
            output = transform(data)
        except TransformError as e:
            e.context.setdefault("id", id)
            raise

        record = CacheRecord(
            minified_id=store.write_blob(output.minified),
            gz_id=store.write_blob(output.gz),
            br_id=store.write_blob(output.br),
            sizes=output.sizes,
        )
        sizes = record.sizes
        logger.info(
            "Shrunk document",
            document=name or id[:12],
            original=sizes.original_len,
            minified=f"{sizes.minified_len} ({sizes.minified_pct:.1f}%)",
            gzip=f"{sizes.gz_len} ({sizes.gz_pct:.1f}%)",
            brotli=f"{sizes.br_len} ({sizes.br_pct:.1f}%)",
        )
        return record

    return cache.get_or_insert(id, compute)
