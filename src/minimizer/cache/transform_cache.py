"""
Persistent memo of document transforms, keyed by input content id.

File format (UTF-8 text):
    minimizer-cache-v1
    <key>\t<original_len>\t<minified_id>\t<minified_len>\t<gz_id>\t<gz_len>\t<br_id>\t<br_len>
    ...

Rows are written in ascending key order, so the file is a pure function of
the cache contents. Saving goes through a temporary file and an atomic
rename; the previous file stays valid until the rename.
"""

from __future__ import annotations

import os
import tempfile
import threading
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import Future
from pathlib import Path

from minimizer.exceptions import CacheFormatError, CacheSaveError
from minimizer.logging import get_logger
from minimizer.types import CacheRecord, ContentId, Sizes

logger = get_logger(__name__)

CACHE_HEADER = "minimizer-cache-v1"
_FIELD_COUNT = 8


def _format_row(key: ContentId, record: CacheRecord) -> str:
    sizes = record.sizes
    fields = (
        key,
        str(sizes.original_len),
        record.minified_id,
        str(sizes.minified_len),
        record.gz_id,
        str(sizes.gz_len),
        record.br_id,
        str(sizes.br_len),
    )
    return "\t".join(fields)


def _parse_row(line: str, lineno: int) -> tuple[ContentId, CacheRecord]:
    fields = line.split("\t")
    if len(fields) != _FIELD_COUNT:
        raise CacheFormatError(
            "Malformed cache row",
            context={"line": lineno, "reason": f"expected {_FIELD_COUNT} fields, got {len(fields)}"},
        )
    key, original, minified_id, minified, gz_id, gz, br_id, br = fields
    try:
        sizes = Sizes(
            original_len=int(original),
            minified_len=int(minified),
            gz_len=int(gz),
            br_len=int(br),
        )
    except ValueError as e:
        raise CacheFormatError(
            "Malformed cache row", context={"line": lineno, "reason": str(e)}
        ) from e
    if min(sizes.original_len, sizes.minified_len, sizes.gz_len, sizes.br_len) < 0:
        raise CacheFormatError(
            "Malformed cache row", context={"line": lineno, "reason": "negative length"}
        )
    return key, CacheRecord(minified_id=minified_id, gz_id=gz_id, br_id=br_id, sizes=sizes)


class TransformCache:
    """Map from input blob id to the record of its transform.

    ``get_or_insert`` is a claim-and-compute primitive: for any key, at most
    one computation runs at a time and a successful result is never
    recomputed. Other callers asking for a key that is in flight wait for it.
    """

    def __init__(self, records: dict[ContentId, CacheRecord] | None = None) -> None:
        self._records: dict[ContentId, CacheRecord] = dict(records or {})
        self._inflight: dict[ContentId, Future[CacheRecord]] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._records

    def __iter__(self) -> Iterator[ContentId]:
        with self._lock:
            return iter(sorted(self._records))

    def get(self, key: ContentId) -> CacheRecord | None:
        """Get a record without computing anything."""
        with self._lock:
            return self._records.get(key)

    def items(self) -> list[tuple[ContentId, CacheRecord]]:
        """Get all records in ascending key order."""
        with self._lock:
            return sorted(self._records.items())

    def get_or_insert(
        self, key: ContentId, compute: Callable[[], CacheRecord]
    ) -> CacheRecord:
        """Return the record for key, computing and inserting it if absent.

        Args:
            key: Input content id.
            compute: Called at most once per key while the cache lives.

        Returns:
            The cached or freshly computed record.

        Raises:
            Whatever compute raises; the key stays absent in that case.
        """
        with self._lock:
            record = self._records.get(key)
            if record is not None:
                self.hits += 1
                return record
            future = self._inflight.get(key)
            owner = future is None
            if owner:
                future = Future()
                self._inflight[key] = future

        if not owner:
            result = future.result()
            with self._lock:
                self.hits += 1
            return result

        try:
            record = compute()
        except BaseException as e:
            with self._lock:
                del self._inflight[key]
            future.set_exception(e)
            raise

        with self._lock:
            self._records[key] = record
            del self._inflight[key]
            self.misses += 1
        future.set_result(record)
        return record

    def discount_hits(self, count: int) -> None:
        """Take back hits that did not reuse an earlier result."""
        with self._lock:
            self.hits = max(0, self.hits - count)

    def total_sizes(self) -> Sizes:
        """Sum of the sizes of every record in the cache."""
        total = Sizes()
        for _, record in self.items():
            total = total + record.sizes
        return total

    def dumps(self) -> str:
        """Serialize the full map deterministically."""
        lines = [CACHE_HEADER]
        lines.extend(_format_row(key, record) for key, record in self.items())
        return "\n".join(lines) + "\n"

    @classmethod
    def parse(cls, lines: Iterable[str]) -> TransformCache:
        """Parse serialized cache lines strictly.

        Raises:
            CacheFormatError: On a wrong header or a malformed row.
        """
        iterator = iter(lines)
        header = next(iterator, None)
        if header is None or header.rstrip("\r\n") != CACHE_HEADER:
            raise CacheFormatError(
                "Unexpected cache header",
                context={"line": 1, "reason": f"expected {CACHE_HEADER!r}"},
            )

        records: dict[ContentId, CacheRecord] = {}
        for lineno, raw in enumerate(iterator, start=2):
            line = raw.rstrip("\r\n")
            if not line:
                continue
            key, record = _parse_row(line, lineno)
            records[key] = record
        return cls(records)

    @classmethod
    def load(cls, path: Path) -> TransformCache:
        """Load a cache file, falling back to an empty cache on any failure.

        A missing, unreadable or malformed file only costs recomputation,
        never correctness, so none of these abort the run.
        """
        path = Path(path)
        try:
            with open(path, encoding="utf-8") as f:
                cache = cls.parse(f)
        except FileNotFoundError:
            logger.info("No cache file, starting empty", cache=str(path))
            return cls()
        except (OSError, UnicodeDecodeError, CacheFormatError) as e:
            logger.warning("Ignoring unusable cache file", cache=str(path), error=str(e))
            return cls()

        logger.info("Loaded cache", cache=str(path), entries=len(cache))
        return cache

    def save(self, path: Path) -> None:
        """Write the cache durably, replacing the previous file atomically.

        Raises:
            CacheSaveError: If the file cannot be written or renamed.
        """
        path = Path(path)
        content = self.dumps()
        tmp_name: str | None = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=path.parent, prefix=f".{path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
            tmp_name = None
        except OSError as e:
            raise CacheSaveError(
                "Failed to save cache", context={"path": str(path), "error": str(e)}
            ) from e
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    logger.warning("Could not remove temporary cache file", tmp=tmp_name)

        logger.info("Saved cache", cache=str(path), entries=len(self))
