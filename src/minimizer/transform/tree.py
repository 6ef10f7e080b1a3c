"""
Tree transformer: rebuild a site tree with minified and precompressed HTML.

Per entry of a source tree:
- subtrees recurse, unless an exclusion rule matches at that depth
- ``*.html`` blobs fan out into ``name``, ``name.gz`` and ``name.br``
- raster images pass through unchanged
- everything else is dropped, and so are subtrees left empty

Every call returns the id of an already written tree (or None when nothing
survived), so trees are built bottom-up as plain values.
"""

from __future__ import annotations

import fnmatch
import threading
from collections.abc import Iterable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass

from minimizer.cache import TransformCache
from minimizer.config import Settings
from minimizer.exceptions import EmptyTreeError, StoreCorruptionError
from minimizer.logging import get_logger, log_context
from minimizer.store import ContentStore
from minimizer.transform.document import DocumentTransform
from minimizer.transform.memoized import transform_cached
from minimizer.types import ContentId, EntryKind, FileMode, Sizes, TreeEntry

logger = get_logger(__name__)

DEFAULT_IMAGE_EXTENSIONS: frozenset[str] = frozenset(
    {".png", ".jpg", ".jpeg", ".gif", ".webp"}
)


@dataclass(frozen=True)
class ExclusionRule:
    """Drop directories whose name matches pattern.

    Attributes:
        pattern: fnmatch pattern matched against the directory name.
        depth: Depth the rule applies at (0 is the root tree), or None for
            every depth.
    """

    pattern: str
    depth: int | None = 0

    def matches(self, name: str, depth: int) -> bool:
        if self.depth is not None and self.depth != depth:
            return False
        return fnmatch.fnmatchcase(name, self.pattern)


DEFAULT_EXCLUSIONS: tuple[ExclusionRule, ...] = (ExclusionRule("theme", depth=0),)


class SizeTotals:
    """Thread-safe running total of document sizes."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.total = Sizes()
        self.documents = 0

    def add(self, sizes: Sizes) -> None:
        with self._lock:
            self.total = self.total + sizes
            self.documents += 1


class TreeTransformer:
    """Walks a source tree and writes its transformed counterpart."""

    def __init__(
        self,
        store: ContentStore,
        cache: TransformCache,
        transform: DocumentTransform,
        rules: Sequence[ExclusionRule] = DEFAULT_EXCLUSIONS,
        image_extensions: Iterable[str] = DEFAULT_IMAGE_EXTENSIONS,
        html_extension: str = ".html",
        jobs: int = 1,
    ) -> None:
        self.store = store
        self.cache = cache
        self.transform = transform
        self.rules = tuple(rules)
        self.image_extensions = frozenset(ext.lower() for ext in image_extensions)
        self.html_extension = html_extension
        self.jobs = max(1, jobs)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: ContentStore,
        cache: TransformCache,
        transform: DocumentTransform,
    ) -> TreeTransformer:
        return cls(
            store=store,
            cache=cache,
            transform=transform,
            rules=[ExclusionRule(p, depth=0) for p in settings.EXCLUDED_ROOT_DIRS],
            image_extensions=settings.IMAGE_EXTENSIONS,
            html_extension=settings.HTML_EXTENSION,
            jobs=settings.JOBS,
        )

    def is_excluded(self, name: str, depth: int) -> bool:
        return any(rule.matches(name, depth) for rule in self.rules)

    def is_document(self, entry: TreeEntry) -> bool:
        return self._is_file(entry) and entry.name.endswith(self.html_extension)

    def is_image(self, entry: TreeEntry) -> bool:
        if not self._is_file(entry):
            return False
        dot = entry.name.rfind(".")
        return dot > 0 and entry.name[dot:].lower() in self.image_extensions

    @staticmethod
    def _is_file(entry: TreeEntry) -> bool:
        # Symlinks are blobs too, but their bytes are a link target
        return entry.kind == EntryKind.BLOB and entry.mode != FileMode.LINK

    def _entries(self, tree_id: ContentId) -> list[TreeEntry]:
        entries = list(self.store.iter_tree(tree_id))
        for entry in entries:
            if entry.kind is None:
                raise StoreCorruptionError(
                    "Tree entry has an unknown object type",
                    context={"tree": tree_id, "entry": entry.name, "mode": oct(entry.mode)},
                )
        return entries

    def transform_tree(
        self,
        tree_id: ContentId,
        depth: int = 0,
        totals: SizeTotals | None = None,
        path: str = "",
    ) -> ContentId | None:
        """Transform one tree, recursing into subtrees.

        Args:
            tree_id: Source tree id.
            depth: Depth of this tree below the root.
            totals: Running size total, updated for every document entry.
            path: Slash-separated location of this tree, for logging.

        Returns:
            Id of the written output tree, or None if it has no entries.

        Raises:
            StoreCorruptionError: If an entry has an unknown object type.
        """
        if totals is None:
            totals = SizeTotals()

        output: list[TreeEntry] = []
        for entry in self._entries(tree_id):
            entry_path = f"{path}{entry.name}"

            if entry.kind == EntryKind.TREE:
                if self.is_excluded(entry.name, depth):
                    logger.debug("Skipping excluded directory", directory=entry_path)
                    continue
                with log_context(path=f"{entry_path}/"):
                    subtree = self.transform_tree(
                        entry.id, depth + 1, totals, f"{entry_path}/"
                    )
                if subtree is not None:
                    output.append(TreeEntry.tree(entry.name, subtree))

            elif self.is_document(entry):
                record = transform_cached(
                    self.cache, self.store, entry.id, self.transform, entry_path
                )
                output.append(TreeEntry.blob(entry.name, record.minified_id))
                output.append(TreeEntry.blob(f"{entry.name}.gz", record.gz_id))
                output.append(TreeEntry.blob(f"{entry.name}.br", record.br_id))
                totals.add(record.sizes)

            elif self.is_image(entry):
                output.append(TreeEntry.blob(entry.name, entry.id))

            else:
                logger.debug("Dropping entry", entry=entry_path, kind=entry.kind.value)

        if not output:
            return None
        return self.store.write_tree(output)

    def transform_root(self, tree_id: ContentId, totals: SizeTotals) -> ContentId:
        """Transform a root tree, which must not come out empty.

        Raises:
            EmptyTreeError: If nothing in the tree survived.
        """
        prefetched = self.prefetch(tree_id) if self.jobs > 1 else 0

        result = self.transform_tree(tree_id, 0, totals)
        # The walk meets each prefetched document once as a hit; that first
        # lookup is the computation itself, not reuse.
        self.cache.discount_hits(prefetched)
        if result is None:
            raise EmptyTreeError(
                "Transformed root tree has no entries", context={"tree": tree_id}
            )
        return result

    def collect_documents(
        self, tree_id: ContentId, depth: int = 0, path: str = ""
    ) -> dict[ContentId, str]:
        """Map every distinct document id reachable from a tree to one path.

        Applies the same exclusion rules as the transform.
        """
        found: dict[ContentId, str] = {}
        for entry in self._entries(tree_id):
            entry_path = f"{path}{entry.name}"
            if entry.kind == EntryKind.TREE and not self.is_excluded(entry.name, depth):
                for doc_id, doc_path in self.collect_documents(
                    entry.id, depth + 1, f"{entry_path}/"
                ).items():
                    found.setdefault(doc_id, doc_path)
            elif self.is_document(entry):
                found.setdefault(entry.id, entry_path)
        return found

    def prefetch(self, tree_id: ContentId) -> int:
        """Transform all uncached documents of a tree on a worker pool.

        The later walk then only hits the cache. Returns the number of
        documents that were submitted.
        """
        pending = {
            doc_id: doc_path
            for doc_id, doc_path in self.collect_documents(tree_id).items()
            if doc_id not in self.cache
        }
        if not pending:
            return 0

        logger.info("Transforming documents", documents=len(pending), jobs=self.jobs)
        with ThreadPoolExecutor(max_workers=self.jobs, thread_name_prefix="minimizer") as pool:
            futures = [
                pool.submit(
                    transform_cached, self.cache, self.store, doc_id, self.transform, doc_path
                )
                for doc_id, doc_path in sorted(pending.items())
            ]
            try:
                for future in as_completed(futures):
                    future.result()
            except BaseException:
                for future in futures:
                    future.cancel()
                raise
        return len(pending)
