"""
Minimize pipeline: the end-to-end run over one branch.

Stages:
    1. Resolve the branch to its root tree
    2. Load the transform cache (best effort)
    3. Transform the tree
    4. Save the cache
    5. Report sizes and check the new tree out

Every failure except an unusable cache file aborts the run before checkout.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from pathlib import Path

from minimizer.cache import TransformCache
from minimizer.config import Settings
from minimizer.exceptions import EmptyTreeError
from minimizer.logging import attach_log_file, detach_log_file, get_logger, log_context
from minimizer.manifest import RunManifest
from minimizer.store import ContentStore, GitStore
from minimizer.transform import (
    DocumentTransform,
    DocumentTransformer,
    SizeTotals,
    TransformOptions,
    TreeTransformer,
)
from minimizer.types import ContentId, Phase, Sizes, generate_id

logger = get_logger(__name__)


@dataclass
class RunResult:
    """Outcome of a successful run."""

    run_id: str
    branch: str
    source_tree: ContentId
    output_tree: ContentId
    sizes: Sizes
    documents: int
    cache_entries: int
    cache_hits: int
    cache_misses: int
    duration_seconds: float
    checkout_dir: Path | None = None


def format_size_report(sizes: Sizes) -> list[str]:
    """Render original vs. transformed sizes."""
    return [
        f"Original: {sizes.original_len:>12} bytes",
        f"Minified: {sizes.minified_len:>12} bytes ({sizes.minified_pct:.1f}%)",
        f"Gzip:     {sizes.gz_len:>12} bytes ({sizes.gz_pct:.1f}%)",
        f"Brotli:   {sizes.br_len:>12} bytes ({sizes.br_pct:.1f}%)",
    ]


class MinimizePipeline:
    """Runs the tree transformation for one branch of a store."""

    def __init__(
        self,
        settings: Settings,
        store: ContentStore | None = None,
        transform: DocumentTransform | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            settings: Application settings.
            store: Content store; defaults to the git repository at REPO_PATH.
            transform: Document transform; defaults to DocumentTransformer
                configured from settings.
        """
        self.settings = settings
        self.store = store if store is not None else GitStore(settings.REPO_PATH)
        if transform is None:
            transform = DocumentTransformer(TransformOptions.from_settings(settings))
        self.transform = transform
        # Options the cache file is keyed by
        self.options = (
            transform.options
            if isinstance(transform, DocumentTransformer)
            else TransformOptions.from_settings(settings)
        )

    def run(
        self,
        branch: str | None = None,
        output_dir: Path | None = None,
        cache_path: Path | None = None,
    ) -> RunResult:
        """Run the pipeline.

        Args:
            branch: Branch to transform; defaults to settings.BRANCH.
            output_dir: Checkout destination; defaults to settings.OUTPUT_DIR.
                Nothing is checked out when both are None.
            cache_path: Cache file, used as given; defaults to the settings
                cache file for this pipeline's transform options.

        Returns:
            RunResult with tree ids, sizes and cache statistics.
        """
        branch = branch or self.settings.BRANCH
        output_dir = output_dir if output_dir is not None else self.settings.OUTPUT_DIR
        if cache_path is None:
            cache_path = self.settings.cache_path_for(self.options.fingerprint())

        run_id = generate_id("run")
        run_dir = self.settings.get_run_state_dir(run_id)
        manifest = RunManifest(run_dir, run_id, branch)
        attach_log_file(run_dir / "run.log")
        started = time.monotonic()

        try:
            with log_context(run_id=run_id):
                return self._run(branch, output_dir, cache_path, manifest, started)
        except Exception as e:
            manifest.fail(str(e))
            raise
        finally:
            detach_log_file()

    def _run(
        self,
        branch: str,
        output_dir: Path | None,
        cache_path: Path,
        manifest: RunManifest,
        started: float,
    ) -> RunResult:
        with log_context(phase=Phase.RESOLVE.value):
            manifest.update_phase(Phase.RESOLVE)
            source_tree = self.store.resolve_branch(branch)
            manifest.source_tree = source_tree
            logger.info("Resolved branch", branch=branch, tree=source_tree)

        with log_context(phase=Phase.LOAD_CACHE.value):
            manifest.update_phase(Phase.LOAD_CACHE)
            cache = TransformCache.load(cache_path)

        with log_context(phase=Phase.TRANSFORM.value):
            manifest.update_phase(Phase.TRANSFORM)
            totals = SizeTotals()
            transformer = TreeTransformer.from_settings(
                self.settings, self.store, cache, self.transform
            )
            try:
                output_tree = transformer.transform_root(source_tree, totals)
            except EmptyTreeError as e:
                e.context.setdefault("branch", branch)
                raise
            manifest.output_tree = output_tree
            manifest.documents = totals.documents
            manifest.sizes = totals.total
            manifest.cache_stats = {
                "entries": len(cache),
                "hits": cache.hits,
                "misses": cache.misses,
            }
            logger.info(
                "Transformed tree",
                tree=output_tree,
                documents=totals.documents,
                computed=cache.misses,
            )

        with log_context(phase=Phase.SAVE_CACHE.value):
            manifest.update_phase(Phase.SAVE_CACHE)
            cache.save(cache_path)

        for line in format_size_report(totals.total):
            logger.info(line)

        if output_dir is not None:
            with log_context(phase=Phase.CHECKOUT.value):
                manifest.update_phase(Phase.CHECKOUT)
                self.store.checkout(output_tree, output_dir)
                manifest.checkout_dir = str(output_dir)

        manifest.complete(success=True)

        return RunResult(
            run_id=manifest.run_id,
            branch=branch,
            source_tree=source_tree,
            output_tree=output_tree,
            sizes=totals.total,
            documents=totals.documents,
            cache_entries=len(cache),
            cache_hits=cache.hits,
            cache_misses=cache.misses,
            duration_seconds=time.monotonic() - started,
            checkout_dir=output_dir,
        )
