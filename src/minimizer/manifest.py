"""
Run manifest management for the minimizer.

Creates and updates manifest.json with run metadata.
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any

import orjson

from minimizer.logging import get_logger
from minimizer.types import ContentId, Phase, Sizes, utc_now

logger = get_logger(__name__)


class RunManifest:
    """Manages the run manifest file.

    The manifest tracks:
    - Run metadata (run_id, branch, timestamps)
    - Status (running, completed, failed)
    - Current phase
    - Source and output tree ids
    - Cache statistics and size totals
    - Errors
    """

    def __init__(self, output_dir: Path, run_id: str, branch: str) -> None:
        """Initialize manifest.

        Args:
            output_dir: Directory for the run's manifest.
            run_id: The run identifier.
            branch: Branch being transformed.
        """
        self.output_dir = output_dir
        self.manifest_path = output_dir / "manifest.json"

        self.run_id = run_id
        self.branch = branch
        self.started_at = utc_now()
        self.completed_at: datetime | None = None
        self.status = "running"
        self.phase = Phase.INIT
        self.source_tree: ContentId | None = None
        self.output_tree: ContentId | None = None
        self.checkout_dir: str | None = None
        self.documents = 0
        self.sizes = Sizes()
        self.cache_stats: dict[str, int] = {}
        self.errors: list[str] = []

    def update_phase(self, phase: Phase) -> None:
        """Update current phase.

        Args:
            phase: The new phase.
        """
        self.phase = phase
        logger.debug("Phase transition", phase=phase.value)
        self.save()

    def add_error(self, error: str) -> None:
        """Add an error summary.

        Args:
            error: Error message.
        """
        self.errors.append(error)
        logger.error("Run error", error=error)
        self.save()

    def complete(self, success: bool = True) -> None:
        """Mark the run as complete.

        Args:
            success: Whether the run succeeded.
        """
        self.completed_at = utc_now()
        self.status = "completed" if success else "failed"
        self.phase = Phase.COMPLETE if success else Phase.FAILED
        self.save()

    def fail(self, error: str) -> None:
        """Mark the run as failed.

        Args:
            error: Error message.
        """
        self.add_error(error)
        self.complete(success=False)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dict.

        Returns:
            Dict representation.
        """
        return {
            "run_id": self.run_id,
            "branch": self.branch,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "status": self.status,
            "phase": self.phase.value,
            "source_tree": self.source_tree,
            "output_tree": self.output_tree,
            "checkout_dir": self.checkout_dir,
            "documents": self.documents,
            "sizes": self.sizes.to_dict(),
            "cache": self.cache_stats,
            "errors": self.errors,
        }

    def save(self) -> None:
        """Save manifest to file."""
        self.output_dir.mkdir(parents=True, exist_ok=True)

        with open(self.manifest_path, "wb") as f:
            f.write(orjson.dumps(self.to_dict(), option=orjson.OPT_INDENT_2))

    @classmethod
    def load(cls, output_dir: Path) -> RunManifest | None:
        """Load manifest from file.

        Args:
            output_dir: Directory containing manifest.

        Returns:
            RunManifest or None if not found.
        """
        manifest_path = output_dir / "manifest.json"
        if not manifest_path.exists():
            return None

        try:
            with open(manifest_path, "rb") as f:
                data = orjson.loads(f.read())

            manifest = cls(
                output_dir=output_dir,
                run_id=data["run_id"],
                branch=data["branch"],
            )
            manifest.started_at = datetime.fromisoformat(data["started_at"])
            if data.get("completed_at"):
                manifest.completed_at = datetime.fromisoformat(data["completed_at"])
            manifest.status = data.get("status", "unknown")
            manifest.phase = Phase(data.get("phase", "init"))
            manifest.source_tree = data.get("source_tree")
            manifest.output_tree = data.get("output_tree")
            manifest.checkout_dir = data.get("checkout_dir")
            manifest.documents = data.get("documents", 0)
            manifest.sizes = Sizes(**data.get("sizes", {}))
            manifest.cache_stats = data.get("cache", {})
            manifest.errors = data.get("errors", [])

            return manifest
        except (OSError, orjson.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Failed to load manifest", error=str(e))
            return None
