"""
Core types for the minimizer.

This module defines the fundamental data structures used throughout the system:
- Enums for run phases, tree entry kinds and git file modes
- Frozen dataclasses for immutable values (TreeEntry, Sizes, CacheRecord)
- Helper functions for ID generation and timestamps
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum, IntEnum

from uuid6 import uuid7

# Lowercase hex git object id. Fixed width, so string order is numeric order.
ContentId = str


def generate_id(prefix: str = "") -> str:
    """Generate a time-ordered unique ID using UUID7.

    Args:
        prefix: Optional prefix for the ID (e.g., "run")

    Returns:
        A unique ID string, optionally prefixed.
    """
    uid = str(uuid7())
    return f"{prefix}_{uid}" if prefix else uid


def utc_now() -> datetime:
    """Get current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class Phase(str, Enum):
    """Phases of a minimizer run."""

    INIT = "init"
    RESOLVE = "resolve"
    LOAD_CACHE = "load_cache"
    TRANSFORM = "transform"
    SAVE_CACHE = "save_cache"
    CHECKOUT = "checkout"
    COMPLETE = "complete"
    FAILED = "failed"


class EntryKind(str, Enum):
    """Object kinds a tree entry can point at."""

    BLOB = "blob"
    TREE = "tree"
    COMMIT = "commit"  # gitlink (submodule)


class FileMode(IntEnum):
    """Git tree entry permission bits."""

    TREE = 0o040000
    BLOB = 0o100644
    BLOB_EXECUTABLE = 0o100755
    LINK = 0o120000
    COMMIT = 0o160000


@dataclass(frozen=True)
class TreeEntry:
    """A single named entry of a tree.

    ``kind`` is None when the store reported an object type it does not know.
    """

    name: str
    id: ContentId
    kind: EntryKind | None
    mode: int

    @classmethod
    def blob(cls, name: str, id: ContentId) -> TreeEntry:
        """Create a regular-file entry."""
        return cls(name=name, id=id, kind=EntryKind.BLOB, mode=FileMode.BLOB)

    @classmethod
    def tree(cls, name: str, id: ContentId) -> TreeEntry:
        """Create a directory entry."""
        return cls(name=name, id=id, kind=EntryKind.TREE, mode=FileMode.TREE)


@dataclass(frozen=True)
class Sizes:
    """Byte counts of a document and its transformed forms.

    Sizes add componentwise, so per-document sizes fold into totals.
    """

    original_len: int = 0
    minified_len: int = 0
    gz_len: int = 0
    br_len: int = 0

    def __add__(self, other: Sizes) -> Sizes:
        if not isinstance(other, Sizes):
            return NotImplemented
        return Sizes(
            original_len=self.original_len + other.original_len,
            minified_len=self.minified_len + other.minified_len,
            gz_len=self.gz_len + other.gz_len,
            br_len=self.br_len + other.br_len,
        )

    def percent_of_original(self, length: int) -> float:
        """Express a byte count as a percentage of the original length."""
        if self.original_len == 0:
            return 0.0
        return 100.0 * length / self.original_len

    @property
    def minified_pct(self) -> float:
        return self.percent_of_original(self.minified_len)

    @property
    def gz_pct(self) -> float:
        return self.percent_of_original(self.gz_len)

    @property
    def br_pct(self) -> float:
        return self.percent_of_original(self.br_len)

    def to_dict(self) -> dict[str, int]:
        """Serialize to dict for JSON."""
        return {
            "original_len": self.original_len,
            "minified_len": self.minified_len,
            "gz_len": self.gz_len,
            "br_len": self.br_len,
        }


@dataclass(frozen=True)
class CacheRecord:
    """Durable memo of what transforming one input blob produces."""

    minified_id: ContentId
    gz_id: ContentId
    br_id: ContentId
    sizes: Sizes
