"""
Base classes for content stores.

A content store holds immutable blobs and trees addressed by the hash of
their bytes. Writing never invalidates existing objects, so concurrent
inserts of immutable content are safe as long as each implementation
serializes access to its own handles.
"""

from __future__ import annotations

import shutil
from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from pathlib import Path

from minimizer.types import ContentId, TreeEntry


class ContentStore(ABC):
    """Abstract interface for content-addressed object stores."""

    @abstractmethod
    def resolve_branch(self, name: str) -> ContentId:
        """Resolve a local branch to the id of its root tree.

        Raises:
            ReferenceNotFoundError: If the branch does not exist.
        """
        ...

    @abstractmethod
    def read_blob(self, id: ContentId) -> bytes:
        """Read the bytes of a blob."""
        ...

    @abstractmethod
    def iter_tree(self, id: ContentId) -> Iterator[TreeEntry]:
        """Iterate the entries of a tree in the store's stable order."""
        ...

    @abstractmethod
    def write_blob(self, data: bytes) -> ContentId:
        """Store bytes as a blob and return its id."""
        ...

    @abstractmethod
    def write_tree(self, entries: Iterable[TreeEntry]) -> ContentId:
        """Store a tree built from the given entries and return its id."""
        ...

    @abstractmethod
    def checkout(self, tree_id: ContentId, path: Path) -> None:
        """Materialize a tree at path, replacing whatever exists there."""
        ...


def prepare_checkout_dir(path: Path) -> None:
    """Remove whatever exists at path and create an empty directory there."""
    if path.is_symlink() or path.is_file():
        path.unlink()
    elif path.exists():
        shutil.rmtree(path)
    path.mkdir(parents=True)
