"""
Git-backed content store using pygit2.

Reads the published site from a local branch and writes the transformed
objects back into the same object database. Nothing here moves refs: the
transformed tree is only reachable by id until it is checked out.
"""

from __future__ import annotations

import threading
from collections.abc import Iterable, Iterator
from pathlib import Path

import pygit2
from pygit2.enums import CheckoutStrategy

from minimizer.exceptions import ReferenceNotFoundError, StoreError
from minimizer.logging import get_logger
from minimizer.store.base import ContentStore, prepare_checkout_dir
from minimizer.types import ContentId, EntryKind, TreeEntry

logger = get_logger(__name__)

_KINDS: dict[str, EntryKind] = {
    "blob": EntryKind.BLOB,
    "tree": EntryKind.TREE,
    "commit": EntryKind.COMMIT,
}


class GitStore(ContentStore):
    """Content store over a git repository (bare or with a work tree).

    libgit2 handles are not shared across threads, so every repository
    call is serialized through one lock.
    """

    def __init__(self, repo_path: str | Path) -> None:
        """Open the repository.

        Args:
            repo_path: Path to the repository or its .git directory.

        Raises:
            StoreError: If no repository can be opened at repo_path.
        """
        self.repo_path = Path(repo_path)
        try:
            self._repo = pygit2.Repository(str(self.repo_path))
        except pygit2.GitError as e:
            raise StoreError(
                "Cannot open git repository",
                context={"repo": str(self.repo_path), "error": str(e)},
            ) from e
        self._lock = threading.Lock()

    def _lookup(self, id: ContentId, expected: type[pygit2.Object]) -> pygit2.Object:
        try:
            obj = self._repo[id]
        except (KeyError, ValueError) as e:
            raise StoreError(
                "Object not found", context={"repo": str(self.repo_path), "id": id}
            ) from e
        if not isinstance(obj, expected):
            raise StoreError(
                f"Object is not a {expected.__name__.lower()}",
                context={"id": id, "type": obj.type_str},
            )
        return obj

    def resolve_branch(self, name: str) -> ContentId:
        with self._lock:
            branch = self._repo.branches.local.get(name)
            if branch is None:
                raise ReferenceNotFoundError(
                    "Branch not found",
                    context={"repo": str(self.repo_path), "branch": name},
                )
            tree = branch.peel(pygit2.Tree)
            logger.debug("Resolved branch", branch=name, target=str(branch.target))
            return str(tree.id)

    def read_blob(self, id: ContentId) -> bytes:
        with self._lock:
            return self._lookup(id, pygit2.Blob).data

    def iter_tree(self, id: ContentId) -> Iterator[TreeEntry]:
        with self._lock:
            tree = self._lookup(id, pygit2.Tree)
            entries = [
                TreeEntry(
                    name=obj.name,
                    id=str(obj.id),
                    kind=_KINDS.get(obj.type_str),
                    mode=obj.filemode,
                )
                for obj in tree
            ]
        return iter(entries)

    def write_blob(self, data: bytes) -> ContentId:
        with self._lock:
            return str(self._repo.create_blob(data))

    def write_tree(self, entries: Iterable[TreeEntry]) -> ContentId:
        with self._lock:
            builder = self._repo.TreeBuilder()
            for entry in entries:
                builder.insert(entry.name, pygit2.Oid(hex=entry.id), int(entry.mode))
            return str(builder.write())

    def checkout(self, tree_id: ContentId, path: Path) -> None:
        path = Path(path)
        with self._lock:
            tree = self._lookup(tree_id, pygit2.Tree)
            prepare_checkout_dir(path)
            self._repo.checkout_tree(
                tree,
                directory=str(path),
                strategy=CheckoutStrategy.FORCE | CheckoutStrategy.DONT_UPDATE_INDEX,
            )
        logger.info("Checked out tree", tree=tree_id, destination=str(path))
