"""
In-process content store with git-compatible object ids.

Objects are hashed exactly the way git hashes loose objects, so a tree built
here has the same id as the same tree written into a real repository.
"""

from __future__ import annotations

import hashlib
import os
import threading
from collections.abc import Iterable, Iterator
from pathlib import Path

from minimizer.exceptions import ReferenceNotFoundError, StoreError
from minimizer.store.base import ContentStore, prepare_checkout_dir
from minimizer.types import ContentId, EntryKind, FileMode, TreeEntry


def hash_object(kind: str, body: bytes) -> ContentId:
    """Compute the git object id of a body of the given kind."""
    header = f"{kind} {len(body)}\0".encode()
    return hashlib.sha1(header + body).hexdigest()


def _sort_key(entry: TreeEntry) -> bytes:
    # git orders trees as if their name had a trailing slash
    name = entry.name.encode()
    return name + b"/" if entry.kind == EntryKind.TREE else name


def encode_tree(entries: Iterable[TreeEntry]) -> tuple[bytes, list[TreeEntry]]:
    """Serialize entries in git tree format.

    Returns:
        The tree body and the entries in canonical order.
    """
    ordered = sorted(entries, key=_sort_key)
    names = [e.name for e in ordered]
    if len(set(names)) != len(names):
        raise StoreError("Duplicate names in tree", context={"names": names})

    body = bytearray()
    for entry in ordered:
        if not entry.name or "/" in entry.name or "\0" in entry.name:
            raise StoreError("Invalid tree entry name", context={"name": entry.name})
        body += f"{entry.mode:o} {entry.name}\0".encode()
        body += bytes.fromhex(entry.id)
    return bytes(body), ordered


class MemoryStore(ContentStore):
    """Dict-backed store, mostly for tests and staging.

    Thread-safe: all object table access goes through a single lock.
    """

    def __init__(self) -> None:
        self._blobs: dict[ContentId, bytes] = {}
        self._trees: dict[ContentId, tuple[TreeEntry, ...]] = {}
        self._branches: dict[str, ContentId] = {}
        self._lock = threading.Lock()
        self.blob_writes = 0
        self.tree_writes = 0

    @classmethod
    def from_directory(cls, root: Path, branch: str = "gh-pages") -> MemoryStore:
        """Build a store whose branch points at a snapshot of a directory."""
        store = cls()
        tree_id = store._write_directory(Path(root))
        store.set_branch(branch, tree_id)
        return store

    def _write_directory(self, directory: Path) -> ContentId:
        entries: list[TreeEntry] = []
        for child in sorted(directory.iterdir()):
            if child.is_symlink():
                target = os.readlink(child).encode()
                entries.append(
                    TreeEntry(
                        name=child.name,
                        id=self.write_blob(target),
                        kind=EntryKind.BLOB,
                        mode=FileMode.LINK,
                    )
                )
            elif child.is_dir():
                entries.append(TreeEntry.tree(child.name, self._write_directory(child)))
            else:
                entries.append(TreeEntry.blob(child.name, self.write_blob(child.read_bytes())))
        return self.write_tree(entries)

    def set_branch(self, name: str, tree_id: ContentId) -> None:
        """Point a branch at a tree."""
        with self._lock:
            if tree_id not in self._trees:
                raise StoreError("Branch target is not a tree", context={"id": tree_id})
            self._branches[name] = tree_id

    def add_raw_tree(self, entries: Iterable[TreeEntry]) -> ContentId:
        """Register a tree without validating entry kinds.

        Lets callers reproduce trees a real repository could hold, such as
        entries whose kind the store layer does not recognize.
        """
        body, ordered = encode_tree(entries)
        tree_id = hash_object("tree", body)
        with self._lock:
            self._trees[tree_id] = tuple(ordered)
        return tree_id

    def resolve_branch(self, name: str) -> ContentId:
        with self._lock:
            tree_id = self._branches.get(name)
        if tree_id is None:
            raise ReferenceNotFoundError("Branch not found", context={"branch": name})
        return tree_id

    def read_blob(self, id: ContentId) -> bytes:
        with self._lock:
            data = self._blobs.get(id)
        if data is None:
            raise StoreError("Blob not found", context={"id": id})
        return data

    def iter_tree(self, id: ContentId) -> Iterator[TreeEntry]:
        with self._lock:
            entries = self._trees.get(id)
        if entries is None:
            raise StoreError("Tree not found", context={"id": id})
        return iter(entries)

    def has_tree(self, id: ContentId) -> bool:
        with self._lock:
            return id in self._trees

    def write_blob(self, data: bytes) -> ContentId:
        blob_id = hash_object("blob", data)
        with self._lock:
            self._blobs.setdefault(blob_id, bytes(data))
            self.blob_writes += 1
        return blob_id

    def write_tree(self, entries: Iterable[TreeEntry]) -> ContentId:
        entries = list(entries)
        with self._lock:
            for entry in entries:
                known = self._trees if entry.kind == EntryKind.TREE else self._blobs
                if entry.kind not in (EntryKind.TREE, EntryKind.BLOB) or entry.id not in known:
                    raise StoreError(
                        "Tree entry points at a missing object",
                        context={"name": entry.name, "id": entry.id},
                    )
        body, ordered = encode_tree(entries)
        tree_id = hash_object("tree", body)
        with self._lock:
            self._trees.setdefault(tree_id, tuple(ordered))
            self.tree_writes += 1
        return tree_id

    def checkout(self, tree_id: ContentId, path: Path) -> None:
        path = Path(path)
        # Fail before touching the destination
        self.iter_tree(tree_id)
        prepare_checkout_dir(path)
        self._checkout_into(tree_id, path)

    def _checkout_into(self, tree_id: ContentId, directory: Path) -> None:
        for entry in self.iter_tree(tree_id):
            target = directory / entry.name
            if entry.kind == EntryKind.TREE:
                target.mkdir()
                self._checkout_into(entry.id, target)
            elif entry.kind == EntryKind.BLOB and entry.mode == FileMode.LINK:
                os.symlink(self.read_blob(entry.id).decode(), target)
            elif entry.kind == EntryKind.BLOB:
                target.write_bytes(self.read_blob(entry.id))
                if entry.mode == FileMode.BLOB_EXECUTABLE:
                    target.chmod(0o755)
