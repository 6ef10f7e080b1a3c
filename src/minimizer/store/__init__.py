"""
Content store package.

This package provides the object store the tree transformation runs against:
- ContentStore (base.py): Abstract interface
- GitStore (git.py): pygit2-backed store over a real repository
- MemoryStore (memory.py): In-process store with git-compatible ids
"""

from minimizer.store.base import ContentStore
from minimizer.store.git import GitStore
from minimizer.store.memory import MemoryStore

__all__ = ["ContentStore", "GitStore", "MemoryStore"]
