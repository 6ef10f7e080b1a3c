"""
Custom exception hierarchy for the minimizer.

All exceptions inherit from MinimizerError, which provides optional context
for structured error handling and logging.
"""

from __future__ import annotations

from typing import Any


class MinimizerError(Exception):
    """Base exception for all minimizer errors.

    Attributes:
        message: Human-readable error message.
        context: Optional structured context for logging/debugging.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class StoreError(MinimizerError):
    """Raised when the content store cannot serve a request.

    Context should include:
        - repo: The repository path
        - id: The object id involved, if any
    """

    pass


class ReferenceNotFoundError(StoreError):
    """Raised when a named branch does not exist in the store.

    Context should include:
        - branch: The branch name that was looked up
    """

    pass


class StoreCorruptionError(StoreError):
    """Raised when a tree entry has an object kind the store does not know.

    Context should include:
        - tree: The id of the tree being walked
        - entry: The name of the offending entry
    """

    pass


class CacheFormatError(MinimizerError):
    """Raised when a cache file does not match the expected format.

    Context should include:
        - line: The 1-based line number
        - reason: What did not match
    """

    pass


class CacheSaveError(MinimizerError):
    """Raised when the cache cannot be written durably.

    Context should include:
        - path: The destination cache file
        - error: The underlying OS error
    """

    pass


class TransformError(MinimizerError):
    """Raised when minification or compression of a document fails.

    Context should include:
        - id: The input blob id
        - stage: minify, gzip or brotli
    """

    pass


class EmptyTreeError(MinimizerError):
    """Raised when the transformed root tree would have no entries.

    Context should include:
        - branch: The branch that was transformed
        - tree: The source root tree id
    """

    pass
