"""
Pytest configuration and fixtures for minimizer tests.
"""

from __future__ import annotations

import os
import threading
from pathlib import Path
from typing import Any, Callable, Generator
from unittest.mock import patch

import pytest

from minimizer.config import Settings, clear_settings_cache
from minimizer.store import MemoryStore
from minimizer.transform import TransformOutput
from minimizer.types import ContentId, Sizes, TreeEntry

INDEX_HTML = b"<html>\n  <head>\n  </head>\n  <body>\n    <p>Home</p>\n  </body>\n</html>\n"
ABOUT_HTML = b"<html>\n  <body>\n    <p>About   me</p>\n  </body>\n</html>\n"
NESTED_THEME_HTML = b"<p>\n  nested   theme page\n</p>\n"
PNG_BYTES = b"\x89PNG\r\n\x1a\nnot-really-a-png"


class CountingTransform:
    """Deterministic stand-in for the document transform that counts calls."""

    def __init__(self) -> None:
        self.calls: list[bytes] = []
        self._lock = threading.Lock()

    def __call__(self, data: bytes) -> TransformOutput:
        with self._lock:
            self.calls.append(data)
        minified = b" ".join(data.split())
        gz = b"gz:" + minified
        br = b"br:" + minified
        return TransformOutput(
            minified=minified,
            gz=gz,
            br=br,
            sizes=Sizes(
                original_len=len(data),
                minified_len=len(minified),
                gz_len=len(gz),
                br_len=len(br),
            ),
        )


def _build_tree(store: MemoryStore, layout: dict[str, Any]) -> ContentId:
    entries = []
    for name, value in layout.items():
        if isinstance(value, dict):
            entries.append(TreeEntry.tree(name, _build_tree(store, value)))
        else:
            entries.append(TreeEntry.blob(name, store.write_blob(value)))
    return store.write_tree(entries)


@pytest.fixture
def build_tree() -> Callable[[MemoryStore, dict[str, Any]], ContentId]:
    """Build nested trees from dicts: dict values are subtrees, bytes are blobs."""
    return _build_tree


@pytest.fixture
def site_layout() -> dict[str, Any]:
    """A small published site with every kind of entry."""
    return {
        "index.html": INDEX_HTML,
        "style.css": b"body { color: red; }\n",
        "about": {"index.html": ABOUT_HTML},
        "copy": {"index.html": INDEX_HTML},
        "images": {"logo.png": PNG_BYTES, "photo.JPG": b"jpeg-bytes"},
        "notes": {"readme.md": b"# notes\n", "draft.txt": b"draft\n"},
        "theme": {"page.html": b"<p>theme</p>", "style.css": b"p{}"},
        "docs": {"theme": {"index.html": NESTED_THEME_HTML}},
    }


@pytest.fixture
def site_store(site_layout: dict[str, Any]) -> MemoryStore:
    """A MemoryStore whose gh-pages branch points at the site layout."""
    store = MemoryStore()
    store.set_branch("gh-pages", _build_tree(store, site_layout))
    return store


@pytest.fixture
def counting_transform() -> CountingTransform:
    """Provide a fresh counting transform."""
    return CountingTransform()


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test outputs."""
    return tmp_path


@pytest.fixture
def mock_env_vars(temp_dir: Path) -> Generator[dict[str, str], None, None]:
    """Provide environment variables pointing all state into temp_dir."""
    env_vars = {
        "MINIMIZER_REPO_PATH": str(temp_dir / "repo"),
        "MINIMIZER_BRANCH": "gh-pages",
        "MINIMIZER_STATE_DIR": str(temp_dir / "state"),
        "MINIMIZER_JOBS": "1",
        "MINIMIZER_LOG_LEVEL": "DEBUG",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        for key in ("MINIMIZER_OUTPUT_DIR", "MINIMIZER_CACHE_FILE", "MINIMIZER_LICENSE_COMMENT"):
            os.environ.pop(key, None)
        clear_settings_cache()
        yield env_vars


@pytest.fixture
def mock_settings(mock_env_vars: dict[str, str]) -> Generator[Settings, None, None]:
    """Provide a Settings instance with state under temp_dir."""
    from minimizer.config import get_settings

    settings = get_settings()
    settings.ensure_directories()
    yield settings
    clear_settings_cache()


@pytest.fixture(autouse=True)
def reset_settings_cache() -> Generator[None, None, None]:
    """Automatically reset settings cache before and after each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()
