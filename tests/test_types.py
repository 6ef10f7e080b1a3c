"""
Tests for core types.
"""

from __future__ import annotations

import pytest

from minimizer.types import (
    CacheRecord,
    EntryKind,
    FileMode,
    Sizes,
    TreeEntry,
    generate_id,
)


class TestSizes:
    """Test the Sizes monoid."""

    def test_addition_is_componentwise(self) -> None:
        """Test that adding sizes adds each field."""
        a = Sizes(original_len=100, minified_len=80, gz_len=40, br_len=30)
        b = Sizes(original_len=10, minified_len=8, gz_len=4, br_len=3)

        assert a + b == Sizes(original_len=110, minified_len=88, gz_len=44, br_len=33)

    def test_addition_commutative_and_associative(self) -> None:
        """Test that folding order does not matter."""
        a = Sizes(1, 2, 3, 4)
        b = Sizes(10, 20, 30, 40)
        c = Sizes(100, 200, 300, 400)

        assert a + b == b + a
        assert (a + b) + c == a + (b + c)

    def test_zero_is_identity(self) -> None:
        """Test that the default Sizes is the zero element."""
        a = Sizes(5, 4, 3, 2)
        assert a + Sizes() == a
        assert Sizes() + a == a

    def test_add_non_sizes_is_rejected(self) -> None:
        """Test that adding an unrelated type raises TypeError."""
        with pytest.raises(TypeError):
            Sizes(1, 1, 1, 1) + 1  # type: ignore[operator]

    def test_percentages(self) -> None:
        """Test percentages relative to the original length."""
        sizes = Sizes(original_len=200, minified_len=150, gz_len=50, br_len=40)

        assert sizes.minified_pct == pytest.approx(75.0)
        assert sizes.gz_pct == pytest.approx(25.0)
        assert sizes.br_pct == pytest.approx(20.0)

    def test_percentages_of_empty_original(self) -> None:
        """Test that an empty original does not divide by zero."""
        assert Sizes().minified_pct == 0.0

    def test_to_dict(self) -> None:
        """Test dict serialization."""
        assert Sizes(1, 2, 3, 4).to_dict() == {
            "original_len": 1,
            "minified_len": 2,
            "gz_len": 3,
            "br_len": 4,
        }


class TestTreeEntry:
    """Test TreeEntry constructors."""

    def test_blob_entry(self) -> None:
        """Test regular-file entries."""
        entry = TreeEntry.blob("index.html", "ab" * 20)
        assert entry.kind == EntryKind.BLOB
        assert entry.mode == FileMode.BLOB == 0o100644

    def test_tree_entry(self) -> None:
        """Test directory entries."""
        entry = TreeEntry.tree("blog", "cd" * 20)
        assert entry.kind == EntryKind.TREE
        assert entry.mode == FileMode.TREE == 0o040000

    def test_entries_are_immutable(self) -> None:
        """Test that entries are frozen values."""
        entry = TreeEntry.blob("a.html", "00" * 20)
        with pytest.raises(AttributeError):
            entry.name = "b.html"  # type: ignore[misc]

    def test_cache_record_equality(self) -> None:
        """Test that records compare by value."""
        sizes = Sizes(1, 2, 3, 4)
        assert CacheRecord("a", "b", "c", sizes) == CacheRecord("a", "b", "c", sizes)


def test_generate_id_prefix() -> None:
    """Test that generated ids carry the prefix and are unique."""
    first = generate_id("run")
    second = generate_id("run")

    assert first.startswith("run_")
    assert first != second
