"""Tests for fingerprint diffing and tree hashing."""

from repolens.indexer.merkle_tree import ChangeSet, compute_tree_hash, diff_fingerprints


class TestDiffFingerprints:
    def test_classifies_every_path(self) -> None:
        previous = {"a.py": "1", "b.py": "2", "c.py": "3"}
        current = {"a.py": "1", "b.py": "20", "d.py": "4"}
        changes = diff_fingerprints(previous, current)

        assert changes.added == ["d.py"]
        assert changes.modified == ["b.py"]
        assert changes.removed == ["c.py"]
        assert changes.unchanged == ["a.py"]
        assert changes.changed == ["b.py", "d.py"]
        assert not changes.is_empty()

    def test_identical_maps_are_empty(self) -> None:
        changes = diff_fingerprints({"a.py": "1"}, {"a.py": "1"})
        assert changes.is_empty()
        assert changes.get_cache_hit_rate() == 100.0

    def test_removal_alone_is_a_change(self) -> None:
        changes = diff_fingerprints({"a.py": "1", "b.py": "2"}, {"a.py": "1"})
        assert not changes.is_empty()
        assert changes.changed == []

    def test_hit_rate_of_empty_set(self) -> None:
        assert ChangeSet().get_cache_hit_rate() == 0.0


class TestTreeHash:
    def test_order_independent(self) -> None:
        assert compute_tree_hash({"a": "1", "b": "2"}) == compute_tree_hash({"b": "2", "a": "1"})

    def test_sensitive_to_paths_and_contents(self) -> None:
        base = compute_tree_hash({"a": "1", "b": "2"})
        assert compute_tree_hash({"a": "1", "b": "3"}) != base
        assert compute_tree_hash({"a": "1", "c": "2"}) != base
        assert len(base) == 64
