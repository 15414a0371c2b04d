"""Tests for change impact reports."""

import pytest

from repolens.tools.impact_tool import analyze_impact


@pytest.fixture()
def snapshot(sample_repo, analyzer):
    return analyzer.analyze(str(sample_repo))


class TestImpact:
    def test_changed_known_and_new_files(self, snapshot) -> None:
        report = analyze_impact(snapshot, ["./app/models.py", "app/new.py"])

        assert [(f.file_path, f.language, f.symbol_count, f.known) for f in report.changed_files] == [
            ("app/models.py", "python", 6, True),
            ("app/new.py", None, 0, False),
        ]
        assert [s.name for s in report.affected_symbols] == [
            "Base", "save", "validate", "User", "name", "greet",
        ]
        assert report.languages_touched == ["python"]

    def test_downstream_importers(self, snapshot) -> None:
        assert analyze_impact(snapshot, ["app/models.py"]).downstream_files == ["app/main.py"]
        assert analyze_impact(snapshot, ["web/src/util.ts"]).downstream_files == ["web/src/api.ts"]
        assert analyze_impact(snapshot, ["web/src/api.ts"]).downstream_files == []

    def test_changed_importers_are_not_downstream(self, snapshot) -> None:
        report = analyze_impact(snapshot, ["app/models.py", "app/main.py"])
        assert report.downstream_files == []

    def test_affected_edges_record_changed_side(self, snapshot) -> None:
        report = analyze_impact(snapshot, ["app/models.py"])
        edges = {(e.source, e.target, e.relationship): e.impact_side for e in report.affected_edges}

        assert edges[("file:app/main.py", "file:app/models.py", "Imports")] == "target"
        assert edges[("folder:app", "file:app/models.py", "Contains")] == "target"
        assert edges[("class:app/models.py:User", "class:app/models.py:Base", "Inherits")] == "source"
        assert not any(source.startswith("file:web") for source, _, _ in edges)

    def test_backslash_paths(self, snapshot) -> None:
        report = analyze_impact(snapshot, ["web\\src\\util.ts"])
        assert report.changed_files[0].known
        assert report.to_dict()["downstream_files"] == ["web/src/api.ts"]

    def test_empty_change_set(self, snapshot) -> None:
        report = analyze_impact(snapshot, [])
        assert report.changed_files == []
        assert report.affected_edges == []
