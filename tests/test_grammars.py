"""Tests for the language table."""

import json
from pathlib import Path

from repolens.indexer.grammars import UNKNOWN_LANGUAGE, LanguageRegistry, get_language_registry


class TestLanguageRegistry:
    def test_bundled_table_covers_many_extensions(self) -> None:
        registry = get_language_registry()
        assert len(registry.get_supported_extensions()) >= 30
        assert "c_sharp" in registry.get_supported_languages()

    def test_detects_by_extension(self) -> None:
        registry = get_language_registry()
        assert registry.detect_language("src/app.py") == "python"
        assert registry.detect_language("web/App.TSX") == "typescript"
        assert registry.detect_language("svc/Program.cs") == "c_sharp"
        assert registry.detect_language("cmd/main.go") == "go"

    def test_detects_by_file_name(self) -> None:
        registry = get_language_registry()
        assert registry.detect_language("deploy/Dockerfile") == "dockerfile"
        assert registry.detect_language("Makefile") == "makefile"

    def test_unknown_extension(self) -> None:
        registry = get_language_registry()
        assert registry.detect_language("notes.txt") == UNKNOWN_LANGUAGE
        assert not registry.is_supported_file("notes.txt")

    def test_code_languages(self) -> None:
        registry = get_language_registry()
        assert registry.is_code_language("python")
        assert not registry.is_code_language("markdown")
        assert not registry.is_code_language(UNKNOWN_LANGUAGE)
        assert registry.display_name("c_sharp") == "C#"
        assert registry.display_name("something") == "something"

    def test_custom_table(self, tmp_path: Path) -> None:
        table = tmp_path / "languages.json"
        table.write_text(
            json.dumps({"zig": {"extensions": [".zig"], "display_name": "Zig"}}),
            encoding="utf-8",
        )
        registry = LanguageRegistry(str(table))
        assert registry.detect_language("main.zig") == "zig"
        assert registry.is_code_language("zig")
        assert registry.detect_language("main.py") == UNKNOWN_LANGUAGE
