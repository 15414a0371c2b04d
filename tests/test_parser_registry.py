"""Tests for language dispatch."""

from conftest import make_record

from repolens.indexer.models import ParseResult, SymbolKind
from repolens.indexer.parsers.base import LanguageParser, ParserRegistry
from repolens.indexer.parsers.javascript_parser import JavaScriptParser


class ExplodingParser(LanguageParser):
    language = "python"

    def parse(self, record, source) -> ParseResult:
        raise RuntimeError("parser crashed")


class TestParserRegistry:
    def test_default_languages(self) -> None:
        registry = ParserRegistry()
        assert registry.get_supported_languages() == [
            "c_sharp", "go", "java", "javascript", "python", "typescript",
        ]
        assert registry.get_parser("javascript") is registry.get_parser("typescript")

    def test_unknown_language_is_empty(self) -> None:
        result = ParserRegistry().extract(make_record("a.rb", "ruby"), b"class A; end\n")
        assert result.symbols == []
        assert result.error is None

    def test_oversized_content_is_not_parsed(self) -> None:
        registry = ParserRegistry(max_file_size=10)
        result = registry.extract(make_record("a.py", "python"), b"class A:\n    pass\n")
        assert result.symbols == []

    def test_parser_errors_are_contained(self) -> None:
        registry = ParserRegistry({"python": ExplodingParser()})
        result = registry.extract(make_record("a.py", "python"), b"x = 1\n")
        assert result.error == "RuntimeError: parser crashed"
        assert result.symbols == []

    def test_invalid_utf8_is_replaced(self) -> None:
        registry = ParserRegistry()
        result = registry.extract(make_record("a.js", "javascript"), b"function f\xff() {}\nfunction g() {}\n")
        assert [(s.name, s.kind) for s in result.symbols] == [("g", SymbolKind.FUNCTION)]

    def test_register_parser(self) -> None:
        registry = ParserRegistry({})
        assert not registry.supports("javascript")
        registry.register_parser("javascript", JavaScriptParser())
        assert registry.supports("javascript")
