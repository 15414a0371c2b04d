"""Tests for Python symbol and reference extraction."""

from conftest import make_record

from repolens.indexer.models import CallRef, EdgeRelationship, SymbolKind, TypeRelation
from repolens.indexer.parsers.python_parser import PythonParser

SOURCE = '''\
import os
import pkg.util as u
from .models import User, Base
from ..core import engine

MAX_SIZE = 10
lowercase = 5

class Service(Base, Mixin, metaclass=ABCMeta):
    timeout = 30

    @property
    def name(self):
        return self._helper()

    def _helper(self):
        return run()

    class Inner:
        pass


def run():
    if True:
        return Service()


if __name__ == "__main__":
    def entry():
        pass
'''


def parse(source: str = SOURCE, path: str = "app/api/service.py"):
    return PythonParser().parse(make_record(path, "python"), source)


def symbol_table(result):
    return [(s.name, s.kind, s.line, s.parent) for s in result.symbols]


class TestPythonSymbols:
    def test_extracts_declarations_with_lines_and_parents(self) -> None:
        table = symbol_table(parse())

        assert ("MAX_SIZE", SymbolKind.VARIABLE, 6, None) in table
        assert ("Service", SymbolKind.CLASS, 9, None) in table
        assert ("timeout", SymbolKind.PROPERTY, 10, "Service") in table
        assert ("name", SymbolKind.METHOD, 13, "Service") in table
        assert ("_helper", SymbolKind.METHOD, 16, "Service") in table
        assert ("Inner", SymbolKind.CLASS, 19, "Service") in table
        assert ("run", SymbolKind.FUNCTION, 23, None) in table
        assert ("entry", SymbolKind.FUNCTION, 29, None) in table

    def test_lowercase_module_assignments_are_not_symbols(self) -> None:
        names = [s.name for s in parse().symbols]
        assert "lowercase" not in names

    def test_import_symbols(self) -> None:
        imports = [(s.name, s.line) for s in parse().symbols if s.kind == SymbolKind.IMPORT]
        assert imports == [("os", 1), ("pkg.util", 2), (".models", 3), ("..core", 4)]

    def test_symbols_are_sorted_by_line(self) -> None:
        lines = [s.line for s in parse().symbols]
        assert lines == sorted(lines)

    def test_empty_file(self) -> None:
        result = parse("")
        assert result.symbols == []
        assert result.fragment.imports == []

    def test_syntax_errors_still_yield_symbols(self) -> None:
        result = parse("class Ok:\n    pass\n\ndef broken(:\n")
        assert ("Ok", SymbolKind.CLASS, 1, None) in symbol_table(result)
        assert result.error is None


class TestPythonReferences:
    def test_base_classes(self) -> None:
        relations = parse().fragment.relations
        assert relations == [
            TypeRelation("Service", "Base", EdgeRelationship.INHERITS, 9),
            TypeRelation("Service", "Mixin", EdgeRelationship.IMPLEMENTS, 9),
        ]

    def test_marker_bases_are_ignored(self) -> None:
        result = parse("class A(object):\n    pass\n\nclass B(ABC, Generic[T], Real):\n    pass\n")
        assert [(r.subtype, r.base, r.relationship) for r in result.fragment.relations] == [
            ("B", "Real", EdgeRelationship.INHERITS)
        ]

    def test_nested_class_relations_use_qualified_name(self) -> None:
        result = parse("class Outer:\n    class Inner(Base):\n        pass\n")
        assert result.fragment.relations[0].subtype == "Outer.Inner"

    def test_relative_import_candidates(self) -> None:
        imports = {ref.specifier: ref for ref in parse().fragment.imports}

        assert imports[".models"].candidates == (
            "app/api/models.py",
            "app/api/models/__init__.py",
        )
        assert imports["..core"].candidates == ("app/core.py", "app/core/__init__.py")
        assert imports["..core.engine"].candidates == (
            "app/core/engine.py",
            "app/core/engine/__init__.py",
        )

    def test_absolute_import_candidates(self) -> None:
        imports = {ref.specifier: ref for ref in parse().fragment.imports}
        assert imports["pkg.util"].candidates == (
            "app/api/pkg/util.py",
            "app/api/pkg/util/__init__.py",
            "pkg/util.py",
            "pkg/util/__init__.py",
        )

    def test_from_package_import_module(self) -> None:
        result = parse("from . import helpers\n", path="pkg/main.py")
        candidates = [ref.candidates for ref in result.fragment.imports]
        assert ("pkg/__init__.py",) in candidates
        assert ("pkg/helpers.py", "pkg/helpers/__init__.py") in candidates

    def test_calls_inside_functions(self) -> None:
        calls = parse().fragment.calls
        assert CallRef("Service.name", "_helper", 14) in calls
        assert CallRef("Service._helper", "run", 17) in calls
        assert CallRef("run", "Service", 25) in calls

    def test_same_input_same_output(self) -> None:
        first, second = parse(), parse()
        assert first.symbols == second.symbols
        assert first.fragment == second.fragment
