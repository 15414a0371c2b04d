"""Python symbol extraction using a tree-sitter syntax tree."""

import logging
import re
import threading
from typing import Any, List, Optional

import tree_sitter_python as tspython
from tree_sitter import Language, Parser

from ..models import (
    CallRef,
    EdgeRelationship,
    FileRecord,
    GraphFragment,
    ImportRef,
    ParseResult,
    Symbol,
    SymbolKind,
    TypeRelation,
)
from .base import LanguageParser
from .lexical import posix_dirname, unique

logger = logging.getLogger(__name__)

PY_LANGUAGE = Language(tspython.language())

CONSTANT_NAME = re.compile(r"^[A-Z][A-Z0-9_]*$")

# Bases that only mark a class as abstract or generic.
IGNORED_BASES = {"object", "ABC", "Generic", "Protocol"}

# Compound statements whose blocks still belong to the enclosing scope.
TRANSPARENT_NODES = {
    "if_statement",
    "elif_clause",
    "else_clause",
    "try_statement",
    "except_clause",
    "finally_clause",
    "with_statement",
    "for_statement",
    "while_statement",
    "block",
}

_local = threading.local()


def _get_parser() -> Parser:
    """Return this thread's tree-sitter parser.

    tree-sitter parsers are not safe to share between threads.
    """
    parser = getattr(_local, "parser", None)
    if parser is None:
        parser = Parser()
        parser.language = PY_LANGUAGE
        _local.parser = parser
    return parser


def _module_candidates(base: str) -> List[str]:
    return [f"{base}.py", f"{base}/__init__.py"]


class _FileVisitor:
    """Collects symbols and references for one file."""

    def __init__(self, record: FileRecord, source: bytes):
        self.record = record
        self.source = source
        self.directory = posix_dirname(record.path)
        self.symbols: List[Symbol] = []
        self.fragment = GraphFragment()

    def text(self, node: Any) -> str:
        return self.source[node.start_byte : node.end_byte].decode("utf-8", errors="replace")

    @staticmethod
    def line(node: Any) -> int:
        return node.start_point[0] + 1

    def add_symbol(
        self, name: str, kind: SymbolKind, node: Any, parent: Optional[str] = None
    ) -> Symbol:
        symbol = Symbol(
            name=name,
            kind=kind,
            file_path=self.record.path,
            line=self.line(node),
            parent=parent,
        )
        self.symbols.append(symbol)
        return symbol

    # Declarations

    def visit_block(self, node: Any, class_name: Optional[str]) -> None:
        for child in node.named_children:
            self.visit_statement(child, class_name)

    def visit_statement(self, node: Any, class_name: Optional[str]) -> None:
        if node.type == "decorated_definition":
            definition = node.child_by_field_name("definition")
            if definition is not None:
                self.visit_statement(definition, class_name)
        elif node.type == "class_definition":
            self.visit_class(node, class_name)
        elif node.type == "function_definition":
            self.visit_function(node, class_name)
        elif node.type == "expression_statement":
            self.visit_assignment(node, class_name)
        elif node.type in TRANSPARENT_NODES:
            self.visit_block(node, class_name)

    def visit_class(self, node: Any, enclosing_class: Optional[str]) -> None:
        name_node = node.child_by_field_name("name")
        if name_node is None:
            return
        symbol = self.add_symbol(self.text(name_node), SymbolKind.CLASS, node, enclosing_class)

        bases = self.extract_bases(node)
        for index, base in enumerate(bases):
            self.fragment.relations.append(
                TypeRelation(
                    subtype=symbol.qualified_name,
                    base=base,
                    relationship=EdgeRelationship.INHERITS if index == 0 else EdgeRelationship.IMPLEMENTS,
                    line=symbol.line,
                )
            )

        body = node.child_by_field_name("body")
        if body is not None:
            self.visit_block(body, symbol.name)

    def extract_bases(self, class_node: Any) -> List[str]:
        """Extract base class names from a class definition.

        Args:
            class_node: class_definition node

        Returns:
            Simple base names in declaration order
        """
        bases: List[str] = []
        superclasses = class_node.child_by_field_name("superclasses")
        if superclasses is None:
            return bases

        for child in superclasses.named_children:
            name = None
            if child.type == "identifier":
                name = self.text(child)
            elif child.type == "attribute":
                attr = child.child_by_field_name("attribute")
                name = self.text(attr) if attr is not None else None
            elif child.type in ("subscript", "generic_type"):
                value = child.child_by_field_name("value") or (
                    child.named_children[0] if child.named_children else None
                )
                if value is not None:
                    name = self.text(value).split(".")[-1]
            # keyword arguments such as metaclass= are not bases
            if name and name not in IGNORED_BASES and name not in bases:
                bases.append(name)
        return bases

    def visit_function(self, node: Any, class_name: Optional[str]) -> None:
        name_node = node.child_by_field_name("name")
        if name_node is None:
            return
        kind = SymbolKind.METHOD if class_name else SymbolKind.FUNCTION
        symbol = self.add_symbol(self.text(name_node), kind, node, class_name)

        body = node.child_by_field_name("body")
        if body is not None:
            self.collect_calls(body, symbol.qualified_name)

    def visit_assignment(self, node: Any, class_name: Optional[str]) -> None:
        for child in node.named_children:
            if child.type != "assignment":
                continue
            left = child.child_by_field_name("left")
            if left is None or left.type != "identifier":
                continue
            name = self.text(left)
            if class_name:
                self.add_symbol(name, SymbolKind.PROPERTY, child, class_name)
            elif CONSTANT_NAME.match(name):
                self.add_symbol(name, SymbolKind.VARIABLE, child)

    # Calls

    def collect_calls(self, body: Any, caller: str) -> None:
        stack = [body]
        while stack:
            node = stack.pop()
            if node.type == "class_definition":
                continue
            if node.type == "call":
                callee = self.call_target(node)
                if callee:
                    self.fragment.calls.append(
                        CallRef(caller=caller, callee=callee, line=self.line(node))
                    )
            stack.extend(reversed(node.named_children))

    def call_target(self, call_node: Any) -> Optional[str]:
        func_node = call_node.child_by_field_name("function")
        if func_node is None:
            return None
        if func_node.type == "identifier":
            return self.text(func_node)
        if func_node.type == "attribute":
            obj = func_node.child_by_field_name("object")
            attr = func_node.child_by_field_name("attribute")
            # Only self.method() and cls.method() stay inside the file
            if obj is not None and attr is not None and self.text(obj) in ("self", "cls"):
                return self.text(attr)
        return None

    # Imports

    def collect_imports(self, root: Any) -> None:
        stack = [root]
        while stack:
            node = stack.pop()
            if node.type == "import_statement":
                self.visit_import(node)
                continue
            if node.type == "import_from_statement":
                self.visit_import_from(node)
                continue
            if node.type == "future_import_statement":
                continue
            stack.extend(reversed(node.named_children))

    def absolute_candidates(self, module: str) -> List[str]:
        path = module.replace(".", "/")
        candidates: List[str] = []
        if self.directory:
            candidates.extend(_module_candidates(f"{self.directory}/{path}"))
        candidates.extend(_module_candidates(path))
        return candidates

    def relative_base(self, dots: int) -> Optional[str]:
        parts = self.directory.split("/") if self.directory else []
        if dots - 1 > len(parts):
            return None
        return "/".join(parts[: len(parts) - (dots - 1)])

    def add_import(self, specifier: str, node: Any, candidates: List[str]) -> None:
        self.add_symbol(specifier, SymbolKind.IMPORT, node)
        self.fragment.imports.append(
            ImportRef(specifier=specifier, line=self.line(node), candidates=unique(candidates))
        )

    def visit_import(self, node: Any) -> None:
        for child in node.named_children:
            if child.type == "dotted_name":
                module = self.text(child)
            elif child.type == "aliased_import":
                name_node = child.child_by_field_name("name")
                if name_node is None:
                    continue
                module = self.text(name_node)
            else:
                continue
            self.add_import(module, node, self.absolute_candidates(module))

    def imported_names(self, node: Any) -> List[str]:
        names: List[str] = []
        module_node = node.child_by_field_name("module_name")
        for child in node.named_children:
            if module_node is not None and child.start_byte == module_node.start_byte:
                continue
            if child.type == "dotted_name":
                names.append(self.text(child))
            elif child.type == "aliased_import":
                name_node = child.child_by_field_name("name")
                if name_node is not None:
                    names.append(self.text(name_node))
        return names

    def visit_import_from(self, node: Any) -> None:
        module_node = node.child_by_field_name("module_name")
        if module_node is None:
            return
        module = self.text(module_node).replace(" ", "")
        names = self.imported_names(node)

        if module.startswith("."):
            dots = len(module) - len(module.lstrip("."))
            rest = module[dots:]
            base = self.relative_base(dots)
            if base is None:
                self.add_import(module, node, [])
                return
            target = "/".join(p for p in [base, rest.replace(".", "/")] if p)
            if rest:
                self.add_import(module, node, _module_candidates(target))
            else:
                # from . import a, b: each name may itself be a module
                init = [f"{target}/__init__.py" if target else "__init__.py"]
                self.add_import(module, node, init)
            for name in names:
                sub = f"{target}/{name}" if target else name
                self.fragment.imports.append(
                    ImportRef(
                        specifier=f"{module}{'.' if rest else ''}{name}",
                        line=self.line(node),
                        candidates=unique(_module_candidates(sub.replace(".", "/"))),
                    )
                )
            return

        self.add_import(module, node, self.absolute_candidates(module))
        for name in names:
            submodule = f"{module}.{name}"
            self.fragment.imports.append(
                ImportRef(
                    specifier=submodule,
                    line=self.line(node),
                    candidates=unique(self.absolute_candidates(submodule)),
                )
            )


class PythonParser(LanguageParser):
    """Extracts Python classes, functions, constants, imports and calls."""

    language = "python"

    def parse(self, record: FileRecord, source: str) -> ParseResult:
        source_bytes = source.encode("utf-8")
        tree = _get_parser().parse(source_bytes)
        root = tree.root_node

        visitor = _FileVisitor(record, source_bytes)
        visitor.visit_block(root, None)
        visitor.collect_imports(root)

        if root.has_error:
            logger.debug(f"Syntax errors in {record.path}, extracted what parsed")

        symbols = sorted(visitor.symbols, key=lambda s: (s.line, s.name, s.kind.value))
        return ParseResult(symbols=symbols, fragment=visitor.fragment)
