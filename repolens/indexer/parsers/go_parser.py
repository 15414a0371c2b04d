"""Go extraction with line patterns and brace-depth scope tracking."""

import logging
import re
from typing import List, Optional

from ..models import (
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
from .lexical import ScopeTracker, mask_source

logger = logging.getLogger(__name__)

PACKAGE_RE = re.compile(r"^\s*package\s+(\w+)")
IMPORT_SINGLE_RE = re.compile(r'^\s*import\s+(?:[\w.]+\s+)?"([^"]+)"')
IMPORT_BLOCK_START_RE = re.compile(r"^\s*import\s*\(")
IMPORT_SPEC_RE = re.compile(r'^\s*(?:[\w.]+\s+)?"([^"]+)"')
TYPE_BLOCK_START_RE = re.compile(r"^\s*type\s*\(")
VALUE_BLOCK_START_RE = re.compile(r"^\s*(?:const|var)\s*\(")
TYPE_RE = re.compile(r"^\s*(?:type\s+)?([A-Za-z_]\w*)(?:\[[^\]]*\])?\s+(struct|interface)\s*\{?")
OTHER_TYPE_RE = re.compile(r"^\s*type\s+([A-Za-z_]\w*)(?:\[[^\]]*\])?\s+=?\s*[\w.*\[\]]")
FUNC_RE = re.compile(r"^\s*func\s+([A-Za-z_]\w*)\s*[\[(]")
METHOD_RE = re.compile(
    r"^\s*func\s+\(\s*(?:\w+\s+)?\*?([A-Za-z_]\w*)(?:\[[^\]]*\])?\s*\)\s+([A-Za-z_]\w*)\s*[\[(]"
)
VALUE_RE = re.compile(r"^\s*(?:const|var)\s+([A-Za-z_]\w*)")
VALUE_SPEC_RE = re.compile(r"^\s*([A-Za-z_]\w*)\b")
FIELD_RE = re.compile(r"^\s*([A-Za-z_]\w*)(?:\s*,\s*[A-Za-z_]\w*)*\s+[^\s]")
INTERFACE_METHOD_RE = re.compile(r"^\s*([A-Za-z_]\w*)\s*\(")
EMBEDDED_RE = re.compile(r"^\s*\*?((?:[A-Za-z_]\w*\.)?[A-Za-z_]\w*)(?:\[[^\]]*\])?\s*(?:`[^`]*`)?\s*$")


def package_dir_candidates(import_path: str) -> List[str]:
    """Directories an import path may name inside the repository.

    Every trailing run of path segments is a candidate, longest first, so
    ``github.com/acme/app/internal/store`` tries ``internal/store`` when the
    module root is the repository root.

    Args:
        import_path: Import path as written

    Returns:
        Candidate directories, empty for standard library packages
    """
    if "/" not in import_path and "." not in import_path:
        return []
    segments = [s for s in import_path.split("/") if s and s != "."]
    return ["/".join(segments[i:]) for i in range(len(segments))]


class GoParser(LanguageParser):
    """Extracts Go packages, types, functions, methods, values and imports."""

    language = "go"

    def parse(self, record: FileRecord, source: str) -> ParseResult:
        symbols: List[Symbol] = []
        fragment = GraphFragment()
        # Raw strings keep their contents so import paths survive masking
        code_lines = mask_source(source, quotes='"', multiline_quotes="`", mask_strings=False).split("\n")
        masked_lines = mask_source(source, quotes="\"'", multiline_quotes="`").split("\n")
        tracker = ScopeTracker()
        block: Optional[str] = None
        embedded_count = {}

        def add(name: str, kind: SymbolKind, line_no: int, parent: Optional[str] = None) -> Symbol:
            symbol = Symbol(name=name, kind=kind, file_path=record.path, line=line_no, parent=parent)
            symbols.append(symbol)
            return symbol

        for index, masked in enumerate(masked_lines):
            line_no = index + 1
            code = code_lines[index]
            depth = tracker.begin_line()

            if block is not None and depth == 0:
                if masked.strip().startswith(")"):
                    block = None
                    tracker.consume(masked)
                    continue
                if block == "import":
                    match = IMPORT_SPEC_RE.match(code)
                    if match:
                        self._add_import(record, match.group(1), line_no, symbols, fragment)
                elif block == "type":
                    self._match_type(masked, line_no, depth, tracker, add)
                elif block == "value":
                    match = VALUE_SPEC_RE.match(masked)
                    if match and match.group(1) != "_":
                        add(match.group(1), SymbolKind.VARIABLE, line_no)
                tracker.consume(masked)
                continue

            if depth == 0:
                if PACKAGE_RE.match(masked):
                    add(PACKAGE_RE.match(masked).group(1), SymbolKind.NAMESPACE, line_no)
                elif IMPORT_BLOCK_START_RE.match(masked):
                    block = "import"
                elif IMPORT_SINGLE_RE.match(code):
                    self._add_import(record, IMPORT_SINGLE_RE.match(code).group(1), line_no, symbols, fragment)
                elif TYPE_BLOCK_START_RE.match(masked):
                    block = "type"
                elif VALUE_BLOCK_START_RE.match(masked):
                    block = "value"
                elif METHOD_RE.match(masked):
                    match = METHOD_RE.match(masked)
                    add(match.group(2), SymbolKind.METHOD, line_no, match.group(1))
                elif FUNC_RE.match(masked):
                    add(FUNC_RE.match(masked).group(1), SymbolKind.FUNCTION, line_no)
                elif masked.lstrip().startswith("type"):
                    self._match_type(masked, line_no, depth, tracker, add)
                elif VALUE_RE.match(masked):
                    name = VALUE_RE.match(masked).group(1)
                    if name != "_":
                        add(name, SymbolKind.VARIABLE, line_no)
            elif tracker.is_declaration_context(depth) and masked.strip():
                container = tracker.container(depth)
                if container is not None:
                    self._match_member(masked, line_no, container, add, fragment, embedded_count)

            tracker.consume(masked)

        symbols.sort(key=lambda s: (s.line, s.name, s.kind.value))
        return ParseResult(symbols=symbols, fragment=fragment)

    @staticmethod
    def _match_type(line: str, line_no: int, depth: int, tracker: ScopeTracker, add) -> None:
        match = TYPE_RE.match(line)
        if match:
            name, keyword = match.group(1), match.group(2)
            kind = SymbolKind.INTERFACE if keyword == "interface" else SymbolKind.CLASS
            add(name, kind, line_no)
            if "{" in line:
                tracker.push(name, keyword, depth)
            return
        match = OTHER_TYPE_RE.match(line if line.lstrip().startswith("type") else "type " + line)
        if match:
            add(match.group(1), SymbolKind.CLASS, line_no)

    @staticmethod
    def _match_member(line, line_no, container, add, fragment, embedded_count) -> None:
        embedded = EMBEDDED_RE.match(line)
        if embedded:
            # Embedded types: the first is the primary base
            base = embedded.group(1).split(".")[-1]
            position = embedded_count.get(container.name, 0)
            embedded_count[container.name] = position + 1
            relationship = EdgeRelationship.INHERITS if position == 0 else EdgeRelationship.IMPLEMENTS
            fragment.relations.append(TypeRelation(container.name, base, relationship, line_no))
            return

        if container.kind == "interface":
            match = INTERFACE_METHOD_RE.match(line)
            if match:
                add(match.group(1), SymbolKind.METHOD, line_no, container.name)
            return

        match = FIELD_RE.match(line)
        if match:
            add(match.group(1), SymbolKind.PROPERTY, line_no, container.name)

    @staticmethod
    def _add_import(record, import_path, line_no, symbols, fragment) -> None:
        symbols.append(
            Symbol(name=import_path, kind=SymbolKind.IMPORT, file_path=record.path, line=line_no)
        )
        fragment.imports.append(
            ImportRef(
                specifier=import_path,
                line=line_no,
                candidates=tuple(package_dir_candidates(import_path)),
                directory=True,
            )
        )
