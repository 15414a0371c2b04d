"""Java extraction with line patterns and brace-depth scope tracking."""

import logging
import re
from typing import List

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
from .lexical import (
    IDENTIFIER,
    HeaderBuffer,
    ScopeTracker,
    mask_source,
    simple_type_name,
    split_top_level,
)

logger = logging.getLogger(__name__)

ANNOTATIONS = r"(?:@[\w.]+(?:\([^)]*\))?\s+)*"
TYPE_MODIFIERS = r"(?:(?:public|private|protected|static|final|abstract|sealed|non-sealed|strictfp)\s+)*"
MEMBER_MODIFIERS = (
    r"(?:(?:public|private|protected|static|final|abstract|synchronized|native|default|"
    r"transient|volatile|strictfp)\s+)*"
)

PACKAGE_RE = re.compile(r"^\s*package\s+([\w.]+)\s*;")
IMPORT_RE = re.compile(r"^\s*import\s+(static\s+)?([\w.]+?)(\.\*)?\s*;")
TYPE_RE = re.compile(
    r"^\s*" + ANNOTATIONS + TYPE_MODIFIERS + r"(class|interface|enum|record|@interface)\s+("
    + IDENTIFIER + r")\s*(?:<[^{]*?>)?(?:\s*\([^)]*\))?"
    r"(?:\s+extends\s+([^{]+?))?(?:\s+implements\s+([^{]+?))?(?:\s+permits\s+[^{]+?)?\s*(?:\{.*)?$"
)
METHOD_RE = re.compile(
    r"^\s*" + ANNOTATIONS + MEMBER_MODIFIERS + r"(?:<[^>]+>\s+)?(?:[\w<>\[\],.?\s]+?\s+)?("
    + IDENTIFIER + r")\s*\("
)
FIELD_RE = re.compile(
    r"^\s*" + ANNOTATIONS + MEMBER_MODIFIERS + r"[\w<>\[\],.?]+(?:\s*\[\])*\s+(" + IDENTIFIER + r")\s*(?:=|;|,)"
)

NOT_MEMBER_NAMES = {
    "if", "for", "while", "switch", "catch", "return", "new", "throw", "else",
    "do", "try", "synchronized", "super", "this", "assert", "case",
}


class JavaParser(LanguageParser):
    """Extracts Java packages, types, members, imports and inheritance."""

    language = "java"

    def parse(self, record: FileRecord, source: str) -> ParseResult:
        symbols: List[Symbol] = []
        fragment = GraphFragment()
        masked = mask_source(source, quotes="\"'", text_blocks=True)
        tracker = ScopeTracker()
        header = HeaderBuffer()
        pending = None

        def add(name: str, kind: SymbolKind, line_no: int, parent=None) -> Symbol:
            symbol = Symbol(name=name, kind=kind, file_path=record.path, line=line_no, parent=parent)
            symbols.append(symbol)
            return symbol

        for index, line in enumerate(masked.split("\n")):
            line_no = index + 1
            depth = tracker.begin_line()

            if header.active:
                joined = header.feed(line)
                tracker.consume(line)
                if joined is not None:
                    self._finish_header(joined, pending, fragment)
                    pending = None
                continue

            if depth == 0:
                match = PACKAGE_RE.match(line)
                if match:
                    add(match.group(1), SymbolKind.NAMESPACE, line_no)
                    tracker.consume(line)
                    continue
                match = IMPORT_RE.match(line)
                if match:
                    self._add_import(record, match, line_no, symbols, fragment)
                    tracker.consume(line)
                    continue

            if tracker.is_declaration_context(depth) and line.strip():
                container = tracker.container(depth)
                parent = container.name if container else None

                match = TYPE_RE.match(line)
                if match:
                    keyword, name = match.group(1), match.group(2)
                    is_interface = keyword in ("interface", "@interface")
                    kind = SymbolKind.INTERFACE if is_interface else SymbolKind.CLASS
                    symbol = add(name, kind, line_no, parent)
                    tracker.push(name, keyword, depth)
                    if header.is_complete(line):
                        self._add_relations(symbol, is_interface, match.group(3), match.group(4), line_no, fragment)
                    else:
                        # extends / implements may continue on the following lines
                        header.start(line)
                        pending = (symbol, is_interface, line_no)
                elif container is not None and container.kind not in ("@interface", "enum"):
                    self._match_member(line, line_no, parent, add)

            tracker.consume(line)

        joined = header.flush()
        if joined is not None:
            self._finish_header(joined, pending, fragment)

        symbols.sort(key=lambda s: (s.line, s.name, s.kind.value))
        return ParseResult(symbols=symbols, fragment=fragment)

    def _finish_header(self, joined: str, pending, fragment: GraphFragment) -> None:
        symbol, is_interface, line_no = pending
        match = TYPE_RE.match(joined)
        if match is None:
            logger.debug(f"Unrecognised header of {symbol.name}: {joined}")
            return
        self._add_relations(symbol, is_interface, match.group(3), match.group(4), line_no, fragment)

    def _match_member(self, line: str, line_no: int, parent: str, add) -> None:
        match = METHOD_RE.match(line)
        if match and match.group(1) not in NOT_MEMBER_NAMES:
            add(match.group(1), SymbolKind.METHOD, line_no, parent)
            return
        match = FIELD_RE.match(line)
        if match and match.group(1) not in NOT_MEMBER_NAMES:
            add(match.group(1), SymbolKind.PROPERTY, line_no, parent)

    @staticmethod
    def _add_relations(symbol, is_interface, extends, implements, line_no, fragment) -> None:
        extended = [b for b in (simple_type_name(i) for i in split_top_level(extends or "")) if b]
        implemented = [b for b in (simple_type_name(i) for i in split_top_level(implements or "")) if b]

        for position, base in enumerate(extended):
            # Only the first supertype of an interface's extends list is primary
            relationship = (
                EdgeRelationship.INHERITS
                if position == 0 or not is_interface
                else EdgeRelationship.IMPLEMENTS
            )
            fragment.relations.append(TypeRelation(symbol.qualified_name, base, relationship, line_no))
        for base in implemented:
            fragment.relations.append(
                TypeRelation(symbol.qualified_name, base, EdgeRelationship.IMPLEMENTS, line_no)
            )

    @staticmethod
    def _add_import(record, match, line_no, symbols, fragment) -> None:
        is_static, dotted, wildcard = match.group(1), match.group(2), match.group(3)
        specifier = dotted + (".*" if wildcard else "")
        symbols.append(
            Symbol(name=specifier, kind=SymbolKind.IMPORT, file_path=record.path, line=line_no)
        )

        parts = dotted.split(".")
        if is_static and not wildcard and len(parts) > 1:
            # import static pkg.Type.member
            parts = parts[:-1]

        if wildcard and not is_static:
            package_dir = "/".join(parts)
            fragment.imports.append(
                ImportRef(
                    specifier=specifier,
                    line=line_no,
                    candidates=(package_dir,),
                    directory=True,
                    suffixes=(package_dir,),
                )
            )
            return

        file_path = "/".join(parts) + ".java"
        fragment.imports.append(
            ImportRef(
                specifier=specifier,
                line=line_no,
                candidates=(file_path,),
                suffixes=(file_path,),
            )
        )
