"""C# extraction with line patterns and brace-depth scope tracking."""

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
from .lexical import (
    IDENTIFIER,
    HeaderBuffer,
    ScopeTracker,
    mask_source,
    simple_type_name,
    split_top_level,
)

logger = logging.getLogger(__name__)

ATTRIBUTES = r"(?:\[[^\]]*\]\s*)*"
TYPE_MODIFIERS = (
    r"(?:(?:public|private|protected|internal|static|abstract|sealed|partial|readonly|"
    r"unsafe|new|file|ref)\s+)*"
)
MEMBER_MODIFIERS = (
    r"(?:(?:public|private|protected|internal|static|virtual|override|abstract|sealed|async|"
    r"extern|unsafe|new|partial|readonly|required|const|volatile|event)\s+)*"
)

USING_RE = re.compile(r"^\s*(?:global\s+)?using\s+(?:static\s+)?(?:(\w+)\s*=\s*)?([\w.]+)\s*;")
NAMESPACE_RE = re.compile(r"^\s*namespace\s+([\w.]+)\s*(;|\{|$)")
TYPE_RE = re.compile(
    r"^\s*" + ATTRIBUTES + TYPE_MODIFIERS
    + r"(class|struct|interface|enum|record(?:\s+class|\s+struct)?)\s+(" + IDENTIFIER + r")"
    r"\s*(?:<[^>{:]*>)?(?:\s*\([^)]*\))?(?:\s*:\s*([^{;]+?))?\s*(?:where\b[^{]*)?\s*(?:[{;].*)?$"
)
METHOD_RE = re.compile(
    r"^\s*" + ATTRIBUTES + MEMBER_MODIFIERS + r"(?:[\w<>\[\],.?()]+\s+)?(" + IDENTIFIER + r")"
    r"\s*(?:<[^>]*>)?\s*\("
)
PROPERTY_RE = re.compile(
    r"^\s*" + ATTRIBUTES + MEMBER_MODIFIERS + r"[\w<>\[\],.?]+\s+(" + IDENTIFIER + r")\s*(\{|=>|=|;)"
)

NOT_MEMBER_NAMES = {
    "if", "for", "foreach", "while", "switch", "using", "lock", "catch", "return",
    "new", "nameof", "typeof", "sizeof", "default", "base", "this", "throw", "await",
    "else", "do", "try", "fixed", "checked", "unchecked", "get", "set", "init", "add", "remove",
}

EXTERNAL_NAMESPACE_ROOTS = ("System", "Microsoft", "Windows")


def is_interface_name(name: str) -> bool:
    return len(name) > 1 and name[0] == "I" and name[1].isupper()


def namespace_dir_suffixes(namespace: str) -> List[str]:
    """Trailing folder paths a namespace may live in, longest first."""
    segments = namespace.split(".")
    return ["/".join(segments[i:]) for i in range(len(segments))]


class CSharpParser(LanguageParser):
    """Extracts C# namespaces, types, members, using directives and bases."""

    language = "c_sharp"

    def parse(self, record: FileRecord, source: str) -> ParseResult:
        symbols: List[Symbol] = []
        fragment = GraphFragment()
        masked = mask_source(source, quotes="\"'")
        tracker = ScopeTracker()
        file_namespace: Optional[str] = None
        header = HeaderBuffer()
        pending = None

        def add(name: str, kind: SymbolKind, line_no: int, parent: Optional[str] = None) -> Symbol:
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

            if not tracker.is_declaration_context(depth) or not line.strip():
                tracker.consume(line)
                continue

            container = tracker.container(depth)
            if container is not None:
                parent = container.name
            else:
                parent = file_namespace

            if container is None or container.kind == "namespace":
                match = USING_RE.match(line)
                if match:
                    self._add_using(record, match.group(2), line_no, symbols, fragment)
                    tracker.consume(line)
                    continue

                match = NAMESPACE_RE.match(line)
                if match:
                    name = match.group(1)
                    add(name, SymbolKind.NAMESPACE, line_no, None)
                    if match.group(2) == ";":
                        file_namespace = name
                    else:
                        tracker.push(name, "namespace", depth)
                    tracker.consume(line)
                    continue

            match = TYPE_RE.match(line)
            if match:
                keyword = match.group(1).split()[0]
                name = match.group(2)
                kind = SymbolKind.INTERFACE if keyword == "interface" else SymbolKind.CLASS
                symbol = add(name, kind, line_no, parent)
                tracker.push(name, keyword, depth)
                if not header.is_complete(line):
                    # The base list may continue on the following lines
                    header.start(line)
                    pending = (symbol, keyword, line_no)
                elif keyword != "enum" and match.group(3):
                    self._add_bases(symbol, keyword, match.group(3), line_no, fragment)
            elif container is not None and container.kind not in ("namespace", "enum"):
                self._match_member(line, line_no, container.name, add)

            tracker.consume(line)

        joined = header.flush()
        if joined is not None:
            self._finish_header(joined, pending, fragment)

        symbols.sort(key=lambda s: (s.line, s.name, s.kind.value))
        return ParseResult(symbols=symbols, fragment=fragment)

    def _finish_header(self, joined: str, pending, fragment: GraphFragment) -> None:
        symbol, keyword, line_no = pending
        match = TYPE_RE.match(joined)
        if match is None:
            logger.debug(f"Unrecognised header of {symbol.name}: {joined}")
            return
        if keyword != "enum" and match.group(3):
            self._add_bases(symbol, keyword, match.group(3), line_no, fragment)

    @staticmethod
    def _match_member(line: str, line_no: int, parent: str, add) -> None:
        match = METHOD_RE.match(line)
        if match and match.group(1) not in NOT_MEMBER_NAMES:
            add(match.group(1), SymbolKind.METHOD, line_no, parent)
            return
        match = PROPERTY_RE.match(line)
        if match and match.group(1) not in NOT_MEMBER_NAMES:
            add(match.group(1), SymbolKind.PROPERTY, line_no, parent)

    @staticmethod
    def _add_bases(symbol: Symbol, keyword: str, base_list: str, line_no: int, fragment) -> None:
        """Classify a base list.

        A class or struct inherits from its first base unless that base is
        named like an interface; every interface-named base is implemented.
        An interface's first base is treated as its primary supertype.
        """
        bases = [b for b in (simple_type_name(item) for item in split_top_level(base_list)) if b]
        for position, base in enumerate(bases):
            if keyword == "interface":
                relationship = EdgeRelationship.INHERITS if position == 0 else EdgeRelationship.IMPLEMENTS
            elif position == 0 and not is_interface_name(base):
                relationship = EdgeRelationship.INHERITS
            else:
                relationship = EdgeRelationship.IMPLEMENTS
            fragment.relations.append(TypeRelation(symbol.qualified_name, base, relationship, line_no))

    @staticmethod
    def _add_using(record, namespace, line_no, symbols, fragment) -> None:
        symbols.append(
            Symbol(name=namespace, kind=SymbolKind.IMPORT, file_path=record.path, line=line_no)
        )
        if namespace.split(".")[0] in EXTERNAL_NAMESPACE_ROOTS:
            return
        fragment.imports.append(
            ImportRef(
                specifier=namespace,
                line=line_no,
                directory=True,
                suffixes=tuple(namespace_dir_suffixes(namespace)),
            )
        )
