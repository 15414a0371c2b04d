"""JavaScript and TypeScript extraction with line patterns and brace depth."""

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
    LineIndex,
    ScopeTracker,
    join_relative,
    mask_source,
    posix_dirname,
    simple_type_name,
    split_top_level,
    unique,
)

logger = logging.getLogger(__name__)

RESOLVE_EXTENSIONS = [".ts", ".tsx", ".d.ts", ".js", ".jsx", ".mjs", ".cjs"]

# Common bundler aliases that point at the source root.
ALIAS_PREFIXES = {"@/": ["src/", ""], "~/": ["src/", ""]}

STRING = r"(['\"`])([^'\"`\n]+)\1"

IMPORT_PATTERNS = [
    re.compile(r"\b(?:import|export)\s+(?:type\s+)?[^'\"`;]*?\bfrom\s*" + STRING),
    re.compile(r"(?<![\w$.])import\s*" + STRING),
    re.compile(r"(?<![\w$.])import\s*\(\s*" + STRING + r"\s*\)"),
    re.compile(r"(?<![\w$.])require\s*\(\s*" + STRING + r"\s*\)"),
]

MODIFIERS = r"(?:(?:export|default|declare|abstract|public|private|protected|static|readonly|async|override)\s+)*"

CLASS_RE = re.compile(
    r"^\s*" + MODIFIERS + r"class\s+(" + IDENTIFIER + r")\s*(?:<[^{]*?>)?"
    r"(?:\s+extends\s+([\w$.]+)(?:\s*<[^{]*?>)?)?"
    r"(?:\s+implements\s+([^{]+))?"
)
INTERFACE_RE = re.compile(
    r"^\s*" + MODIFIERS + r"interface\s+(" + IDENTIFIER + r")\s*(?:<[^{]*?>)?(?:\s+extends\s+([^{]+))?"
)
ENUM_RE = re.compile(r"^\s*" + MODIFIERS + r"(?:const\s+)?enum\s+(" + IDENTIFIER + r")")
NAMESPACE_RE = re.compile(r"^\s*" + MODIFIERS + r"(?:namespace|module)\s+([A-Za-z_$][\w$.]*)\s*\{")
FUNCTION_RE = re.compile(r"^\s*" + MODIFIERS + r"function\s*\*?\s*(" + IDENTIFIER + r")\s*[<(]")
ARROW_RE = re.compile(
    r"^\s*" + MODIFIERS + r"(?:const|let|var)\s+(" + IDENTIFIER + r")\s*(?::[^=]+)?="
    r"\s*(?:async\s+)?(?:function\b|(?:<[^>]*>\s*)?\([^)]*\)\s*(?::\s*[^=]+)?=>|" + IDENTIFIER + r"\s*=>)"
)
VARIABLE_RE = re.compile(r"^\s*" + MODIFIERS + r"(?:const|let|var)\s+(" + IDENTIFIER + r")\b")
METHOD_RE = re.compile(
    r"^\s*(?:(?:public|private|protected|static|readonly|abstract|async|override|get|set|declare)\s+)*"
    r"\*?\s*(#?" + IDENTIFIER + r")\s*[?!]?\s*(?:<[^>]*>)?\s*\("
)
FIELD_RE = re.compile(
    r"^\s*(?:(?:public|private|protected|static|readonly|declare|override|abstract)\s+)*"
    r"(#?" + IDENTIFIER + r")\s*[?!]?\s*(?::[^;=]+)?(=.*|;.*)?$"
)

NOT_MEMBER_NAMES = {
    "if", "for", "while", "switch", "catch", "return", "function", "super",
    "await", "new", "typeof", "else", "do", "try", "with", "yield", "delete",
    "void", "throw", "case", "default", "import", "export",
}


class JavaScriptParser(LanguageParser):
    """Extracts JS/TS classes, interfaces, functions, members and imports."""

    language = "javascript"

    def parse(self, record: FileRecord, source: str) -> ParseResult:
        symbols: List[Symbol] = []
        fragment = GraphFragment()
        directory = posix_dirname(record.path)

        code = mask_source(source, quotes="\"'", multiline_quotes="`", mask_strings=False)
        self._collect_imports(record, code, directory, symbols, fragment)

        masked = mask_source(source, quotes="\"'", multiline_quotes="`", mask_strings=True)
        tracker = ScopeTracker()

        for index, line in enumerate(masked.split("\n")):
            line_no = index + 1
            depth = tracker.begin_line()
            if tracker.is_declaration_context(depth) and line.strip():
                container = tracker.container(depth)
                self._match_line(record, line, line_no, depth, container, tracker, symbols, fragment)
            tracker.consume(line)

        symbols.sort(key=lambda s: (s.line, s.name, s.kind.value))
        return ParseResult(symbols=symbols, fragment=fragment)

    def _match_line(self, record, line, line_no, depth, container, tracker, symbols, fragment) -> None:
        parent = container.name if container else None

        def add(name: str, kind: SymbolKind, owner: Optional[str] = parent) -> Symbol:
            symbol = Symbol(name=name, kind=kind, file_path=record.path, line=line_no, parent=owner)
            symbols.append(symbol)
            return symbol

        if container is not None and container.kind in ("interface", "enum"):
            return

        match = CLASS_RE.match(line)
        if match:
            symbol = add(match.group(1), SymbolKind.CLASS)
            tracker.push(symbol.name, "class", depth)
            if match.group(2):
                base = simple_type_name(match.group(2))
                if base:
                    fragment.relations.append(
                        TypeRelation(symbol.qualified_name, base, EdgeRelationship.INHERITS, line_no)
                    )
            if match.group(3):
                for item in split_top_level(match.group(3)):
                    base = simple_type_name(item)
                    if base:
                        fragment.relations.append(
                            TypeRelation(symbol.qualified_name, base, EdgeRelationship.IMPLEMENTS, line_no)
                        )
            return

        match = INTERFACE_RE.match(line)
        if match:
            symbol = add(match.group(1), SymbolKind.INTERFACE)
            tracker.push(symbol.name, "interface", depth)
            if match.group(2):
                bases = [simple_type_name(item) for item in split_top_level(match.group(2))]
                for position, base in enumerate(b for b in bases if b):
                    relationship = EdgeRelationship.INHERITS if position == 0 else EdgeRelationship.IMPLEMENTS
                    fragment.relations.append(
                        TypeRelation(symbol.qualified_name, base, relationship, line_no)
                    )
            return

        match = ENUM_RE.match(line)
        if match:
            symbol = add(match.group(1), SymbolKind.CLASS)
            tracker.push(symbol.name, "enum", depth)
            return

        match = NAMESPACE_RE.match(line)
        if match:
            symbol = add(match.group(1), SymbolKind.NAMESPACE)
            tracker.push(symbol.name, "namespace", depth)
            return

        in_class = container is not None and container.kind == "class"
        if in_class:
            self._match_member(line, add)
            return

        match = FUNCTION_RE.match(line)
        if match:
            add(match.group(1), SymbolKind.FUNCTION)
            return

        match = ARROW_RE.match(line)
        if match:
            add(match.group(1), SymbolKind.FUNCTION)
            return

        match = VARIABLE_RE.match(line)
        if match:
            add(match.group(1), SymbolKind.VARIABLE)

    def _match_member(self, line: str, add) -> None:
        match = METHOD_RE.match(line)
        if match and match.group(1) not in NOT_MEMBER_NAMES:
            add(match.group(1), SymbolKind.METHOD)
            return

        match = FIELD_RE.match(line)
        if match and match.group(1) not in NOT_MEMBER_NAMES:
            initializer = match.group(2) or ""
            kind = SymbolKind.METHOD if "=>" in initializer else SymbolKind.PROPERTY
            add(match.group(1), kind)

    def _collect_imports(self, record, code, directory, symbols, fragment) -> None:
        lines = LineIndex(code)
        found = []
        for pattern in IMPORT_PATTERNS:
            for match in pattern.finditer(code):
                found.append((match.start(2), match.group(2)))

        seen_offsets = set()
        for offset, specifier in sorted(found):
            if offset in seen_offsets:
                continue
            seen_offsets.add(offset)
            line_no = lines.line_of(offset)
            symbols.append(
                Symbol(name=specifier, kind=SymbolKind.IMPORT, file_path=record.path, line=line_no)
            )
            fragment.imports.append(
                ImportRef(
                    specifier=specifier,
                    line=line_no,
                    candidates=unique(self.resolve_candidates(directory, specifier)),
                )
            )

    def resolve_candidates(self, directory: str, specifier: str) -> List[str]:
        """List in-repository files a module specifier may refer to.

        Args:
            directory: Directory of the importing file
            specifier: Module specifier as written

        Returns:
            Candidate paths in preference order, empty for packages
        """
        bases: List[str] = []
        if specifier.startswith("."):
            joined = join_relative(directory, specifier)
            if joined:
                bases.append(joined)
        else:
            for prefix, roots in ALIAS_PREFIXES.items():
                if specifier.startswith(prefix):
                    rest = specifier[len(prefix):]
                    bases.extend(f"{root}{rest}" for root in roots)

        candidates: List[str] = []
        for base in bases:
            stem, dot, ext = base.rpartition(".")
            if dot and "/" not in ext:
                # Explicit file names: ./styles.css, ./util.js
                candidates.append(base)
                if f".{ext}" in RESOLVE_EXTENSIONS:
                    # ESM TypeScript imports name the emitted .js file
                    candidates.extend(f"{stem}{e}" for e in RESOLVE_EXTENSIONS)
            candidates.extend(f"{base}{e}" for e in RESOLVE_EXTENSIONS)
            candidates.extend(f"{base}/index{e}" for e in RESOLVE_EXTENSIONS)
        return candidates
