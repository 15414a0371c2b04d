"""Aggregate statistics and a plain-English summary of an analysis snapshot."""

import logging
import posixpath
from collections import Counter
from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional

from ..indexer.grammars import LanguageRegistry, get_language_registry
from ..indexer.models import AnalysisSnapshot, EdgeRelationship, SymbolKind

logger = logging.getLogger(__name__)

ENTRY_POINT_NAMES = (
    "Program.cs", "Startup.cs",
    "index.ts", "index.js", "index.tsx", "index.jsx",
    "main.ts", "main.js", "main.tsx", "main.jsx",
    "App.tsx", "App.jsx", "App.ts", "App.js",
    "app.py", "main.py", "manage.py", "__main__.py",
    "main.go", "Main.java",
)

# File name -> framework or tooling it indicates
FRAMEWORK_MARKERS = {
    "package.json": "Node.js",
    "tsconfig.json": "TypeScript",
    "Dockerfile": "Docker",
    "pyproject.toml": "Python packaging",
    "setup.py": "Python packaging",
    "go.mod": "Go modules",
    "pom.xml": "Maven",
    "build.gradle": "Gradle",
    "Cargo.toml": "Cargo",
}

COMPLEXITY_LEVELS = (
    (500, "Tiny"),
    (5_000, "Small"),
    (50_000, "Medium"),
    (500_000, "Large"),
)

MEMBER_KINDS = {SymbolKind.METHOD, SymbolKind.PROPERTY, SymbolKind.FUNCTION}
TOP_N = 10


@dataclass
class KeyType:
    name: str
    file_path: str
    kind: str
    member_count: int


@dataclass
class ConnectedModule:
    name: str
    file_path: str
    incoming: int
    outgoing: int


@dataclass
class RepositoryOverview:
    """High-level picture of one analyzed repository."""

    name: str
    total_files: int
    total_lines: int
    language_breakdown: Dict[str, int] = field(default_factory=dict)
    language_line_breakdown: Dict[str, int] = field(default_factory=dict)
    top_level_folders: List[str] = field(default_factory=list)
    entry_points: List[str] = field(default_factory=list)
    frameworks: List[str] = field(default_factory=list)
    symbol_counts: Dict[str, int] = field(default_factory=dict)
    key_types: List[KeyType] = field(default_factory=list)
    most_connected: List[ConnectedModule] = field(default_factory=list)
    complexity: str = "Tiny"
    summary: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


def classify_complexity(total_lines: int, total_files: int, symbol_count: int) -> str:
    """Label repository size from a composite score.

    Args:
        total_lines: Lines across all files
        total_files: Number of files
        symbol_count: Number of symbols

    Returns:
        One of Tiny, Small, Medium, Large, Huge
    """
    score = total_lines + total_files * 10 + symbol_count * 5
    for limit, label in COMPLEXITY_LEVELS:
        if score < limit:
            return label
    return "Huge"


def repository_name(root: str) -> str:
    name = posixpath.basename(root.replace("\\", "/").rstrip("/"))
    for suffix in ("-main", "-master"):
        if name.endswith(suffix):
            return name[: -len(suffix)]
    return name


def _ranked(counter: Counter) -> Dict[str, int]:
    return dict(sorted(counter.items(), key=lambda item: (-item[1], item[0])))


def build_overview(
    snapshot: AnalysisSnapshot,
    name: Optional[str] = None,
    registry: Optional[LanguageRegistry] = None,
) -> RepositoryOverview:
    """Summarize a snapshot.

    Args:
        snapshot: Analysis snapshot to summarize
        name: Display name, derived from the root directory when omitted
        registry: Language registry used to tell code from data and docs

    Returns:
        Repository overview
    """
    registry = registry or get_language_registry()
    name = name or repository_name(snapshot.root)
    files = snapshot.files

    code_files = [record for record in files if registry.is_code_language(record.language)]
    by_files = Counter(record.language for record in code_files)
    by_lines: Counter = Counter()
    for record in code_files:
        by_lines[record.language] += record.line_count

    total_lines = sum(record.line_count for record in files)
    top_level_folders = sorted({record.path.split("/")[0] for record in files if "/" in record.path})
    entry_points = [
        record.path for record in files if posixpath.basename(record.path) in ENTRY_POINT_NAMES
    ]
    frameworks = []
    for record in files:
        framework = FRAMEWORK_MARKERS.get(posixpath.basename(record.path))
        if record.path.endswith(".csproj"):
            framework = ".NET"
        if framework and framework not in frameworks:
            frameworks.append(framework)

    symbol_counts = _ranked(
        Counter(symbol.kind.value for symbol in snapshot.symbols if symbol.kind != SymbolKind.IMPORT)
    )

    overview = RepositoryOverview(
        name=name,
        total_files=len(files),
        total_lines=total_lines,
        language_breakdown=_ranked(by_files),
        language_line_breakdown=_ranked(by_lines),
        top_level_folders=top_level_folders,
        entry_points=entry_points,
        frameworks=frameworks,
        symbol_counts=symbol_counts,
        key_types=_key_types(snapshot),
        most_connected=_most_connected(snapshot),
        complexity=classify_complexity(total_lines, len(files), len(snapshot.symbols)),
    )
    overview.summary = _summarize(overview, len(snapshot.symbols), registry)
    logger.info(f"Overview of {name}: {overview.total_files} files, {total_lines} lines, {overview.complexity}")
    return overview


def _key_types(snapshot: AnalysisSnapshot) -> List[KeyType]:
    declared = {}
    for symbol in snapshot.symbols:
        if symbol.kind in (SymbolKind.CLASS, SymbolKind.INTERFACE):
            declared.setdefault(symbol.name, symbol)

    members = Counter(
        symbol.parent
        for symbol in snapshot.symbols
        if symbol.parent and symbol.kind in MEMBER_KINDS
    )

    key_types = []
    for parent, count in sorted(members.items(), key=lambda item: (-item[1], item[0]))[:TOP_N]:
        symbol = declared.get(parent)
        key_types.append(
            KeyType(
                name=parent,
                file_path=symbol.file_path if symbol else "",
                kind=symbol.kind.value if symbol else SymbolKind.CLASS.value,
                member_count=count,
            )
        )
    return key_types


def _most_connected(snapshot: AnalysisSnapshot) -> List[ConnectedModule]:
    outgoing: Counter = Counter()
    incoming: Counter = Counter()
    for edge in snapshot.graph.edges_of(EdgeRelationship.IMPORTS):
        outgoing[edge.source] += 1
        incoming[edge.target] += 1

    nodes = {node.id: node for node in snapshot.graph.nodes}
    ranked = sorted(
        set(outgoing) | set(incoming),
        key=lambda node_id: (-(outgoing[node_id] + incoming[node_id]), node_id),
    )

    modules = []
    for node_id in ranked[:TOP_N]:
        node = nodes.get(node_id)
        modules.append(
            ConnectedModule(
                name=node.name if node else node_id,
                file_path=(node.file_path or "") if node else "",
                incoming=incoming[node_id],
                outgoing=outgoing[node_id],
            )
        )
    return modules


def _summarize(overview: RepositoryOverview, symbol_count: int, registry: LanguageRegistry) -> str:
    parts = []
    primary = next(iter(overview.language_breakdown), None)
    primary_name = registry.display_name(primary) if primary else "unknown"
    parts.append(
        f"{overview.name} is a {overview.complexity.lower()}-sized {primary_name} repository "
        f"with {overview.total_files:,} files and {overview.total_lines:,} lines of code."
    )

    if overview.frameworks:
        parts.append(f"It uses {', '.join(overview.frameworks)}.")

    if len(overview.language_breakdown) > 1:
        languages = ", ".join(
            f"{registry.display_name(language)} ({count} files)"
            for language, count in overview.language_breakdown.items()
        )
        parts.append(f"Languages: {languages}.")

    if overview.key_types:
        top = ", ".join(f"{t.name} ({t.member_count} members)" for t in overview.key_types[:3])
        parts.append(f"Key types: {top}.")

    if overview.entry_points:
        if len(overview.entry_points) <= 3:
            names = ", ".join(posixpath.basename(path) for path in overview.entry_points)
            parts.append(f"Entry points: {names}.")
        else:
            parts.append(f"{len(overview.entry_points)} entry points detected.")

    if symbol_count and overview.total_files:
        density = symbol_count / overview.total_files
        parts.append(f"Symbol density: {density:.1f} symbols per file ({symbol_count:,} total).")

    return " ".join(parts)
