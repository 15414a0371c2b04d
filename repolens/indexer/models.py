"""Data models for repository analysis."""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class SymbolKind(str, Enum):
    """Closed set of declaration kinds a parser may report."""

    CLASS = "Class"
    INTERFACE = "Interface"
    METHOD = "Method"
    PROPERTY = "Property"
    FUNCTION = "Function"
    VARIABLE = "Variable"
    IMPORT = "Import"
    NAMESPACE = "Namespace"
    MODULE = "Module"


class NodeType(str, Enum):
    """Dependency graph node types."""

    REPOSITORY = "Repository"
    FOLDER = "Folder"
    FILE = "File"
    NAMESPACE = "Namespace"
    CLASS = "Class"
    INTERFACE = "Interface"
    FUNCTION = "Function"
    MODULE = "Module"


class EdgeRelationship(str, Enum):
    """Directed relationship carried by a graph edge."""

    CONTAINS = "Contains"
    IMPORTS = "Imports"
    CALLS = "Calls"
    INHERITS = "Inherits"
    IMPLEMENTS = "Implements"


@dataclass(frozen=True)
class FileRecord:
    """One eligible file found by the scanner."""

    path: str  # POSIX path relative to the repository root
    language: str  # tag from languages.json, "unknown" when unrecognised
    size_bytes: int
    line_count: int
    fingerprint: str  # Blake3 hex digest of the raw bytes


@dataclass(frozen=True)
class Symbol:
    """A declaration extracted from a single file."""

    name: str
    kind: SymbolKind
    file_path: str
    line: int
    parent: Optional[str] = None

    @property
    def key(self) -> Tuple[str, str, int]:
        """Merge identity: (file path, name, line)."""
        return (self.file_path, self.name, self.line)

    @property
    def qualified_name(self) -> str:
        return f"{self.parent}.{self.name}" if self.parent else self.name

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind.value,
            "file_path": self.file_path,
            "line": self.line,
            "parent": self.parent,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Symbol":
        return cls(
            name=data["name"],
            kind=SymbolKind(data["kind"]),
            file_path=data["file_path"],
            line=data["line"],
            parent=data.get("parent"),
        )


@dataclass(frozen=True)
class ImportRef:
    """An import statement with the in-repository paths it may refer to.

    Candidates are listed in preference order. When ``directory`` is set the
    candidates name package directories rather than files. ``suffixes`` are
    trailing path fragments (``com/acme/Util.java``) tried anywhere in the
    tree when no candidate exists.
    """

    specifier: str
    line: int
    candidates: Tuple[str, ...] = ()
    directory: bool = False
    suffixes: Tuple[str, ...] = ()


@dataclass(frozen=True)
class TypeRelation:
    """A declared base type of a type defined in the same file."""

    subtype: str  # qualified name of the declaring type
    base: str  # simple name of the base type as written
    relationship: EdgeRelationship
    line: int


@dataclass(frozen=True)
class CallRef:
    """A call from one function to another name in the same file."""

    caller: str  # qualified name of the calling function
    callee: str
    line: int


@dataclass
class GraphFragment:
    """Unresolved cross-reference data produced for one file."""

    imports: List[ImportRef] = field(default_factory=list)
    relations: List[TypeRelation] = field(default_factory=list)
    calls: List[CallRef] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "imports": [
                {
                    "specifier": ref.specifier,
                    "line": ref.line,
                    "candidates": list(ref.candidates),
                    "directory": ref.directory,
                    "suffixes": list(ref.suffixes),
                }
                for ref in self.imports
            ],
            "relations": [
                {
                    "subtype": rel.subtype,
                    "base": rel.base,
                    "relationship": rel.relationship.value,
                    "line": rel.line,
                }
                for rel in self.relations
            ],
            "calls": [asdict(call) for call in self.calls],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GraphFragment":
        return cls(
            imports=[
                ImportRef(
                    specifier=item["specifier"],
                    line=item["line"],
                    candidates=tuple(item.get("candidates", [])),
                    directory=item.get("directory", False),
                    suffixes=tuple(item.get("suffixes", [])),
                )
                for item in data.get("imports", [])
            ],
            relations=[
                TypeRelation(
                    subtype=item["subtype"],
                    base=item["base"],
                    relationship=EdgeRelationship(item["relationship"]),
                    line=item["line"],
                )
                for item in data.get("relations", [])
            ],
            calls=[CallRef(**item) for item in data.get("calls", [])],
        )


@dataclass
class ParseResult:
    """Everything a parser produced for one file."""

    symbols: List[Symbol] = field(default_factory=list)
    fragment: GraphFragment = field(default_factory=GraphFragment)
    error: Optional[str] = None

    @classmethod
    def empty(cls, error: Optional[str] = None) -> "ParseResult":
        return cls(error=error)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "symbols": [symbol.to_dict() for symbol in self.symbols],
            "fragment": self.fragment.to_dict(),
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ParseResult":
        return cls(
            symbols=[Symbol.from_dict(item) for item in data.get("symbols", [])],
            fragment=GraphFragment.from_dict(data.get("fragment", {})),
            error=data.get("error"),
        )


@dataclass
class GraphNode:
    """A node in the dependency graph."""

    id: str
    name: str
    type: NodeType
    file_path: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "file_path": self.file_path,
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GraphNode":
        return cls(
            id=data["id"],
            name=data["name"],
            type=NodeType(data["type"]),
            file_path=data.get("file_path"),
            metadata=dict(data.get("metadata", {})),
        )


@dataclass(frozen=True)
class GraphEdge:
    """A directed, typed edge between two node ids."""

    source: str
    target: str
    relationship: EdgeRelationship

    @property
    def sort_key(self) -> Tuple[str, str, str]:
        return (self.source, self.target, self.relationship.value)

    def to_dict(self) -> Dict[str, str]:
        return {
            "source": self.source,
            "target": self.target,
            "relationship": self.relationship.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> "GraphEdge":
        return cls(
            source=data["source"],
            target=data["target"],
            relationship=EdgeRelationship(data["relationship"]),
        )


@dataclass
class DependencyGraph:
    """Canonically ordered nodes and edges for one analysis run."""

    nodes: List[GraphNode] = field(default_factory=list)
    edges: List[GraphEdge] = field(default_factory=list)

    def node_ids(self) -> List[str]:
        return [node.id for node in self.nodes]

    def get_node(self, node_id: str) -> Optional[GraphNode]:
        for node in self.nodes:
            if node.id == node_id:
                return node
        return None

    def edges_of(self, relationship: EdgeRelationship) -> List[GraphEdge]:
        return [edge for edge in self.edges if edge.relationship == relationship]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [node.to_dict() for node in self.nodes],
            "edges": [edge.to_dict() for edge in self.edges],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DependencyGraph":
        return cls(
            nodes=[GraphNode.from_dict(item) for item in data.get("nodes", [])],
            edges=[GraphEdge.from_dict(item) for item in data.get("edges", [])],
        )


@dataclass
class AnalysisStats:
    """Counters describing how a snapshot was produced."""

    files_scanned: int = 0
    files_parsed: int = 0
    files_reused: int = 0
    files_failed: int = 0
    files_removed: int = 0
    cache_hits: int = 0
    incremental: bool = False
    duration_seconds: float = 0.0


@dataclass
class AnalysisSnapshot:
    """Complete output of one analysis run.

    A snapshot is built in full before it is handed to anyone and is treated
    as immutable afterwards. ``results`` keeps the per-file parser output so
    the next incremental run can re-assemble the graph without re-parsing.
    """

    repo_id: str
    root: str
    files: List[FileRecord]
    symbols: List[Symbol]
    graph: DependencyGraph
    fingerprints: Dict[str, str]
    results: Dict[str, ParseResult]
    tree_hash: str
    created_at: float
    stats: AnalysisStats = field(default_factory=AnalysisStats)

    def get_file(self, path: str) -> Optional[FileRecord]:
        for record in self.files:
            if record.path == path:
                return record
        return None

    def symbols_in(self, path: str) -> List[Symbol]:
        return [symbol for symbol in self.symbols if symbol.file_path == path]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "repo_id": self.repo_id,
            "root": self.root,
            "files": [asdict(record) for record in self.files],
            "symbols": [symbol.to_dict() for symbol in self.symbols],
            "graph": self.graph.to_dict(),
            "fingerprints": dict(self.fingerprints),
            "results": {path: result.to_dict() for path, result in self.results.items()},
            "tree_hash": self.tree_hash,
            "created_at": self.created_at,
            "stats": asdict(self.stats),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AnalysisSnapshot":
        return cls(
            repo_id=data["repo_id"],
            root=data["root"],
            files=[FileRecord(**item) for item in data["files"]],
            symbols=[Symbol.from_dict(item) for item in data["symbols"]],
            graph=DependencyGraph.from_dict(data["graph"]),
            fingerprints=dict(data["fingerprints"]),
            results={
                path: ParseResult.from_dict(item)
                for path, item in data.get("results", {}).items()
            },
            tree_hash=data.get("tree_hash", ""),
            created_at=data.get("created_at", 0.0),
            stats=AnalysisStats(**data.get("stats", {})),
        )
