"""Builds the repository-wide dependency graph from per-file parse output."""

import logging
import posixpath
from collections import defaultdict
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

from ..indexer.models import (
    DependencyGraph,
    EdgeRelationship,
    FileRecord,
    GraphEdge,
    GraphFragment,
    GraphNode,
    NodeType,
    Symbol,
    SymbolKind,
)
from .resolver import FileIndex, TypeIndex

logger = logging.getLogger(__name__)

# Symbol kinds that get their own node; the rest live only in the symbol list.
SYMBOL_NODE_TYPES: Dict[SymbolKind, NodeType] = {
    SymbolKind.CLASS: NodeType.CLASS,
    SymbolKind.INTERFACE: NodeType.INTERFACE,
    SymbolKind.FUNCTION: NodeType.FUNCTION,
    SymbolKind.METHOD: NodeType.FUNCTION,
    SymbolKind.NAMESPACE: NodeType.NAMESPACE,
    SymbolKind.MODULE: NodeType.MODULE,
}

# Symbol kinds whose nodes may contain other symbol nodes.
CONTAINER_KINDS = {
    SymbolKind.CLASS,
    SymbolKind.INTERFACE,
    SymbolKind.NAMESPACE,
    SymbolKind.MODULE,
}


def folder_node_id(directory: str) -> str:
    return f"folder:{directory}"


def file_node_id(path: str) -> str:
    return f"file:{path}"


def symbol_node_id(node_type: NodeType, path: str, qualified_name: str) -> str:
    return f"{node_type.value.lower()}:{path}:{qualified_name}"


class GraphAssembler:
    """Merges symbols and fragments into one canonically ordered graph.

    Stateless; each call builds into its own _GraphBuilder.
    """

    def assemble(
        self,
        files: Iterable[FileRecord],
        symbols: Iterable[Symbol],
        fragments: Mapping[str, GraphFragment],
    ) -> DependencyGraph:
        """Assemble the dependency graph for one run.

        Args:
            files: File records of the run
            symbols: Symbols of every file
            fragments: Unresolved references keyed by file path

        Returns:
            Graph with nodes sorted by id and edges sorted by
            (source, target, relationship)
        """
        return _GraphBuilder(FileIndex(files)).build(symbols, fragments)


class _GraphBuilder:
    """Node and edge accumulator for a single assemble call."""

    def __init__(self, file_index: FileIndex):
        self.file_index = file_index
        self.nodes: Dict[str, GraphNode] = {}
        self.edges: Set[GraphEdge] = set()

    def build(self, symbols: Iterable[Symbol], fragments: Mapping[str, GraphFragment]) -> DependencyGraph:
        file_index = self.file_index
        self._add_file_tree(file_index)
        type_index, qualified_types, functions = self._add_symbols(file_index, symbols)
        self._add_imports(file_index, fragments)
        self._add_type_relations(fragments, type_index, qualified_types)
        self._add_calls(fragments, functions)

        return self._finalize()

    def _add_node(self, node: GraphNode) -> bool:
        if node.id in self.nodes:
            return False
        self.nodes[node.id] = node
        return True

    def _add_edge(self, source: str, target: str, relationship: EdgeRelationship) -> None:
        self.edges.add(GraphEdge(source=source, target=target, relationship=relationship))

    def _add_file_tree(self, file_index: FileIndex) -> None:
        for path, record in sorted(file_index.records.items()):
            directory = posixpath.dirname(path)
            parts = directory.split("/") if directory else []

            parent_id: Optional[str] = None
            for depth in range(len(parts)):
                folder = "/".join(parts[: depth + 1])
                folder_id = folder_node_id(folder)
                self._add_node(
                    GraphNode(id=folder_id, name=parts[depth], type=NodeType.FOLDER, file_path=folder)
                )
                if parent_id is not None:
                    self._add_edge(parent_id, folder_id, EdgeRelationship.CONTAINS)
                parent_id = folder_id

            node_id = file_node_id(path)
            self._add_node(
                GraphNode(
                    id=node_id,
                    name=posixpath.basename(path),
                    type=NodeType.FILE,
                    file_path=path,
                    metadata={
                        "language": record.language,
                        "lines": str(record.line_count),
                        "size": str(record.size_bytes),
                    },
                )
            )
            if parent_id is not None:
                self._add_edge(parent_id, node_id, EdgeRelationship.CONTAINS)

    def _add_symbols(
        self, file_index: FileIndex, symbols: Iterable[Symbol]
    ) -> Tuple[TypeIndex, Dict[Tuple[str, str], str], Dict[Tuple[str, str], str]]:
        by_file: Dict[str, List[Symbol]] = defaultdict(list)
        for symbol in symbols:
            if symbol.file_path not in file_index:
                logger.warning(f"Ignoring symbol {symbol.name} of unknown file {symbol.file_path}")
                continue
            by_file[symbol.file_path].append(symbol)

        type_index = TypeIndex()
        qualified_types: Dict[Tuple[str, str], str] = {}
        functions: Dict[Tuple[str, str], str] = {}

        for path in sorted(by_file):
            file_symbols = sorted(by_file[path], key=lambda s: (s.line, s.name, s.kind.value))

            # name -> [(line, node id)] for symbols that can own members
            containers: Dict[str, List[Tuple[int, str]]] = defaultdict(list)
            node_of: Dict[Tuple[str, int, str], str] = {}
            for symbol in file_symbols:
                node_type = SYMBOL_NODE_TYPES.get(symbol.kind)
                if node_type is None:
                    continue
                node_id = symbol_node_id(node_type, path, symbol.qualified_name)
                node_of[symbol.key] = node_id
                if symbol.kind in CONTAINER_KINDS:
                    containers[symbol.name].append((symbol.line, node_id))

            for symbol in file_symbols:
                node_id = node_of.get(symbol.key)
                if node_id is None:
                    continue
                node_type = SYMBOL_NODE_TYPES[symbol.kind]
                metadata = {"kind": symbol.kind.value, "line": str(symbol.line)}
                if symbol.parent:
                    metadata["parent"] = symbol.parent
                self._add_node(
                    GraphNode(
                        id=node_id,
                        name=symbol.name,
                        type=node_type,
                        file_path=path,
                        metadata=metadata,
                    )
                )

                owner = self._owner_node(symbol, containers.get(symbol.parent or "", []), node_id)
                self._add_edge(owner or file_node_id(path), node_id, EdgeRelationship.CONTAINS)

                if symbol.kind in (SymbolKind.CLASS, SymbolKind.INTERFACE):
                    type_index.add(symbol.name, path, symbol.line, node_id)
                    qualified_types.setdefault((path, symbol.qualified_name), node_id)
                elif node_type == NodeType.FUNCTION:
                    functions.setdefault((path, symbol.qualified_name), node_id)

        return type_index, qualified_types, functions

    @staticmethod
    def _owner_node(symbol: Symbol, candidates: List[Tuple[int, str]], node_id: str) -> Optional[str]:
        """Pick the parent declaration nearest before the symbol, else the first after it."""
        if not symbol.parent:
            return None
        options = [(line, cid) for line, cid in candidates if cid != node_id]
        before = [entry for entry in options if entry[0] <= symbol.line]
        if before:
            return max(before)[1]
        after = sorted(options)
        return after[0][1] if after else None

    def _add_imports(self, file_index: FileIndex, fragments: Mapping[str, GraphFragment]) -> None:
        for path in sorted(fragments):
            record = file_index.records.get(path)
            if record is None:
                continue
            for ref in fragments[path].imports:
                target = file_index.resolve_import(ref, record)
                if target is None:
                    logger.debug(f"External import '{ref.specifier}' in {path}")
                    continue
                if target == path:
                    continue
                self._add_edge(file_node_id(path), file_node_id(target), EdgeRelationship.IMPORTS)

    def _add_type_relations(
        self,
        fragments: Mapping[str, GraphFragment],
        type_index: TypeIndex,
        qualified_types: Dict[Tuple[str, str], str],
    ) -> None:
        for path in sorted(fragments):
            for relation in fragments[path].relations:
                source = qualified_types.get((path, relation.subtype))
                if source is None:
                    logger.debug(f"No declaration for {relation.subtype} in {path}")
                    continue
                target = type_index.resolve(relation.base, path, exclude=source)
                if target is None:
                    logger.debug(f"External base type '{relation.base}' of {relation.subtype}")
                    continue
                self._add_edge(source, target, relation.relationship)

    def _add_calls(
        self, fragments: Mapping[str, GraphFragment], functions: Dict[Tuple[str, str], str]
    ) -> None:
        for path in sorted(fragments):
            for call in fragments[path].calls:
                source = functions.get((path, call.caller))
                if source is None:
                    continue
                owner = call.caller.rpartition(".")[0]
                target = None
                if owner:
                    target = functions.get((path, f"{owner}.{call.callee}"))
                if target is None:
                    target = functions.get((path, call.callee))
                if target is not None:
                    self._add_edge(source, target, EdgeRelationship.CALLS)

    def _finalize(self) -> DependencyGraph:
        valid_edges = []
        for edge in self.edges:
            if edge.source not in self.nodes or edge.target not in self.nodes:
                logger.warning(
                    f"Dropping dangling {edge.relationship.value} edge {edge.source} -> {edge.target}"
                )
                continue
            valid_edges.append(edge)

        nodes = [self.nodes[node_id] for node_id in sorted(self.nodes)]
        valid_edges.sort(key=lambda edge: edge.sort_key)
        logger.info(f"Assembled graph with {len(nodes)} nodes and {len(valid_edges)} edges")
        return DependencyGraph(nodes=nodes, edges=valid_edges)
