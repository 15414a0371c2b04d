"""Impact of a set of changed files on an analyzed repository."""

import logging
from dataclasses import asdict, dataclass, field
from typing import Iterable, List, Optional, Set

from ..indexer.models import AnalysisSnapshot, EdgeRelationship, NodeType

logger = logging.getLogger(__name__)


@dataclass
class FileImpact:
    file_path: str
    language: Optional[str]
    symbol_count: int
    known: bool


@dataclass
class SymbolImpact:
    name: str
    kind: str
    file_path: str
    line: int
    parent: Optional[str] = None


@dataclass
class EdgeImpact:
    source: str
    target: str
    relationship: str
    impact_side: str  # "source" or "target": which end belongs to a changed file


@dataclass
class ImpactReport:
    """What a change touches in the dependency graph."""

    changed_files: List[FileImpact] = field(default_factory=list)
    affected_symbols: List[SymbolImpact] = field(default_factory=list)
    affected_edges: List[EdgeImpact] = field(default_factory=list)
    downstream_files: List[str] = field(default_factory=list)
    languages_touched: List[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def _normalize(path: str) -> str:
    path = path.replace("\\", "/")
    while path.startswith("./"):
        path = path[2:]
    return path


def analyze_impact(snapshot: AnalysisSnapshot, changed_paths: Iterable[str]) -> ImpactReport:
    """Cross-reference changed paths against a snapshot.

    Paths unknown to the snapshot (new files) are reported with no language
    and no symbols. Downstream files are importers of a changed file that
    are not changed themselves.

    Args:
        snapshot: Analysis snapshot taken before the change
        changed_paths: Repository-relative paths, including old names of renamed files

    Returns:
        Impact report with every list in deterministic order
    """
    changed: List[str] = sorted({_normalize(path) for path in changed_paths})
    changed_set: Set[str] = set(changed)
    records = {record.path: record for record in snapshot.files}

    report = ImpactReport()
    for path in changed:
        record = records.get(path)
        symbols = snapshot.symbols_in(path)
        report.changed_files.append(
            FileImpact(
                file_path=path,
                language=record.language if record else None,
                symbol_count=len(symbols),
                known=record is not None,
            )
        )
        for symbol in symbols:
            report.affected_symbols.append(
                SymbolImpact(
                    name=symbol.name,
                    kind=symbol.kind.value,
                    file_path=symbol.file_path,
                    line=symbol.line,
                    parent=symbol.parent,
                )
            )

    changed_nodes = {
        node.id
        for node in snapshot.graph.nodes
        if node.type != NodeType.FOLDER and node.file_path in changed_set
    }
    nodes = {node.id: node for node in snapshot.graph.nodes}

    downstream: Set[str] = set()
    for edge in snapshot.graph.edges:
        source_hit = edge.source in changed_nodes
        target_hit = edge.target in changed_nodes
        if not (source_hit or target_hit):
            continue
        report.affected_edges.append(
            EdgeImpact(
                source=edge.source,
                target=edge.target,
                relationship=edge.relationship.value,
                impact_side="source" if source_hit else "target",
            )
        )
        if target_hit and not source_hit and edge.relationship == EdgeRelationship.IMPORTS:
            importer = nodes[edge.source].file_path
            if importer and importer not in changed_set:
                downstream.add(importer)

    report.downstream_files = sorted(downstream)
    report.languages_touched = sorted(
        {impact.language for impact in report.changed_files if impact.language}
    )

    logger.info(
        f"Impact of {len(changed)} changed files: {len(report.affected_symbols)} symbols, "
        f"{len(report.affected_edges)} edges, {len(report.downstream_files)} downstream files"
    )
    return report
