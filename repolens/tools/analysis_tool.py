"""Full and incremental repository analysis runs."""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from ..config import AnalyzerConfig
from ..errors import AnalysisCancelled
from ..graph.assembler import GraphAssembler
from ..indexer.merkle_tree import compute_tree_hash, diff_fingerprints, fingerprint_map
from ..indexer.models import AnalysisSnapshot, AnalysisStats, FileRecord, ParseResult, Symbol
from ..indexer.parse_cache import ParseCache
from ..indexer.parsers.base import ParserRegistry
from ..indexer.scanner import FileScanner, compute_fingerprint, count_lines

logger = logging.getLogger(__name__)


class AnalysisStage(str, Enum):
    """Stages of one analysis run, in order."""

    START = "start"
    SCANNING = "scanning"
    FULL_PARSE = "full_parse"
    SELECTIVE_PARSE = "selective_parse"
    ASSEMBLING = "assembling"
    DONE = "done"


ProgressCallback = Callable[[AnalysisStage, int, int], None]


class RepositoryAnalyzer:
    """Runs the scan, parse and assemble pipeline over one repository root."""

    def __init__(
        self,
        config: Optional[AnalyzerConfig] = None,
        scanner: Optional[FileScanner] = None,
        parsers: Optional[ParserRegistry] = None,
        assembler: Optional[GraphAssembler] = None,
    ):
        """Initialize repository analyzer.

        Args:
            config: Analyzer configuration
            scanner: File scanner, built from the configuration when omitted
            parsers: Parser registry, built-in parsers when omitted
            assembler: Graph assembler
        """
        self.config = config or AnalyzerConfig()
        self.scanner = scanner or FileScanner(self.config)
        self.parsers = parsers or ParserRegistry(max_file_size=self.config.max_file_size)
        self.assembler = assembler or GraphAssembler()

    def analyze(
        self,
        root: str,
        previous: Optional[AnalysisSnapshot] = None,
        *,
        repo_id: Optional[str] = None,
        cache: Optional[ParseCache] = None,
        cancel_event: Optional[threading.Event] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> AnalysisSnapshot:
        """Analyze a repository, reusing a prior snapshot when one is given.

        With no previous snapshot every file is parsed. Otherwise only added
        and modified files are parsed, unchanged files keep their earlier
        parse results, and the graph is re-assembled from the merged set.
        When nothing changed the previous snapshot itself is returned.

        Args:
            root: Repository root directory
            previous: Snapshot of an earlier run over the same root
            repo_id: Repository identifier, defaults to the root's name
            cache: Parse cache shared across runs by the caller
            cancel_event: Set to abort the run between files or stages
            on_progress: Called with (stage, current, total)

        Returns:
            Snapshot of the current tree

        Raises:
            ScanError: If the root cannot be scanned
            AnalysisCancelled: If the cancel event was set during the run
        """
        started = time.time()
        root_path = Path(root)
        repo_id = repo_id or (previous.repo_id if previous else root_path.resolve().name)

        def report(stage: AnalysisStage, current: int = 0, total: int = 0) -> None:
            if on_progress is not None:
                on_progress(stage, current, total)

        def check_cancelled() -> None:
            if cancel_event is not None and cancel_event.is_set():
                raise AnalysisCancelled(f"Analysis of {repo_id} cancelled")

        report(AnalysisStage.START)
        report(AnalysisStage.SCANNING)
        files = self.scanner.scan(root)
        check_cancelled()

        fingerprints = fingerprint_map(files)
        stats = AnalysisStats(files_scanned=len(files), incremental=previous is not None)

        if previous is None:
            logger.info(f"Full analysis of {repo_id}: {len(files)} files")
            stage = AnalysisStage.FULL_PARSE
            to_parse = files
            reused: Dict[str, ParseResult] = {}
        else:
            changes = diff_fingerprints(previous.fingerprints, fingerprints)
            if changes.is_empty():
                logger.info(f"No changes in {repo_id}, keeping snapshot {previous.tree_hash[:12]}")
                report(AnalysisStage.DONE, len(files), len(files))
                return previous

            stage = AnalysisStage.SELECTIVE_PARSE
            changed = set(changes.changed)
            to_parse = [record for record in files if record.path in changed]
            reused = {
                path: previous.results[path]
                for path in changes.unchanged
                if path in previous.results
            }
            # Results missing from an older snapshot are parsed again
            to_parse.extend(
                record
                for record in files
                if record.path not in changed and record.path not in reused
            )
            to_parse.sort(key=lambda record: record.path)
            stats.files_removed = len(changes.removed)
            stats.files_reused = len(reused)
            logger.info(
                f"Incremental analysis of {repo_id}: {len(to_parse)} to parse, "
                f"{len(reused)} reused, {len(changes.removed)} removed "
                f"({changes.get_cache_hit_rate():.2f}% unchanged)"
            )

        parsed, refreshed = self._parse_files(
            root_path.resolve(), to_parse, stage, cache, stats, check_cancelled, report
        )
        check_cancelled()

        if refreshed:
            files = [refreshed.get(record.path, record) for record in files]
            fingerprints = fingerprint_map(files)

        results: Dict[str, ParseResult] = {}
        for record in files:
            result = reused.get(record.path) or parsed.get(record.path)
            if result is not None:
                results[record.path] = result

        symbols: List[Symbol] = []
        fragments = {}
        for path in sorted(results):
            symbols.extend(results[path].symbols)
            fragments[path] = results[path].fragment

        report(AnalysisStage.ASSEMBLING)
        graph = self.assembler.assemble(files, symbols, fragments)
        check_cancelled()

        stats.duration_seconds = round(time.time() - started, 3)
        snapshot = AnalysisSnapshot(
            repo_id=repo_id,
            root=str(root_path.resolve()),
            files=list(files),
            symbols=symbols,
            graph=graph,
            fingerprints=fingerprints,
            results=results,
            tree_hash=compute_tree_hash(fingerprints),
            created_at=time.time(),
            stats=stats,
        )

        logger.info(
            f"Analysis of {repo_id} complete: {len(files)} files, {len(symbols)} symbols, "
            f"{len(graph.nodes)} nodes, {len(graph.edges)} edges, "
            f"{stats.files_parsed} parsed, {stats.files_failed} failed "
            f"in {stats.duration_seconds}s"
        )
        report(AnalysisStage.DONE, len(files), len(files))
        return snapshot

    def _parse_one(
        self, root: Path, record: FileRecord, cache: Optional[ParseCache]
    ) -> Tuple[FileRecord, ParseResult]:
        """Parse one file, returning the record that matches the bytes parsed.

        A file rewritten after the scan gets a record rebuilt from the bytes
        read here, so the result is never filed under a stale fingerprint.
        """
        if cache is not None:
            cached = cache.get(record)
            if cached is not None:
                return record, cached

        try:
            with open(root / record.path, "rb") as f:
                content = f.read()
        except OSError as e:
            logger.error(f"Error reading {record.path} ({record.language}): {e}")
            return record, ParseResult.empty(error=f"{type(e).__name__}: {e}")

        fingerprint = compute_fingerprint(content)
        if fingerprint != record.fingerprint:
            logger.warning(f"{record.path} changed since it was scanned, using its current contents")
            record = replace(
                record,
                size_bytes=len(content),
                line_count=count_lines(content),
                fingerprint=fingerprint,
            )

        result = self.parsers.extract(record, content)
        if cache is not None:
            cache.put(record, result)
        return record, result

    def _parse_files(
        self,
        root: Path,
        records: List[FileRecord],
        stage: AnalysisStage,
        cache: Optional[ParseCache],
        stats: AnalysisStats,
        check_cancelled: Callable[[], None],
        report: Callable[..., None],
    ) -> Tuple[Dict[str, ParseResult], Dict[str, FileRecord]]:
        """Parse files on a bounded worker pool.

        Files whose language has no parser get an empty result without
        being read. Results are collected in path order.

        Returns:
            Results by path, and the records of files that changed on disk
            after the scan, rebuilt from the contents actually parsed
        """
        parseable = [record for record in records if self.parsers.supports(record.language)]
        results: Dict[str, ParseResult] = {
            record.path: ParseResult.empty()
            for record in records
            if not self.parsers.supports(record.language)
        }

        total = len(parseable)
        report(stage, 0, total)
        refreshed: Dict[str, FileRecord] = {}
        if not parseable:
            return results, refreshed

        hits_before = cache.hits if cache is not None else 0

        def task(record: FileRecord) -> Tuple[FileRecord, ParseResult]:
            check_cancelled()
            return self._parse_one(root, record, cache)

        workers = max(1, min(self.config.max_workers, total))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="repolens-parse") as pool:
            futures = [(record, pool.submit(task, record)) for record in parseable]
            try:
                for index, (record, future) in enumerate(futures, 1):
                    parsed_record, result = future.result()
                    results[record.path] = result
                    if parsed_record is not record:
                        refreshed[record.path] = parsed_record
                    if result.error is not None:
                        stats.files_failed += 1
                    report(stage, index, total)
            except AnalysisCancelled:
                for _, future in futures:
                    future.cancel()
                raise

        stats.files_parsed = total
        if cache is not None:
            stats.cache_hits = cache.hits - hits_before
        return results, refreshed
