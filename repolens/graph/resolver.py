"""Resolution of import and base-type references against the current file set.

When a name matches several files, the candidate sharing the most leading
directories with the referring file wins, then the one nested least below
that shared prefix, then the lexicographically smallest path.
"""

import logging
import posixpath
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Tuple

from ..indexer.models import FileRecord, ImportRef

logger = logging.getLogger(__name__)


def _dir_parts(directory: str) -> List[str]:
    return directory.split("/") if directory else []


def closeness_key(from_dir: str, target_dir: str, tiebreak: str) -> Tuple[int, int, str]:
    """Sort key ranking ``target_dir`` by nearness to ``from_dir``.

    Args:
        from_dir: Directory of the referring file
        target_dir: Directory of the candidate
        tiebreak: Final lexicographic tie-breaker, usually the candidate path

    Returns:
        Tuple that sorts the nearest candidate first
    """
    source = _dir_parts(from_dir)
    target = _dir_parts(target_dir)
    common = 0
    for a, b in zip(source, target):
        if a != b:
            break
        common += 1
    return (-common, len(target) - common, tiebreak)


def pick_closest(from_path: str, candidates: Iterable[str]) -> Optional[str]:
    """Choose the candidate file nearest to ``from_path``."""
    from_dir = posixpath.dirname(from_path)
    ranked = sorted(candidates, key=lambda p: closeness_key(from_dir, posixpath.dirname(p), p))
    return ranked[0] if ranked else None


class FileIndex:
    """Lookup tables over one run's file records."""

    def __init__(self, files: Iterable[FileRecord]):
        self.records: Dict[str, FileRecord] = {record.path: record for record in files}
        self.by_basename: Dict[str, List[str]] = defaultdict(list)
        self.dir_files: Dict[str, List[str]] = defaultdict(list)

        for path in sorted(self.records):
            self.by_basename[posixpath.basename(path)].append(path)
            self.dir_files[posixpath.dirname(path)].append(path)

    def __contains__(self, path: str) -> bool:
        return path in self.records

    def first_file_in(self, directory: str, language: str) -> Optional[str]:
        """Lexicographically first file of ``language`` directly inside ``directory``."""
        for path in self.dir_files.get(directory, []):
            if self.records[path].language == language:
                return path
        return None

    def files_with_suffix(self, suffix: str) -> List[str]:
        basename = posixpath.basename(suffix)
        return [
            path
            for path in self.by_basename.get(basename, [])
            if path == suffix or path.endswith("/" + suffix)
        ]

    def dirs_with_suffix(self, suffix: str) -> List[str]:
        return [
            directory
            for directory in self.dir_files
            if directory == suffix or directory.endswith("/" + suffix)
        ]

    def resolve_import(self, ref: ImportRef, importer: FileRecord) -> Optional[str]:
        """Resolve an import to a file path in this run.

        Args:
            ref: Import reference produced by a parser
            importer: Record of the importing file

        Returns:
            Target path, or None when the import is external
        """
        if ref.directory:
            return self._resolve_directory(ref, importer)

        for candidate in ref.candidates:
            if candidate in self.records and candidate != importer.path:
                return candidate

        for suffix in ref.suffixes:
            matches = [p for p in self.files_with_suffix(suffix) if p != importer.path]
            if matches:
                return pick_closest(importer.path, matches)
        return None

    def _resolve_directory(self, ref: ImportRef, importer: FileRecord) -> Optional[str]:
        importer_dir = posixpath.dirname(importer.path)

        for candidate in ref.candidates:
            if candidate == importer_dir:
                continue
            target = self.first_file_in(candidate, importer.language)
            if target:
                return target

        for suffix in ref.suffixes:
            directories = [
                d
                for d in self.dirs_with_suffix(suffix)
                if d != importer_dir and self.first_file_in(d, importer.language)
            ]
            if directories:
                directories.sort(key=lambda d: closeness_key(importer_dir, d, d))
                return self.first_file_in(directories[0], importer.language)
        return None


class TypeIndex:
    """Finds the graph node declaring a type name."""

    def __init__(self):
        self._by_name: Dict[str, List[Tuple[str, int, str]]] = defaultdict(list)

    def add(self, name: str, path: str, line: int, node_id: str) -> None:
        self._by_name[name].append((path, line, node_id))

    def resolve(self, name: str, from_path: str, exclude: Optional[str] = None) -> Optional[str]:
        """Resolve a base-type name to a node id.

        Args:
            name: Simple type name
            from_path: File declaring the subtype
            exclude: Node id that may not be returned (the subtype itself)

        Returns:
            Node id of the nearest declaration, or None when external
        """
        entries = [entry for entry in self._by_name.get(name, []) if entry[2] != exclude]
        if not entries:
            return None

        same_file = sorted((line, node_id) for path, line, node_id in entries if path == from_path)
        if same_file:
            return same_file[0][1]

        from_dir = posixpath.dirname(from_path)
        best = min(
            entries,
            key=lambda entry: (closeness_key(from_dir, posixpath.dirname(entry[0]), entry[0]), entry[1]),
        )
        return best[2]
