"""Fingerprint diffing and Merkle root hashing for incremental analysis."""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List

import blake3

from .models import FileRecord

logger = logging.getLogger(__name__)


@dataclass
class ChangeSet:
    """Difference between two path -> fingerprint maps."""

    added: List[str] = field(default_factory=list)
    modified: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)

    @property
    def changed(self) -> List[str]:
        """Paths that need parsing: added or modified, sorted."""
        return sorted(self.added + self.modified)

    def is_empty(self) -> bool:
        return not (self.added or self.modified or self.removed)

    def get_cache_hit_rate(self) -> float:
        """Share of current files carried over without parsing.

        Returns:
            Percentage in the range 0-100
        """
        total = len(self.added) + len(self.modified) + len(self.unchanged)
        if total == 0:
            return 0.0
        return (len(self.unchanged) / total) * 100


def fingerprint_map(records: Iterable[FileRecord]) -> Dict[str, str]:
    return {record.path: record.fingerprint for record in records}


def diff_fingerprints(previous: Dict[str, str], current: Dict[str, str]) -> ChangeSet:
    """Compare fingerprints from a prior run against the current scan.

    Args:
        previous: Path to fingerprint map from the prior snapshot
        current: Path to fingerprint map from the current scan

    Returns:
        Change set with every list sorted by path
    """
    changes = ChangeSet()
    for path in sorted(current):
        if path not in previous:
            changes.added.append(path)
        elif previous[path] != current[path]:
            changes.modified.append(path)
        else:
            changes.unchanged.append(path)

    changes.removed = sorted(path for path in previous if path not in current)

    logger.info(
        f"Change plan: {len(changes.added)} added, {len(changes.modified)} modified, "
        f"{len(changes.removed)} removed, {len(changes.unchanged)} unchanged"
    )
    return changes


def compute_tree_hash(fingerprints: Dict[str, str]) -> str:
    """Compute a root hash over the sorted (path, fingerprint) pairs.

    Two trees with the same files and contents always share a root hash,
    whatever order they were scanned in.

    Args:
        fingerprints: Path to fingerprint map

    Returns:
        Hexadecimal Blake3 digest
    """
    hasher = blake3.blake3()
    for path in sorted(fingerprints):
        leaf = blake3.blake3(f"{path}\0{fingerprints[path]}".encode("utf-8")).digest()
        hasher.update(leaf)
    return hasher.hexdigest()
