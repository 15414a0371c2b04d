"""Repository file discovery with content fingerprinting."""

import logging
import os
from pathlib import Path, PurePosixPath
from typing import Callable, List, Optional

import blake3

from ..config import AnalyzerConfig
from ..errors import ScanError
from .grammars import LanguageRegistry, get_language_registry
from .models import FileRecord

logger = logging.getLogger(__name__)

# Matched against individual path segments, never against content.
EXCLUDED_DIRS = frozenset(
    {
        ".git",
        ".hg",
        ".svn",
        ".bzr",
        "node_modules",
        "bower_components",
        "jspm_packages",
        "vendor",
        "__pycache__",
        ".pytest_cache",
        ".mypy_cache",
        ".tox",
        "venv",
        ".venv",
        "site-packages",
        "dist",
        "build",
        "bin",
        "obj",
        "target",
        ".next",
        ".nuxt",
        ".gradle",
        ".idea",
        ".vscode",
        ".vs",
        "coverage",
    }
)

EXCLUDED_FILES = frozenset(
    {
        ".DS_Store",
        "Thumbs.db",
        "package-lock.json",
        "yarn.lock",
        "pnpm-lock.yaml",
        "poetry.lock",
        "Cargo.lock",
        "go.sum",
    }
)

BINARY_SNIFF_BYTES = 8192


def compute_fingerprint(content: bytes) -> str:
    """Compute the Blake3 fingerprint of raw file bytes.

    Args:
        content: File contents

    Returns:
        64 character hexadecimal digest
    """
    return blake3.blake3(content).hexdigest()


def count_lines(content: bytes) -> int:
    """Count lines, treating a final unterminated line as a line."""
    if not content:
        return 0
    return content.count(b"\n") + (0 if content.endswith(b"\n") else 1)


def looks_binary(content: bytes) -> bool:
    return b"\x00" in content[:BINARY_SNIFF_BYTES]


def is_excluded_dir(name: str) -> bool:
    return name in EXCLUDED_DIRS or name.startswith(".")


def is_excluded_path(rel_path: str) -> bool:
    """Check a repository-relative path against the segment denylist.

    Args:
        rel_path: POSIX path relative to the repository root

    Returns:
        True if any directory segment or the file name is excluded
    """
    parts = PurePosixPath(rel_path).parts
    if not parts:
        return True
    if any(is_excluded_dir(part) for part in parts[:-1]):
        return True
    name = parts[-1]
    return name in EXCLUDED_FILES or name.startswith(".")


class FileScanner:
    """Walks a repository root and produces sorted file records."""

    def __init__(
        self,
        config: Optional[AnalyzerConfig] = None,
        registry: Optional[LanguageRegistry] = None,
    ):
        """Initialize file scanner.

        Args:
            config: Analyzer configuration, defaults used when omitted
            registry: Language registry for extension detection
        """
        self.config = config or AnalyzerConfig()
        self.registry = registry or get_language_registry()

    def _load_gitignore(self, root: Path) -> Optional[Callable[[str], bool]]:
        from gitignore_parser import parse_gitignore

        gitignore_path = root / ".gitignore"
        if not gitignore_path.is_file():
            return None
        try:
            matcher = parse_gitignore(gitignore_path, base_dir=str(root))
            logger.debug(f"Loaded .gitignore from {gitignore_path}")
            return matcher
        except Exception as e:
            logger.warning(f"Error parsing .gitignore: {e}")
            return None

    def _matches_exclude_pattern(self, rel_path: str) -> bool:
        path = PurePosixPath(rel_path)
        return any(path.match(pattern) for pattern in self.config.exclude_patterns)

    def read_record(self, root: Path, rel_path: str) -> Optional[FileRecord]:
        """Read one file and build its record.

        Args:
            root: Resolved repository root
            rel_path: POSIX path relative to the root

        Returns:
            File record, or None when the file is oversized, binary or unreadable
        """
        file_path = root / rel_path
        try:
            size = file_path.stat().st_size
            if size > self.config.max_file_size:
                logger.debug(f"Skipping oversized file {rel_path} ({size} bytes)")
                return None
            with open(file_path, "rb") as f:
                content = f.read()
        except OSError as e:
            logger.warning(f"Cannot read {rel_path}: {e}")
            return None

        if len(content) > self.config.max_file_size:
            logger.debug(f"Skipping oversized file {rel_path} ({len(content)} bytes)")
            return None
        if looks_binary(content):
            logger.debug(f"Skipping binary file {rel_path}")
            return None

        return FileRecord(
            path=rel_path,
            language=self.registry.detect_language(rel_path),
            size_bytes=len(content),
            line_count=count_lines(content),
            fingerprint=compute_fingerprint(content),
        )

    def scan(self, root: str) -> List[FileRecord]:
        """Scan a repository root.

        Args:
            root: Directory to scan

        Returns:
            File records sorted by relative path

        Raises:
            ScanError: If the root is missing or not a readable directory
        """
        root_path = Path(root)
        if not root_path.exists():
            raise ScanError(str(root), "path does not exist")
        if not root_path.is_dir():
            raise ScanError(str(root), "path is not a directory")
        if not os.access(root_path, os.R_OK | os.X_OK):
            raise ScanError(str(root), "directory is not readable")
        root_path = root_path.resolve()

        gitignore_matcher = self._load_gitignore(root_path) if self.config.follow_gitignore else None

        records: List[FileRecord] = []
        walk_errors: List[OSError] = []
        for dirpath, dirnames, filenames in os.walk(
            root_path, onerror=walk_errors.append, followlinks=False
        ):
            current = Path(dirpath)
            # Prune in place so excluded trees are never entered.
            dirnames[:] = sorted(
                d
                for d in dirnames
                if not is_excluded_dir(d)
                and not (gitignore_matcher and gitignore_matcher(str(current / d)))
            )

            for filename in sorted(filenames):
                file_path = current / filename
                if file_path.is_symlink() or not file_path.is_file():
                    continue
                rel_path = file_path.relative_to(root_path).as_posix()
                if is_excluded_path(rel_path):
                    continue
                if gitignore_matcher and gitignore_matcher(str(file_path)):
                    continue
                if self.config.exclude_patterns and self._matches_exclude_pattern(rel_path):
                    continue

                record = self.read_record(root_path, rel_path)
                if record is not None:
                    records.append(record)

        for error in walk_errors:
            logger.warning(f"Skipping unreadable directory: {error}")

        records.sort(key=lambda record: record.path)
        logger.info(f"Scanned {len(records)} files under {root_path}")
        return records
