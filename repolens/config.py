"""Runtime configuration for the analysis pipeline."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

# Files above this size are treated as generated and skipped by every stage.
DEFAULT_MAX_FILE_SIZE = 1024 * 1024


def _default_workers() -> int:
    return min(8, os.cpu_count() or 1)


@dataclass
class AnalyzerConfig:
    """Settings shared by the scanner, parsers and analyzer."""

    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    max_workers: int = field(default_factory=_default_workers)
    follow_gitignore: bool = True
    exclude_patterns: List[str] = field(default_factory=list)
    snapshot_dir: Path = field(default_factory=lambda: Path.home() / ".repolens" / "snapshots")
    watcher_debounce: float = 2.0
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "AnalyzerConfig":
        """Build configuration from REPOLENS_* environment variables.

        Returns:
            Configuration with defaults applied for unset variables
        """
        patterns = os.getenv("REPOLENS_EXCLUDE_PATTERNS", "")
        return cls(
            max_file_size=int(os.getenv("REPOLENS_MAX_FILE_SIZE", str(DEFAULT_MAX_FILE_SIZE))),
            max_workers=max(1, int(os.getenv("REPOLENS_MAX_WORKERS", str(_default_workers())))),
            follow_gitignore=os.getenv("REPOLENS_FOLLOW_GITIGNORE", "true").lower() == "true",
            exclude_patterns=[p.strip() for p in patterns.split(",") if p.strip()],
            snapshot_dir=Path(
                os.getenv("REPOLENS_SNAPSHOT_DIR", str(Path.home() / ".repolens" / "snapshots"))
            ),
            watcher_debounce=float(os.getenv("REPOLENS_WATCHER_DEBOUNCE_SECONDS", "2.0")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )
