"""Exception types raised by the analysis pipeline."""


class RepoLensError(Exception):
    """Base class for all analysis errors."""


class ScanError(RepoLensError):
    """Raised when the repository root is missing or unreadable."""

    def __init__(self, root: str, reason: str):
        self.root = root
        self.reason = reason
        super().__init__(f"Cannot scan {root}: {reason}")


class AnalysisCancelled(RepoLensError):
    """Raised when a run is aborted through its cancel event."""


class SnapshotStoreError(RepoLensError):
    """Raised when a snapshot cannot be loaded from or written to the store."""
