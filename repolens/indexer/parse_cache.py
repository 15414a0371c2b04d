"""Content-addressed store of parser output, owned by the caller of a run."""

import logging
import threading
from typing import Dict, Optional, Tuple

from .models import FileRecord, ParseResult

logger = logging.getLogger(__name__)


class ParseCache:
    """Maps (fingerprint, path) to a parse result.

    The path is part of the key because import candidates are computed
    relative to the file's own location, so identical bytes at two paths
    can yield different fragments. Instances are passed explicitly into
    each analysis run and may be shared between runs by the caller.
    """

    def __init__(self, max_entries: int = 50_000):
        self.max_entries = max_entries
        self._entries: Dict[Tuple[str, str], ParseResult] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, record: FileRecord) -> Optional[ParseResult]:
        with self._lock:
            result = self._entries.get((record.fingerprint, record.path))
            if result is None:
                self.misses += 1
            else:
                self.hits += 1
            return result

    def put(self, record: FileRecord, result: ParseResult) -> None:
        """Store a successful parse result.

        Failed results are not cached so a later run retries the file.

        Args:
            record: File the result belongs to
            result: Parser output
        """
        if result.error is not None:
            return
        with self._lock:
            if len(self._entries) >= self.max_entries:
                # Drop the oldest entry (dicts keep insertion order)
                oldest = next(iter(self._entries))
                del self._entries[oldest]
            self._entries[(record.fingerprint, record.path)] = result

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self.hits = 0
            self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, record: FileRecord) -> bool:
        return (record.fingerprint, record.path) in self._entries
