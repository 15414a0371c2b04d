"""Persistence of analysis snapshots between runs."""

import json
import logging
import os
import re
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional

from ..errors import SnapshotStoreError
from .models import AnalysisSnapshot

logger = logging.getLogger(__name__)

_SAFE_ID = re.compile(r"[^A-Za-z0-9._-]")


class SnapshotStore(ABC):
    """Where the last published snapshot of each repository is kept."""

    @abstractmethod
    def load(self, repo_id: str) -> Optional[AnalysisSnapshot]:
        """Return the stored snapshot for ``repo_id``, or None."""

    @abstractmethod
    def save(self, repo_id: str, snapshot: AnalysisSnapshot) -> None:
        """Replace the stored snapshot for ``repo_id``."""

    @abstractmethod
    def delete(self, repo_id: str) -> bool:
        """Remove the stored snapshot, returning whether one existed."""

    @abstractmethod
    def list_ids(self) -> List[str]:
        """Identifiers with a stored snapshot, sorted."""


class JsonSnapshotStore(SnapshotStore):
    """Stores each snapshot as ``<directory>/<repo_id>.json``.

    Writes go to a temporary file in the same directory that is then moved
    over the target, so readers never see a half-written snapshot.
    """

    def __init__(self, directory: Path):
        """Initialize snapshot store.

        Args:
            directory: Directory holding the snapshot files
        """
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path_for(self, repo_id: str) -> Path:
        return self.directory / f"{_SAFE_ID.sub('_', repo_id)}.json"

    def load(self, repo_id: str) -> Optional[AnalysisSnapshot]:
        path = self._path_for(repo_id)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            snapshot = AnalysisSnapshot.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise SnapshotStoreError(f"Cannot load snapshot for {repo_id}: {e}") from e

        logger.debug(f"Loaded snapshot for {repo_id} from {path}")
        return snapshot

    def save(self, repo_id: str, snapshot: AnalysisSnapshot) -> None:
        path = self._path_for(repo_id)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.stem}-", suffix=".tmp", dir=self.directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(snapshot.to_dict(), f)
            os.replace(tmp_name, path)
        except (OSError, TypeError, ValueError) as e:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise SnapshotStoreError(f"Cannot save snapshot for {repo_id}: {e}") from e

        logger.info(f"Saved snapshot for {repo_id} to {path}")

    def delete(self, repo_id: str) -> bool:
        path = self._path_for(repo_id)
        if not path.exists():
            return False
        try:
            path.unlink()
        except OSError as e:
            raise SnapshotStoreError(f"Cannot delete snapshot for {repo_id}: {e}") from e
        return True

    def list_ids(self) -> List[str]:
        ids = []
        for path in sorted(self.directory.glob("*.json")):
            try:
                with open(path, "r", encoding="utf-8") as f:
                    ids.append(json.load(f)["repo_id"])
            except (OSError, ValueError, KeyError) as e:
                logger.warning(f"Skipping unreadable snapshot {path.name}: {e}")
        return sorted(ids)
