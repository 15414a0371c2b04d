"""Background job management for analysis runs."""

import asyncio
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional, Tuple

from ..errors import AnalysisCancelled, RepoLensError, SnapshotStoreError
from ..tools.analysis_tool import RepositoryAnalyzer
from .file_watcher import RepositoryWatcher
from .models import AnalysisSnapshot
from .parse_cache import ParseCache
from .snapshot_store import SnapshotStore

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    """Job status states."""

    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


ACTIVE_STATUSES = (JobStatus.QUEUED, JobStatus.RUNNING)


@dataclass
class JobProgress:
    """Progress information for an analysis job."""

    stage: str = "start"
    current: int = 0
    total: int = 0


@dataclass
class AnalysisJob:
    """One analysis run for one repository."""

    job_id: str
    repo_id: str
    root: str
    status: JobStatus
    created_at: float
    incremental: bool = True
    started_at: Optional[float] = None
    completed_at: Optional[float] = None
    progress: JobProgress = field(default_factory=JobProgress)
    error: Optional[str] = None
    tree_hash: Optional[str] = None
    task: Optional[asyncio.Task] = None
    cancel_event: threading.Event = field(default_factory=threading.Event)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES


class JobManager:
    """Runs analyses in the background and publishes their snapshots.

    At most one job per repository identifier is queued or running at a
    time. A finished snapshot replaces the published one in a single
    assignment, so readers see either the old or the new snapshot.
    """

    def __init__(
        self,
        analyzer: Optional[RepositoryAnalyzer] = None,
        store: Optional[SnapshotStore] = None,
        cache: Optional[ParseCache] = None,
    ):
        """Initialize job manager.

        Args:
            analyzer: Repository analyzer, a default one when omitted
            store: Optional persistence for published snapshots
            cache: Parse cache shared by this manager's runs
        """
        self.analyzer = analyzer or RepositoryAnalyzer()
        self.store = store
        self.cache = cache if cache is not None else ParseCache()

        self.jobs: Dict[str, AnalysisJob] = {}
        self.snapshots: Dict[str, AnalysisSnapshot] = {}
        self._active: Dict[str, str] = {}
        self._watchers: Dict[str, Tuple[RepositoryWatcher, asyncio.Task]] = {}
        self._lock = asyncio.Lock()

    async def submit(self, repo_id: str, root: str, incremental: bool = True) -> AnalysisJob:
        """Start an analysis unless one is already in flight for the repository.

        Args:
            repo_id: Repository identifier
            root: Local path of the repository
            incremental: Reuse the published snapshot as the prior state

        Returns:
            The newly created job, or the job already queued or running
        """
        async with self._lock:
            active_id = self._active.get(repo_id)
            if active_id is not None:
                logger.info(f"Analysis of '{repo_id}' already in progress as job {active_id}")
                return self.jobs[active_id]

            job = AnalysisJob(
                job_id=str(uuid.uuid4())[:8],
                repo_id=repo_id,
                root=root,
                status=JobStatus.QUEUED,
                created_at=time.time(),
                incremental=incremental,
            )
            self.jobs[job.job_id] = job
            self._active[repo_id] = job.job_id
            job.task = asyncio.create_task(self._run_job(job))
            logger.info(f"Created analysis job {job.job_id} for repo '{repo_id}'")
            return job

    def _load_previous(self, job: AnalysisJob) -> Optional[AnalysisSnapshot]:
        if not job.incremental:
            return None
        try:
            return self.get_snapshot(job.repo_id)
        except SnapshotStoreError as e:
            logger.warning(f"Ignoring stored snapshot for '{job.repo_id}': {e}")
            return None

    async def _run_job(self, job: AnalysisJob) -> None:
        def on_progress(stage, current: int, total: int) -> None:
            job.progress = JobProgress(stage=stage.value, current=current, total=total)

        worker: Optional[asyncio.Task] = None
        try:
            await self.mark_started(job.job_id)
            previous = await asyncio.to_thread(self._load_previous, job)
            worker = asyncio.ensure_future(
                asyncio.to_thread(
                    self.analyzer.analyze,
                    job.root,
                    previous,
                    repo_id=job.repo_id,
                    cache=self.cache,
                    cancel_event=job.cancel_event,
                    on_progress=on_progress,
                )
            )
            snapshot = await asyncio.shield(worker)
            if job.cancel_event.is_set():
                raise AnalysisCancelled(f"Analysis of {job.repo_id} cancelled")

            if snapshot is not previous:
                self.snapshots[job.repo_id] = snapshot
                await self._persist(snapshot)
            job.tree_hash = snapshot.tree_hash
            await self.mark_completed(job.job_id)
        except AnalysisCancelled:
            await self.mark_cancelled(job.job_id)
        except asyncio.CancelledError:
            job.cancel_event.set()
            if worker is not None:
                await self._drain(job, worker)
            await self.mark_cancelled(job.job_id)
            raise
        except RepoLensError as e:
            await self.mark_failed(job.job_id, str(e))
        except Exception as e:
            logger.error(f"Unexpected error in job {job.job_id}: {e}", exc_info=True)
            await self.mark_failed(job.job_id, f"{type(e).__name__}: {e}")
        finally:
            async with self._lock:
                if self._active.get(job.repo_id) == job.job_id:
                    del self._active[job.repo_id]

    @staticmethod
    async def _drain(job: AnalysisJob, worker: asyncio.Task) -> None:
        """Wait for an abandoned analysis thread to notice its cancel event."""
        if not worker.done():
            logger.info(f"Waiting for job {job.job_id} worker to stop")
        # The slot stays taken until the thread returns, even if cancelled again
        while not worker.done():
            try:
                await asyncio.wait({worker})
            except asyncio.CancelledError:
                continue
        if not worker.cancelled() and worker.exception() is not None:
            logger.debug(f"Job {job.job_id} worker stopped with {worker.exception()!r}")

    async def _persist(self, snapshot: AnalysisSnapshot) -> None:
        if self.store is None:
            return
        try:
            await asyncio.to_thread(self.store.save, snapshot.repo_id, snapshot)
        except SnapshotStoreError as e:
            logger.error(f"Failed to persist snapshot for '{snapshot.repo_id}': {e}")

    async def mark_started(self, job_id: str) -> None:
        async with self._lock:
            job = self.jobs.get(job_id)
            if job and job.status == JobStatus.QUEUED:
                job.status = JobStatus.RUNNING
                job.started_at = time.time()
                logger.info(f"Job {job_id} started")

    async def mark_completed(self, job_id: str) -> None:
        async with self._lock:
            job = self.jobs.get(job_id)
            if job:
                job.status = JobStatus.COMPLETED
                job.completed_at = time.time()
                logger.info(f"Job {job_id} completed")

    async def mark_failed(self, job_id: str, error: str) -> None:
        """Mark job as failed.

        Args:
            job_id: Job identifier
            error: Error message
        """
        async with self._lock:
            job = self.jobs.get(job_id)
            if job:
                job.status = JobStatus.FAILED
                job.completed_at = time.time()
                job.error = error
                logger.error(f"Job {job_id} failed: {error}")

    async def mark_cancelled(self, job_id: str) -> None:
        async with self._lock:
            job = self.jobs.get(job_id)
            if job:
                job.status = JobStatus.CANCELLED
                job.completed_at = time.time()
                logger.info(f"Job {job_id} cancelled")

    async def cancel_job(self, job_id: str) -> bool:
        """Request cancellation of a queued or running job.

        The run stops at its next file or stage boundary and publishes
        nothing.

        Args:
            job_id: Job identifier

        Returns:
            True if cancellation was requested, False if not found or already done
        """
        async with self._lock:
            job = self.jobs.get(job_id)
            if not job or not job.is_active:
                return False
            job.cancel_event.set()
            logger.info(f"Cancellation requested for job {job_id}")
            return True

    async def wait(self, job_id: str) -> Optional[AnalysisJob]:
        """Wait for a job to finish.

        Args:
            job_id: Job identifier

        Returns:
            The finished job, or None if unknown
        """
        job = self.jobs.get(job_id)
        if job is None:
            return None
        if job.task is not None:
            try:
                await asyncio.shield(job.task)
            except asyncio.CancelledError:
                if not job.task.cancelled():
                    raise
        return job

    def get_job(self, job_id: str) -> Optional[AnalysisJob]:
        return self.jobs.get(job_id)

    def get_active_job(self, repo_id: str) -> Optional[AnalysisJob]:
        job_id = self._active.get(repo_id)
        return self.jobs.get(job_id) if job_id else None

    def list_jobs(self, repo_id: Optional[str] = None) -> List[AnalysisJob]:
        jobs = sorted(self.jobs.values(), key=lambda job: job.created_at)
        if repo_id is not None:
            jobs = [job for job in jobs if job.repo_id == repo_id]
        return jobs

    def get_snapshot(self, repo_id: str) -> Optional[AnalysisSnapshot]:
        """Get the published snapshot for a repository.

        Falls back to the store when nothing was published in this process.

        Args:
            repo_id: Repository identifier

        Returns:
            Snapshot if one exists, None otherwise

        Raises:
            SnapshotStoreError: If the stored snapshot cannot be read
        """
        snapshot = self.snapshots.get(repo_id)
        if snapshot is None and self.store is not None:
            snapshot = self.store.load(repo_id)
            if snapshot is not None:
                self.snapshots[repo_id] = snapshot
        return snapshot

    async def watch(
        self, repo_id: str, root: str, debounce_seconds: Optional[float] = None
    ) -> RepositoryWatcher:
        """Re-analyze a repository whenever its files change.

        Args:
            repo_id: Repository identifier
            root: Local path of the repository
            debounce_seconds: Quiet period before a batch of changes triggers a run,
                defaults to the analyzer configuration

        Returns:
            The running watcher
        """
        await self.unwatch(repo_id)
        config = self.analyzer.config
        if debounce_seconds is None:
            debounce_seconds = config.watcher_debounce

        async def on_change(modified, deleted) -> None:
            logger.info(
                f"Changes in '{repo_id}' ({len(modified)} modified, {len(deleted)} deleted), "
                f"scheduling incremental analysis"
            )
            await self.submit(repo_id, root, incremental=True)

        watcher = RepositoryWatcher(
            root,
            on_change,
            debounce_seconds=debounce_seconds,
            exclude_patterns=config.exclude_patterns,
        )
        watcher.start()
        task = asyncio.create_task(watcher.run_debounce_loop())
        self._watchers[repo_id] = (watcher, task)
        return watcher

    async def unwatch(self, repo_id: str) -> bool:
        entry = self._watchers.pop(repo_id, None)
        if entry is None:
            return False
        watcher, task = entry
        watcher.stop()
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        return True

    async def shutdown(self) -> None:
        """Stop watchers, cancel active jobs and wait for them to exit."""
        for repo_id in list(self._watchers):
            await self.unwatch(repo_id)

        tasks = []
        for job in self.jobs.values():
            if job.is_active:
                job.cancel_event.set()
            if job.task is not None and not job.task.done():
                tasks.append(job.task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Job manager shut down")

    def get_status_dict(self, job: AnalysisJob) -> dict:
        """Convert job to status dictionary.

        Args:
            job: Job to convert

        Returns:
            Dictionary representation
        """
        progress_pct = 0.0
        if job.progress.total > 0:
            progress_pct = (job.progress.current / job.progress.total) * 100

        result = {
            "job_id": job.job_id,
            "repo_id": job.repo_id,
            "root": job.root,
            "status": job.status.value,
            "incremental": job.incremental,
            "created_at": job.created_at,
            "progress": {
                "stage": job.progress.stage,
                "current": job.progress.current,
                "total": job.progress.total,
                "progress_pct": round(progress_pct, 2),
            },
        }

        if job.started_at:
            result["started_at"] = job.started_at
            if job.status == JobStatus.RUNNING:
                result["elapsed_seconds"] = round(time.time() - job.started_at, 2)

        if job.completed_at:
            result["completed_at"] = job.completed_at
            if job.started_at:
                result["total_seconds"] = round(job.completed_at - job.started_at, 2)

        if job.tree_hash:
            result["tree_hash"] = job.tree_hash

        if job.error:
            result["error"] = job.error

        return result
