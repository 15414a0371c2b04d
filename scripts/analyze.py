#!/usr/bin/env python3
"""Standalone analysis script - analyzes a repository, stores the snapshot and exits."""

import asyncio
import logging
import os
import sys
from pathlib import Path

# Setup logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO"),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def main():
    """Main analysis function."""
    from repolens.config import AnalyzerConfig
    from repolens.indexer.job_manager import JobManager, JobStatus
    from repolens.indexer.snapshot_store import JsonSnapshotStore
    from repolens.tools.analysis_tool import RepositoryAnalyzer
    from repolens.tools.overview_tool import build_overview

    config = AnalyzerConfig.from_env()
    workspace_path = sys.argv[1] if len(sys.argv) > 1 else os.getenv("WORKSPACE_PATH", ".")
    repo_id = os.getenv("REPO_ID") or Path(workspace_path).resolve().name
    incremental = os.getenv("INCREMENTAL", "true").lower() == "true"
    watch = os.getenv("WATCH", "false").lower() == "true"

    logger.info(f"Starting analysis for repository: {repo_id}")
    logger.info(f"Workspace path: {workspace_path}")
    logger.info(f"Snapshot directory: {config.snapshot_dir}")
    logger.info(f"Incremental: {incremental}")

    manager = JobManager(
        analyzer=RepositoryAnalyzer(config),
        store=JsonSnapshotStore(config.snapshot_dir),
    )

    try:
        job = await manager.submit(repo_id, workspace_path, incremental=incremental)
        await manager.wait(job.job_id)

        if job.status != JobStatus.COMPLETED:
            logger.error(f"Analysis {job.status.value}: {job.error or 'no snapshot published'}")
            return 1

        snapshot = manager.get_snapshot(repo_id)
        overview = build_overview(snapshot)
        stats = snapshot.stats

        logger.info("=" * 80)
        logger.info("Analysis Complete!")
        logger.info(f"Repository: {repo_id}")
        logger.info(f"Tree hash: {snapshot.tree_hash}")
        logger.info(f"Files: {len(snapshot.files)} ({stats.files_parsed} parsed, {stats.files_reused} reused)")
        logger.info(f"Removed: {stats.files_removed}")
        logger.info(f"Failed: {stats.files_failed}")
        logger.info(f"Symbols: {len(snapshot.symbols)}")
        logger.info(f"Graph: {len(snapshot.graph.nodes)} nodes, {len(snapshot.graph.edges)} edges")
        logger.info(overview.summary)
        logger.info("=" * 80)

        if watch:
            logger.info(f"Watching {workspace_path} for changes (Ctrl+C to stop)")
            await manager.watch(repo_id, workspace_path)
            while True:
                await asyncio.sleep(3600)

        return 0

    except Exception as e:
        logger.error(f"Fatal error during analysis: {e}", exc_info=True)
        return 1
    finally:
        await manager.shutdown()


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        sys.exit(130)
