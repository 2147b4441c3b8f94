"""
Background Jobs Module
======================

Defines arq tasks for running the pipeline in a worker process.
Uses Redis as the job queue backend.
"""

from __future__ import annotations

import logging
import os
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from arq import create_pool
from arq.connections import RedisSettings

from fly_pattern_db.db.engine import get_session, init_db
from fly_pattern_db.ingestion.orchestrator import PipelineOrchestrator, StageStatus

logger = logging.getLogger(__name__)


def get_redis_settings() -> RedisSettings:
    """Get Redis connection settings from environment."""
    return RedisSettings(
        host=os.environ.get("REDIS_HOST", "localhost"),
        port=int(os.environ.get("REDIS_PORT", "6379")),
        database=int(os.environ.get("REDIS_DB", "0")),
    )


async def run_pipeline(
    ctx: dict[str, Any],
    queries: list[str] | None = None,
) -> dict[str, Any]:
    """
    Run every pipeline stage.

    Args:
        ctx: arq context (contains Redis connection)
        queries: Pattern names to discover; seed patterns when empty

    Returns:
        Job summary with one entry per stage that ran
    """
    job_id = ctx.get("job_id", str(uuid4()))
    started_at = datetime.now(UTC)
    summary: dict[str, Any] = {
        "job_id": job_id,
        "queries": list(queries or []),
        "status": StageStatus.RUNNING.value,
        "started_at": started_at.isoformat(),
        "stages": [],
        "errors": [],
    }

    try:
        init_db()
        with get_session() as session:
            orchestrator = PipelineOrchestrator(session)
            results = await orchestrator.run(queries)
        summary["stages"] = [r.to_dict() for r in results]
        failed = any(r.status == StageStatus.FAILED for r in results)
        summary["status"] = (StageStatus.FAILED if failed else StageStatus.COMPLETED).value
    except Exception as e:
        logger.exception("Pipeline job %s failed", job_id)
        summary["status"] = StageStatus.FAILED.value
        summary["errors"].append(str(e))
    finally:
        completed_at = datetime.now(UTC)
        summary["completed_at"] = completed_at.isoformat()
        summary["duration_seconds"] = (completed_at - started_at).total_seconds()

    return summary


async def enqueue_pipeline(queries: list[str] | None = None) -> str:
    """
    Enqueue a pipeline run for the worker.

    Returns:
        Job ID
    """
    redis = await create_pool(get_redis_settings())
    try:
        job = await redis.enqueue_job("run_pipeline", list(queries or []))
    finally:
        await redis.close()
    if job is None:
        raise RuntimeError("Job was not enqueued")
    logger.info("Enqueued pipeline job %s", job.job_id)
    return job.job_id


async def get_job_status(job_id: str) -> dict[str, Any] | None:
    """
    Get the status of a pipeline job.

    Args:
        job_id: Job ID to look up

    Returns:
        Job info dict, or None if not found
    """
    redis = await create_pool(get_redis_settings())
    try:
        job = await redis.job(job_id)
        if job is None:
            return None

        status = await job.status()
        info = await job.result_info()
    finally:
        await redis.close()

    return {
        "job_id": job_id,
        "status": status.value,
        "result": info.result if info else None,
    }


class WorkerSettings:
    """arq worker settings."""

    functions = [run_pipeline]
    redis_settings = get_redis_settings()
    max_jobs = 1
    job_timeout = 6 * 3600
    keep_result = 86400  # 24 hours
