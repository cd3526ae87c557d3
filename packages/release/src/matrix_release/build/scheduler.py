from __future__ import annotations

from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Sequence

import structlog
from matrix_release.core import InternalError, JobCancelled, stage_error_from_exc
from matrix_release.matrix.plan import PlannedJob

from .job import JobRunner
from .models import BuildJob, JobBatchResult, JobStatus

log = structlog.get_logger(__name__)

_WAIT_S = 0.5


def _failed_job(planned: PlannedJob, exc: BaseException, *, step: str) -> BuildJob:
    job = BuildJob(entry=planned.entry, artifact_name=planned.artifact_name)
    job.fail(stage_error_from_exc(exc), step=step)
    return job


def run_jobs(
    runner: JobRunner,
    jobs: Sequence[PlannedJob],
    *,
    max_workers: int = 4,
) -> JobBatchResult:
    """
    Run every planned job concurrently and return once all are terminal.

    Results keep plan order. A job raising unexpectedly is recorded as
    failed. On KeyboardInterrupt the shared cancel token is set, in-flight
    toolchain processes are killed, queued jobs are marked failed, and the
    batch is returned with `cancelled=True`.
    """
    workers = max(1, min(max_workers, len(jobs)))
    results: dict[str, BuildJob] = {}
    cancelled = False

    pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="build_job")
    futures: dict[Future[BuildJob], PlannedJob] = {
        pool.submit(runner.run, planned): planned for planned in jobs
    }
    pending = set(futures)
    try:
        while pending:
            try:
                done, pending = wait(pending, timeout=_WAIT_S, return_when=FIRST_COMPLETED)
            except KeyboardInterrupt:
                log.warning("scheduler.cancel", pending=len(pending))
                cancelled = True
                runner.cancel.cancel()
                continue
            for fut in done:
                planned = futures[fut]
                try:
                    results[planned.target] = fut.result()
                except Exception as e:
                    log.error("scheduler.job_crashed", target=planned.target, error=str(e))
                    results[planned.target] = _failed_job(
                        planned, InternalError(f"job runner crashed: {e}"), step="internal"
                    )
    finally:
        pool.shutdown(wait=True, cancel_futures=True)

    for planned in jobs:
        if planned.target not in results:
            results[planned.target] = _failed_job(
                planned, JobCancelled("run cancelled before job started", step="schedule"),
                step="schedule",
            )

    ordered = tuple(results[p.target] for p in jobs)
    for job in ordered:
        if not job.status.terminal:
            raise InternalError(f"job {job.target} not terminal after barrier: {job.status}")

    log.info(
        "scheduler.barrier",
        jobs=len(ordered),
        succeeded=sum(1 for j in ordered if j.status == JobStatus.succeeded),
        failed=sum(1 for j in ordered if j.status == JobStatus.failed),
        cancelled=cancelled or runner.cancel.cancelled,
    )
    return JobBatchResult(jobs=ordered, cancelled=cancelled or runner.cancel.cancelled)
