from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Optional

import structlog
from matrix_release.core import (
    BuildFailure,
    EventType,
    ILogger,
    JobCancelled,
    ReleaseError,
    StoreLayout,
    copy_executable,
    format_duration_ms,
    monotonic_ms,
    reset_dir,
    stage_error_from_exc,
    utc_now_iso,
)
from matrix_release.matrix.plan import PlannedJob
from matrix_release.store import ArtifactStore

from .models import BuildJob, CancelToken, JobStatus
from .toolchain import BuildOptions, Toolchain

EmitFn = Callable[..., None]


@dataclass(frozen=True, slots=True)
class JobDefaults:
    profile: str = "release"
    args: tuple[str, ...] = ("--verbose",)
    strip: bool = True
    timeout_s: Optional[float] = None
    # a file that must exist in the source checkout; None disables the check
    required_manifest: Optional[str] = "Cargo.toml"


class _StepFailed(Exception):
    def __init__(self, step: str, cause: BaseException) -> None:
        super().__init__(str(cause))
        self.step = step
        self.cause = cause


class JobRunner:
    """
    Runs the steps of one matrix entry strictly in order:

      checkout -> build -> rename -> store

    Every failure is captured on the returned BuildJob; nothing is raised
    to the caller.
    """

    def __init__(
        self,
        *,
        run_id: str,
        bin_name: str,
        source_dir: Path,
        toolchain: Toolchain,
        store: ArtifactStore,
        work_layout: StoreLayout,
        defaults: JobDefaults | None = None,
        cancel: CancelToken | None = None,
        logger: ILogger | None = None,
        emit: EmitFn | None = None,
    ) -> None:
        self.run_id = run_id
        self.bin_name = bin_name
        self.source_dir = Path(source_dir)
        self.toolchain = toolchain
        self.store = store
        self.work_layout = work_layout
        self.defaults = defaults or JobDefaults()
        self.cancel = cancel or CancelToken()
        self.logger: ILogger = logger or structlog.get_logger("matrix_release.job")
        self._emit = emit

    def emit(self, event: EventType | str, **kw: Any) -> None:
        if self._emit is not None:
            self._emit(event, **kw)

    def options_for(self, planned: PlannedJob) -> BuildOptions:
        entry = planned.entry
        ov = entry.overrides
        return BuildOptions(
            bin_name=self.bin_name,
            source_dir=self.source_dir,
            extension=entry.extension,
            profile=self.defaults.profile,
            args=tuple(self.defaults.args) + tuple(ov.args),
            env=dict(ov.env),
            strip=self.defaults.strip if ov.strip is None else ov.strip,
            use_cross=ov.use_cross,
            timeout_s=ov.timeout_s if ov.timeout_s is not None else self.defaults.timeout_s,
            cancel=self.cancel,
        )

    def _step(self, step: str, fn: Callable[[], Any]) -> Any:
        try:
            self.cancel.raise_if_cancelled(step=step)
            return fn()
        except Exception as e:
            raise _StepFailed(step, e) from e

    def _checkout(self) -> None:
        if not self.source_dir.is_dir():
            raise BuildFailure(f"Source checkout not found: {self.source_dir}", step="checkout")
        manifest = self.defaults.required_manifest
        if manifest and not (self.source_dir / manifest).is_file():
            raise BuildFailure(
                f"Source checkout has no {manifest}: {self.source_dir}", step="checkout"
            )

    def _build(self, planned: PlannedJob) -> Path:
        out = Path(self.toolchain.build(planned.target, self.options_for(planned)))
        if not out.is_file():
            raise BuildFailure(
                f"{planned.target}: toolchain reported {out} but no file exists there",
                step="build",
            )
        return out

    def _rename(self, planned: PlannedJob, binary: Path) -> Path:
        work = reset_dir(self.work_layout.work(self.run_id, planned.target))
        renamed = work / planned.artifact_name
        copy_executable(binary, renamed)
        return renamed

    def run(self, planned: PlannedJob) -> BuildJob:
        job = BuildJob(entry=planned.entry, artifact_name=planned.artifact_name)
        log = self.logger.bind(target=planned.target)

        if self.cancel.cancelled:
            err = stage_error_from_exc(
                JobCancelled("run cancelled before job started", step="schedule")
            )
            job.fail(err, step="schedule")
            self.emit(EventType.JOB_FAILED, target=job.target, step="schedule", error=err.message)
            return job

        t0 = monotonic_ms()
        job.started_at_utc = utc_now_iso()
        job.transition(JobStatus.running)
        self.emit(EventType.JOB_START, target=job.target, artifact_name=job.artifact_name)
        log.info("Job starting", artifact_name=job.artifact_name)

        try:
            self._step("checkout", self._checkout)
            binary = self._step("build", lambda: self._build(planned))
            job.artifact_path = str(binary)
            renamed = self._step("rename", lambda: self._rename(planned, binary))
            artifact = self._step(
                "store",
                lambda: self.store.put(
                    self.run_id, planned.artifact_name, renamed, target=planned.target
                ),
            )
        except _StepFailed as f:
            cause = f.cause
            step = getattr(cause, "step", None) or f.step
            job.fail(
                stage_error_from_exc(cause),
                step=step,
                diagnostics=str(cause) if isinstance(cause, ReleaseError) else None,
            )
        else:
            job.succeed(artifact)

        job.finished_at_utc = utc_now_iso()
        job.duration_ms = monotonic_ms() - t0

        if job.status == JobStatus.succeeded:
            self.emit(
                EventType.JOB_SUCCEEDED,
                target=job.target,
                artifact=job.artifact_name,
                duration_ms=job.duration_ms,
            )
            log.info(
                "Job succeeded",
                artifact=job.artifact_name,
                duration=format_duration_ms(job.duration_ms),
            )
        else:
            err_msg = job.error.message if job.error else None
            self.emit(
                EventType.JOB_FAILED,
                target=job.target,
                step=job.failed_step,
                error=err_msg,
                duration_ms=job.duration_ms,
            )
            log.error(
                "Job failed",
                step=job.failed_step,
                error=err_msg,
                duration=format_duration_ms(job.duration_ms),
            )
        return job
