from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Optional

from matrix_release.core import InternalError, JobCancelled, StageError
from matrix_release.matrix.models import MatrixEntry
from matrix_release.store.models import Artifact


class JobStatus(StrEnum):
    pending = "pending"
    running = "running"
    succeeded = "succeeded"
    failed = "failed"

    @property
    def terminal(self) -> bool:
        return self in (JobStatus.succeeded, JobStatus.failed)


# pending -> failed covers jobs cancelled before they were scheduled.
_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.pending: frozenset({JobStatus.running, JobStatus.failed}),
    JobStatus.running: frozenset({JobStatus.succeeded, JobStatus.failed}),
    JobStatus.succeeded: frozenset(),
    JobStatus.failed: frozenset(),
}


@dataclass(slots=True)
class BuildJob:
    entry: MatrixEntry
    artifact_name: str
    status: JobStatus = JobStatus.pending

    # location of the raw compiled binary, set once the build step succeeds
    artifact_path: Optional[str] = None
    artifact: Optional[Artifact] = None

    error: Optional[StageError] = None
    failed_step: Optional[str] = None
    diagnostics: Optional[str] = None

    started_at_utc: Optional[str] = None
    finished_at_utc: Optional[str] = None
    duration_ms: Optional[int] = None

    @property
    def target(self) -> str:
        return self.entry.target

    def transition(self, new: JobStatus) -> None:
        if new not in _TRANSITIONS[self.status]:
            raise InternalError(
                f"Illegal job transition for {self.target}: {self.status} -> {new}"
            )
        self.status = new

    def succeed(self, artifact: Artifact) -> None:
        self.transition(JobStatus.succeeded)
        self.artifact = artifact

    def fail(self, error: StageError, *, step: str, diagnostics: str | None = None) -> None:
        self.transition(JobStatus.failed)
        self.error = error
        self.failed_step = step
        if diagnostics:
            self.diagnostics = diagnostics

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": self.target,
            "os": self.entry.os.value,
            "artifact_name": self.artifact_name,
            "status": self.status.value,
            "artifact_path": self.artifact_path,
            "artifact": self.artifact.to_dict() if self.artifact else None,
            "failed_step": self.failed_step,
            "error": self.error.to_dict() if self.error else None,
            "diagnostics": self.diagnostics,
            "started_at_utc": self.started_at_utc,
            "finished_at_utc": self.finished_at_utc,
            "duration_ms": self.duration_ms,
        }


class CancelToken:
    """
    Run-wide cancellation flag shared by the scheduler, job runners and
    toolchain subprocess loops.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float) -> bool:
        return self._event.wait(timeout)

    def raise_if_cancelled(self, *, step: str) -> None:
        if self._event.is_set():
            raise JobCancelled(f"run cancelled before step '{step}'", step=step)


@dataclass(frozen=True, slots=True)
class ProcessResult:
    argv: tuple[str, ...]
    returncode: int
    output: str
    duration_ms: int
    timed_out: bool = False
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out and not self.cancelled

    def tail(self, lines: int = 40) -> str:
        return "\n".join(self.output.splitlines()[-lines:])


@dataclass(frozen=True, slots=True)
class JobBatchResult:
    jobs: tuple[BuildJob, ...] = field(default_factory=tuple)
    cancelled: bool = False

    @property
    def succeeded(self) -> list[BuildJob]:
        return [j for j in self.jobs if j.status == JobStatus.succeeded]

    @property
    def failed(self) -> list[BuildJob]:
        return [j for j in self.jobs if j.status == JobStatus.failed]

    @property
    def artifacts(self) -> list[Artifact]:
        return [j.artifact for j in self.succeeded if j.artifact is not None]
