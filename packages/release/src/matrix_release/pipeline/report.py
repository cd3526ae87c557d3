from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from matrix_release.build.models import BuildJob, JobStatus
from matrix_release.core import atomic_write_json
from matrix_release.gates import GateResult
from matrix_release.release.models import PublicationReport

from .stage import StageResult

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CANCELLED = 130


@dataclass(slots=True)
class RunReport:
    run_id: str
    started_at_utc: str
    finished_at_utc: str
    status: str  # "success" | "failed"
    exit_code: int
    duration_ms: int

    bin_name: str = ""
    trigger: dict[str, str] = field(default_factory=dict)
    cancelled: bool = False

    jobs: list[BuildJob] = field(default_factory=list)
    gates: list[GateResult] = field(default_factory=list)
    publication: Optional[PublicationReport] = None
    stages: list[StageResult] = field(default_factory=list)
    checksums: Optional[str] = None
    events_jsonl: Optional[str] = None
    meta: dict[str, Any] = field(default_factory=dict)

    @property
    def failed_jobs(self) -> list[BuildJob]:
        return [j for j in self.jobs if j.status == JobStatus.failed]

    @property
    def artifact_names(self) -> list[str]:
        return [j.artifact.name for j in self.jobs if j.artifact is not None]

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "started_at_utc": self.started_at_utc,
            "finished_at_utc": self.finished_at_utc,
            "status": self.status,
            "exit_code": self.exit_code,
            "duration_ms": self.duration_ms,
            "bin_name": self.bin_name,
            "trigger": dict(self.trigger),
            "cancelled": self.cancelled,
            "jobs": [j.to_dict() for j in self.jobs],
            "artifacts": [j.artifact.to_dict() for j in self.jobs if j.artifact is not None],
            "gates": [g.to_dict() for g in self.gates],
            "publication": self.publication.to_dict() if self.publication else None,
            "stages": [s.to_dict() for s in self.stages],
            "checksums": self.checksums,
            "events_jsonl": self.events_jsonl,
            "meta": self.meta,
        }

    def write_json(self, path: Path) -> None:
        atomic_write_json(Path(path), self.to_dict())


def overall_status(
    *,
    jobs: list[BuildJob],
    publication: Optional[PublicationReport],
    gates: list[GateResult],
    stages: list[StageResult],
    gates_block_release: bool = False,
) -> str:
    """
    "failed" iff a job failed, an authorized publication had a failed upload,
    a stage crashed, or (opt-in) a quality gate failed.
    """
    if any(j.status == JobStatus.failed for j in jobs):
        return "failed"
    if publication is not None and not publication.ok:
        return "failed"
    if any(s.status == "failed" for s in stages):
        return "failed"
    if gates_block_release and any(not g.passed for g in gates):
        return "failed"
    return "success"


def build_run_report(
    *,
    run_id: str,
    started_at_utc: str,
    finished_at_utc: str,
    duration_ms: int,
    bin_name: str,
    trigger: dict[str, str],
    jobs: list[BuildJob],
    gates: list[GateResult],
    publication: Optional[PublicationReport],
    stage_results: list[StageResult],
    cancelled: bool,
    gates_block_release: bool,
    checksums: str | None,
    events_jsonl: str | None,
    meta: dict[str, Any] | None = None,
) -> RunReport:
    status = overall_status(
        jobs=jobs,
        publication=publication,
        gates=gates,
        stages=stage_results,
        gates_block_release=gates_block_release,
    )
    if cancelled:
        exit_code = EXIT_CANCELLED
    elif status == "failed":
        exit_code = EXIT_FAILED
    else:
        exit_code = EXIT_OK
    return RunReport(
        run_id=run_id,
        started_at_utc=started_at_utc,
        finished_at_utc=finished_at_utc,
        status=status,
        exit_code=exit_code,
        duration_ms=duration_ms,
        bin_name=bin_name,
        trigger=trigger,
        cancelled=cancelled,
        jobs=jobs,
        gates=gates,
        publication=publication,
        stages=stage_results,
        checksums=checksums,
        events_jsonl=events_jsonl,
        meta=meta or {},
    )
