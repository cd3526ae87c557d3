from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from .models import BuildMatrix, MatrixEntry
from .naming import validate_bin_name, validate_names


@dataclass(frozen=True, slots=True)
class PlannedJob:
    entry: MatrixEntry
    artifact_name: str

    @property
    def target(self) -> str:
        return self.entry.target


@dataclass(frozen=True, slots=True)
class ReleasePlan:
    """
    A validated pipeline definition. Constructing one through `make_plan`
    guarantees unique targets and unique artifact names.
    """

    bin_name: str
    source_dir: Path
    jobs: tuple[PlannedJob, ...] = field(default_factory=tuple)

    def artifact_names(self) -> list[str]:
        return [j.artifact_name for j in self.jobs]

    def to_dict(self) -> dict[str, object]:
        return {
            "bin_name": self.bin_name,
            "source_dir": str(self.source_dir),
            "jobs": [
                {
                    "os": j.entry.os.value,
                    "target": j.target,
                    "extension": j.entry.extension,
                    "artifact_name": j.artifact_name,
                }
                for j in self.jobs
            ],
        }


def make_plan(*, bin_name: str, matrix: BuildMatrix, source_dir: Path) -> ReleasePlan:
    """
    Validate the matrix against the binary name. Raises ConfigError /
    NamingConflict; nothing runs before this succeeds.
    """
    validate_bin_name(bin_name)
    names = validate_names(bin_name, ((e.target, e.extension) for e in matrix.include))
    jobs = tuple(PlannedJob(entry=e, artifact_name=names[e.target]) for e in matrix.include)
    return ReleasePlan(bin_name=bin_name, source_dir=Path(source_dir), jobs=jobs)
