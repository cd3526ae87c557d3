from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Sequence

import structlog
from matrix_release.build.models import CancelToken
from matrix_release.build.process import merged_env, run_process
from matrix_release.core import RUST_WARNING_FLAGS, format_duration_ms

log = structlog.get_logger(__name__)


@dataclass(frozen=True, slots=True)
class QualityGate:
    """
    An opaque pass/fail check run once per pipeline invocation.
    """

    name: str
    argv: tuple[str, ...]
    env: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class GateResult:
    name: str
    passed: bool
    returncode: int
    duration_ms: int
    output_tail: str = ""

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "passed": self.passed,
            "returncode": self.returncode,
            "duration_ms": self.duration_ms,
            "output_tail": self.output_tail,
        }


DEFAULT_GATES: tuple[QualityGate, ...] = (
    QualityGate(name="check", argv=("cargo", "check", "--all-features")),
    QualityGate(name="fmt", argv=("cargo", "fmt", "--all", "--", "--check")),
    QualityGate(name="clippy", argv=("cargo", "clippy", "--", "-D", "warnings")),
)


def run_gate(
    gate: QualityGate,
    *,
    source_dir: Path,
    timeout_s: float | None = None,
    cancel: CancelToken | None = None,
) -> GateResult:
    try:
        res = run_process(
            gate.argv,
            cwd=Path(source_dir),
            env=merged_env(RUST_WARNING_FLAGS, gate.env),
            timeout_s=timeout_s,
            cancel=cancel,
        )
    except FileNotFoundError:
        return GateResult(
            name=gate.name,
            passed=False,
            returncode=-1,
            duration_ms=0,
            output_tail=f"executable not found: {gate.argv[0]}",
        )

    tail = res.tail()
    if res.timed_out:
        tail = f"timed out after {timeout_s}s\n{tail}"
    elif res.cancelled:
        tail = f"cancelled\n{tail}"
    return GateResult(
        name=gate.name,
        passed=res.ok,
        returncode=res.returncode,
        duration_ms=res.duration_ms,
        output_tail=tail,
    )


def run_gates(
    gates: Sequence[QualityGate],
    *,
    source_dir: Path,
    timeout_s: float | None = None,
    cancel: CancelToken | None = None,
) -> list[GateResult]:
    results: list[GateResult] = []
    for gate in gates:
        r = run_gate(gate, source_dir=source_dir, timeout_s=timeout_s, cancel=cancel)
        level = log.info if r.passed else log.warning
        level(
            "gate.finish",
            gate=r.name,
            passed=r.passed,
            returncode=r.returncode,
            duration=format_duration_ms(r.duration_ms),
        )
        results.append(r)
    return results
