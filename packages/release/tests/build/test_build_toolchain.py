from __future__ import annotations

import sys
from pathlib import Path

import pytest
from matrix_release.build import (
    BuildOptions,
    CancelToken,
    CargoToolchain,
    JobDefaults,
    JobRunner,
    JobStatus,
    expected_output,
    run_process,
)
from matrix_release.core import StoreLayout
from matrix_release.gates import QualityGate, run_gate, run_gates
from matrix_release.matrix import make_plan, parse_matrix
from matrix_release.store import FilesystemArtifactStore

HOST = "x86_64-unknown-linux-gnu"

FAKE_CARGO = """
import pathlib, sys, time
args = sys.argv[1:]
target = args[args.index("--target") + 1]
time.sleep(SLEEP)
if WRITE:
    out = pathlib.Path("target") / target / "release" / "app"
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(b"unstripped")
"""

FAKE_STRIP = """
import pathlib, sys
if FAIL:
    print("strip: file format not recognized")
    sys.exit(1)
pathlib.Path(sys.argv[1]).write_bytes(b"stripped")
"""


def _opts(tmp_path: Path, **kw) -> BuildOptions:
    return BuildOptions(bin_name="app", source_dir=tmp_path, **kw)


def test_cargo_command_for_host_and_foreign_targets(tmp_path: Path) -> None:
    tc = CargoToolchain(host="x86_64-unknown-linux-gnu")

    assert tc.command("x86_64-unknown-linux-gnu", _opts(tmp_path)) == [
        "cargo",
        "build",
        "--release",
        "--target",
        "x86_64-unknown-linux-gnu",
        "--verbose",
    ]
    assert tc.command("aarch64-unknown-linux-musl", _opts(tmp_path))[0] == "cross"
    assert tc.command("aarch64-unknown-linux-musl", _opts(tmp_path, use_cross=False))[0] == "cargo"


def test_strip_selection(tmp_path: Path) -> None:
    tc = CargoToolchain(host="x86_64-unknown-linux-gnu")
    assert tc.strip_command("x86_64-unknown-linux-gnu", _opts(tmp_path)) == "strip"
    assert tc.strip_command("aarch64-unknown-linux-gnu", _opts(tmp_path)) == "llvm-strip"
    assert tc.strip_command("x86_64-pc-windows-msvc", _opts(tmp_path)) is None
    assert tc.strip_command("x86_64-unknown-linux-gnu", _opts(tmp_path, strip=False)) is None


def test_expected_output_layout(tmp_path: Path) -> None:
    out = expected_output("x86_64-pc-windows-msvc", _opts(tmp_path, extension=".exe"))
    assert out == tmp_path / "target" / "x86_64-pc-windows-msvc" / "release" / "app.exe"


def test_run_process_captures_output_and_exit_code(tmp_path: Path) -> None:
    res = run_process(
        [sys.executable, "-c", "import sys; print('hello'); sys.exit(3)"], cwd=tmp_path
    )
    assert res.returncode == 3
    assert "hello" in res.output
    assert not res.ok


def test_run_process_timeout_and_cancel(tmp_path: Path) -> None:
    sleeper = [sys.executable, "-c", "import time; time.sleep(30)"]
    res = run_process(sleeper, cwd=tmp_path, timeout_s=0.5)
    assert res.timed_out and not res.ok

    token = CancelToken()
    token.cancel()
    res = run_process(sleeper, cwd=tmp_path, cancel=token)
    assert res.cancelled and not res.ok


def test_run_process_missing_executable(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        run_process(["definitely-not-a-real-binary-xyz"], cwd=tmp_path)


def test_gates_report_pass_and_fail(tmp_path: Path) -> None:
    gates = (
        QualityGate(name="ok", argv=(sys.executable, "-c", "pass")),
        QualityGate(name="lint", argv=(sys.executable, "-c", "import sys; sys.exit(1)")),
        QualityGate(name="missing", argv=("definitely-not-a-real-binary-xyz",)),
    )
    results = run_gates(gates, source_dir=tmp_path)

    assert [(r.name, r.passed) for r in results] == [
        ("ok", True),
        ("lint", False),
        ("missing", False),
    ]
    assert results[2].returncode == -1


def test_gate_sees_rust_warning_flags(tmp_path: Path) -> None:
    gate = QualityGate(
        name="env",
        argv=(
            sys.executable,
            "-c",
            "import os, sys; sys.exit(0 if os.environ.get('RUSTFLAGS') == '-D warnings' else 1)",
        ),
    )
    assert run_gate(gate, source_dir=tmp_path).passed


def _executable(path: Path, body: str) -> str:
    path.write_text(f"#!{sys.executable}\n{body}")
    path.chmod(0o755)
    return str(path)


def _cargo_toolchain(
    tmp_path: Path, *, write: bool = True, sleep: float = 0, strip_fails: bool = False
) -> CargoToolchain:
    bindir = tmp_path / "fakebin"
    bindir.mkdir(exist_ok=True)
    cargo = FAKE_CARGO.replace("SLEEP", repr(sleep)).replace("WRITE", repr(write))
    strip = FAKE_STRIP.replace("FAIL", repr(strip_fails))
    return CargoToolchain(
        cargo=_executable(bindir / "cargo", cargo),
        strip=_executable(bindir / "strip", strip),
        host=HOST,
    )


def _run_host_job(tmp_path: Path, source_dir: Path, toolchain: CargoToolchain, **defaults):
    matrix, _ = parse_matrix([{"os": "linux", "target": HOST}])
    plan = make_plan(bin_name="app", matrix=matrix, source_dir=source_dir)
    runner = JobRunner(
        run_id="run1",
        bin_name="app",
        source_dir=source_dir,
        toolchain=toolchain,
        store=FilesystemArtifactStore(tmp_path / "store"),
        work_layout=StoreLayout(root=tmp_path / "work"),
        defaults=JobDefaults(**defaults),
    )
    return runner, runner.run(plan.jobs[0])


def test_cargo_build_then_strip_stores_stripped_binary(tmp_path: Path, source_dir: Path) -> None:
    runner, job = _run_host_job(tmp_path, source_dir, _cargo_toolchain(tmp_path))

    assert job.status == JobStatus.succeeded
    assert job.artifact is not None
    assert job.artifact.name == f"app-{HOST}"
    assert runner.store.get("run1", job.artifact.name) == b"stripped"


def test_strip_failure_fails_job_at_strip(tmp_path: Path, source_dir: Path) -> None:
    runner, job = _run_host_job(
        tmp_path, source_dir, _cargo_toolchain(tmp_path, strip_fails=True)
    )

    assert job.status == JobStatus.failed
    assert job.failed_step == "strip"
    assert "file format not recognized" in job.error.message
    assert runner.store.list("run1") == []


def test_build_without_output_fails_job_at_build(tmp_path: Path, source_dir: Path) -> None:
    _, job = _run_host_job(tmp_path, source_dir, _cargo_toolchain(tmp_path, write=False))

    assert job.status == JobStatus.failed
    assert job.failed_step == "build"
    assert "produced no file" in job.error.message


def test_build_timeout_fails_job_at_build(tmp_path: Path, source_dir: Path) -> None:
    _, job = _run_host_job(
        tmp_path, source_dir, _cargo_toolchain(tmp_path, sleep=30), timeout_s=0.5
    )

    assert job.status == JobStatus.failed
    assert job.failed_step == "build"
    assert "timed out" in job.error.message
