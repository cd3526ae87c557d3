from __future__ import annotations

import json
import sys
from pathlib import Path

import structlog
from matrix_release.gates import QualityGate
from matrix_release.matrix import make_plan, parse_matrix
from matrix_release.pipeline import (
    ControllerConfig,
    PipelineController,
    read_events,
)
from matrix_release.release import DirectoryReleaseClient, PublicationStatus, TriggerContext
from matrix_release.store import FilesystemArtifactStore

A = "x86_64-unknown-linux-gnu"
B = "aarch64-unknown-linux-gnu"
C = "x86_64-pc-windows-msvc"

PASS = QualityGate(name="check", argv=(sys.executable, "-c", "pass"))
FAIL = QualityGate(name="clippy", argv=(sys.executable, "-c", "import sys; sys.exit(1)"))


def _plan(source_dir: Path):
    matrix, _ = parse_matrix(
        [
            {"os": "ubuntu-latest", "target": A},
            {"os": "ubuntu-latest", "target": B},
            {"os": "windows-latest", "target": C, "extension": ".exe"},
        ]
    )
    return make_plan(bin_name="app", matrix=matrix, source_dir=source_dir)


def _controller(tmp_path: Path, toolchain, **cfg) -> PipelineController:
    return PipelineController(
        toolchain=toolchain,
        store=FilesystemArtifactStore(tmp_path / "store"),
        run_root=tmp_path / "runs",
        release_client=DirectoryReleaseClient(tmp_path / "releases"),
        cfg=ControllerConfig(max_workers=3, **cfg),
        logger=structlog.get_logger("test"),
    )


def test_tag_push_publishes_surviving_artifacts(
    tmp_path: Path, source_dir: Path, fake_toolchain
) -> None:
    controller = _controller(tmp_path, fake_toolchain(fail=(B,)), gates=(PASS,))
    trigger = TriggerContext(event="push", ref="refs/tags/v1.0.0")

    report = controller.run(_plan(source_dir), trigger, run_id="r1")

    assert report.status == "failed"
    assert report.exit_code == 1
    assert [j.status.value for j in report.jobs] == ["succeeded", "failed", "succeeded"]
    assert report.publication is not None
    assert report.publication.status == PublicationStatus.published
    assert sorted(p.name for p in (tmp_path / "releases" / "v1.0.0").iterdir()) == [
        "app-x86_64-pc-windows-msvc.exe",
        "app-x86_64-unknown-linux-gnu",
        "release.json",
    ]
    assert [g.passed for g in report.gates] == [True]

    on_disk = json.loads((tmp_path / "runs" / "r1" / "run_report.json").read_text())
    assert on_disk["status"] == "failed"
    assert on_disk["exit_code"] == 1
    assert [a["name"] for a in on_disk["artifacts"]] == [
        "app-x86_64-unknown-linux-gnu",
        "app-x86_64-pc-windows-msvc.exe",
    ]
    assert on_disk["jobs"][1]["failed_step"] == "build"
    assert on_disk["publication"]["status"] == "published"
    assert on_disk["meta"]["provenance"]["run_id"] == "r1"
    assert (tmp_path / "store" / "r1" / "artifacts" / "sha256sums.txt").is_file()

    types = [e["type"] for e in read_events(tmp_path / "runs" / "r1" / "events.jsonl")]
    assert types[0] == "run.env"
    assert types[-1] == "run.finish"
    for expected in ("run.start", "job.failed", "job.succeeded", "release.uploaded", "release.finish"):
        assert expected in types


def test_declined_trigger_is_success_with_skipped_publication(
    tmp_path: Path, source_dir: Path, fake_toolchain
) -> None:
    controller = _controller(tmp_path, fake_toolchain(), run_gates=False)
    trigger = TriggerContext(event="pull_request", ref="refs/pull/3/merge")

    report = controller.run(_plan(source_dir), trigger, run_id="r2")

    assert report.status == "success"
    assert report.exit_code == 0
    assert report.publication is not None
    assert report.publication.status == PublicationStatus.skipped
    assert len(report.artifact_names) == 3
    assert not (tmp_path / "releases").exists()
    assert report.stages[0].stage == "gates" and report.stages[0].status == "skipped"


def test_branch_push_builds_but_does_not_publish(
    tmp_path: Path, source_dir: Path, fake_toolchain
) -> None:
    controller = _controller(tmp_path, fake_toolchain(), run_gates=False)
    report = controller.run(
        _plan(source_dir), TriggerContext(event="push", ref="refs/heads/master"), run_id="r3"
    )
    assert report.exit_code == 0
    assert report.publication.status == PublicationStatus.skipped
    assert FilesystemArtifactStore(tmp_path / "store").list("r3") == sorted(report.artifact_names)


def test_failed_gate_is_reported_but_not_blocking_by_default(
    tmp_path: Path, source_dir: Path, fake_toolchain
) -> None:
    controller = _controller(tmp_path, fake_toolchain(), gates=(PASS, FAIL))
    report = controller.run(
        _plan(source_dir), TriggerContext(event="push", ref="refs/tags/v2"), run_id="r4"
    )
    assert [g.passed for g in report.gates] == [True, False]
    assert report.status == "success"
    assert report.publication.status == PublicationStatus.published


def test_blocking_gates_skip_publication_and_fail_the_run(
    tmp_path: Path, source_dir: Path, fake_toolchain
) -> None:
    controller = _controller(
        tmp_path, fake_toolchain(), gates=(FAIL,), gates_block_release=True
    )
    report = controller.run(
        _plan(source_dir), TriggerContext(event="push", ref="refs/tags/v3"), run_id="r5"
    )
    assert report.status == "failed"
    assert report.exit_code == 1
    assert report.publication.status == PublicationStatus.skipped
    assert report.publication.reason == "quality gates failed"
    assert not (tmp_path / "releases" / "v3").exists()
