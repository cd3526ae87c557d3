from __future__ import annotations

from pathlib import Path

import pytest
from matrix_release.core import config, errors, paths, provenance, time


def test_store_and_run_layout_paths(tmp_path: Path) -> None:
    store = paths.StoreLayout(root=tmp_path / "store")
    assert store.artifact("r1", "app-x") == tmp_path / "store" / "r1" / "artifacts" / "app-x"
    assert store.checksums("r1").name == "sha256sums.txt"
    assert store.work("r1", "t") == tmp_path / "store" / "r1" / "work" / "t"

    runs = paths.RunLayout(root=tmp_path / "runs")
    assert runs.events_jsonl("r1") == tmp_path / "runs" / "r1" / "events.jsonl"
    assert runs.report_json("r1") == tmp_path / "runs" / "r1" / "run_report.json"


def test_stage_error_and_run_id() -> None:
    try:
        raise ValueError("boom")
    except Exception as exc:
        err = errors.stage_error_from_exc(exc)
    assert err.exc_type == "ValueError"
    assert "boom" in err.message
    assert "ValueError" in err.traceback

    rid1, rid2 = provenance.new_run_id(), provenance.new_run_id()
    assert rid1 != rid2 and len(rid1) == 32


def test_error_hierarchy() -> None:
    assert issubclass(errors.NamingConflict, errors.ConfigError)
    assert issubclass(errors.JobCancelled, errors.BuildFailure)
    for cls in (
        errors.ConfigError,
        errors.BuildFailure,
        errors.StoreFailure,
        errors.PublishFailure,
        errors.TransientError,
        errors.InternalError,
    ):
        assert issubclass(cls, errors.ReleaseError)

    e = errors.BuildFailure("no output", step="strip")
    assert e.step == "strip"
    assert errors.JobCancelled().step == "build"


def test_run_provenance_records_host() -> None:
    prov = provenance.RunProvenance(run_id="r1", started_at_utc="2024-01-01T00:00:00Z").to_dict()
    assert prov["run_id"] == "r1"
    assert prov["pid"] > 0
    assert set(prov) >= {"hostname", "python", "platform"}


def test_time_helpers_format() -> None:
    assert time.utc_now_iso().endswith("Z")
    assert time.format_duration_ms(250) == "250 ms"
    assert time.format_duration_ms(1500) == "1.50 s"


def test_settings_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MATRIX_RELEASE_MAX_WORKERS", "2")
    monkeypatch.setenv("MATRIX_RELEASE_GATES_BLOCK_RELEASE", "true")
    monkeypatch.setenv("MATRIX_RELEASE_GITHUB_REPOSITORY", "acme/recorder")
    s = config.Settings()
    assert s.max_workers == 2
    assert s.gates_block_release is True
    assert s.github_repository == "acme/recorder"
    assert s.store_root == Path("_artifacts")
    assert config.RUST_WARNING_FLAGS["RUSTFLAGS"] == "-D warnings"
