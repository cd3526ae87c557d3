from __future__ import annotations

import argparse
from dataclasses import dataclass
from pathlib import Path
from typing import Sequence

from matrix_release.build import CargoToolchain, JobDefaults
from matrix_release.core import (
    ConfigError,
    Settings,
    bind,
    clear_bindings,
    configure_logging,
    get_logger,
    load_settings,
    new_run_id,
)
from matrix_release.matrix import (
    DEFAULT_BIN_NAME,
    ReleasePlan,
    default_matrix,
    load_matrix_file,
    make_plan,
)
from matrix_release.pipeline import ControllerConfig, PipelineController, RunReport
from matrix_release.release import (
    DirectoryReleaseClient,
    GitHubReleaseClient,
    ReleaseClient,
    TriggerContext,
    authorize,
    trigger_from_env,
)
from matrix_release.store import FilesystemArtifactStore
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

console = Console()

EXIT_CONFIG = 2
EXIT_DECLINED = 3


@dataclass(frozen=True, slots=True)
class _CommonArgs:
    cmd: str
    bin_name: str | None
    matrix: str | None
    source: str


def _add_common_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--bin",
        dest="bin_name",
        default=None,
        help=f"Binary name. Defaults to the matrix file's bin_name, then {DEFAULT_BIN_NAME}.",
    )
    p.add_argument(
        "--matrix",
        default=None,
        help="JSON matrix file ({\"include\": [...]} or a bare list). If omitted: built-in 8-target matrix.",
    )
    p.add_argument("--source", default=".", help="Source checkout directory (default: .)")


def _add_trigger_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--event",
        default=None,
        help="Trigger event: push, pull_request, workflow_dispatch",
    )
    p.add_argument("--ref", default="", help="Git ref, e.g. refs/tags/v1.2.3")
    p.add_argument(
        "--trigger-from-env",
        action="store_true",
        help="Read the trigger from GITHUB_EVENT_NAME / GITHUB_REF.",
    )


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="matrix-release")
    sub = p.add_subparsers(dest="cmd", required=True)

    sp = sub.add_parser("plan", help="Validate the matrix and list jobs and artifact names")
    _add_common_args(sp)

    sp = sub.add_parser("authorize", help="Decide whether a trigger may publish a release")
    _add_trigger_args(sp)

    sp = sub.add_parser("run", help="Run gates, build every target, and publish on tag pushes")
    _add_common_args(sp)
    _add_trigger_args(sp)
    sp.add_argument(
        "--release-backend",
        choices=("github", "directory", "none"),
        default="github",
        help="Where to publish on an authorized trigger (default: github).",
    )
    sp.add_argument("--repo", default=None, help="GitHub repository owner/name")
    sp.add_argument(
        "--release-dir",
        default=None,
        help="Root directory for --release-backend directory",
    )
    sp.add_argument("--skip-gates", action="store_true", help="Do not run quality gates")
    sp.add_argument("--max-workers", type=int, default=None, help="Concurrent build jobs")
    sp.add_argument("--run-id", default=None, help="Explicit run id (default: random)")

    return p


def _common(args: argparse.Namespace) -> _CommonArgs:
    return _CommonArgs(
        cmd=str(args.cmd),
        bin_name=(str(args.bin_name) if args.bin_name is not None else None),
        matrix=(str(args.matrix) if args.matrix else None),
        source=str(args.source),
    )


def _load_plan(common: _CommonArgs) -> ReleasePlan:
    if common.matrix:
        matrix, file_bin = load_matrix_file(Path(common.matrix))
    else:
        matrix, file_bin = default_matrix(), None
    bin_name = common.bin_name if common.bin_name is not None else (file_bin or DEFAULT_BIN_NAME)
    return make_plan(bin_name=bin_name, matrix=matrix, source_dir=Path(common.source))


def _trigger(args: argparse.Namespace) -> TriggerContext:
    if args.trigger_from_env:
        return trigger_from_env()
    if not args.event:
        raise ConfigError("Pass --event (and --ref) or --trigger-from-env")
    try:
        return TriggerContext(event=args.event, ref=args.ref or "")
    except ValueError as e:
        raise ConfigError(f"Invalid trigger: {e}") from e


def _release_client(args: argparse.Namespace, s: Settings) -> ReleaseClient | None:
    backend = str(args.release_backend)
    if backend == "none":
        return None
    if backend == "directory":
        if not args.release_dir:
            raise ConfigError("--release-dir is required for --release-backend directory")
        return DirectoryReleaseClient(Path(args.release_dir))

    repo = args.repo or s.github_repository
    if not repo:
        raise ConfigError("GitHub backend needs --repo or MATRIX_RELEASE_GITHUB_REPOSITORY")
    return GitHubReleaseClient(
        repository=repo,
        token=s.github_token or "",
        api_url=s.github_api_url,
        uploads_url=s.github_uploads_url,
        max_attempts=s.upload_attempts,
    )


def _print_plan(plan: ReleasePlan) -> None:
    tbl = Table(title=f"Plan: {plan.bin_name}", show_header=True)
    tbl.add_column("os")
    tbl.add_column("target")
    tbl.add_column("artifact")
    for j in plan.jobs:
        tbl.add_row(j.entry.os.value, j.target, j.artifact_name)
    console.print(tbl)


def _print_report(report: RunReport, report_path: Path) -> None:
    jobs = Table(title="Jobs", show_header=True)
    jobs.add_column("target")
    jobs.add_column("status")
    jobs.add_column("artifact / error")
    for j in report.jobs:
        if j.artifact is not None:
            jobs.add_row(j.target, "[green]succeeded[/green]", j.artifact.name)
        else:
            msg = j.error.message.splitlines()[0] if j.error and j.error.message else ""
            jobs.add_row(j.target, "[red]failed[/red]", f"{j.failed_step}: {msg}")
    console.print(jobs)

    if report.gates:
        gates = Table(title="Gates", show_header=True, box=None)
        for g in report.gates:
            gates.add_row(g.name, "[green]pass[/green]" if g.passed else "[red]fail[/red]")
        console.print(gates)

    tbl = Table(title="Result", show_header=True, box=None)
    tbl.add_row(
        "status", "[green]ok[/green]" if report.status == "success" else "[red]failed[/red]"
    )
    if report.publication is not None:
        pub = report.publication
        tbl.add_row("publication", f"{pub.status.value} {pub.reason}".strip())
    if report.cancelled:
        tbl.add_row("cancelled", "yes")
    tbl.add_row("report", str(report_path))
    console.print(tbl)


def _cmd_plan(args: argparse.Namespace) -> int:
    plan = _load_plan(_common(args))
    _print_plan(plan)
    return 0


def _cmd_authorize(args: argparse.Namespace) -> int:
    ctx = _trigger(args)
    target = authorize(ctx)
    if target is None:
        console.print(f"[yellow]declined[/yellow] event={ctx.event.value} ref={ctx.ref!r}")
        return EXIT_DECLINED
    console.print(f"[green]authorized[/green] tag={target.tag}")
    return 0


def _cmd_run(args: argparse.Namespace, s: Settings) -> int:
    common = _common(args)
    plan = _load_plan(common)
    trigger = _trigger(args)
    client = _release_client(args, s) if authorize(trigger) is not None else None

    run_id = args.run_id or new_run_id()
    bind(run_id=run_id)
    log = get_logger("matrix_release")

    cfg = ControllerConfig(
        max_workers=args.max_workers or s.max_workers,
        run_gates=not args.skip_gates,
        gate_timeout_s=s.gate_timeout_s,
        gates_block_release=s.gates_block_release,
        job_defaults=JobDefaults(timeout_s=s.job_timeout_s),
    )
    controller = PipelineController(
        toolchain=CargoToolchain(),
        store=FilesystemArtifactStore(Path(s.store_root)),
        run_root=Path(s.run_root),
        release_client=client,
        cfg=cfg,
        logger=log,
    )

    console.print(
        Panel.fit(
            Text(
                f"matrix-release - run\nrun_id={run_id}\nbin={plan.bin_name}\n"
                f"trigger={trigger.event.value} {trigger.ref}".rstrip(),
                style="bold",
            ),
            title="Run",
        )
    )
    _print_plan(plan)

    try:
        report = controller.run(
            plan,
            trigger,
            run_id=run_id,
            meta={"source": common.source, "matrix": common.matrix},
        )
    finally:
        if isinstance(client, GitHubReleaseClient):
            client.close()

    _print_report(report, Path(s.run_root) / run_id / "run_report.json")
    return report.exit_code


def main(argv: Sequence[str] | None = None) -> int:
    args = _build_parser().parse_args(list(argv) if argv is not None else None)

    s = load_settings()
    configure_logging(level=s.log_level, fmt=s.log_format)
    clear_bindings()
    bind(command=str(args.cmd))

    try:
        if args.cmd == "plan":
            return _cmd_plan(args)
        if args.cmd == "authorize":
            return _cmd_authorize(args)
        return _cmd_run(args, s)
    except ConfigError as e:
        console.print(Panel.fit(Text(str(e), style="red"), title="Configuration error"))
        return EXIT_CONFIG


if __name__ == "__main__":
    raise SystemExit(main())
