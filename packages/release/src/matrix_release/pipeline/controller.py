from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Sequence

from matrix_release.build import (
    JobBatchResult,
    JobDefaults,
    JobRunner,
    Toolchain,
    run_jobs,
)
from matrix_release.core import (
    ILogger,
    RunLayout,
    RunProvenance,
    StoreLayout,
    configure_logging,
    format_duration_ms,
    get_logger,
    monotonic_ms,
    new_run_id,
    utc_now_iso,
)
from matrix_release.gates import DEFAULT_GATES, GateResult, QualityGate, run_gates
from matrix_release.matrix.plan import ReleasePlan
from matrix_release.release import (
    PublicationReport,
    ReleaseClient,
    ReleasePublisher,
    TriggerContext,
    authorize,
)
from matrix_release.store import ArtifactStore

from .context import RunContext
from .events import EventSink, EventType, make_event
from .report import RunReport, build_run_report
from .stage import (
    FunctionStage,
    StageResult,
    interrupted_stage,
    run_stage,
    skipped_stage,
)


@dataclass(slots=True)
class ControllerConfig:
    max_workers: int = 4
    gates: Sequence[QualityGate] = DEFAULT_GATES
    run_gates: bool = True
    gate_timeout_s: Optional[float] = None
    gates_block_release: bool = False
    job_defaults: JobDefaults = field(default_factory=JobDefaults)


def default_logger() -> ILogger:
    configure_logging()
    return get_logger("pipeline")


@dataclass(slots=True)
class _RunState:
    gates: list[GateResult] = field(default_factory=list)
    batch: JobBatchResult = field(default_factory=JobBatchResult)
    publication: Optional[PublicationReport] = None
    checksums: Optional[Path] = None
    cancelled: bool = False


class PipelineController:
    """
    gates -> build (all jobs, join barrier) -> release -> run report

    Job and upload failures never abort the run; they are reflected in the
    report status and exit code.
    """

    def __init__(
        self,
        *,
        toolchain: Toolchain,
        store: ArtifactStore,
        run_root: Path,
        release_client: ReleaseClient | None = None,
        cfg: ControllerConfig | None = None,
        logger: ILogger | None = None,
    ) -> None:
        self.toolchain = toolchain
        self.store = store
        self.run_layout = RunLayout(root=Path(run_root))
        self.release_client = release_client
        self.cfg = cfg or ControllerConfig()
        self.logger: ILogger = logger or default_logger()

    def _gates_stage(self, plan: ReleasePlan, state: _RunState):
        def _run(ctx: RunContext) -> dict[str, Any]:
            state.gates = run_gates(
                self.cfg.gates,
                source_dir=plan.source_dir,
                timeout_s=self.cfg.gate_timeout_s,
                cancel=ctx.cancel,
            )
            for g in state.gates:
                ctx.emit(
                    EventType.GATE_FINISH,
                    stage="gates",
                    gate=g.name,
                    passed=g.passed,
                    returncode=g.returncode,
                )
            failed = [g.name for g in state.gates if not g.passed]
            return {
                "failed": failed,
                "_warnings": [f"quality gate failed: {name}" for name in failed],
                "_metrics": {"gates": len(state.gates), "failed": len(failed)},
            }

        return FunctionStage(stage_id="gates", fn=_run)

    def _build_stage(self, plan: ReleasePlan, state: _RunState):
        def _run(ctx: RunContext) -> dict[str, Any]:
            runner = JobRunner(
                run_id=ctx.run_id,
                bin_name=plan.bin_name,
                source_dir=plan.source_dir,
                toolchain=self.toolchain,
                store=self.store,
                work_layout=StoreLayout(root=self.run_layout.root),
                defaults=self.cfg.job_defaults,
                cancel=ctx.cancel,
                logger=ctx.stage_logger("build"),
                emit=ctx.emitter("build"),
            )
            state.batch = run_jobs(runner, plan.jobs, max_workers=self.cfg.max_workers)
            state.cancelled = state.cancelled or state.batch.cancelled

            state.checksums = self.store.write_checksums(ctx.run_id)
            if state.checksums is not None:
                ctx.emit(
                    EventType.CHECKSUMS_WRITTEN, stage="build", path=str(state.checksums)
                )

            failed = [j.target for j in state.batch.failed]
            return {
                "artifacts": [a.name for a in state.batch.artifacts],
                "failed_targets": failed,
                "_warnings": [f"job failed: {t}" for t in failed],
                "_metrics": {
                    "jobs": len(state.batch.jobs),
                    "succeeded": len(state.batch.succeeded),
                    "failed": len(failed),
                },
            }

        return FunctionStage(stage_id="build", fn=_run)

    def _release_stage(self, trigger: TriggerContext, state: _RunState):
        def _run(ctx: RunContext) -> dict[str, Any]:
            log = ctx.stage_logger("release")
            target = authorize(trigger)
            ctx.emit(
                EventType.RELEASE_DECISION,
                stage="release",
                authorized=target is not None,
                tag=target.tag if target else None,
                trigger_event=trigger.event.value,
                ref=trigger.ref,
            )

            if target is None:
                state.publication = PublicationReport.skipped("trigger is not a tag push")
            elif state.cancelled:
                state.publication = PublicationReport.skipped("run cancelled", target=target)
            elif self.cfg.gates_block_release and any(not g.passed for g in state.gates):
                state.publication = PublicationReport.skipped(
                    "quality gates failed", target=target
                )
            elif self.release_client is None:
                log.warning("No release backend configured; skipping upload", tag=target.tag)
                state.publication = PublicationReport.skipped(
                    "no release backend configured", target=target
                )
            else:
                publisher = ReleasePublisher(self.release_client, emit=ctx.emitter("release"))
                state.publication = publisher.publish(
                    target,
                    state.batch.artifacts,
                    store=self.store,
                    run_id=ctx.run_id,
                )

            pub = state.publication
            ctx.emit(
                EventType.RELEASE_FINISH,
                stage="release",
                status=pub.status.value,
                reason=pub.reason,
            )
            out: dict[str, Any] = {"publication": pub.status.value, "reason": pub.reason}
            failed = pub.failed_uploads
            if failed:
                out["_warnings"] = [f"upload failed: {o.name}" for o in failed]
            out["_metrics"] = {
                "uploaded": len(pub.outcomes) - len(failed),
                "failed": len(failed),
            }
            return out

        return FunctionStage(stage_id="release", fn=_run)

    def run(
        self,
        plan: ReleasePlan,
        trigger: TriggerContext,
        *,
        run_id: str | None = None,
        meta: dict[str, Any] | None = None,
    ) -> RunReport:
        """
        Execute a validated plan and write:
          - events.jsonl
          - run_report.json
        """
        rid = run_id or new_run_id()
        started_at = utc_now_iso()
        t0 = monotonic_ms()
        meta = {
            **(meta or {}),
            "provenance": RunProvenance(run_id=rid, started_at_utc=started_at).to_dict(),
        }
        run_dir = self.run_layout.run(rid)
        run_dir.mkdir(parents=True, exist_ok=True)

        events_path = self.run_layout.events_jsonl(rid)
        sink = EventSink(events_path, run_id=rid)
        ctx = RunContext(
            run_id=rid,
            run_root=run_dir,
            logger=self.logger,
            events=sink,
            meta=meta,
        )
        state = _RunState()

        self.logger.info(
            "Pipeline starting",
            run_id=rid,
            bin_name=plan.bin_name,
            targets=[j.target for j in plan.jobs],
            trigger_event=trigger.event.value,
            ref=trigger.ref,
        )
        sink.emit(make_event(event_type=EventType.RUN_START, run_id=rid, **meta))
        sink.emit(make_event(event_type=EventType.RUN_PLAN, run_id=rid, **plan.to_dict()))

        stages = []
        if self.cfg.run_gates and self.cfg.gates:
            stages.append(self._gates_stage(plan, state))
        stages.append(self._build_stage(plan, state))
        stages.append(self._release_stage(trigger, state))

        results: list[StageResult] = []
        if not (self.cfg.run_gates and self.cfg.gates):
            results.append(skipped_stage("gates", "quality gates disabled"))

        # After an interrupt the remaining stages still run so that queued jobs
        # are recorded as cancelled and publication is skipped.
        total = len(stages)
        for idx, st in enumerate(stages, start=1):
            try:
                results.append(run_stage(ctx=ctx, stage=st, index=idx, total=total))
            except KeyboardInterrupt:
                ctx.cancel.cancel()
                state.cancelled = True
                self.logger.warning("Run interrupted", run_id=rid, stage=st.stage_id)
                results.append(interrupted_stage(st.stage_id))

        if state.cancelled:
            ctx.emit(EventType.RUN_CANCELLED)

        finished_at = utc_now_iso()
        duration = monotonic_ms() - t0
        report_json = self.run_layout.report_json(rid)

        report = build_run_report(
            run_id=rid,
            started_at_utc=started_at,
            finished_at_utc=finished_at,
            duration_ms=duration,
            bin_name=plan.bin_name,
            trigger=trigger.to_dict(),
            jobs=list(state.batch.jobs),
            gates=list(state.gates),
            publication=state.publication,
            stage_results=results,
            cancelled=state.cancelled,
            gates_block_release=self.cfg.gates_block_release,
            checksums=str(state.checksums) if state.checksums else None,
            events_jsonl=str(events_path),
            meta=meta,
        )
        report.write_json(report_json)

        sink.emit(
            make_event(
                event_type=EventType.RUN_FINISH,
                run_id=rid,
                status=report.status,
                exit_code=report.exit_code,
                duration_ms=duration,
                report_json=str(report_json),
            )
        )
        sink.close()

        self.logger.info(
            "Run Complete",
            duration_ms=duration,
            duration=format_duration_ms(duration),
            report=str(report_json),
            events=str(events_path),
            status=report.status,
            exit_code=report.exit_code,
        )
        return report
