from __future__ import annotations

from enum import Enum


class EventType(str, Enum):
    """
    Names of the records written to events.jsonl.
    """

    RUN_ENV = "run.env"
    RUN_START = "run.start"
    RUN_PLAN = "run.plan"
    RUN_CANCELLED = "run.cancelled"
    RUN_FINISH = "run.finish"

    STAGE_START = "stage.start"
    STAGE_WARN = "stage.warn"
    STAGE_METRICS = "stage.metrics"
    STAGE_SUCCESS = "stage.success"
    STAGE_FAILED = "stage.failed"

    GATE_FINISH = "gate.finish"

    JOB_START = "job.start"
    JOB_SUCCEEDED = "job.succeeded"
    JOB_FAILED = "job.failed"

    CHECKSUMS_WRITTEN = "artifact.checksums"

    RELEASE_DECISION = "release.decision"
    RELEASE_UPLOADED = "release.uploaded"
    RELEASE_UPLOAD_FAILED = "release.upload_failed"
    RELEASE_FINISH = "release.finish"
