from .context import RunContext
from .controller import ControllerConfig, PipelineController
from .events import EventSink, EventType, make_event, read_events
from .report import EXIT_CANCELLED, EXIT_FAILED, EXIT_OK, RunReport, build_run_report
from .stage import FunctionStage, StageResult, run_stage
from .types import Event

__all__ = [
    "RunContext",
    "ControllerConfig",
    "PipelineController",
    "EventSink",
    "EventType",
    "make_event",
    "read_events",
    "EXIT_CANCELLED",
    "EXIT_FAILED",
    "EXIT_OK",
    "RunReport",
    "build_run_report",
    "FunctionStage",
    "StageResult",
    "run_stage",
    "Event",
]
