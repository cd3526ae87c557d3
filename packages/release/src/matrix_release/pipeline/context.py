from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional

from matrix_release.build.models import CancelToken
from matrix_release.core import ILogger

from .events import EventSink, EventType, make_event


@dataclass(slots=True)
class RunContext:
    """
    Context shared across stages (and job threads) for a single pipeline run.
    """

    run_id: str
    run_root: Path
    logger: ILogger
    events: EventSink
    cancel: CancelToken = field(default_factory=CancelToken)

    # optional free-form metadata
    meta: dict[str, Any] = field(default_factory=dict)

    def stage_logger(self, stage: str) -> ILogger:
        return self.logger.bind(stage=stage)

    def emit(self, event: EventType | str, *, stage: Optional[str] = None, **kw: Any) -> None:
        self.events.emit(make_event(event_type=event, run_id=self.run_id, stage=stage, **kw))
        # Keep event chatter at debug level to leave console logs readable.
        event_value = event.value if isinstance(event, EventType) else str(event)
        self.logger.debug(event_value, event_type=event_value, stage=stage, **kw)

    def emitter(self, stage: str) -> Callable[..., None]:
        """
        A stage-scoped emit callable for collaborators that do not know the context.
        """

        def _emit(event: EventType | str, **kw: Any) -> None:
            self.emit(event, stage=stage, **kw)

        return _emit
