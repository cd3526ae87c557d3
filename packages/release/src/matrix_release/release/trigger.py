from __future__ import annotations

import os
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from matrix_release.core.errors import ConfigError

TAG_REF_PREFIX = "refs/tags/"


class EventKind(StrEnum):
    push = "push"
    pull_request = "pull_request"
    workflow_dispatch = "workflow_dispatch"

    @classmethod
    def parse(cls, value: str) -> "EventKind":
        v = value.strip().lower().replace("-", "_")
        if v in ("manual", "manual_dispatch", "dispatch"):
            return cls.workflow_dispatch
        if v in ("pr", "pull_request_target"):
            return cls.pull_request
        try:
            return cls(v)
        except ValueError as e:
            raise ValueError(f"Unknown event kind: {value!r}") from e


class TriggerContext(BaseModel):
    """
    The invoking event. Supplied once per pipeline run.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    event: EventKind
    ref: str = Field(default="")

    @field_validator("event", mode="before")
    @classmethod
    def _parse_event(cls, v: Any) -> Any:
        if isinstance(v, str):
            return EventKind.parse(v)
        return v

    def to_dict(self) -> dict[str, str]:
        return {"event": self.event.value, "ref": self.ref}


@dataclass(frozen=True, slots=True)
class ReleaseTarget:
    tag: str

    def to_dict(self) -> dict[str, str]:
        return {"tag": self.tag}


def authorize(ctx: TriggerContext) -> Optional[ReleaseTarget]:
    """
    Publication is authorized only for a push of a tag ref.

    Pull requests, manual dispatches and branch pushes return None.
    """
    if ctx.event != EventKind.push:
        return None
    if not ctx.ref.startswith(TAG_REF_PREFIX):
        return None
    tag = ctx.ref[len(TAG_REF_PREFIX):]
    if not tag:
        return None
    return ReleaseTarget(tag=tag)


def trigger_from_env(environ: Mapping[str, str] | None = None) -> TriggerContext:
    """
    Build a TriggerContext from GitHub Actions variables
    (GITHUB_EVENT_NAME, GITHUB_REF).
    """
    env = os.environ if environ is None else environ
    event = env.get("GITHUB_EVENT_NAME", "").strip()
    if not event:
        raise ConfigError("GITHUB_EVENT_NAME is not set; pass --event/--ref explicitly")
    try:
        return TriggerContext(event=event, ref=env.get("GITHUB_REF", ""))
    except ValueError as e:
        raise ConfigError(f"Unsupported trigger from environment: {e}") from e
