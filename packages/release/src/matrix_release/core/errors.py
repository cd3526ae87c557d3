from __future__ import annotations

import traceback
from dataclasses import dataclass


class ReleaseError(RuntimeError):
    """Base error"""


@dataclass(frozen=True, slots=True)
class StageError:
    """
    A normalized error record for stage, job and upload failures.
    """

    exc_type: str
    message: str
    traceback: str

    def to_dict(self) -> dict[str, str]:
        return {
            "exc_type": self.exc_type,
            "message": self.message,
            "traceback": self.traceback,
        }


def stage_error_from_exc(exc: BaseException) -> StageError:
    return StageError(
        exc_type=type(exc).__name__,
        message=str(exc),
        traceback="".join(
            traceback.format_exception(type(exc), exc, exc.__traceback__)
        ),
    )


class ConfigError(ReleaseError):
    """
    Fatal: the run configuration is invalid (bad binary name, malformed matrix).
    Raised before any job starts.
    """


class NamingConflict(ConfigError):
    """Two matrix entries resolve to the same target triple or artifact name"""


class BuildFailure(ReleaseError):
    """
    Scoped to one job: toolchain invocation failed, timed out, or the
    expected output file is missing
    """

    def __init__(self, message: str, *, step: str = "build") -> None:
        super().__init__(message)
        self.step = step


class JobCancelled(BuildFailure):
    """The run was cancelled before or while this job was running"""

    def __init__(self, message: str = "job cancelled", *, step: str = "build") -> None:
        super().__init__(message, step=step)


class StoreFailure(ReleaseError):
    """Artifact could not be durably written to (or read from) the store"""


class PublishFailure(ReleaseError):
    """Upload to the release target failed (scoped to one artifact)"""


class TransientError(ReleaseError):
    """
    Retryable failures such as network timeouts, temporary upstream 5xx
    """


class InternalError(ReleaseError):
    """Bugs or invariant violation in our code"""
