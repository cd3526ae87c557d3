from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Optional

from matrix_release.core import StageError

from .trigger import ReleaseTarget


@dataclass(frozen=True, slots=True)
class ReleaseInfo:
    tag: str
    id: Optional[int] = None
    url: Optional[str] = None
    prerelease: bool = False
    created: bool = False


@dataclass(frozen=True, slots=True)
class AssetInfo:
    name: str
    size: int
    id: Optional[int] = None
    url: Optional[str] = None
    replaced: bool = False


class UploadStatus(StrEnum):
    uploaded = "uploaded"
    failed = "failed"


@dataclass(frozen=True, slots=True)
class UploadOutcome:
    name: str
    status: UploadStatus
    replaced: bool = False
    url: Optional[str] = None
    error: Optional[StageError] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "replaced": self.replaced,
            "url": self.url,
            "error": self.error.to_dict() if self.error else None,
        }


class PublicationStatus(StrEnum):
    published = "published"
    skipped = "skipped"
    partially_failed = "partially_failed"
    failed = "failed"


@dataclass(frozen=True, slots=True)
class PublicationReport:
    status: PublicationStatus
    reason: str = ""
    target: Optional[ReleaseTarget] = None
    release_url: Optional[str] = None
    outcomes: tuple[UploadOutcome, ...] = field(default_factory=tuple)

    @property
    def authorized(self) -> bool:
        return self.target is not None

    @property
    def failed_uploads(self) -> list[UploadOutcome]:
        return [o for o in self.outcomes if o.status == UploadStatus.failed]

    @property
    def ok(self) -> bool:
        return self.status in (PublicationStatus.published, PublicationStatus.skipped)

    @classmethod
    def skipped(cls, reason: str, *, target: ReleaseTarget | None = None) -> "PublicationReport":
        return cls(status=PublicationStatus.skipped, reason=reason, target=target)

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "reason": self.reason,
            "target": self.target.to_dict() if self.target else None,
            "release_url": self.release_url,
            "outcomes": [o.to_dict() for o in self.outcomes],
        }
