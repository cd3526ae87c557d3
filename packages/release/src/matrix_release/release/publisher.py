from __future__ import annotations

from typing import Callable, Optional, Sequence

import structlog
from matrix_release.core import EventType, stage_error_from_exc
from matrix_release.store import Artifact, ArtifactStore

from .github import ReleaseClient
from .models import (
    PublicationReport,
    PublicationStatus,
    ReleaseInfo,
    UploadOutcome,
    UploadStatus,
)
from .trigger import ReleaseTarget

log = structlog.get_logger(__name__)

EmitFn = Callable[..., None]


def _noop_emit(event_type: EventType | str, **data: object) -> None:
    return None


def _final_status(outcomes: Sequence[UploadOutcome]) -> PublicationStatus:
    failed = sum(1 for o in outcomes if o.status == UploadStatus.failed)
    if failed == 0:
        return PublicationStatus.published
    if failed == len(outcomes):
        return PublicationStatus.failed
    return PublicationStatus.partially_failed


class ReleasePublisher:
    """
    Uploads a run's artifacts to a tag-identified release.

    Per-artifact failures become outcomes on the report. A failing backend,
    whatever it raises, never stops the uploads of the remaining artifacts.
    """

    def __init__(self, client: ReleaseClient, *, emit: EmitFn | None = None) -> None:
        self.client = client
        self._emit = emit or _noop_emit

    def publish(
        self,
        target: Optional[ReleaseTarget],
        artifacts: Sequence[Artifact],
        *,
        store: ArtifactStore,
        run_id: str,
    ) -> PublicationReport:
        if target is None:
            return PublicationReport.skipped("trigger is not a tag push")
        if not artifacts:
            return PublicationReport.skipped("no artifacts to publish", target=target)

        plog = log.bind(tag=target.tag, run_id=run_id)

        try:
            release = self.client.ensure_release(target.tag)
        except Exception as e:
            plog.error("release.ensure_failed", error=str(e))
            err = stage_error_from_exc(e)
            failed = tuple(
                UploadOutcome(name=a.name, status=UploadStatus.failed, error=err)
                for a in artifacts
            )
            for o in failed:
                self._emit(EventType.RELEASE_UPLOAD_FAILED, name=o.name, error=err.message)
            return PublicationReport(
                status=PublicationStatus.failed,
                reason=f"could not prepare release {target.tag}",
                target=target,
                outcomes=failed,
            )

        outcomes: list[UploadOutcome] = []
        for artifact in artifacts:
            outcome = self._upload_one(release, artifact, store=store, run_id=run_id)
            outcomes.append(outcome)
            if outcome.status == UploadStatus.uploaded:
                plog.info("release.uploaded", name=outcome.name, replaced=outcome.replaced)
                self._emit(
                    EventType.RELEASE_UPLOADED, name=outcome.name, replaced=outcome.replaced
                )
            else:
                plog.warning(
                    "release.upload_failed",
                    name=outcome.name,
                    error=outcome.error.message if outcome.error else None,
                )
                self._emit(
                    EventType.RELEASE_UPLOAD_FAILED,
                    name=outcome.name,
                    error=outcome.error.message if outcome.error else None,
                )

        status = _final_status(outcomes)
        return PublicationReport(
            status=status,
            reason="" if status == PublicationStatus.published else "some uploads failed",
            target=target,
            release_url=release.url,
            outcomes=tuple(outcomes),
        )

    def _upload_one(
        self,
        release: ReleaseInfo,
        artifact: Artifact,
        *,
        store: ArtifactStore,
        run_id: str,
    ) -> UploadOutcome:
        try:
            content = store.get(run_id, artifact.name)
            asset = self.client.upload_asset(release, artifact.name, content)
        except Exception as e:
            return UploadOutcome(
                name=artifact.name,
                status=UploadStatus.failed,
                error=stage_error_from_exc(e),
            )
        return UploadOutcome(
            name=artifact.name,
            status=UploadStatus.uploaded,
            replaced=asset.replaced,
            url=asset.url,
        )
