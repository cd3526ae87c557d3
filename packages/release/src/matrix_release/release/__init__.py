from .directory import DirectoryReleaseClient
from .github import GitHubReleaseClient, ReleaseClient
from .models import (
    AssetInfo,
    PublicationReport,
    PublicationStatus,
    ReleaseInfo,
    UploadOutcome,
    UploadStatus,
)
from .publisher import ReleasePublisher
from .trigger import (
    TAG_REF_PREFIX,
    EventKind,
    ReleaseTarget,
    TriggerContext,
    authorize,
    trigger_from_env,
)

__all__ = [
    "DirectoryReleaseClient",
    "GitHubReleaseClient",
    "ReleaseClient",
    "AssetInfo",
    "PublicationReport",
    "PublicationStatus",
    "ReleaseInfo",
    "UploadOutcome",
    "UploadStatus",
    "ReleasePublisher",
    "TAG_REF_PREFIX",
    "EventKind",
    "ReleaseTarget",
    "TriggerContext",
    "authorize",
    "trigger_from_env",
]
