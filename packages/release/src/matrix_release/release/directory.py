from __future__ import annotations

from pathlib import Path

import structlog
from matrix_release.core import (
    ConfigError,
    PublishFailure,
    atomic_write_bytes,
    atomic_write_json,
    read_json,
    utc_now_iso,
)
from matrix_release.matrix.naming import validate_bin_name

from .models import AssetInfo, ReleaseInfo

log = structlog.get_logger(__name__)

RELEASE_MANIFEST = "release.json"


class DirectoryReleaseClient:
    """
    A release target backed by a directory: {root}/{tag}/{asset}.

    Tags containing "/" (e.g. release/v1) map to nested directories; every
    segment must be a plain file name.

    Used for local dry runs and for mirrors. Same overwrite semantics as the
    hosted backend: uploading a name twice leaves exactly one asset.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root)

    def _release_dir(self, tag: str) -> Path:
        try:
            segments = [validate_bin_name(part) for part in tag.split("/")]
        except ConfigError as e:
            raise PublishFailure(f"Invalid release tag for a directory target: {tag!r}") from e
        return self.root.joinpath(*segments)

    def ensure_release(self, tag: str) -> ReleaseInfo:
        rdir = self._release_dir(tag)
        manifest = rdir / RELEASE_MANIFEST
        created = not manifest.exists()
        try:
            if created:
                meta = {"tag": tag, "prerelease": False, "created_at_utc": utc_now_iso()}
            else:
                meta = read_json(manifest)
                meta["prerelease"] = False
            atomic_write_json(manifest, meta)
        except (OSError, ValueError) as e:
            raise PublishFailure(f"Failed to prepare release directory {rdir}: {e}") from e

        if created:
            log.info("directory.release.created", tag=tag, path=str(rdir))
        return ReleaseInfo(tag=tag, url=str(rdir), prerelease=False, created=created)

    def upload_asset(self, release: ReleaseInfo, name: str, content: bytes) -> AssetInfo:
        if name == RELEASE_MANIFEST:
            raise PublishFailure(f"Asset name is reserved: {name}")
        try:
            validate_bin_name(name)
        except ConfigError as e:
            raise PublishFailure(f"Invalid asset name: {name!r}") from e

        dest = self._release_dir(release.tag) / name
        replaced = dest.exists()
        try:
            atomic_write_bytes(dest, content)
        except OSError as e:
            raise PublishFailure(f"Failed to write asset {dest}: {e}") from e
        return AssetInfo(name=name, size=len(content), url=str(dest), replaced=replaced)

    def assets(self, tag: str) -> list[str]:
        rdir = self._release_dir(tag)
        if not rdir.is_dir():
            return []
        return sorted(
            p.name
            for p in rdir.iterdir()
            if p.is_file() and p.name != RELEASE_MANIFEST and not p.name.startswith(".")
        )
