from __future__ import annotations

from pathlib import Path
from typing import Protocol, runtime_checkable

import structlog
from matrix_release.core import (
    ConfigError,
    StoreFailure,
    StoreLayout,
    atomic_copy_file,
    atomic_write_text,
    render_sha256_sums,
    sha256_file,
)
from matrix_release.matrix.naming import validate_bin_name

from .models import Artifact

log = structlog.get_logger(__name__)

_RESERVED_NAMES = frozenset({"sha256sums.txt"})


@runtime_checkable
class ArtifactStore(Protocol):
    def put(self, run_id: str, name: str, source: Path, *, target: str) -> Artifact: ...
    def get(self, run_id: str, name: str) -> bytes: ...
    def path_for(self, run_id: str, name: str) -> Path: ...
    def list(self, run_id: str) -> list[str]: ...
    def write_checksums(self, run_id: str) -> Path | None: ...


def _check_name(name: str) -> str:
    try:
        validate_bin_name(name)
    except ConfigError as e:
        raise StoreFailure(f"Invalid artifact name: {name!r}") from e
    if name in _RESERVED_NAMES or name.startswith("."):
        raise StoreFailure(f"Reserved artifact name: {name!r}")
    return name


class FilesystemArtifactStore:
    """
    Run-scoped artifact storage on a local (or mounted) filesystem.

    Each put streams into a temp file next to the final path and is renamed
    into place, so an artifact is only visible once completely written.
    Putting the same name twice in one run replaces the earlier bytes.
    """

    def __init__(self, root: Path) -> None:
        self.layout = StoreLayout(root=Path(root))

    @property
    def root(self) -> Path:
        return self.layout.root

    def path_for(self, run_id: str, name: str) -> Path:
        return self.layout.artifact(run_id, _check_name(name))

    def put(self, run_id: str, name: str, source: Path, *, target: str) -> Artifact:
        dest = self.path_for(run_id, name)
        src = Path(source)
        if not src.is_file():
            raise StoreFailure(f"Artifact source is not a file: {src}")

        try:
            atomic_copy_file(src, dest)
            digest = sha256_file(dest)
        except OSError as e:
            raise StoreFailure(f"Failed to store artifact {name}: {e}") from e

        log.debug(
            "store.put",
            run_id=run_id,
            name=name,
            bytes=digest.bytes,
            sha256=digest.sha256,
        )
        return Artifact(
            name=name,
            path=str(dest),
            sha256=digest.sha256,
            bytes=digest.bytes,
            target=target,
        )

    def get(self, run_id: str, name: str) -> bytes:
        p = self.path_for(run_id, name)
        try:
            return p.read_bytes()
        except FileNotFoundError as e:
            raise StoreFailure(f"Artifact not found: {run_id}/{name}") from e
        except OSError as e:
            raise StoreFailure(f"Failed to read artifact {run_id}/{name}: {e}") from e

    def list(self, run_id: str) -> list[str]:
        d = self.layout.artifacts(run_id)
        if not d.is_dir():
            return []
        return sorted(
            p.name
            for p in d.iterdir()
            if p.is_file() and not p.name.startswith(".") and p.name not in _RESERVED_NAMES
        )

    def write_checksums(self, run_id: str) -> Path | None:
        """
        Write sha256sums.txt covering every stored artifact of the run.
        """
        names = self.list(run_id)
        if not names:
            return None
        entries = {n: sha256_file(self.layout.artifact(run_id, n)).sha256 for n in names}
        out = self.layout.checksums(run_id)
        atomic_write_text(out, render_sha256_sums(entries))
        return out
