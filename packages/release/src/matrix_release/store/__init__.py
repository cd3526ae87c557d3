from .models import Artifact
from .store import ArtifactStore, FilesystemArtifactStore

__all__ = ["Artifact", "ArtifactStore", "FilesystemArtifactStore"]
