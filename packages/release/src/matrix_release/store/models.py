from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Artifact:
    """
    A named build output held by the artifact store.

    `target` identifies the job that produced it.
    """

    name: str
    path: str
    sha256: str
    bytes: int
    target: str

    def to_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "path": self.path,
            "sha256": self.sha256,
            "bytes": self.bytes,
            "target": self.target,
        }
