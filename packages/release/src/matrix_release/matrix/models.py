from __future__ import annotations

from enum import StrEnum
from typing import Annotated, Any, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    field_validator,
    model_validator,
)

TargetTriple = Annotated[
    str,
    StringConstraints(
        min_length=3, max_length=120, pattern=r"^[A-Za-z0-9_][A-Za-z0-9_.\-]*$"
    ),
]
Extension = Annotated[str, StringConstraints(max_length=16, pattern=r"^(\.[A-Za-z0-9_.\-]+)?$")]


class OperatingSystem(StrEnum):
    linux = "linux"
    macos = "macos"
    windows = "windows"

    @classmethod
    def parse(cls, value: str) -> "OperatingSystem":
        """
        Accept a family name or a CI runner label (ubuntu-latest, macos-14, ...).
        """
        v = value.strip().lower()
        for family, prefixes in _RUNNER_PREFIXES.items():
            if v == family.value or any(v.startswith(p) for p in prefixes):
                return family
        raise ValueError(f"Unknown operating system / runner label: {value!r}")


_RUNNER_PREFIXES: dict[OperatingSystem, tuple[str, ...]] = {
    OperatingSystem.linux: ("ubuntu", "linux"),
    OperatingSystem.macos: ("macos", "darwin", "osx"),
    OperatingSystem.windows: ("windows", "win"),
}


class EntryOverrides(BaseModel):
    """
    Optional per-entry adjustments to how the toolchain is invoked.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    use_cross: Optional[bool] = None
    args: tuple[str, ...] = ()
    env: dict[str, str] = Field(default_factory=dict)
    timeout_s: Optional[float] = Field(default=None, gt=0)
    strip: Optional[bool] = None


class MatrixEntry(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    os: OperatingSystem
    target: TargetTriple = Field(
        validation_alias=AliasChoices("target", "TARGET", "target_triple")
    )
    extension: Extension = Field(
        default="", validation_alias=AliasChoices("extension", "EXTENSION")
    )
    overrides: EntryOverrides = Field(default_factory=EntryOverrides)

    @field_validator("os", mode="before")
    @classmethod
    def _parse_os(cls, v: Any) -> Any:
        if isinstance(v, str):
            return OperatingSystem.parse(v)
        return v

    @property
    def target_triple(self) -> str:
        return self.target


class BuildMatrix(BaseModel):
    """
    Ordered, non-empty set of matrix entries keyed by target triple.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    include: tuple[MatrixEntry, ...] = Field(min_length=1)

    @model_validator(mode="before")
    @classmethod
    def _accept_bare_list(cls, data: Any) -> Any:
        if isinstance(data, (list, tuple)):
            return {"include": list(data)}
        return data

    def targets(self) -> list[str]:
        return [e.target for e in self.include]

    def get(self, target: str) -> MatrixEntry | None:
        for e in self.include:
            if e.target == target:
                return e
        return None


class MatrixFile(BaseModel):
    """
    On-disk shape of a matrix file (workflow-style ``include`` list).
    """

    model_config = ConfigDict(extra="forbid")

    bin_name: Optional[str] = None
    include: list[dict[str, Any]] = Field(min_length=1)
