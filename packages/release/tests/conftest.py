from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest
from matrix_release.build import BuildOptions, expected_output
from matrix_release.core import BuildFailure


class FakeToolchain:
    """
    Writes a small file where cargo would put the binary.

    `fail` targets raise BuildFailure; `missing` targets report success
    without producing a file.
    """

    def __init__(
        self,
        *,
        fail: tuple[str, ...] = (),
        missing: tuple[str, ...] = (),
        on_build: Callable[[str], None] | None = None,
    ) -> None:
        self.fail = set(fail)
        self.missing = set(missing)
        self.on_build = on_build
        self.calls: list[tuple[str, BuildOptions]] = []

    def build(self, target: str, options: BuildOptions) -> Path:
        self.calls.append((target, options))
        if self.on_build is not None:
            self.on_build(target)
        if target in self.fail:
            raise BuildFailure(f"{target}: linker exploded", step="build")
        out = expected_output(target, options)
        if target in self.missing:
            return out
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_bytes(f"binary for {target}".encode())
        return out


@pytest.fixture()
def fake_toolchain() -> type[FakeToolchain]:
    return FakeToolchain


@pytest.fixture()
def source_dir(tmp_path: Path) -> Path:
    src = tmp_path / "checkout"
    src.mkdir()
    (src / "Cargo.toml").write_text('[package]\nname = "app"\nversion = "0.1.0"\n')
    return src
