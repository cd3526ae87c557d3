from __future__ import annotations

import platform
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Protocol, runtime_checkable

import structlog
from matrix_release.core import RUST_WARNING_FLAGS, BuildFailure, JobCancelled

from .models import CancelToken, ProcessResult
from .process import merged_env, run_process

log = structlog.get_logger(__name__)

_ARCH_ALIASES = {
    "amd64": "x86_64",
    "x64": "x86_64",
    "arm64": "aarch64",
    "armv7l": "armv7",
}


@dataclass(frozen=True, slots=True)
class BuildOptions:
    bin_name: str
    source_dir: Path
    extension: str = ""
    profile: str = "release"
    args: tuple[str, ...] = ("--verbose",)
    env: Mapping[str, str] = field(default_factory=dict)
    strip: bool = True
    use_cross: Optional[bool] = None
    timeout_s: Optional[float] = None
    cancel: Optional[CancelToken] = None


@runtime_checkable
class Toolchain(Protocol):
    """
    Compiles one target. Returns the path of the produced binary or raises
    BuildFailure.
    """

    def build(self, target: str, options: BuildOptions) -> Path: ...


def host_triple() -> str:
    arch = platform.machine().lower()
    arch = _ARCH_ALIASES.get(arch, arch)
    if sys.platform.startswith("linux"):
        return f"{arch}-unknown-linux-gnu"
    if sys.platform == "darwin":
        return f"{arch}-apple-darwin"
    if sys.platform in ("win32", "cygwin"):
        return f"{arch}-pc-windows-msvc"
    return f"{arch}-unknown-{sys.platform}"


def _profile_dir(profile: str) -> str:
    if profile == "dev":
        return "debug"
    return profile


def expected_output(target: str, options: BuildOptions) -> Path:
    """
    Cargo's output location: target/{triple}/{profile}/{bin}{ext}
    """
    return (
        Path(options.source_dir)
        / "target"
        / target
        / _profile_dir(options.profile)
        / f"{options.bin_name}{options.extension}"
    )


def _check_result(res: ProcessResult, *, target: str, step: str, timeout_s: float | None) -> None:
    if res.cancelled:
        raise JobCancelled(f"{target}: {step} cancelled", step=step)
    if res.timed_out:
        raise BuildFailure(f"{target}: {step} timed out after {timeout_s}s", step=step)
    if res.returncode != 0:
        raise BuildFailure(
            f"{target}: {step} exited with status {res.returncode}\n{res.tail()}",
            step=step,
        )


class CargoToolchain:
    """
    Drives `cargo build` (or `cross build` for foreign targets) and strips
    the result.

    `cross` is used when the entry asks for it, or, when unspecified, for
    any target other than the host triple.
    """

    def __init__(
        self,
        *,
        cargo: str = "cargo",
        cross: str = "cross",
        strip: str | None = "strip",
        foreign_strip: str | None = "llvm-strip",
        host: str | None = None,
    ) -> None:
        self.cargo = cargo
        self.cross = cross
        self.strip_cmd = strip
        self.foreign_strip_cmd = foreign_strip
        self.host = host or host_triple()

    def needs_cross(self, target: str, options: BuildOptions) -> bool:
        if options.use_cross is not None:
            return options.use_cross
        return target != self.host

    def strip_command(self, target: str, options: BuildOptions) -> str | None:
        # MSVC binaries carry debug info in separate .pdb files
        if not options.strip or target.endswith("-windows-msvc"):
            return None
        if target == self.host:
            return self.strip_cmd
        return self.foreign_strip_cmd

    def command(self, target: str, options: BuildOptions) -> list[str]:
        tool = self.cross if self.needs_cross(target, options) else self.cargo
        argv = [tool, "build"]
        if options.profile == "release":
            argv.append("--release")
        elif options.profile != "dev":
            argv.extend(["--profile", options.profile])
        argv.extend(["--target", target])
        argv.extend(options.args)
        return argv

    def _run(self, argv: list[str], *, target: str, step: str, options: BuildOptions) -> ProcessResult:
        env = merged_env(RUST_WARNING_FLAGS, options.env)
        try:
            res = run_process(
                argv,
                cwd=Path(options.source_dir),
                env=env,
                timeout_s=options.timeout_s,
                cancel=options.cancel,
            )
        except FileNotFoundError as e:
            raise BuildFailure(f"{target}: executable not found: {argv[0]}", step=step) from e
        _check_result(res, target=target, step=step, timeout_s=options.timeout_s)
        return res

    def build(self, target: str, options: BuildOptions) -> Path:
        argv = self.command(target, options)
        log.info("toolchain.build", target=target, argv=argv)
        res = self._run(argv, target=target, step="build", options=options)
        log.debug("toolchain.build.done", target=target, duration_ms=res.duration_ms)

        out = expected_output(target, options)
        if not out.is_file():
            raise BuildFailure(f"{target}: build produced no file at {out}", step="build")

        strip_cmd = self.strip_command(target, options)
        if strip_cmd:
            self._run([strip_cmd, str(out)], target=target, step="strip", options=options)

        return out
