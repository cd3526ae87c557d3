from __future__ import annotations

from typing import Iterable

from matrix_release.core.errors import ConfigError, NamingConflict

_SEPARATORS = ("/", "\\")


def validate_bin_name(bin_name: str) -> str:
    if not bin_name or not bin_name.strip():
        raise ConfigError("Binary name must be non-empty")
    if any(sep in bin_name for sep in _SEPARATORS):
        raise ConfigError(f"Binary name must not contain path separators: {bin_name!r}")
    if bin_name in (".", ".."):
        raise ConfigError(f"Binary name is not a valid file name: {bin_name!r}")
    return bin_name


def validate_extension(extension: str) -> str:
    if extension and not extension.startswith("."):
        raise ConfigError(f"Extension must be empty or start with '.': {extension!r}")
    if any(sep in extension for sep in _SEPARATORS):
        raise ConfigError(f"Extension must not contain path separators: {extension!r}")
    return extension


def validate_target(target: str) -> str:
    if not target or not target.strip():
        raise ConfigError("Target triple must be non-empty")
    if any(sep in target for sep in _SEPARATORS) or target != target.strip():
        raise ConfigError(f"Invalid target triple: {target!r}")
    return target


def artifact_name(bin_name: str, target: str, extension: str = "") -> str:
    """
    Canonical artifact filename: ``{bin_name}-{target}{extension}``.

    >>> artifact_name("app", "x86_64-pc-windows-msvc", ".exe")
    'app-x86_64-pc-windows-msvc.exe'
    """
    validate_bin_name(bin_name)
    validate_target(target)
    validate_extension(extension)
    return f"{bin_name}-{target}{extension}"


def validate_names(bin_name: str, axes: Iterable[tuple[str, str]]) -> dict[str, str]:
    """
    Resolve the artifact name of every (target, extension) pair.

    Returns {target: artifact_name}. Raises NamingConflict on a repeated
    target or a repeated artifact name.
    """
    by_target: dict[str, str] = {}
    owners: dict[str, str] = {}
    for target, extension in axes:
        if target in by_target:
            raise NamingConflict(f"Duplicate target triple in matrix: {target}")
        name = artifact_name(bin_name, target, extension)
        if name in owners:
            raise NamingConflict(
                f"Artifact name {name!r} produced by both {owners[name]} and {target}"
            )
        owners[name] = target
        by_target[target] = name
    return by_target
