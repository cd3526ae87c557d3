from __future__ import annotations

from .models import BuildMatrix

DEFAULT_BIN_NAME = "blueos-recorder"

DEFAULT_INCLUDE: tuple[dict[str, str], ...] = (
    {"os": "macos-latest", "target": "aarch64-apple-darwin"},
    {"os": "ubuntu-latest", "target": "aarch64-unknown-linux-gnu"},
    {"os": "ubuntu-latest", "target": "armv7-unknown-linux-gnueabihf"},
    {"os": "ubuntu-latest", "target": "x86_64-unknown-linux-gnu"},
    {"os": "ubuntu-latest", "target": "aarch64-unknown-linux-musl"},
    {"os": "ubuntu-latest", "target": "armv7-unknown-linux-musleabihf"},
    {"os": "ubuntu-latest", "target": "x86_64-unknown-linux-musl"},
    {"os": "windows-latest", "target": "x86_64-pc-windows-msvc", "extension": ".exe"},
)


def default_matrix() -> BuildMatrix:
    return BuildMatrix.model_validate({"include": [dict(e) for e in DEFAULT_INCLUDE]})
