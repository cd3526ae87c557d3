from .config import RUST_WARNING_FLAGS, Settings, load_settings
from .errors import (
    BuildFailure,
    ConfigError,
    InternalError,
    JobCancelled,
    NamingConflict,
    PublishFailure,
    ReleaseError,
    StageError,
    StoreFailure,
    TransientError,
    stage_error_from_exc,
)
from .event_types import EventType
from .fs import (
    atomic_copy_file,
    atomic_write_bytes,
    atomic_write_text,
    copy_executable,
    ensure_parent,
    reset_dir,
    safe_unlink,
)
from .hashing import FileDigest, render_sha256_sums, sha256_bytes, sha256_file
from .json import atomic_write_json, read_json, stable_json_dumps
from .logging import ILogger, bind, clear_bindings, configure_logging, get_logger
from .paths import RunLayout, StoreLayout
from .provenance import RunProvenance, new_run_id
from .time import format_duration_ms, monotonic_ms, utc_now_iso

__all__ = [
    "RUST_WARNING_FLAGS",
    "Settings",
    "load_settings",
    "BuildFailure",
    "ConfigError",
    "InternalError",
    "JobCancelled",
    "NamingConflict",
    "PublishFailure",
    "ReleaseError",
    "StageError",
    "StoreFailure",
    "TransientError",
    "stage_error_from_exc",
    "EventType",
    "atomic_copy_file",
    "atomic_write_bytes",
    "atomic_write_text",
    "copy_executable",
    "ensure_parent",
    "reset_dir",
    "safe_unlink",
    "FileDigest",
    "render_sha256_sums",
    "sha256_bytes",
    "sha256_file",
    "atomic_write_json",
    "read_json",
    "stable_json_dumps",
    "ILogger",
    "bind",
    "clear_bindings",
    "configure_logging",
    "get_logger",
    "RunLayout",
    "StoreLayout",
    "RunProvenance",
    "new_run_id",
    "format_duration_ms",
    "monotonic_ms",
    "utc_now_iso",
]
