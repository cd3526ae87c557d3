from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

LogFormat = Literal["json", "console"]

# Applied to every cargo invocation (gates and builds).
RUST_WARNING_FLAGS = {
    "RUSTFLAGS": "-D warnings",
    "RUSTDOCFLAGS": "-D warnings",
}


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MATRIX_RELEASE_",
        env_file=".env",
        extra="ignore",
    )

    store_root: Path = Field(default=Path("_artifacts"))
    run_root: Path = Field(default=Path("_runs"))
    log_level: str = Field(default="INFO")
    log_format: LogFormat = Field(default="console")

    max_workers: int = Field(default=4, ge=1)
    job_timeout_s: float = Field(default=3600.0, gt=0)
    gate_timeout_s: float = Field(default=1800.0, gt=0)
    gates_block_release: bool = Field(default=False)

    github_api_url: str = Field(default="https://api.github.com")
    github_uploads_url: str = Field(default="https://uploads.github.com")
    github_repository: str | None = Field(default=None)
    github_token: str | None = Field(default=None)
    upload_attempts: int = Field(default=3, ge=1)


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    return Settings()
