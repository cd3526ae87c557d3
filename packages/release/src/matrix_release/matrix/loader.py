from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import jsonschema
from pydantic import TypeAdapter, ValidationError

from matrix_release.core.errors import ConfigError

from .models import BuildMatrix, MatrixFile


def schema_for_matrix_file() -> dict:
    return TypeAdapter(MatrixFile).json_schema()


def _validate_with_jsonschema(instance: Any, schema: dict, *, source: str) -> None:
    try:
        jsonschema.validate(instance=instance, schema=schema)
    except jsonschema.ValidationError as e:
        loc = "/".join(str(p) for p in e.absolute_path) or "<root>"
        raise ConfigError(f"{source}: invalid matrix file at {loc}: {e.message}") from e


def parse_matrix(raw: Any, *, source: str = "<matrix>") -> tuple[BuildMatrix, str | None]:
    """
    Parse a workflow-style matrix document.

    Accepts either ``{"include": [...], "bin_name": "..."}`` or a bare list
    of entries. Returns (matrix, bin_name-or-None).
    """
    if isinstance(raw, list):
        raw = {"include": raw}
    if not isinstance(raw, dict):
        raise ConfigError(f"{source}: matrix must be a JSON object or list")

    _validate_with_jsonschema(raw, schema_for_matrix_file(), source=source)

    try:
        doc = MatrixFile.model_validate(raw)
        matrix = BuildMatrix.model_validate({"include": doc.include})
    except ValidationError as e:
        raise ConfigError(f"{source}: invalid matrix: {e}") from e

    return matrix, doc.bin_name


def load_matrix_file(path: Path) -> tuple[BuildMatrix, str | None]:
    p = Path(path)
    try:
        raw = json.loads(p.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ConfigError(f"Matrix file not found: {p}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Matrix file is not valid JSON: {p}: {e}") from e
    return parse_matrix(raw, source=str(p))
