from .defaults import DEFAULT_BIN_NAME, default_matrix
from .loader import load_matrix_file, parse_matrix, schema_for_matrix_file
from .models import BuildMatrix, EntryOverrides, MatrixEntry, OperatingSystem
from .naming import artifact_name, validate_bin_name, validate_names
from .plan import PlannedJob, ReleasePlan, make_plan

__all__ = [
    "DEFAULT_BIN_NAME",
    "default_matrix",
    "load_matrix_file",
    "parse_matrix",
    "schema_for_matrix_file",
    "BuildMatrix",
    "EntryOverrides",
    "MatrixEntry",
    "OperatingSystem",
    "artifact_name",
    "validate_bin_name",
    "validate_names",
    "PlannedJob",
    "ReleasePlan",
    "make_plan",
]
