from .models import BuildJob, CancelToken, JobBatchResult, JobStatus, ProcessResult
from .job import JobDefaults, JobRunner
from .process import run_process
from .scheduler import run_jobs
from .toolchain import BuildOptions, CargoToolchain, Toolchain, expected_output, host_triple

__all__ = [
    "BuildJob",
    "CancelToken",
    "JobBatchResult",
    "JobStatus",
    "ProcessResult",
    "JobDefaults",
    "JobRunner",
    "run_process",
    "run_jobs",
    "BuildOptions",
    "CargoToolchain",
    "Toolchain",
    "expected_output",
    "host_triple",
]
