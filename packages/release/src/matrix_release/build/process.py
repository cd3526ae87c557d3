from __future__ import annotations

import os
import subprocess
from pathlib import Path
from typing import Mapping, Sequence

from matrix_release.core import monotonic_ms

from .models import CancelToken, ProcessResult

_POLL_S = 0.25


def merged_env(*overlays: Mapping[str, str]) -> dict[str, str]:
    env = dict(os.environ)
    for o in overlays:
        env.update(o)
    return env


def run_process(
    argv: Sequence[str],
    *,
    cwd: Path,
    env: Mapping[str, str] | None = None,
    timeout_s: float | None = None,
    cancel: CancelToken | None = None,
) -> ProcessResult:
    """
    Run a command to completion, capturing stdout+stderr together.

    The process is killed when `timeout_s` elapses or `cancel` fires.
    Raises FileNotFoundError when the executable does not exist.
    """
    t0 = monotonic_ms()
    proc = subprocess.Popen(
        list(argv),
        cwd=str(cwd),
        env=dict(env) if env is not None else None,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
        text=True,
        errors="replace",
    )

    chunks: list[str] = []
    timed_out = False
    cancelled = False
    while True:
        try:
            out, _ = proc.communicate(timeout=_POLL_S)
            if out:
                chunks.append(out)
            break
        except subprocess.TimeoutExpired:
            if cancel is not None and cancel.cancelled:
                cancelled = True
            elif timeout_s is not None and (monotonic_ms() - t0) > timeout_s * 1000:
                timed_out = True
            else:
                continue
            proc.kill()
            out, _ = proc.communicate()
            if out:
                chunks.append(out)
            break
        except KeyboardInterrupt:
            proc.kill()
            proc.communicate()
            raise

    return ProcessResult(
        argv=tuple(argv),
        returncode=proc.returncode if proc.returncode is not None else -1,
        output="".join(chunks),
        duration_ms=monotonic_ms() - t0,
        timed_out=timed_out,
        cancelled=cancelled,
    )
