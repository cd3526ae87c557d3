from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True, slots=True)
class StoreLayout:
    """
    Canonical path layout for run-scoped build outputs:

      {root}/{run_id}/artifacts/{name}
      {root}/{run_id}/artifacts/sha256sums.txt
      {root}/{run_id}/work/{target}/
    """

    root: Path

    def run(self, run_id: str) -> Path:
        return self.root / run_id

    def artifacts(self, run_id: str) -> Path:
        return self.run(run_id) / "artifacts"

    def artifact(self, run_id: str, name: str) -> Path:
        return self.artifacts(run_id) / name

    def checksums(self, run_id: str) -> Path:
        return self.artifacts(run_id) / "sha256sums.txt"

    def work(self, run_id: str, target: str) -> Path:
        return self.run(run_id) / "work" / target


@dataclass(frozen=True, slots=True)
class RunLayout:
    """
    Per-run bookkeeping:

      {root}/{run_id}/events.jsonl
      {root}/{run_id}/run_report.json
    """

    root: Path

    def run(self, run_id: str) -> Path:
        return self.root / run_id

    def events_jsonl(self, run_id: str) -> Path:
        return self.run(run_id) / "events.jsonl"

    def report_json(self, run_id: str) -> Path:
        return self.run(run_id) / "run_report.json"
