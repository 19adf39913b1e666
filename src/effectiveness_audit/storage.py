"""Run persistence contract and an in-memory store."""

import time
from dataclasses import dataclass, field
from typing import Protocol

from .models import CriterionResult, RunStatus


class RunStore(Protocol):
    """Write-only persistence used by the orchestrator.

    The scorer never reads state back mid-run.
    """

    async def update_run_status(self, run_id: str, status: RunStatus, progress_text: str) -> None: ...

    async def append_criterion_result(self, run_id: str, result: CriterionResult, tier: int | None = None) -> None: ...


@dataclass
class StoredScore:
    result: CriterionResult
    tier: int | None
    saved_at: float


@dataclass
class RunRecord:
    run_id: str
    status: RunStatus = RunStatus.STARTED
    progress_text: str = ""
    scores: list[StoredScore] = field(default_factory=list)
    history: list[RunStatus] = field(default_factory=list)
    updated_at: float = 0.0


class InMemoryRunStore:
    """Keeps runs in a dict. Suitable for the CLI and tests."""

    def __init__(self):
        self.runs: dict[str, RunRecord] = {}

    def _record(self, run_id: str) -> RunRecord:
        if run_id not in self.runs:
            self.runs[run_id] = RunRecord(run_id=run_id)
        return self.runs[run_id]

    async def update_run_status(self, run_id: str, status: RunStatus, progress_text: str) -> None:
        record = self._record(run_id)
        record.status = status
        record.progress_text = progress_text
        record.history.append(status)
        record.updated_at = time.time()

    async def append_criterion_result(self, run_id: str, result: CriterionResult, tier: int | None = None) -> None:
        record = self._record(run_id)
        record.scores.append(StoredScore(result=result, tier=tier, saved_at=time.time()))
        record.updated_at = time.time()

    def get(self, run_id: str) -> RunRecord | None:
        return self.runs.get(run_id)
