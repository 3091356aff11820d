"""
Estado de execução: JobRun e PipelineRun.

Enquanto `Job` é imutável e declarativo, `JobRun` carrega o estado
mutável de um Job durante uma execução específica, e `PipelineRun`
consolida todos os JobRuns de uma execução.

Invariantes:
    - Transições de JobRun seguem `JOB_TRANSITIONS` (monotônicas)
    - `attempts` nunca excede `job.retry.max_attempts`
    - O estado de um PipelineRun é derivado de seus JobRuns:
      SUCCEEDED apenas se todo JobRun blocking terminou em SUCCEEDED
      (Jobs desabilitados por configuração contam como satisfeitos)

Mutação:
    - JobRuns e PipelineRuns são mutados exclusivamente pelo Scheduler,
      dentro de sua seção crítica de transição de estado.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from atlas_deployflow.core.exceptions import InvariantViolationError

from .job import Job
from .types import JobState, PipelineState, check_job_transition


def _iso(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt is not None else None


@dataclass
class JobRun:
    """Execução de um Job dentro de um PipelineRun."""
    job: Job
    state: JobState = JobState.PENDING
    attempts: int = 0
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    output: str = ""
    error: Optional[Dict[str, Any]] = None
    summary: str = ""
    rollout: Optional[Dict[str, Any]] = None
    not_before: float = field(default=0.0, repr=False)
    transitions: List[JobState] = field(default_factory=list, repr=False)

    @property
    def job_id(self) -> str:
        return self.job.id

    @property
    def error_type(self) -> Optional[str]:
        return (self.error or {}).get("type")

    @property
    def has_attempts_left(self) -> bool:
        return self.attempts < self.job.retry.max_attempts

    def transition(self, target: JobState, *, at: Optional[datetime] = None) -> None:
        self.state = check_job_transition(self.state, target)
        self.transitions.append(target)
        if target.is_terminal:
            self.finished_at = at or datetime.now(timezone.utc)

    def begin_attempt(self, *, at: Optional[datetime] = None) -> int:
        if not self.has_attempts_left:
            raise InvariantViolationError(
                f"Job '{self.job_id}' exceeded max_attempts={self.job.retry.max_attempts}"
            )
        self.attempts += 1
        if self.started_at is None:
            self.started_at = at or datetime.now(timezone.utc)
        return self.attempts

    def to_record(self) -> Dict[str, Any]:
        return {
            "type": "job_run",
            "job_id": self.job_id,
            "kind": self.job.kind.value,
            "classification": self.job.classification.value,
            "state": self.state.value,
            "attempts": self.attempts,
            "started_at": _iso(self.started_at),
            "finished_at": _iso(self.finished_at),
            "summary": self.summary,
            "output": self.output,
            "error": dict(self.error) if self.error else None,
            "rollout": dict(self.rollout) if self.rollout else None,
        }


@dataclass
class PipelineRun:
    """Execução completa do grafo de Jobs."""
    run_id: str
    job_runs: Dict[str, JobRun]
    disabled: FrozenSet[str] = frozenset()
    state: PipelineState = PipelineState.PENDING
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    cancelled: bool = False
    dispatch_order: List[str] = field(default_factory=list)

    @classmethod
    def for_jobs(cls, run_id: str, jobs: Iterable[Job], *, disabled: Iterable[str] = ()) -> "PipelineRun":
        return cls(
            run_id=run_id,
            job_runs={job.id: JobRun(job=job) for job in jobs},
            disabled=frozenset(disabled),
        )

    def get(self, job_id: str) -> JobRun:
        return self.job_runs[job_id]

    def __iter__(self):
        return iter(self.job_runs.values())

    @property
    def is_complete(self) -> bool:
        return all(r.state.is_terminal for r in self.job_runs.values())

    def states(self) -> Dict[str, JobState]:
        return {jid: r.state for jid, r in self.job_runs.items()}

    def derive_state(self) -> PipelineState:
        if self.cancelled:
            return PipelineState.CANCELLED
        for run in self.job_runs.values():
            if run.job.is_advisory or run.job_id in self.disabled:
                continue
            if run.state is not JobState.SUCCEEDED:
                return PipelineState.FAILED
        return PipelineState.SUCCEEDED

    def start(self, *, at: Optional[datetime] = None) -> None:
        self.state = PipelineState.RUNNING
        self.started_at = at or datetime.now(timezone.utc)

    def finish(self, *, at: Optional[datetime] = None) -> PipelineState:
        if not self.is_complete:
            pending = sorted(jid for jid, r in self.job_runs.items() if not r.state.is_terminal)
            raise InvariantViolationError(f"Pipeline finished with non-terminal jobs: {pending}")
        self.state = self.derive_state()
        self.finished_at = at or datetime.now(timezone.utc)
        return self.state

    def to_record(self) -> Dict[str, Any]:
        return {
            "type": "pipeline_run",
            "run_id": self.run_id,
            "state": self.state.value,
            "started_at": _iso(self.started_at),
            "finished_at": _iso(self.finished_at),
            "cancelled": self.cancelled,
            "dispatch_order": list(self.dispatch_order),
            "jobs": {jid: r.to_record() for jid, r in self.job_runs.items()},
        }
