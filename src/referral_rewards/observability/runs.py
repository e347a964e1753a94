"""In-process metrics for scheduled referral reward runs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Dict, Mapping


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass
class JobRunSnapshot:
    """Serializable view of one scheduled job."""

    job_id: str
    task: str
    totals: Dict[str, int]
    runtime_seconds: float
    last_started_at: datetime | None
    last_success_at: datetime | None
    last_error_at: datetime | None
    last_error: str | None
    last_attempts: int
    last_summary: Dict[str, Any] | None

    def as_dict(self) -> Dict[str, object]:
        return {
            "job_id": self.job_id,
            "task": self.task,
            "totals": self.totals,
            "runtime_seconds": self.runtime_seconds,
            "last_started_at": _iso(self.last_started_at),
            "last_success_at": _iso(self.last_success_at),
            "last_error_at": _iso(self.last_error_at),
            "last_error": self.last_error,
            "last_attempts": self.last_attempts,
            "last_summary": self.last_summary,
        }


@dataclass
class RunStoreSnapshot:
    totals: Dict[str, int]
    jobs: Dict[str, JobRunSnapshot]

    def as_dict(self) -> Dict[str, object]:
        return {
            "totals": self.totals,
            "jobs": {job_id: snapshot.as_dict() for job_id, snapshot in self.jobs.items()},
        }


@dataclass
class _JobState:
    job_id: str
    task: str
    runs: int = 0
    successes: int = 0
    run_failures: int = 0
    attempt_failures: int = 0
    retries: int = 0
    consecutive_failures: int = 0
    rewards_issued: int = 0
    unrecorded_rewards: int = 0
    runtime_seconds: float = 0.0
    last_started_at: datetime | None = None
    last_success_at: datetime | None = None
    last_error_at: datetime | None = None
    last_error: str | None = None
    last_attempts: int = 0
    last_summary: Dict[str, Any] | None = field(default=None)

    def snapshot(self) -> JobRunSnapshot:
        return JobRunSnapshot(
            job_id=self.job_id,
            task=self.task,
            totals={
                "runs": self.runs,
                "success": self.successes,
                "run_failures": self.run_failures,
                "attempt_failures": self.attempt_failures,
                "retries": self.retries,
                "consecutive_failures": self.consecutive_failures,
                "rewards_issued": self.rewards_issued,
                "unrecorded_rewards": self.unrecorded_rewards,
            },
            runtime_seconds=self.runtime_seconds,
            last_started_at=self.last_started_at,
            last_success_at=self.last_success_at,
            last_error_at=self.last_error_at,
            last_error=self.last_error,
            last_attempts=self.last_attempts,
            last_summary=dict(self.last_summary) if self.last_summary else None,
        )


class JobRunStore:
    """Tracks dispatches, retries, failures and reward totals per job."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._jobs: Dict[str, _JobState] = {}

    def reset(self) -> None:
        with self._lock:
            self._jobs.clear()

    def _state(self, job_id: str, task: str) -> _JobState:
        state = self._jobs.get(job_id)
        if state is None:
            state = _JobState(job_id=job_id, task=task)
            self._jobs[job_id] = state
        return state

    def record_dispatch(self, job_id: str, task: str) -> None:
        with self._lock:
            state = self._state(job_id, task)
            state.runs += 1
            state.last_started_at = _utcnow()
            state.last_attempts = 0

    def record_attempt_failure(self, job_id: str, task: str, *, attempts: int, error: str) -> None:
        with self._lock:
            state = self._state(job_id, task)
            state.attempt_failures += 1
            state.last_error = error
            state.last_error_at = _utcnow()
            state.last_attempts = attempts

    def record_retry(self, job_id: str, task: str, *, attempts: int) -> None:
        with self._lock:
            state = self._state(job_id, task)
            state.retries += 1
            state.last_attempts = attempts

    def record_success(
        self,
        job_id: str,
        task: str,
        *,
        runtime_seconds: float,
        attempts: int,
        summary: Mapping[str, Any] | None = None,
    ) -> None:
        with self._lock:
            state = self._state(job_id, task)
            state.successes += 1
            state.runtime_seconds += runtime_seconds
            state.last_success_at = _utcnow()
            state.last_attempts = attempts
            state.consecutive_failures = 0
            state.last_error = None
            state.last_error_at = None
            if summary is not None:
                state.last_summary = dict(summary)
                state.rewards_issued += int(summary.get("rewarded", 0) or 0)
                state.unrecorded_rewards += int(summary.get("unrecorded_rewards", 0) or 0)

    def record_run_failure(self, job_id: str, task: str, *, runtime_seconds: float, attempts: int, error: str) -> None:
        with self._lock:
            state = self._state(job_id, task)
            state.run_failures += 1
            state.consecutive_failures += 1
            state.runtime_seconds += runtime_seconds
            state.last_error = error
            state.last_error_at = _utcnow()
            state.last_attempts = attempts

    def snapshot(self) -> RunStoreSnapshot:
        with self._lock:
            jobs = {job_id: state.snapshot() for job_id, state in self._jobs.items()}
            totals = {
                "runs": sum(state.runs for state in self._jobs.values()),
                "success": sum(state.successes for state in self._jobs.values()),
                "run_failures": sum(state.run_failures for state in self._jobs.values()),
                "attempt_failures": sum(state.attempt_failures for state in self._jobs.values()),
                "retries": sum(state.retries for state in self._jobs.values()),
                "rewards_issued": sum(state.rewards_issued for state in self._jobs.values()),
                "unrecorded_rewards": sum(state.unrecorded_rewards for state in self._jobs.values()),
            }
        return RunStoreSnapshot(totals=totals, jobs=jobs)


_RUN_STORE = JobRunStore()


def get_run_store() -> JobRunStore:
    return _RUN_STORE


__all__ = ["JobRunSnapshot", "JobRunStore", "RunStoreSnapshot", "get_run_store"]
