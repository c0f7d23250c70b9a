"""Centralised background job health tracking."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Dict, MutableMapping

JOB_IDLE_MONITOR = "idle_conversation_monitor"


@dataclass
class JobStatus:
    """Runtime status information for a background job."""

    enabled: bool = True
    last_tick: datetime | None = None
    ticks: int = 0
    recent_errors: deque[str] = field(default_factory=lambda: deque(maxlen=10))


class JobMonitor:
    """Thread-safe tracker for background job health."""

    _lock = Lock()
    _jobs: Dict[str, JobStatus] = {}

    @classmethod
    def _status(cls, job_name: str) -> JobStatus:
        status = cls._jobs.get(job_name)
        if status is None:
            status = cls._jobs[job_name] = JobStatus()
        return status

    @classmethod
    def set_job_enabled(cls, job_name: str, enabled: bool) -> None:
        with cls._lock:
            cls._status(job_name).enabled = enabled

    @classmethod
    def record_tick(cls, job_name: str) -> None:
        with cls._lock:
            status = cls._status(job_name)
            status.last_tick = datetime.now(timezone.utc)
            status.ticks += 1

    @classmethod
    def record_error(cls, job_name: str, message: str) -> None:
        timestamped = f"{datetime.now(timezone.utc).isoformat()} - {message}"
        with cls._lock:
            cls._status(job_name).recent_errors.append(timestamped)

    @classmethod
    def snapshot(cls) -> MutableMapping[str, dict[str, object]]:
        with cls._lock:
            return {
                name: {
                    "enabled": status.enabled,
                    "last_tick": status.last_tick,
                    "ticks": status.ticks,
                    "recent_errors": list(status.recent_errors),
                }
                for name, status in cls._jobs.items()
            }

    @classmethod
    def reset(cls) -> None:
        with cls._lock:
            cls._jobs.clear()
