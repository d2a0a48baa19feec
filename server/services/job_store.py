# services/job_store.py

"""
Job store - in-memory job table with debounced persistence
"""

import threading
from datetime import datetime
from typing import Dict, List, Optional

from server.models.job import Job, TERMINAL_STATES
from server.services.persistence import DebouncedPersister, JobPersistence, MemoryJobPersistence


def now_iso() -> str:
    return datetime.now().isoformat()


class JobStore:
    """Owns the job records; callers outside the services get deep copies"""

    def __init__(self, persistence: JobPersistence = None, debounce_ms: int = None):
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()
        self.persister = DebouncedPersister(persistence or MemoryJobPersistence(), debounce_ms)

    def get(self, job_id: str) -> Optional[Job]:
        """Live record, for the orchestrator and the job service only"""
        with self._lock:
            return self._jobs.get(job_id)

    def set(self, job: Job) -> None:
        with self._lock:
            self._jobs[job.id] = job

    def list(self) -> List[Job]:
        with self._lock:
            return list(self._jobs.values())

    def delete(self, job_id: str) -> bool:
        with self._lock:
            removed = self._jobs.pop(job_id, None)
        self.persister.discard(job_id)
        return removed is not None

    def snapshot(self, job_id: str) -> Optional[Job]:
        job = self.get(job_id)
        if job is None:
            return None
        return job.model_copy(deep=True)

    def touch(self, job: Job) -> None:
        """Record a mutation: bump updated_at and schedule a save"""
        job.updated_at = now_iso()
        self.persister.schedule(job)

    def clear_finished(self) -> int:
        finished = [j.id for j in self.list() if j.state in TERMINAL_STATES]
        for job_id in finished:
            self.delete(job_id)
        return len(finished)

    def count_active(self) -> int:
        return sum(1 for j in self.list() if j.state not in TERMINAL_STATES)

    def load_persisted(self, job_id: str) -> Optional[Job]:
        return self.persister.load(job_id)

    def flush(self) -> None:
        self.persister.flush()
