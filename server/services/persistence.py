# services/persistence.py

"""
Job persistence - storage backends and debounced writes
"""

import asyncio
import logging
from pathlib import Path
from typing import Dict, Optional

from pydantic import ValidationError

from server.core.config import settings
from server.models.job import Job
from server.utils.file_handler import write_json, read_json, remove_file, safe_filename

logger = logging.getLogger(__name__)


class JobPersistence:
    """Storage medium for job snapshots: save / load / clear"""

    def save(self, job: Job) -> None:
        raise NotImplementedError

    def load(self, job_id: str) -> Optional[Job]:
        raise NotImplementedError

    def clear(self, job_id: str) -> None:
        raise NotImplementedError


class MemoryJobPersistence(JobPersistence):
    def __init__(self):
        self.saved: Dict[str, str] = {}
        self.save_count = 0

    def save(self, job: Job) -> None:
        self.saved[job.id] = job.model_dump_json()
        self.save_count += 1

    def load(self, job_id: str) -> Optional[Job]:
        raw = self.saved.get(job_id)
        if raw is None:
            return None
        return Job.model_validate_json(raw)

    def clear(self, job_id: str) -> None:
        self.saved.pop(job_id, None)


class FileJobPersistence(JobPersistence):
    """One JSON document per job inside jobs_dir"""

    def __init__(self, jobs_dir: str = None):
        self.jobs_dir = Path(jobs_dir or settings.jobs_dir)

    def _path(self, job_id: str) -> Path:
        return self.jobs_dir / f"job_{safe_filename(job_id)}.json"

    def save(self, job: Job) -> None:
        write_json(self._path(job.id), job.model_dump(mode="json"))
        logger.debug(f"Saved job {job.id} to {self._path(job.id)}")

    def load(self, job_id: str) -> Optional[Job]:
        path = self._path(job_id)
        try:
            data = read_json(path)
            if data is None:
                return None
            return Job.model_validate(data)
        except (ValueError, ValidationError) as e:
            # Corrupted snapshot: drop it instead of failing every restore
            logger.warning(f"Discarding unreadable job snapshot {path}: {e}")
            remove_file(path)
            return None

    def clear(self, job_id: str) -> None:
        remove_file(self._path(job_id))


def create_persistence(backend: str = None) -> JobPersistence:
    backend = backend or settings.persistence_backend
    if backend == "memory":
        return MemoryJobPersistence()
    if backend == "file":
        return FileJobPersistence()
    raise ValueError(f"Unknown persistence backend: {backend}")


class DebouncedPersister:
    """Coalesces repeated saves of a job into one delayed write.

    Each job has its own timer; scheduling again restarts it and the most
    recent job object is the one written. Write failures are logged and
    dropped.
    """

    def __init__(self, backend: JobPersistence, delay_ms: int = None):
        self.backend = backend
        self.delay_ms = settings.persist_debounce_ms if delay_ms is None else delay_ms
        self._pending: Dict[str, Job] = {}
        self._timers: Dict[str, asyncio.TimerHandle] = {}

    def schedule(self, job: Job) -> None:
        self._pending[job.id] = job

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No event loop to defer on; write through
            self._write(job.id)
            return

        timer = self._timers.pop(job.id, None)
        if timer is not None:
            timer.cancel()
        self._timers[job.id] = loop.call_later(self.delay_ms / 1000, self._write, job.id)

    def _write(self, job_id: str) -> None:
        self._timers.pop(job_id, None)
        job = self._pending.pop(job_id, None)
        if job is None:
            return

        try:
            self.backend.save(job)
        except Exception as e:
            logger.warning(f"Failed to persist job {job_id}: {e}", exc_info=True)

    def flush(self) -> None:
        """Write every pending job now"""
        for job_id in list(self._pending):
            timer = self._timers.pop(job_id, None)
            if timer is not None:
                timer.cancel()
            self._write(job_id)

    def discard(self, job_id: str) -> None:
        """Drop a pending write and remove the stored snapshot"""
        timer = self._timers.pop(job_id, None)
        if timer is not None:
            timer.cancel()
        self._pending.pop(job_id, None)

        try:
            self.backend.clear(job_id)
        except Exception as e:
            logger.warning(f"Failed to clear persisted job {job_id}: {e}", exc_info=True)

    def load(self, job_id: str) -> Optional[Job]:
        try:
            return self.backend.load(job_id)
        except Exception as e:
            logger.warning(f"Failed to load persisted job {job_id}: {e}", exc_info=True)
            return None
