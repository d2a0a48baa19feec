# services/__init__.py

from .job_service import JobService
from .orchestrator import JobOrchestrator
from .job_store import JobStore

__all__ = ['JobService', 'JobOrchestrator', 'JobStore']
