# core/exceptions.py

"""
Control API errors
"""


class JobServiceError(Exception):
    """Base class for errors raised by the job control operations"""


class JobNotFoundError(JobServiceError):
    def __init__(self, job_id: str):
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class PanelIndexError(JobServiceError):
    def __init__(self, job_id: str, index: int):
        super().__init__(f"Job {job_id} has no panel slot {index}")
        self.job_id = job_id
        self.index = index


class PanelLockedError(JobServiceError):
    def __init__(self, index: int, segment: str = None):
        if segment:
            message = f"Segment '{segment}' of panel {index} is locked"
        else:
            message = f"Panel {index} is locked"
        super().__init__(message)
        self.index = index
        self.segment = segment


class InvalidControlError(JobServiceError):
    """A control command that does not apply to the job's current state"""
