# services/job_service.py

"""
Job service - control operations on panel generation jobs
"""

import uuid
import logging
from typing import List, Optional

from server.core.exceptions import (
    JobNotFoundError,
    PanelIndexError,
    PanelLockedError,
    InvalidControlError
)
from server.models.control import (
    ControlCommand,
    PauseCommand,
    ResumeCommand,
    CancelCommand,
    RunLinterCommand,
    RegeneratePanelCommand,
    RegenerateSegmentCommand,
    AddPanelCommand,
    LockPanelCommand
)
from server.models.job import (
    Job,
    JobState,
    JobStep,
    JobError,
    StepKind,
    PanelResult,
    PanelStatus,
    LintReport,
    PanelLintReport,
    PanelLintState,
    TERMINAL_STATES
)
from server.models.panel import Panel, PanelSegment, UserInput
from server.services import lint_service
from server.services.generation import GenerationClient, create_generation_client
from server.services.job_store import JobStore, now_iso
from server.services.orchestrator import JobOrchestrator, PROGRESS_DESIGN_INIT
from server.services.persistence import create_persistence

logger = logging.getLogger(__name__)


class JobService:
    def __init__(
            self,
            store: JobStore = None,
            client: GenerationClient = None,
            orchestrator: JobOrchestrator = None
    ):
        self.store = store or JobStore(create_persistence())
        self.client = client or create_generation_client()
        self.orchestrator = orchestrator or JobOrchestrator(self.store, self.client)

    # ------------------------------------------------------------------
    # Lookup helpers
    # ------------------------------------------------------------------

    def _require(self, job_id: str) -> Job:
        job = self.store.get(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    def _slot(self, job: Job, index: int) -> PanelResult:
        if index < 0 or index >= len(job.panels):
            raise PanelIndexError(job.id, index)
        return job.panels[index]

    def _require_open(self, job: Job, action: str):
        if job.state == JobState.ERROR:
            raise InvalidControlError(f"Cannot {action}: job {job.id} ended with an error, start a new job")

    def _snapshot(self, job: Job) -> Job:
        return job.model_copy(deep=True)

    # ------------------------------------------------------------------
    # Start / status
    # ------------------------------------------------------------------

    def create_job(self, user_input: UserInput) -> Job:
        """Create a queued job with one pending slot per requested panel"""
        job_id = str(uuid.uuid4())
        now = now_iso()
        topics = user_input.topics or []

        job = Job(
            id=job_id,
            state=JobState.QUEUED,
            progress=0.0,
            current_step=JobStep(kind=StepKind.PROFILING, description="Job wird gestartet..."),
            user_input=user_input.model_copy(deep=True),
            panels=[
                PanelResult(index=i, topic=topics[i] if i < len(topics) else "")
                for i in range(user_input.panel_count)
            ],
            created_at=now,
            updated_at=now
        )

        self.store.set(job)
        self.store.touch(job)
        logger.info(f"Created job {job_id} with {user_input.panel_count} panels")
        return job

    def start(self, user_input: UserInput) -> str:
        """Create a job and begin its run loop without waiting for it"""
        job = self.create_job(user_input)
        self.orchestrator.launch(job.id)
        return job.id

    def get_status(self, job_id: str) -> Job:
        """Deep copy of the job; mutating it does not affect the service"""
        return self._snapshot(self._require(job_id))

    def list_jobs(self) -> List[Job]:
        return [self._snapshot(j) for j in self.store.list()]

    # ------------------------------------------------------------------
    # Control commands
    # ------------------------------------------------------------------

    def control(self, job_id: str, command: ControlCommand) -> Job:
        """Dispatch a control command to the matching operation"""
        if isinstance(command, PauseCommand):
            return self.pause(job_id)
        if isinstance(command, ResumeCommand):
            return self.resume(job_id)
        if isinstance(command, CancelCommand):
            return self.cancel(job_id)
        if isinstance(command, RunLinterCommand):
            return self.rerun_linter(job_id)
        if isinstance(command, RegeneratePanelCommand):
            return self.regenerate_panel(job_id, command.index)
        if isinstance(command, RegenerateSegmentCommand):
            return self.regenerate_panel_segment(job_id, command.index, command.segment)
        if isinstance(command, AddPanelCommand):
            return self.add_panel(job_id, command.topic)
        if isinstance(command, LockPanelCommand):
            return self.lock_panel(job_id, command.index, command.locked, command.segment)
        raise InvalidControlError(f"Unsupported control command: {type(command).__name__}")

    def pause(self, job_id: str) -> Job:
        job = self._require(job_id)
        if job.state == JobState.RUNNING:
            job.state = JobState.PAUSED
            self.store.touch(job)
            logger.info(f"Job {job_id} paused")
        else:
            logger.debug(f"Ignoring pause for job {job_id} in state {job.state.value}")
        return self._snapshot(job)

    def resume(self, job_id: str) -> Job:
        job = self._require(job_id)
        if job.state == JobState.PAUSED:
            job.state = JobState.RUNNING
            self.store.touch(job)
            self.orchestrator.launch(job_id)
            logger.info(f"Job {job_id} resumed")
        else:
            logger.debug(f"Ignoring resume for job {job_id} in state {job.state.value}")
        return self._snapshot(job)

    def cancel(self, job_id: str) -> Job:
        job = self._require(job_id)
        if job.state in TERMINAL_STATES:
            logger.debug(f"Ignoring cancel for finished job {job_id}")
            return self._snapshot(job)

        job.state = JobState.ERROR
        job.last_error = JobError(
            code="CANCELLED",
            message="Job vom Benutzer abgebrochen.",
            at_step=job.current_step.kind.value
        )
        self.store.touch(job)
        logger.info(f"Job {job_id} cancelled at step {job.current_step.kind.value}")
        return self._snapshot(job)

    def rerun_linter(self, job_id: str) -> Job:
        """Lint every slot holding a panel again; panel content is untouched"""
        job = self._require(job_id)

        for slot in job.panels:
            if slot.panel is None:
                continue
            base = slot.lint_result.quality_breakdown if slot.lint_result else None
            slot.lint_result = self.orchestrator.lint(job, slot.panel, base or None)
            slot.quality_score = lint_service.quality_score(slot.lint_result.quality_breakdown)

        ok_panels = [p.panel for p in job.panels if p.status == PanelStatus.OK and p.panel is not None]
        if self.orchestrator.linter_enabled:
            job.lint_summary = lint_service.lint_keyword_duplicates(ok_panels)
        else:
            job.lint_summary = []

        self.store.touch(job)
        logger.info(f"Re-linted {len(ok_panels)} panels of job {job_id}")
        return self._snapshot(job)

    def _reset_slot(self, slot: PanelResult):
        slot.generation += 1
        slot.status = PanelStatus.PENDING
        slot.panel = None
        slot.error = None
        slot.quality_score = None
        slot.lint_result = None
        slot.explainability = None

    def _reopen(self, job: Job, index: int):
        """Make sure a pending slot gets processed"""
        self.orchestrator.enqueue_slot(job.id, index)

        if job.state == JobState.DONE:
            job.state = JobState.RUNNING
            job.progress = PROGRESS_DESIGN_INIT
            self.orchestrator.launch(job.id)
        elif job.state in (JobState.QUEUED, JobState.RUNNING) and not self.orchestrator.is_running(job.id):
            self.orchestrator.launch(job.id)
        # A paused job picks the slot up on resume

        self.store.touch(job)

    def regenerate_panel(self, job_id: str, index: int) -> Job:
        job = self._require(job_id)
        slot = self._slot(job, index)
        if slot.locked:
            raise PanelLockedError(index)
        self._require_open(job, "regenerate panel")

        self._reset_slot(slot)
        slot.pending_segment = None
        slot.base_panel = None
        self._reopen(job, index)

        logger.info(f"Job {job_id} panel {index} queued for regeneration")
        return self._snapshot(job)

    def regenerate_panel_segment(self, job_id: str, index: int, segment: PanelSegment) -> Job:
        job = self._require(job_id)
        slot = self._slot(job, index)
        segment = PanelSegment(segment)
        if slot.locked:
            raise PanelLockedError(index)
        if getattr(slot.segment_locks, segment.value):
            raise PanelLockedError(index, segment.value)
        self._require_open(job, "regenerate segment")

        base = slot.panel or slot.base_panel
        if base is None:
            raise InvalidControlError(f"Panel {index} has no content to regenerate '{segment.value}' from")

        # The finished panel stays visible until the new segment replaces it
        slot.generation += 1
        slot.status = PanelStatus.PENDING
        slot.error = None
        slot.base_panel = base
        slot.pending_segment = segment.value
        self._reopen(job, index)

        logger.info(f"Job {job_id} panel {index} queued for '{segment.value}' regeneration")
        return self._snapshot(job)

    def add_panel(self, job_id: str, topic: str) -> Job:
        job = self._require(job_id)
        self._require_open(job, "add panel")

        index = len(job.panels)
        topics = job.user_input.topics or [p.topic for p in job.panels]
        topics = topics + [""] * (index - len(topics))
        job.user_input.topics = topics + [topic]
        job.user_input.panel_count = index + 1
        job.panels.append(PanelResult(index=index, topic=topic))
        self._reopen(job, index)

        logger.info(f"Job {job_id} gained panel {index} for topic '{topic}'")
        return self._snapshot(job)

    def lock_panel(self, job_id: str, index: int, locked: bool = True, segment: Optional[PanelSegment] = None) -> Job:
        job = self._require(job_id)
        slot = self._slot(job, index)

        if segment is not None:
            setattr(slot.segment_locks, PanelSegment(segment).value, locked)
        else:
            slot.locked = locked
        self.store.touch(job)
        return self._snapshot(job)

    def update_panel(self, job_id: str, index: int, panel: Panel) -> Job:
        """Store a manual edit; the lint result stays as-is until re-linted"""
        job = self._require(job_id)
        slot = self._slot(job, index)
        if slot.status != PanelStatus.OK:
            raise InvalidControlError(f"Panel {index} has no generated content to edit")

        slot.panel = panel.model_copy(deep=True)
        self.store.touch(job)
        return self._snapshot(job)

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def get_lint_report(self, job_id: str) -> LintReport:
        job = self._require(job_id)

        panels = []
        for slot in job.panels:
            state = lint_service.lint_state(slot)
            issues = slot.lint_result.issues if state != PanelLintState.NONE else []
            panels.append(PanelLintReport(index=slot.index, state=state, issues=list(issues)))

        ok_states = [p.state for p, s in zip(panels, job.panels) if s.status == PanelStatus.OK]
        export_ready = bool(ok_states) and all(s == PanelLintState.PASSED for s in ok_states)

        return LintReport(
            job_id=job.id,
            panels=panels,
            summary=[i.model_copy() for i in job.lint_summary],
            export_ready=export_ready
        )

    def get_topic_suggestions(self, job_id: str) -> List[str]:
        job = self._require(job_id)
        if not job.topic:
            return []

        suggestions = ["Kundenrezensionen und Fallstudien"]
        if job.user_input.geo.city:
            suggestions.append(f"Unser Team in {job.user_input.geo.city}")
        used = {p.topic for p in job.panels}
        return [s for s in suggestions if s not in used]

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def restore_job(self, job_id: str) -> Job:
        """Bring a persisted job back into memory"""
        existing = self.store.get(job_id)
        if existing is not None:
            return self._snapshot(existing)

        job = self.store.load_persisted(job_id)
        if job is None:
            raise JobNotFoundError(job_id)

        if job.state in (JobState.QUEUED, JobState.RUNNING):
            # The run loop did not survive; the user resumes explicitly
            job.state = JobState.PAUSED
        self.store.set(job)
        self.store.touch(job)

        logger.info(f"Restored job {job_id} in state {job.state.value}")
        return self._snapshot(job)

    def discard_job(self, job_id: str) -> None:
        job = self._require(job_id)
        if job.state not in TERMINAL_STATES:
            self.cancel(job_id)
        self.store.delete(job_id)
        logger.info(f"Discarded job {job_id}")

    def clear_finished_jobs(self) -> int:
        """Clear finished jobs and return count"""
        return self.store.clear_finished()

    def get_active_jobs_count(self) -> int:
        return self.store.count_active()

    async def shutdown(self) -> None:
        await self.orchestrator.shutdown()
        self.store.flush()
