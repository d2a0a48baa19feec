# services/orchestrator.py

"""
Job orchestrator - drives a job through profiling, design setup,
per-panel generation and finalizing.

The orchestrator is the only writer of a job's state, progress, step and
panel results while the run loop is active. Pause and cancel are
cooperative: control operations flip the job state and the loop notices
before it starts the next panel.
"""

import asyncio
import logging
from typing import Dict, List, Optional, Set

from server.core.config import settings
from server.models.job import (
    Job,
    JobState,
    JobStep,
    JobError,
    StepKind,
    PanelResult,
    PanelStatus,
    Explainability,
    LintResult,
    SectionLabels,
    TERMINAL_STATES
)
from server.models.panel import Panel, PanelSegment, UserInput
from server.services.design_presets import default_colors
from server.services.generation import GenerationClient
from server.services.job_store import JobStore
from server.services.retry import call_with_retry
from server.services import lint_service

logger = logging.getLogger(__name__)

PROGRESS_PROFILING = 10
PROGRESS_DESIGN_INIT = 15
PROGRESS_PANEL_BAND = 80
PROGRESS_FINALIZING = 98

DEFAULT_PANEL_ERROR = "Sektion konnte nach mehreren Versuchen nicht generiert werden."
DEFAULT_JOB_ERROR = "Ein unbekannter Fehler ist aufgetreten."


def derive_topic(user_input: UserInput) -> str:
    """Shared topic for all panels without an explicit topic"""
    geo = user_input.geo
    if geo.company_name.strip():
        return f"Leistungen von {geo.company_name.strip()}"
    if geo.branch.strip():
        return f"Leistungen im Bereich {geo.branch.strip()}"
    return "Unsere Leistungen"


def panel_progress(index: int, total: int) -> float:
    """Progress at the start of a slot: the 15-95% band split evenly"""
    return PROGRESS_DESIGN_INIT + (index / total) * PROGRESS_PANEL_BAND


class JobOrchestrator:
    def __init__(
            self,
            store: JobStore,
            client: GenerationClient,
            max_retries: int = None,
            initial_backoff_ms: int = None,
            profiling_delay_ms: int = None,
            design_init_delay_ms: int = None,
            linter_enabled: bool = None
    ):
        self.store = store
        self.client = client
        self.max_retries = settings.max_retries if max_retries is None else max_retries
        self.initial_backoff_ms = settings.initial_backoff_ms if initial_backoff_ms is None else initial_backoff_ms
        self.profiling_delay_ms = settings.profiling_delay_ms if profiling_delay_ms is None else profiling_delay_ms
        self.design_init_delay_ms = (
            settings.design_init_delay_ms if design_init_delay_ms is None else design_init_delay_ms
        )
        self.linter_enabled = settings.linter_enabled if linter_enabled is None else linter_enabled

        self._tasks: Dict[str, asyncio.Task] = {}
        self._attempted: Dict[str, Set[int]] = {}

    # ------------------------------------------------------------------
    # Task management
    # ------------------------------------------------------------------

    def is_running(self, job_id: str) -> bool:
        """True while a run loop task for the job is in flight"""
        task = self._tasks.get(job_id)
        return task is not None and not task.done()

    def launch(self, job_id: str) -> asyncio.Task:
        """Start the run loop in the background, at most one per job"""
        task = self._tasks.get(job_id)
        if task is not None and not task.done():
            logger.debug(f"Run loop for job {job_id} already in flight")
            return task

        task = asyncio.get_running_loop().create_task(self.run(job_id), name=f"job-{job_id}")
        self._tasks[job_id] = task
        task.add_done_callback(lambda t: self._forget(job_id, t))
        return task

    def _forget(self, job_id: str, task: asyncio.Task):
        if self._tasks.get(job_id) is task:
            del self._tasks[job_id]
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Run loop for job {job_id} crashed", exc_info=task.exception())

    async def wait(self, job_id: str) -> None:
        """Wait until no run loop for the job is in flight"""
        while True:
            task = self._tasks.get(job_id)
            if task is None or task.done():
                return
            await asyncio.wait({task})

    def enqueue_slot(self, job_id: str, index: int) -> None:
        """Let an in-flight loop pick up a slot it already handled once"""
        attempted = self._attempted.get(job_id)
        if attempted is not None:
            attempted.discard(index)

    async def shutdown(self) -> None:
        tasks = [t for t in self._tasks.values() if not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------

    def _still_running(self, job_id: str) -> bool:
        job = self.store.get(job_id)
        return job is not None and job.state == JobState.RUNNING

    def _update_step(self, job: Job, step: JobStep, progress: float) -> None:
        if job.state != JobState.RUNNING:
            return
        job.current_step = step
        job.progress = max(job.progress, progress)
        self.store.touch(job)

    def _fail(self, job: Job, step: StepKind, error: Exception) -> None:
        logger.error(f"Job {job.id} failed during {step.value}: {error}", exc_info=error)
        if job.state in TERMINAL_STATES:
            return
        job.state = JobState.ERROR
        job.last_error = JobError(
            code="JOB_FAILED",
            message=str(error) or DEFAULT_JOB_ERROR,
            at_step=step.value
        )
        self.store.touch(job)

    async def _delay(self, delay_ms: int):
        if delay_ms > 0:
            await asyncio.sleep(delay_ms / 1000)

    async def run(self, job_id: str) -> None:
        """Advance a job until every slot is resolved, or until paused/cancelled.

        Safe to call on a finished job (no-op) and after a resume (slots
        that are already ok are not generated again).
        """
        job = self.store.get(job_id)
        if job is None:
            logger.warning(f"run called for unknown job {job_id}")
            return
        if job.state in TERMINAL_STATES or job.state == JobState.PAUSED:
            logger.info(f"Job {job_id} is {job.state.value}, nothing to run")
            return

        job.state = JobState.RUNNING
        self.store.touch(job)
        logger.info(f"Run loop started for job {job_id} ({len(job.panels)} panels)")

        step = StepKind.PROFILING
        try:
            if job.topic is None:
                await self._profile(job)
                if not self._still_running(job_id):
                    return

            step = StepKind.DESIGN_INIT
            if job.ci_colors is None:
                await self._init_design(job)
                if not self._still_running(job_id):
                    return
        except Exception as e:
            self._fail(job, step, e)
            return

        self._attempted[job_id] = set()
        try:
            completed = await self._run_panels(job)
        finally:
            self._attempted.pop(job_id, None)

        if not completed:
            logger.info(f"Run loop for job {job_id} stopped, job is {job.state.value}")
            return

        try:
            self._finalize(job)
        except Exception as e:
            self._fail(job, StepKind.FINALIZING, e)

    async def _profile(self, job: Job):
        self._update_step(job, JobStep(kind=StepKind.PROFILING, description="Analysiere Input..."), PROGRESS_PROFILING)
        await self._delay(self.profiling_delay_ms)
        job.topic = derive_topic(job.user_input)
        logger.info(f"Job {job.id} topic: {job.topic}")

    def _previous_job(self, job: Job) -> Optional[Job]:
        earlier = [j for j in self.store.list() if j.id != job.id and j.created_at <= job.created_at]
        if not earlier:
            return None
        return max(earlier, key=lambda j: j.created_at)

    async def _init_design(self, job: Job):
        self._update_step(
            job,
            JobStep(kind=StepKind.DESIGN_INIT, description="Initialisiere Design..."),
            PROGRESS_DESIGN_INIT
        )

        previous = self._previous_job(job) if job.user_input.keep_design else None
        if previous is not None and previous.ci_colors is not None:
            logger.info(f"Job {job.id} keeps design of job {previous.id}")
            job.ci_colors = previous.ci_colors.model_copy()
            job.section_labels = previous.section_labels.model_copy()
        else:
            job.ci_colors = default_colors()
            job.section_labels = SectionLabels()

        await self._delay(self.design_init_delay_ms)

    def _topic_for(self, job: Job, index: int) -> str:
        slot = job.panels[index]
        if slot.topic:
            return slot.topic
        topics = job.user_input.topics or []
        if index < len(topics) and topics[index]:
            return topics[index]
        return job.topic or derive_topic(job.user_input)

    def _next_slot(self, job: Job, attempted: Set[int]) -> Optional[int]:
        for slot in job.panels:
            if slot.index in attempted:
                continue
            if slot.status == PanelStatus.OK:
                continue
            if slot.status == PanelStatus.SKIPPED and slot.locked:
                continue
            return slot.index
        return None

    async def _run_panels(self, job: Job) -> bool:
        """Process slots in index order; False if the job stopped running"""
        attempted = self._attempted[job.id]

        while True:
            if not self._still_running(job.id):
                return False

            index = self._next_slot(job, attempted)
            if index is None:
                return True

            attempted.add(index)
            slot = job.panels[index]
            if slot.locked:
                # Locked slots are never regenerated
                if slot.status != PanelStatus.OK:
                    slot.status = PanelStatus.SKIPPED
                    self.store.touch(job)
                continue

            await self._process_slot(job, slot)
            self.store.touch(job)

    def lint(self, job: Job, panel: Panel, base=None) -> LintResult:
        if not self.linter_enabled:
            return lint_service.unlinted_result(panel)
        return lint_service.evaluate_panel(panel, job.user_input.geo.city, job.user_input.geo.region, base)

    async def _process_slot(self, job: Job, slot: PanelResult):
        index = slot.index
        total = len(job.panels)
        segment = slot.pending_segment if slot.base_panel is not None else None
        generation = slot.generation

        slot.topic = self._topic_for(job, index)
        slot.status = PanelStatus.PENDING

        progress = panel_progress(index, total)
        if segment:
            step = JobStep(
                kind=StepKind.PANEL_SEGMENT,
                description=f"Generiere '{segment}' neu...",
                panel_index=index,
                total_panels=total,
                segment=segment
            )
        else:
            step = JobStep(
                kind=StepKind.PANEL,
                description=f"Generiere Sektion {index + 1} von {total}...",
                panel_index=index,
                total_panels=total
            )
        self._update_step(job, step, progress)

        exclude_titles = [
            p.panel.title for p in job.panels
            if p.index != index and p.status == PanelStatus.OK and p.panel is not None
        ]

        def on_retry(attempt: int, delay: float, error: Exception):
            retry_step = step.model_copy(update={"description": f"Fehler, versuche erneut in {delay:g}s..."})
            self._update_step(job, retry_step, progress)

        if segment:
            base_panel = slot.base_panel

            async def call():
                return await self.client.regenerate_segment(
                    job.user_input, base_panel, PanelSegment(segment), exclude_titles
                )
        else:
            topic = slot.topic

            async def call():
                return await self.client.generate(job.user_input, topic, exclude_titles)

        loop = asyncio.get_running_loop()
        started = loop.time()
        outcome = await call_with_retry(
            call,
            max_attempts=self.max_retries,
            initial_backoff_ms=self.initial_backoff_ms,
            on_retry=on_retry,
            label=f"Job {job.id} panel {index}"
        )
        duration_ms = int((loop.time() - started) * 1000)

        if slot.generation != generation:
            # Slot was reset while the call was in flight; the newer request wins
            logger.info(f"Job {job.id} panel {index} was reset during generation, dropping result")
            return

        if not outcome.ok:
            message = str(outcome.error) or DEFAULT_PANEL_ERROR
            if segment:
                self._restore_base(job, slot, message)
            else:
                self._mark_failed(slot, message)
            logger.info(f"Job {job.id} panel {index} failed after {outcome.attempts} attempts")
            return

        try:
            panel = outcome.value
            lint_result = self.lint(job, panel)
        except Exception as e:
            logger.error(f"Job {job.id} panel {index} could not be linted: {e}", exc_info=True)
            self._mark_failed(slot, str(e) or DEFAULT_PANEL_ERROR)
            return

        slot.status = PanelStatus.OK
        slot.panel = panel
        slot.error = None
        slot.lint_result = lint_result
        slot.quality_score = lint_service.quality_score(lint_result.quality_breakdown)
        slot.explainability = Explainability(
            source_info=self.client.source_info,
            duration_ms=duration_ms,
            payload_hash=panel.payload_hash
        )
        if segment:
            setattr(slot.segment_locks, segment, False)
        slot.pending_segment = None
        slot.base_panel = None

        logger.info(f"Job {job.id} panel {index} ok: '{panel.title}' (quality {slot.quality_score})")

    def _restore_base(self, job: Job, slot: PanelResult, message: str):
        """Put the panel a failed segment call started from back in place"""
        slot.status = PanelStatus.OK
        slot.panel = slot.base_panel
        slot.error = message
        if slot.lint_result is None:
            slot.lint_result = self.lint(job, slot.panel)
            slot.quality_score = lint_service.quality_score(slot.lint_result.quality_breakdown)
        slot.pending_segment = None
        slot.base_panel = None

    def _mark_failed(self, slot: PanelResult, message: str):
        slot.status = PanelStatus.FAILED
        slot.panel = None
        slot.error = message
        slot.quality_score = None
        slot.lint_result = None
        slot.explainability = None
        slot.pending_segment = None

    def _finalize(self, job: Job):
        self._update_step(
            job,
            JobStep(kind=StepKind.FINALIZING, description="Finalisiere Ergebnisse..."),
            PROGRESS_FINALIZING
        )

        ok_panels: List[Panel] = [
            p.panel for p in job.panels
            if p.status == PanelStatus.OK and p.panel is not None
        ]
        if ok_panels and self.linter_enabled:
            job.lint_summary = lint_service.lint_keyword_duplicates(ok_panels)
        else:
            job.lint_summary = []
        job.set_hash = lint_service.set_hash(ok_panels) if ok_panels else None

        if job.state != JobState.RUNNING:
            return

        job.state = JobState.DONE
        job.progress = 100.0
        job.current_step = JobStep(kind=StepKind.FINALIZING, description="Abgeschlossen")
        self.store.touch(job)

        ok_count = len(ok_panels)
        logger.info(f"Job {job.id} done: {ok_count}/{len(job.panels)} panels ok")
