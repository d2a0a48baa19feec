# models/job.py

"""
Job-related data models
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Dict
from enum import Enum

from server.models.panel import Panel, UserInput


class JobState(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    PAUSED = "paused"
    DONE = "done"
    ERROR = "error"


TERMINAL_STATES = (JobState.DONE, JobState.ERROR)


class PanelStatus(str, Enum):
    PENDING = "pending"
    OK = "ok"
    FAILED = "failed"
    SKIPPED = "skipped"


class StepKind(str, Enum):
    PROFILING = "profiling"
    DESIGN_INIT = "design_init"
    PANEL = "panel"
    PANEL_SEGMENT = "panel_segment"
    FINALIZING = "finalizing"


class Severity(str, Enum):
    ERROR = "ERROR"
    WARN = "WARN"


class Issue(BaseModel):
    code: str
    severity: Severity
    message: str


class ScoreWeight(BaseModel):
    score: int
    weight: float


class LintResult(BaseModel):
    passed: bool = False
    has_warnings: bool = False
    issues: List[Issue] = []
    content_hash: str = ""
    quality_breakdown: Dict[str, ScoreWeight] = {}


class SegmentLocks(BaseModel):
    title: bool = False
    summary: bool = False
    sections: bool = False
    faq: bool = False
    keywords: bool = False


class Explainability(BaseModel):
    source_info: str
    duration_ms: int
    payload_hash: str = ""


class PanelResult(BaseModel):
    index: int
    status: PanelStatus = PanelStatus.PENDING
    topic: str = ""
    panel: Optional[Panel] = None
    error: Optional[str] = None
    quality_score: Optional[int] = None
    lint_result: Optional[LintResult] = None
    locked: bool = False
    segment_locks: SegmentLocks = Field(default_factory=SegmentLocks)
    pending_segment: Optional[str] = None
    base_panel: Optional[Panel] = None
    explainability: Optional[Explainability] = None
    generation: int = 0


class JobStep(BaseModel):
    kind: StepKind
    description: str
    panel_index: Optional[int] = None
    total_panels: Optional[int] = None
    segment: Optional[str] = None


class JobError(BaseModel):
    code: str
    message: str
    at_step: str


class CIColors(BaseModel):
    primary: str
    secondary: str
    accent: str
    text_primary: str
    text_secondary: str
    font_size_title: int = 28
    font_size_accordion_title: int = 18
    font_size_content: int = 16
    scrollbar_position: str = "right"
    radius_px: int = 12
    blur_px: int = 8


class SectionLabels(BaseModel):
    summary: str = "Überblick"
    sections: str = "Inhalte"
    faq: str = "Häufige Fragen"
    keywords: str = "Stichwörter"


class Job(BaseModel):
    id: str
    state: JobState = JobState.QUEUED
    progress: float = 0.0
    current_step: JobStep
    user_input: UserInput
    panels: List[PanelResult] = []
    last_error: Optional[JobError] = None
    created_at: str
    updated_at: str

    # Results produced by the run loop
    topic: Optional[str] = None
    ci_colors: Optional[CIColors] = None
    section_labels: SectionLabels = Field(default_factory=SectionLabels)
    lint_summary: List[Issue] = []
    set_hash: Optional[str] = None


class JobCreated(BaseModel):
    job_id: str
    state: JobState
    message: str


class PanelLintState(str, Enum):
    NONE = "none"
    PASSED = "passed"
    FAILED = "failed"
    STALE = "stale"


class PanelLintReport(BaseModel):
    index: int
    state: PanelLintState
    issues: List[Issue] = []


class LintReport(BaseModel):
    job_id: str
    panels: List[PanelLintReport]
    summary: List[Issue] = []
    export_ready: bool
