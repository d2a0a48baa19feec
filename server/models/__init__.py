# models/__init__.py

from .panel import (
    InputType,
    Tone,
    ContentDepth,
    PanelSegment,
    Geo,
    UserInput,
    Section,
    Faq,
    Panel
)
from .job import (
    JobState,
    PanelStatus,
    StepKind,
    Severity,
    Issue,
    ScoreWeight,
    LintResult,
    SegmentLocks,
    PanelResult,
    JobStep,
    JobError,
    CIColors,
    SectionLabels,
    Job,
    JobCreated,
    PanelLintState,
    LintReport
)
from .control import (
    PauseCommand,
    ResumeCommand,
    CancelCommand,
    RunLinterCommand,
    RegeneratePanelCommand,
    RegenerateSegmentCommand,
    AddPanelCommand,
    LockPanelCommand,
    ControlCommand
)

__all__ = [
    'InputType',
    'Tone',
    'ContentDepth',
    'PanelSegment',
    'Geo',
    'UserInput',
    'Section',
    'Faq',
    'Panel',
    'JobState',
    'PanelStatus',
    'StepKind',
    'Severity',
    'Issue',
    'ScoreWeight',
    'LintResult',
    'SegmentLocks',
    'PanelResult',
    'JobStep',
    'JobError',
    'CIColors',
    'SectionLabels',
    'Job',
    'JobCreated',
    'PanelLintState',
    'LintReport',
    'PauseCommand',
    'ResumeCommand',
    'CancelCommand',
    'RunLinterCommand',
    'RegeneratePanelCommand',
    'RegenerateSegmentCommand',
    'AddPanelCommand',
    'LockPanelCommand',
    'ControlCommand'
]
