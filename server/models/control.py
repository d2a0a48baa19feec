# models/control.py

"""
Control commands accepted by a running job
"""

from pydantic import BaseModel, Field
from typing import Optional, Union, Literal, Annotated

from server.models.panel import PanelSegment


class PauseCommand(BaseModel):
    action: Literal["pause"] = "pause"


class ResumeCommand(BaseModel):
    action: Literal["resume"] = "resume"


class CancelCommand(BaseModel):
    action: Literal["cancel"] = "cancel"


class RunLinterCommand(BaseModel):
    action: Literal["run_linter"] = "run_linter"


class RegeneratePanelCommand(BaseModel):
    action: Literal["regenerate_panel"] = "regenerate_panel"
    index: int = Field(..., ge=0)


class RegenerateSegmentCommand(BaseModel):
    action: Literal["regenerate_panel_segment"] = "regenerate_panel_segment"
    index: int = Field(..., ge=0)
    segment: PanelSegment


class AddPanelCommand(BaseModel):
    action: Literal["add_panel"] = "add_panel"
    topic: str = Field(..., min_length=1)


class LockPanelCommand(BaseModel):
    action: Literal["lock_panel"] = "lock_panel"
    index: int = Field(..., ge=0)
    locked: bool = True
    segment: Optional[PanelSegment] = Field(None, description="Lock a single segment instead of the whole slot")


ControlCommand = Annotated[
    Union[
        PauseCommand,
        ResumeCommand,
        CancelCommand,
        RunLinterCommand,
        RegeneratePanelCommand,
        RegenerateSegmentCommand,
        AddPanelCommand,
        LockPanelCommand,
    ],
    Field(discriminator="action"),
]
