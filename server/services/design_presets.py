# services/design_presets.py

"""
Design presets installed when a job does not keep the previous design
"""

from typing import List, NamedTuple

from server.models.job import CIColors


class DesignPreset(NamedTuple):
    name: str
    colors: CIColors


DESIGN_PRESETS: List[DesignPreset] = [
    DesignPreset(
        name="Slate Blue (Corporate)",
        colors=CIColors(
            primary="#2D6CDF",
            secondary="#0F172A",
            accent="#60A5FA",
            text_primary="#E5E7EB",
            text_secondary="#9CA3AF",
        )
    ),
    DesignPreset(
        name="Neutral Dark",
        colors=CIColors(
            primary="#3B82F6",
            secondary="#0F172A",
            accent="#22D3EE",
            text_primary="#E5E7EB",
            text_secondary="#94A3B8",
        )
    ),
]


def default_colors() -> CIColors:
    return DESIGN_PRESETS[0].colors.model_copy()
