"""
Models Module
=============

Color, rule and project-state models.
"""

from gif_alchemy.models.color import CHROMA_KEY, Color, RecolorRule, RemovalSpec
from gif_alchemy.models.project import (
    EditConfig,
    InvalidTransitionError,
    ProcessingMode,
    ProcessingStatus,
    ProjectState,
)


__all__ = [
    "CHROMA_KEY",
    "Color",
    "RecolorRule",
    "RemovalSpec",
    "EditConfig",
    "InvalidTransitionError",
    "ProcessingMode",
    "ProcessingStatus",
    "ProjectState",
]
