"""
Rendering: потоковые ответы и индикатор активности
"""

from .activity import ActivityIndicator
from .renderer import (
    IncrementalRenderer,
    RenderOutcome,
    RenderResult,
    RenderSession,
)

__all__ = [
    "ActivityIndicator",
    "IncrementalRenderer",
    "RenderOutcome",
    "RenderResult",
    "RenderSession",
]
