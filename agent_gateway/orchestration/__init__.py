"""
Tool-calling orchestration.

Provides the bounded model/tool loop and the observers that report on it.
"""

from .hooks import LoggingObserver, LoopObserver, TracingObserver
from .loop import MAX_ITERATIONS_MESSAGE, LoopResult, ToolCallingLoop

__all__ = [
    "LoggingObserver",
    "LoopObserver",
    "TracingObserver",
    "MAX_ITERATIONS_MESSAGE",
    "LoopResult",
    "ToolCallingLoop",
]
