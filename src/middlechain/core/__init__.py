"""
=============================================================================
CORE DISPATCH COMPONENTS
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   HandlerRegistry ──handlers()──► HandlerStack (shared, read-only)  │
    │                                        │                             │
    │               ┌────────────────────────┴──────────────┐              │
    │               ▼                                       ▼              │
    │         CallbackRun                              PromiseRun          │
    │   cursor + advance(error?)                 index + dispatch(i)       │
    │   steps via Scheduler                      steps via asyncio futures │
    │   (DeferredQueue / LoopScheduler)                                    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .registry import (
    HandlerRegistry,
    HandlerStack,
    ErrorHandler,
    error_handler,
    is_error_handler,
    positional_arity,
)
from .scheduler import Scheduler, DeferredQueue, LoopScheduler, Task
from .callback import CallbackRun, RunState
from .promise import PromiseRun, compose

__all__ = [
    "HandlerRegistry",
    "HandlerStack",
    "ErrorHandler",
    "error_handler",
    "is_error_handler",
    "positional_arity",
    "Scheduler",
    "DeferredQueue",
    "LoopScheduler",
    "Task",
    "CallbackRun",
    "RunState",
    "PromiseRun",
    "compose",
]
