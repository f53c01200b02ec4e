"""
=============================================================================
DEFERRED TASK QUEUE
=============================================================================

The callback engine never calls the next handler directly. Every step is
submitted as a task to a queue, and a single loop pulls tasks off the queue
one at a time. This is what keeps a million-handler chain from growing the
Python call stack.

=============================================================================
WHY NOT JUST CALL THE NEXT HANDLER?
=============================================================================

    BAD APPROACH (direct recursion):
    ────────────────────────────────
    def advance():
        handler = handlers[cursor]; cursor += 1
        handler(request, response, advance)     ← stack frame per step

    h0 → advance → h1 → advance → h2 → ... → RecursionError at ~1000

    GOOD APPROACH (deferred re-entry):
    ──────────────────────────────────
    def advance():
        handler = handlers[cursor]; cursor += 1
        queue.call_soon(handler, request, response, advance)
        return                                  ← stack unwinds here

    drain loop: pop → run h0 (calls advance, returns) → pop → run h1 ...

    Stack depth stays constant; the queue holds the pending work instead.

=============================================================================
QUEUE ARCHITECTURE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         DeferredQueue                                │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   call_soon(func, *args)                                            │
    │        │                                                             │
    │        ▼                                                             │
    │   ┌─────────────────────────────────────────────────────────────┐   │
    │   │  [Task 1] [Task 2] [Task 3] ...          FIFO (deque)        │   │
    │   └──────────────────────┬──────────────────────────────────────┘   │
    │                          │ popleft()                                 │
    │                          ▼                                           │
    │   drain(): while tasks: run one task                                │
    │                                                                      │
    │   • One logical thread of control, no locks                         │
    │   • drain() inside drain() is a no-op: the outer loop owns the turn │
    │   • A task that raises is logged; the loop keeps going              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

For handlers that resume from real asynchronous events (timers, sockets,
other coroutines), use LoopScheduler, which hands tasks to a running
asyncio event loop instead.

=============================================================================
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Optional


logger = logging.getLogger(__name__)


@dataclass
class Task:
    """
    A deferred function call: "call this function with these arguments later".

    Attributes:
        func: The function to execute.
        args: Positional arguments for the function.
        submitted_at: Time the task was queued (monotonic clock).
    """

    func: Callable[..., Any]
    args: tuple = ()
    submitted_at: float = 0.0


class Scheduler(ABC):
    """
    The deferred re-entry primitive used by the callback engine.

    call_soon() must never run the function inline: the caller's frame has
    to return before the task executes.
    """

    @abstractmethod
    def call_soon(self, func: Callable[..., Any], *args: Any) -> None:
        """Queue func(*args) to run on a later turn."""

    @abstractmethod
    def drain(self) -> int:
        """
        Run queued tasks if this scheduler is self-driven.

        Returns:
            Number of tasks executed by this call.
        """


class DeferredQueue(Scheduler):
    """
    Self-driven FIFO task queue.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                      DeferredQueue Usage                             │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   queue = DeferredQueue()                                           │
    │   queue.call_soon(step, run)     # queued, not executed             │
    │   queue.drain()                  # runs step and anything it queues │
    │                                                                      │
    │   queue.stats                    # {"pending": 0, "completed": ...} │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

    Continuations invoked outside of a drain (for example stored and called
    later by test code) sit in the queue until the next drain(); the
    callback app drains on every invocation.
    """

    def __init__(self):
        self._tasks: Deque[Task] = deque()
        self._draining = False

        # Metrics
        self.tasks_completed = 0
        self.tasks_failed = 0

    def call_soon(self, func: Callable[..., Any], *args: Any) -> None:
        self._tasks.append(Task(func, args, time.monotonic()))

    def drain(self) -> int:
        """
        Main queue loop.

        Runs until the queue is empty, including tasks queued by the tasks
        it runs. Re-entrant calls return 0 immediately.
        """
        if self._draining:
            return 0

        self._draining = True
        executed = 0
        try:
            while self._tasks:
                task = self._tasks.popleft()
                self._execute_task(task)
                executed += 1
        finally:
            self._draining = False

        return executed

    def _execute_task(self, task: Task) -> None:
        """
        Execute a single task.

        Dispatch steps catch their handlers' exceptions themselves, so what
        reaches here is a bug outside any handler (in an exhaustion hook,
        say). It is logged and the loop moves on
        to other runs' tasks.
        """
        try:
            task.func(*task.args)
            self.tasks_completed += 1
        except Exception as e:
            self.tasks_failed += 1
            logger.exception(f"Deferred task {getattr(task.func, '__qualname__', task.func)!r} failed: {e}")

    @property
    def pending(self) -> int:
        """Number of queued tasks."""
        return len(self._tasks)

    @property
    def stats(self) -> dict:
        return {
            "pending": self.pending,
            "completed": self.tasks_completed,
            "failed": self.tasks_failed,
        }

    def __len__(self) -> int:
        return len(self._tasks)


class LoopScheduler(Scheduler):
    """
    Scheduler backed by an asyncio event loop.

    Each task runs on its own loop iteration via loop.call_soon(). The loop
    drives execution, so drain() does nothing.

        async def main():
            app = CallbackApp(scheduler=LoopScheduler())
            ...
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        # Bound lazily so the scheduler can be built before the loop runs
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def call_soon(self, func: Callable[..., Any], *args: Any) -> None:
        self.loop.call_soon(func, *args)

    def drain(self) -> int:
        return 0
