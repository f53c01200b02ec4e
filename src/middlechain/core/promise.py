"""
=============================================================================
PROMISE-STYLE DISPATCHER
=============================================================================

Composes a list of Koa-style handlers into one callable returning an
asyncio Future. Each handler receives the shared context and ``next``, a
function returning a future for "the rest of the chain":

    async def timing(ctx, next):
        start = time.perf_counter()
        await next()                           # everything downstream
        ctx.response.set_header("X-Response-Time", f"{time.perf_counter() - start:.3f}")

    def passthrough(ctx, next):
        return next()                          # plain functions work too

=============================================================================
ONION ORDERING
=============================================================================

Because every handler genuinely awaits the future of the step nested inside
it, "before" work runs in registration order and "after" work unwinds in
reverse:

    ┌──────────────────────────────────────────────┐
    │  A before                                    │
    │  ┌────────────────────────────────────────┐  │
    │  │  B before                              │  │
    │  │  ┌──────────────────────────────────┐  │  │
    │  │  │  terminal next / end of chain    │  │  │
    │  │  └──────────────────────────────────┘  │  │
    │  │  B after                               │  │
    │  └────────────────────────────────────────┘  │
    │  A after                                     │
    └──────────────────────────────────────────────┘

=============================================================================
WHY FUTURES AND NOT NESTED AWAITS?
=============================================================================

If dispatch(i) were a coroutine that awaited dispatch(i + 1) directly, a
chain of N pass-through handlers would be N coroutines deep, and resuming
it would recurse N frames. That hits RecursionError around N = 1000.

Instead each step is its own Future:

    dispatch(i) ──► step future (pending)
                    loop.call_soon(run handler i)      ← fresh loop turn
                    handler result:
                      None       → step resolved
                      awaitable  → adopted: its outcome is copied into
                                   the step future by a done-callback
                      raises     → step rejected

Done-callbacks are themselves scheduled by the loop one at a time, so
settling a chain of any length never deepens the stack.

=============================================================================
THE DOUBLE-NEXT DEFECT
=============================================================================

    async def broken(ctx, next):
        await next()
        await next()      ← would run everything downstream twice

dispatch() remembers the last index it dispatched. Asking for an index at
or below it returns a rejected future carrying NextCalledMultipleTimes,
and nothing runs twice. The error is also recorded on the run, so the
run's own future rejects with it when the chain settles, even when the
handler never awaited the second next():

    def sloppy(ctx, next):
        next()
        next()            ← run still fails with NextCalledMultipleTimes

=============================================================================
"""

import asyncio
import inspect
import logging
from functools import partial
from typing import Any, Awaitable, Callable, Optional, Sequence

from ..errors import InvalidHandlerError, NextCalledMultipleTimes


logger = logging.getLogger(__name__)


Next = Callable[[], "asyncio.Future"]
PromiseHandler = Callable[[Any, Next], Optional[Awaitable[Any]]]
Composed = Callable[..., "asyncio.Future"]


def compose(handlers: Sequence[PromiseHandler]) -> Composed:
    """
    Compose handlers into composed(context, next=None) -> Future.

    ``next``, when given, is the terminal continuation: it runs after the
    last handler calls its own next(), with the same (context, next)
    signature. The handler sequence is captured as-is, so pass an immutable
    snapshot.

    Must be called from code running inside an event loop when the
    composed function is invoked.
    """
    for handler in handlers:
        if not callable(handler):
            raise InvalidHandlerError(handler)

    def composed(context: Any, next: Optional[PromiseHandler] = None) -> asyncio.Future:
        return PromiseRun(handlers, context, terminal=next).start()

    return composed


class PromiseRun:
    """
    One execution of a composed chain.

    Holds the context, the handler snapshot and the index of the last
    dispatched step. Nothing here is shared with other runs.
    """

    def __init__(
        self,
        handlers: Sequence[PromiseHandler],
        context: Any,
        terminal: Optional[PromiseHandler] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self._handlers = handlers
        self.context = context
        self._terminal = terminal
        self._loop = loop or asyncio.get_running_loop()
        self.index = -1

        # First repeated next() of this run; fails the run even if the
        # handler never awaits the rejected future it got back
        self.violation: Optional[NextCalledMultipleTimes] = None

    def start(self) -> asyncio.Future:
        """Dispatch step 0; the returned future settles with the whole run."""
        outcome = self._loop.create_future()
        self.dispatch(0).add_done_callback(partial(self._settle, outcome))
        return outcome

    def dispatch(self, i: int) -> asyncio.Future:
        """
        Return a future for "steps i and everything after".

        The handler at ``i`` is not run here: it is scheduled on a fresh
        loop turn, so calling next() never runs downstream code inline.
        """
        if i <= self.index:
            error = NextCalledMultipleTimes(i)
            if self.violation is None:
                self.violation = error
            logger.debug(f"next() called again for step {i}; failing the run")
            future = _rejected(self._loop, error)
            # Retrieved here: the run reports it, awaited or not
            future.exception()
            return future
        self.index = i

        if i < len(self._handlers):
            handler = self._handlers[i]
        elif i == len(self._handlers):
            handler = self._terminal
        else:
            handler = None

        if handler is None:
            return _resolved(self._loop)

        step = self._loop.create_future()
        self._loop.call_soon(self._run_step, step, handler, i)
        return step

    def _run_step(self, step: asyncio.Future, handler: PromiseHandler, i: int) -> None:
        """Invoke one handler and tie its outcome to ``step``."""
        if step.done():
            return

        try:
            result = handler(self.context, partial(self.dispatch, i + 1))
        except Exception as exc:
            step.set_exception(exc)
            return

        if inspect.isawaitable(result):
            _adopt(asyncio.ensure_future(result, loop=self._loop), step)
        else:
            step.set_result(None)

    def _settle(self, outcome: asyncio.Future, root: asyncio.Future) -> None:
        """Root step settled: a recorded violation overrides its outcome."""
        if self.violation is not None and not outcome.done():
            if not root.cancelled():
                root.exception()
            outcome.set_exception(self.violation)
            return
        _copy_outcome(outcome, root)


# =============================================================================
# FUTURE HELPERS
# =============================================================================

def _resolved(loop: asyncio.AbstractEventLoop) -> asyncio.Future:
    future = loop.create_future()
    future.set_result(None)
    return future


def _rejected(loop: asyncio.AbstractEventLoop, error: BaseException) -> asyncio.Future:
    future = loop.create_future()
    future.set_exception(error)
    return future


def _adopt(inner: asyncio.Future, step: asyncio.Future) -> None:
    """Copy ``inner``'s outcome into ``step`` once inner settles."""
    inner.add_done_callback(partial(_copy_outcome, step))


def _copy_outcome(step: asyncio.Future, inner: asyncio.Future) -> None:
    if step.done():
        # Retrieve the exception so asyncio does not report it as lost
        if not inner.cancelled():
            inner.exception()
        return
    if inner.cancelled():
        step.cancel()
        return
    error = inner.exception()
    if error is not None:
        step.set_exception(error)
    else:
        step.set_result(None)
