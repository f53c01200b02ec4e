"""
=============================================================================
CALLBACK-STYLE DISPATCHER
=============================================================================

Drives one run of an Express-style chain. Each handler receives the request,
the response and an ``advance`` continuation:

    def auth(request, response, advance):
        if not request.get_header("authorization"):
            response.status = 401
            response.end("login required")      # short-circuit
            return
        advance()                               # continue the chain

    def flaky(request, response, advance):
        advance(RuntimeError("backend down"))   # fail the run

=============================================================================
RUN STATE MACHINE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   READY ──start()──► RUNNING ──advance()──────► ADVANCING ──┐       │
    │                         ▲          │                         │       │
    │                         │          └─advance(err)─► ERRORED  │       │
    │                         │                             │      │       │
    │                         └──── handler invoked ◄───────┴──────┘       │
    │                                                                      │
    │   cursor exhausted / fallback sent ──────────────────► DONE          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Every transition into a handler goes through the scheduler, so the handler
body always runs on a fresh turn, after the caller of advance() returned.

=============================================================================
SINGLE EXECUTION PER STEP
=============================================================================

advance() reads the slot at the cursor and increments the cursor *before*
scheduling the invocation. A duplicate advance() therefore targets the next
slot, never one already passed: each index runs at most once per run.

=============================================================================
ERROR PATH
=============================================================================

    advance(err) or handler raises
            │
            ▼  (fresh turn)
    first error handler in the whole stack?
            │
            ├── yes ──► handler(err, request, response, advance)
            │             ├── advance()      resume normal chain at cursor
            │             ├── advance(err2)  terminal (see below)
            │             └── raises         terminal
            │
            └── no  ──► on_unhandled(err): report + 500 fallback, DONE

The lookup always returns the *first* error handler, so an error escaping
that same handler cannot be routed anywhere else: it is terminal.

=============================================================================
"""

import inspect
import logging
from enum import Enum
from typing import Any, Callable, Optional

from .registry import HandlerStack, handler_name
from .scheduler import Scheduler


logger = logging.getLogger(__name__)


class RunState(Enum):
    """States of one callback-engine run."""

    READY = "ready"          # Created, nothing dispatched yet
    RUNNING = "running"      # A handler owns the run
    ADVANCING = "advancing"  # Next handler scheduled
    ERRORED = "errored"      # Error path scheduled
    DONE = "done"            # Chain exhausted or terminal failure handled


class CallbackRun:
    """
    One execution of the chain for one inbound request.

    Owns the cursor and the pending error; shares the HandlerStack (read
    only) with every other run of the same app.

    Args:
        handlers:     Snapshot to execute
        request:      Inbound request, passed through untouched
        response:     Outbound response, passed through untouched
        scheduler:    Deferred re-entry primitive
        on_unhandled: Called with the error when nobody handles it
        on_exhausted: Called when the cursor runs off the end of the chain
    """

    def __init__(
        self,
        handlers: HandlerStack,
        request: Any,
        response: Any,
        scheduler: Scheduler,
        on_unhandled: Callable[[Any], None],
        on_exhausted: Optional[Callable[[], None]] = None,
    ):
        self._handlers = handlers
        self.request = request
        self.response = response
        self._scheduler = scheduler
        self._on_unhandled = on_unhandled
        self._on_exhausted = on_exhausted

        self.cursor = 0
        self.state = RunState.READY
        self.pending_error: Any = None
        self._in_error_handler = False

    def start(self) -> "CallbackRun":
        """Schedule the first handler."""
        if self.state is not RunState.READY:
            raise RuntimeError(f"run already started (state={self.state.value})")
        self.state = RunState.RUNNING
        self.advance()
        return self

    @property
    def done(self) -> bool:
        return self.state is RunState.DONE

    # =========================================================================
    # THE CONTINUATION
    # =========================================================================

    def advance(self, error: Any = None) -> None:
        """
        Continue the chain, or fail it when ``error`` is not None.

        Never runs anything inline; the next step is always scheduled.
        """
        if self.state is RunState.DONE:
            if error is not None:
                logger.warning(
                    f"Error signalled after the run finished: {error!r}",
                    exc_info=error if isinstance(error, BaseException) else None,
                )
            else:
                logger.debug("advance() called after the run finished; ignored")
            return

        if error is not None:
            self._fail(error)
            return

        index = self._next_index()
        if index is None:
            self._scheduler.call_soon(self._exhaust)
            return

        self.state = RunState.ADVANCING
        self._scheduler.call_soon(self._invoke, index)

    def _next_index(self) -> Optional[int]:
        """
        Claim the next normal handler's slot, moving the cursor past it.

        Error handlers sitting in the normal flow are stepped over; they
        only run on the error path.
        """
        handlers = self._handlers
        total = len(handlers)
        while self.cursor < total:
            index = self.cursor
            self.cursor += 1
            if not handlers.is_error_handler(index):
                return index
        return None

    # =========================================================================
    # STEPS (always entered from the scheduler)
    # =========================================================================

    def _invoke(self, index: int) -> None:
        """Run the normal handler at ``index``."""
        if self.state is RunState.DONE:
            return

        handler = self._handlers[index]
        self.state = RunState.RUNNING
        self._in_error_handler = False
        try:
            result = handler(self.request, self.response, self.advance)
        except Exception as exc:
            self.advance(exc)
            return

        if inspect.isawaitable(result):
            self._reject_awaitable(handler, result)

    def _exhaust(self) -> None:
        """The cursor ran off the end of the chain."""
        # A failure signalled on the same turn takes precedence
        if self.state is RunState.DONE or self.pending_error is not None:
            return
        self.state = RunState.DONE
        if self._on_exhausted is not None:
            self._on_exhausted()

    def _fail(self, error: Any) -> None:
        """Record the pending error and schedule the error path."""
        if self.pending_error is not None:
            # At most one error in flight per run
            logger.warning(
                f"Dropping error raised while another is pending: {error!r}",
                exc_info=error if isinstance(error, BaseException) else None,
            )
            return

        self.state = RunState.ERRORED
        self.pending_error = error
        self._scheduler.call_soon(self._handle_error)

    def _handle_error(self) -> None:
        """Route the pending error to the first error handler, or terminate."""
        error, self.pending_error = self.pending_error, None
        if error is None or self.state is RunState.DONE:
            return

        index = self._handlers.first_error_handler()
        if index is None or self._in_error_handler:
            self._terminate(error)
            return

        handler = self._handlers[index]
        logger.debug(f"Routing {type(error).__name__} to error handler {handler_name(handler)}")

        self.state = RunState.RUNNING
        self._in_error_handler = True
        try:
            result = handler(error, self.request, self.response, self.advance)
        except Exception as exc:
            self._terminate(exc)
            return

        if inspect.isawaitable(result):
            self._reject_awaitable(handler, result)

    def _terminate(self, error: Any) -> None:
        self.state = RunState.DONE
        self._on_unhandled(error)

    def _reject_awaitable(self, handler: Callable, result: Any) -> None:
        # Coroutines never get driven here; close them so Python does not
        # warn about them never being awaited.
        close = getattr(result, "close", None)
        if close is not None:
            close()
        self.advance(TypeError(
            f"{handler_name(handler)} returned an awaitable; "
            f"async middleware belongs on PromiseApp"
        ))
