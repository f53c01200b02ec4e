"""
=============================================================================
APPLICATIONS
=============================================================================

The two entry points external transport code talks to. Both expose the
same registration surface and differ only in how a run is executed:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   CallbackApp                        PromiseApp                      │
    │   ───────────                        ──────────                      │
    │   app.use(h)                         app.use(h)                      │
    │   h(request, response, advance)      h(ctx, next)                    │
    │   h(err, request, response, advance) (no error handlers)             │
    │                                                                      │
    │   app(request, response) -> None     app(request, response) -> Future│
    │   fire-and-forget: completion is     await it to know when the run   │
    │   visible on the response only       (and its error boundary) settled│
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
USAGE
=============================================================================

    app = CallbackApp()

    def hello(request, response, advance):
        response.end("hello")

    app.use(hello)
    app(HTTPRequest(path="/"), HTTPResponse())

    papp = PromiseApp()

    async def hello(ctx, next):
        ctx.response.end("hello")

    papp.use(hello)

    await papp(HTTPRequest(path="/"), HTTPResponse())

=============================================================================
UNHANDLED FAILURES
=============================================================================

Both apps end a failed run the same way:

    1. on_error(error)                  ← diagnostic sink, default log_error
    2. status = 500, end("Internal Server Error")
    3. run terminates; nothing is re-raised to the caller

=============================================================================
"""

import asyncio
import logging
from typing import Any, Callable, Optional

from .config import EngineConfig
from .core.callback import CallbackRun
from .core.promise import PromiseHandler, compose
from .core.registry import ErrorHandler, Handler, HandlerRegistry
from .core.scheduler import DeferredQueue, Scheduler
from .diagnostics import log_error, send_fallback
from .http.context import Context


logger = logging.getLogger(__name__)


ErrorSink = Callable[[Any], None]


class _BaseApp:
    """Registration surface and failure handling shared by both apps."""

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        on_error: Optional[ErrorSink] = None,
    ):
        self.config = config or EngineConfig()
        self.config.validate()  # Fail-fast on invalid config

        self._registry = HandlerRegistry()

        # Diagnostic sink; external code may replace it at any time
        self.on_error: ErrorSink = on_error or log_error

    def use(self, handler: Handler):
        """
        Append a handler to the chain.

        Handlers run in the order added. Returns self so calls can be
        chained:

            app.use(log).use(auth).use(handle)
        """
        self._registry.register(handler)
        return self

    @property
    def registry(self) -> HandlerRegistry:
        return self._registry

    def __len__(self) -> int:
        return len(self._registry)

    def _unhandled(self, request: Any, response: Any, error: Any) -> None:
        """Report a failure nobody recovered and send the fallback."""
        try:
            self.on_error(error)
        except Exception as e:
            # A broken sink must not reopen the boundary
            logger.exception(f"Diagnostic sink failed while reporting {error!r}: {e}")
        send_fallback(response, self.config.fallback_status)

    def _check_finished(self, request: Any, response: Any) -> None:
        """Exhausted chain: optionally warn when no handler responded."""
        if not self.config.warn_unhandled:
            return
        if response is not None and getattr(response, "finished", False):
            return
        method = getattr(request, "method", "-")
        path = getattr(request, "path", "-")
        logger.warning(f"Chain exhausted without a response: {method} {path}")


class CallbackApp(_BaseApp):
    """
    Express-style app driven by a deferred task queue.

    Args:
        config:        Engine configuration
        scheduler:     Deferred re-entry primitive. Defaults to a
                       DeferredQueue drained on every call; pass a
                       LoopScheduler when handlers resume from asyncio.
        on_error:      Diagnostic sink for unhandled failures
        final_handler: Optional final_handler(request, response), run when
                       the chain is exhausted
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        scheduler: Optional[Scheduler] = None,
        on_error: Optional[ErrorSink] = None,
        final_handler: Optional[Callable[[Any, Any], Any]] = None,
    ):
        super().__init__(config, on_error)
        self.scheduler = scheduler or DeferredQueue()
        self.final_handler = final_handler

    def use_error(self, handler: Handler) -> "CallbackApp":
        """
        Register an error handler without relying on its arity.

        The handler is called as handler(error, request, response, advance).
        """
        self._registry.register(
            handler if isinstance(handler, ErrorHandler) else ErrorHandler(handler)
        )
        return self

    def __call__(self, request: Any = None, response: Any = None) -> None:
        """
        Run the chain for one request.

        Returns nothing. With the default DeferredQueue every handler that
        advances synchronously has run by the time this returns.
        """
        run = CallbackRun(
            self._registry.handlers(),
            request,
            response,
            self.scheduler,
            on_unhandled=lambda error: self._unhandled(request, response, error),
            on_exhausted=lambda: self._exhausted(request, response),
        )
        run.start()
        self.scheduler.drain()

    def _exhausted(self, request: Any, response: Any) -> None:
        if self.final_handler is None:
            self._check_finished(request, response)
            return
        try:
            self.final_handler(request, response)
        except Exception as exc:
            self._unhandled(request, response, exc)


class PromiseApp(_BaseApp):
    """
    Koa-style app built on asyncio futures.

    Args:
        config:        Engine configuration
        on_error:      Diagnostic sink for unhandled failures
        final_handler: Optional terminal continuation final_handler(ctx, next),
                       run when the last handler calls next()
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        on_error: Optional[ErrorSink] = None,
        final_handler: Optional[PromiseHandler] = None,
    ):
        super().__init__(config, on_error)
        self.final_handler = final_handler

        # Composition cached per registry snapshot
        self._composed = None
        self._composed_from = None

    def create_context(self, request: Any = None, response: Any = None) -> Context:
        """Build the per-run context. Override to attach more state."""
        return Context(request=request, response=response)

    def __call__(self, request: Any = None, response: Any = None) -> asyncio.Future:
        """
        Run the chain for one request.

        Must be called with an event loop running. The returned future
        resolves to the run's Context once the chain and the terminal error
        boundary have settled; it never carries a handler's exception.
        """
        context = self.create_context(request, response)
        loop = asyncio.get_running_loop()
        return loop.create_task(self.handle(context))

    async def handle(self, context: Context) -> Context:
        """Execute the chain against an existing context."""
        fn = self._chain()
        try:
            await fn(context, self.final_handler)
        except Exception as exc:
            self._unhandled(context.request, context.response, exc)
        else:
            if self.final_handler is None:
                self._check_finished(context.request, context.response)
        return context

    def _chain(self):
        stack = self._registry.handlers()
        if self._composed_from is not stack:
            self._composed = compose(stack)
            self._composed_from = stack
        return self._composed
