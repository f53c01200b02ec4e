"""
=============================================================================
BASE MIDDLEWARE INTERFACES
=============================================================================

Plain functions are the usual handlers, but stateful middleware (a limiter
holding counters, a logger holding its format) reads better as a class.
These base classes fix the call signature for each engine.

=============================================================================
THE THREE SHAPES
=============================================================================

    Middleware          __call__(ctx, next)                      PromiseApp
    CallbackMiddleware  __call__(request, response, advance)     CallbackApp
    ErrorMiddleware     __call__(error, request, response, advance)

The callback engine classifies instances by the arity of __call__, so an
ErrorMiddleware subclass is picked up as an error handler by plain
app.use() with no tagging.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Optional


class _Named:
    @property
    def name(self) -> str:
        """Get the middleware name for logging."""
        return self.__class__.__name__


class Middleware(_Named, ABC):
    """
    Promise-style middleware.

        class Timing(Middleware):
            async def __call__(self, ctx, next):
                start = time.perf_counter()
                await next()
                ctx.state["elapsed"] = time.perf_counter() - start
    """

    @abstractmethod
    def __call__(self, ctx: Any, next: Callable[[], Awaitable[None]]) -> Optional[Awaitable[None]]:
        """
        Process the context.

        Await next() to run the rest of the chain; do not call it twice.
        """


class CallbackMiddleware(_Named, ABC):
    """Callback-style middleware: call advance() to continue."""

    @abstractmethod
    def __call__(self, request: Any, response: Any, advance: Callable[..., None]) -> None:
        pass


class ErrorMiddleware(_Named, ABC):
    """
    Callback-style error handler.

    Recover by ending the response or by calling advance() to resume the
    chain. Calling advance(error) ends the run with the terminal fallback.
    """

    @abstractmethod
    def __call__(self, error: Any, request: Any, response: Any, advance: Callable[..., None]) -> None:
        pass
