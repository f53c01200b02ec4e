"""
=============================================================================
MIDDLEWARE ERRORS
=============================================================================

Exceptions raised by the dispatch engines themselves. Errors raised by
handlers are never wrapped in these: they travel through the error channel
as-is, so error handlers and the diagnostic sink see the original type.

=============================================================================
ERROR TAXONOMY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                       WHERE ERRORS COME FROM                        │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Handler raises synchronously   ──► caught at the dispatch step     │
    │                                      and routed like advance(err)   │
    │                                                                      │
    │   Handler's awaitable fails      ──► propagates through the future  │
    │                                      chain to the nearest boundary  │
    │                                                                      │
    │   next() called twice            ──► NextCalledMultipleTimes        │
    │                                      (always fatal to the run)      │
    │                                                                      │
    │   Nobody handles it              ──► diagnostic sink + fallback     │
    │                                      500 "Internal Server Error"    │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""


class MiddlewareError(Exception):
    """Base class for errors raised by the dispatch engines."""


class NextCalledMultipleTimes(MiddlewareError):
    """
    A continuation was invoked more than once for its step.

    In a naive composition, calling next() twice re-runs the rest of the
    chain. Here the second call fails the run instead.
    """

    def __init__(self, index: int, message: str = "continuation invoked more than once for its step"):
        super().__init__(message)
        self.index = index  # Step the duplicate call tried to dispatch


class InvalidHandlerError(MiddlewareError, TypeError):
    """Raised when something that is not callable is registered as a handler."""

    def __init__(self, handler: object):
        super().__init__(
            f"middleware must be callable, got {type(handler).__name__}"
        )
        self.handler = handler


class ResponseFinishedError(MiddlewareError):
    """Raised when writing to a response that has already been ended."""
