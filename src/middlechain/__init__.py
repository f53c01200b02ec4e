"""
=============================================================================
MIDDLECHAIN: MIDDLEWARE DISPATCH ENGINES
=============================================================================

Two engines that run an ordered chain of handlers against one shared
request/response, each handler deciding whether to continue, short-circuit
or fail:

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   CallbackApp   Express-style. advance() / advance(error).          │
    │                 Every step re-entered from a task queue, so a       │
    │                 million-handler chain never grows the call stack.   │
    │                 Error handlers: (error, request, response, advance) │
    │                                                                      │
    │   PromiseApp    Koa-style. await next() returns a future for the    │
    │                 rest of the chain; before/after work nests like an  │
    │                 onion. Calling next() twice fails the run.          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Unhandled failures in either engine are reported to a diagnostic sink and
turned into a 500 "Internal Server Error" response.

=============================================================================
QUICK START
=============================================================================

    from middlechain import CallbackApp, HTTPRequest, HTTPResponse

    app = CallbackApp()

    def stamp(request, response, advance):
        response.set_header("X-Chain", "middlechain")
        advance()

    def hello(request, response, advance):
        response.end("Hello, World!")

    app.use(stamp).use(hello)

    response = HTTPResponse()
    app(HTTPRequest(path="/"), response)
    assert response.text == "Hello, World!"

=============================================================================
"""

__version__ = "1.0.0"

from .app import CallbackApp, PromiseApp
from .config import EngineConfig
from .core import (
    HandlerRegistry,
    ErrorHandler,
    error_handler,
    DeferredQueue,
    LoopScheduler,
    compose,
)
from .diagnostics import FALLBACK_BODY, log_error, send_fallback, setup_logging
from .errors import (
    MiddlewareError,
    NextCalledMultipleTimes,
    InvalidHandlerError,
    ResponseFinishedError,
)
from .http import Context, HTTPRequest, HTTPResponse, HTTPStatus

__all__ = [
    "CallbackApp",
    "PromiseApp",
    "EngineConfig",
    "HandlerRegistry",
    "ErrorHandler",
    "error_handler",
    "DeferredQueue",
    "LoopScheduler",
    "compose",
    "FALLBACK_BODY",
    "log_error",
    "send_fallback",
    "setup_logging",
    "MiddlewareError",
    "NextCalledMultipleTimes",
    "InvalidHandlerError",
    "ResponseFinishedError",
    "Context",
    "HTTPRequest",
    "HTTPResponse",
    "HTTPStatus",
]
