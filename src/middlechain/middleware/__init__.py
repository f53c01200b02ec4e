"""
=============================================================================
READY-MADE MIDDLEWARE
=============================================================================

Base classes for class-based handlers, plus the access logger.

Middleware implements CROSS-CUTTING CONCERNS: things every request goes
through that are not business logic (logging, auth, error pages, timing).

AccessLogMiddleware:
    Logs every request with timing, status and a request id. Written for
    PromiseApp, where onion ordering lets one handler see both the start
    and the end of the chain.

=============================================================================
"""

from .base import Middleware, CallbackMiddleware, ErrorMiddleware
from .logging import AccessLogMiddleware, RequestLog

__all__ = [
    # Base classes
    "Middleware",
    "CallbackMiddleware",
    "ErrorMiddleware",

    # Built-in middleware
    "AccessLogMiddleware",
    "RequestLog",
]
