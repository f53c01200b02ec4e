"""
=============================================================================
ACCESS LOG MIDDLEWARE
=============================================================================

Logs every request that goes through a PromiseApp, with timing, status and
a request id. It relies on onion ordering: the clock starts before next()
and stops after the awaited rest of the chain has unwound back to it.

    ┌──────────────────────────────────────────────────────┐
    │  AccessLogMiddleware                                 │
    │    start clock, assign request id                    │
    │    ┌──────────────────────────────────────────────┐  │
    │    │  await next()  ── every later handler ──     │  │
    │    └──────────────────────────────────────────────┘  │
    │    stop clock, set headers, emit one log line        │
    └──────────────────────────────────────────────────────┘

Register it FIRST so its timing covers the whole chain:

    app.use(AccessLogMiddleware())
    app.use(auth)
    app.use(handler)

=============================================================================
"""

import json
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any, Optional

from .base import Middleware


# Namespaced so access lines can be routed apart from engine diagnostics:
#   logging.getLogger("middlechain.access").addHandler(file_handler)
logger = logging.getLogger("middlechain.access")


@dataclass
class RequestLog:
    """
    Structured log entry for a request.

    Fields:
        request_id:     Short random id, echoed in X-Request-ID
        method:         HTTP method
        path:           Request path
        client_ip:      Peer address
        user_agent:     User-Agent header or "-"
        status_code:    Response status after the chain finished
        content_length: Response body size in bytes
        duration_ms:    Time spent in the chain
        timestamp:      When the request finished
        error:          Error type name when the chain raised, else None
    """

    request_id: str
    method: str
    path: str
    client_ip: str
    user_agent: str
    status_code: int
    content_length: int
    duration_ms: float
    timestamp: str
    error: Optional[str] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        entry = {
            "request_id": self.request_id,
            "method": self.method,
            "path": self.path,
            "client_ip": self.client_ip,
            "user_agent": self.user_agent,
            "status_code": self.status_code,
            "content_length": self.content_length,
            "duration_ms": round(self.duration_ms, 2),
            "timestamp": self.timestamp,
        }
        if self.error:
            entry["error"] = self.error
        return entry

    def to_text(self) -> str:
        """Apache-style single line."""
        line = (
            f'{self.client_ip or "-"} - - [{self.timestamp}] '
            f'"{self.method} {self.path}" {self.status_code} '
            f'{self.content_length} {self.duration_ms:.2f}ms'
        )
        if self.error:
            line += f" error={self.error}"
        return line


class AccessLogMiddleware(Middleware):
    """
    Request logging middleware for PromiseApp.

    Args:
        log_format: "text" (Apache-style line) or "json"
        include_request_id: Set X-Request-ID on the response
        include_response_time: Set X-Response-Time (ms) on the response
        log_level: Level for access lines
        skip_paths: Paths not to log (health checks are noisy)
    """

    def __init__(
        self,
        log_format: str = "text",
        include_request_id: bool = True,
        include_response_time: bool = True,
        log_level: int = logging.INFO,
        skip_paths: Optional[list[str]] = None,
    ):
        self.log_format = log_format
        self.include_request_id = include_request_id
        self.include_response_time = include_response_time
        self.log_level = log_level
        self.skip_paths = set(skip_paths or [])

    async def __call__(self, ctx: Any, next) -> None:
        # 8 hex chars is plenty to correlate lines within one service
        request_id = uuid.uuid4().hex[:8]
        ctx.state["request_id"] = request_id
        start_time = time.perf_counter()

        try:
            await next()
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            self._emit(ctx, request_id, duration_ms, error=type(e).__name__)
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000

        response = ctx.response
        if response is not None:
            if self.include_request_id:
                response.headers["X-Request-ID"] = request_id
            if self.include_response_time:
                response.headers["X-Response-Time"] = f"{duration_ms:.2f}ms"

        self._emit(ctx, request_id, duration_ms)

    def _emit(self, ctx: Any, request_id: str, duration_ms: float, error: Optional[str] = None) -> None:
        request, response = ctx.request, ctx.response
        path = getattr(request, "path", "-")
        if path in self.skip_paths:
            return

        client = getattr(request, "client_address", ("-", 0))
        entry = RequestLog(
            request_id=request_id,
            method=getattr(request, "method", "-"),
            path=path,
            client_ip=client[0] if client else "-",
            user_agent=getattr(request, "user_agent", "") or "-",
            # A raising chain has not reached the fallback yet
            status_code=500 if error else int(getattr(response, "status", 0) or 0),
            content_length=len(getattr(response, "body", b"") or b""),
            duration_ms=duration_ms,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
            error=error,
        )

        level = logging.ERROR if error else self.log_level
        if self.log_format == "json":
            logger.log(level, json.dumps(entry.to_dict()))
        else:
            logger.log(level, entry.to_text())
