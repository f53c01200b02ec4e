"""
=============================================================================
DIAGNOSTICS: ERROR REPORTING AND THE TERMINAL FALLBACK
=============================================================================

When a run fails and no handler recovers it, two things happen, always in
this order:

    1. The error is handed to the DIAGNOSTIC SINK
       └── a single-argument callable: on_error(error)
       └── default: log_error(), which logs to "middlechain.errors"

    2. The TERMINAL FALLBACK is written to the response
       └── status 500 (configurable within 5xx)
       └── body exactly "Internal Server Error"

The run then terminates. The error is never re-raised past the boundary.

=============================================================================
REDIRECTING THE SINK
=============================================================================

The sink is the only seam external code needs to capture failures:

    app = CallbackApp(on_error=sentry_sdk.capture_exception)
    app.on_error = reported.append          # in tests

=============================================================================
"""

import json
import logging
import traceback
from typing import Any, Optional

from .config import EngineConfig
from .http.status_codes import HTTPStatus


# ═══════════════════════════════════════════════════════════════════════════
# LOGGER CONFIGURATION
# ═══════════════════════════════════════════════════════════════════════════
# Unhandled-error reports go to their own namespaced logger so they can be
# routed separately:
#   logging.getLogger("middlechain.errors").addHandler(alert_handler)
# ═══════════════════════════════════════════════════════════════════════════

logger = logging.getLogger(__name__)
error_logger = logging.getLogger("middlechain.errors")


FALLBACK_BODY = "Internal Server Error"


def log_error(error: Any) -> None:
    """
    Default diagnostic sink.

    Logs the error with its traceback when it is an exception. Handlers may
    signal failure with any non-None value (advance("boom") is legal), so
    plain values are logged without one.
    """
    if isinstance(error, BaseException):
        error_logger.error(
            f"Unhandled middleware error: {type(error).__name__}: {error}",
            exc_info=(type(error), error, error.__traceback__),
        )
    else:
        error_logger.error(f"Unhandled middleware error: {error!r}")


def send_fallback(response: Any, status: int = HTTPStatus.INTERNAL_SERVER_ERROR) -> bool:
    """
    Write the terminal fallback onto a response.

    Args:
        response: The run's response, or None when the app was invoked
                  without one.
        status:   A 5xx status code.

    Returns:
        True if the fallback was written, False if there was nothing to
        write to (no response, or a response some handler already ended).
    """
    if response is None:
        logger.debug("No response object; fallback skipped")
        return False

    if getattr(response, "finished", False):
        logger.warning("Response already finished; fallback not sent")
        return False

    response.status = status
    # Discard whatever a handler wrote before failing; the body is exact
    body = getattr(response, "body", None)
    if isinstance(body, (bytes, bytearray, str)):
        response.body = body[:0]
    headers = getattr(response, "headers", None)
    if isinstance(headers, dict):
        headers["Content-Type"] = "text/plain; charset=utf-8"
    response.end(FALLBACK_BODY)
    return True


# =============================================================================
# LOGGING SETUP
# =============================================================================

class JsonFormatter(logging.Formatter):
    """One JSON object per line, for log aggregators."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "time": self.formatTime(record, "%Y-%m-%d %H:%M:%S"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = "".join(traceback.format_exception(*record.exc_info)).rstrip()
        return json.dumps(payload)


def setup_logging(config: Optional[EngineConfig] = None) -> None:
    """Configure logging based on config."""
    config = config or EngineConfig()
    level = config.level

    if config.log_format == "json":
        handler = logging.StreamHandler()
        handler.setFormatter(JsonFormatter())
        logging.basicConfig(level=level, handlers=[handler])
    else:
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    logging.getLogger("middlechain").setLevel(level)
