"""
=============================================================================
ENGINE CONFIGURATION
=============================================================================

Centralized configuration for both dispatch engines.

The engines have very few knobs on purpose: the chain itself is the
application. What remains is how failures are surfaced (fallback status,
warning on unhandled requests) and how the diagnostics are logged.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m middlechain --log-level DEBUG                    │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── MIDDLECHAIN_LOG_LEVEL=DEBUG python -m middlechain          │
    │                                                                      │
    │   3. Default values (in this dataclass)                             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

import logging
import os
from dataclasses import dataclass

from .http.status_codes import HTTPStatus, is_server_error


LOG_FORMATS = ("text", "json")

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass
class EngineConfig:
    """
    Configuration shared by CallbackApp and PromiseApp.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    FAILURE HANDLING
    - fallback_status, warn_unhandled

    LOGGING
    - log_level, log_format

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # FAILURE HANDLING
    # ─────────────────────────────────────────────────────────────────────

    fallback_status: int = HTTPStatus.INTERNAL_SERVER_ERROR
    """
    Status written by the terminal fallback.
    Must stay in the 5xx class; the body is always "Internal Server Error".
    """

    warn_unhandled: bool = False
    """
    Log a warning when a run exhausts the chain and nobody ended the
    response. Off by default: an exhausted chain completes silently.
    """

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    """Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)."""

    log_format: str = "text"
    """
    Log format: 'json' or 'text'.
    JSON is better for log aggregators, text for humans.
    """

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """
        Create configuration from environment variables.

        MIDDLECHAIN_LOG_LEVEL        Logging level (default: INFO)
        MIDDLECHAIN_LOG_FORMAT       text or json (default: text)
        MIDDLECHAIN_FALLBACK_STATUS  5xx status for the fallback (default: 500)
        MIDDLECHAIN_WARN_UNHANDLED   1/true/yes/on to warn on exhausted chains
        """
        return cls(
            log_level=os.getenv("MIDDLECHAIN_LOG_LEVEL", "INFO"),
            log_format=os.getenv("MIDDLECHAIN_LOG_FORMAT", "text"),
            fallback_status=int(os.getenv("MIDDLECHAIN_FALLBACK_STATUS", "500")),
            warn_unhandled=os.getenv("MIDDLECHAIN_WARN_UNHANDLED", "").strip().lower() in _TRUTHY,
        )

    @property
    def level(self) -> int:
        """The numeric logging level."""
        return logging.getLevelName(self.log_level.upper())

    def validate(self) -> None:
        """
        Validate configuration values.

        Called by the apps on construction so a bad value fails at startup,
        not on the first failing request.
        """
        if not isinstance(self.level, int):
            raise ValueError(f"Invalid log_level: {self.log_level!r}")

        if self.log_format not in LOG_FORMATS:
            raise ValueError(
                f"Invalid log_format: {self.log_format!r}. Must be one of {LOG_FORMATS}."
            )

        if not is_server_error(self.fallback_status):
            raise ValueError(
                f"fallback_status must be a 5xx code, got {self.fallback_status}"
            )
