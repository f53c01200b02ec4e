"""
=============================================================================
HTTP RECORDS
=============================================================================

The request, response and context records carried through a run.

The dispatch engines treat these as opaque: they hand them to handlers and,
when a run fails with nobody to recover it, write the terminal fallback
(status 500, body "Internal Server Error") onto the response. Building them
from socket bytes and serializing them back is left to the listener.

=============================================================================
"""

from .request import HTTPRequest
from .response import HTTPResponse
from .context import Context
from .status_codes import HTTPStatus, is_server_error

__all__ = [
    "HTTPRequest",
    "HTTPResponse",
    "Context",
    "HTTPStatus",
    "is_server_error",
]
