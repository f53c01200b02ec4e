"""
=============================================================================
HTTP RESPONSE RECORD
=============================================================================

The outbound side of a run. Unlike a response that a handler *returns*,
this one is a mutable record shared by every handler in the chain: any of
them may set the status, add headers, write body chunks, and finally end
it. Serializing it onto a socket is the listener's job.

=============================================================================
RESPONSE LIFECYCLE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   created by listener          handlers mutate           end()       │
    │   status=200, finished=False ──► status, headers,  ──►  finished=True│
    │                                 write(chunk)                         │
    │                                                                      │
    │   After end():                                                       │
    │   - further write()/end() raise ResponseFinishedError               │
    │   - the terminal fallback leaves the response untouched             │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Union

from ..errors import ResponseFinishedError
from .status_codes import HTTPStatus


@dataclass
class HTTPResponse:
    """
    Mutable response shared across one run.

    The engines rely on only three members when they produce the terminal
    fallback: ``finished``, ``status`` and ``end()``. Any object offering
    those can be passed in place of this class.
    """

    status: int = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"
    finished: bool = False

    @property
    def status_line(self) -> str:
        """
        The HTTP status line, e.g. "HTTP/1.1 200 OK".

        Integer statuses outside HTTPStatus get an "Unknown" phrase.
        """
        try:
            phrase = HTTPStatus(self.status).phrase
        except ValueError:
            phrase = "Unknown"
        return f"{self.version} {int(self.status)} {phrase}"

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        """Set a header; returns self for chaining."""
        self.headers[name] = value
        return self

    def write(self, chunk: Union[str, bytes]) -> "HTTPResponse":
        """Append a chunk to the body."""
        if self.finished:
            raise ResponseFinishedError("write() after end()")
        if isinstance(chunk, str):
            chunk = chunk.encode("utf-8")
        self.body += chunk
        return self

    def end(self, chunk: Optional[Union[str, bytes]] = None) -> "HTTPResponse":
        """
        Finish the response, optionally writing a last chunk.

        Ending twice is an error: it means two handlers both believe they
        produced the response.
        """
        if self.finished:
            raise ResponseFinishedError("end() called on a finished response")
        if chunk is not None:
            self.write(chunk)
        self.finished = True
        return self

    @property
    def text(self) -> str:
        """Body decoded as UTF-8."""
        return self.body.decode("utf-8", errors="replace")
