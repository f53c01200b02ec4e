"""
=============================================================================
HTTP REQUEST RECORD
=============================================================================

The inbound side of a run. Parsing bytes into a request is the listener's
job; by the time the engines see a request it is already a structured
record, and the engines never read it themselves. It is carried through
the chain so handlers can.

    Listener                      HTTPRequest                    Handlers
    (external)    ──build──►       dataclass      ──share──►     (request,
                                                                  response,
                                                                  advance)

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Dict


@dataclass
class HTTPRequest:
    """
    A request as seen by the middleware chain.

    Attributes:
        method:         HTTP method (GET, POST, ...)
        path:           Request path without query string
        version:        HTTP version string
        headers:        Header name -> value, keys stored lowercase
        query_params:   Parsed query string, name -> list of values
        body:           Raw body bytes
        client_address: (ip, port) of the peer
    """

    method: str = "GET"
    path: str = "/"
    version: str = "HTTP/1.1"
    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, list[str]] = field(default_factory=dict)
    body: bytes = b""
    client_address: tuple[str, int] = ("", 0)

    def __post_init__(self):
        # HTTP header names are case-insensitive; normalize once here
        self.headers = {name.lower(): value for name, value in self.headers.items()}

    def get_header(self, name: str, default: str = "") -> str:
        """Get a header value, case-insensitively."""
        return self.headers.get(name.lower(), default)

    @property
    def user_agent(self) -> str:
        """The User-Agent header, or an empty string."""
        return self.get_header("user-agent")
