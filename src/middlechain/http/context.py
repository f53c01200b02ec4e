"""
Per-run context for the promise engine.

One Context is created per inbound call and handed explicitly to every
handler in the chain. Handlers share data through ``state``.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .request import HTTPRequest
from .response import HTTPResponse


@dataclass
class Context:
    """
    Shared record for one run.

    Attributes:
        request:  Inbound request (may be None when driven without one)
        response: Outbound response (may be None)
        state:    Free-form scratch space for handlers
    """

    request: Optional[HTTPRequest] = None
    response: Optional[HTTPResponse] = None
    state: Dict[str, Any] = field(default_factory=dict)

    # Koa-style short names
    @property
    def req(self) -> Optional[HTTPRequest]:
        return self.request

    @property
    def res(self) -> Optional[HTTPResponse]:
        return self.response
