"""
pytest configuration and fixtures.
"""

import asyncio
from typing import Any, Callable, List

import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from middlechain import CallbackApp, PromiseApp, EngineConfig
from middlechain.http import HTTPRequest, HTTPResponse


@pytest.fixture
def request_obj() -> HTTPRequest:
    """Sample inbound request."""
    return HTTPRequest(
        method="GET",
        path="/api/users",
        headers={"User-Agent": "pytest", "Accept": "application/json"},
        client_address=("127.0.0.1", 54321),
    )


@pytest.fixture
def response() -> HTTPResponse:
    """Fresh, unfinished response."""
    return HTTPResponse()


@pytest.fixture
def reported() -> List[Any]:
    """Collects whatever the diagnostic sink receives."""
    return []


@pytest.fixture
def callback_app(reported) -> CallbackApp:
    """Callback engine with a list-backed diagnostic sink."""
    return CallbackApp(EngineConfig(), on_error=reported.append)


@pytest.fixture
def promise_app(reported) -> PromiseApp:
    """Promise engine with a list-backed diagnostic sink."""
    return PromiseApp(EngineConfig(), on_error=reported.append)


@pytest.fixture
def run_promise() -> Callable:
    """Drive a PromiseApp for one request on a fresh event loop."""

    def run(app: PromiseApp, request=None, response=None):
        async def drive():
            return await app(request, response)

        return asyncio.run(drive())

    return run
