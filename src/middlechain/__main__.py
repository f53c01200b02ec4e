"""
=============================================================================
MIDDLECHAIN CLI ENTRY POINT
=============================================================================

Runs one request through a very long chain of pass-through handlers and
prints what happened. It is the quickest way to see that neither engine
grows the call stack with chain length.

=============================================================================
USAGE
=============================================================================

    # One million pass-through handlers on the callback engine
    python -m middlechain

    # Same chain on the promise engine
    python -m middlechain --engine promise --handlers 200000

    # Make handler 500 raise and watch the fallback response
    python -m middlechain --handlers 1000 --fail-at 500

=============================================================================
"""

import argparse
import asyncio
import sys
import time
from typing import Optional, Sequence

from . import __version__
from .app import CallbackApp, PromiseApp
from .config import EngineConfig, LOG_FORMATS
from .diagnostics import setup_logging
from .http import HTTPRequest, HTTPResponse


class StressResult:
    """Outcome of one stress run."""

    def __init__(self, engine: str, handlers: int):
        self.engine = engine
        self.handlers = handlers
        self.executed = 0
        self.elapsed = 0.0
        self.response = HTTPResponse()

    def summary(self) -> str:
        body = self.response.text if self.response.finished else "(not ended)"
        return (
            f"engine={self.engine} handlers={self.handlers} executed={self.executed} "
            f"status={int(self.response.status)} body={body!r} elapsed={self.elapsed:.3f}s"
        )


def build_callback_app(result: StressResult, fail_at: Optional[int], config: EngineConfig) -> CallbackApp:
    app = CallbackApp(config)

    def step(request, response, advance):
        if result.executed == fail_at:
            raise RuntimeError(f"handler {fail_at} failed on purpose")
        result.executed += 1
        advance()

    for _ in range(result.handlers):
        app.use(step)
    return app


def build_promise_app(result: StressResult, fail_at: Optional[int], config: EngineConfig) -> PromiseApp:
    app = PromiseApp(config)

    def step(ctx, next):
        if result.executed == fail_at:
            raise RuntimeError(f"handler {fail_at} failed on purpose")
        result.executed += 1
        return next()

    for _ in range(result.handlers):
        app.use(step)
    return app


def run_stress(
    engine: str,
    handlers: int,
    fail_at: Optional[int] = None,
    config: Optional[EngineConfig] = None,
) -> StressResult:
    """Build an app with ``handlers`` pass-through steps and run one request."""
    config = config or EngineConfig()
    result = StressResult(engine, handlers)
    request = HTTPRequest(method="GET", path="/stress")

    if engine == "callback":
        app = build_callback_app(result, fail_at, config)
        start = time.perf_counter()
        app(request, result.response)
        result.elapsed = time.perf_counter() - start
    else:
        app = build_promise_app(result, fail_at, config)

        async def drive():
            await app(request, result.response)

        start = time.perf_counter()
        asyncio.run(drive())
        result.elapsed = time.perf_counter() - start

    return result


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main CLI entry point.

    Arguments:
    - --engine, -e: callback or promise
    - --handlers, -n: Chain length
    - --fail-at, -f: Index of a handler that raises
    - --log-level, -l / --log-format: Logging setup
    - --version, -v: Show version
    """
    parser = argparse.ArgumentParser(
        prog="middlechain",
        description="Run one request through a long middleware chain",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m middlechain                                 # 1,000,000 callback handlers
  python -m middlechain -e promise -n 200000            # promise engine
  python -m middlechain -n 1000 --fail-at 500           # terminal fallback
        """
    )

    parser.add_argument(
        "--engine", "-e",
        choices=["callback", "promise"],
        default="callback",
        help="Dispatch engine (default: callback)"
    )
    parser.add_argument(
        "--handlers", "-n",
        type=int,
        default=1_000_000,
        help="Number of pass-through handlers (default: 1000000)"
    )
    parser.add_argument(
        "--fail-at", "-f",
        type=int,
        default=None,
        help="Make the handler at this index raise"
    )
    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Logging level (default: WARNING)"
    )
    parser.add_argument(
        "--log-format",
        choices=LOG_FORMATS,
        default="text",
        help="Log format (default: text)"
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"middlechain {__version__}"
    )

    args = parser.parse_args(argv)

    if args.handlers < 0:
        parser.error("--handlers must be >= 0")

    config = EngineConfig(log_level=args.log_level, log_format=args.log_format)
    setup_logging(config)

    try:
        result = run_stress(args.engine, args.handlers, args.fail_at, config)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(result.summary())
    return 0


if __name__ == "__main__":
    sys.exit(main())
