"""
=============================================================================
HANDLER REGISTRY
=============================================================================

The registry is the ordered list of handlers an app runs for every request.
It is built once at startup and read by every run afterwards.

=============================================================================
ARENA OF HANDLER SLOTS
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         HandlerRegistry                             │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   register(h0).register(h1).register(h2)  ◄── append-only           │
    │                                                                      │
    │   handlers() ──► HandlerStack (read-only snapshot, cached)          │
    │                                                                      │
    │        index:   0      1      2                                      │
    │               ┌────┐ ┌────┐ ┌────┐                                   │
    │               │ h0 │ │ h1 │ │ h2 │                                   │
    │               └────┘ └────┘ └────┘                                   │
    │                  ▲                                                   │
    │                  │                                                   │
    │   run A cursor ──┘      run B cursor ──► 2                          │
    │                                                                      │
    │   Every run shares the same snapshot and owns only an integer       │
    │   cursor into it. No per-run copy of the handler list is made.      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Registering after traffic has started produces a new snapshot for later
runs; a run already in flight keeps the snapshot it started with.

=============================================================================
NORMAL VS ERROR HANDLERS
=============================================================================

The callback engine tells the two kinds apart the way Express does, by
counting positional parameters that have no default:

    def log(request, response, advance): ...            # 3 → normal
    def oops(error, request, response, advance): ...    # 4 → error handler

Counting is done lazily at dispatch time and cached per slot. Where arity
is ambiguous (C callables, *args), tag the handler explicitly:

    @error_handler
    def oops(*args): ...

=============================================================================
"""

import inspect
import logging
import types
from typing import Any, Callable, Iterator, List, Optional, Sequence

from ..errors import InvalidHandlerError


logger = logging.getLogger(__name__)


Handler = Callable[..., Any]

ERROR_HANDLER_ARITY = 4

# Classification cache values for HandlerStack
_UNKNOWN, _NORMAL, _ERROR = 0, 1, 2

_POSITIONAL = (
    inspect.Parameter.POSITIONAL_ONLY,
    inspect.Parameter.POSITIONAL_OR_KEYWORD,
)


class ErrorHandler:
    """
    Explicit tag marking a callable as an error handler.

    The wrapped callable is invoked as func(error, request, response, advance)
    regardless of its declared signature.
    """

    def __init__(self, func: Handler, name: Optional[str] = None):
        if not callable(func):
            raise InvalidHandlerError(func)
        self._func = func
        self._name = name or handler_name(func)

    def __call__(self, error, request, response, advance):
        return self._func(error, request, response, advance)

    @property
    def name(self) -> str:
        return self._name

    def __repr__(self) -> str:
        return f"ErrorHandler({self._name})"


def error_handler(func: Handler) -> ErrorHandler:
    """
    Decorator form of ErrorHandler.

        @error_handler
        def on_error(error, request, response, advance):
            response.status = 503
            response.end("try again later")
    """
    return ErrorHandler(func)


def handler_name(handler: Handler) -> str:
    """Best-effort display name for logging."""
    name = getattr(handler, "name", None)
    if isinstance(name, str):
        return name
    return getattr(handler, "__qualname__", None) or type(handler).__name__


def positional_arity(handler: Handler) -> int:
    """
    Count the leading positional parameters that have no default value.

    This mirrors JavaScript's Function.length: counting stops at the first
    parameter with a default or at *args. Returns -1 when the signature
    cannot be inspected.
    """
    # Fast path for plain functions and lambdas (the common case, and the
    # one that matters for very long chains).
    if isinstance(handler, types.FunctionType):
        code = handler.__code__
        return code.co_argcount - len(handler.__defaults__ or ())

    try:
        signature = inspect.signature(handler)
    except (TypeError, ValueError):
        return -1

    count = 0
    for param in signature.parameters.values():
        if param.kind not in _POSITIONAL or param.default is not param.empty:
            break
        count += 1
    return count


def is_error_handler(handler: Handler) -> bool:
    """True if the handler takes (error, request, response, advance)."""
    if isinstance(handler, ErrorHandler):
        return True
    return positional_arity(handler) == ERROR_HANDLER_ARITY


class HandlerStack(Sequence):
    """
    Read-only, index-addressed view of the registered handlers.

    Produced by HandlerRegistry.handlers(). Classification of each slot
    (normal vs error handler) happens the first time a dispatcher asks for
    it and is then cached, so a million-slot chain costs one arity check
    per slot at most.
    """

    def __init__(self, handlers: Sequence[Handler]):
        self._handlers = tuple(handlers)
        self._kinds = bytearray(len(self._handlers))
        self._first_error: Optional[int] = None
        self._first_error_known = False

    def __getitem__(self, index):
        return self._handlers[index]

    def __len__(self) -> int:
        return len(self._handlers)

    def __iter__(self) -> Iterator[Handler]:
        return iter(self._handlers)

    def is_error_handler(self, index: int) -> bool:
        """Classify the handler at ``index``, caching the answer."""
        kind = self._kinds[index]
        if kind == _UNKNOWN:
            kind = _ERROR if is_error_handler(self._handlers[index]) else _NORMAL
            self._kinds[index] = kind
        return kind == _ERROR

    def first_error_handler(self) -> Optional[int]:
        """Index of the first error handler in the whole sequence, or None."""
        if not self._first_error_known:
            for index in range(len(self._handlers)):
                if self.is_error_handler(index):
                    self._first_error = index
                    break
            self._first_error_known = True
        return self._first_error


class HandlerRegistry:
    """
    Ordered, append-only list of handlers.

    Insertion order is execution order. Usage:

        registry = HandlerRegistry()
        registry.register(log).register(auth)
        registry.use(cors, body_limit)

        stack = registry.handlers()     # what a dispatcher consumes
    """

    def __init__(self):
        """Initialize an empty registry."""
        self._handlers: List[Handler] = []
        self._snapshot: Optional[HandlerStack] = None

    def register(self, handler: Handler) -> "HandlerRegistry":
        """
        Append a handler.

        Only callability is checked here; arity is inspected at dispatch
        time.

        Returns:
            Self for method chaining
        """
        if not callable(handler):
            raise InvalidHandlerError(handler)

        self._handlers.append(handler)
        self._snapshot = None
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug(f"Registered middleware #{len(self._handlers) - 1}: {handler_name(handler)}")
        return self

    def use(self, *handlers: Handler) -> "HandlerRegistry":
        """Register several handlers at once, in order."""
        for handler in handlers:
            self.register(handler)
        return self

    def handlers(self) -> HandlerStack:
        """
        The ordered sequence for a dispatcher to consume.

        The snapshot is rebuilt only after a registration, so steady-state
        traffic shares one instance and its classification cache.
        """
        if self._snapshot is None:
            self._snapshot = HandlerStack(self._handlers)
        return self._snapshot

    def __len__(self) -> int:
        return len(self._handlers)

    def __iter__(self) -> Iterator[Handler]:
        return iter(self._handlers)
