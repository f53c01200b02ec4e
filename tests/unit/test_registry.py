"""
Unit tests for the handler registry and handler classification.
"""

import functools
import inspect

import pytest

from middlechain.core.registry import (
    ErrorHandler,
    HandlerRegistry,
    HandlerStack,
    error_handler,
    is_error_handler,
    positional_arity,
)
from middlechain.errors import InvalidHandlerError
from middlechain.middleware import CallbackMiddleware, ErrorMiddleware


def normal(request, response, advance):
    advance()


def failing(error, request, response, advance):
    advance()


class TestPositionalArity:
    """Tests for arity counting."""

    def test_plain_functions(self):
        assert positional_arity(normal) == 3
        assert positional_arity(failing) == 4
        assert positional_arity(lambda ctx, nxt: None) == 2

    def test_defaults_stop_the_count(self):
        """Parameters with defaults are not counted, like Function.length."""
        def handler(request, response, advance, extra=None):
            pass

        assert positional_arity(handler) == 3

    def test_var_positional_not_counted(self):
        def handler(*args):
            pass

        assert positional_arity(handler) == 0

    def test_bound_method_excludes_self(self):
        class Holder:
            def handle(self, error, request, response, advance):
                pass

        assert positional_arity(Holder().handle) == 4

    def test_partial(self):
        bound = functools.partial(failing, RuntimeError("x"))
        assert positional_arity(bound) == 3

    def test_uninspectable_returns_minus_one(self):
        class Opaque:
            # Not a Signature: inspect.signature() refuses it
            __signature__ = 42

            def __call__(self, *args):
                pass

        assert positional_arity(Opaque()) == -1
        assert not is_error_handler(Opaque())


class TestIsErrorHandler:
    """Tests for normal vs error handler classification."""

    def test_by_arity(self):
        assert not is_error_handler(normal)
        assert is_error_handler(failing)

    def test_explicit_tag(self):
        def anything(*args):
            pass

        assert not is_error_handler(anything)
        assert is_error_handler(ErrorHandler(anything))
        assert is_error_handler(error_handler(anything))

    def test_class_based_middleware(self):
        class Continue(CallbackMiddleware):
            def __call__(self, request, response, advance):
                advance()

        class Recover(ErrorMiddleware):
            def __call__(self, error, request, response, advance):
                response.end("recovered")

        assert not is_error_handler(Continue())
        assert is_error_handler(Recover())
        assert Recover().name == "Recover"

    def test_error_handler_wrapper_forwards_call(self):
        calls = []
        tagged = ErrorHandler(lambda *args: calls.append(args), name="record")

        tagged("err", "req", "res", "adv")

        assert calls == [("err", "req", "res", "adv")]
        assert tagged.name == "record"

    def test_error_handler_rejects_non_callable(self):
        with pytest.raises(InvalidHandlerError):
            ErrorHandler(42)


class TestHandlerRegistry:
    """Tests for HandlerRegistry."""

    def test_register_preserves_order(self):
        registry = HandlerRegistry()
        a, b, c = (lambda *x: None), (lambda *x: None), (lambda *x: None)

        registry.register(a).register(b).register(c)

        assert list(registry.handlers()) == [a, b, c]
        assert len(registry) == 3

    def test_use_registers_many(self):
        registry = HandlerRegistry()
        a, b = (lambda *x: None), (lambda *x: None)

        result = registry.use(a, b)

        assert result is registry
        assert list(registry) == [a, b]

    def test_register_rejects_non_callable(self):
        registry = HandlerRegistry()

        with pytest.raises(InvalidHandlerError):
            registry.register("not a function")

        # InvalidHandlerError is also a TypeError
        with pytest.raises(TypeError):
            registry.register(None)

        assert len(registry) == 0

    def test_snapshot_is_cached_until_next_registration(self):
        registry = HandlerRegistry().register(normal)

        first = registry.handlers()
        assert registry.handlers() is first

        registry.register(failing)
        second = registry.handlers()

        assert second is not first
        assert len(first) == 1
        assert len(second) == 2

    def test_snapshot_is_read_only(self):
        stack = HandlerRegistry().register(normal).handlers()

        assert isinstance(stack, HandlerStack)
        assert not hasattr(stack, "append")
        with pytest.raises(TypeError):
            stack[0] = failing


class TestHandlerStack:
    """Tests for lazy classification on the snapshot."""

    def test_first_error_handler(self):
        stack = HandlerStack([normal, normal, failing, failing])

        assert stack.first_error_handler() == 2
        assert stack.is_error_handler(3)
        assert not stack.is_error_handler(0)

    def test_no_error_handler(self):
        assert HandlerStack([normal]).first_error_handler() is None
        assert HandlerStack([]).first_error_handler() is None

    def test_classification_is_cached(self):
        calls = []

        class Counting:
            def __call__(self, request, response, advance):
                pass

            @property
            def __signature__(self):
                calls.append(1)
                return inspect.signature(normal)

        stack = HandlerStack([Counting()])
        stack.is_error_handler(0)
        stack.is_error_handler(0)
        stack.first_error_handler()

        assert len(calls) == 1
