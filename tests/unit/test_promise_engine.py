"""
Unit tests for the promise-style engine (compose / PromiseRun / PromiseApp).
"""

import asyncio
import logging

import pytest

from middlechain import (
    Context,
    EngineConfig,
    FALLBACK_BODY,
    InvalidHandlerError,
    NextCalledMultipleTimes,
    PromiseApp,
    compose,
)
from middlechain.core.promise import PromiseRun
from middlechain.http import HTTPResponse


def record(calls, label):
    """Async pass-through handler that records its label."""
    async def handler(ctx, next):
        calls.append(label)
        await next()
    return handler


class TestNormalFlow:
    """Tests for the happy path."""

    def test_handlers_run_once_in_order(self, promise_app, run_promise, reported, request_obj, response):
        """Every pass-through handler runs exactly once, in registration order."""
        calls = []
        for label in "abcde":
            promise_app.use(record(calls, label))

        run_promise(promise_app, request_obj, response)

        assert calls == list("abcde")
        assert reported == []
        assert not response.finished

    def test_long_chain_does_not_grow_the_stack(self, promise_app, run_promise, reported, response):
        """A chain far beyond the recursion limit settles."""
        count = [0]

        def step(ctx, next):
            count[0] += 1
            return next()

        for _ in range(100_000):
            promise_app.use(step)

        run_promise(promise_app, None, response)

        assert count[0] == 100_000
        assert reported == []

    @pytest.mark.slow
    def test_million_async_handlers(self, promise_app, run_promise, reported, response):
        count = [0]

        async def step(ctx, next):
            count[0] += 1
            await next()

        for _ in range(1_000_000):
            promise_app.use(step)

        run_promise(promise_app, None, response)

        assert count[0] == 1_000_000
        assert reported == []
        assert not response.finished

    def test_empty_chain_resolves(self, promise_app, run_promise, reported, response):
        """Zero handlers: the future resolves and nothing is reported."""
        ctx = run_promise(promise_app, None, response)

        assert isinstance(ctx, Context)
        assert reported == []
        assert not response.finished

    def test_onion_ordering(self, promise_app, run_promise, response):
        """Before work runs in order; after work unwinds in reverse."""
        order = []

        async def a(ctx, next):
            order.append("A-before")
            await next()
            order.append("A-after")

        async def b(ctx, next):
            order.append("B-before")
            await next()
            order.append("B-after")

        promise_app.use(a).use(b)
        run_promise(promise_app, None, response)

        assert order == ["A-before", "B-before", "B-after", "A-after"]

    def test_sync_and_async_handlers_mix(self, promise_app, run_promise, response):
        order = []

        def sync_step(ctx, next):
            order.append("sync")
            return next()

        async def async_step(ctx, next):
            await asyncio.sleep(0)
            order.append("async")
            await next()
            order.append("async-after")

        def respond(ctx, next):
            ctx.response.end("ok")

        promise_app.use(sync_step).use(async_step).use(respond)
        run_promise(promise_app, None, response)

        assert order == ["sync", "async", "async-after"]
        assert response.text == "ok"

    def test_next_does_not_run_downstream_inline(self, promise_app, run_promise, response):
        """Calling next() schedules the next step on a later loop turn."""
        order = []

        async def first(ctx, next):
            pending = next()
            order.append("after-next-call")
            await pending

        async def second(ctx, next):
            order.append("second")

        promise_app.use(first).use(second)
        run_promise(promise_app, None, response)

        assert order == ["after-next-call", "second"]

    def test_short_circuit(self, promise_app, run_promise, response):
        calls = []

        async def deny(ctx, next):
            ctx.response.status = 403
            ctx.response.end("forbidden")

        promise_app.use(deny).use(record(calls, "never"))
        run_promise(promise_app, None, response)

        assert calls == []
        assert response.status == 403

    def test_future_resolves_to_context(self, promise_app, run_promise, request_obj, response):
        async def tag(ctx, next):
            ctx.state["user"] = "alice"
            await next()

        async def read(ctx, next):
            ctx.response.end(ctx.state["user"])

        promise_app.use(tag).use(read)
        ctx = run_promise(promise_app, request_obj, response)

        assert ctx.request is request_obj
        assert ctx.res is response
        assert ctx.state == {"user": "alice"}
        assert response.text == "alice"

    def test_registration_during_run_is_ignored(self, promise_app, run_promise):
        """A run keeps the snapshot it started with."""
        calls = []

        async def late(ctx, next):
            calls.append("late")

        async def register(ctx, next):
            calls.append("register")
            promise_app.use(late)
            await next()

        promise_app.use(register)
        run_promise(promise_app, None, HTTPResponse())
        assert calls == ["register"]

        # The next run sees it
        run_promise(promise_app, None, HTTPResponse())
        assert calls == ["register", "register", "late"]


class TestErrorPath:
    """Tests for failures and the top-level boundary."""

    def test_raise_sends_fallback(self, promise_app, run_promise, reported, response):
        """Handler k raises: earlier ran, later never ran, one report, 500."""
        calls = []
        boom = RuntimeError("boom")

        async def fail(ctx, next):
            calls.append("fail")
            raise boom

        promise_app.use(record(calls, "a")).use(fail).use(record(calls, "never"))
        ctx = run_promise(promise_app, None, response)

        assert calls == ["a", "fail"]
        assert reported == [boom]
        assert response.status == 500
        assert response.text == FALLBACK_BODY
        assert ctx.response is response

    def test_sync_raise(self, promise_app, run_promise, reported, response):
        boom = ValueError("sync")

        def fail(ctx, next):
            raise boom

        promise_app.use(fail)
        run_promise(promise_app, None, response)

        assert reported == [boom]
        assert response.status == 500

    def test_upstream_can_catch_downstream_failure(self, promise_app, run_promise, reported, response):
        """A try/except around await next() recovers like any await."""
        async def guard(ctx, next):
            try:
                await next()
            except KeyError:
                ctx.response.status = 404
                ctx.response.end("not found")

        async def lookup(ctx, next):
            raise KeyError("user")

        promise_app.use(guard).use(lookup)
        run_promise(promise_app, None, response)

        assert reported == []
        assert response.status == 404

    def test_next_called_twice(self, promise_app, run_promise, reported, response):
        """The second next() fails the run; nothing runs twice."""
        calls = []

        async def twice(ctx, next):
            await next()
            await next()

        promise_app.use(twice).use(record(calls, "b")).use(record(calls, "c"))
        run_promise(promise_app, None, response)

        assert calls == ["b", "c"]
        assert len(reported) == 1
        assert isinstance(reported[0], NextCalledMultipleTimes)
        assert reported[0].index == 1
        assert str(reported[0]) == "continuation invoked more than once for its step"
        assert response.status == 500

    def test_unawaited_second_next_fails_run(self, promise_app, run_promise, reported, response):
        """Dropping the second next() on the floor still fails the run."""
        calls = []

        async def twice(ctx, next):
            await next()
            next()

        promise_app.use(twice).use(record(calls, "b"))
        run_promise(promise_app, None, response)

        assert calls == ["b"]
        assert len(reported) == 1
        assert isinstance(reported[0], NextCalledMultipleTimes)
        assert reported[0].index == 1
        assert response.status == 500
        assert response.text == FALLBACK_BODY

    def test_sync_handler_calling_next_twice(self, promise_app, run_promise, reported, response):
        calls = []

        def twice(ctx, next):
            next()
            next()

        promise_app.use(twice).use(record(calls, "b"))
        run_promise(promise_app, None, response)

        assert calls == ["b"]
        assert [type(e) for e in reported] == [NextCalledMultipleTimes]
        assert response.status == 500

    def test_caught_second_next_still_fails_run(self, promise_app, run_promise, reported, response):
        """Swallowing the rejection does not hide the protocol violation."""
        async def twice(ctx, next):
            await next()
            try:
                await next()
            except NextCalledMultipleTimes:
                pass

        promise_app.use(twice)
        run_promise(promise_app, None, response)

        assert [type(e) for e in reported] == [NextCalledMultipleTimes]
        assert response.status == 500

    def test_partial_body_replaced_by_fallback(self, promise_app, run_promise, reported, response):
        async def half_written(ctx, next):
            ctx.response.write("partial")
            raise RuntimeError("mid-write")

        promise_app.use(half_written)
        run_promise(promise_app, None, response)

        assert response.status == 500
        assert response.text == FALLBACK_BODY

    def test_raising_sink_does_not_escape(self, run_promise, response, caplog):
        """A broken sink is logged; the caller's await still succeeds."""
        def sink(error):
            raise RuntimeError("sink down")

        app = PromiseApp(on_error=sink)

        async def fail(ctx, next):
            raise ValueError("original")

        app.use(fail)

        with caplog.at_level(logging.ERROR, logger="middlechain.app"):
            ctx = run_promise(app, None, response)

        assert ctx.response is response
        assert response.text == FALLBACK_BODY
        assert "Diagnostic sink failed" in caplog.text

    def test_fallback_skipped_when_response_finished(self, promise_app, run_promise, reported, response):
        async def respond_then_fail(ctx, next):
            ctx.response.end("partial")
            raise RuntimeError("after end")

        promise_app.use(respond_then_fail)
        run_promise(promise_app, None, response)

        assert len(reported) == 1
        assert response.status == 200
        assert response.text == "partial"

    def test_no_response_only_reports(self, promise_app, run_promise, reported):
        async def fail(ctx, next):
            raise RuntimeError("no response")

        promise_app.use(fail)
        run_promise(promise_app)

        assert [str(e) for e in reported] == ["no response"]

    def test_default_sink_logs(self, run_promise, response, caplog):
        app = PromiseApp()

        async def fail(ctx, next):
            raise ValueError("logged")

        app.use(fail)

        with caplog.at_level(logging.ERROR, logger="middlechain.errors"):
            run_promise(app, None, response)

        assert "ValueError: logged" in caplog.text

    def test_external_timeout(self, promise_app, reported, response):
        """No built-in cancellation; wait_for can stop waiting on a run."""
        async def hang(ctx, next):
            await asyncio.sleep(10)

        promise_app.use(hang)

        async def scenario():
            with pytest.raises(asyncio.TimeoutError):
                await asyncio.wait_for(promise_app(None, response), 0.05)

        asyncio.run(scenario())

        assert reported == []
        assert not response.finished


class TestTerminalContinuation:
    """Tests for final_handler / compose(next)."""

    def test_final_handler_runs_after_last_next(self, reported, run_promise, response):
        async def not_found(ctx, next):
            ctx.response.status = 404
            ctx.response.end("Not Found")
            await next()

        app = PromiseApp(on_error=reported.append, final_handler=not_found)
        app.use(lambda ctx, next: next())
        run_promise(app, None, response)

        assert response.status == 404
        assert reported == []

    def test_final_handler_skipped_on_short_circuit(self, reported, run_promise, response):
        finals = []
        app = PromiseApp(on_error=reported.append, final_handler=lambda ctx, next: finals.append(ctx))
        app.use(lambda ctx, next: ctx.response.end("done"))
        run_promise(app, None, response)

        assert finals == []

    def test_warn_unhandled(self, run_promise, request_obj, response, caplog):
        app = PromiseApp(EngineConfig(warn_unhandled=True))
        app.use(lambda ctx, next: next())

        with caplog.at_level(logging.WARNING, logger="middlechain.app"):
            run_promise(app, request_obj, response)

        assert "Chain exhausted without a response: GET /api/users" in caplog.text


class TestCompose:
    """Tests for compose() and PromiseRun directly."""

    def test_rejects_non_callable(self):
        with pytest.raises(InvalidHandlerError):
            compose([lambda ctx, next: None, "nope"])

    def test_terminal_next(self):
        order = []

        async def a(ctx, next):
            order.append("a")
            await next()
            order.append("a-after")

        async def terminal(ctx, next):
            order.append(f"terminal:{ctx}")

        async def scenario():
            await compose([a])("ctx", terminal)

        asyncio.run(scenario())

        assert order == ["a", "terminal:ctx", "a-after"]

    def test_empty_compose_is_resolved(self):
        async def scenario():
            return await compose([])(object())

        assert asyncio.run(scenario()) is None

    def test_dispatch_same_index_twice(self):
        calls = []

        async def scenario():
            run = PromiseRun([lambda ctx, next: calls.append(ctx)], "ctx")
            first = run.dispatch(0)
            second = run.dispatch(0)
            await first
            with pytest.raises(NextCalledMultipleTimes) as excinfo:
                await second
            return excinfo.value

        error = asyncio.run(scenario())

        assert calls == ["ctx"]
        assert error.index == 0

    def test_rejection_propagates_to_composed_future(self):
        async def fail(ctx, next):
            raise RuntimeError("composed")

        async def scenario():
            with pytest.raises(RuntimeError, match="composed"):
                await compose([fail])(None)

        asyncio.run(scenario())

    def test_composed_future_rejects_on_unawaited_double_next(self):
        def twice(ctx, next):
            next()
            next()

        async def scenario():
            with pytest.raises(NextCalledMultipleTimes):
                await compose([twice])(None)

        asyncio.run(scenario())
