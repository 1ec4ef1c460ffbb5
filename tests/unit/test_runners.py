import threading
import time

import pytest

from wstack.ENGINE import context
from wstack.ENGINE.context import CancelContext
from wstack.errors import AggregatedError, BuildError, CancelledError, LifecycleError
from wstack.MODELS.service_definition import Service
from wstack.RUNNERS.dependency_resolver import DependencyResolver
from wstack.RUNNERS.worker_pool import run_workers


def test_workers_all_run_when_one_fails():
    finished = []

    def ok(name):
        finished.append(name)

    def fail():
        raise BuildError("img-a", "boom")

    with pytest.raises(AggregatedError) as excinfo:
        run_workers("build", [("a", fail), ("b", lambda: ok("b")), ("c", lambda: ok("c"))])

    assert sorted(finished) == ["b", "c"]
    assert len(excinfo.value) == 1
    assert "img-a" in str(excinfo.value)
    assert not excinfo.value.cancelled


def test_workers_success_results_in_order():
    results = run_workers("pull", [("x", lambda: None), ("y", lambda: None)])
    assert [r.name for r in results] == ["x", "y"]
    assert all(r.ok for r in results)
    assert run_workers("pull", []) == []


def test_workers_propagate_bugs():
    def broken():
        raise KeyError("bug")

    with pytest.raises(KeyError):
        run_workers("start", [("a", broken)])


def test_aggregated_cancelled_only_when_all_cancelled():
    assert AggregatedError("pull", [CancelledError("a"), CancelledError("b")]).cancelled
    assert not AggregatedError("pull", [CancelledError("a"), LifecycleError("b", "x")]).cancelled


def test_cancel_runs_callbacks_once():
    ctx = CancelContext()
    calls = []
    handle = ctx.on_cancel(lambda: calls.append("a"))
    removed = ctx.on_cancel(lambda: calls.append("removed"))
    ctx.remove_callback(removed)
    ctx.cancel("stop")
    ctx.cancel("again")
    assert calls == ["a"]
    assert ctx.reason == "stop"
    assert handle != -1
    # Late registrations run immediately.
    assert ctx.on_cancel(lambda: calls.append("late")) == -1
    assert calls == ["a", "late"]


def test_cancel_survives_failing_callback():
    ctx = CancelContext()
    calls = []

    def broken():
        raise RuntimeError("socket gone")

    ctx.on_cancel(broken)
    ctx.on_cancel(lambda: calls.append("after"))
    ctx.cancel()
    assert calls == ["after"]
    # A failing late registration is logged, not raised.
    assert ctx.on_cancel(broken) == -1


def test_slow_callback_does_not_hold_back_others(monkeypatch):
    monkeypatch.setattr(context, "CALLBACK_GRACE", 0.3)
    ctx = CancelContext()
    release = threading.Event()
    closed = threading.Event()
    ctx.on_cancel(lambda: release.wait(5))
    ctx.on_cancel(closed.set)

    started = time.monotonic()
    ctx.cancel()
    assert time.monotonic() - started < 2
    assert closed.is_set()
    release.set()


def test_cancel_deadline():
    ctx = CancelContext(timeout=0.1)
    assert ctx.wait(2)
    assert ctx.reason == "deadline exceeded"


def test_release_stops_deadline():
    ctx = CancelContext(timeout=0.2)
    ctx.release()
    assert not ctx.wait(0.4)


def test_dependency_closure_order():
    base = Service(name="base", image="base")
    mid = Service(name="mid", image="mid", dependencies=[base])
    top = Service(name="top", image="top", dependencies=[mid, base])
    names = [s.name for s in DependencyResolver().closure([top, mid])]
    assert names == ["base", "mid", "top"]


def test_dependency_cycle():
    a = Service(name="a", image="a")
    a.dependencies = [a]
    with pytest.raises(ValueError, match="a"):
        DependencyResolver().closure([a])
