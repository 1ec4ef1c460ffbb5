import threading
import time

import pytest

from wstack.errors import AggregatedError, ConfigError, LifecycleError
from wstack.MANAGERS.lifecycle_controller import LifecycleController
from wstack.MODELS.service_definition import BuildSpec, Service
from wstack.MODELS.stack_config import StackConfig


def stack():
    return [
        Service(name="demo-redis", image="redis:latest"),
        Service(name="demo-cardinal", image="demo", build=BuildSpec(dockerfile="FROM scratch")),
    ]


def controller(engine, config, sink, cancel, lines=None, **flags):
    config = config.model_copy(update=flags)
    write = lines.append if lines is not None else (lambda line: None)
    return LifecycleController(engine, config, sink, cancel, write=write)


def test_start_detached(engine, config, sink, cancel, github_token):
    controller(engine, config, sink, cancel, detach=True).start(stack())

    assert "demo" in engine.networks
    assert "demo" in engine.volumes
    assert engine.called("pull") == [("pull", "redis:latest", None)]
    assert [c[1] for c in engine.called("build")] == ["demo"]
    assert engine.containers == {"demo-redis": "running", "demo-cardinal": "running"}
    assert engine.called("stop") == []


def test_start_skips_build_when_image_present(engine, config, sink, cancel, monkeypatch):
    monkeypatch.delenv("ARGUS_WEV2_GITHUB_TOKEN", raising=False)
    engine.images.update({"redis:latest", "demo"})
    controller(engine, config, sink, cancel, detach=True).start(stack())
    assert engine.called("build") == []
    assert engine.called("pull") == []


def test_start_with_build_flag_rebuilds(engine, config, sink, cancel, github_token):
    engine.images.update({"redis:latest", "demo"})
    controller(engine, config, sink, cancel, detach=True, build=True).start(stack())
    assert [c[1] for c in engine.called("build")] == ["demo"]


def test_start_existing_container_not_recreated(engine, config, sink, cancel):
    engine.images.update({"redis:latest", "demo"})
    engine.containers["demo-redis"] = "exited"
    controller(engine, config, sink, cancel, detach=True).start(stack())
    assert engine.called("create") == [("create", "demo-cardinal")]
    assert ("start", "demo-redis") in engine.calls


def test_start_requires_namespace(engine, sink, cancel):
    with pytest.raises(ConfigError):
        LifecycleController(engine, StackConfig(detach=True), sink, cancel).start(stack())
    assert engine.calls == []


def test_detached_timeout(engine, config, sink, cancel):
    engine.images.update({"redis:latest", "demo"})
    original = engine.start_container

    def start_but_crash(name):
        original(name)
        if name == "demo-cardinal":
            engine.containers[name] = "restarting"

    engine.start_container = start_but_crash
    with pytest.raises(AggregatedError) as excinfo:
        controller(engine, config, sink, cancel, detach=True, timeout=1).start(stack())
    (error,) = excinfo.value.errors
    assert isinstance(error, LifecycleError)
    assert error.container == "demo-cardinal"


def test_foreground_graceful_exit_codes(engine, config, sink, cancel):
    engine.images.update({"redis:latest", "demo"})
    engine.exit_codes.update({"demo-redis": 0, "demo-cardinal": 137})
    wait_container = engine.wait_container

    def slow_wait(name):
        # Leave the log threads time to attach.
        time.sleep(0.2)
        return wait_container(name)

    engine.wait_container = slow_wait
    lines = []
    controller(engine, config, sink, cancel, lines=lines).start(stack())
    # The stack is stopped once the run ends.
    assert {c[1] for c in engine.called("stop")} == {"demo-redis", "demo-cardinal"}
    assert any(line.startswith("demo-redis") and line.endswith("demo-redis ready") for line in lines)


def test_foreground_unexpected_exit_code(engine, config, sink, cancel):
    engine.images.update({"redis:latest", "demo"})
    engine.exit_codes.update({"demo-redis": 0, "demo-cardinal": 2})
    with pytest.raises(AggregatedError) as excinfo:
        controller(engine, config, sink, cancel).start(stack())
    (error,) = excinfo.value.errors
    assert str(error) == "demo-cardinal: exited with code 2"


def test_foreground_cancel_stops_stack(engine, config, sink, cancel):
    engine.images.update({"redis:latest", "demo"})
    threading.Timer(0.3, cancel.cancel).start()
    controller(engine, config, sink, cancel).start(stack())
    assert engine.containers == {"demo-redis": "exited", "demo-cardinal": "exited"}


def test_stop_skips_missing(engine, config, sink, cancel):
    engine.containers["demo-redis"] = "running"
    controller(engine, config, sink, cancel).stop(stack())
    assert engine.called("stop") == [("stop", "demo-redis")]
    assert engine.containers["demo-redis"] == "exited"


def test_restart_in_place(engine, config, sink, cancel):
    engine.containers.update({"demo-redis": "running", "demo-cardinal": "running"})
    controller(engine, config, sink, cancel).restart(stack())
    assert {c[1] for c in engine.called("restart")} == {"demo-redis", "demo-cardinal"}
    assert engine.called("build") == []


def test_restart_failure_names_container(engine, config, sink, cancel):
    engine.containers["demo-redis"] = "running"

    def restart(name):
        if name == "demo-cardinal":
            raise OSError("no such container")
        engine.containers[name] = "running"

    engine.restart_container = restart
    with pytest.raises(AggregatedError) as excinfo:
        controller(engine, config, sink, cancel).restart(stack())
    assert [e.container for e in excinfo.value.errors] == ["demo-cardinal"]


def test_restart_with_build(engine, config, sink, cancel, github_token):
    engine.images.add("redis:latest")
    engine.containers.update({"demo-redis": "running", "demo-cardinal": "running"})
    controller(engine, config, sink, cancel, build=True, detach=True).restart(stack())
    assert engine.called("build")
    assert engine.containers["demo-cardinal"] == "running"


def test_purge(engine, config, sink, cancel):
    engine.containers.update({"demo-redis": "running", "demo-cardinal": "exited"})
    engine.volumes.add("demo")
    engine.networks.add("demo")
    controller(engine, config, sink, cancel).purge(stack())
    assert engine.containers == {}
    assert "demo" not in engine.volumes
    assert "demo" not in engine.networks


def test_exec(engine, config, sink, cancel):
    engine.containers["demo-cardinal"] = "running"
    engine.exec_results["demo-cardinal"] = (0, "hello\nwarning on stderr\n")
    output = controller(engine, config, sink, cancel).exec("demo-cardinal", ["echo", "hello"])
    assert output == "hello\nwarning on stderr\n"


def test_exec_missing_or_stopped(engine, config, sink, cancel):
    ctl = controller(engine, config, sink, cancel)
    with pytest.raises(LifecycleError, match="does not exist"):
        ctl.exec("demo-cardinal", ["ls"])
    engine.containers["demo-cardinal"] = "exited"
    with pytest.raises(LifecycleError, match="not running"):
        ctl.exec("demo-cardinal", ["ls"])


def test_exec_command_not_found(engine, config, sink, cancel):
    engine.containers["demo-cardinal"] = "running"
    engine.exec_results["demo-cardinal"] = (127, "exec: nope: not found")
    with pytest.raises(LifecycleError, match="cannot run nope"):
        controller(engine, config, sink, cancel).exec("demo-cardinal", ["nope"])
