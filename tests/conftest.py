import threading

import pytest

from wstack.ENGINE.context import CancelContext
from wstack.MANAGERS.progress_sink import ProgressSink
from wstack.MODELS.stack_config import StackConfig


class FakeStream:
    """
    Stands in for EngineStream. With ``block`` set, iteration waits after the
    last line until the stream is closed, like a transfer that never finishes.
    """
    def __init__(self, lines=(), block=False):
        self.lines = list(lines)
        self.block = block
        self.closed = False
        self._closed_event = threading.Event()

    def __iter__(self):
        for line in self.lines:
            if self.closed:
                return
            yield line
        if self.block:
            self._closed_event.wait(5)

    def close(self):
        self.closed = True
        self._closed_event.set()


class FakeEngine:
    """
    In-memory engine with the EngineClient surface the orchestrator uses.
    """
    def __init__(self):
        self.images = set()
        self.containers = {}
        self.networks = set()
        self.volumes = set()
        self.buildkit = False
        self.build_streams = {}
        self.pull_streams = {}
        self.push_streams = {}
        self.build_errors = {}
        self.exit_codes = {}
        self.exec_results = {}
        self.calls = []
        self.streams = []
        self._lock = threading.Lock()
        self._exited = {}
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self):
        self.closed = True

    def _record(self, *call):
        with self._lock:
            self.calls.append(call)

    def called(self, name):
        return [c for c in self.calls if c[0] == name]

    def buildkit_supported(self):
        return self.buildkit

    def image_exists(self, image):
        self._record("image_exists", image)
        return image in self.images

    def _stream(self, streams, key):
        stream = streams.get(key)
        if stream is None:
            stream = FakeStream(['{"status": "done"}'])
        self.streams.append(stream)
        return stream

    def build(self, context, tag, target="", build_args=None, buildkit=False):
        self._record("build", tag, target, dict(build_args or {}), buildkit, context.read())
        if tag in self.build_errors:
            raise self.build_errors[tag]
        self.images.add(tag)
        return self._stream(self.build_streams, tag)

    def pull(self, image, platform=None):
        self._record("pull", image, platform)
        return self._stream(self.pull_streams, image)

    def push(self, image, auth=""):
        self._record("push", image, auth)
        return self._stream(self.push_streams, image)

    def tag(self, image, reference):
        self._record("tag", image, reference)
        self.images.add(reference)

    def container_status(self, name):
        return self.containers.get(name)

    def create_container(self, service):
        self._record("create", service.name)
        self.containers[service.name] = "created"

    def start_container(self, name):
        self._record("start", name)
        self.containers[name] = "running"
        self._exited[name] = threading.Event()

    def stop_container(self, name):
        self._record("stop", name)
        self.containers[name] = "exited"
        self.exit_codes.setdefault(name, 143)
        if name in self._exited:
            self._exited[name].set()

    def restart_container(self, name):
        self._record("restart", name)
        self.containers[name] = "running"

    def remove_container(self, name, volumes=False):
        self._record("remove", name)
        self.containers.pop(name, None)

    def wait_container(self, name):
        if name not in self.exit_codes:
            self._exited[name].wait(5)
        return self.exit_codes.get(name, 0)

    def logs(self, name):
        stream = FakeStream([f"\x1b[32m{name} ready\x1b[0m\n".encode()])
        self.streams.append(stream)
        return stream

    def exec(self, name, command):
        self._record("exec", name, list(command))
        return self.exec_results.get(name, (0, "ok\n"))

    def network_exists(self, name):
        return name in self.networks

    def create_network(self, name):
        self._record("create_network", name)
        self.networks.add(name)

    def remove_network(self, name):
        self._record("remove_network", name)
        self.networks.discard(name)

    def volume_exists(self, name):
        return name in self.volumes

    def create_volume(self, name):
        self._record("create_volume", name)
        self.volumes.add(name)

    def remove_volume(self, name):
        self._record("remove_volume", name)
        self.volumes.discard(name)


class RecordingSink(ProgressSink):
    def __init__(self):
        super().__init__()
        self.messages = []

    def _deliver(self, state):
        self.messages.append(state)

    def for_name(self, name):
        return [m for m in self.messages if m.name == name]


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def cancel():
    ctx = CancelContext()
    yield ctx
    ctx.release()


@pytest.fixture
def config(tmp_path):
    (tmp_path / "cardinal").mkdir()
    (tmp_path / "cardinal" / "main.go").write_text("package main\n")
    return StackConfig(root_dir=str(tmp_path), docker_env={"CARDINAL_NAMESPACE": "demo"})


@pytest.fixture
def github_token(monkeypatch):
    monkeypatch.setenv("ARGUS_WEV2_GITHUB_TOKEN", "ghp_test")
    return "ghp_test"
