# Copyright 2024 Michael Maillet, Damien Davison, Sacha Davison
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""
Container engine client.
Thin adapter over the Docker SDK exposing the calls the orchestrator needs,
with streaming build/pull/push responses that can be closed from any thread.
"""

import json
import os
import socket
import threading
from typing import IO, Dict, Iterator, List, Optional, Tuple

import docker
import docker.errors
import docker.types
import docker.utils
import requests

from ..logger import logger
from ..MODELS.service_definition import Service

BUILDKIT_MIN_VERSION = (18, 9)

# Failures an engine call can raise for reasons outside our control.
ENGINE_ERRORS = (docker.errors.DockerException, requests.exceptions.RequestException, OSError)


def describe_error(error: Exception) -> str:
    """
    Returns the most useful message of an engine failure, preferring the daemon explanation.
    """
    explanation = getattr(error, "explanation", None)
    if explanation:
        return explanation.decode() if isinstance(explanation, bytes) else str(explanation)
    return str(error)


class EngineStream:
    """
    A streaming JSON-lines response from the engine.
    Iterating yields raw text lines; decoding is left to the caller.
    """

    def __init__(self, response: requests.Response, name: str = ""):
        self._response = response
        self._lock = threading.Lock()
        self._closed = False
        self.name = name

    def __iter__(self) -> Iterator[str]:
        lines = self._response.iter_lines()
        while True:
            try:
                line = next(lines)
            except StopIteration:
                return
            except Exception:
                # Reads fail in various ways once the response is closed under them.
                if self._closed:
                    return
                raise
            if not line:
                continue
            if isinstance(line, bytes):
                line = line.decode("utf-8", errors="replace")
            yield line

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self):
        """
        Closes the underlying response. Safe to call twice and from another thread.

        A reader blocked on the response holds its buffer lock until data
        arrives, so the socket is shut down first to wake it up.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
        sock = _response_socket(self._response)
        if sock is not None:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError as e:
                logger.debug("Socket already disconnected", stream=self.name, err=str(e))
        self._response.close()


def _response_socket(response: requests.Response):
    """
    Finds the socket behind a streamed response, or None once it has been released.
    """
    raw = getattr(response, "raw", None)
    sock = getattr(getattr(raw, "connection", None), "sock", None)
    if sock is None:
        # Same path the Docker SDK takes for attach sockets.
        fp = getattr(getattr(raw, "_fp", None), "fp", None)
        io = getattr(fp, "raw", None)
        sock = getattr(io, "_sock", None)
    return sock if hasattr(sock, "shutdown") else None


def _parse_version(version: str) -> Tuple[int, ...]:
    parts = []
    for piece in version.split(".")[:2]:
        digits = "".join(ch for ch in piece if ch.isdigit())
        parts.append(int(digits) if digits else 0)
    return tuple(parts)


def _nanoseconds(seconds: float) -> int:
    return int(seconds * 1_000_000_000)


class EngineClient:
    """
    One long-lived connection to the container engine.

    Construct it once per invocation, pass it to every component, and close
    it with ``with EngineClient.from_env() as engine:``.
    """

    def __init__(self, client: docker.DockerClient):
        self.client = client
        self.api = client.api

    @classmethod
    def from_env(cls) -> "EngineClient":
        """
        Connects using DOCKER_HOST and friends, negotiating the API version.
        """
        return cls(docker.from_env(version="auto"))

    def close(self):
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # Images

    def buildkit_supported(self) -> bool:
        """
        BuildKit output is used when the daemon is at least 18.09 and DOCKER_BUILDKIT=1.
        """
        try:
            version = self.client.version().get("Version", "")
        except docker.errors.APIError as e:
            logger.warning("Failed to get engine version", err=str(e))
            return False
        if _parse_version(version) < BUILDKIT_MIN_VERSION:
            return False
        return os.environ.get("DOCKER_BUILDKIT") == "1"

    def image_exists(self, image: str) -> bool:
        try:
            self.api.inspect_image(image)
        except docker.errors.ImageNotFound:
            return False
        return True

    def _url(self, path: str) -> str:
        return f"{self.api.base_url}/v{self.api.api_version}{path}"

    def _stream(self, path: str, name: str, **kwargs) -> EngineStream:
        response = self.api.post(self._url(path), stream=True, timeout=None, **kwargs)
        try:
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            response.close()
            raise docker.errors.create_api_error_from_http_exception(e)
        return EngineStream(response, name=name)

    def build(self, context: IO[bytes], tag: str, target: str = "",
              build_args: Optional[Dict[str, str]] = None, buildkit: bool = False) -> EngineStream:
        """
        Starts an image build from a tar archive holding a Dockerfile at its root.
        """
        params = {
            "t": tag,
            "dockerfile": "Dockerfile",
            "rm": "1",
            "version": "2" if buildkit else "1",
        }
        if target:
            params["target"] = target
        if build_args:
            params["buildargs"] = json.dumps(build_args)
        return self._stream(
            "/build", tag, params=params, data=context,
            headers={"Content-Type": "application/x-tar"},
        )

    def pull(self, image: str, platform: Optional[str] = None) -> EngineStream:
        repository, tag = docker.utils.parse_repository_tag(image)
        params = {"fromImage": repository, "tag": tag or "latest"}
        if platform:
            params["platform"] = platform
        return self._stream("/images/create", image, params=params)

    def push(self, image: str, auth: str = "") -> EngineStream:
        repository, tag = docker.utils.parse_repository_tag(image)
        params = {"tag": tag} if tag else {}
        headers = {"X-Registry-Auth": auth} if auth else {}
        return self._stream(f"/images/{repository}/push", image, params=params, headers=headers)

    def tag(self, image: str, reference: str):
        repository, tag = docker.utils.parse_repository_tag(reference)
        self.api.tag(image, repository, tag=tag)

    # Containers

    def container_status(self, name: str) -> Optional[str]:
        """
        :return: The engine status ("running", "exited", ...) or None if the container does not exist.
        """
        try:
            return self.client.containers.get(name).status
        except docker.errors.NotFound:
            return None

    def create_container(self, service: Service):
        ports = {}
        for port, host_ports in service.port_bindings.items():
            if host_ports:
                ports[port] = [int(p) for p in host_ports] if len(host_ports) > 1 else int(host_ports[0])

        kwargs = {
            "image": service.image,
            "name": service.name,
            "environment": [f"{k}={v}" for k, v in service.environment.items()],
            "ports": ports,
            "detach": True,
        }
        if service.entrypoint:
            kwargs["entrypoint"] = service.entrypoint
        if service.cmd:
            kwargs["command"] = service.cmd
        if service.user:
            kwargs["user"] = service.user
        if service.platform:
            kwargs["platform"] = service.platform
        if service.network:
            kwargs["network"] = service.network
        if service.restart_policy is not None:
            kwargs["restart_policy"] = {
                "Name": service.restart_policy.condition.value,
                "MaximumRetryCount": service.restart_policy.max_retries,
            }
        if service.cap_add:
            kwargs["cap_add"] = service.cap_add
        if service.security_opt:
            kwargs["security_opt"] = service.security_opt
        if service.mounts:
            kwargs["mounts"] = [
                docker.types.Mount(target=m.target, source=m.source, type=m.type, read_only=m.read_only)
                for m in service.mounts
            ]
        if service.health_check:
            hc = service.health_check
            kwargs["healthcheck"] = {
                "test": hc.test,
                "interval": _nanoseconds(hc.interval),
                "timeout": _nanoseconds(hc.timeout),
                "retries": hc.retries,
                "start_period": _nanoseconds(hc.start_period),
            }
        return self.client.containers.create(**kwargs)

    def start_container(self, name: str):
        self.client.containers.get(name).start()

    def stop_container(self, name: str):
        self.client.containers.get(name).stop()

    def restart_container(self, name: str):
        self.client.containers.get(name).restart()

    def remove_container(self, name: str, volumes: bool = False):
        self.client.containers.get(name).remove(v=volumes, force=True)

    def wait_container(self, name: str) -> int:
        """Blocks until the container exits and returns its exit code."""
        result = self.client.containers.get(name).wait()
        return int(result.get("StatusCode", 0))

    def logs(self, name: str):
        """
        Follows stdout and stderr of a container.
        The returned stream yields bytes and has a ``close`` method.
        """
        return self.client.containers.get(name).logs(stream=True, follow=True, stdout=True, stderr=True)

    def exec(self, name: str, command: List[str]) -> Tuple[int, str]:
        """
        Runs ``command`` in a running container.

        :return: The exit code and the combined stdout/stderr output.
        """
        result = self.client.containers.get(name).exec_run(command, stdout=True, stderr=True)
        output = result.output or b""
        return result.exit_code, output.decode("utf-8", errors="replace")

    # Networks and volumes

    def network_exists(self, name: str) -> bool:
        return any(n.name == name for n in self.client.networks.list(names=[name]))

    def create_network(self, name: str):
        self.client.networks.create(name, driver="bridge")

    def remove_network(self, name: str):
        for network in self.client.networks.list(names=[name]):
            if network.name == name:
                network.remove()

    def volume_exists(self, name: str) -> bool:
        try:
            self.client.volumes.get(name)
        except docker.errors.NotFound:
            return False
        return True

    def create_volume(self, name: str):
        self.client.volumes.create(name=name)

    def remove_volume(self, name: str):
        self.client.volumes.get(name).remove(force=True)
