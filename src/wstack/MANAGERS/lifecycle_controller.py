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
Lifecycle of a stack: start, stop, restart, purge and exec against its containers.
"""
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from functools import partial
from typing import Callable, List, Optional

import docker.errors
from tenacity import Retrying, retry_if_result, stop_after_delay, stop_any, wait_fixed

from .log_aggregator import LogAggregator
from .network_manager import NetworkManager
from .progress_sink import ProgressSink
from .volume_manager import VolumeManager
from ..BUILDERS.image_builder import ImageBuilder
from ..ENGINE.client import ENGINE_ERRORS, EngineClient, describe_error
from ..ENGINE.context import CancelContext
from ..errors import AggregatedError, CancelledError, LifecycleError, WStackError
from ..logger import logger
from ..MODELS.progress import CROSS_ICON, TICK_ICON, ProcessState
from ..MODELS.service_definition import Service
from ..MODELS.stack_config import StackConfig
from ..REGISTRY.image_puller import ImagePuller
from ..RUNNERS.worker_pool import run_workers
from ..SERVICES.base import namespace

# Exit codes of containers stopped by SIGINT, SIGKILL and SIGTERM.
EXPECTED_EXIT_CODES = {130, 137, 143}

# Exec exit codes meaning the command itself could not be run.
EXEC_NOT_RUNNABLE = {126, 127}

# Seconds between status checks while waiting on containers.
POLL_INTERVAL = 0.5


class LifecycleController:
    """
    Drives the containers of a stack. Each public method raises a single
    error on failure and returns normally on success.
    """

    def __init__(self, engine: EngineClient, config: StackConfig, sink: ProgressSink,
                 ctx: CancelContext, write: Callable[[str], None] = print):
        """
        :param engine: Open engine connection.
        :param config: Stack configuration.
        :param sink: Where progress messages go.
        :param ctx: Cancellation for the whole invocation.
        :param write: Receives container log lines in foreground mode.
        """
        self.engine = engine
        self.config = config
        self.sink = sink
        self.ctx = ctx
        self.write = write
        self.networks = NetworkManager(engine)
        self.volumes = VolumeManager(engine)

    # Start

    def start(self, services: List[Service]):
        """
        Brings the stack up: network and volume, images, then containers.

        In detached mode this returns once the containers are started (and, with a
        positive timeout, running). Otherwise container logs are streamed until every
        container exits or the context is cancelled, and the stack is stopped afterwards.

        :raises ConfigError: If the namespace is missing.
        :raises AggregatedError: With every per-image or per-container failure.
        """
        ns = namespace(self.config)
        log = logger.bind(namespace=ns)

        try:
            self._prepare(ns, services)
            self._acquire_images(services)
            self._process("start", services, "starting", "started", self._up_one)
            log.info("Stack started", containers=[s.name for s in services])

            if self.config.detach:
                if self.config.timeout > 0:
                    self._wait_running(services)
                return

            self._run_foreground(services)
        finally:
            if not self.config.detach:
                self._stop_after_run(services)

    def _prepare(self, ns: str, services: List[Service]):
        try:
            self.networks.ensure(ns)
            self.volumes.ensure(ns)
        except LifecycleError as e:
            raise AggregatedError("start", [e])

    def _acquire_images(self, services: List[Service]):
        ImagePuller(self.engine, self.sink, self.ctx).pull_all(services)

        candidates = [s for s in services if s.needs_build]
        if not self.config.build:
            candidates = [s for s in candidates if not self._image_exists(s)]
        if candidates:
            ImageBuilder(self.engine, self.config, self.sink, self.ctx).build_all(candidates)

    def _image_exists(self, service: Service) -> bool:
        try:
            return self.engine.image_exists(service.image)
        except ENGINE_ERRORS as e:
            raise AggregatedError("build", [LifecycleError(service.image, describe_error(e))])

    def _up_one(self, service: Service):
        status = self.engine.container_status(service.name)
        if status is None:
            logger.debug("Creating container", container=service.name, image=service.image)
            self.engine.create_container(service)
        if status != "running":
            self.engine.start_container(service.name)

    def _not_running(self, names: List[str]) -> List[str]:
        return [name for name in names if self.engine.container_status(name) != "running"]

    def _wait_running(self, services: List[Service]):
        """
        Polls until every container reports running, the timeout passes, or the context is cancelled.
        """
        names = [s.name for s in services]
        retrying = Retrying(
            stop=stop_any(stop_after_delay(self.config.timeout), lambda retry_state: self.ctx.cancelled),
            wait=wait_fixed(POLL_INTERVAL),
            sleep=self.ctx.wait,
            retry=retry_if_result(bool),
            retry_error_callback=lambda retry_state: retry_state.outcome.result(),
        )
        try:
            pending = retrying(self._not_running, names)
        except ENGINE_ERRORS as e:
            raise AggregatedError("start", [LifecycleError(name, describe_error(e)) for name in names])

        if not pending:
            return
        if self.ctx.cancelled:
            raise AggregatedError("start", [CancelledError(name, "start") for name in pending])
        raise AggregatedError("start", [
            LifecycleError(name, f"not running after {self.config.timeout}s") for name in pending
        ])

    def _run_foreground(self, services: List[Service]):
        names = [s.name for s in services]
        aggregator = LogAggregator(self.engine, self.ctx, write=self.write)
        aggregator.follow(names)
        try:
            errors = self._wait_exit(names)
        finally:
            aggregator.close()
        if errors:
            raise AggregatedError("run", errors)

    def _wait_exit(self, names: List[str]) -> List[WStackError]:
        """
        Blocks until every container exits. On cancellation the containers are
        stopped, which releases the waits.

        :return: A LifecycleError per container that exited with an unexpected code.
        """
        errors: List[WStackError] = []
        if not names:
            return errors
        stopping = False
        with ThreadPoolExecutor(max_workers=len(names), thread_name_prefix="wstack-wait") as pool:
            futures = {pool.submit(self.engine.wait_container, name): name for name in names}
            pending = set(futures)
            while pending:
                if self.ctx.cancelled and not stopping:
                    stopping = True
                    logger.info("Stopping stack", reason=self.ctx.reason)
                    self._stop_quietly(names)
                done, pending = wait(pending, timeout=POLL_INTERVAL, return_when=FIRST_COMPLETED)
                for future in done:
                    error = self._check_exit(futures[future], future)
                    if error is not None and not self.ctx.cancelled:
                        errors.append(error)
        return errors

    @staticmethod
    def _check_exit(name: str, future) -> Optional[WStackError]:
        try:
            code = future.result()
        except docker.errors.NotFound:
            return LifecycleError(name, "container disappeared while running")
        except ENGINE_ERRORS as e:
            return LifecycleError(name, f"failed to wait for container: {describe_error(e)}")
        if code == 0 or code in EXPECTED_EXIT_CODES:
            logger.info("Container exited", container=name, code=code)
            return None
        return LifecycleError(name, f"exited with code {code}")

    def _stop_quietly(self, names: List[str]):
        for name in names:
            try:
                self.engine.stop_container(name)
            except ENGINE_ERRORS as e:
                logger.warning("Failed to stop container", container=name, err=describe_error(e))

    def _stop_after_run(self, services: List[Service]):
        try:
            self.stop(services)
        except WStackError as e:
            logger.error("Failed to stop containers", err=str(e))

    # Stop, restart, purge

    def stop(self, services: List[Service]):
        """
        Stops every existing container of ``services``; missing containers are skipped
        and volumes are kept.
        """
        self._process("stop", services, "stopping", "stopped", self._stop_one)

    def _stop_one(self, service: Service):
        if self.engine.container_status(service.name) is None:
            return
        self.engine.stop_container(service.name)

    def restart(self, services: List[Service]):
        """
        With ``config.build`` set the stack is stopped and started again, rebuilding
        images. Otherwise each container is restarted in place.
        """
        if self.config.build:
            self.stop(services)
            self.start(services)
            return
        self._process("restart", services, "restarting", "restarted",
                      lambda service: self.engine.restart_container(service.name))

    def purge(self, services: List[Service]):
        """
        Stops and removes every container, then deletes the namespace volume and network.
        The volume data cannot be recovered.
        """
        ns = namespace(self.config)
        self._process("purge", services, "removing", "removed", self._remove_one)
        try:
            self.volumes.remove(ns)
            self.networks.remove(ns)
        except LifecycleError as e:
            raise AggregatedError("purge", [e])
        logger.info("Stack purged", namespace=ns)

    def _remove_one(self, service: Service):
        status = self.engine.container_status(service.name)
        if status is None:
            return
        if status == "running":
            self.engine.stop_container(service.name)
        self.engine.remove_container(service.name)

    def _process(self, operation: str, services: List[Service], start_state: str, finish_state: str,
                 fn: Callable[[Service], None]):
        tasks = [(s.name, partial(self._process_one, operation, s, start_state, finish_state, fn))
                 for s in services]
        run_workers(operation, tasks)

    def _process_one(self, operation: str, service: Service, start_state: str, finish_state: str,
                     fn: Callable[[Service], None]):
        name = service.name
        if self.ctx.cancelled and operation == "start":
            self._send(name, start_state, detail="cancelled", done=True, icon=CROSS_ICON)
            raise CancelledError(name, operation)
        self._send(name, start_state)
        try:
            fn(service)
        except ENGINE_ERRORS as e:
            message = f"failed to {operation}: {describe_error(e)}"
            self._send(name, start_state, detail=message, done=True, icon=CROSS_ICON)
            raise LifecycleError(name, message)
        self._send(name, finish_state, done=True, icon=TICK_ICON)

    def _send(self, name: str, state: str, detail: str = "", done: bool = False, icon: str = ""):
        self.sink.send(ProcessState(name=name, type="container", state=state, detail=detail, done=done, icon=icon))

    # Exec

    def exec(self, container: str, command: List[str]) -> str:
        """
        Runs ``command`` in a running container.

        :param container: Full container name, e.g. ``<namespace>-cardinal``.
        :return: The combined stdout and stderr output.
        :raises LifecycleError: If the container is missing or not running, or the command cannot be run.
        """
        try:
            status = self.engine.container_status(container)
            if status is None:
                raise LifecycleError(container, "container does not exist")
            if status != "running":
                raise LifecycleError(container, f"container is not running (status {status})")
            code, output = self.engine.exec(container, command)
        except ENGINE_ERRORS as e:
            raise LifecycleError(container, f"exec failed: {describe_error(e)}")

        if code in EXEC_NOT_RUNNABLE:
            raise LifecycleError(container, f"cannot run {' '.join(command)}: {output.strip()}")
        logger.debug("Exec finished", container=container, code=code)
        return output
