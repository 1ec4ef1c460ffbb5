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
Concurrent image builds for services that carry a Dockerfile.
"""
import os
from functools import partial
from typing import Iterable, List, Optional

import docker.errors

from .build_context import build_context, strip_cache_mounts
from .build_log import BuildLogFormat, interpret
from ..ENGINE.client import ENGINE_ERRORS, EngineClient, EngineStream, describe_error
from ..ENGINE.context import CancelContext
from ..errors import AggregatedError, BuildError, CancelledError
from ..logger import logger
from ..MANAGERS.progress_sink import ProgressSink
from ..MODELS.progress import CROSS_ICON, TICK_ICON, ProcessState
from ..MODELS.service_definition import Service
from ..MODELS.stack_config import StackConfig
from ..RUNNERS.worker_pool import run_workers

GITHUB_TOKEN_ENV = "ARGUS_WEV2_GITHUB_TOKEN"


class ImageBuilder:
    """
    Builds the images of services with a non-empty Dockerfile, one worker per image.
    """

    def __init__(self, engine: EngineClient, config: StackConfig, sink: ProgressSink,
                 ctx: CancelContext, log_format: Optional[BuildLogFormat] = None):
        """
        :param engine: Open engine connection.
        :param config: Stack configuration; ``root_dir`` is the default build context.
        :param sink: Where progress messages go.
        :param ctx: Cancellation shared by all workers.
        :param log_format: Force a build log format instead of asking the engine.
        """
        self.engine = engine
        self.config = config
        self.sink = sink
        self.ctx = ctx
        self.log_format = log_format

    def build_all(self, services: Iterable[Service]):
        """
        Builds every service that needs a build. Services without a Dockerfile are ignored.

        :raises AggregatedError: With one BuildError or CancelledError per failed image.
        """
        to_build: List[Service] = [s for s in services if s.needs_build]
        if not to_build:
            return

        token = os.environ.get(GITHUB_TOKEN_ENV, "")
        if not token:
            # No daemon call is made without the token.
            raise AggregatedError("build", [
                self._fail(s.image, BuildError(s.image, f"{GITHUB_TOKEN_ENV} is not set")) for s in to_build
            ])

        fmt = self.log_format
        if fmt is None:
            fmt = BuildLogFormat.TRACE if self.engine.buildkit_supported() else BuildLogFormat.CLASSIC

        logger.info("Building images", images=[s.image for s in to_build], log_format=fmt.value)
        run_workers("build", [(s.image, partial(self._build_one, s, fmt, token)) for s in to_build])

    def _send(self, image: str, state: str, detail: str = "", done: bool = False, icon: str = ""):
        self.sink.send(ProcessState(name=image, type="image", state=state, detail=detail, done=done, icon=icon))

    def _fail(self, image: str, error: Exception) -> Exception:
        self._send(image, "building", detail=str(error), done=True, icon=CROSS_ICON)
        return error

    def _build_one(self, service: Service, fmt: BuildLogFormat, token: str):
        image = service.image
        log = logger.bind(image=image)
        if self.ctx.cancelled:
            raise self._fail(image, CancelledError(image, "build"))

        self._send(image, "building")

        try:
            self._remove_stale_container(service)
        except ENGINE_ERRORS as e:
            raise self._fail(image, BuildError(image, f"failed to remove container {service.name}: {describe_error(e)}"))

        build = service.build
        source_dir = build.context_root or self.config.root_dir
        args = {"SOURCE_PATH": ".", "GITHUB_TOKEN": token}
        args.update(build.args)

        log.debug("Assembling build context", source_dir=source_dir, target=build.target)
        try:
            dockerfile = build.dockerfile if fmt is BuildLogFormat.TRACE else strip_cache_mounts(build.dockerfile)
            archive = build_context(dockerfile, source_dir)
        except OSError as e:
            raise self._fail(image, BuildError(image, f"failed to assemble build context: {e}"))

        with archive:
            try:
                stream = self.engine.build(archive, tag=image, target=build.target, build_args=args,
                                           buildkit=fmt is BuildLogFormat.TRACE)
            except ENGINE_ERRORS as e:
                if self.ctx.cancelled:
                    raise self._fail(image, CancelledError(image, "build"))
                raise self._fail(image, BuildError(image, describe_error(e)))
            self._follow(image, stream, fmt)

        log.info("Image built")
        self._send(image, "built", done=True, icon=TICK_ICON)

    def _remove_stale_container(self, service: Service):
        # A container left from an older image would keep running the old build.
        if self.engine.container_status(service.name) is None:
            return
        try:
            self.engine.remove_container(service.name)
        except docker.errors.NotFound:
            pass

    def _follow(self, image: str, stream: EngineStream, fmt: BuildLogFormat):
        handle = self.ctx.on_cancel(stream.close)
        try:
            for event in interpret(stream, fmt):
                if self.ctx.cancelled:
                    break
                if event.is_error:
                    raise self._fail(image, BuildError(image, event.error))
                self._send(image, "building", detail=event.step)
        except ENGINE_ERRORS as e:
            if not self.ctx.cancelled:
                raise self._fail(image, BuildError(image, describe_error(e)))
        finally:
            self.ctx.remove_callback(handle)
            stream.close()

        if self.ctx.cancelled:
            raise self._fail(image, CancelledError(image, "build"))
