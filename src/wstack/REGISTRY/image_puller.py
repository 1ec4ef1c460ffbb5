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
Concurrent pulls of the registry images a stack needs.
"""
from functools import partial
from typing import Iterable, List

from .transfer import Transfer
from ..ENGINE.client import ENGINE_ERRORS, EngineClient, describe_error
from ..ENGINE.context import CancelContext
from ..errors import AggregatedError, PullError
from ..logger import logger
from ..MANAGERS.progress_sink import ProgressSink
from ..MODELS.service_definition import Service
from ..RUNNERS.dependency_resolver import DependencyResolver
from ..RUNNERS.worker_pool import run_workers


class ImagePuller:
    """
    Pulls missing images, one worker per image.
    """

    def __init__(self, engine: EngineClient, sink: ProgressSink, ctx: CancelContext):
        self.engine = engine
        self.sink = sink
        self.ctx = ctx

    def images_to_pull(self, services: Iterable[Service]) -> List[Service]:
        """
        Returns the minimal set of images to pull: images that are neither present
        locally nor built from a Dockerfile, including those of every dependency.
        Each image appears once, dependencies first.

        :raises AggregatedError: If the engine cannot be asked whether an image exists.
        """
        needed: List[Service] = []
        seen = set()
        # Dependencies come first and are checked even when the parent needs nothing.
        for service in DependencyResolver().closure(services):
            if service.image in seen:
                continue
            seen.add(service.image)
            if service.needs_build:
                continue
            try:
                present = self.engine.image_exists(service.image)
            except ENGINE_ERRORS as e:
                raise AggregatedError("pull", [PullError(service.image, describe_error(e))])
            if not present:
                needed.append(service)
        return needed

    def pull_all(self, services: Iterable[Service]):
        """
        Pulls every image returned by :meth:`images_to_pull`.

        :raises AggregatedError: With one PullError or CancelledError per failed image.
        """
        to_pull = self.images_to_pull(services)
        if not to_pull:
            logger.debug("All images present, nothing to pull")
            return

        logger.info("Pulling images", images=[s.image for s in to_pull])
        run_workers("pull", [(s.image, partial(self._pull_one, s)) for s in to_pull])

    def _pull_one(self, service: Service):
        Transfer(
            service.image, "pulling", PullError,
            partial(self.engine.pull, service.image, service.platform),
            self.sink, self.ctx,
        ).run()
        logger.info("Image pulled", image=service.image)
