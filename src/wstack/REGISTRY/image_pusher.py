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
Concurrent pushes of locally built images to a registry.
"""
from functools import partial
from typing import Iterable, List, Optional

from .transfer import Transfer
from ..ENGINE.client import ENGINE_ERRORS, EngineClient, describe_error
from ..ENGINE.context import CancelContext
from ..errors import ConfigError, PushError
from ..logger import logger
from ..MANAGERS.progress_sink import ProgressSink
from ..MODELS.progress import CROSS_ICON, ProcessState
from ..MODELS.service_definition import Service
from ..RUNNERS.worker_pool import run_workers


def target_reference(target: str, image: str) -> str:
    """
    Places ``image`` under the ``target`` registry or repository prefix.
    An empty target keeps the image reference as is.
    """
    if not target:
        return image
    return f"{target.rstrip('/')}/{image.rsplit('/', 1)[-1]}"


class ImagePusher:
    """
    Pushes images that already exist locally, one worker per image.
    """

    def __init__(self, engine: EngineClient, sink: ProgressSink, ctx: CancelContext):
        self.engine = engine
        self.sink = sink
        self.ctx = ctx

    def push_all(self, target: Optional[str], auth: str, services: Iterable[Service]):
        """
        :param target: Registry or repository prefix to push to, or None to push under the local name.
        :param auth: Base64 encoded registry auth for the X-Registry-Auth header.
        :param services: Services whose images are pushed.
        :raises ConfigError: If an image is missing locally. Nothing is pushed in that case.
        :raises AggregatedError: With one PushError or CancelledError per failed image.
        """
        images: List[str] = []
        for service in services:
            if service.image not in images:
                images.append(service.image)
        if not images:
            return

        try:
            missing = [image for image in images if not self.engine.image_exists(image)]
        except ENGINE_ERRORS as e:
            raise ConfigError(f"cannot inspect local images: {describe_error(e)}")
        if missing:
            raise ConfigError(f"images not found locally, build them first: {', '.join(missing)}")

        logger.info("Pushing images", images=images, target=target or "")
        run_workers("push", [(image, partial(self._push_one, image, target or "", auth)) for image in images])

    def _push_one(self, image: str, target: str, auth: str):
        reference = target_reference(target, image)
        if reference != image:
            try:
                self.engine.tag(image, reference)
            except ENGINE_ERRORS as e:
                message = f"failed to tag as {reference}: {describe_error(e)}"
                self.sink.send(ProcessState(name=image, state="pushing", detail=message, done=True, icon=CROSS_ICON))
                raise PushError(image, message)

        Transfer(reference, "pushing", PushError, partial(self.engine.push, reference, auth),
                 self.sink, self.ctx).run()
        logger.info("Image pushed", image=image, reference=reference)
