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
Shared worker body for pulls and pushes: follow the engine's JSON progress
stream for one image and report a never-decreasing percentage.
"""
from typing import Callable, Type

from ..ENGINE.client import ENGINE_ERRORS, EngineStream, describe_error
from ..ENGINE.context import CancelContext
from ..errors import CancelledError, ImageError
from ..logger import logger
from ..MANAGERS.progress_sink import ProgressSink
from ..MODELS.progress import CROSS_ICON, TICK_ICON, ProcessState, PullProgress
from ..UTILS.json_message import decode_message, error_message


class Transfer:
    """
    Moves one image to or from a registry.

    :param image: Image reference, used as the progress key.
    :param state: Progress state while running, e.g. ``pulling``.
    :param error_cls: PullError or PushError.
    :param open_stream: Starts the transfer and returns its response stream.
    """

    def __init__(self, image: str, state: str, error_cls: Type[ImageError],
                 open_stream: Callable[[], EngineStream], sink: ProgressSink, ctx: CancelContext):
        self.image = image
        self.state = state
        self.error_cls = error_cls
        self.open_stream = open_stream
        self.sink = sink
        self.ctx = ctx
        self.progress = PullProgress()

    def _send(self, detail: str = "", done: bool = False, icon: str = "", percent=None):
        self.sink.send(ProcessState(name=self.image, type="image", state=self.state, detail=detail,
                                    done=done, icon=icon, percent=percent))

    def _cancelled(self) -> CancelledError:
        self._send(detail="cancelled", done=True, icon=CROSS_ICON)
        return CancelledError(self.image, self.error_cls.action)

    def _failed(self, message: str) -> ImageError:
        self._send(detail=message, done=True, icon=CROSS_ICON)
        return self.error_cls(self.image, message)

    def run(self):
        """
        :raises PullError: Or PushError, when the engine rejects the transfer.
        :raises CancelledError: When the shared context is cancelled mid-transfer.
        """
        if self.ctx.cancelled:
            raise self._cancelled()
        self._send(percent=0)

        try:
            stream = self.open_stream()
        except ENGINE_ERRORS as e:
            if self.ctx.cancelled:
                raise self._cancelled()
            raise self._failed(describe_error(e))

        handle = self.ctx.on_cancel(stream.close)
        try:
            for line in stream:
                if self.ctx.cancelled:
                    break
                message = decode_message(line)
                if message is None:
                    logger.debug("Skipping undecodable progress line", image=self.image)
                    continue
                error = error_message(message)
                if error:
                    raise self._failed(error)
                self._update(message)
        except ENGINE_ERRORS as e:
            if not self.ctx.cancelled:
                raise self._failed(describe_error(e))
        finally:
            self.ctx.remove_callback(handle)
            stream.close()

        if self.ctx.cancelled:
            raise self._cancelled()

        self._send(done=True, icon=TICK_ICON, percent=self.progress.complete())

    def _update(self, message):
        detail = message.get("progressDetail")
        if not isinstance(detail, dict):
            return
        percent = self.progress.update(detail.get("current"), detail.get("total"))
        if percent is not None:
            self._send(detail=str(message.get("status") or ""), percent=percent)
