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
Error taxonomy shared by the registry, the image pipeline and the lifecycle controller.
"""
from typing import List, Sequence


class WStackError(Exception):
    """Base class for every error raised by wstack."""


class ConfigError(WStackError):
    """
    Missing namespace or required environment value.
    Raised before any call reaches the container engine.
    """


class ImageError(WStackError):
    """
    Failure attached to a single image.

    :param image: The image reference the failure concerns.
    :param message: The daemon (or local) message.
    """
    action = "process"

    def __init__(self, image: str, message: str):
        self.image = image
        self.message = message
        super().__init__(f"failed to {self.action} image {image}: {message}")


class BuildError(ImageError):
    action = "build"


class PullError(ImageError):
    action = "pull"


class PushError(ImageError):
    action = "push"


class LifecycleError(WStackError):
    """
    Engine call failed for a start, stop, restart, purge or exec.

    :param container: The container (or network/volume) name.
    :param message: What went wrong.
    """

    def __init__(self, container: str, message: str):
        self.container = container
        self.message = message
        super().__init__(f"{container}: {message}")


class CancelledError(WStackError):
    """
    The operation on ``name`` was aborted by caller cancellation.
    Never used for a rejection coming from the daemon.
    """

    def __init__(self, name: str, operation: str = "operation"):
        self.name = name
        self.operation = operation
        super().__init__(f"{operation} of {name} was cancelled")


class AggregatedError(WStackError):
    """
    Every per-image or per-container failure of one fan-out call.
    Only ever raised with at least one error.
    """

    def __init__(self, operation: str, errors: Sequence[Exception]):
        self.operation = operation
        self.errors: List[Exception] = list(errors)
        details = "; ".join(str(e) for e in self.errors)
        super().__init__(f"{operation} failed ({len(self.errors)} error(s)): {details}")

    def __iter__(self):
        return iter(self.errors)

    def __len__(self):
        return len(self.errors)

    @property
    def cancelled(self) -> bool:
        """True when every collected failure is a cancellation."""
        return all(isinstance(e, CancelledError) for e in self.errors)
