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
Volume management for the stack: the named data volume of a namespace.
"""
from ..ENGINE.client import ENGINE_ERRORS, EngineClient, describe_error
from ..errors import LifecycleError
from ..logger import logger


class VolumeManager:
    """
    Creates and removes named volumes. Data in a volume survives stop and restart;
    only :meth:`remove` destroys it.
    """
    def __init__(self, engine: EngineClient):
        self.engine = engine

    def ensure(self, name: str):
        """
        Creates the volume unless it already exists.

        :param name: The volume name, normally the namespace.
        :raises LifecycleError: If the engine refuses.
        """
        try:
            if self.engine.volume_exists(name):
                return
            logger.info("Creating volume", volume=name)
            self.engine.create_volume(name)
        except ENGINE_ERRORS as e:
            raise LifecycleError(name, f"failed to create volume: {describe_error(e)}")

    def remove(self, name: str):
        """
        Removes the volume and everything in it. Missing volumes are ignored.
        """
        try:
            if not self.engine.volume_exists(name):
                return
            logger.info("Removing volume", volume=name)
            self.engine.remove_volume(name)
        except ENGINE_ERRORS as e:
            raise LifecycleError(name, f"failed to remove volume: {describe_error(e)}")
