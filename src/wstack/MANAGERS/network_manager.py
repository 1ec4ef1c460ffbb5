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
Network management for the stack: one bridge network per namespace.
"""
from ..ENGINE.client import ENGINE_ERRORS, EngineClient, describe_error
from ..errors import LifecycleError
from ..logger import logger


class NetworkManager:
    """
    Creates and removes the namespace network the containers resolve each other on.
    """
    def __init__(self, engine: EngineClient):
        self.engine = engine

    def ensure(self, name: str):
        """
        Creates the network unless it already exists.

        :raises LifecycleError: If the engine refuses.
        """
        try:
            if self.engine.network_exists(name):
                return
            logger.info("Creating network", network=name)
            self.engine.create_network(name)
        except ENGINE_ERRORS as e:
            raise LifecycleError(name, f"failed to create network: {describe_error(e)}")

    def remove(self, name: str):
        try:
            if not self.engine.network_exists(name):
                return
            logger.info("Removing network", network=name)
            self.engine.remove_network(name)
        except ENGINE_ERRORS as e:
            raise LifecycleError(name, f"failed to remove network: {describe_error(e)}")
