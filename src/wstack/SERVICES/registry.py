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
Service descriptor registry: turns the stack configuration into Service values.
"""
from typing import Callable, Dict, List

from .base import namespace
from .cardinal import cardinal
from .evm import celestia_devnet, evm
from .nakama import nakama, nakama_db
from .redis import redis
from .telemetry import jaeger, prometheus
from ..errors import ConfigError
from ..MODELS.service_definition import Service
from ..MODELS.stack_config import StackConfig

Builder = Callable[[StackConfig], Service]

BUILDERS: Dict[str, Builder] = {
    "cardinal": cardinal,
    "nakama": nakama,
    "nakama-db": nakama_db,
    "redis": redis,
    "evm": evm,
    "celestia-devnet": celestia_devnet,
    "jaeger": jaeger,
    "prometheus": prometheus,
}

DEFAULT_STACK = ("nakama-db", "redis", "cardinal", "nakama")
# Everything a cardinal stack may have started, telemetry included.
FULL_STACK = DEFAULT_STACK + ("jaeger", "prometheus")


class ServiceRegistry:
    """
    Describes services for one stack configuration.
    Descriptions are rebuilt on every call and have no side effects.
    """

    def __init__(self, config: StackConfig):
        self.config = config

    @staticmethod
    def names() -> List[str]:
        return list(BUILDERS)

    def describe(self, name: str) -> Service:
        """
        Returns the fully defaulted Service for ``name``.

        :param name: Short service name, e.g. ``cardinal``.
        :raises ConfigError: If the namespace is empty, the service is unknown,
            or a required environment value is missing.
        """
        namespace(self.config)
        builder = BUILDERS.get(name)
        if builder is None:
            raise ConfigError(f"unknown service {name!r}, expected one of: {', '.join(BUILDERS)}")
        return builder(self.config)

    def describe_all(self, names) -> List[Service]:
        return [self.describe(name) for name in names]

    def stack(self) -> List[Service]:
        """
        The services started for a cardinal stack: the default four, plus jaeger
        and prometheus when telemetry is on and nakama tracing or metrics are enabled.
        """
        names = list(DEFAULT_STACK)
        if self.config.telemetry and self.config.env("NAKAMA_TRACE_ENABLED") == "true":
            names.append("jaeger")
        if self.config.telemetry and self.config.env("NAKAMA_METRICS_ENABLED") == "true":
            names.append("prometheus")
        return self.describe_all(names)

    def full_stack(self) -> List[Service]:
        """Every service a stack can run, used by stop and purge."""
        return self.describe_all(FULL_STACK)
