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
Helpers shared by the service descriptors: namespacing and env defaults.
"""
from ..errors import ConfigError
from ..MODELS.stack_config import NAMESPACE_KEY, StackConfig


def namespace(config: StackConfig) -> str:
    """
    Returns the stack namespace.

    :raises ConfigError: If the namespace is not configured.
    """
    ns = config.namespace
    if not ns:
        raise ConfigError(f"{NAMESPACE_KEY} is not set, it is required to name containers and networks")
    return ns


def container_name(config: StackConfig, service: str) -> str:
    """Containers are named ``<namespace>-<service>``."""
    return f"{namespace(config)}-{service}"


def parse_platform(value: str) -> str:
    """
    Accepts ``os/arch`` platform strings and drops anything else.
    """
    parts = value.split("/")
    if len(parts) == 2 and all(parts):
        return value
    return ""


def is_true(value: str) -> bool:
    return value.strip().lower() in ("1", "t", "true", "yes", "on")
