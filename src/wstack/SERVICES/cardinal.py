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
The cardinal game shard, built locally from the project sources.
"""
import os

from .base import container_name, namespace
from ..MODELS.service_definition import BuildSpec, RestartPolicy, Service
from ..MODELS.stack_config import StackConfig
from ..UTILS.ports import exposed_ports, port_map

DEBUG_PORT = 40000

BASE_SHARD_ROUTER_KEY = "abcdefghijklmnopqrstuvwxyz0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ01"
ROUTER_KEY = "25a0f627050d11b1461b2728ea3f704e141312b1d4f2a21edcec4eccddd940c2"

BUILD_IMAGES = ("golang:1.23-bookworm", "gcr.io/distroless/base-debian12")

_DOCKERFILE_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), "cardinal.Dockerfile")


def dockerfile() -> str:
    with open(_DOCKERFILE_PATH, "r", encoding="utf-8") as f:
        return f.read()


def cardinal(config: StackConfig) -> Service:
    """
    Describes the cardinal container. The image is named after the namespace.
    In debug mode the delve port is published and ptrace is allowed.
    """
    ns = namespace(config)
    ports = [4040]

    service = Service(
        name=container_name(config, "cardinal"),
        image=ns,
        build=BuildSpec(
            dockerfile=dockerfile(),
            target="runtime-debug" if config.debug else "runtime",
        ),
        environment={
            "REDIS_ADDRESS": f"{container_name(config, 'redis')}:6379",
            "BASE_SHARD_SEQUENCER_ADDRESS": f"{container_name(config, 'evm')}:9601",
            "BASE_SHARD_ROUTER_KEY": config.env("BASE_SHARD_ROUTER_KEY", BASE_SHARD_ROUTER_KEY),
            "CARDINAL_LOG_LEVEL": config.env("CARDINAL_LOG_LEVEL", "info"),
            "CARDINAL_LOG_PRETTY": config.env("CARDINAL_LOG_PRETTY", "true"),
            "CARDINAL_ROLLUP_ENABLED": config.env("CARDINAL_ROLLUP_ENABLED", "false"),
            "TELEMETRY_PROFILER_ENABLED": config.env("TELEMETRY_PROFILER_ENABLED", "false"),
            "TELEMETRY_TRACE_ENABLED": config.env("TELEMETRY_TRACE_ENABLED", "false"),
            "ROUTER_KEY": config.env("ROUTER_KEY", ROUTER_KEY),
        },
        exposed_ports=exposed_ports(ports),
        port_bindings=port_map(ports),
        restart_policy=RestartPolicy(),
        network=ns,
        dependencies=[Service(name=image, image=image) for image in BUILD_IMAGES],
    )

    if config.debug:
        service.exposed_ports += exposed_ports([DEBUG_PORT])
        service.port_bindings.update(port_map([DEBUG_PORT]))
        service.cap_add = ["SYS_PTRACE"]
        service.security_opt = ["seccomp:unconfined"]

    return service
