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
Optional telemetry services: Jaeger for traces and Prometheus for nakama metrics.
"""
import os

from jinja2 import Template

from .base import container_name, namespace
from .nakama import METRICS_PORT
from ..MODELS.service_definition import Service, VolumeMount
from ..MODELS.stack_config import StackConfig
from ..UTILS.ports import port_map

JAEGER_IMAGE = "jaegertracing/all-in-one:1.61.0"
PROMETHEUS_IMAGE = "prom/prometheus:v2.54.1"

# Writes the scrape config inside the container, then runs prometheus on it.
_PROMETHEUS_TEMPLATE_PATH = os.path.join(os.path.dirname(os.path.abspath(__file__)), "prometheus.sh.j2")


def prometheus_command(interval: str, nakama: str) -> str:
    with open(_PROMETHEUS_TEMPLATE_PATH, "r", encoding="utf-8") as f:
        template = Template(f.read(), keep_trailing_newline=True)
    return template.render(interval=interval, nakama=nakama, metrics_port=METRICS_PORT)


def jaeger(config: StackConfig) -> Service:
    ns = namespace(config)
    return Service(
        name=container_name(config, "jaeger"),
        image=JAEGER_IMAGE,
        environment={
            "SPAN_STORAGE_TYPE": "badger",
            "BADGER_EPHEMERAL": "false",
            "BADGER_DIRECTORY_VALUE": "/badger/data",
            "BADGER_DIRECTORY_KEY": "/badger/key",
            "QUERY_ADDITIONAL_HEADERS": "Access-Control-Allow-Origin:*",
        },
        # The badger volume is owned by root on some hosts.
        user="root",
        port_bindings=port_map([16686]),
        restart_policy=None,
        mounts=[VolumeMount(source=ns, target="/badger")],
        network=ns,
    )


def prometheus(config: StackConfig) -> Service:
    ns = namespace(config)
    return Service(
        name=container_name(config, "prometheus"),
        image=PROMETHEUS_IMAGE,
        entrypoint=["/bin/sh", "-c"],
        cmd=[prometheus_command(config.env("NAKAMA_METRICS_INTERVAL", "30"), container_name(config, "nakama"))],
        port_bindings=port_map([9090]),
        restart_policy=None,
        network=ns,
    )
