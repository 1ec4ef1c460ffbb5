from .base import container_name, namespace
from ..logger import logger
from ..MODELS.service_definition import RestartPolicy, Service, VolumeMount
from ..MODELS.stack_config import StackConfig
from ..UTILS.ports import exposed_ports, port_map

REDIS_IMAGE = "redis:latest"
DEFAULT_PORT = 6379


def redis(config: StackConfig) -> Service:
    ns = namespace(config)
    raw_port = config.env("REDIS_PORT", str(DEFAULT_PORT))
    try:
        port = int(raw_port)
    except ValueError:
        logger.error("Invalid REDIS_PORT, defaulting", value=raw_port, default=DEFAULT_PORT)
        port = DEFAULT_PORT

    return Service(
        name=container_name(config, "redis"),
        image=REDIS_IMAGE,
        exposed_ports=exposed_ports([port]),
        port_bindings=port_map([port]),
        restart_policy=RestartPolicy(),
        mounts=[VolumeMount(source="data", target="/redis")],
        network=ns,
    )
