"""
Nakama game server and its CockroachDB database.
"""
from .base import container_name, is_true, namespace, parse_platform
from ..logger import logger
from ..MODELS.service_definition import HealthCheck, RestartPolicy, Service, VolumeMount
from ..MODELS.stack_config import StackConfig
from ..UTILS.ports import exposed_ports, port_map

NAKAMA_IMAGE = "ghcr.io/argus-labs/world-engine-nakama:latest"
NAKAMA_PLATFORM = "linux/amd64"
NAKAMA_DB_IMAGE = "cockroachdb/cockroach:latest-v23.1"

DEFAULT_DB_PASSWORD = "very_unsecure_password_please_change"

# Nakama disables its prometheus exporter when the port is 0.
METRICS_PORT = 9100


def _db_password(config: StackConfig) -> str:
    return config.env("DB_PASSWORD", DEFAULT_DB_PASSWORD)


def nakama(config: StackConfig) -> Service:
    ns = namespace(config)
    password = _db_password(config)

    trace_enabled = config.env("NAKAMA_TRACE_ENABLED")
    if not trace_enabled or not config.telemetry:
        trace_enabled = "true"

    metrics_enabled = True
    if config.telemetry and config.env("NAKAMA_METRICS_ENABLED"):
        metrics_enabled = is_true(config.env("NAKAMA_METRICS_ENABLED"))

    platform = parse_platform(config.env("NAKAMA_IMAGE_PLATFORM")) or NAKAMA_PLATFORM
    cardinal = container_name(config, "cardinal")
    db_address = f"postgres:{password}@{container_name(config, 'nakama-db')}:5432/nakama"
    outgoing_queue_size = config.env("OUTGOING_QUEUE_SIZE", "64")
    ports = [7349, 7350, 7351]

    return Service(
        name=container_name(config, "nakama"),
        image=config.env("NAKAMA_IMAGE", NAKAMA_IMAGE),
        platform=platform,
        environment={
            "CARDINAL_CONTAINER": cardinal,
            "CARDINAL_ADDR": f"{cardinal}:4040",
            "CARDINAL_NAMESPACE": ns,
            "DB_PASSWORD": password,
            "ENABLE_ALLOWLIST": config.env("ENABLE_ALLOWLIST", "false"),
            "OUTGOING_QUEUE_SIZE": outgoing_queue_size,
            "TRACE_ENABLED": trace_enabled,
            "JAEGER_ADDR": f"{container_name(config, 'jaeger')}:4317",
            "JAEGER_SAMPLE_RATE": config.env("NAKAMA_TRACE_SAMPLE_RATE", "0.6"),
        },
        entrypoint=[
            "/bin/sh",
            "-ec",
            f"/nakama/nakama migrate up --database.address {db_address} && "
            f"/nakama/nakama --database.address {db_address} --config /nakama/data/local.yml "
            f"--socket.outgoing_queue_size={outgoing_queue_size} --logger.level INFO "
            f"--metrics.prometheus_port {METRICS_PORT if metrics_enabled else 0}",
        ],
        health_check=HealthCheck(test=["CMD", "/nakama/nakama", "healthcheck"], interval=1, timeout=1, retries=20),
        exposed_ports=exposed_ports(ports),
        port_bindings=port_map(ports),
        restart_policy=RestartPolicy(),
        network=ns,
    )


def nakama_db(config: StackConfig) -> Service:
    ns = namespace(config)
    if not config.env("DB_PASSWORD"):
        logger.warning("Using default DB_PASSWORD, please change it")
    ports = [26257, 8080]

    return Service(
        name=container_name(config, "nakama-db"),
        image=NAKAMA_DB_IMAGE,
        cmd=["start-single-node", "--insecure", "--store=attrs=ssd,path=/var/lib/cockroach/,size=20%"],
        environment={
            "COCKROACH_DATABASE": "nakama",
            "COCKROACH_USER": "root",
            "COCKROACH_PASSWORD": _db_password(config),
        },
        health_check=HealthCheck(
            test=["CMD", "curl", "-f", "http://localhost:8080/health?ready=1"],
            interval=3, timeout=3, retries=5,
        ),
        exposed_ports=exposed_ports(ports),
        port_bindings=port_map(ports),
        restart_policy=RestartPolicy(),
        mounts=[VolumeMount(source=ns, target="/var/lib/cockroach")],
        network=ns,
    )
