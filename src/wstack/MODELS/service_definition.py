"""
Models for defining services, including restart policies, health checks, mounts and build specs.
"""
from typing import List, Dict, Optional
from pydantic import BaseModel, Field
from enum import Enum

class RestartPolicyCondition(str, Enum):
    """
    Conditions under which the engine restarts a container.
    """
    NO = "no"
    ALWAYS = "always"
    ON_FAILURE = "on-failure"
    UNLESS_STOPPED = "unless-stopped"

class RestartPolicy(BaseModel):
    """
    Restart policy handed to the engine in the host config.
    """
    condition: RestartPolicyCondition = RestartPolicyCondition.UNLESS_STOPPED
    max_retries: int = 0

class HealthCheck(BaseModel):
    """
    Defines a command the engine runs to check the health of a container.
    Durations are in seconds.
    """
    test: List[str]
    interval: float = 30.0
    timeout: float = 30.0
    retries: int = 3
    start_period: float = 0.0

class VolumeMount(BaseModel):
    """
    Named volume (or bind) mounted into the container.
    """
    source: str
    target: str
    type: str = "volume"
    read_only: bool = False

class BuildSpec(BaseModel):
    """
    Everything needed to build a service image locally.
    """
    dockerfile: str = ""
    target: str = ""
    args: Dict[str, str] = {}
    # Root of the source tree sent as build context; None means the stack root dir.
    context_root: Optional[str] = None

class Service(BaseModel):
    """
    The full definition of a single container workload.
    """
    name: str
    image: str

    build: Optional[BuildSpec] = None

    # Container config
    environment: Dict[str, str] = {}
    exposed_ports: List[str] = []  # "4040/tcp"
    entrypoint: List[str] = []
    cmd: List[str] = []
    user: Optional[str] = None
    health_check: Optional[HealthCheck] = None
    platform: Optional[str] = None  # "linux/amd64"

    # Host config
    port_bindings: Dict[str, List[str]] = {}  # {"4040/tcp": ["4040"]}
    restart_policy: Optional[RestartPolicy] = Field(default_factory=RestartPolicy)
    network: Optional[str] = None
    mounts: List[VolumeMount] = []
    cap_add: List[str] = []
    security_opt: List[str] = []

    # Images that must be present before this service can be built or run
    dependencies: List["Service"] = []

    @property
    def needs_build(self) -> bool:
        """True if the image comes from a local build rather than a registry."""
        return self.build is not None and bool(self.build.dockerfile)

Service.model_rebuild()
