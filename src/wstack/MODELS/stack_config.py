"""
Models for the configuration of one stack invocation.
"""
from typing import Dict
from pydantic import BaseModel

NAMESPACE_KEY = "CARDINAL_NAMESPACE"

class StackConfig(BaseModel):
    """
    Configuration for one invocation, built from the world config file and command flags.
    """
    root_dir: str = "."
    docker_env: Dict[str, str] = {}

    detach: bool = False
    build: bool = False
    debug: bool = False
    telemetry: bool = False
    dev_da: bool = False
    # Seconds to wait for containers to come up in detached mode, 0 disables the wait.
    timeout: int = 0

    @property
    def namespace(self) -> str:
        return self.docker_env.get(NAMESPACE_KEY, "")

    def env(self, key: str, default: str = "") -> str:
        """
        Returns a docker env value, falling back to ``default`` when unset or empty.
        """
        return self.docker_env.get(key) or default
