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
Parser for the world.yaml stack configuration file.
"""
import os
from typing import Any, Dict, Optional

import yaml
from dotenv import dotenv_values

from ..errors import ConfigError
from ..logger import logger
from ..MODELS.stack_config import StackConfig
from ..UTILS.string_interpolation import EnvironmentInterpolator

CONFIG_FILE_ENV = "WORLD_CLI_CONFIG_FILE"
CONFIG_FILENAME = "world.yaml"

# Keys under these sections become container environment. A key may appear in only one of them.
DOCKER_ENV_SECTIONS = ("cardinal", "evm")


class ConfigParser:
    """
    Parser for world.yaml files.
    """
    def __init__(self, context: Optional[Dict[str, str]] = None):
        """
        :param context: Variables for ``${VAR}`` interpolation. Defaults to the process environment.
        """
        self.context = context

    def parse(self, config_path: str) -> StackConfig:
        """
        Parses a config file. Variables from a ``.env`` file next to it are available
        for interpolation; the process environment takes precedence over them.

        :param config_path: Path to the config file.
        :return: The parsed configuration; ``root_dir`` defaults to the file's directory.
        :raises ConfigError: If the file is malformed or a key is duplicated across sections.
        """
        with open(config_path, "r", encoding="utf-8") as f:
            content = f.read()

        config_dir = os.path.dirname(os.path.abspath(config_path))
        context = self.context
        if context is None:
            context = {}
            env_file = os.path.join(config_dir, ".env")
            if os.path.isfile(env_file):
                context.update({k: v for k, v in dotenv_values(env_file).items() if v is not None})
            context.update(os.environ)

        config = self.parse_from_string(content, context, default_root=config_dir)
        logger.debug("Loaded config", path=config_path, namespace=config.namespace)
        return config

    def parse_from_string(self, content: str, context: Optional[Dict[str, str]] = None,
                          default_root: str = ".") -> StackConfig:
        """
        Parses config file content.

        :param content: YAML content of the config file.
        :param context: Variables for interpolation.
        :param default_root: Root dir used when the file sets none.
        """
        content = EnvironmentInterpolator.interpolate(content, context if context is not None else dict(os.environ))
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ConfigError(f"invalid config file: {e}")
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError("invalid config file: expected a mapping at the top level")

        docker_env: Dict[str, str] = {}
        for section in DOCKER_ENV_SECTIONS:
            values = data.get(section)
            if values is None:
                continue
            if not isinstance(values, dict):
                raise ConfigError(f"invalid config file: section {section!r} must be a mapping")
            for key, value in values.items():
                key = str(key)
                if key in docker_env:
                    raise ConfigError(f"duplicate env variable {key!r}")
                docker_env[key] = self._to_env(value)

        return StackConfig(root_dir=str(data.get("root_dir") or default_root), docker_env=docker_env)

    @staticmethod
    def _to_env(value: Any) -> str:
        if value is None:
            return ""
        if isinstance(value, bool):
            return "true" if value else "false"
        return str(value)


def find_config(start_dir: Optional[str] = None) -> Optional[str]:
    """
    Looks for world.yaml in ``start_dir`` and each of its parents.
    """
    current = os.path.abspath(start_dir or os.getcwd())
    while True:
        candidate = os.path.join(current, CONFIG_FILENAME)
        if os.path.isfile(candidate):
            return candidate
        parent = os.path.dirname(current)
        if parent == current:
            return None
        current = parent


def load_config(path: Optional[str] = None, context: Optional[Dict[str, str]] = None) -> StackConfig:
    """
    Loads the stack config from ``path``, else from ``$WORLD_CLI_CONFIG_FILE``,
    else from the nearest world.yaml above the working directory.

    :raises ConfigError: If no config file can be found or read.
    """
    if path is not None and not path:
        raise ConfigError("config path cannot be empty")
    path = path or os.environ.get(CONFIG_FILE_ENV) or find_config()
    if not path:
        raise ConfigError(f"no config file found, create {CONFIG_FILENAME} or set {CONFIG_FILE_ENV}")
    try:
        return ConfigParser(context).parse(path)
    except OSError as e:
        raise ConfigError(f"cannot read config file {path}: {e}")
