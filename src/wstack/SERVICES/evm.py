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
The EVM base shard and the local data availability devnet it can post to.
"""
from .base import container_name, namespace, parse_platform
from .cardinal import BASE_SHARD_ROUTER_KEY, ROUTER_KEY
from ..errors import ConfigError
from ..MODELS.service_definition import (
    HealthCheck, RestartPolicy, RestartPolicyCondition, Service,
)
from ..MODELS.stack_config import StackConfig
from ..UTILS.ports import exposed_ports, port_map

EVM_IMAGE = "ghcr.io/argus-labs/world-engine-evm:latest"
CELESTIA_IMAGE = "ghcr.io/rollkit/local-celestia-devnet:latest"

DA_NAMESPACE_ID = "67480c4a88c4d12935d4"
FAUCET_ADDRESS = "aa9288F88233Eb887d194fF2215Cf1776a6FEE41"
FAUCET_AMOUNT = "0x56BC75E2D63100000"
CHAIN_ID = "world-420"
CHAIN_KEY_MNEMONIC = (
    "enact adjust liberty squirrel bulk ticket invest tissue antique window "
    "thank slam unknown fury script among bread social switch glide wool clog flag enroll"
)


def evm(config: StackConfig) -> Service:
    """
    Describes the EVM shard.

    An external data availability layer (``DA_BASE_URL``) needs ``DA_AUTH_TOKEN``.
    Without one, or with ``dev_da``, the shard talks to the local celestia devnet.

    :raises ConfigError: If an external DA layer is configured without an auth token.
    """
    ns = namespace(config)
    da_base_url = config.env("DA_BASE_URL")
    if not da_base_url or config.dev_da:
        da_base_url = f"http://{container_name(config, 'celestia-devnet')}"
    elif not config.env("DA_AUTH_TOKEN"):
        raise ConfigError(f"DA_AUTH_TOKEN is required for {container_name(config, 'evm')} "
                          f"when DA_BASE_URL points at an external DA layer")

    return Service(
        name=container_name(config, "evm"),
        image=config.env("EVM_IMAGE", EVM_IMAGE),
        platform=parse_platform(config.env("EVM_IMAGE_PLATFORM")) or None,
        environment={
            "DA_BASE_URL": da_base_url,
            "DA_AUTH_TOKEN": config.env("DA_AUTH_TOKEN"),
            "DA_NAMESPACE_ID": config.env("DA_NAMESPACE_ID", DA_NAMESPACE_ID),
            "FAUCET_ENABLED": config.env("FAUCET_ENABLED", "false"),
            "FAUCET_ADDRESS": config.env("FAUCET_ADDRESS", FAUCET_ADDRESS),
            "FAUCET_AMOUNT": config.env("FAUCET_AMOUNT", FAUCET_AMOUNT),
            "BASE_SHARD_ROUTER_KEY": config.env("BASE_SHARD_ROUTER_KEY", BASE_SHARD_ROUTER_KEY),
            "ROUTER_KEY": config.env("ROUTER_KEY", ROUTER_KEY),
            "CHAIN_ID": config.env("CHAIN_ID", CHAIN_ID),
            "CHAIN_KEY_MNEMONIC": config.env("CHAIN_KEY_MNEMONIC", CHAIN_KEY_MNEMONIC),
        },
        exposed_ports=exposed_ports([1317, 26657, 9090, 9601]),
        port_bindings=port_map([1317, 26657, 9090, 9601, 8545]),
        restart_policy=RestartPolicy(),
        network=ns,
    )


def celestia_devnet(config: StackConfig) -> Service:
    ns = namespace(config)
    bindings = port_map([26658, 26659])
    # Exposed inside the network only.
    bindings.update({"26657/tcp": [], "9090/tcp": []})

    return Service(
        name=container_name(config, "celestia-devnet"),
        image=CELESTIA_IMAGE,
        exposed_ports=exposed_ports([26658, 26659]),
        health_check=HealthCheck(
            test=["CMD", "curl", "-f", "http://127.0.0.1:26659/head"],
            interval=1, timeout=1, retries=20,
        ),
        port_bindings=bindings,
        restart_policy=RestartPolicy(condition=RestartPolicyCondition.ON_FAILURE),
        network=ns,
    )
