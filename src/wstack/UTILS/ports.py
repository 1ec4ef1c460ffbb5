"""
Utilities for building exposed port sets and host port bindings.
"""
from typing import Dict, List, Iterable


def _check(port: int):
    if port < 1 or port > 65535:
        raise ValueError(f"invalid port {port}, must be between 1 and 65535")


def exposed_ports(ports: Iterable[int]) -> List[str]:
    """
    Returns the engine port keys for the given TCP ports, e.g. ``["4040/tcp"]``.

    :raises ValueError: If a port is out of range.
    """
    keys = []
    for port in ports:
        _check(port)
        keys.append(f"{port}/tcp")
    return keys


def port_map(ports: Iterable[int]) -> Dict[str, List[str]]:
    """
    Binds each TCP port to the same port on the host.

    :raises ValueError: If a port is out of range.
    """
    bindings = {}
    for port in ports:
        _check(port)
        bindings[f"{port}/tcp"] = [str(port)]
    return bindings
