"""Free port discovery and host formatting."""
from __future__ import annotations

import socket

LOOPBACK_ADDRESS = "127.0.0.1"
WILDCARD_ADDRESSES = ("0.0.0.0", "::", "0:0:0:0:0:0:0:0")

_MAX_TRY = 10
# Browsers refuse to connect to these, which breaks UI tests.
_BLOCKED_PORTS = (2049, 4045, 6000)


def is_ipv6(host: str) -> bool:
    return ":" in host


def format_host(host: str) -> str:
    """Return *host* in URL form: IPv6 literals are wrapped in brackets."""
    if is_ipv6(host) and not host.startswith("["):
        return f"[{host}]"
    return host


def _random_unused_port(host: str) -> int:
    family = socket.AF_INET6 if is_ipv6(host) else socket.AF_INET
    with socket.socket(family, socket.SOCK_STREAM) as s:
        s.bind((host.strip("[]"), 0))
        return s.getsockname()[1]


def is_valid_port(port: int) -> bool:
    return port > 1023 and port not in _BLOCKED_PORTS


def get_next_available_port(host: str = LOOPBACK_ADDRESS) -> int:
    """Ask the OS for a free port bound to *host*.

    Raises ``OSError`` if no acceptable port is found.
    """
    for _ in range(_MAX_TRY):
        port = _random_unused_port(host)
        if is_valid_port(port):
            return port
    raise OSError(f"Can't find an open network port on {host}")
