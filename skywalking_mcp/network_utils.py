# Copyright 2025 Liatrio
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

"""Listen address parsing and socket binding for the SSE transport."""

import ipaddress
import socket
from dataclasses import dataclass

from .errors import ConfigurationError, TransportError
from .telemetry import get_logger

logger = get_logger("network")


@dataclass(frozen=True)
class ListenAddress:
    """A ``host:port`` pair the SSE server listens on."""

    host: str
    port: int

    @property
    def family(self) -> int:
        """Socket family for the host; hostnames resolve as IPv4."""
        try:
            addr = ipaddress.ip_address(self.host)
        except ValueError:
            return socket.AF_INET
        return socket.AF_INET6 if addr.version == 6 else socket.AF_INET

    @property
    def is_wildcard(self) -> bool:
        return self.host in ("0.0.0.0", "::")

    @property
    def url_host(self) -> str:
        """The host as it appears in a URL."""
        if self.family == socket.AF_INET6:
            return f"[{self.host}]"
        return self.host

    def __str__(self) -> str:
        return f"{self.url_host}:{self.port}"


def default_wildcard_host() -> str:
    """The wildcard host for an address given without one, e.g. ``:8000``."""
    if socket.has_ipv6 and socket.has_dualstack_ipv6():
        return "::"  # IPv6 wildcard (accepts both IPv4 and IPv6)
    return "0.0.0.0"


def parse_listen_address(address: str) -> ListenAddress:
    """Parse ``host:port``, ``[v6-host]:port`` or ``:port``.

    Raises:
        ConfigurationError: the address is malformed
    """
    host, sep, port_text = address.strip().rpartition(":")
    if not sep:
        raise ConfigurationError(f"invalid SSE address {address!r}: missing port")

    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    elif ":" in host:
        raise ConfigurationError(
            f"invalid SSE address {address!r}: IPv6 hosts must be bracketed"
        )
    if not host:
        host = default_wildcard_host()

    try:
        port = int(port_text)
    except ValueError:
        raise ConfigurationError(
            f"invalid SSE address {address!r}: port {port_text!r} is not a number"
        ) from None
    if not 0 <= port <= 65535:
        raise ConfigurationError(f"invalid SSE address {address!r}: port out of range")

    return ListenAddress(host=host, port=port)


def bind_listen_socket(address: ListenAddress) -> socket.socket:
    """Create a listening TCP socket for ``address``.

    The IPv6 wildcard also accepts IPv4 connections where the platform
    supports dual-stack sockets.

    Raises:
        TransportError: the address cannot be bound
    """
    dual_stack = address.host == "::" and socket.has_dualstack_ipv6()
    try:
        sock = socket.create_server(
            (address.host, address.port),
            family=address.family,
            dualstack_ipv6=dual_stack,
        )
    except OSError as e:
        raise TransportError(f"failed to listen on {address}: {e}") from e

    logger.info(
        f"Listening on {address}",
        extra={"host": address.host, "port": bound_port(sock), "dual_stack": dual_stack},
    )
    return sock


def bound_port(sock: socket.socket) -> int:
    """The port actually bound, which differs from the requested one for port 0."""
    return sock.getsockname()[1]
