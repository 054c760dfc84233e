"""Socket addresses for the simulated transport.

This module defines the address types a traffic generator can bind to or
connect to, and the address family rules between local and peer endpoints.
"""

import ipaddress
from dataclasses import dataclass
from typing import Optional, Union

from traffic_sim.core.enums import AddressFamily


@dataclass(frozen=True)
class InetSocketAddress:
    """IPv4 address and port."""

    ip: ipaddress.IPv4Address
    port: int

    @property
    def family(self) -> AddressFamily:
        return AddressFamily.INET

    def __str__(self) -> str:
        return f"{self.ip}:{self.port}"


@dataclass(frozen=True)
class Inet6SocketAddress:
    """IPv6 address and port."""

    ip: ipaddress.IPv6Address
    port: int

    @property
    def family(self) -> AddressFamily:
        return AddressFamily.INET6

    def __str__(self) -> str:
        return f"[{self.ip}]:{self.port}"


@dataclass(frozen=True)
class PacketSocketAddress:
    """Device level address of a packet socket."""

    device: int
    protocol: int = 0

    @property
    def family(self) -> AddressFamily:
        return AddressFamily.PACKET

    def __str__(self) -> str:
        return f"dev{self.device}/proto{self.protocol}"


SocketAddress = Union[InetSocketAddress, Inet6SocketAddress, PacketSocketAddress]


def socket_address(host: str, port: int) -> SocketAddress:
    """Create an IPv4 or IPv6 socket address from a host string.

    Args:
        host: IPv4 or IPv6 address in text form.
        port: Port number.

    Returns:
        InetSocketAddress or Inet6SocketAddress depending on the host.

    Raises:
        ValueError: If the host is not an IP address or the port is out of range.
    """
    if not 0 <= port <= 65535:
        raise ValueError(f"Port out of range: {port}")
    ip = ipaddress.ip_address(host)
    if ip.version == 6:
        return Inet6SocketAddress(ip, port)
    return InetSocketAddress(ip, port)


def families_compatible(
    peer: Optional[SocketAddress], local: Optional[SocketAddress]
) -> bool:
    """Check that a local address can be used to reach a peer.

    Only an IPv4/IPv6 mix is incompatible; a missing address is always fine.
    """
    if peer is None or local is None:
        return True
    ip_families = {AddressFamily.INET, AddressFamily.INET6}
    if peer.family in ip_families and local.family in ip_families:
        return peer.family == local.family
    return True
