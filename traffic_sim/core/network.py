"""Simulated network and datagram sockets.

This module provides a minimal transport for traffic generators to run
against: a SimulatedNetwork that maps sink addresses to the links leading to
them, and a SimulatedSocket implementing the Socket interface on top of it.
"""

import ipaddress
import logging
from typing import Dict, List, Optional, Set, Tuple

import simpy

from traffic_sim.core.address import (
    Inet6SocketAddress,
    InetSocketAddress,
    SocketAddress,
)
from traffic_sim.core.link import Link
from traffic_sim.core.packet import Packet
from traffic_sim.core.sink import PacketSink
from traffic_sim.core.sockets import Socket

logger = logging.getLogger(__name__)

EPHEMERAL_PORT_START = 49153


class SimulatedNetwork:
    """Address registry connecting sockets to sinks.

    Attributes:
        env: SimPy environment.
        host_v4: IPv4 address used when a socket binds to the IPv4 wildcard.
        host_v6: IPv6 address used when a socket binds to the IPv6 wildcard.
        routes: Sink and link for each registered sink address.
        sockets: Every socket created through socket_factory.
    """

    def __init__(
        self,
        env: simpy.Environment,
        host_v4: str = "10.1.1.1",
        host_v6: str = "2001:db8::1",
    ):
        self.env = env
        self.host_v4 = ipaddress.IPv4Address(host_v4)
        self.host_v6 = ipaddress.IPv6Address(host_v6)
        self.routes: Dict[SocketAddress, Tuple[PacketSink, Link]] = {}
        self.sockets: List[Socket] = []
        self._bound: Set[SocketAddress] = set()
        self._next_port = EPHEMERAL_PORT_START

    def add_sink(
        self,
        sink: PacketSink,
        capacity: float,
        propagation_delay: float,
        buffer_size: float = float("inf"),
    ) -> Link:
        """Make a sink reachable through a dedicated link.

        Args:
            sink: The sink to register under its address.
            capacity: Link capacity in bits per second.
            propagation_delay: Propagation delay in seconds.
            buffer_size: Transmit buffer of the link in bytes.

        Returns:
            The link leading to the sink.
        """
        if sink.address in self.routes:
            raise ValueError(f"Address {sink.address} already has a sink")
        link = Link(self.env, capacity, propagation_delay, buffer_size)
        self.routes[sink.address] = (sink, link)
        return link

    def route(self, address: SocketAddress) -> Optional[Tuple[PacketSink, Link]]:
        return self.routes.get(address)

    def socket_factory(self, protocol: str) -> Socket:
        """Create a socket for the given protocol.

        Raises:
            ValueError: For protocols other than "udp".
        """
        if protocol.lower() != "udp":
            raise ValueError(f"Unsupported protocol: {protocol}")
        socket = SimulatedSocket(self)
        self.sockets.append(socket)
        return socket

    def allocate_port(self) -> int:
        port = self._next_port
        self._next_port += 1
        return port

    def claim(self, address: SocketAddress) -> bool:
        if address in self._bound:
            return False
        self._bound.add(address)
        return True

    def release(self, address: SocketAddress) -> None:
        self._bound.discard(address)


class SimulatedSocket(Socket):
    """Datagram socket on a SimulatedNetwork.

    Sends are accepted whole or refused: a full link buffer makes send
    return -1 and the caller is expected to retry later.
    """

    def __init__(self, network: SimulatedNetwork):
        super().__init__()
        self.network = network
        self.local: Optional[SocketAddress] = None
        self.peer: Optional[SocketAddress] = None
        self.allow_broadcast = False
        self.recv_shutdown = False
        self._closed = False

    def bind(self, address: Optional[SocketAddress] = None) -> bool:
        if self.local is not None or self._closed:
            return False
        if address is None:
            address = InetSocketAddress(
                self.network.host_v4, self.network.allocate_port()
            )
        if not self.network.claim(address):
            logger.error("Address %s already in use", address)
            return False
        self.local = address
        return True

    def bind6(self) -> bool:
        return self.bind(
            Inet6SocketAddress(self.network.host_v6, self.network.allocate_port())
        )

    def connect(self, address: SocketAddress) -> None:
        self.peer = address
        event = self.network.env.timeout(0)
        event.callbacks.append(lambda _: self._finish_connect())

    def _finish_connect(self) -> None:
        if self._closed:
            return
        if self.network.route(self.peer) is None:
            self.notify_connection_failed()
        else:
            self.notify_connection_succeeded()

    def send(self, packet: Packet) -> int:
        if self._closed or self.local is None or self.peer is None:
            return -1
        route = self.network.route(self.peer)
        if route is None:
            return -1
        sink, link = route
        data = packet.to_bytes()
        local = self.local
        if not link.transmit(packet, lambda _: sink.receive(data, local)):
            return -1
        return len(data)

    def close(self) -> bool:
        if self._closed:
            return False
        self._closed = True
        if self.local is not None:
            self.network.release(self.local)
        return True

    @property
    def is_closed(self) -> bool:
        return self._closed

    def get_sock_name(self) -> Optional[SocketAddress]:
        return self.local

    def get_peer_name(self) -> Optional[SocketAddress]:
        return self.peer

    def set_allow_broadcast(self, allow: bool) -> None:
        self.allow_broadcast = allow

    def shutdown_recv(self) -> None:
        self.recv_shutdown = True

    def __repr__(self) -> str:
        return f"SimulatedSocket({self.local} -> {self.peer})"
