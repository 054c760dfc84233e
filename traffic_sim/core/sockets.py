"""Socket adapter for the traffic generator.

This module defines the narrow socket interface the generator sends through.
The transport behind it is not the generator's concern: it may be the
simulated network in traffic_sim.core.network or a scripted test double.
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional

from traffic_sim.core.address import SocketAddress
from traffic_sim.core.packet import Packet

ConnectCallback = Callable[["Socket"], None]


class Socket(ABC):
    """Abstract datagram socket.

    Connection results are reported asynchronously through the callbacks
    registered with set_connect_callback.
    """

    def __init__(self):
        self._connect_succeeded: Optional[ConnectCallback] = None
        self._connect_failed: Optional[ConnectCallback] = None

    def set_connect_callback(
        self, succeeded: ConnectCallback, failed: ConnectCallback
    ) -> None:
        """Register the connect result handlers.

        Args:
            succeeded: Called with the socket once the peer is reachable.
            failed: Called with the socket if connecting failed.
        """
        self._connect_succeeded = succeeded
        self._connect_failed = failed

    def notify_connection_succeeded(self) -> None:
        if self._connect_succeeded is not None:
            self._connect_succeeded(self)

    def notify_connection_failed(self) -> None:
        if self._connect_failed is not None:
            self._connect_failed(self)

    @abstractmethod
    def bind(self, address: Optional[SocketAddress] = None) -> bool:
        """Bind to address, or to an IPv4 wildcard address if None.

        Returns:
            True on success, False otherwise.
        """
        pass

    @abstractmethod
    def bind6(self) -> bool:
        """Bind to an IPv6 wildcard address.

        Returns:
            True on success, False otherwise.
        """
        pass

    @abstractmethod
    def connect(self, address: SocketAddress) -> None:
        """Start connecting to address. The result arrives via callbacks."""
        pass

    @abstractmethod
    def send(self, packet: Packet) -> int:
        """Send a packet to the connected peer.

        Returns:
            Number of bytes accepted, which may be less than packet.size, or
            -1 on error.
        """
        pass

    @abstractmethod
    def close(self) -> bool:
        """Close the socket.

        Returns:
            True if the socket was open, False if it was already closed.
        """
        pass

    @property
    @abstractmethod
    def is_closed(self) -> bool:
        pass

    @abstractmethod
    def get_sock_name(self) -> Optional[SocketAddress]:
        pass

    @abstractmethod
    def get_peer_name(self) -> Optional[SocketAddress]:
        pass

    def set_allow_broadcast(self, allow: bool) -> None:
        pass

    def shutdown_recv(self) -> None:
        pass


SocketFactory = Callable[[str], Socket]
