"""Link class for the traffic simulator.

This module defines the Link class, which represents the bottleneck channel
between a sending socket and its packet sink.
"""

from typing import Callable

import simpy

from traffic_sim.core.packet import Packet


class Link:
    """Represents a one-way network link.

    Attributes:
        env: SimPy environment.
        capacity: Link capacity in bits per second.
        propagation_delay: Propagation delay in seconds.
        buffer_size: Maximum transmit buffer size in bytes.
        buffer_usage: Current transmit buffer usage in bytes.
        packets_refused: Number of packets refused because the buffer was full.
        packets_sent: Number of packets sent through this link.
        bytes_sent: Number of bytes sent through this link.
        resource: SimPy resource for link access control.
    """

    def __init__(
        self,
        env: simpy.Environment,
        capacity: float,
        propagation_delay: float,
        buffer_size: float = float("inf"),
    ):
        """Initialize a network link.

        Args:
            env: SimPy environment.
            capacity: Link capacity in bits per second.
            propagation_delay: Propagation delay in seconds.
            buffer_size: Maximum buffer size in bytes (default: infinite).
        """
        if capacity <= 0:
            raise ValueError(f"Link capacity must be positive: {capacity}")
        self.env = env
        self.capacity = capacity
        self.propagation_delay = propagation_delay
        self.buffer_size = buffer_size
        self.buffer_usage = 0
        self.packets_refused = 0
        self.packets_sent = 0
        self.bytes_sent = 0
        self.resource = simpy.Resource(env, capacity=1)

    def can_queue_packet(self, packet: Packet) -> bool:
        """Check if there's enough buffer space for the packet.

        Args:
            packet: The packet to check.

        Returns:
            True if there's enough buffer space, False otherwise.
        """
        return self.buffer_usage + packet.size <= self.buffer_size

    def calculate_transmission_delay(self, packet_size: int) -> float:
        """Calculate transmission delay based on packet size and link capacity.

        Args:
            packet_size: Size of the packet in bytes.

        Returns:
            Transmission delay in seconds.
        """
        return (packet_size * 8) / self.capacity

    def transmit(self, packet: Packet, deliver: Callable[[Packet], None]) -> bool:
        """Queue a packet for transmission.

        Args:
            packet: The packet to send.
            deliver: Called with the packet when it reaches the far end.

        Returns:
            True if the packet was queued, False if the buffer was full.
        """
        if not self.can_queue_packet(packet):
            self.packets_refused += 1
            return False
        self.buffer_usage += packet.size
        self.env.process(self._transmission(packet, deliver))
        return True

    def _transmission(self, packet: Packet, deliver: Callable[[Packet], None]):
        with self.resource.request() as link_resource:
            yield link_resource
            yield self.env.timeout(self.calculate_transmission_delay(packet.size))
        self.buffer_usage -= packet.size
        self.packets_sent += 1
        self.bytes_sent += packet.size

        yield self.env.timeout(self.propagation_delay)
        deliver(packet)

    def __repr__(self) -> str:
        """Return string representation of the link.

        Returns:
            String representation of the link.
        """
        return f"Link({self.capacity/1000000:.1f}Mbps, {self.propagation_delay*1000:.1f}ms)"
