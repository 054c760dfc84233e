"""Packet sink for the traffic simulator.

This module defines the PacketSink class, the receiving end of a traffic
flow. It counts what arrives and, for flows that carry the sequencing header,
measures one-way delay and detects lost or reordered packets.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import simpy

from traffic_sim.core.address import SocketAddress
from traffic_sim.core.packet import HeaderLayout, Packet

logger = logging.getLogger(__name__)


@dataclass
class FlowReception:
    """What a sink has received from one source address.

    Attributes:
        packets: Number of packets received.
        bytes: Number of bytes received.
        delays: One-way delays of sequenced packets.
        sequences: Sequence numbers in arrival order.
    """

    packets: int = 0
    bytes: int = 0
    delays: List[float] = field(default_factory=list)
    sequences: List[int] = field(default_factory=list)

    @property
    def lost(self) -> int:
        return count_lost(self.sequences)

    @property
    def reordered(self) -> int:
        return count_reordered(self.sequences)


def count_lost(sequences: List[int]) -> int:
    """Sequence numbers missing below the highest one received."""
    if not sequences:
        return 0
    return max(sequences) + 1 - len(set(sequences))


def count_reordered(sequences: List[int]) -> int:
    """Packets that arrived after a packet with a higher sequence number."""
    reordered = 0
    highest = -1
    for seq in sequences:
        if seq < highest:
            reordered += 1
        highest = max(highest, seq)
    return reordered


class PacketSink:
    """Receiving endpoint of one or more flows.

    Attributes:
        env: SimPy environment.
        address: Address the sink listens on.
        header_layout: Layout of the sequencing header, or None if the flows
            sent to this sink carry no header.
        flows: Reception statistics keyed by source address.
        received: Every packet received, in arrival order.
    """

    def __init__(
        self,
        env: simpy.Environment,
        address: SocketAddress,
        header_layout: Optional[HeaderLayout] = None,
    ):
        self.env = env
        self.address = address
        self.header_layout = header_layout
        self.flows: Dict[SocketAddress, FlowReception] = defaultdict(FlowReception)
        self.received: List[Packet] = []

        self.hooks: Dict[str, List[Callable[..., Any]]] = {
            "rx": [],  # any packet received
            "rx_with_seq_ts_size": [],  # packet carrying a sequencing header
        }

    @property
    def total_bytes(self) -> int:
        return sum(flow.bytes for flow in self.flows.values())

    def receive(self, data: bytes, from_address: SocketAddress) -> None:
        """Handle a serialized packet arriving from the network.

        Args:
            data: Packet as it was put on the wire.
            from_address: Address of the sending socket.
        """
        packet = Packet.from_bytes(data, self.header_layout)
        packet.arrival_time = self.env.now
        self.received.append(packet)

        flow = self.flows[from_address]
        flow.packets += 1
        flow.bytes += len(data)
        self.call_hooks("rx", packet, from_address)

        header = packet.header
        if header is None:
            return

        flow.delays.append(packet.get_delay())
        flow.sequences.append(header.seq)
        logger.debug(
            "Sink %s received seq %d from %s after %.6fs",
            self.address,
            header.seq,
            from_address,
            packet.get_delay(),
        )
        self.call_hooks("rx_with_seq_ts_size", packet, from_address, header)

    def register_hook(self, event_type: str, callback: Callable[..., Any]) -> None:
        """Register a callback function for a specific event type.

        Args:
            event_type: The type of event to register for.
            callback: The function to call when the event occurs.
        """
        if event_type not in self.hooks:
            raise ValueError(f"Unknown hook type: {event_type}")
        self.hooks[event_type].append(callback)

    def call_hooks(self, event_type: str, *args: Any) -> None:
        for callback in self.hooks[event_type]:
            callback(*args)

    def __repr__(self) -> str:
        return f"PacketSink({self.address})"
