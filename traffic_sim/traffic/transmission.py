"""Packet construction and byte accounting for a traffic source."""

import logging
from typing import Callable, Optional

from traffic_sim.core.errors import ConfigurationError
from traffic_sim.core.packet import HeaderLayout, Packet, SeqTsSizeHeader

logger = logging.getLogger(__name__)

HeaderCallback = Callable[[Packet, SeqTsSizeHeader], None]


class TransmissionState:
    """Counters and the retry slot of one flow.

    At most one packet is ever held for retry. It is the exact packet whose
    send came up short, and it is sent again unchanged.

    Attributes:
        packet_size: Size of every packet in bytes.
        header_layout: Layout of the sequencing header, or None when packets
            carry no header.
        flow_id: Identifier stamped on built packets.
        total_bytes_sent: Bytes of fully sent packets.
        packets_sent: Number of fully sent packets.
        sequence_number: Sequence number the next new packet will carry.
        unsent_packet: Packet cached after a short send.
    """

    def __init__(
        self,
        packet_size: int,
        header_layout: Optional[HeaderLayout] = None,
        flow_id: str = "",
    ):
        self.packet_size = packet_size
        self.header_layout = header_layout
        self.flow_id = flow_id
        self.total_bytes_sent = 0
        self.packets_sent = 0
        self.sequence_number = 0
        self.unsent_packet: Optional[Packet] = None

    def build_packet(
        self, now: float, before_header: Optional[HeaderCallback] = None
    ) -> Packet:
        """Return the packet to send next.

        The cached packet wins if there is one. Otherwise a new packet is
        built, with a sequencing header when a layout is configured.

        Args:
            now: Current time, stamped into the header.
            before_header: Called with the bare payload and the new header
                just before the header is prepended.

        Raises:
            ConfigurationError: If the header does not fit in a packet.
        """
        if self.unsent_packet is not None:
            return self.unsent_packet

        if self.header_layout is None:
            return Packet(self.packet_size, creation_time=now, flow_id=self.flow_id)

        header_size = self.header_layout.serialized_size
        if header_size >= self.packet_size:
            raise ConfigurationError(
                f"Header of {header_size} bytes does not fit in packets of "
                f"{self.packet_size} bytes"
            )
        header = SeqTsSizeHeader(
            seq=self.sequence_number,
            timestamp=now,
            size=self.packet_size,
            layout=self.header_layout,
        )
        self.sequence_number += 1
        packet = Packet(
            self.packet_size - header_size, creation_time=now, flow_id=self.flow_id
        )
        if before_header is not None:
            before_header(packet, header)
        packet.add_header(header)
        return packet

    def on_send_result(self, packet: Packet, actual: int) -> bool:
        """Account for a send attempt.

        Args:
            packet: The packet handed to the socket.
            actual: Bytes the socket accepted, negative on error.

        Returns:
            True if the packet went out whole, False if it was cached.
        """
        if actual == self.packet_size:
            self.unsent_packet = None
            self.total_bytes_sent += self.packet_size
            self.packets_sent += 1
            return True

        logger.debug(
            "Unable to send packet; actual %d size %d; caching for later attempt",
            actual,
            self.packet_size,
        )
        self.unsent_packet = packet
        return False

    def discard_unsent(self) -> Optional[Packet]:
        """Drop the cached packet, if any, and return it."""
        packet, self.unsent_packet = self.unsent_packet, None
        return packet
