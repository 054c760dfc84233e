"""Packet and sequencing header for the traffic simulator.

This module defines the Packet class, which represents an application packet
sent by a traffic generator, and the optional sequence/timestamp/size header
that can be prepended to it.
"""

from dataclasses import dataclass, field
from typing import ClassVar, Optional


@dataclass(frozen=True)
class HeaderLayout:
    """Field widths of the serialized sequencing header, in bytes.

    The default matches the common 4-byte sequence, 8-byte timestamp and
    8-byte size layout. All fields are unsigned big-endian integers.

    Attributes:
        seq_width: Width of the sequence number field.
        ts_width: Width of the timestamp field (nanoseconds).
        size_width: Width of the declared size field.
    """

    seq_width: int = 4
    ts_width: int = 8
    size_width: int = 8

    def __post_init__(self):
        for name in ("seq_width", "ts_width", "size_width"):
            if getattr(self, name) <= 0:
                raise ValueError(f"Header field width must be positive: {name}")

    @property
    def serialized_size(self) -> int:
        """Size of the header on the wire."""
        return self.seq_width + self.ts_width + self.size_width


@dataclass(frozen=True)
class SeqTsSizeHeader:
    """Sequence number, send timestamp and declared packet size.

    Attributes:
        seq: Sequence number of the packet.
        timestamp: Send time in seconds.
        size: Declared size of the whole packet (header included) in bytes.
        layout: Field widths used to serialize the header.
    """

    seq: int
    timestamp: float
    size: int
    layout: HeaderLayout = HeaderLayout()

    @property
    def serialized_size(self) -> int:
        return self.layout.serialized_size

    def serialize(self) -> bytes:
        """Encode the header. Fields wrap modulo their width."""
        layout = self.layout
        ts_ns = int(round(self.timestamp * 1e9))
        return (
            (self.seq % 2 ** (8 * layout.seq_width)).to_bytes(layout.seq_width, "big")
            + (ts_ns % 2 ** (8 * layout.ts_width)).to_bytes(layout.ts_width, "big")
            + (self.size % 2 ** (8 * layout.size_width)).to_bytes(
                layout.size_width, "big"
            )
        )

    @classmethod
    def deserialize(
        cls, data: bytes, layout: HeaderLayout = HeaderLayout()
    ) -> "SeqTsSizeHeader":
        """Decode a header from the start of data.

        Raises:
            ValueError: If data is shorter than the header.
        """
        if len(data) < layout.serialized_size:
            raise ValueError(
                f"Need {layout.serialized_size} bytes for header, got {len(data)}"
            )
        seq_end = layout.seq_width
        ts_end = seq_end + layout.ts_width
        size_end = ts_end + layout.size_width
        return cls(
            seq=int.from_bytes(data[:seq_end], "big"),
            timestamp=int.from_bytes(data[seq_end:ts_end], "big") / 1e9,
            size=int.from_bytes(data[ts_end:size_end], "big"),
            layout=layout,
        )


@dataclass(eq=False)
class Packet:
    """Represents an application packet.

    Packets compare by identity: a packet retried after a short send is the
    same object that was first handed to the socket.

    Attributes:
        payload_size: Size of the payload in bytes, header excluded.
        creation_time: Time when the packet was built.
        header: Sequencing header, if one was prepended.
        flow_id: Identifier of the flow that produced the packet.
        id: Unique identifier for the packet.
        arrival_time: Time when the packet reached its sink.
    """

    payload_size: int
    creation_time: float = 0
    header: Optional[SeqTsSizeHeader] = None
    flow_id: str = ""
    id: int = field(init=False)
    arrival_time: Optional[float] = None

    _id_counter: ClassVar[int] = 0

    def __post_init__(self):
        """Assign the next unique id."""
        type(self)._id_counter += 1
        self.id = type(self)._id_counter

    @property
    def size(self) -> int:
        """Total size on the wire in bytes."""
        if self.header is None:
            return self.payload_size
        return self.header.serialized_size + self.payload_size

    def add_header(self, header: SeqTsSizeHeader) -> None:
        """Prepend a sequencing header.

        Raises:
            ValueError: If a header is already present.
        """
        if self.header is not None:
            raise ValueError("Packet already carries a header")
        self.header = header

    def to_bytes(self) -> bytes:
        """Serialize the packet: header (if any) followed by a zero payload."""
        prefix = self.header.serialize() if self.header is not None else b""
        return prefix + bytes(self.payload_size)

    @classmethod
    def from_bytes(
        cls, data: bytes, layout: Optional[HeaderLayout] = None
    ) -> "Packet":
        """Rebuild a packet from its serialized form.

        Args:
            data: Serialized packet.
            layout: Header layout, or None when the packet carries no header.
        """
        if layout is None:
            return cls(payload_size=len(data))
        header = SeqTsSizeHeader.deserialize(data, layout)
        return cls(
            payload_size=len(data) - layout.serialized_size,
            creation_time=header.timestamp,
            header=header,
        )

    def get_delay(self) -> Optional[float]:
        """Calculate one-way delay if the packet has arrived.

        Returns:
            Delay in seconds or None if the packet hasn't arrived.
        """
        if self.arrival_time is None:
            return None
        return self.arrival_time - self.creation_time
