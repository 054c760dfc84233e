"""Data rate value type.

This module defines the DataRate class, which holds a bit rate and parses the
usual textual forms such as "1500kb/s", "1.5Mbps" or "100KiB/s".
"""

import re
from dataclasses import dataclass
from typing import Union

_RATE_PATTERN = re.compile(
    r"^\s*(?P<value>\d+(?:\.\d+)?(?:[eE][+-]?\d+)?)\s*"
    r"(?P<prefix>[kKMG]i?)?(?P<unit>bps|b/s|Bps|B/s)\s*$"
)

_PREFIXES = {
    None: 1,
    "k": 1000,
    "K": 1000,
    "M": 1000**2,
    "G": 1000**3,
    "ki": 1024,
    "Ki": 1024,
    "Mi": 1024**2,
    "Gi": 1024**3,
}


@dataclass(frozen=True)
class DataRate:
    """A transmission rate.

    Attributes:
        bit_rate: Rate in bits per second.
    """

    bit_rate: int

    def __post_init__(self):
        if self.bit_rate < 0:
            raise ValueError(f"Data rate cannot be negative: {self.bit_rate}")

    @classmethod
    def parse(cls, text: str) -> "DataRate":
        """Parse a rate string.

        Args:
            text: Rate such as "1500kb/s", "1Mbps", "8bps" or "2KiB/s". Byte
                units (upper case B) are multiplied by eight.

        Returns:
            The parsed DataRate.

        Raises:
            ValueError: If the string is not a recognised rate.
        """
        match = _RATE_PATTERN.match(text)
        if match is None:
            raise ValueError(f"Cannot parse data rate: {text!r}")
        value = float(match.group("value")) * _PREFIXES[match.group("prefix")]
        if match.group("unit").startswith("B"):
            value *= 8
        return cls(int(round(value)))

    @classmethod
    def coerce(cls, value: Union["DataRate", str, int, float]) -> "DataRate":
        """Build a DataRate from a rate string, a number of bits/s or a DataRate."""
        if isinstance(value, DataRate):
            return value
        if isinstance(value, str):
            return cls.parse(value)
        return cls(int(value))

    def transmission_time(self, size: int) -> float:
        """Time needed to send size bytes at this rate.

        Args:
            size: Number of bytes.

        Returns:
            Transmission time in seconds.
        """
        return (size * 8) / self.bit_rate

    def __str__(self) -> str:
        return f"{self.bit_rate}bps"
