"""Enumerations for the traffic source.

This module defines enumerations used throughout the traffic simulator.
"""

from enum import Enum


class GeneratorState(Enum):
    """Lifecycle state of a traffic generator.

    Attributes:
        IDLE: Not started yet, or stopped. A stopped generator keeps its
            counters and residual bits, so starting it again resumes the flow.
        ACTIVE: Socket open, send timers may be pending.
    """

    IDLE = 1
    ACTIVE = 2


class AddressFamily(Enum):
    """Address family of a socket endpoint.

    Attributes:
        INET: IPv4 address and port.
        INET6: IPv6 address and port.
        PACKET: Raw packet socket address (device level).
    """

    INET = 1
    INET6 = 2
    PACKET = 3
