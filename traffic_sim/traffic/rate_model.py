"""Send timing for a rate-controlled traffic source.

This module turns a configured data rate, or a fixed inter-arrival time, into
the delay until the next packet, and keeps the residual bits that carry
partially elapsed intervals across a stop and the following start.
"""

import logging
from typing import Optional

from traffic_sim.core.data_rate import DataRate
from traffic_sim.core.errors import SchedulingOverflowError

logger = logging.getLogger(__name__)


class RateModel:
    """Delay computation and residual-bit carry-over.

    Attributes:
        packet_size: Size of one packet in bytes.
        inter_arrival_time: Fixed delay between sends in seconds, 0 to use
            the data rate instead.
        residual_bits: Bits already earned towards the next packet when the
            send timer was cancelled.
        rate_at_last_arm: Data rate in force when the send timer was armed,
            used to tell whether residual accounting is still meaningful.
    """

    def __init__(self, packet_size: int, inter_arrival_time: float = 0.0):
        self.packet_size = packet_size
        self.inter_arrival_time = inter_arrival_time
        self.residual_bits = 0
        self.rate_at_last_arm: Optional[DataRate] = None

    @property
    def packet_bits(self) -> int:
        return self.packet_size * 8

    def next_delay(self, rate: DataRate) -> float:
        """Time until the next packet should be sent.

        Args:
            rate: Configured data rate, ignored when an inter-arrival time is set.

        Returns:
            Delay in seconds.

        Raises:
            SchedulingOverflowError: If residual bits exceed one packet.
        """
        if self.residual_bits > self.packet_bits:
            raise SchedulingOverflowError(
                f"Residual bits {self.residual_bits} exceed packet size of "
                f"{self.packet_bits} bits, next send time would overflow"
            )
        bits = self.packet_bits - self.residual_bits
        logger.debug("bits = %d", bits)
        if self.inter_arrival_time:
            return self.inter_arrival_time
        return bits / float(rate.bit_rate)

    def arm(self, rate: DataRate) -> None:
        """Remember the rate a send timer is being armed with."""
        self.rate_at_last_arm = rate

    def on_cancel(
        self, now: float, last_send_time: float, rate: DataRate, timer_pending: bool
    ) -> None:
        """Fold the unused part of an interrupted interval into residual bits.

        Bits are only credited when a send timer was pending and the rate has
        not changed since it was armed. The armed rate is refreshed either way.

        Args:
            now: Current time in seconds.
            last_send_time: Start of the interrupted interval.
            rate: Data rate currently configured.
            timer_pending: Whether a send timer was pending.
        """
        if timer_pending and self.rate_at_last_arm == rate:
            elapsed = now - last_send_time
            self.residual_bits += int(elapsed * rate.bit_rate)
            logger.debug("residual bits now %d", self.residual_bits)
        self.rate_at_last_arm = rate

    def reset(self) -> None:
        """Forget residual bits, done after every send attempt."""
        self.residual_bits = 0
