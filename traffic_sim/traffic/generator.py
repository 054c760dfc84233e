"""Rate-controlled traffic generator.

This module defines the TrafficGenerator class, an application that sends
fixed-size packets to a peer at a configured bit rate or with a fixed
inter-arrival time, until an optional byte cap is reached.

All state changes happen either in a lifecycle call (start/stop) or in a
callback fired by the scheduler, one at a time. Stopping folds the elapsed
part of the pending interval into residual bits, so a later start resumes
the flow at the same cadence and with the same counters.
"""

import logging
from typing import Any, Callable, Dict, List, Optional

from traffic_sim.config import GeneratorConfig
from traffic_sim.core.address import SocketAddress
from traffic_sim.core.data_rate import DataRate
from traffic_sim.core.enums import AddressFamily, GeneratorState
from traffic_sim.core.errors import (
    BindError,
    ConfigurationError,
    ConnectionFailedError,
    SchedulingError,
    TrafficGeneratorError,
)
from traffic_sim.core.packet import Packet, SeqTsSizeHeader
from traffic_sim.core.scheduler import Scheduler, TimerHandle
from traffic_sim.core.sockets import Socket, SocketFactory
from traffic_sim.traffic.rate_model import RateModel
from traffic_sim.traffic.transmission import TransmissionState

logger = logging.getLogger(__name__)


class TrafficGenerator:
    """Sends packets to one peer at a controlled rate.

    Attributes:
        scheduler: Event scheduler the generator arms its timers on.
        socket_factory: Creates the socket on first start.
        config: Generator settings, frozen while the generator is active
            except for the data rate.
        name: Label used in logs and as the flow id of built packets.
        state: IDLE or ACTIVE.
        socket: Socket of the flow. Kept after stop so it can be inspected;
            a closed socket is replaced on the next start.
        connected: Whether the socket reported a successful connect.
        last_send_time: Time of the last send attempt, start, or cancellation.
        aborted: Whether a fatal error ended the flow.
    """

    def __init__(
        self,
        scheduler: Scheduler,
        socket_factory: SocketFactory,
        config: Optional[GeneratorConfig] = None,
        name: str = "generator",
    ):
        self.scheduler = scheduler
        self.socket_factory = socket_factory
        self.config = config if config is not None else GeneratorConfig()
        self.name = name
        self.state = GeneratorState.IDLE
        self.socket: Optional[Socket] = None
        self.connected = False
        self.last_send_time = 0.0
        self.aborted = False

        self.rate_model: Optional[RateModel] = None
        self.transmission: Optional[TransmissionState] = None
        self._send_event: Optional[TimerHandle] = None
        self._start_stop_event: Optional[TimerHandle] = None

        self.hooks: Dict[str, List[Callable[..., Any]]] = {
            "tx": [],  # packet fully sent
            "tx_with_addresses": [],  # packet fully sent, with local and peer
            "tx_with_seq_ts_size": [],  # new sequenced packet built
        }

    # Configuration

    def set_data_rate(self, rate) -> None:
        """Change the data rate. Allowed at any time.

        A rate change invalidates the residual accounting of the send timer
        pending at that moment.
        """
        rate = DataRate.coerce(rate)
        if rate.bit_rate == 0 and self.config.inter_arrival_time == 0:
            raise ConfigurationError(
                f"{self.name}: data rate must be positive when no inter-arrival time is set"
            )
        self.config.data_rate = rate

    def set_packet_size(self, packet_size: int) -> None:
        self._check_mutable()
        self.config.packet_size = packet_size

    def set_max_bytes(self, max_bytes: int) -> None:
        self._check_mutable()
        self.config.max_bytes = max_bytes

    def set_inter_arrival_time(self, inter_arrival_time: float) -> None:
        self._check_mutable()
        self.config.inter_arrival_time = inter_arrival_time

    def set_peer_address(self, address: SocketAddress) -> None:
        self._check_mutable()
        self.config.peer_address = address

    def set_local_address(self, address: Optional[SocketAddress]) -> None:
        self._check_mutable()
        self.config.local_address = address

    def _check_mutable(self) -> None:
        if self.state is GeneratorState.ACTIVE:
            raise ConfigurationError(
                f"{self.name}: configuration cannot change while the generator runs"
            )

    # Observers

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

    # Runtime state

    @property
    def is_active(self) -> bool:
        return self.state is GeneratorState.ACTIVE

    @property
    def send_pending(self) -> bool:
        return self._send_event is not None and self._send_event.is_pending

    @property
    def total_bytes_sent(self) -> int:
        return self.transmission.total_bytes_sent if self.transmission else 0

    @property
    def packets_sent(self) -> int:
        return self.transmission.packets_sent if self.transmission else 0

    @property
    def sequence_number(self) -> int:
        return self.transmission.sequence_number if self.transmission else 0

    @property
    def unsent_packet(self) -> Optional[Packet]:
        return self.transmission.unsent_packet if self.transmission else None

    @property
    def residual_bits(self) -> int:
        return self.rate_model.residual_bits if self.rate_model else 0

    @property
    def rate_at_last_arm(self) -> Optional[DataRate]:
        return self.rate_model.rate_at_last_arm if self.rate_model else None

    # Lifecycle

    def schedule_lifecycle(
        self, start_time: float, stop_time: Optional[float] = None
    ) -> None:
        """Start the generator at start_time and stop it at stop_time.

        Both times are absolute. The same timer slot is used for the start
        and then for the stop, so only one of them is ever pending.
        """
        now = self.scheduler.now()
        if start_time < now:
            raise ValueError(f"Start time {start_time} is in the past ({now})")
        if stop_time is not None and stop_time <= start_time:
            raise ValueError(f"Stop time {stop_time} is not after start {start_time}")

        def on_start():
            self.start()
            if stop_time is not None:
                self._start_stop_event = self.scheduler.after(
                    stop_time - self.scheduler.now(), self.stop
                )

        self.scheduler.cancel(self._start_stop_event)
        self._start_stop_event = self.scheduler.after(start_time - now, on_start)

    def start(self) -> None:
        """Open the socket if needed and arm the first send timer.

        Raises:
            ConfigurationError: If the configuration is invalid.
            BindError: If the socket cannot be bound.
            SchedulingOverflowError: If carried-over residual bits exceed a packet.
        """
        logger.debug("Starting %s", self.name)
        if self.aborted:
            raise TrafficGeneratorError(f"{self.name}: flow was aborted, cannot start")
        self.config.validate()
        self._prepare_runtime()

        if self.socket is None or self.socket.is_closed:
            self._open_socket()

        self.rate_model.arm(self.config.data_rate)
        self.cancel_events()
        self.state = GeneratorState.ACTIVE
        self.last_send_time = self.scheduler.now()
        self.schedule_next_tx()

    def stop(self) -> None:
        """Cancel pending timers and close the socket.

        Counters and residual bits survive, so a later start resumes the
        flow. Stopping an idle generator is harmless.
        """
        logger.debug("Stopping %s", self.name)
        self.cancel_events()
        if self.socket is None:
            logger.warning("%s found null socket to close in stop", self.name)
        elif not self.socket.close():
            logger.warning("%s found socket already closed in stop", self.name)
        self.state = GeneratorState.IDLE

    def cancel_events(self) -> None:
        """Cancel the send and start/stop timers and drop any cached packet."""
        now = self.scheduler.now()
        pending = self.send_pending
        if self.rate_model is not None:
            self.rate_model.on_cancel(
                now, self.last_send_time, self.config.data_rate, pending
            )
        if pending:
            self.last_send_time = now

        self.scheduler.cancel(self._send_event)
        self.scheduler.cancel(self._start_stop_event)
        self._send_event = None

        discarded = self.transmission.discard_unsent() if self.transmission else None
        if discarded is not None:
            if discarded.header is not None:
                # the dropped sequence number will never be sent
                logger.debug(
                    "%s discarding cached packet seq %d upon cancel",
                    self.name,
                    discarded.header.seq,
                )
            else:
                logger.debug("%s discarding cached packet upon cancel", self.name)

    # Sending

    def schedule_next_tx(self) -> None:
        """Arm the send timer, or stop once the byte cap is reached."""
        max_bytes = self.config.max_bytes
        if max_bytes and self.transmission.total_bytes_sent >= max_bytes:
            logger.debug("%s reached %d bytes, stopping", self.name, max_bytes)
            self.stop()
            return

        if self.send_pending:
            self._abort()
            raise SchedulingError(f"{self.name}: send timer armed twice")
        try:
            delay = self.rate_model.next_delay(self.config.data_rate)
        except SchedulingError:
            self._abort()
            raise
        logger.debug("%s next send in %.9fs", self.name, delay)
        self._send_event = self.scheduler.after(delay, self.send_packet)

    def send_packet(self) -> None:
        """Send one packet and arm the next send. Fired by the send timer."""
        if self.send_pending:
            self._abort()
            raise SchedulingError(f"{self.name}: send fired while its timer is pending")

        now = self.scheduler.now()
        packet = self.transmission.build_packet(now, self._trace_new_header)
        actual = self.socket.send(packet)
        if self.transmission.on_send_result(packet, actual):
            self._notify_sent(packet, now)

        # reset even when the send came up short
        self.rate_model.reset()
        self.last_send_time = now
        self.schedule_next_tx()

    def _trace_new_header(self, packet: Packet, header: SeqTsSizeHeader) -> None:
        self.call_hooks(
            "tx_with_seq_ts_size",
            packet,
            self.socket.get_sock_name(),
            self.socket.get_peer_name(),
            header,
        )

    def _notify_sent(self, packet: Packet, now: float) -> None:
        peer = self.config.peer_address
        self.call_hooks("tx", packet)
        if peer.family in (AddressFamily.INET, AddressFamily.INET6):
            logger.info(
                "At time %.6fs %s sent %d bytes to %s port %d total Tx %d bytes",
                now,
                self.name,
                packet.size,
                peer.ip,
                peer.port,
                self.transmission.total_bytes_sent,
            )
            self.call_hooks(
                "tx_with_addresses", packet, self.socket.get_sock_name(), peer
            )

    # Socket handling

    def _prepare_runtime(self) -> None:
        config = self.config
        layout = config.header_layout if config.enable_seq_ts_size_header else None
        if self.rate_model is None:
            self.rate_model = RateModel(config.packet_size, config.inter_arrival_time)
            self.transmission = TransmissionState(
                config.packet_size, layout, flow_id=self.name
            )
            return
        self.rate_model.packet_size = config.packet_size
        self.rate_model.inter_arrival_time = config.inter_arrival_time
        self.transmission.packet_size = config.packet_size
        self.transmission.header_layout = layout

    def _open_socket(self) -> None:
        peer = self.config.peer_address
        local = self.config.local_address
        socket = self.socket_factory(self.config.protocol)

        if local is not None:
            bound = socket.bind(local)
        elif peer.family is AddressFamily.INET6:
            bound = socket.bind6()
        else:
            bound = socket.bind()
        if not bound:
            socket.close()
            logger.error("%s failed to bind socket", self.name)
            self.aborted = True
            raise BindError(f"{self.name}: failed to bind socket")

        socket.set_connect_callback(self._connection_succeeded, self._connection_failed)
        socket.connect(peer)
        socket.set_allow_broadcast(True)
        socket.shutdown_recv()
        self.socket = socket
        self.connected = False

    def _connection_succeeded(self, socket: Socket) -> None:
        logger.debug("%s connected to %s", self.name, socket.get_peer_name())
        self.connected = True

    def _connection_failed(self, socket: Socket) -> None:
        logger.error("%s can't connect to %s", self.name, socket.get_peer_name())
        self._abort()
        raise ConnectionFailedError(
            f"{self.name}: can't connect to {socket.get_peer_name()}"
        )

    def _abort(self) -> None:
        """End the flow for good after a fatal error."""
        self.aborted = True
        self.scheduler.cancel(self._send_event)
        self.scheduler.cancel(self._start_stop_event)
        self._send_event = None
        if self.transmission is not None:
            self.transmission.discard_unsent()
        if self.socket is not None:
            self.socket.close()
        self.state = GeneratorState.IDLE

    def __repr__(self) -> str:
        return f"TrafficGenerator({self.name}, {self.state.name})"
