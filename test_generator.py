import pytest

from conftest import PEER, ScriptedSocket
from traffic_sim.config import GeneratorConfig
from traffic_sim.core.address import PacketSocketAddress, socket_address
from traffic_sim.core.data_rate import DataRate
from traffic_sim.core.enums import GeneratorState
from traffic_sim.core.errors import (
    BindError,
    ConfigurationError,
    ConnectionFailedError,
    SchedulingError,
    SchedulingOverflowError,
    TrafficGeneratorError,
)
from traffic_sim.traffic.generator import TrafficGenerator


def record_sends(env, generator):
    """Collect the time of every completed send."""
    times = []
    generator.register_hook("tx", lambda packet: times.append(env.now))
    return times


def test_sends_at_configured_rate(env, make_generator):
    # 1000 bytes at 8 kb/s is one packet per second
    generator = make_generator()
    times = record_sends(env, generator)

    generator.start()
    env.run(until=3.5)

    assert times == [1.0, 2.0, 3.0]
    assert generator.total_bytes_sent == 3000
    assert generator.is_active
    assert generator.send_pending


def test_single_packet_then_self_stop(env, make_generator, sockets):
    generator = make_generator(
        packet_size=1000, data_rate="1500kb/s", max_bytes=1000, inter_arrival_time=1.0
    )
    times = record_sends(env, generator)

    generator.start()
    env.run(until=10)

    assert times == [1.0]
    assert generator.total_bytes_sent == 1000
    assert generator.state is GeneratorState.IDLE
    assert not generator.send_pending
    assert sockets[0].is_closed
    assert len(sockets[0].attempts) == 1


def test_megabit_rate_cadence(env, make_generator):
    generator = make_generator(packet_size=1024, data_rate="1Mbps")
    times = record_sends(env, generator)

    generator.start()
    env.run(until=0.5)

    assert times[0] == pytest.approx(0.008192)
    assert len(times) == 61
    for earlier, later in zip(times, times[1:]):
        assert later - earlier == pytest.approx(0.008192)
    assert generator.is_active


def test_restart_resumes_with_residual_bits(env, make_generator):
    generator = make_generator()
    times = record_sends(env, generator)

    generator.start()
    env.run(until=1.25)
    generator.stop()

    # a quarter of the interval had elapsed at 8 kb/s
    assert generator.residual_bits == 2000
    assert not generator.send_pending

    env.run(until=5)
    generator.start()
    env.run(until=6)

    assert times == [1.0, 5.75]


def test_rate_change_skips_residual_accounting(env, make_generator):
    generator = make_generator()
    times = record_sends(env, generator)

    generator.start()
    env.run(until=1.25)
    generator.set_data_rate("16kbps")
    generator.stop()

    assert generator.residual_bits == 0
    assert generator.rate_at_last_arm == DataRate(16000)

    generator.start()
    env.run(until=2)

    assert times == [1.0, 1.75]


def test_connect_failure_aborts_before_any_send(env, scheduler):
    sockets = []

    def failing_factory(protocol):
        socket = ScriptedSocket(env, connect_ok=False)
        sockets.append(socket)
        return socket

    generator = TrafficGenerator(
        scheduler,
        failing_factory,
        GeneratorConfig(packet_size=1000, data_rate="8kbps", peer_address=PEER),
    )
    generator.start()

    with pytest.raises(ConnectionFailedError):
        env.run(until=5)

    env.run(until=5)
    assert sockets[0].attempts == []
    assert generator.total_bytes_sent == 0
    assert generator.aborted
    assert not generator.send_pending
    assert sockets[0].is_closed
    with pytest.raises(TrafficGeneratorError):
        generator.start()


def test_connect_success_marks_connected(env, make_generator, sockets):
    generator = make_generator()
    generator.start()
    assert not generator.connected

    env.run(until=0.5)

    assert generator.connected
    assert sockets[0].allow_broadcast
    assert sockets[0].recv_shutdown


def test_short_send_retries_same_packet(env, make_generator, sockets):
    generator = make_generator(enable_seq_ts_size_header=True)
    generator.start()
    sockets[0].send_results = [-1, 500]

    env.run(until=4.5)

    attempts = sockets[0].attempts
    assert len(attempts) == 4
    assert attempts[0] is attempts[1] is attempts[2]
    assert attempts[0].header.seq == 0
    assert attempts[3].header.seq == 1
    assert attempts[0].to_bytes() == attempts[2].to_bytes()
    assert sockets[0].sent == [attempts[0], attempts[3]]
    assert generator.total_bytes_sent == 2000
    assert generator.sequence_number == 2
    assert generator.unsent_packet is None


def test_residual_bits_reset_after_failed_send(env, make_generator, sockets):
    # The residual is zeroed after every send attempt, even a failed one, so
    # the retry waits a full interval.
    generator = make_generator()
    times = record_sends(env, generator)
    generator.start()
    env.run(until=1.25)
    generator.stop()
    assert generator.residual_bits == 2000

    generator.start()
    sockets[1].send_results = [-1]
    env.run(until=3.5)

    # failed at 2.0, retried a full interval later
    assert len(sockets[1].attempts) == 2
    assert generator.residual_bits == 0
    assert times == [1.0, 3.0]


def test_stop_discards_cached_packet(env, make_generator, sockets):
    generator = make_generator(enable_seq_ts_size_header=True)
    generator.start()
    sockets[0].send_results = [-1]

    env.run(until=1.5)
    assert generator.unsent_packet is not None

    generator.stop()
    assert generator.unsent_packet is None

    generator.start()
    env.run(until=2.5)

    # sequence number 0 was never delivered
    assert sockets[1].sent[0].header.seq == 1
    assert generator.total_bytes_sent == 1000


def test_stop_when_idle_is_noop(env, make_generator):
    generator = make_generator()

    generator.stop()
    assert generator.state is GeneratorState.IDLE
    assert generator.total_bytes_sent == 0

    generator.start()
    env.run(until=1.5)
    generator.stop()
    counters = (generator.total_bytes_sent, generator.sequence_number)
    generator.stop()

    assert (generator.total_bytes_sent, generator.sequence_number) == counters
    assert generator.state is GeneratorState.IDLE


def test_restart_replaces_closed_socket(env, make_generator, sockets):
    generator = make_generator()
    generator.start()
    env.run(until=1.5)
    generator.stop()

    assert generator.socket is sockets[0]
    assert sockets[0].is_closed

    generator.start()

    assert len(sockets) == 2
    assert generator.socket is sockets[1]
    assert not sockets[1].is_closed


def test_byte_cap_holds_across_restarts(env, make_generator):
    generator = make_generator(max_bytes=3000)
    totals = []

    generator.start()
    env.run(until=1.5)
    generator.stop()
    totals.append(generator.total_bytes_sent)

    generator.start()
    env.run(until=2.2)
    generator.stop()
    totals.append(generator.total_bytes_sent)

    generator.start()
    env.run(until=10)
    totals.append(generator.total_bytes_sent)

    generator.start()
    env.run(until=20)
    totals.append(generator.total_bytes_sent)

    assert totals == sorted(totals)
    assert totals == [1000, 2000, 3000, 3000]
    assert generator.state is GeneratorState.IDLE
    assert not generator.send_pending


def test_residual_overflow_is_fatal(env, make_generator):
    # With a fixed inter-arrival time the residual can outgrow one packet.
    generator = make_generator(packet_size=100, inter_arrival_time=1.0)
    generator.start()
    env.run(until=0.5)
    generator.stop()
    assert generator.residual_bits == 4000

    with pytest.raises(SchedulingOverflowError):
        generator.start()
    assert generator.aborted
    assert not generator.send_pending


def test_arming_twice_is_fatal(env, make_generator):
    generator = make_generator()
    generator.start()

    with pytest.raises(SchedulingError):
        generator.schedule_next_tx()


def test_send_while_timer_pending_is_fatal(env, make_generator):
    generator = make_generator()
    generator.start()

    with pytest.raises(SchedulingError):
        generator.send_packet()


def test_inter_arrival_time_overrides_rate(env, make_generator):
    generator = make_generator(inter_arrival_time=0.25)
    times = record_sends(env, generator)

    generator.start()
    env.run(until=1.1)

    assert times == [0.25, 0.5, 0.75, 1.0]


def test_ipv6_peer_binds_ipv6(env, make_generator, sockets):
    generator = make_generator(peer_address=socket_address("2001:db8::4", 9))
    generator.start()

    assert sockets[0].local.ip.version == 6


def test_explicit_local_address_is_bound(env, make_generator, sockets):
    local = socket_address("10.1.1.7", 5000)
    generator = make_generator(local_address=local)
    generator.start()

    assert sockets[0].local == local


def test_mismatched_address_families_rejected(make_generator, sockets):
    generator = make_generator(
        peer_address=socket_address("2001:db8::4", 9),
        local_address=socket_address("10.1.1.7", 5000),
    )

    with pytest.raises(ConfigurationError):
        generator.start()
    assert sockets == []


def test_header_must_fit_in_packet(make_generator):
    generator = make_generator(packet_size=20, enable_seq_ts_size_header=True)

    with pytest.raises(ConfigurationError):
        generator.start()


def test_config_frozen_while_active(env, make_generator):
    generator = make_generator()
    generator.start()

    with pytest.raises(ConfigurationError):
        generator.set_packet_size(500)
    generator.set_data_rate("16kbps")
    assert generator.config.data_rate == DataRate(16000)

    generator.stop()
    generator.set_packet_size(500)
    assert generator.config.packet_size == 500


def test_sequenced_packet_traced_before_header(env, make_generator, sockets):
    generator = make_generator(enable_seq_ts_size_header=True)
    traced = []
    generator.register_hook(
        "tx_with_seq_ts_size",
        lambda packet, local, peer, header: traced.append(
            (packet.header, packet.payload_size, peer, header.seq, header.size)
        ),
    )
    generator.start()
    env.run(until=2.5)

    assert traced == [(None, 980, PEER, 0, 1000), (None, 980, PEER, 1, 1000)]
    assert sockets[0].sent[0].size == 1000


def test_tx_with_addresses_reports_endpoints(env, make_generator, sockets):
    generator = make_generator()
    seen = []
    generator.register_hook(
        "tx_with_addresses", lambda packet, local, peer: seen.append((local, peer))
    )
    generator.start()
    env.run(until=1.5)

    assert seen == [(sockets[0].local, PEER)]


def test_unknown_hook_rejected(make_generator):
    with pytest.raises(ValueError):
        make_generator().register_hook("rx", lambda packet: None)


def test_schedule_lifecycle(env, make_generator):
    generator = make_generator()
    times = record_sends(env, generator)

    generator.schedule_lifecycle(2.0, 4.5)
    env.run(until=10)

    assert times == [3.0, 4.0]
    assert generator.state is GeneratorState.IDLE
    assert generator.residual_bits == 4000


def test_schedule_lifecycle_rejects_bad_times(env, make_generator):
    generator = make_generator()

    with pytest.raises(ValueError):
        generator.schedule_lifecycle(2.0, 1.0)


def test_zero_rate_rejected_while_running(env, make_generator, sockets):
    generator = make_generator()
    times = record_sends(env, generator)
    generator.start()
    env.run(until=1.5)

    with pytest.raises(ConfigurationError):
        generator.set_data_rate(0)
    env.run(until=3.5)

    assert generator.config.data_rate == DataRate(8000)
    assert times == [1.0, 2.0, 3.0]
    assert generator.is_active
    assert not sockets[0].is_closed


def test_zero_rate_allowed_with_inter_arrival_time(env, make_generator):
    generator = make_generator(inter_arrival_time=0.5)
    times = record_sends(env, generator)
    generator.start()

    generator.set_data_rate(0)
    env.run(until=1.1)

    assert times == [0.5, 1.0]


def test_byte_cap_overshoots_to_whole_packet(env, make_generator):
    # The cap is checked before each packet, so the last packet may cross it.
    generator = make_generator(max_bytes=1500)
    generator.start()
    env.run(until=10)

    assert generator.total_bytes_sent == 2000
    assert generator.packets_sent == 2
    assert generator.state is GeneratorState.IDLE


def test_bind_failure_is_fatal(env, scheduler):
    sockets = []

    class UnbindableSocket(ScriptedSocket):
        def bind(self, address=None) -> bool:
            return False

    def factory(protocol):
        socket = UnbindableSocket(env)
        sockets.append(socket)
        return socket

    generator = TrafficGenerator(
        scheduler,
        factory,
        GeneratorConfig(packet_size=1000, data_rate="8kbps", peer_address=PEER),
    )

    with pytest.raises(BindError):
        generator.start()

    assert generator.aborted
    assert sockets[0].is_closed
    assert not generator.send_pending
    with pytest.raises(TrafficGeneratorError):
        generator.start()
    assert len(sockets) == 1


def test_packet_socket_peer_skips_address_trace(env, make_generator):
    generator = make_generator(peer_address=PacketSocketAddress(device=1))
    sent = record_sends(env, generator)
    seen = []
    generator.register_hook(
        "tx_with_addresses", lambda packet, local, peer: seen.append(peer)
    )
    generator.start()
    env.run(until=2.5)

    assert sent == [1.0, 2.0]
    assert seen == []
