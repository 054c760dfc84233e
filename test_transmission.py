import pytest

from traffic_sim.core.errors import ConfigurationError
from traffic_sim.core.packet import HeaderLayout
from traffic_sim.traffic.transmission import TransmissionState


def test_plain_packet_has_configured_size():
    state = TransmissionState(1000, flow_id="flow")

    packet = state.build_packet(now=1.5)

    assert packet.size == 1000
    assert packet.header is None
    assert packet.creation_time == 1.5
    assert packet.flow_id == "flow"
    assert state.sequence_number == 0


def test_sequenced_packet_carries_header():
    state = TransmissionState(1000, HeaderLayout())

    first = state.build_packet(now=1.0)
    second = state.build_packet(now=2.0)

    assert first.size == 1000
    assert first.payload_size == 980
    assert (first.header.seq, first.header.timestamp, first.header.size) == (0, 1.0, 1000)
    assert second.header.seq == 1
    assert state.sequence_number == 2


def test_custom_header_layout_changes_payload():
    state = TransmissionState(100, HeaderLayout(seq_width=2, ts_width=4, size_width=2))

    packet = state.build_packet(now=0.0)

    assert packet.header.serialized_size == 8
    assert packet.payload_size == 92
    assert len(packet.to_bytes()) == 100


def test_header_as_large_as_packet_rejected():
    state = TransmissionState(20, HeaderLayout())

    with pytest.raises(ConfigurationError):
        state.build_packet(now=0.0)


def test_before_header_sees_bare_payload():
    state = TransmissionState(1000, HeaderLayout())
    seen = []

    packet = state.build_packet(
        now=0.0, before_header=lambda p, h: seen.append((p.header, p.size, h.seq))
    )

    assert seen == [(None, 980, 0)]
    assert packet.header is not None


def test_complete_send_advances_counters():
    state = TransmissionState(1000)
    packet = state.build_packet(now=0.0)

    assert state.on_send_result(packet, 1000)

    assert state.total_bytes_sent == 1000
    assert state.packets_sent == 1
    assert state.unsent_packet is None


@pytest.mark.parametrize("actual", [-1, 0, 999])
def test_short_send_caches_packet(actual):
    state = TransmissionState(1000, HeaderLayout())
    packet = state.build_packet(now=0.0)

    assert not state.on_send_result(packet, actual)

    assert state.unsent_packet is packet
    assert state.total_bytes_sent == 0
    assert state.build_packet(now=5.0) is packet
    assert state.sequence_number == 1


def test_retry_success_clears_cache():
    state = TransmissionState(1000)
    packet = state.build_packet(now=0.0)
    state.on_send_result(packet, -1)

    retried = state.build_packet(now=1.0)
    state.on_send_result(retried, 1000)

    assert state.unsent_packet is None
    assert state.total_bytes_sent == 1000
    assert state.build_packet(now=2.0) is not packet


def test_discard_unsent():
    state = TransmissionState(1000)
    packet = state.build_packet(now=0.0)
    state.on_send_result(packet, -1)

    assert state.discard_unsent() is packet
    assert state.unsent_packet is None
    assert state.discard_unsent() is None
