from typing import List, Optional

import pytest
import simpy

from traffic_sim.config import GeneratorConfig, SinkConfig
from traffic_sim.core.address import InetSocketAddress, socket_address
from traffic_sim.core.network import SimulatedNetwork
from traffic_sim.core.packet import Packet
from traffic_sim.core.scheduler import SimPyScheduler
from traffic_sim.core.sink import PacketSink
from traffic_sim.core.sockets import Socket
from traffic_sim.traffic.generator import TrafficGenerator

PEER = socket_address("10.1.2.4", 9)


class ScriptedSocket(Socket):
    """Socket whose send results are scripted by the test.

    Every send pops the next value of send_results; once the script runs out
    the whole packet is accepted.
    """

    def __init__(self, env: simpy.Environment, connect_ok: bool = True):
        super().__init__()
        self.env = env
        self.connect_ok = connect_ok
        self.send_results: List[int] = []
        self.sent: List[Packet] = []
        self.attempts: List[Packet] = []
        self.local: Optional[InetSocketAddress] = None
        self.peer = None
        self.closed = False
        self.allow_broadcast = False
        self.recv_shutdown = False

    def bind(self, address=None) -> bool:
        self.local = address or socket_address("10.1.1.1", 49153)
        return True

    def bind6(self) -> bool:
        self.local = socket_address("2001:db8::1", 49153)
        return True

    def connect(self, address) -> None:
        self.peer = address
        event = self.env.timeout(0)
        if self.connect_ok:
            event.callbacks.append(lambda _: self.notify_connection_succeeded())
        else:
            event.callbacks.append(lambda _: self.notify_connection_failed())

    def send(self, packet: Packet) -> int:
        self.attempts.append(packet)
        if self.closed:
            return -1
        result = self.send_results.pop(0) if self.send_results else packet.size
        if result == packet.size:
            self.sent.append(packet)
        return result

    def close(self) -> bool:
        if self.closed:
            return False
        self.closed = True
        return True

    @property
    def is_closed(self) -> bool:
        return self.closed

    def get_sock_name(self):
        return self.local

    def get_peer_name(self):
        return self.peer

    def set_allow_broadcast(self, allow: bool) -> None:
        self.allow_broadcast = allow

    def shutdown_recv(self) -> None:
        self.recv_shutdown = True


@pytest.fixture
def env():
    return simpy.Environment()


@pytest.fixture
def scheduler(env):
    return SimPyScheduler(env)


@pytest.fixture
def sockets(env):
    """Scripted sockets handed out by the scripted_factory fixture."""
    return []


@pytest.fixture
def scripted_factory(env, sockets):
    def factory(protocol):
        socket = ScriptedSocket(env)
        sockets.append(socket)
        return socket

    return factory


@pytest.fixture
def make_generator(scheduler, scripted_factory):
    """Build a generator on scripted sockets, config overrides as kwargs."""

    def make(**overrides):
        settings = dict(packet_size=1000, data_rate="8kbps", peer_address=PEER)
        settings.update(overrides)
        return TrafficGenerator(scheduler, scripted_factory, GeneratorConfig(**settings))

    return make


@pytest.fixture
def network(env):
    return SimulatedNetwork(env)


@pytest.fixture
def sink(env, network):
    sink = PacketSink(env, SinkConfig(host="10.1.2.4", port=9).address)
    network.add_sink(sink, capacity=10e6, propagation_delay=0.001)
    return sink
