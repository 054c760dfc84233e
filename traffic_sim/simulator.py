"""Traffic simulator class.

This module defines the TrafficSimulator class, which wires traffic
generators, the simulated network and packet sinks into one SimPy
environment and collects the results of a run.
"""

import random
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import numpy as np
import simpy

from traffic_sim.config import FlowConfig, GeneratorConfig, ScenarioConfig, SinkConfig
from traffic_sim.core.address import SocketAddress
from traffic_sim.core.network import SimulatedNetwork
from traffic_sim.core.scheduler import SimPyScheduler
from traffic_sim.core.sink import PacketSink
from traffic_sim.traffic.generator import TrafficGenerator
from traffic_sim.utils.metrics import calculate_flow_metrics, calculate_fairness_index


class TrafficSimulator:
    """Traffic simulation environment.

    Attributes:
        env: SimPy environment.
        scheduler: Scheduler adapter over env handed to every generator.
        network: Simulated network the generators' sockets run on.
        sinks: PacketSink objects keyed by address.
        generators: TrafficGenerator objects keyed by name.
        send_log: (time, bytes) of every completed send, keyed by generator name.
        local_addresses: Socket addresses each generator has sent from.
        metrics: Performance metrics of the last run.
    """

    def __init__(self, env: Optional[simpy.Environment] = None, seed: int = 42):
        """Initialize the traffic simulator.

        Args:
            env: SimPy environment, a new one is created if None.
            seed: Random seed for reproducibility.
        """
        self.env = env if env is not None else simpy.Environment()
        self.scheduler = SimPyScheduler(self.env)
        self.network = SimulatedNetwork(self.env)
        self.sinks: Dict[SocketAddress, PacketSink] = {}
        self.generators: Dict[str, TrafficGenerator] = {}
        self.send_log: Dict[str, List[Tuple[float, int]]] = {}
        self.local_addresses: Dict[str, Set[SocketAddress]] = {}

        random.seed(seed)
        np.random.seed(seed)

        self.metrics: Dict[str, Any] = {}
        self.hooks: Dict[str, List[Callable[..., Any]]] = {
            "sim_end": [],  # the simulation ends
        }

    @classmethod
    def from_config(cls, config: ScenarioConfig) -> "TrafficSimulator":
        """Build a simulator with the sinks and flows of a scenario."""
        simulator = cls(seed=config.seed)
        for sink in config.sinks:
            simulator.add_sink(sink)
        for index, flow in enumerate(config.flows):
            simulator.add_flow(flow, name=f"{config.name}-{index}")
        return simulator

    def add_sink(self, sink_config: SinkConfig) -> PacketSink:
        """Add a receiving endpoint and the link leading to it.

        Args:
            sink_config: Address and link parameters of the sink.

        Returns:
            The created PacketSink.
        """
        sink = PacketSink(self.env, sink_config.address)
        self.network.add_sink(
            sink,
            sink_config.link_capacity.bit_rate,
            sink_config.propagation_delay,
            sink_config.buffer_size,
        )
        self.sinks[sink.address] = sink
        return sink

    def add_generator(
        self, config: GeneratorConfig, name: Optional[str] = None
    ) -> TrafficGenerator:
        """Add a traffic generator running on the simulated network.

        Args:
            config: Generator settings.
            name: Unique generator name, generated if None.

        Returns:
            The created TrafficGenerator, not yet started.
        """
        if name is None:
            name = f"generator-{len(self.generators)}"
        if name in self.generators:
            raise ValueError(f"Generator {name} already exists")

        generator = TrafficGenerator(
            self.scheduler, self.network.socket_factory, config, name=name
        )
        sink = self.sinks.get(config.peer_address)
        if sink is not None and config.enable_seq_ts_size_header:
            sink.header_layout = config.header_layout

        log: List[Tuple[float, int]] = []
        generator.register_hook(
            "tx", lambda packet: log.append((self.env.now, packet.size))
        )
        addresses: Set[SocketAddress] = set()
        generator.register_hook(
            "tx_with_addresses", lambda packet, local, peer: addresses.add(local)
        )
        self.send_log[name] = log
        self.local_addresses[name] = addresses
        self.generators[name] = generator
        return generator

    def add_flow(self, flow: FlowConfig, name: Optional[str] = None) -> TrafficGenerator:
        """Add a generator and schedule its start and stop times."""
        generator = self.add_generator(flow.generator, name)
        generator.schedule_lifecycle(flow.start_time, flow.stop_time)
        return generator

    def calculate_metrics(self, end_time: Optional[float] = None) -> Dict[str, Any]:
        """Calculate performance metrics.

        Args:
            end_time: End of the measured period (defaults to current time).

        Returns:
            Dictionary of calculated metrics.
        """
        if end_time is None:
            end_time = self.env.now

        flows: Dict[str, Dict[str, Any]] = {}
        for name, generator in self.generators.items():
            sink = self.sinks.get(generator.config.peer_address)
            receptions = []
            if sink is not None:
                receptions = [
                    sink.flows[address]
                    for address in self.local_addresses[name]
                    if address in sink.flows
                ]
            flows[name] = calculate_flow_metrics(
                generator, receptions, self.send_log[name], end_time
            )

        total_sent = sum(flow["packets_sent"] for flow in flows.values())
        total_received = sum(flow["packets_received"] for flow in flows.values())
        total_bytes = sum(flow["bytes_received"] for flow in flows.values())

        self.metrics = {
            "duration": end_time,
            "flows": flows,
            "throughput": total_bytes / end_time if end_time > 0 else 0.0,
            "packet_loss_rate": (
                1 - total_received / total_sent if total_sent > 0 else 0.0
            ),
            "fairness_index": calculate_fairness_index(
                {name: flow["throughput"] for name, flow in flows.items()}
            ),
        }
        return self.metrics

    def register_hook(self, event_type: str, callback: Callable[..., Any]) -> None:
        """Register a callback function for a specific event type.

        Args:
            event_type: The type of event to register for.
            callback: The function to call when the event occurs.
        """
        if event_type not in self.hooks:
            raise ValueError(f"Unknown hook type: {event_type}")
        self.hooks[event_type].append(callback)

    def call_hooks(self, event_type: str, *args: Any, **kwargs: Any) -> None:
        """Call all registered callbacks for the given event type.

        Args:
            event_type: The type of event that occurred.
            *args, **kwargs: Arguments to pass to the callback functions.
        """
        if event_type in self.hooks:
            for callback in self.hooks[event_type]:
                callback(*args, **kwargs)

    def run(self, duration: float) -> Dict[str, Any]:
        """Run the simulation for a specified duration.

        Args:
            duration: Simulation duration in seconds.

        Returns:
            Dictionary of calculated metrics.
        """
        self.env.run(until=duration)

        self.calculate_metrics()

        self.call_hooks("sim_end", self.metrics)

        return self.metrics
