"""
Configuration management using dataclasses.
Provides generator and scenario configuration with YAML serialization.
"""

from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from traffic_sim.core.address import (
    PacketSocketAddress,
    SocketAddress,
    families_compatible,
    socket_address,
)
from traffic_sim.core.data_rate import DataRate
from traffic_sim.core.errors import ConfigurationError
from traffic_sim.core.packet import HeaderLayout


@dataclass
class GeneratorConfig:
    """Settings of one traffic generator.

    A non-zero inter_arrival_time takes precedence over data_rate.
    A max_bytes of 0 means the flow never stops on its own.
    """
    packet_size: int = 512  # bytes
    data_rate: DataRate = field(default_factory=lambda: DataRate.parse("500kb/s"))
    inter_arrival_time: float = 0.0  # seconds
    max_bytes: int = 0
    peer_address: Optional[SocketAddress] = None
    local_address: Optional[SocketAddress] = None
    enable_seq_ts_size_header: bool = False
    protocol: str = "udp"
    header_layout: HeaderLayout = field(default_factory=HeaderLayout)

    def __post_init__(self):
        self.data_rate = DataRate.coerce(self.data_rate)

    def validate(self) -> None:
        """Check the configuration before a generator starts.

        Raises:
            ConfigurationError: On the first problem found.
        """
        if self.packet_size <= 0:
            raise ConfigurationError(
                f"Packet size must be positive, got {self.packet_size}"
            )
        if self.peer_address is None:
            raise ConfigurationError("No peer address configured")
        if not families_compatible(self.peer_address, self.local_address):
            raise ConfigurationError("Incompatible peer and local address IP version")
        if self.inter_arrival_time < 0:
            raise ConfigurationError(
                f"Inter-arrival time cannot be negative, got {self.inter_arrival_time}"
            )
        if self.max_bytes < 0:
            raise ConfigurationError(f"Max bytes cannot be negative, got {self.max_bytes}")
        if self.inter_arrival_time == 0 and self.data_rate.bit_rate == 0:
            raise ConfigurationError(
                "Data rate must be positive when no inter-arrival time is set"
            )
        if (
            self.enable_seq_ts_size_header
            and self.header_layout.serialized_size >= self.packet_size
        ):
            raise ConfigurationError(
                f"Header of {self.header_layout.serialized_size} bytes does not fit "
                f"in packets of {self.packet_size} bytes"
            )

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to a YAML friendly dictionary."""
        return {
            "packet_size": self.packet_size,
            "data_rate": str(self.data_rate),
            "inter_arrival_time": self.inter_arrival_time,
            "max_bytes": self.max_bytes,
            "peer_address": _address_to_dict(self.peer_address),
            "local_address": _address_to_dict(self.local_address),
            "enable_seq_ts_size_header": self.enable_seq_ts_size_header,
            "protocol": self.protocol,
            "header_layout": asdict(self.header_layout),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GeneratorConfig":
        """Create config from dictionary."""
        data = dict(data)
        for key in ("peer_address", "local_address"):
            if key in data:
                data[key] = _address_from_dict(data[key])
        if "header_layout" in data:
            data["header_layout"] = HeaderLayout(**data["header_layout"])
        return cls(**data)


@dataclass
class SinkConfig:
    """Receiving endpoint and the link leading to it."""
    host: str = "172.16.2.4"
    port: int = 9
    link_capacity: DataRate = field(default_factory=lambda: DataRate.parse("1.5Mbps"))
    propagation_delay: float = 0.003  # seconds
    buffer_size: float = float("inf")  # bytes

    def __post_init__(self):
        self.link_capacity = DataRate.coerce(self.link_capacity)

    @property
    def address(self) -> SocketAddress:
        return socket_address(self.host, self.port)


@dataclass
class FlowConfig:
    """A generator with its start and stop times."""
    generator: GeneratorConfig = field(default_factory=GeneratorConfig)
    start_time: float = 0.0
    stop_time: Optional[float] = None


@dataclass
class ScenarioConfig:
    """Main configuration container."""
    name: str = "default"
    duration: float = 10.0
    seed: int = 42
    sinks: List[SinkConfig] = field(default_factory=list)
    flows: List[FlowConfig] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert config to dictionary."""
        return {
            "name": self.name,
            "duration": self.duration,
            "seed": self.seed,
            "sinks": [
                {
                    "host": sink.host,
                    "port": sink.port,
                    "link_capacity": str(sink.link_capacity),
                    "propagation_delay": sink.propagation_delay,
                    "buffer_size": sink.buffer_size,
                }
                for sink in self.sinks
            ],
            "flows": [
                {
                    "generator": flow.generator.to_dict(),
                    "start_time": flow.start_time,
                    "stop_time": flow.stop_time,
                }
                for flow in self.flows
            ],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ScenarioConfig":
        """Create config from dictionary."""
        data = dict(data)
        if "sinks" in data:
            data["sinks"] = [SinkConfig(**sink) for sink in data["sinks"]]

        if "flows" in data:
            flows = []
            for flow_data in data["flows"]:
                flow_data = dict(flow_data)
                if "generator" in flow_data:
                    flow_data["generator"] = GeneratorConfig.from_dict(
                        flow_data["generator"]
                    )
                flows.append(FlowConfig(**flow_data))
            data["flows"] = flows

        return cls(**data)


def _address_to_dict(address: Optional[SocketAddress]) -> Optional[Dict[str, Any]]:
    if address is None:
        return None
    if isinstance(address, PacketSocketAddress):
        return {"device": address.device, "protocol": address.protocol}
    return {"host": str(address.ip), "port": address.port}


def _address_from_dict(
    data: Union[None, str, Dict[str, Any]]
) -> Optional[SocketAddress]:
    if data is None:
        return None
    if isinstance(data, str):
        # "10.0.0.1:9" or "[2001:db8::1]:9"
        host, _, port = data.rpartition(":")
        return socket_address(host.strip("[]"), int(port))
    if "device" in data:
        return PacketSocketAddress(int(data["device"]), int(data.get("protocol", 0)))
    return socket_address(data["host"], int(data["port"]))


def load_config(path: str) -> ScenarioConfig:
    """Load configuration from YAML file."""
    with open(path, "r") as f:
        data = yaml.safe_load(f)
    return ScenarioConfig.from_dict(data) if data else ScenarioConfig()


def save_config(config: ScenarioConfig, path: str) -> None:
    """Save configuration to YAML file."""
    Path(path).parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.dump(config.to_dict(), f, default_flow_style=False, sort_keys=False)


def smartgrid_scenario() -> ScenarioConfig:
    """One 1000-byte packet every second, capped at 1000 bytes."""
    sink = SinkConfig(host="172.16.2.4", port=9, link_capacity="1.5Mbps",
                      propagation_delay=0.003)
    generator = GeneratorConfig(
        packet_size=1000,
        data_rate="1500kb/s",
        inter_arrival_time=1.0,
        max_bytes=1000,
        peer_address=sink.address,
    )
    return ScenarioConfig(
        name="smartgrid",
        duration=25.0,
        sinks=[sink],
        flows=[FlowConfig(generator=generator, start_time=2.0, stop_time=15.0)],
    )


def factory_automation_scenario() -> ScenarioConfig:
    """Unlimited 1024-byte packets at 1Mbps, with sequencing headers."""
    sink = SinkConfig(host="10.1.2.4", port=9, link_capacity="1Mbps",
                      propagation_delay=0.0025)
    generator = GeneratorConfig(
        packet_size=1024,
        data_rate="1Mbps",
        max_bytes=0,
        peer_address=sink.address,
        enable_seq_ts_size_header=True,
    )
    return ScenarioConfig(
        name="factory",
        duration=10.0,
        sinks=[sink],
        flows=[FlowConfig(generator=generator, start_time=2.0, stop_time=10.0)],
    )


SCENARIOS = {
    "smartgrid": smartgrid_scenario,
    "factory": factory_automation_scenario,
}
