import argparse
import logging
import os

from traffic_sim.config import SCENARIOS, load_config, save_config
from traffic_sim.simulator import TrafficSimulator
from traffic_sim.utils.logging import setup_logging
from traffic_sim.utils.metrics import save_metrics_to_csv, save_metrics_to_json


def print_summary(metrics):
    """
    Print a short per-flow summary of a run

    Args:
        metrics: Metrics dictionary returned by TrafficSimulator.run
    """
    print(f"\nSimulated {metrics['duration']:.3f} s")
    for name, flow in metrics["flows"].items():
        print(
            f"Flow {name}: {flow['packets_sent']} packets / {flow['bytes_sent']} bytes sent, "
            f"{flow['packets_received']} received, {flow['lost_packets']} lost, "
            f"{flow['average_delay']*1000:.3f} ms average delay"
        )
    print(f"Throughput: {metrics['throughput']/1000:.2f} KB/s")
    print(f"Packet Loss Rate: {metrics['packet_loss_rate']*100:.2f}%")
    print(f"Fairness Index: {metrics['fairness_index']:.3f}")


def main():
    """Main function to run a traffic scenario"""
    parser = argparse.ArgumentParser(description="Rate-controlled traffic source simulation")
    parser.add_argument("--config", help="YAML scenario file")
    parser.add_argument(
        "--scenario",
        choices=sorted(SCENARIOS),
        default="smartgrid",
        help="Built-in scenario, used when no --config is given",
    )
    parser.add_argument("--duration", type=float, help="Override the scenario duration")
    parser.add_argument("--output-dir", default="results", help="Where results are written")
    parser.add_argument("--save-config", action="store_true", help="Write the scenario as YAML")
    parser.add_argument("--plot", action="store_true", help="Save plots of the run")
    parser.add_argument("--verbose", action="store_true", help="Log every send")

    args = parser.parse_args()

    setup_logging(level=logging.INFO if args.verbose else logging.WARNING)

    config = load_config(args.config) if args.config else SCENARIOS[args.scenario]()
    if args.duration is not None:
        config.duration = args.duration

    os.makedirs(args.output_dir, exist_ok=True)
    if args.save_config:
        save_config(config, os.path.join(args.output_dir, f"{config.name}.yaml"))

    print(f"\n=== Running {config.name} scenario ===")
    simulator = TrafficSimulator.from_config(config)
    metrics = simulator.run(config.duration)

    print_summary(metrics)
    save_metrics_to_json(metrics, os.path.join(args.output_dir, f"{config.name}_metrics.json"))
    save_metrics_to_csv(metrics, os.path.join(args.output_dir, f"{config.name}_flows.csv"))

    if args.plot:
        from traffic_sim.utils.visualization import plot_cumulative_bytes, plot_send_intervals

        plot_cumulative_bytes(simulator, output_dir=args.output_dir)
        plot_send_intervals(simulator, output_dir=args.output_dir)


if __name__ == "__main__":
    main()
