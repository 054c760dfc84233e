"""Metrics utilities for the traffic simulator.

This module provides functions for calculating and saving the results of a
simulation run: per-flow send and receive counters, one-way delay, loss,
send interval statistics and fairness across flows.
"""

import csv
import json
import os
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from traffic_sim.core.sink import FlowReception, count_lost, count_reordered

if TYPE_CHECKING:
    from traffic_sim.traffic.generator import TrafficGenerator


def send_interval_stats(send_times: Sequence[float]) -> Dict[str, float]:
    """Mean and standard deviation of the gaps between consecutive sends.

    Args:
        send_times: Send instants in seconds, in order.

    Returns:
        Dictionary with "mean_interval" and "interval_std", both 0 when fewer
        than two sends happened.
    """
    if len(send_times) < 2:
        return {"mean_interval": 0.0, "interval_std": 0.0}
    intervals = np.diff(np.asarray(send_times, dtype=float))
    return {
        "mean_interval": float(np.mean(intervals)),
        "interval_std": float(np.std(intervals)),
    }


def calculate_flow_metrics(
    generator: "TrafficGenerator",
    receptions: List[FlowReception],
    send_log: List[Tuple[float, int]],
    end_time: float,
) -> Dict[str, Any]:
    """Calculate metrics of one flow.

    Args:
        generator: The generator of the flow.
        receptions: What the sink received from each socket of the flow.
        send_log: (time, bytes) of every completed send.
        end_time: End of the measured period in seconds.

    Returns:
        Dictionary of flow metrics.
    """
    packets_received = sum(r.packets for r in receptions)
    bytes_received = sum(r.bytes for r in receptions)
    delays = [d for r in receptions for d in r.delays]
    sequences = [s for r in receptions for s in r.sequences]

    metrics = {
        "packets_sent": generator.packets_sent,
        "bytes_sent": generator.total_bytes_sent,
        "packets_received": packets_received,
        "bytes_received": bytes_received,
        "lost_packets": count_lost(sequences),
        "reordered_packets": count_reordered(sequences),
        "average_delay": float(np.mean(delays)) if delays else 0.0,
        "throughput": bytes_received / end_time if end_time > 0 else 0.0,
    }
    metrics.update(send_interval_stats([time for time, _ in send_log]))
    return metrics


def calculate_fairness_index(flow_throughputs: Dict[str, float]) -> float:
    """Calculate Jain's fairness index for flow throughputs.

    Args:
        flow_throughputs: Dictionary mapping flow names to throughputs.

    Returns:
        Fairness index between 0 and 1 (1 is perfectly fair).
    """
    if not flow_throughputs:
        return 0.0

    throughputs = list(flow_throughputs.values())
    n = len(throughputs)

    sum_throughput = sum(throughputs)
    sum_squared = sum(x**2 for x in throughputs)

    if sum_squared == 0:
        return 0.0

    return (sum_throughput**2) / (n * sum_squared)


def save_metrics_to_json(
    metrics: Dict[str, Any], filename: str = "results/metrics.json"
) -> None:
    """Save metrics to a JSON file.

    Args:
        metrics: Dictionary of metrics to save.
        filename: Output filename.
    """
    directory = os.path.dirname(filename)
    if directory:
        os.makedirs(directory, exist_ok=True)

    with open(filename, "w") as f:
        json.dump(metrics, f, indent=2)


def save_metrics_to_csv(
    metrics: Dict[str, Any],
    filename: str = "results/flows.csv",
    columns: Optional[List[str]] = None,
) -> None:
    """Save per-flow metrics to a CSV file, one row per flow.

    Args:
        metrics: Metrics as returned by TrafficSimulator.calculate_metrics.
        filename: Output filename.
        columns: Flow metric names to write, all of them if None.
    """
    directory = os.path.dirname(filename)
    if directory:
        os.makedirs(directory, exist_ok=True)

    flows = metrics["flows"]
    if columns is None:
        columns = sorted({key for flow in flows.values() for key in flow})

    with open(filename, "w", newline="") as f:
        writer = csv.writer(f)

        # Write header
        writer.writerow(["flow"] + columns)

        # Write data
        for name, flow in flows.items():
            writer.writerow([name] + [flow.get(column, "") for column in columns])
