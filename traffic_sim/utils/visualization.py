"""Visualization utilities for the traffic simulator.

This module provides functions for plotting the results of a run: how many
bytes each generator has sent over time, and how regular its sends were.
"""

import os
from typing import Tuple

import matplotlib.pyplot as plt
import numpy as np

from traffic_sim.simulator import TrafficSimulator


def plot_cumulative_bytes(
    simulator: TrafficSimulator,
    output_dir: str | None = None,
    figsize: Tuple[int, int] = (10, 6),
    show=True,
) -> None:
    """Plot cumulative bytes sent by every generator over time.

    Args:
        simulator: TrafficSimulator instance after a run.
        output_dir: Directory to save the plot, or None to show it.
        figsize: Figure size as (width, height) in inches.
    """
    fig, ax = plt.subplots(figsize=figsize)

    for name, log in simulator.send_log.items():
        if not log:
            continue
        times, sizes = zip(*log)
        ax.step(times, np.cumsum(sizes), where="post", label=name)

    ax.set_title("Cumulative Bytes Sent")
    ax.set_xlabel("Simulation Time (seconds)")
    ax.set_ylabel("Bytes")
    ax.grid(True, linestyle="--", alpha=0.7)
    if simulator.send_log:
        ax.legend()

    plt.tight_layout()

    if output_dir:
        os.makedirs(output_dir, exist_ok=True)
        fig.savefig(os.path.join(output_dir, "cumulative_bytes.png"))
        plt.close(fig)
    elif show:
        plt.show()


def plot_send_intervals(
    simulator: TrafficSimulator,
    output_dir: str | None = None,
    show=True,
) -> None:
    """Plot the gap before each send, per generator.

    A rate-controlled flow draws a flat line; pauses and retries after short
    sends show up as spikes.

    Args:
        simulator: TrafficSimulator instance after a run.
        output_dir: Directory to save the plot, or None to show it.
    """
    names = [name for name, log in simulator.send_log.items() if len(log) > 1]
    num_flows = max(len(names), 1)
    fig, axes = plt.subplots(num_flows, 1, figsize=(12, 4 * num_flows), sharex=True)

    for i, name in enumerate(names):
        times = np.array([time for time, _ in simulator.send_log[name]])
        ax = axes[i] if num_flows > 1 else axes
        ax.plot(times[1:], np.diff(times) * 1000, "o-", markersize=3)
        ax.set_title(f"Inter-send Interval ({name})")
        ax.set_ylabel("Interval (ms)")
        ax.grid(True, linestyle="--", alpha=0.7)
        if i == num_flows - 1:
            ax.set_xlabel("Simulation Time (seconds)")

    plt.tight_layout()

    if output_dir:
        os.makedirs(output_dir, exist_ok=True)
        plt.savefig(os.path.join(output_dir, "send_intervals.png"))
        plt.close()
    elif show:
        plt.show()
