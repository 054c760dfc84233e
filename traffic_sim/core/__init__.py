"""Core components for the traffic simulator.

This module contains the building blocks the traffic generator runs on:
packets and the sequencing header, data rates, addresses, the scheduler and
socket adapters, and the simulated link, network and packet sink.
"""
