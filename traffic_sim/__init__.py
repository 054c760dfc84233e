"""Rate-controlled traffic source simulation.

This package provides a packet generator that sends at a configured bit rate
or inter-arrival time, the simulated transport it runs on, and the tooling to
configure scenarios and measure their results.
"""
