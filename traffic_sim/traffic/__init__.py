"""Traffic generation for the traffic simulator.

This module provides the rate-controlled traffic generator together with
its send-timing model and transmission state.
"""
