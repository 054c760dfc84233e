"""Utilities for the traffic simulator: logging, metrics and plots."""
