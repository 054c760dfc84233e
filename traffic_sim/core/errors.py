"""Exceptions raised by the traffic source.

Configuration, transport and internal scheduling errors are all fatal for the
flow that raises them. Short sends are not errors and never raise.
"""


class TrafficGeneratorError(Exception):
    """Base class for all traffic generator errors."""


class ConfigurationError(TrafficGeneratorError, ValueError):
    """Invalid generator configuration, detected when the generator starts."""


class TransportError(TrafficGeneratorError):
    """The socket layer could not set up the flow."""


class BindError(TransportError):
    """The socket could not be bound to a local address."""


class ConnectionFailedError(TransportError):
    """The socket reported that connecting to the peer failed."""


class SchedulingError(TrafficGeneratorError):
    """An internal timing invariant was violated."""


class SchedulingOverflowError(SchedulingError):
    """Residual bits exceed the bits of one packet."""
