"""Scheduler adapter for the traffic generator.

The generator never touches the event loop directly. It schedules callbacks
through a Scheduler, which hands back TimerHandle objects that can be
cancelled, and reads the clock through Scheduler.now.
"""

from abc import ABC, abstractmethod
from typing import Callable, Optional

import simpy


class TimerHandle:
    """A callback scheduled to run once, after a delay.

    Attributes:
        event: The simpy event that triggers the callback.
        cancelled: Whether the timer was cancelled before it fired.
    """

    def __init__(self, event: simpy.events.Event, callback: Callable[[], None]):
        self.event = event
        self.cancelled = False
        self._callback = callback
        event.callbacks.append(self._fire)

    def _fire(self, event: simpy.events.Event) -> None:
        if not self.cancelled:
            self._callback()

    @property
    def is_pending(self) -> bool:
        """True until the timer fires or is cancelled."""
        return not self.cancelled and not self.event.processed

    @property
    def has_expired(self) -> bool:
        """True once the timer fired or was cancelled."""
        return not self.is_pending

    def cancel(self) -> None:
        """Prevent the callback from running. No effect once it has fired."""
        self.cancelled = True


class Scheduler(ABC):
    """Abstract view of the event engine the generator schedules into."""

    @abstractmethod
    def after(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        """Run callback once, delay seconds from now.

        Args:
            delay: Delay in seconds, non-negative.
            callback: Function called with no arguments.

        Returns:
            Handle that can cancel the callback.
        """
        pass

    @abstractmethod
    def now(self) -> float:
        """Current simulation time in seconds."""
        pass

    def cancel(self, handle: Optional[TimerHandle]) -> None:
        """Cancel a pending timer. None and expired handles are ignored."""
        if handle is not None:
            handle.cancel()


class SimPyScheduler(Scheduler):
    """Scheduler backed by a SimPy environment.

    Attributes:
        env: SimPy environment whose clock and event queue are used.
    """

    def __init__(self, env: simpy.Environment):
        self.env = env

    def after(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return TimerHandle(self.env.timeout(delay), callback)

    def now(self) -> float:
        return self.env.now
