"""
Timer Management for the ARQ senders

This module provides keyed retransmission timers backed by a single
min-heap. Selective-Repeat keys timers by packet index; Go-Back-N and
Stop-and-Wait use one timer for the whole window. Cancelled or restarted
timers leave stale heap entries behind which are skipped by generation.
"""

from dataclasses import dataclass, field
from typing import Optional, List, Dict, Callable, Hashable
from enum import Enum
import heapq
import itertools


class TimerState(Enum):
    """Timer state enumeration."""
    STOPPED = 0
    RUNNING = 1
    EXPIRED = 2


@dataclass(order=True)
class TimerEvent:
    """Timer event for priority queue management."""
    expiry_time: float
    order: int
    key: Hashable = field(compare=False)
    generation: int = field(compare=False)  # To invalidate cancelled timers


@dataclass
class PacketTimer:
    """
    Single retransmission timer.

    Attributes:
        key: Packet index or a named timer ("window", "grace", ...)
        timeout: Timeout duration in seconds
        start_time: Time when timer was started
        state: Current timer state
        restart_count: Number of times the timer was re-armed
    """
    key: Hashable
    timeout: float
    start_time: float = 0.0
    state: TimerState = TimerState.STOPPED
    restart_count: int = 0
    generation: int = 0  # Changes on each (re)start

    def start(self, current_time: float, generation: Optional[int] = None):
        """
        Start the timer.

        Args:
            current_time: Current time in seconds
            generation: Generation to run under (previous + 1 if None)
        """
        self.start_time = current_time
        self.state = TimerState.RUNNING
        self.generation = self.generation + 1 if generation is None else generation

    def restart(self, current_time: float, generation: Optional[int] = None):
        """Re-arm the timer after a retransmission."""
        self.start(current_time, generation)
        self.restart_count += 1

    def stop(self):
        """Stop the timer."""
        self.state = TimerState.STOPPED

    def get_expiry_time(self) -> float:
        """Get the absolute expiry time."""
        return self.start_time + self.timeout

    def get_remaining_time(self, current_time: float) -> float:
        """Remaining time until expiry (0 if expired or stopped)."""
        if self.state != TimerState.RUNNING:
            return 0.0
        return max(0.0, self.get_expiry_time() - current_time)


class TimerManager:
    """
    Manages keyed timers efficiently.

    Uses a priority queue (min-heap) for timeout detection. A timer that
    was cancelled never fires, even if its heap entry is still queued.

    Attributes:
        default_timeout: Default timeout duration
        timers: Dictionary of armed timers by key
        timer_queue: Priority queue of timer events
    """

    def __init__(
        self,
        default_timeout: float,
        on_timeout: Optional[Callable[[Hashable], None]] = None
    ):
        """
        Initialize timer manager.

        Args:
            default_timeout: Default timeout duration in seconds
            on_timeout: Callback invoked with the key of each expired timer
        """
        if default_timeout <= 0:
            raise ValueError("Timeout must be positive")
        self.default_timeout = default_timeout
        self.on_timeout = on_timeout

        self.timers: Dict[Hashable, PacketTimer] = {}
        self.timer_queue: List[TimerEvent] = []
        self._counter = itertools.count()
        # Shared by all keys so a key re-armed after cancel never reuses
        # the generation of a queued event
        self._generations = itertools.count(1)

        # Statistics
        self.total_timeouts = 0
        self.total_timers_started = 0

    def start_timer(
        self,
        key: Hashable,
        current_time: float,
        timeout: Optional[float] = None
    ):
        """
        Start (or re-arm) the timer for a key.

        Args:
            key: Timer key
            current_time: Current time in seconds
            timeout: Custom timeout (uses default if None)
        """
        timeout = timeout if timeout is not None else self.default_timeout
        generation = next(self._generations)

        if key in self.timers:
            timer = self.timers[key]
            timer.timeout = timeout
            timer.restart(current_time, generation)
        else:
            timer = PacketTimer(key=key, timeout=timeout)
            timer.start(current_time, generation)
            self.timers[key] = timer
            self.total_timers_started += 1

        heapq.heappush(self.timer_queue, TimerEvent(
            expiry_time=timer.get_expiry_time(),
            order=next(self._counter),
            key=key,
            generation=timer.generation
        ))

    def cancel_timer(self, key: Hashable) -> bool:
        """
        Cancel and remove a timer.

        Args:
            key: Timer key

        Returns:
            True if an armed timer was removed
        """
        return self.timers.pop(key, None) is not None

    def is_armed(self, key: Hashable) -> bool:
        """Check whether a timer is currently running for the key."""
        timer = self.timers.get(key)
        return timer is not None and timer.state == TimerState.RUNNING

    def get_timer(self, key: Hashable) -> Optional[PacketTimer]:
        """Get the timer for a key, if any."""
        return self.timers.get(key)

    def check_timeouts(self, current_time: float) -> List[Hashable]:
        """
        Collect expired timers.

        Expired timers are marked EXPIRED and stay in ``timers`` until the
        caller re-arms or cancels them.

        Args:
            current_time: Current time in seconds

        Returns:
            Keys of expired timers in expiry order
        """
        expired = []

        while self.timer_queue:
            event = self.timer_queue[0]

            if event.expiry_time > current_time:
                break

            heapq.heappop(self.timer_queue)

            timer = self.timers.get(event.key)
            if timer is None:
                continue

            if timer.generation != event.generation:
                # Timer was restarted, ignore this old event
                continue

            if timer.state != TimerState.RUNNING:
                continue

            timer.state = TimerState.EXPIRED
            self.total_timeouts += 1
            expired.append(event.key)

            if self.on_timeout:
                self.on_timeout(event.key)

        return expired

    def get_next_expiry(self) -> Optional[float]:
        """
        Get the time of the next timer expiry.

        Returns:
            Next expiry time or None if no timer is running
        """
        while self.timer_queue:
            event = self.timer_queue[0]
            timer = self.timers.get(event.key)

            if (timer is None or timer.generation != event.generation
                    or timer.state != TimerState.RUNNING):
                heapq.heappop(self.timer_queue)
                continue

            return event.expiry_time

        return None

    def clear_all(self):
        """Clear all timers."""
        self.timers.clear()
        self.timer_queue.clear()

    def get_active_count(self) -> int:
        """Get number of running timers."""
        return sum(1 for t in self.timers.values()
                   if t.state == TimerState.RUNNING)

    def get_statistics(self) -> dict:
        """Get timer statistics."""
        return {
            'active_timers': self.get_active_count(),
            'total_timeouts': self.total_timeouts,
            'total_timers_started': self.total_timers_started,
            'timeout_value': self.default_timeout
        }
