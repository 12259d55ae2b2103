"""
Timeout Gate Module

This module tracks the hard deadline of a single firing. The
deadline is anchored at the start of the firing and shared by
every attempt of that firing, so retries consume the same budget
instead of resetting it.
"""

## import builtin pkgs
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

class DeadlineExpired(Exception):
    """
    Raised when a new attempt is requested after the firing
    deadline has passed.
    """

    def __init__(self, deadline: 'Deadline', overrun: float) -> None:
        super().__init__('deadline %s reached' % (deadline.isoformat()))
        self.deadline = deadline
        self.overrun = overrun

class Deadline(object):
    """
    Absolute deadline of one firing.

    The instant is kept both as a monotonic clock reading, used for
    budget arithmetic, and as a wall clock timestamp, used for logs.
    """

    def __init__(self, started: float, kill_after: float, started_at: datetime) -> None:
        self.kill_after = kill_after
        self.instant = started + kill_after
        self.wall_instant = started_at + timedelta(seconds = kill_after)

    def isoformat(self) -> str:
        return self.wall_instant.isoformat(timespec = 'seconds')

class TimeoutGate(object):
    """
    Remaining budget calculator for one firing.

    An unbounded gate always answers None. A bounded gate answers
    the positive number of seconds left, or raises DeadlineExpired
    once the budget is spent.
    """

    def __init__(self, kill_after: Optional[float], clock: Callable[[], float] = time.monotonic) -> None:
        """
        Initialize the gate and anchor the deadline.

        Args:
            kill_after (float): Firing budget in seconds, None or <= 0 for unbounded
            clock (callable): Monotonic clock, injectable for tests

        Returns:
            None
        """

        self.clock = clock
        self.deadline = None

        ## anchor once, never recomputed mid-firing
        if kill_after is not None and kill_after > 0:
            self.deadline = Deadline(self.clock(), kill_after, datetime.now(timezone.utc).astimezone())

    @property
    def bounded(self) -> bool:
        return self.deadline is not None

    def remaining(self, now: Optional[float] = None) -> Optional[float]:
        """
        Compute the budget left before the deadline.

        Args:
            now (float): Current monotonic time, defaults to the gate clock

        Returns:
            float: Seconds left, or None when unbounded

        Raises:
            DeadlineExpired: The deadline has passed or no budget is left
        """

        if self.deadline is None:
            return None

        if now is None:
            now = self.clock()

        budget = self.deadline.instant - now
        if budget <= 0:
            raise DeadlineExpired(self.deadline, -budget)

        return budget

    def expired(self, now: Optional[float] = None) -> bool:
        try:
            self.remaining(now)

        except DeadlineExpired:
            return True

        return False
