"""Countdown for a test session, owned by the server-issued deadline."""

import math
from datetime import datetime, timedelta
from typing import Any, Callable, Optional


def deadline_for(started_at: datetime, minutes: int) -> datetime:
    return started_at + timedelta(minutes=minutes)


class Countdown:
    """Remaining time for one session.

    The deadline is the only source of truth; ``tick`` may be called as often
    as callers like and fires ``on_expire`` exactly once, on the first tick at
    or after the deadline.
    """

    def __init__(
        self,
        deadline: datetime,
        on_expire: Optional[Callable[[], Any]] = None,
    ):
        self.deadline = deadline
        self.on_expire = on_expire
        self._fired = False

    def seconds_remaining(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.utcnow()
        remaining = (self.deadline - now).total_seconds()
        return max(0, math.ceil(remaining))

    def expired(self, now: Optional[datetime] = None) -> bool:
        return self.seconds_remaining(now) == 0

    @property
    def fired(self) -> bool:
        return self._fired

    def tick(self, now: Optional[datetime] = None) -> bool:
        """Advance the countdown; return True if this tick fired the expiry."""
        if self._fired or not self.expired(now):
            return False
        self._fired = True
        if self.on_expire is not None:
            self.on_expire()
        return True
