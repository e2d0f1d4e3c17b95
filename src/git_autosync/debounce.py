"""Coalescing debounce for bursts of filesystem change events."""


def deadline(last_event: float | None, interval: float) -> float | None:
    """Computes when a batched action becomes due.

    Args:
        last_event (float | None): Clock reading of the most recent event, or
            None if nothing is pending.
        interval (float): The quiet period required after the last event.

    Returns:
        float | None: The instant the action fires, or None when nothing is armed.
    """
    if last_event is None:
        return None
    return last_event + interval


def is_due(now: float, last_event: float | None, interval: float) -> bool:
    """Whether a batched action armed at `last_event` has expired at `now`."""
    due_at = deadline(last_event, interval)
    return due_at is not None and now >= due_at


class Debouncer:
    """An owned, at-most-one pending timer.

    Each `arm` cancels the previous deadline and restarts the wait, so an
    unbroken stream of events postpones the action indefinitely. The timer is
    a value ("armed until T"), not a live countdown; the owner polls it.

    Attributes:
        interval (float): The batch window in seconds.
    """

    def __init__(self, interval: float):
        self.interval = interval
        self._last_event: float | None = None
        self.event_count = 0

    @property
    def armed(self) -> bool:
        return self._last_event is not None

    def arm(self, now: float) -> float:
        """Records an event and (re)arms the timer.

        Args:
            now (float): The event's clock reading.

        Returns:
            float: The new deadline.
        """
        self._last_event = now
        self.event_count += 1
        return now + self.interval

    def cancel(self) -> None:
        self._last_event = None
        self.event_count = 0

    def deadline(self) -> float | None:
        return deadline(self._last_event, self.interval)

    def remaining(self, now: float) -> float | None:
        due_at = self.deadline()
        return None if due_at is None else max(0.0, due_at - now)

    def due(self, now: float) -> bool:
        return is_due(now, self._last_event, self.interval)

    def fire(self, now: float) -> bool:
        """Consumes the timer if it has expired.

        Returns:
            bool: True exactly once per armed period, when `now` has reached
            the deadline. The timer is cleared in that case.
        """
        if not self.due(now):
            return False
        self.cancel()
        return True
