"""
Symbol Temperature.

Buckets a batch of messages by age into three fixed recency windows:
- last 10 minutes
- last hour
- last 3 hours

Windows are exclusive: a message lands in the first window it fits and
messages older than 3 hours are not counted at all.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable

from .feed import Message

logger = logging.getLogger("stocktemp.temperature")

RECENT_WINDOW = timedelta(minutes=10)
SHORT_TERM_WINDOW = timedelta(hours=1)
MID_TERM_WINDOW = timedelta(hours=3)


@dataclass(frozen=True)
class Temperature:
    """Message counts per recency window."""
    recent: int = 0  # <= 10 minutes old
    short_term: int = 0  # <= 1 hour old
    mid_term: int = 0  # <= 3 hours old

    @property
    def total(self) -> int:
        """Messages counted in any window."""
        return self.recent + self.short_term + self.mid_term

    def to_dict(self) -> dict[str, int]:
        return {
            "last10Minutes": self.recent,
            "last1Hour": self.short_term,
            "last3Hours": self.mid_term,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Temperature":
        return cls(
            recent=int(data.get("last10Minutes", 0)),
            short_term=int(data.get("last1Hour", 0)),
            mid_term=int(data.get("last3Hours", 0)),
        )


def window_for(elapsed: timedelta) -> str | None:
    """Return the window name for a message age, or None if it is too old."""
    if elapsed <= RECENT_WINDOW:
        return "recent"
    elif elapsed <= SHORT_TERM_WINDOW:
        return "short_term"
    elif elapsed <= MID_TERM_WINDOW:
        return "mid_term"
    return None


def classify(now: datetime, messages: Iterable[Message]) -> Temperature:
    """
    Count messages per recency window.

    Args:
        now: Reference time, sampled once by the caller for the whole batch.
            A naive value is taken as UTC.
        messages: Messages from a single fetch.

    Returns:
        Temperature for the batch.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    counts = {"recent": 0, "short_term": 0, "mid_term": 0}
    skipped = 0

    for message in messages:
        window = window_for(now - message.created_at)
        if window is None:
            skipped += 1
            continue
        counts[window] += 1

    temperature = Temperature(**counts)
    logger.debug(
        f"Temperature: recent={temperature.recent}, short_term={temperature.short_term}, "
        f"mid_term={temperature.mid_term} ({skipped} older than {MID_TERM_WINDOW})"
    )
    return temperature
