from datetime import datetime
from typing import NamedTuple, Optional, Sequence, List

from .models import DELIVERED, ORDER_PLACED, TimelineEntry, utcnow


class ChangeDecision(NamedTuple):
    changed: bool
    latest: Optional[TimelineEntry]

    @property
    def should_notify(self) -> bool:
        return self.changed and self.latest is not None and bool(self.latest.status)


def _clock(now: datetime) -> str:
    return now.strftime("%H:%M:%S")


class TimelineManager:
    """Rules for growing an order's timeline and spotting status changes."""

    def __init__(self, clock=utcnow):
        self.clock = clock

    def apply_replacement(
        self, previous: Sequence[TimelineEntry], new: Sequence[TimelineEntry]
    ) -> ChangeDecision:
        """Compare a wholesale replacement with the timeline it replaces.

        Only the length and the final status are compared. A replacement that
        edits an earlier entry but keeps length and final status is not a
        change.
        """
        latest = new[-1] if new else None
        if len(previous) != len(new):
            return ChangeDecision(True, latest)
        prev_status = previous[-1].status if previous else None
        new_status = latest.status if latest else None
        return ChangeDecision(prev_status != new_status, latest)

    def append_status(
        self,
        timeline: List[TimelineEntry],
        status: str,
        location: Optional[str] = None,
        date: Optional[datetime] = None,
        notes: Optional[str] = None,
        default_location: str = "",
    ) -> TimelineEntry:
        now = self.clock()
        entry = TimelineEntry(
            status=status,
            date=date or now,
            time=_clock(now),
            location=location or default_location,
            completed=status == DELIVERED,
            notes=notes or None,
        )
        timeline.append(entry)
        return entry

    def initial_entry(self, origin: str) -> TimelineEntry:
        now = self.clock()
        return TimelineEntry(
            status=ORDER_PLACED,
            date=now,
            time=_clock(now),
            location=origin,
            completed=True,
        )
