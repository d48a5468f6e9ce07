"""
Availability: bookable start times for a day, a duration and a number of courts.

Read-only and lock-free. The answer is advisory; the hold request re-checks
every court inside its own transaction.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import List

from models.court import Court
from services.conflicts import OccupancySnapshot
from services.errors import ValidationError
from utils.datetimes import at_minute, format_hhmm, weekday_number


@dataclass
class Slot:
    time: str
    start: datetime
    end: datetime
    courts: List[int] = field(default_factory=list)

    def to_dict(self):
        return {
            "time": self.time,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "courts": list(self.courts),
        }


def active_court_ids():
    return [c.id for c in Court.query.filter_by(is_active=True).order_by(Court.id.asc()).all()]


def slots(day: date, duration_minutes: int, court_count: int, settings, now=None) -> List[Slot]:
    if not isinstance(duration_minutes, int) or duration_minutes <= 0:
        raise ValidationError("duration must be a positive number of minutes")
    if not isinstance(court_count, int) or court_count < 1:
        raise ValidationError("courtCount must be at least 1")

    hours = settings.hours_for(weekday_number(day))
    if not hours:
        return []
    open_min, close_min = hours

    court_ids = active_court_ids()
    if len(court_ids) < court_count:
        return []

    if now is None:
        now = settings.now()
    earliest = now + timedelta(minutes=settings.min_advance_minutes)

    snapshot = OccupancySnapshot.load(court_ids, at_minute(day, open_min), at_minute(day, close_min), now)

    out = []
    minute = open_min
    while minute + duration_minutes <= close_min:
        start = at_minute(day, minute)
        end = start + timedelta(minutes=duration_minutes)
        if start >= earliest:
            free = [cid for cid in court_ids if not snapshot.has_conflict(cid, start, end)]
            if len(free) >= court_count:
                out.append(Slot(format_hhmm(minute), start, end, free[:court_count]))
        minute += settings.slot_minutes
    return out
