"""
Recurring bookings.

``expand`` turns a weekly pattern into concrete occurrences; ``preview``
annotates them with price and conflicts without touching anything;
``materialize`` recomputes the same thing under the court lock and creates the
holds in one transaction.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import List, Optional

from models import db
from models.reservation import SINGLE
from services.conflicts import OccupancySnapshot
from services.errors import (
    BookingError, ValidationError, RecurrenceConflictError,
)
from services.rates import load_rules, price_courts
from services.reservations import (
    CASH, Party, check_courts, insert_hold, lock_courts, confirm_locked,
    resolve_party_size, validate_interval,
)
from utils.datetimes import weekday_number

logger = logging.getLogger(__name__)

WEEKLY = "weekly"


@dataclass
class RecurrencePattern:
    weekdays: frozenset               # 0 = Sunday ... 6 = Saturday
    interval: int = 1
    frequency: str = WEEKLY
    end_date: Optional[date] = None   # inclusive
    count: Optional[int] = None
    skip_conflicts: bool = False

    def validate(self, anchor: date, max_occurrences: int):
        if self.frequency != WEEKLY:
            raise ValidationError("Only weekly recurrence is supported")
        if not isinstance(self.interval, int) or self.interval < 1:
            raise ValidationError("interval must be a positive integer")
        if not self.weekdays or any(d not in range(7) for d in self.weekdays):
            raise ValidationError("weekdays must be numbers 0-6 (0 = Sunday)")
        if (self.end_date is None) == (self.count is None):
            raise ValidationError("Give exactly one of endDate or count")
        if self.count is not None and not (1 <= self.count <= max_occurrences):
            raise ValidationError(f"count must be between 1 and {max_occurrences}")
        if self.end_date is not None and self.end_date < anchor:
            raise ValidationError("endDate is before the first occurrence")


@dataclass
class Occurrence:
    start: datetime
    end: datetime
    price_cents: Optional[int] = None
    conflict: bool = False
    is_valid: bool = True
    reason: Optional[str] = None

    def to_dict(self):
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "priceCents": self.price_cents,
            "conflict": self.conflict,
            "isValid": self.is_valid,
            "reason": self.reason,
        }


@dataclass
class SeriesResult:
    series_id: str
    created: list = field(default_factory=list)
    skipped: List[Occurrence] = field(default_factory=list)


def expand(pattern: RecurrencePattern, start_at: datetime, end_at: datetime, max_occurrences=500) -> List[Occurrence]:
    if end_at <= start_at:
        raise ValidationError("end must be after start")
    anchor = start_at.date()
    pattern.validate(anchor, max_occurrences)

    duration = end_at - start_at
    time_of_day = start_at - datetime(anchor.year, anchor.month, anchor.day)
    week_start = anchor - timedelta(days=anchor.weekday())  # Monday

    out = []
    while len(out) < max_occurrences:
        for offset in range(7):
            day = week_start + timedelta(days=offset)
            if day < anchor or weekday_number(day) not in pattern.weekdays:
                continue
            if pattern.end_date is not None and day > pattern.end_date:
                return out
            start = datetime(day.year, day.month, day.day) + time_of_day
            out.append(Occurrence(start=start, end=start + duration))
            if pattern.count is not None and len(out) >= pattern.count:
                return out
            if len(out) >= max_occurrences:
                return out
        week_start += timedelta(weeks=pattern.interval)
        if pattern.end_date is not None and week_start > pattern.end_date:
            return out
    return out


def _annotate(occurrences, court_id, rules, snapshot, settings, now):
    for occ in occurrences:
        try:
            validate_interval(occ.start, occ.end, settings, now)
            total, _ = price_courts(rules, [court_id], occ.start, occ.end, settings)
            occ.price_cents = total
        except BookingError as exc:
            occ.is_valid = False
            occ.reason = exc.message
        occ.conflict = snapshot.has_conflict(court_id, occ.start, occ.end)
        if occ.conflict and occ.reason is None:
            occ.reason = "Court already booked for that time"
    return occurrences


def _window(occurrences):
    return min(o.start for o in occurrences), max(o.end for o in occurrences)


def preview(pattern, court_id, start_at, end_at, settings, now=None) -> List[Occurrence]:
    """Deterministic from the pattern and the current bookings; writes nothing."""
    if now is None:
        now = settings.now()
    occurrences = expand(pattern, start_at, end_at, settings.max_recurring_occurrences)
    if not occurrences:
        return []
    w_start, w_end = _window(occurrences)
    snapshot = OccupancySnapshot.load([court_id], w_start, w_end, now)
    return _annotate(occurrences, court_id, load_rules([court_id]), snapshot, settings, now)


def materialize(pattern, court_id, start_at, end_at, owner: Party, settings, skip_conflicts=None,
                payment_method=None, strategy=SINGLE, party_size=None, now=None) -> SeriesResult:
    if now is None:
        now = settings.now()
    if skip_conflicts is None:
        skip_conflicts = pattern.skip_conflicts
    owner.validate()
    party_size = resolve_party_size(strategy, party_size, settings)
    if payment_method not in (None, CASH):
        raise ValidationError("Recurring series can only be confirmed in cash up front")

    occurrences = expand(pattern, start_at, end_at, settings.max_recurring_occurrences)
    result = SeriesResult(series_id=str(uuid.uuid4()))
    if not occurrences:
        return result

    try:
        courts = lock_courts([court_id])
        check_courts(courts, [court_id])

        w_start, w_end = _window(occurrences)
        snapshot = OccupancySnapshot.load([court_id], w_start, w_end, now)
        rules = load_rules([court_id])
        _annotate(occurrences, court_id, rules, snapshot, settings, now)

        rejected = [o for o in occurrences if o.conflict or not o.is_valid]
        if rejected and not skip_conflicts:
            raise RecurrenceConflictError(
                f"{len(rejected)} of {len(occurrences)} occurrences cannot be booked",
                occurrences=[o.to_dict() for o in rejected],
            )

        for occ in occurrences:
            if occ.conflict or not occ.is_valid:
                result.skipped.append(occ)
                continue
            r = insert_hold(
                [court_id], occ.start, occ.end, owner, settings, now, strategy, party_size,
                series_id=result.series_id, rules=rules,
            )
            if payment_method == CASH:
                confirm_locked(r, now, CASH)
                for share in r.shares:
                    share.paid = True
                    share.paid_at = now
            result.created.append(r)

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "series %s on court %s: %d created, %d skipped",
        result.series_id, court_id, len(result.created), len(result.skipped),
    )
    return result
