"""
Conflict detection.

Two intervals conflict iff ``a.start < b.end and b.start < a.end`` (half-open,
touching endpoints are fine). What occupies a court is decided by one pure
predicate, ``is_occupying``, whether or not a sweep has already rewritten the
stored status of a stale hold.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from models import db
from models.court_block import CourtBlock
from models.reservation import Reservation, HOLD, PENDING_PAYMENT, CONFIRMED
from models.reservation_court import ReservationCourt
from services.errors import ValidationError
from services.settings import current_settings

# statuses that can occupy a slot; HOLD only until hold_expires_at
CANDIDATE_STATUSES = (HOLD, PENDING_PAYMENT, CONFIRMED)


def intervals_overlap(a_start, a_end, b_start, b_end) -> bool:
    return a_start < b_end and b_start < a_end


def is_occupying(reservation, now: datetime) -> bool:
    if reservation.status in (CONFIRMED, PENDING_PAYMENT):
        return True
    if reservation.status == HOLD:
        return reservation.hold_expires_at is not None and reservation.hold_expires_at > now
    return False


@dataclass(frozen=True)
class Conflict:
    court_id: int
    kind: str          # "reservation" or "block"
    ref_id: int
    start: datetime
    end: datetime

    def to_dict(self):
        return {
            "court_id": self.court_id,
            "kind": self.kind,
            "id": self.ref_id,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
        }


def _occupants(court_ids, start_at, end_at, now, exclude_reservation_id=None):
    rows = (
        db.session.query(ReservationCourt.court_id, Reservation)
        .join(Reservation, Reservation.id == ReservationCourt.reservation_id)
        .filter(
            ReservationCourt.court_id.in_(list(court_ids)),
            Reservation.status.in_(CANDIDATE_STATUSES),
            Reservation.start_at < end_at,
            Reservation.end_at > start_at,
        )
        .all()
    )
    out = []
    for court_id, r in rows:
        if exclude_reservation_id is not None and r.id == exclude_reservation_id:
            continue
        if is_occupying(r, now):
            out.append(Conflict(court_id, "reservation", r.id, r.start_at, r.end_at))

    blocks = (
        CourtBlock.query
        .filter(
            CourtBlock.court_id.in_(list(court_ids)),
            CourtBlock.start_at < end_at,
            CourtBlock.end_at > start_at,
        )
        .all()
    )
    out.extend(Conflict(b.court_id, "block", b.id, b.start_at, b.end_at) for b in blocks)
    return out


def _check_interval(start_at, end_at):
    if start_at is None or end_at is None or end_at <= start_at:
        raise ValidationError("end must be after start")


def find_conflicts(court_ids, start_at, end_at, exclude_reservation_id=None, now=None):
    _check_interval(start_at, end_at)
    if now is None:
        now = current_settings().now()
    return _occupants(court_ids, start_at, end_at, now, exclude_reservation_id)


def has_conflict(court_id, start_at, end_at, exclude_reservation_id=None, now=None) -> bool:
    return bool(find_conflicts([court_id], start_at, end_at, exclude_reservation_id, now))


class OccupancySnapshot:
    """
    Occupied intervals of some courts over a window, loaded once.

    Read-only callers (availability, recurrence preview) ask many questions
    about the same window; the answers follow the same rules as
    ``has_conflict`` but come from memory.
    """

    def __init__(self, conflicts=()):
        self._by_court = defaultdict(list)
        for c in conflicts:
            self._by_court[c.court_id].append(c)

    @classmethod
    def load(cls, court_ids, window_start, window_end, now):
        _check_interval(window_start, window_end)
        if not court_ids:
            return cls()
        return cls(_occupants(court_ids, window_start, window_end, now))

    def conflicts(self, court_id, start_at, end_at, exclude_reservation_id: Optional[int] = None):
        return [
            c for c in self._by_court.get(court_id, ())
            if intervals_overlap(start_at, end_at, c.start, c.end)
            and not (c.kind == "reservation" and c.ref_id == exclude_reservation_id)
        ]

    def has_conflict(self, court_id, start_at, end_at, exclude_reservation_id=None) -> bool:
        return bool(self.conflicts(court_id, start_at, end_at, exclude_reservation_id))
