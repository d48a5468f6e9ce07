"""
Tests for conflict detection and the occupancy predicate.
"""

from datetime import timedelta
from types import SimpleNamespace

import pytest

from models import db, CourtBlock, Reservation, ReservationCourt
from models.reservation import HOLD, PENDING_PAYMENT, CONFIRMED, CANCELLED, EXPIRED
from services.conflicts import (
    OccupancySnapshot, find_conflicts, has_conflict, intervals_overlap, is_occupying,
)
from services.errors import ValidationError


def _store(court_ids, start, end, status, hold_expires_at=None):
    r = Reservation(
        user_id=99,
        start_at=start,
        end_at=end,
        total_cents=0,
        status=status,
        hold_expires_at=hold_expires_at,
    )
    r.court_links = [ReservationCourt(court_id=cid, price_cents=0) for cid in court_ids]
    db.session.add(r)
    db.session.commit()
    return r


class TestPredicates:

    def test_half_open_overlap(self, at, monday):
        a = (at(monday, "10:00"), at(monday, "11:00"))
        assert intervals_overlap(*a, at(monday, "10:30"), at(monday, "11:30"))
        assert intervals_overlap(*a, at(monday, "09:00"), at(monday, "12:00"))
        assert not intervals_overlap(*a, at(monday, "11:00"), at(monday, "12:00"))
        assert not intervals_overlap(*a, at(monday, "09:00"), at(monday, "10:00"))

    @pytest.mark.parametrize("status,expected", [
        (CONFIRMED, True),
        (PENDING_PAYMENT, True),
        (CANCELLED, False),
        (EXPIRED, False),
    ])
    def test_status_occupancy(self, status, expected, now):
        r = SimpleNamespace(status=status, hold_expires_at=None)
        assert is_occupying(r, now) is expected

    def test_hold_occupies_until_expiry(self, now):
        live = SimpleNamespace(status=HOLD, hold_expires_at=now + timedelta(seconds=1))
        stale = SimpleNamespace(status=HOLD, hold_expires_at=now)
        assert is_occupying(live, now)
        assert not is_occupying(stale, now)


class TestHasConflict:

    def test_confirmed_reservation_conflicts(self, ctx, seed, at, monday, now):
        court = seed["courts"][0]
        _store([court], at(monday, "10:00"), at(monday, "11:00"), CONFIRMED)

        assert has_conflict(court, at(monday, "10:30"), at(monday, "11:30"), now=now)
        assert not has_conflict(court, at(monday, "11:00"), at(monday, "12:00"), now=now)
        assert not has_conflict(seed["courts"][1], at(monday, "10:00"), at(monday, "11:00"), now=now)

    def test_expired_hold_is_free_before_any_sweep(self, ctx, seed, at, monday, now):
        court = seed["courts"][0]
        r = _store([court], at(monday, "10:00"), at(monday, "11:00"), HOLD, hold_expires_at=now - timedelta(minutes=1))

        assert not has_conflict(court, at(monday, "10:00"), at(monday, "11:00"), now=now)
        assert db.session.get(Reservation, r.id).status == HOLD

    def test_live_hold_conflicts(self, ctx, seed, at, monday, now):
        court = seed["courts"][0]
        _store([court], at(monday, "10:00"), at(monday, "11:00"), HOLD, hold_expires_at=now + timedelta(minutes=5))
        assert has_conflict(court, at(monday, "10:00"), at(monday, "11:00"), now=now)

    def test_cancelled_is_free(self, ctx, seed, at, monday, now):
        court = seed["courts"][0]
        _store([court], at(monday, "10:00"), at(monday, "11:00"), CANCELLED)
        assert not has_conflict(court, at(monday, "10:00"), at(monday, "11:00"), now=now)

    def test_excluding_itself(self, ctx, seed, at, monday, now):
        court = seed["courts"][0]
        r = _store([court], at(monday, "10:00"), at(monday, "11:00"), PENDING_PAYMENT)
        assert not has_conflict(court, at(monday, "10:00"), at(monday, "11:00"), exclude_reservation_id=r.id, now=now)

    def test_multi_court_reservation_occupies_each_court(self, ctx, seed, at, monday, now):
        c1, c2, c3 = seed["courts"]
        r = _store([c1, c2], at(monday, "18:00"), at(monday, "19:30"), CONFIRMED)

        conflicts = find_conflicts([c1, c2, c3], at(monday, "19:00"), at(monday, "20:00"), now=now)
        assert sorted(c.court_id for c in conflicts) == [c1, c2]
        assert {c.ref_id for c in conflicts} == {r.id}

    def test_block_conflicts(self, ctx, seed, at, monday, now):
        court = seed["courts"][0]
        db.session.add(CourtBlock(court_id=court, start_at=at(monday, "08:00"), end_at=at(monday, "10:00"), reason="maintenance"))
        db.session.commit()

        conflicts = find_conflicts([court], at(monday, "09:30"), at(monday, "10:30"), now=now)
        assert [c.kind for c in conflicts] == ["block"]

    def test_empty_interval_rejected(self, ctx, seed, at, monday, now):
        with pytest.raises(ValidationError):
            has_conflict(seed["courts"][0], at(monday, "10:00"), at(monday, "10:00"), now=now)


class TestOccupancySnapshot:

    def test_answers_like_the_query(self, ctx, seed, at, monday, now):
        c1, c2, _ = seed["courts"]
        _store([c1], at(monday, "10:00"), at(monday, "11:00"), CONFIRMED)
        _store([c2], at(monday, "12:00"), at(monday, "13:00"), HOLD, hold_expires_at=now - timedelta(seconds=1))

        snapshot = OccupancySnapshot.load([c1, c2], at(monday, "08:00"), at(monday, "22:00"), now)
        queries = [
            (c1, "09:30", "10:30"),
            (c1, "11:00", "12:00"),
            (c2, "12:00", "13:00"),
            (c2, "10:00", "11:00"),
        ]
        for court, start, end in queries:
            expected = has_conflict(court, at(monday, start), at(monday, end), now=now)
            assert snapshot.has_conflict(court, at(monday, start), at(monday, end)) is expected

    def test_empty_court_list(self, ctx, at, monday, now):
        snapshot = OccupancySnapshot.load([], at(monday, "08:00"), at(monday, "22:00"), now)
        assert not snapshot.has_conflict(1, at(monday, "10:00"), at(monday, "11:00"))
