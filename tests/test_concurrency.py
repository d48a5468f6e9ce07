"""
Two players racing for the same court: exactly one hold wins.
Reads keep working while a booking transaction is open.
"""

import threading

import pytest

from models import db, begin_write, Court, Reservation
from models.reservation import HOLD
from services.availability import slots
from services.errors import ConflictError
from services.reservations import Party, create_hold
from services.settings import ClubSettings


def _race(app, requests, now):
    settings = ClubSettings.from_mapping(app.config)
    barrier = threading.Barrier(len(requests))
    outcomes = [None] * len(requests)

    def attempt(index, court_ids, start, end, user_id):
        with app.app_context():
            barrier.wait()
            try:
                r = create_hold(court_ids, start, end, Party(user_id=user_id), settings, now=now)
                outcomes[index] = ("ok", r.id)
            except ConflictError:
                outcomes[index] = ("conflict", None)
            except Exception as exc:  # surfaced by the assertion below
                outcomes[index] = ("error", repr(exc))
            finally:
                db.session.remove()

    threads = [
        threading.Thread(target=attempt, args=(i, *req))
        for i, req in enumerate(requests)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return outcomes


class TestConcurrentHolds:

    def test_same_court_same_time(self, app, seed, at, monday, now):
        court = seed["courts"][0]
        start, end = at(monday, "19:00"), at(monday, "20:30")

        outcomes = _race(app, [([court], start, end, 10), ([court], start, end, 11)], now)

        assert sorted(kind for kind, _ in outcomes) == ["conflict", "ok"], outcomes
        with app.app_context():
            assert Reservation.query.filter_by(status=HOLD).count() == 1

    def test_partially_shared_courts(self, app, seed, at, monday, now):
        c1, c2, c3 = seed["courts"]
        outcomes = _race(app, [
            ([c1, c2], at(monday, "19:00"), at(monday, "20:00"), 10),
            ([c2, c3], at(monday, "19:30"), at(monday, "20:30"), 11),
        ], now)

        assert sorted(kind for kind, _ in outcomes) == ["conflict", "ok"], outcomes

    @pytest.mark.parametrize("attempts", [4])
    def test_many_players(self, app, seed, at, monday, now, attempts):
        court = seed["courts"][2]
        start, end = at(monday, "10:00"), at(monday, "11:00")

        outcomes = _race(app, [([court], start, end, 20 + i) for i in range(attempts)], now)

        kinds = [kind for kind, _ in outcomes]
        assert kinds.count("ok") == 1, outcomes
        assert kinds.count("conflict") == attempts - 1, outcomes


class TestReadsDuringWrites:

    def test_availability_while_a_writer_is_open(self, app, seed, monday, now):
        """A booking transaction in flight must not stall availability reads."""
        settings = ClubSettings.from_mapping(app.config)
        writing = threading.Event()
        release = threading.Event()
        errors = []

        def writer():
            with app.app_context():
                try:
                    begin_write()
                    db.session.add(Court(name="Court 4"))
                    db.session.flush()
                    writing.set()
                    release.wait(timeout=60)
                    db.session.rollback()
                except Exception as exc:
                    errors.append(repr(exc))
                    writing.set()
                finally:
                    db.session.remove()

        thread = threading.Thread(target=writer)
        thread.start()
        try:
            assert writing.wait(timeout=10)
            with app.app_context():
                found = slots(monday, 60, 1, settings, now=now)
                db.session.remove()
        finally:
            release.set()
            thread.join(timeout=30)

        assert errors == []
        assert found[0].time == "08:00"
        assert found[0].courts == [seed["courts"][0]]
