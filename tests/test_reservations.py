"""
Tests for the reservation state machine.
"""

from dataclasses import replace
from datetime import timedelta

import pytest

from models import db, Court, Reservation, RateRule
from models.reservation import HOLD, PENDING_PAYMENT, CONFIRMED, CANCELLED, EXPIRED, SPLIT
from services.errors import (
    ConflictError, ExpiredHoldError, InvalidTransitionError, NotFoundError,
    PricingUnavailableError, SharesFullError, ValidationError,
)
from services.reservations import (
    BIZUM, CARD, CASH, Party, cancel, confirm, create_hold, expire, expire_stale_holds,
    get_reservation, join, mark_share_paid, report_share_payment, split_amounts,
)

OWNER = Party(user_id=10)


@pytest.fixture
def hold(ctx, seed, settings, at, monday, now):
    """A one-hour single-payer hold on court 1, Monday 10:00."""
    return create_hold([seed["courts"][0]], at(monday, "10:00"), at(monday, "11:00"), OWNER, settings, now=now)


@pytest.fixture
def split_hold(ctx, seed, settings, at, monday, now):
    """A 90-minute split hold (4 players, 30.00 total) on court 2."""
    return create_hold(
        [seed["courts"][1]], at(monday, "18:00"), at(monday, "19:30"), OWNER, settings,
        strategy=SPLIT, now=now,
    )


class TestCreateHold:

    def test_hold_is_priced_and_expires(self, hold, settings, now):
        assert hold.status == HOLD
        assert hold.total_cents == 2000
        assert hold.hold_expires_at == now + timedelta(seconds=settings.hold_ttl_seconds)
        assert [s.amount_cents for s in hold.shares] == [2000]
        assert hold.court_links[0].price_cents == 2000

    def test_multi_court_hold(self, ctx, seed, settings, at, monday, now):
        c1, c2, _ = seed["courts"]
        r = create_hold([c2, c1], at(monday, "12:00"), at(monday, "13:00"), OWNER, settings, now=now)
        assert r.court_ids == [c1, c2]
        assert r.total_cents == 4000

    def test_overlap_is_rejected(self, hold, seed, settings, at, monday, now):
        with pytest.raises(ConflictError) as exc:
            create_hold([seed["courts"][0]], at(monday, "10:30"), at(monday, "11:30"), Party(user_id=11), settings, now=now)
        assert exc.value.details["courts"] == [seed["courts"][0]]
        assert exc.value.details["retryable"] is True

    def test_touching_interval_is_accepted(self, hold, seed, settings, at, monday, now):
        r = create_hold([seed["courts"][0]], at(monday, "11:00"), at(monday, "12:00"), Party(user_id=11), settings, now=now)
        assert r.status == HOLD

    def test_stale_hold_is_expired_and_slot_reused(self, hold, seed, settings, at, monday, now):
        later = hold.hold_expires_at
        r = create_hold([seed["courts"][0]], at(monday, "10:00"), at(monday, "11:00"), Party(user_id=11), settings, now=later)

        assert r.id != hold.id
        assert db.session.get(Reservation, hold.id).status == EXPIRED

    def test_price_mismatch(self, ctx, seed, settings, at, monday, now):
        with pytest.raises(ValidationError) as exc:
            create_hold([seed["courts"][0]], at(monday, "10:00"), at(monday, "11:00"), OWNER, settings,
                        expected_total_cents=1500, now=now)
        assert exc.value.code == "PRICE_MISMATCH"
        assert exc.value.details["totalCents"] == 2000

    @pytest.mark.parametrize("start,end", [
        ("11:00", "10:00"),
        ("07:00", "09:00"),
        ("21:30", "22:30"),
    ])
    def test_bad_intervals(self, ctx, seed, settings, at, monday, now, start, end):
        with pytest.raises(ValidationError):
            create_hold([seed["courts"][0]], at(monday, start), at(monday, end), OWNER, settings, now=now)

    def test_past_start(self, ctx, seed, settings, at, monday):
        with pytest.raises(ValidationError):
            create_hold([seed["courts"][0]], at(monday, "10:00"), at(monday, "11:00"), OWNER, settings,
                        now=at(monday, "10:05"))

    def test_crossing_midnight(self, ctx, seed, settings, at, monday, now):
        late = replace(settings, open_hours={d: (0, 24 * 60) for d in range(7)})
        with pytest.raises(ValidationError):
            create_hold([seed["courts"][0]], at(monday, "23:00"), at(monday, "23:00") + timedelta(hours=2),
                        OWNER, late, now=now)

    def test_court_list_validation(self, ctx, seed, settings, at, monday, now):
        for court_ids in ([], [seed["courts"][0], seed["courts"][0]], ["x"]):
            with pytest.raises(ValidationError):
                create_hold(court_ids, at(monday, "10:00"), at(monday, "11:00"), OWNER, settings, now=now)

    def test_unknown_and_inactive_courts(self, ctx, seed, settings, at, monday, now):
        with pytest.raises(NotFoundError):
            create_hold([999], at(monday, "10:00"), at(monday, "11:00"), OWNER, settings, now=now)

        db.session.get(Court, seed["courts"][2]).is_active = False
        db.session.commit()
        with pytest.raises(ValidationError):
            create_hold([seed["courts"][2]], at(monday, "10:00"), at(monday, "11:00"), OWNER, settings, now=now)

    def test_owner_required(self, ctx, seed, settings, at, monday, now):
        with pytest.raises(ValidationError):
            create_hold([seed["courts"][0]], at(monday, "10:00"), at(monday, "11:00"), Party(), settings, now=now)

    def test_unpriceable_interval(self, ctx, seed, settings, at, monday, now):
        RateRule.query.delete()
        db.session.commit()
        with pytest.raises(PricingUnavailableError):
            create_hold([seed["courts"][0]], at(monday, "10:00"), at(monday, "11:00"), OWNER, settings, now=now)
        assert Reservation.query.count() == 0


class TestConfirm:

    def test_cash_confirms_and_marks_shares_paid(self, hold, settings, now):
        r = confirm(hold.id, CASH, settings, now=now)
        assert r.status == CONFIRMED
        assert r.payment_method == CASH
        assert r.hold_expires_at is None
        assert all(s.paid for s in r.shares)

    def test_card_waits_for_payment(self, hold, settings, now):
        r = confirm(hold.id, CARD, settings, now=now)
        assert r.status == PENDING_PAYMENT

        r = mark_share_paid(r.id, r.shares[0].id, settings, now=now)
        assert r.status == CONFIRMED
        assert r.payment_method == CARD

    def test_confirm_is_idempotent(self, hold, settings, now):
        confirm(hold.id, CASH, settings, now=now)
        r = confirm(hold.id, BIZUM, settings, now=now)
        assert r.status == CONFIRMED
        assert r.payment_method == CASH

    def test_expired_hold(self, hold, settings):
        with pytest.raises(ExpiredHoldError):
            confirm(hold.id, CASH, settings, now=hold.hold_expires_at)
        assert db.session.get(Reservation, hold.id).status == EXPIRED

    def test_cancelled_cannot_be_confirmed(self, hold, settings, now):
        cancel(hold.id, settings, now=now)
        with pytest.raises(InvalidTransitionError):
            confirm(hold.id, CASH, settings, now=now)

    def test_unknown_method(self, hold, settings, now):
        with pytest.raises(ValidationError):
            confirm(hold.id, "CHEQUE", settings, now=now)

    def test_pending_payment_does_not_expire(self, hold, settings, now):
        confirm(hold.id, CARD, settings, now=now)
        assert expire(hold.id, settings, now=now + timedelta(days=1)) is False
        assert db.session.get(Reservation, hold.id).status == PENDING_PAYMENT


class TestExpiry:

    def test_expire_is_idempotent(self, hold, settings):
        later = hold.hold_expires_at + timedelta(seconds=1)
        assert expire(hold.id, settings, now=later) is True
        assert expire(hold.id, settings, now=later) is False
        assert db.session.get(Reservation, hold.id).status == EXPIRED

    def test_live_hold_is_not_expired(self, hold, settings, now):
        assert expire(hold.id, settings, now=now) is False

    def test_sweep(self, hold, seed, settings, at, monday, now):
        create_hold([seed["courts"][1]], at(monday, "10:00"), at(monday, "11:00"), OWNER, settings,
                    now=now + timedelta(minutes=5))
        assert expire_stale_holds(settings, now=hold.hold_expires_at) == 1
        assert expire_stale_holds(settings, now=hold.hold_expires_at) == 0

    def test_read_path_expires_lazily(self, hold, settings):
        r = get_reservation(hold.id, settings, now=hold.hold_expires_at)
        assert r.status == EXPIRED
        assert r.expired_at == hold.hold_expires_at


class TestCancel:

    def test_cancel_frees_the_slot(self, hold, seed, settings, at, monday, now):
        r = cancel(hold.id, settings, reason="rain", now=now)
        assert r.status == CANCELLED
        assert r.cancel_reason == "rain"

        again = create_hold([seed["courts"][0]], at(monday, "10:00"), at(monday, "11:00"), Party(user_id=11), settings, now=now)
        assert again.status == HOLD

    def test_cancel_twice_is_a_noop(self, hold, settings, now):
        first = cancel(hold.id, settings, now=now)
        second = cancel(hold.id, settings, now=now + timedelta(minutes=1))
        assert second.status == CANCELLED
        assert second.cancelled_at == first.cancelled_at

    def test_confirmed_cannot_be_cancelled(self, hold, settings, now):
        confirm(hold.id, CASH, settings, now=now)
        with pytest.raises(InvalidTransitionError):
            cancel(hold.id, settings, now=now)

    def test_expired_hold(self, hold, settings):
        with pytest.raises(ExpiredHoldError):
            cancel(hold.id, settings, now=hold.hold_expires_at)

    def test_missing(self, ctx, settings, now):
        with pytest.raises(NotFoundError):
            cancel(12345, settings, now=now)


class TestSplitPayments:

    def test_split_amounts_give_leftover_to_first_shares(self):
        assert split_amounts(1000, 3) == [334, 333, 333]
        assert split_amounts(3000, 4) == [750, 750, 750, 750]
        assert sum(split_amounts(1001, 4)) == 1001

    def test_join_rebalances(self, split_hold, settings, now):
        r = join(split_hold.id, Party(user_id=11), settings, now=now)
        r = join(r.id, Party(guest_name="Marta"), settings, now=now)

        assert r.total_cents == 3000
        assert [s.amount_cents for s in r.shares] == [1000, 1000, 1000]
        assert sum(s.amount_cents for s in r.shares) == r.total_cents

    def test_duplicate_join(self, split_hold, settings, now):
        with pytest.raises(ValidationError) as exc:
            join(split_hold.id, Party(user_id=10), settings, now=now)
        assert exc.value.code == "ALREADY_JOINED"

    def test_full_party(self, split_hold, settings, now):
        for user_id in (11, 12, 13):
            join(split_hold.id, Party(user_id=user_id), settings, now=now)
        with pytest.raises(SharesFullError):
            join(split_hold.id, Party(user_id=14), settings, now=now)

    def test_single_bookings_are_closed(self, hold, settings, now):
        with pytest.raises(ValidationError):
            join(hold.id, Party(user_id=11), settings, now=now)

    def test_all_shares_paid_confirms(self, split_hold, settings, now):
        join(split_hold.id, Party(user_id=11), settings, now=now)
        r = confirm(split_hold.id, BIZUM, settings, now=now)
        assert r.status == PENDING_PAYMENT

        first, second = r.shares
        r = mark_share_paid(r.id, first.id, settings, now=now)
        assert r.status == PENDING_PAYMENT
        r = mark_share_paid(r.id, first.id, settings, now=now)
        assert r.status == PENDING_PAYMENT
        r = mark_share_paid(r.id, second.id, settings, now=now)
        assert r.status == CONFIRMED

    def test_no_joins_after_a_payment(self, split_hold, settings, now):
        r = join(split_hold.id, Party(user_id=11), settings, now=now)
        r = mark_share_paid(r.id, r.shares[0].id, settings, now=now)
        assert r.status == HOLD

        with pytest.raises(InvalidTransitionError):
            join(split_hold.id, Party(user_id=12), settings, now=now)

    def test_no_joins_once_confirmed(self, split_hold, settings, now):
        confirm(split_hold.id, CASH, settings, now=now)
        with pytest.raises(InvalidTransitionError):
            join(split_hold.id, Party(user_id=11), settings, now=now)

    def test_join_expired_hold(self, split_hold, settings):
        with pytest.raises(ExpiredHoldError):
            join(split_hold.id, Party(user_id=11), settings, now=split_hold.hold_expires_at)

    def test_report_payment_does_not_mark_paid(self, split_hold, settings, now):
        r, share = report_share_payment(split_hold.id, split_hold.shares[0].id, "bizum ref 8812", settings, now=now)
        assert share.reported_at == now
        assert share.proof_note == "bizum ref 8812"
        assert share.paid is False
        assert r.status == HOLD

    def test_unknown_share(self, split_hold, settings, now):
        with pytest.raises(NotFoundError):
            mark_share_paid(split_hold.id, 9999, settings, now=now)
