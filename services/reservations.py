"""
Reservation lifecycle.

    HOLD -> PENDING_PAYMENT -> CONFIRMED
    HOLD -> CONFIRMED                       (cash)
    HOLD -> EXPIRED
    HOLD | PENDING_PAYMENT -> CANCELLED

``create_hold`` is the only way a slot becomes occupied. It locks the court
rows, re-checks conflicts and inserts in a single transaction, so two callers
racing for overlapping intervals cannot both win. The confirmation path takes
the same court locks before re-checking.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from models import db, begin_write
from models.court import Court
from models.reservation import (
    Reservation, HOLD, PENDING_PAYMENT, CONFIRMED, CANCELLED, EXPIRED, SINGLE, SPLIT,
)
from models.reservation_court import ReservationCourt
from models.reservation_share import ReservationShare
from services.conflicts import find_conflicts
from services.errors import (
    ValidationError, NotFoundError, ExpiredHoldError, ConflictError,
    InvalidTransitionError, SharesFullError,
)
from services.rates import load_rules, price_courts
from utils.datetimes import day_start, minute_of_day, same_operating_day, weekday_number

logger = logging.getLogger(__name__)

CASH = "CASH"
CARD = "CARD"
BIZUM = "BIZUM"
PAYMENT_METHODS = (CASH, CARD, BIZUM)
STRATEGIES = (SINGLE, SPLIT)

ALLOWED_TRANSITIONS = {
    HOLD: {PENDING_PAYMENT, CONFIRMED, EXPIRED, CANCELLED},
    PENDING_PAYMENT: {CONFIRMED, CANCELLED},
    CONFIRMED: set(),
    CANCELLED: set(),
    EXPIRED: set(),
}


@dataclass
class Party:
    """Who a booking or share belongs to: a known user or a named guest."""
    user_id: Optional[int] = None
    guest_name: Optional[str] = None
    guest_phone: Optional[str] = None

    def validate(self):
        if self.user_id is None and not (self.guest_name or "").strip():
            raise ValidationError("A user or a guest name is required")


# ---------- helpers ----------

def _transition(reservation, new_status, now):
    if new_status not in ALLOWED_TRANSITIONS.get(reservation.status, set()):
        raise InvalidTransitionError(
            f"Cannot move booking from {reservation.status} to {new_status}",
            status=reservation.status,
        )
    old = reservation.status
    reservation.status = new_status
    if new_status == CONFIRMED:
        reservation.confirmed_at = now
        reservation.hold_expires_at = None
    elif new_status == CANCELLED:
        reservation.cancelled_at = now
        reservation.hold_expires_at = None
    elif new_status == EXPIRED:
        reservation.expired_at = now
    logger.info("reservation %s: %s -> %s", reservation.id, old, new_status)


def is_stale(reservation, now) -> bool:
    return (
        reservation.status == HOLD
        and reservation.hold_expires_at is not None
        and reservation.hold_expires_at <= now
    )


def expire_if_stale(reservation, now) -> bool:
    """Lazy expiration: move a HOLD past its TTL to EXPIRED. Caller commits."""
    if is_stale(reservation, now):
        _transition(reservation, EXPIRED, now)
        return True
    return False


def refresh_stale(reservations, now) -> int:
    """Apply lazy expiration to rows fetched by a read path and persist it.

    The rows are re-read inside a write transaction, so a hold confirmed in the
    meantime is left alone.
    """
    if not any(is_stale(r, now) for r in reservations):
        return 0
    begin_write()
    changed = sum(1 for r in reservations if expire_if_stale(r, now))
    db.session.commit()
    return changed


def lock_courts(court_ids):
    # id order keeps concurrent lockers from deadlocking
    begin_write()
    return (
        Court.query
        .filter(Court.id.in_(sorted(set(court_ids))))
        .order_by(Court.id.asc())
        .with_for_update()
        .all()
    )


def _lock_reservation(reservation_id):
    begin_write()
    r = Reservation.query.filter_by(id=reservation_id).with_for_update().first()
    if not r:
        raise NotFoundError("Booking not found")
    return r


def _load_for_update(reservation_id, now):
    """Lock the booking; a stale hold is expired (and committed) then reported."""
    r = _lock_reservation(reservation_id)
    if expire_if_stale(r, now):
        db.session.commit()
        raise ExpiredHoldError("Hold expired", booking_id=reservation_id)
    return r


def _expire_stale_on_courts(court_ids, start_at, end_at, now):
    stale = (
        Reservation.query
        .join(ReservationCourt, ReservationCourt.reservation_id == Reservation.id)
        .filter(
            ReservationCourt.court_id.in_(list(court_ids)),
            Reservation.status == HOLD,
            Reservation.hold_expires_at <= now,
            Reservation.start_at < end_at,
            Reservation.end_at > start_at,
        )
        .all()
    )
    for r in stale:
        expire_if_stale(r, now)


def split_amounts(total: int, n: int):
    """Equal division; leftover cents go to the earliest shares."""
    base, rem = divmod(total, n)
    return [base + (1 if i < rem else 0) for i in range(n)]


def _rebalance_shares(reservation):
    for share, amount in zip(reservation.shares, split_amounts(reservation.total_cents, len(reservation.shares))):
        share.amount_cents = amount


def _normalize_court_ids(court_ids):
    if not isinstance(court_ids, (list, tuple)) or not court_ids:
        raise ValidationError("courtIds must be a non-empty list")
    try:
        ids = [int(c) for c in court_ids]
    except (TypeError, ValueError):
        raise ValidationError("courtIds must be integers")
    if len(set(ids)) != len(ids):
        raise ValidationError("courtIds must not repeat")
    return sorted(ids)


def validate_interval(start_at, end_at, settings, now):
    """Interval checks shared by holds and recurrence occurrences."""
    if end_at <= start_at:
        raise ValidationError("end must be after start")
    if start_at < now:
        raise ValidationError("Cannot book past/started slots")
    if not same_operating_day(start_at, end_at):
        raise ValidationError("Bookings must start and end on the same day")

    hours = settings.hours_for(weekday_number(start_at))
    if not hours:
        raise ValidationError("The club is closed on that day")
    open_min, close_min = hours
    end_min = int((end_at - day_start(start_at.date())).total_seconds() // 60)
    if minute_of_day(start_at) < open_min or end_min > close_min:
        raise ValidationError("Booking is outside operating hours")


def check_courts(courts, court_ids):
    found = {c.id: c for c in courts}
    missing = [cid for cid in court_ids if cid not in found]
    if missing:
        raise NotFoundError("Court not found", courts=missing)
    inactive = [cid for cid in court_ids if not found[cid].is_active]
    if inactive:
        raise ValidationError("Court is not active", courts=inactive)


def insert_hold(court_ids, start_at, end_at, owner, settings, now, strategy, party_size,
                series_id=None, expected_total_cents=None, rules=None):
    """Conflict check + insert. The caller holds the court locks and commits."""
    conflicts = find_conflicts(court_ids, start_at, end_at, now=now)
    if conflicts:
        raise ConflictError(
            "Court already booked for that time",
            courts=sorted({c.court_id for c in conflicts}),
        )

    if rules is None:
        rules = load_rules(court_ids)
    total, quotes = price_courts(rules, court_ids, start_at, end_at, settings)
    if expected_total_cents is not None and int(expected_total_cents) != total:
        raise ValidationError("Price has changed", code="PRICE_MISMATCH", totalCents=total)

    r = Reservation(
        user_id=owner.user_id,
        guest_name=owner.guest_name,
        guest_phone=owner.guest_phone,
        start_at=start_at,
        end_at=end_at,
        total_cents=total,
        status=HOLD,
        payment_strategy=strategy,
        party_size=party_size,
        hold_expires_at=now + timedelta(seconds=settings.hold_ttl_seconds),
        series_id=series_id,
    )
    r.court_links = [ReservationCourt(court_id=cid, price_cents=quotes[cid].total_cents) for cid in court_ids]
    r.shares = [ReservationShare(user_id=owner.user_id, guest_name=owner.guest_name, amount_cents=total)]
    db.session.add(r)
    db.session.flush()
    return r


def resolve_party_size(strategy, party_size, settings):
    if strategy not in STRATEGIES:
        raise ValidationError("strategy must be SINGLE or SPLIT")
    if strategy == SINGLE:
        return 1
    size = settings.party_size if party_size is None else party_size
    if not isinstance(size, int) or size < 2:
        raise ValidationError("partySize must be at least 2 for split bookings")
    return size


# ---------- operations ----------

def create_hold(court_ids, start_at, end_at, owner: Party, settings, strategy=SINGLE,
                expected_total_cents=None, party_size=None, series_id=None, now=None):
    if now is None:
        now = settings.now()
    court_ids = _normalize_court_ids(court_ids)
    owner.validate()
    party_size = resolve_party_size(strategy, party_size, settings)
    validate_interval(start_at, end_at, settings, now)

    try:
        courts = lock_courts(court_ids)
        check_courts(courts, court_ids)
        _expire_stale_on_courts(court_ids, start_at, end_at, now)
        r = insert_hold(
            court_ids, start_at, end_at, owner, settings, now, strategy, party_size,
            series_id=series_id, expected_total_cents=expected_total_cents,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("hold %s on courts %s %s-%s until %s", r.id, court_ids, start_at, end_at, r.hold_expires_at)
    return r


def confirm_locked(r, now, payment_method):
    """Occupying transition to CONFIRMED under the court locks."""
    lock_courts(r.court_ids)
    conflicts = find_conflicts(r.court_ids, r.start_at, r.end_at, exclude_reservation_id=r.id, now=now)
    if conflicts:
        raise ConflictError("Court already booked for that time", courts=sorted({c.court_id for c in conflicts}))
    _transition(r, CONFIRMED, now)
    r.payment_method = payment_method


def confirm(reservation_id, payment_method, settings, now=None):
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError("paymentMethod must be one of " + ", ".join(PAYMENT_METHODS))
    if now is None:
        now = settings.now()

    try:
        r = _load_for_update(reservation_id, now)
        if r.status == CONFIRMED:
            db.session.rollback()
            return r

        if payment_method == CASH:
            if r.status not in (HOLD, PENDING_PAYMENT):
                raise InvalidTransitionError(f"Cannot confirm a {r.status} booking", status=r.status)
            confirm_locked(r, now, CASH)
            for share in r.shares:
                if not share.paid:
                    share.paid = True
                    share.paid_at = now
        elif r.shares and all(s.paid for s in r.shares):
            confirm_locked(r, now, payment_method)
        elif r.status == HOLD:
            _transition(r, PENDING_PAYMENT, now)
            r.payment_method = payment_method
        elif r.status == PENDING_PAYMENT:
            r.payment_method = payment_method
        else:
            raise InvalidTransitionError(f"Cannot confirm a {r.status} booking", status=r.status)

        db.session.commit()
    except ExpiredHoldError:
        raise
    except Exception:
        db.session.rollback()
        raise
    return r


def mark_share_paid(reservation_id, share_id, settings, now=None):
    """Binary paid signal for one share; confirms the booking once every share is paid."""
    if now is None:
        now = settings.now()

    try:
        r = _load_for_update(reservation_id, now)
        share = next((s for s in r.shares if s.id == share_id), None)
        if share is None:
            raise NotFoundError("Share not found")
        if r.status in (CANCELLED, EXPIRED):
            raise InvalidTransitionError(f"Booking is {r.status}", status=r.status)

        if not share.paid:
            share.paid = True
            share.paid_at = now

        if r.status in (HOLD, PENDING_PAYMENT) and all(s.paid for s in r.shares):
            confirm_locked(r, now, r.payment_method or CARD)

        db.session.commit()
    except ExpiredHoldError:
        raise
    except Exception:
        db.session.rollback()
        raise
    return r


def report_share_payment(reservation_id, share_id, proof_note, settings, now=None):
    """Participant says they paid; an operator still has to mark the share paid."""
    if now is None:
        now = settings.now()

    try:
        r = _load_for_update(reservation_id, now)
        share = next((s for s in r.shares if s.id == share_id), None)
        if share is None:
            raise NotFoundError("Share not found")
        if r.status not in (HOLD, PENDING_PAYMENT):
            raise InvalidTransitionError(f"Booking is {r.status}", status=r.status)
        share.reported_at = now
        share.proof_note = (proof_note or "").strip()[:255] or None
        db.session.commit()
    except ExpiredHoldError:
        raise
    except Exception:
        db.session.rollback()
        raise
    return r, share


def expire(reservation_id, settings, now=None) -> bool:
    if now is None:
        now = settings.now()
    try:
        r = _lock_reservation(reservation_id)
        changed = expire_if_stale(r, now)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return changed


def expire_stale_holds(settings, now=None) -> int:
    """Periodic sweep. Safe to run from several instances at once."""
    if now is None:
        now = settings.now()
    try:
        begin_write()
        stale = (
            Reservation.query
            .filter(Reservation.status == HOLD, Reservation.hold_expires_at <= now)
            .with_for_update(skip_locked=True)
            .all()
        )
        for r in stale:
            expire_if_stale(r, now)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    if stale:
        logger.info("expired %d stale holds", len(stale))
    return len(stale)


def cancel(reservation_id, settings, reason=None, now=None):
    if now is None:
        now = settings.now()

    try:
        r = _load_for_update(reservation_id, now)
        if r.status == CANCELLED:
            db.session.rollback()
            return r
        if r.status not in (HOLD, PENDING_PAYMENT):
            raise InvalidTransitionError(f"Cannot cancel a {r.status} booking", status=r.status)
        _transition(r, CANCELLED, now)
        r.cancel_reason = (reason or "").strip()[:120] or None
        db.session.commit()
    except ExpiredHoldError:
        raise
    except Exception:
        db.session.rollback()
        raise
    return r


def join(reservation_id, participant: Party, settings, now=None):
    participant.validate()
    if now is None:
        now = settings.now()

    try:
        r = _load_for_update(reservation_id, now)
        if r.payment_strategy != SPLIT:
            raise ValidationError("Only split bookings accept participants")
        if r.status == CONFIRMED:
            raise InvalidTransitionError("Booking already confirmed", status=r.status)
        if r.status not in (HOLD, PENDING_PAYMENT):
            raise InvalidTransitionError(f"Cannot join a {r.status} booking", status=r.status)
        if any(s.paid for s in r.shares):
            raise InvalidTransitionError("Payment already started; the party is closed", status=r.status)
        if participant.user_id is not None and any(s.user_id == participant.user_id for s in r.shares):
            raise ValidationError("Already joined", code="ALREADY_JOINED")
        if len(r.shares) >= r.party_size:
            raise SharesFullError("Booking is full", party_size=r.party_size)

        r.shares.append(ReservationShare(
            user_id=participant.user_id,
            guest_name=participant.guest_name,
            amount_cents=0,
        ))
        _rebalance_shares(r)
        db.session.commit()
    except ExpiredHoldError:
        raise
    except Exception:
        db.session.rollback()
        raise

    logger.info("reservation %s: participant joined (%d/%d)", r.id, len(r.shares), r.party_size)
    return r


def get_reservation(reservation_id, settings, now=None):
    """Read path with lazy expiration."""
    r = Reservation.query.get(reservation_id)
    if not r:
        raise NotFoundError("Booking not found")
    refresh_stale([r], now or settings.now())
    return r
