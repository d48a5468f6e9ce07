from datetime import timedelta

from flask import Blueprint, request, jsonify, g
from sqlalchemy import and_, or_

from models.reservation import Reservation, EXPIRED, HOLD, SINGLE
from models.reservation_share import ReservationShare
from security.rbac import is_operator, require_roles
from services.errors import NotFoundError
from services.rates import load_rules, price_courts
from services.reservations import (
    CASH, Party, cancel, confirm, create_hold, expire_stale_holds, get_reservation,
    join, mark_share_paid, refresh_stale, report_share_payment,
)
from services.settings import current_settings
from utils.audit import log_event
from utils.payload import text_field
from utils.auth_context import login_required
from utils.datetimes import day_start, parse_day, parse_iso
from utils.serializers import reservation_json, share_json

reservations_bp = Blueprint("reservations", __name__, url_prefix="/reservations")

BAD_DATETIME = "Invalid datetime format. Use ISO e.g. 2026-01-20T18:00:00"


def _optional_int(value):
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError("not an integer")
    return int(value)


def _owner_from(data):
    """Players book for themselves; the desk may book for any user or a walk-in guest."""
    if is_operator():
        user_id = _optional_int(data.get("userId"))
        guest_name = text_field(data, "guestName", None)
        guest_phone = text_field(data, "guestPhone", None)
        if user_id is not None or guest_name:
            return Party(user_id=user_id, guest_name=guest_name, guest_phone=guest_phone)
    return Party(user_id=g.user.id)


def _is_owner(r):
    return r.user_id is not None and r.user_id == g.user.id


def _visible(r):
    return is_operator() or _is_owner(r) or any(s.user_id == g.user.id for s in r.shares)


def _load_visible(reservation_id, settings=None):
    """Visibility check. Write paths pass no settings so a stale hold reaches the service unexpired."""
    if settings is None:
        r = Reservation.query.get(reservation_id)
        if not r:
            raise NotFoundError("Booking not found")
    else:
        r = get_reservation(reservation_id, settings)
    if not _visible(r):
        raise NotFoundError("Booking not found")
    return r


# ---------- PLAYERS / DESK: hold a slot (DOUBLE-BOOKING SAFE) ----------
@reservations_bp.post("/hold")
@login_required
def hold():
    settings = current_settings()
    data = request.get_json(silent=True) or {}

    court_ids = data.get("courtIds")
    if court_ids is None and data.get("court_id") is not None:
        court_ids = [data.get("court_id")]
    if not court_ids or not data.get("startAt") or not data.get("endAt"):
        return jsonify(error="courtIds, startAt, endAt are required"), 400

    try:
        start_at = parse_iso(data.get("startAt"), settings.timezone)
        end_at = parse_iso(data.get("endAt"), settings.timezone)
    except ValueError:
        return jsonify(error=BAD_DATETIME), 400

    try:
        expected_total = _optional_int(data.get("totalCents"))
        party_size = _optional_int(data.get("partySize"))
        owner = _owner_from(data)
    except (TypeError, ValueError):
        return jsonify(error="totalCents, partySize and userId must be integers"), 400

    strategy = text_field(data, "strategy", SINGLE).upper()

    r = create_hold(
        court_ids, start_at, end_at, owner, settings,
        strategy=strategy,
        expected_total_cents=expected_total,
        party_size=party_size,
    )

    log_event(
        "RESERVATION_HOLD",
        user_id=g.user.id,
        entity="reservation",
        entity_id=r.id,
        metadata={"courts": r.court_ids, "total_cents": r.total_cents, "strategy": r.payment_strategy},
    )
    return jsonify(booking=reservation_json(r)), 201


@reservations_bp.post("/confirm")
@login_required
def confirm_booking():
    settings = current_settings()
    data = request.get_json(silent=True) or {}
    payment_method = text_field(data, "paymentMethod").upper()

    try:
        booking_id = _optional_int(data.get("bookingId"))
    except (TypeError, ValueError):
        return jsonify(error="bookingId must be an integer"), 400
    if booking_id is None or not payment_method:
        return jsonify(error="bookingId and paymentMethod are required"), 400

    r = _load_visible(booking_id)
    if payment_method == CASH and not is_operator():
        return jsonify(error="Cash payments are confirmed at the desk"), 403
    if not (_is_owner(r) or is_operator()):
        return jsonify(error="Only the booking owner can confirm it"), 403

    r = confirm(r.id, payment_method, settings)

    log_event(
        "RESERVATION_CONFIRM",
        user_id=g.user.id,
        entity="reservation",
        entity_id=r.id,
        metadata={"status": r.status, "payment_method": payment_method},
    )
    message = "Booking confirmed" if r.status == "CONFIRMED" else "Awaiting payment"
    return jsonify(message=message, booking=reservation_json(r)), 200


@reservations_bp.post("/<int:reservation_id>/cancel")
@login_required
def cancel_booking(reservation_id: int):
    settings = current_settings()
    data = request.get_json(silent=True) or {}

    r = _load_visible(reservation_id)
    if not (_is_owner(r) or is_operator()):
        return jsonify(error="Only the booking owner can cancel it"), 403

    r = cancel(r.id, settings, reason=text_field(data, "reason", None))

    log_event("RESERVATION_CANCEL", user_id=g.user.id, entity="reservation", entity_id=r.id,
              metadata={"reason": r.cancel_reason})
    return jsonify(message="Booking cancelled", booking=reservation_json(r)), 200


@reservations_bp.post("/<int:reservation_id>/join")
@login_required
def join_booking(reservation_id: int):
    settings = current_settings()
    data = request.get_json(silent=True) or {}

    guest_name = text_field(data, "guestName", None)
    if guest_name and is_operator():
        participant = Party(guest_name=guest_name)
    else:
        participant = Party(user_id=g.user.id)

    r = join(reservation_id, participant, settings)

    log_event("RESERVATION_JOIN", user_id=g.user.id, entity="reservation", entity_id=r.id,
              metadata={"participants": len(r.shares)})
    return jsonify(booking=reservation_json(r)), 200


# ---------- STAFF/ADMIN: binary paid signal ----------
@reservations_bp.post("/<int:reservation_id>/shares/<int:share_id>/paid")
@require_roles("ADMIN", "STAFF")
def share_paid(reservation_id: int, share_id: int):
    settings = current_settings()
    r = mark_share_paid(reservation_id, share_id, settings)

    log_event("SHARE_PAID", user_id=g.user.id, entity="reservation_share", entity_id=share_id,
              metadata={"reservation_id": r.id, "status": r.status})
    return jsonify(booking=reservation_json(r)), 200


@reservations_bp.post("/<int:reservation_id>/shares/<int:share_id>/report")
@login_required
def share_report(reservation_id: int, share_id: int):
    settings = current_settings()
    data = request.get_json(silent=True) or {}
    proof_note = text_field(data, "proofNote")
    if not proof_note:
        return jsonify(error="proofNote is required"), 400

    share = ReservationShare.query.filter_by(id=share_id, reservation_id=reservation_id).first()
    if not share:
        return jsonify(error="Share not found"), 404
    r = _load_visible(reservation_id)
    if not (share.user_id == g.user.id or _is_owner(r) or is_operator()):
        return jsonify(error="Not your share"), 403

    r, share = report_share_payment(reservation_id, share_id, proof_note, settings)

    log_event("SHARE_PAYMENT_REPORTED", user_id=g.user.id, entity="reservation_share", entity_id=share.id,
              metadata={"reservation_id": r.id})
    return jsonify(message="Payment reported", share=share_json(share)), 200


@reservations_bp.post("/expire-sweep")
@require_roles("ADMIN", "STAFF")
def expire_sweep():
    settings = current_settings()
    count = expire_stale_holds(settings)
    log_event("HOLDS_EXPIRED", user_id=g.user.id, metadata={"count": count})
    return jsonify(expired=count), 200


# ---------- reads (lazy expiry) ----------
@reservations_bp.get("")
@require_roles("ADMIN", "STAFF")
def list_reservations():
    settings = current_settings()
    now = settings.now()
    q = Reservation.query

    status = (request.args.get("status") or "").strip().upper()
    if status == EXPIRED:
        # holds past their TTL count as expired even before the sweep reaches them
        q = q.filter(or_(
            Reservation.status == EXPIRED,
            and_(Reservation.status == HOLD, Reservation.hold_expires_at <= now),
        ))
    elif status:
        q = q.filter(Reservation.status == status)

    date_str = request.args.get("date")
    if date_str:
        try:
            start = day_start(parse_day(date_str))
        except ValueError:
            return jsonify(error="Invalid date. Use YYYY-MM-DD"), 400
        q = q.filter(Reservation.start_at >= start, Reservation.start_at < start + timedelta(days=1))

    rows = q.order_by(Reservation.start_at.desc(), Reservation.id.desc()).limit(500).all()
    refresh_stale(rows, now)

    court_id = request.args.get("court_id", type=int)
    if court_id:
        rows = [r for r in rows if court_id in r.court_ids]
    if status:
        rows = [r for r in rows if r.status == status]

    return jsonify([reservation_json(r) for r in rows]), 200


@reservations_bp.get("/me")
@login_required
def my_reservations():
    settings = current_settings()
    shared_ids = ReservationShare.query.with_entities(ReservationShare.reservation_id).filter(
        ReservationShare.user_id == g.user.id
    )
    rows = (
        Reservation.query
        .filter(or_(Reservation.user_id == g.user.id, Reservation.id.in_(shared_ids)))
        .order_by(Reservation.start_at.desc())
        .all()
    )
    refresh_stale(rows, settings.now())
    return jsonify([reservation_json(r) for r in rows]), 200


@reservations_bp.get("/<int:reservation_id>")
@login_required
def get_booking(reservation_id: int):
    settings = current_settings()
    r = _load_visible(reservation_id, settings)
    return jsonify(booking=reservation_json(r)), 200


@reservations_bp.post("/calculate")
def calculate():
    settings = current_settings()
    data = request.get_json(silent=True) or {}

    court_ids = data.get("courtIds")
    if court_ids is None and data.get("court_id") is not None:
        court_ids = [data.get("court_id")]
    if not court_ids or not data.get("start_time") or not data.get("end_time"):
        return jsonify(error="court_id, start_time, end_time are required"), 400

    try:
        court_ids = sorted({int(c) for c in court_ids})
    except (TypeError, ValueError):
        return jsonify(error="court_id must be an integer"), 400

    try:
        start_at = parse_iso(data.get("start_time"), settings.timezone)
        end_at = parse_iso(data.get("end_time"), settings.timezone)
    except ValueError:
        return jsonify(error=BAD_DATETIME), 400

    total, quotes = price_courts(load_rules(court_ids), court_ids, start_at, end_at, settings)

    body = quotes[court_ids[0]].to_dict()
    body["totalCents"] = total
    if len(court_ids) > 1:
        body["courts"] = {str(cid): q.to_dict() for cid, q in quotes.items()}
        body["warnings"] = [w for q in quotes.values() for w in q.warnings]
    return jsonify(body), 200
