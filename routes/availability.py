from datetime import timedelta

from flask import Blueprint, request, jsonify, g

from models.court import Court
from models.court_block import CourtBlock
from models.reservation import Reservation
from security.rbac import require_roles
from services.availability import slots
from services.conflicts import CANDIDATE_STATUSES
from services.reservations import refresh_stale
from services.settings import current_settings
from utils.audit import log_event
from utils.datetimes import day_start, parse_day
from utils.serializers import block_json, court_json, reservation_json

availability_bp = Blueprint("availability", __name__)


@availability_bp.get("/availability")
def availability():
    settings = current_settings()
    try:
        day = parse_day(request.args.get("date"))
    except ValueError:
        return jsonify(error="Invalid date. Use YYYY-MM-DD"), 400

    duration = request.args.get("duration", default=60, type=int)
    court_count = request.args.get("courtCount", default=1, type=int)

    found = slots(day, duration, court_count, settings)
    return jsonify(
        date=day.isoformat(),
        duration=duration,
        courtCount=court_count,
        slots=[s.to_dict() for s in found],
    ), 200


# ---------- STAFF/ADMIN: day sheet ----------
@availability_bp.get("/occupancy/daily")
@require_roles("ADMIN", "STAFF")
def daily_occupancy():
    settings = current_settings()
    try:
        day = parse_day(request.args.get("date"))
    except ValueError:
        return jsonify(error="Invalid date. Use YYYY-MM-DD"), 400

    start = day_start(day)
    end = start + timedelta(days=1)

    reservations = (
        Reservation.query
        .filter(
            Reservation.status.in_(CANDIDATE_STATUSES),
            Reservation.start_at < end,
            Reservation.end_at > start,
        )
        .order_by(Reservation.start_at.asc(), Reservation.id.asc())
        .all()
    )
    refresh_stale(reservations, settings.now())

    courts = Court.query.order_by(Court.id.asc()).all()
    blocks = (
        CourtBlock.query
        .filter(CourtBlock.start_at < end, CourtBlock.end_at > start)
        .order_by(CourtBlock.start_at.asc())
        .all()
    )

    per_court = {c.id: {"court": court_json(c), "reservations": [], "blocks": []} for c in courts}
    for r in reservations:
        if r.status not in CANDIDATE_STATUSES:
            continue
        for link in r.court_links:
            if link.court_id in per_court:
                per_court[link.court_id]["reservations"].append(reservation_json(r))
    for b in blocks:
        if b.court_id in per_court:
            per_court[b.court_id]["blocks"].append(block_json(b))

    log_event("OCCUPANCY_VIEW", user_id=g.user.id, metadata={"date": day.isoformat()})
    return jsonify(date=day.isoformat(), courts=list(per_court.values())), 200
