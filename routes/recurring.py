from flask import Blueprint, request, jsonify, g

from models.reservation import SINGLE
from security.rbac import is_operator
from services.recurrence import RecurrencePattern, WEEKLY, materialize, preview
from services.reservations import CASH, Party
from services.settings import current_settings
from utils.audit import log_event
from utils.payload import text_field
from utils.auth_context import login_required
from utils.datetimes import parse_day, parse_iso
from utils.serializers import reservation_json

recurring_bp = Blueprint("recurring", __name__, url_prefix="/reservations/recurring")


class BadRequest(ValueError):
    pass


def _pattern_from(data):
    raw = data.get("recurring")
    if not isinstance(raw, dict):
        raise BadRequest("recurring must be an object")

    weekdays = raw.get("weekdays", raw.get("daysOfWeek"))
    if not isinstance(weekdays, list) or not weekdays:
        raise BadRequest("recurring.weekdays must be a non-empty list (0 = Sunday)")
    try:
        weekdays = frozenset(int(d) for d in weekdays)
        interval = int(raw.get("interval", 1))
        count = int(raw["count"]) if raw.get("count") is not None else None
    except (TypeError, ValueError):
        raise BadRequest("recurring.weekdays, interval and count must be integers")

    end_date = None
    if raw.get("endDate"):
        try:
            end_date = parse_day(raw.get("endDate"))
        except ValueError:
            raise BadRequest("Invalid recurring.endDate. Use YYYY-MM-DD")

    return RecurrencePattern(
        weekdays=weekdays,
        interval=interval,
        frequency=text_field(raw, "frequency", WEEKLY).lower(),
        end_date=end_date,
        count=count,
        skip_conflicts=bool(data.get("skipConflicts", False)),
    )


def _request_args(settings):
    data = request.get_json(silent=True) or {}
    if data.get("court_id") is None or not data.get("start_at") or not data.get("end_at"):
        raise BadRequest("court_id, start_at, end_at and recurring are required")
    try:
        court_id = int(data.get("court_id"))
    except (TypeError, ValueError):
        raise BadRequest("court_id must be an integer")
    try:
        start_at = parse_iso(data.get("start_at"), settings.timezone)
        end_at = parse_iso(data.get("end_at"), settings.timezone)
    except ValueError:
        raise BadRequest("Invalid datetime format. Use ISO e.g. 2026-01-20T18:00:00")
    return data, court_id, start_at, end_at, _pattern_from(data)


@recurring_bp.post("/preview")
@login_required
def preview_series():
    settings = current_settings()
    try:
        _, court_id, start_at, end_at, pattern = _request_args(settings)
    except BadRequest as exc:
        return jsonify(error=str(exc)), 400

    occurrences = preview(pattern, court_id, start_at, end_at, settings)
    bookable = [o for o in occurrences if o.is_valid and not o.conflict]
    return jsonify(
        occurrences=[o.to_dict() for o in occurrences],
        bookableCount=len(bookable),
        totalCents=sum(o.price_cents for o in bookable),
    ), 200


@recurring_bp.post("")
@login_required
def create_series():
    settings = current_settings()
    try:
        data, court_id, start_at, end_at, pattern = _request_args(settings)
    except BadRequest as exc:
        return jsonify(error=str(exc)), 400

    payment_method = text_field(data, "paymentMethod").upper() or None
    if payment_method == CASH and not is_operator():
        return jsonify(error="Cash payments are confirmed at the desk"), 403

    owner = Party(user_id=g.user.id)
    guest_name = text_field(data, "guestName", None)
    if is_operator() and guest_name:
        owner = Party(guest_name=guest_name, guest_phone=text_field(data, "guestPhone", None))

    result = materialize(
        pattern, court_id, start_at, end_at, owner, settings,
        skip_conflicts=pattern.skip_conflicts,
        payment_method=payment_method,
        strategy=text_field(data, "strategy", SINGLE).upper(),
    )

    log_event(
        "RESERVATION_SERIES_CREATE",
        user_id=g.user.id,
        entity="series",
        entity_id=result.series_id,
        metadata={"court_id": court_id, "created": len(result.created), "skipped": len(result.skipped)},
    )
    return jsonify(
        series_id=result.series_id,
        created=[reservation_json(r) for r in result.created],
        skipped=[o.to_dict() for o in result.skipped],
    ), 201
