from flask import Blueprint, request, jsonify, g
from sqlalchemy import or_

from models import db, begin_write
from models.court import Court
from models.rate_rule import RateRule
from security.rbac import require_roles
from services.errors import ConflictError, ValidationError
from services.rates import band_from_rule, find_overlapping_rules, make_band
from services.settings import OVERLAP_REJECT, current_settings
from utils.audit import log_event
from utils.serializers import rate_rule_json

prices_bp = Blueprint("prices", __name__, url_prefix="/prices")


def _same_scope_rules(court_id, exclude_id=None):
    q = RateRule.query
    if court_id is None:
        q = q.filter(RateRule.court_id.is_(None))
    else:
        q = q.filter(RateRule.court_id == court_id)
    if exclude_id is not None:
        q = q.filter(RateRule.id != exclude_id)
    return q.all()


def _overlap_ids(rule):
    band = band_from_rule(rule)
    others = [band_from_rule(r) for r in _same_scope_rules(rule.court_id, exclude_id=rule.id)]
    return [b.id for b in find_overlapping_rules(band, others)]


def _validated_fields(data, current=None):
    """Merge the payload over the current rule (if any) and validate the result."""
    def pick(key):
        if key in data:
            return data.get(key)
        return getattr(current, key) if current is not None else None

    court_id = pick("court_id")
    if court_id is not None:
        court_id = int(court_id)

    rate = pick("hourly_rate_cents")
    valid_days = pick("valid_days")
    if isinstance(valid_days, list):
        valid_days = ",".join(str(d) for d in valid_days)
    start_time, end_time, label = pick("start_time"), pick("end_time"), pick("label")
    for key, value in (("start_time", start_time), ("end_time", end_time), ("label", label)):
        if value is not None and not isinstance(value, str):
            raise ValidationError(f"{key} must be a string")
    start_time = (start_time or "").strip()
    end_time = (end_time or "").strip()

    band = make_band(court_id, rate, valid_days, start_time, end_time,
                     rule_id=current.id if current is not None else None)
    fields = {
        "court_id": court_id,
        "hourly_rate_cents": rate,
        "valid_days": ",".join(str(d) for d in sorted(band.days)),
        "start_time": start_time,
        "end_time": end_time,
        "label": (label or "").strip() or None,
    }
    return fields, band


def _check_overlaps(band, court_id, exclude_id=None):
    others = [band_from_rule(r) for r in _same_scope_rules(court_id, exclude_id=exclude_id)]
    overlaps = [b.id for b in find_overlapping_rules(band, others)]
    if overlaps and current_settings().overlap_policy == OVERLAP_REJECT:
        raise ConflictError(
            "Rule overlaps existing rules of the same scope",
            code="RATE_OVERLAP",
            retryable=False,
            overlaps=overlaps,
        )
    return overlaps


@prices_bp.get("")
def list_rules():
    q = RateRule.query
    court_id = request.args.get("court_id", type=int)
    if court_id:
        q = q.filter(or_(RateRule.court_id == court_id, RateRule.court_id.is_(None)))

    rules = q.order_by(RateRule.court_id.asc(), RateRule.start_time.asc(), RateRule.id.asc()).all()
    return jsonify([rate_rule_json(r, overlaps=_overlap_ids(r)) for r in rules]), 200


@prices_bp.get("/<int:rule_id>")
def get_rule(rule_id: int):
    rule = RateRule.query.get(rule_id)
    if not rule:
        return jsonify(error="Rate rule not found"), 404
    return jsonify(rate_rule_json(rule, overlaps=_overlap_ids(rule))), 200


# ---------- STAFF/ADMIN: manage rates ----------
@prices_bp.post("")
@require_roles("ADMIN", "STAFF")
def create_rule():
    begin_write()
    data = request.get_json(silent=True) or {}
    for key in ("hourly_rate_cents", "valid_days", "start_time", "end_time"):
        if data.get(key) in (None, "", []):
            return jsonify(error="hourly_rate_cents, valid_days, start_time, end_time are required"), 400

    try:
        fields, band = _validated_fields(data)
    except (TypeError, ValueError):
        return jsonify(error="court_id must be an integer"), 400
    if fields["court_id"] is not None and not Court.query.get(fields["court_id"]):
        return jsonify(error="Court not found"), 404

    overlaps = _check_overlaps(band, fields["court_id"])

    rule = RateRule(**fields)
    db.session.add(rule)
    db.session.commit()

    log_event("RATE_RULE_CREATE", user_id=g.user.id, entity="rate_rule", entity_id=rule.id,
              metadata={"overlaps": overlaps} if overlaps else None)
    return jsonify(rate_rule_json(rule, overlaps=overlaps)), 201


@prices_bp.put("/<int:rule_id>")
@require_roles("ADMIN", "STAFF")
def update_rule(rule_id: int):
    begin_write()
    rule = RateRule.query.get(rule_id)
    if not rule:
        return jsonify(error="Rate rule not found"), 404

    data = request.get_json(silent=True) or {}
    try:
        fields, band = _validated_fields(data, current=rule)
    except (TypeError, ValueError):
        return jsonify(error="court_id must be an integer"), 400
    if fields["court_id"] is not None and not Court.query.get(fields["court_id"]):
        return jsonify(error="Court not found"), 404

    overlaps = _check_overlaps(band, fields["court_id"], exclude_id=rule.id)

    for key, value in fields.items():
        setattr(rule, key, value)
    db.session.commit()

    log_event("RATE_RULE_UPDATE", user_id=g.user.id, entity="rate_rule", entity_id=rule.id)
    return jsonify(rate_rule_json(rule, overlaps=overlaps)), 200


@prices_bp.delete("/<int:rule_id>")
@require_roles("ADMIN", "STAFF")
def delete_rule(rule_id: int):
    begin_write()
    rule = RateRule.query.get(rule_id)
    if not rule:
        return jsonify(error="Rate rule not found"), 404

    db.session.delete(rule)
    db.session.commit()

    log_event("RATE_RULE_DELETE", user_id=g.user.id, entity="rate_rule", entity_id=rule_id)
    return jsonify(message="Rate rule deleted"), 200
