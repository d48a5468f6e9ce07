from datetime import datetime, timedelta

from flask import Blueprint, request, jsonify, g
from sqlalchemy.exc import IntegrityError

from models import db, begin_write
from models.court import Court
from models.court_block import CourtBlock
from security.rbac import is_operator, require_roles
from services.blocks import create_block, delete_block
from services.settings import current_settings
from utils.audit import log_event
from utils.payload import text_field
from utils.datetimes import day_start, parse_day, parse_iso
from utils.serializers import block_json, court_json

court_bp = Blueprint("court", __name__, url_prefix="/courts")


@court_bp.get("")
def list_courts():
    q = Court.query
    if not (is_operator() and request.args.get("include_inactive") == "1"):
        q = q.filter(Court.is_active.is_(True))
    courts = q.order_by(Court.id.asc()).all()
    return jsonify([court_json(c) for c in courts]), 200


@court_bp.get("/<int:court_id>")
def get_court(court_id: int):
    court = Court.query.get(court_id)
    if not court or (not court.is_active and not is_operator()):
        return jsonify(error="Court not found"), 404
    return jsonify(court_json(court)), 200


# ---------- STAFF/ADMIN: manage courts ----------
@court_bp.post("")
@require_roles("ADMIN", "STAFF")
def create_court():
    begin_write()
    data = request.get_json(silent=True) or {}
    name = text_field(data, "name")
    if not name:
        return jsonify(error="Court name required"), 400

    court = Court(
        name=name,
        surface_type=text_field(data, "surface_type", None),
        lighting=bool(data.get("lighting", False)),
    )
    db.session.add(court)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify(error="Court name already exists"), 409

    log_event("COURT_CREATE", user_id=g.user.id, entity="court", entity_id=court.id)
    return jsonify(court_json(court)), 201


@court_bp.put("/<int:court_id>")
@require_roles("ADMIN", "STAFF")
def update_court(court_id: int):
    begin_write()
    court = Court.query.get(court_id)
    if not court:
        return jsonify(error="Court not found"), 404

    data = request.get_json(silent=True) or {}
    if "name" in data:
        name = text_field(data, "name")
        if not name:
            return jsonify(error="Court name required"), 400
        court.name = name
    if "surface_type" in data:
        court.surface_type = text_field(data, "surface_type", None)
    if "lighting" in data:
        court.lighting = bool(data.get("lighting"))
    if data.get("is_active") is True and not court.is_active:
        court.is_active = True
        court.deactivated_at = None

    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify(error="Court name already exists"), 409

    log_event("COURT_UPDATE", user_id=g.user.id, entity="court", entity_id=court.id)
    return jsonify(court_json(court)), 200


@court_bp.delete("/<int:court_id>")
@require_roles("ADMIN", "STAFF")
def deactivate_court(court_id: int):
    begin_write()
    court = Court.query.get(court_id)
    if not court:
        return jsonify(error="Court not found"), 404

    # soft delete: reservations keep pointing at the row
    if court.is_active:
        court.is_active = False
        court.deactivated_at = datetime.utcnow()
        db.session.commit()
        log_event("COURT_DEACTIVATE", user_id=g.user.id, entity="court", entity_id=court.id)
    return jsonify(message="Court deactivated", court=court_json(court)), 200


# ---------- blocks ----------
@court_bp.get("/<int:court_id>/blocks")
def list_blocks(court_id: int):
    if not Court.query.get(court_id):
        return jsonify(error="Court not found"), 404

    q = CourtBlock.query.filter_by(court_id=court_id)
    date_str = request.args.get("date")
    if date_str:
        try:
            start = day_start(parse_day(date_str))
        except ValueError:
            return jsonify(error="Invalid date. Use YYYY-MM-DD"), 400
        q = q.filter(CourtBlock.start_at < start + timedelta(days=1), CourtBlock.end_at > start)

    blocks = q.order_by(CourtBlock.start_at.asc()).all()
    return jsonify([block_json(b) for b in blocks]), 200


@court_bp.post("/<int:court_id>/blocks")
@require_roles("ADMIN", "STAFF")
def add_block(court_id: int):
    settings = current_settings()
    data = request.get_json(silent=True) or {}
    if not data.get("start_at") or not data.get("end_at"):
        return jsonify(error="start_at and end_at are required"), 400
    try:
        start_at = parse_iso(data.get("start_at"), settings.timezone)
        end_at = parse_iso(data.get("end_at"), settings.timezone)
    except ValueError:
        return jsonify(error="Invalid datetime format. Use ISO e.g. 2026-01-20T18:00:00"), 400

    block = create_block(court_id, start_at, end_at, settings, reason=text_field(data, "reason", None), created_by=g.user.id)

    log_event("COURT_BLOCK_CREATE", user_id=g.user.id, entity="court_block", entity_id=block.id,
              metadata={"court_id": court_id})
    return jsonify(block_json(block)), 201


@court_bp.delete("/<int:court_id>/blocks/<int:block_id>")
@require_roles("ADMIN", "STAFF")
def remove_block(court_id: int, block_id: int):
    delete_block(court_id, block_id)
    log_event("COURT_BLOCK_DELETE", user_id=g.user.id, entity="court_block", entity_id=block_id)
    return jsonify(message="Block removed"), 200
