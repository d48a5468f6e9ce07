import logging

import stripe
from flask import Blueprint, request, jsonify, current_app

from models.reservation_share import ReservationShare
from services.errors import BookingError
from services.reservations import mark_share_paid
from services.settings import current_settings
from utils.audit import log_event

logger = logging.getLogger(__name__)

webhook_bp = Blueprint("webhook", __name__, url_prefix="/webhooks")


def _find_share(session):
    meta = session.get("metadata", {}) or {}
    share_id = meta.get("share_id")
    share = None
    if share_id and str(share_id).isdigit():
        share = ReservationShare.query.get(int(share_id))
    if not share and session.get("id"):
        share = ReservationShare.query.filter_by(checkout_session_id=session.get("id")).first()
    return share


@webhook_bp.post("/stripe")
def stripe_webhook():
    endpoint_secret = current_app.config.get("STRIPE_WEBHOOK_SECRET")
    sig_header = request.headers.get("Stripe-Signature")
    payload = request.data

    if not endpoint_secret:
        return jsonify(error="Webhook secret not configured"), 500

    try:
        event = stripe.Webhook.construct_event(payload, sig_header, endpoint_secret)
    except (ValueError, stripe.SignatureVerificationError):
        return jsonify(error="Invalid webhook signature"), 400

    event_type = event.get("type")
    if event_type not in ("checkout.session.completed", "checkout.session.expired"):
        return jsonify(received=True), 200

    session = event["data"]["object"]
    session_id = session.get("id")
    share = _find_share(session)
    if not share:
        logger.warning("stripe %s for unknown share (session %s)", event_type, session_id)
        return jsonify(received=True), 200

    if event_type == "checkout.session.expired":
        log_event("PAYMENT_EXPIRED", entity="reservation_share", entity_id=share.id,
                  metadata={"stripe_session_id": session_id})
        return jsonify(received=True), 200

    try:
        r = mark_share_paid(share.reservation_id, share.id, current_settings())
    except BookingError as exc:
        # the booking moved on (cancelled, expired); money is settled outside the engine
        logger.warning("paid signal for share %s not applied: %s", share.id, exc.message)
        log_event("PAYMENT_UNAPPLIED", entity="reservation_share", entity_id=share.id,
                  metadata={"stripe_session_id": session_id, "code": exc.code})
        return jsonify(received=True), 200

    log_event("PAYMENT_PAID", entity="reservation_share", entity_id=share.id,
              metadata={"stripe_session_id": session_id, "reservation_id": r.id, "status": r.status})
    return jsonify(received=True), 200
