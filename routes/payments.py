import logging
from urllib.parse import urlencode, urlparse, parse_qsl, urlunparse

import stripe
from flask import Blueprint, jsonify, g, current_app

from models import db, begin_write
from models.reservation import HOLD, PENDING_PAYMENT
from models.reservation_share import ReservationShare
from security.rbac import is_operator
from services.errors import BookingError, InvalidTransitionError, PaymentProviderError
from services.reservations import CARD, confirm, get_reservation
from services.settings import current_settings
from utils.audit import log_event
from utils.auth_context import login_required

payments_bp = Blueprint("payments", __name__, url_prefix="/payments")
logger = logging.getLogger(__name__)


def _append_query(url: str, params: dict) -> str:
    if not url:
        return url
    parts = urlparse(url)
    query = dict(parse_qsl(parts.query))
    query.update({k: v for k, v in params.items() if v is not None})
    return urlunparse(parts._replace(query=urlencode(query)))


def _expire_session(session_id):
    try:
        stripe.checkout.Session.expire(session_id)
    except stripe.StripeError as e:
        logger.warning("could not expire checkout session %s: %s", session_id, e)


@payments_bp.post("/shares/<int:share_id>/checkout")
@login_required
def start_share_checkout(share_id: int):
    stripe.api_key = current_app.config.get("STRIPE_SECRET_KEY")
    success_url = current_app.config.get("STRIPE_SUCCESS_URL")
    cancel_url = current_app.config.get("STRIPE_CANCEL_URL")
    if not stripe.api_key:
        return jsonify(error="Stripe secret key not configured"), 500
    if not success_url or not cancel_url:
        return jsonify(error="Stripe success/cancel URLs not configured"), 500

    settings = current_settings()
    share = ReservationShare.query.get(share_id)
    if not share:
        return jsonify(error="Share not found"), 404

    r = get_reservation(share.reservation_id, settings)
    if share.user_id != g.user.id and r.user_id != g.user.id and not is_operator():
        return jsonify(error="Share not found"), 404
    if share.paid:
        return jsonify(error="Share already paid"), 400
    if r.status not in (HOLD, PENDING_PAYMENT):
        raise InvalidTransitionError(f"Booking is {r.status}", status=r.status)

    currency = (current_app.config.get("CURRENCY") or "EUR").lower()
    params = {"reservation_id": str(r.id), "share_id": str(share.id)}

    try:
        session = stripe.checkout.Session.create(
            mode="payment",
            line_items=[{
                "price_data": {
                    "currency": currency,
                    "product_data": {"name": f"Court booking #{r.id} ({r.start_at:%Y-%m-%d %H:%M})"},
                    "unit_amount": share.amount_cents,
                },
                "quantity": 1,
            }],
            success_url=_append_query(success_url, params),
            cancel_url=_append_query(cancel_url, params),
            metadata={
                "reservation_id": str(r.id),
                "share_id": str(share.id),
                "user_id": str(g.user.id),
            },
        )
    except stripe.StripeError as e:
        logger.warning("checkout for share %s failed: %s", share.id, e)
        raise PaymentProviderError("Payment provider unavailable, try again")

    # a hold waiting on the card provider must not expire under it
    try:
        if r.status == HOLD:
            r = confirm(r.id, CARD, settings)
    except BookingError:
        _expire_session(session["id"])
        raise

    begin_write()
    share = db.session.get(ReservationShare, share_id)
    share.checkout_session_id = session["id"]
    db.session.commit()

    log_event("PAYMENT_SESSION_CREATED", user_id=g.user.id, entity="reservation_share", entity_id=share.id,
              metadata={"stripe_session_id": session["id"], "reservation_id": r.id})
    return jsonify(checkout_url=session["url"], session_id=session["id"]), 200
