from datetime import datetime
from models.db import db

class ReservationShare(db.Model):
    __tablename__ = "reservation_shares"

    id = db.Column(db.Integer, primary_key=True)
    reservation_id = db.Column(db.Integer, db.ForeignKey("reservations.id"), nullable=False, index=True)

    # participant: a known user or an anonymous joiner
    user_id = db.Column(db.Integer, nullable=True, index=True)
    guest_name = db.Column(db.String(120), nullable=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    paid = db.Column(db.Boolean, default=False, nullable=False)
    paid_at = db.Column(db.DateTime, nullable=True)

    # participant-reported payment, waiting for an operator to mark it paid
    reported_at = db.Column(db.DateTime, nullable=True)
    proof_note = db.Column(db.String(255), nullable=True)

    checkout_session_id = db.Column(db.String(255), nullable=True, unique=True, index=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
