from datetime import datetime
from models.db import db

# status values
HOLD = "HOLD"
PENDING_PAYMENT = "PENDING_PAYMENT"
CONFIRMED = "CONFIRMED"
CANCELLED = "CANCELLED"
EXPIRED = "EXPIRED"

# payment strategies
SINGLE = "SINGLE"
SPLIT = "SPLIT"

class Reservation(db.Model):
    __tablename__ = "reservations"

    id = db.Column(db.Integer, primary_key=True)

    # owner is either a known user (identity lives upstream) or a walk-in guest
    user_id = db.Column(db.Integer, nullable=True, index=True)
    guest_name = db.Column(db.String(120), nullable=True)
    guest_phone = db.Column(db.String(30), nullable=True)

    # club local wall-clock time
    start_at = db.Column(db.DateTime, nullable=False, index=True)
    end_at = db.Column(db.DateTime, nullable=False, index=True)

    total_cents = db.Column(db.Integer, nullable=False, default=0)
    status = db.Column(db.String(20), nullable=False, default=HOLD, index=True)
    payment_strategy = db.Column(db.String(10), nullable=False, default=SINGLE)
    payment_method = db.Column(db.String(20), nullable=True)
    party_size = db.Column(db.Integer, nullable=False, default=1)

    # only meaningful while the reservation is provisional
    hold_expires_at = db.Column(db.DateTime, nullable=True, index=True)

    series_id = db.Column(db.String(36), nullable=True, index=True)

    confirmed_at = db.Column(db.DateTime, nullable=True)
    cancelled_at = db.Column(db.DateTime, nullable=True)
    cancel_reason = db.Column(db.String(120), nullable=True)
    expired_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    court_links = db.relationship(
        "ReservationCourt",
        backref="reservation",
        cascade="all, delete-orphan",
        order_by="ReservationCourt.court_id",
        lazy=True,
    )
    shares = db.relationship(
        "ReservationShare",
        backref="reservation",
        cascade="all, delete-orphan",
        order_by="ReservationShare.id",
        lazy=True,
    )

    __table_args__ = (
        db.CheckConstraint("end_at > start_at", name="ck_reservations_interval"),
        db.CheckConstraint("total_cents >= 0", name="ck_reservations_total"),
    )

    @property
    def court_ids(self):
        return [link.court_id for link in self.court_links]
