from models.db import db

class ReservationCourt(db.Model):
    __tablename__ = "reservation_courts"

    reservation_id = db.Column(db.Integer, db.ForeignKey("reservations.id"), primary_key=True)
    court_id = db.Column(db.Integer, db.ForeignKey("courts.id"), primary_key=True, index=True)

    # portion of the reservation total priced for this court
    price_cents = db.Column(db.Integer, nullable=False, default=0)
