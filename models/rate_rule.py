from datetime import datetime
from models.db import db

class RateRule(db.Model):
    __tablename__ = "rate_rules"

    id = db.Column(db.Integer, primary_key=True)

    # NULL court_id = applies to every court of the club
    court_id = db.Column(db.Integer, db.ForeignKey("courts.id"), nullable=True, index=True)

    hourly_rate_cents = db.Column(db.Integer, nullable=False)  # smallest currency unit
    valid_days = db.Column(db.String(20), nullable=False)      # "1,2,3,4,5" (0 = Sunday)
    start_time = db.Column(db.String(5), nullable=False)       # "09:00"
    end_time = db.Column(db.String(5), nullable=False)         # "14:00", "24:00" = end of day
    label = db.Column(db.String(120), nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.CheckConstraint("hourly_rate_cents >= 0", name="ck_rate_rules_rate_positive"),
    )

    @property
    def days(self):
        return {int(d) for d in (self.valid_days or "").split(",") if d.strip() != ""}
