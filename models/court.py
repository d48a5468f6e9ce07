from datetime import datetime
from models.db import db

class Court(db.Model):
    __tablename__ = "courts"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    surface_type = db.Column(db.String(60), nullable=True)
    lighting = db.Column(db.Boolean, default=False, nullable=False)

    # Courts referenced by reservations are only ever deactivated, never deleted
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    deactivated_at = db.Column(db.DateTime, nullable=True)

    __table_args__ = (
        db.UniqueConstraint("name", name="uq_courts_name"),
    )
