from datetime import datetime
from models.db import db

class CourtBlock(db.Model):
    """Operator-reserved time (maintenance, classes). Occupies its interval like a confirmed booking."""
    __tablename__ = "court_blocks"

    id = db.Column(db.Integer, primary_key=True)
    court_id = db.Column(db.Integer, db.ForeignKey("courts.id"), nullable=False, index=True)
    start_at = db.Column(db.DateTime, nullable=False, index=True)
    end_at = db.Column(db.DateTime, nullable=False)
    reason = db.Column(db.String(160), nullable=True)

    created_by = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        db.CheckConstraint("end_at > start_at", name="ck_court_blocks_interval"),
    )
