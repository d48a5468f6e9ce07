"""Operator blocks: maintenance windows, classes, tournaments."""

import logging

from models import atomic
from models.court_block import CourtBlock
from services.conflicts import find_conflicts
from services.errors import ConflictError, NotFoundError, ValidationError
from services.reservations import check_courts, lock_courts

logger = logging.getLogger(__name__)


def create_block(court_id, start_at, end_at, settings, reason=None, created_by=None, now=None):
    if end_at <= start_at:
        raise ValidationError("end must be after start")
    if now is None:
        now = settings.now()

    with atomic() as session:
        check_courts(lock_courts([court_id]), [court_id])
        conflicts = find_conflicts([court_id], start_at, end_at, now=now)
        if conflicts:
            raise ConflictError(
                "Court is occupied during that time",
                retryable=False,
                conflicts=[c.to_dict() for c in conflicts],
            )
        block = CourtBlock(
            court_id=court_id,
            start_at=start_at,
            end_at=end_at,
            reason=(reason or "").strip()[:160] or None,
            created_by=created_by,
        )
        session.add(block)

    logger.info("block %s on court %s %s-%s", block.id, court_id, start_at, end_at)
    return block


def delete_block(court_id, block_id):
    with atomic() as session:
        block = CourtBlock.query.filter_by(id=block_id, court_id=court_id).first()
        if not block:
            raise NotFoundError("Block not found")
        session.delete(block)
    return block_id
