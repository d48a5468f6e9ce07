import json
import logging
from flask import has_request_context, request

audit_logger = logging.getLogger("audit")

def log_event(action: str, user_id=None, entity=None, entity_id=None, metadata=None):
    """One structured line per state-changing action. Reservation rows stay the source of truth."""
    ip = None
    user_agent = None
    if has_request_context():
        ip = request.headers.get("X-Forwarded-For", request.remote_addr)
        user_agent = (request.headers.get("User-Agent") or "")[:255] or None

    audit_logger.info(
        "%s user=%s entity=%s:%s ip=%s ua=%s meta=%s",
        action,
        user_id,
        entity,
        entity_id,
        ip,
        user_agent,
        json.dumps(metadata, default=str) if metadata else "-",
    )
