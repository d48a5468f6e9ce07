def _iso(value):
    return value.isoformat() if value else None


def court_json(c):
    return {
        "id": c.id,
        "name": c.name,
        "surface_type": c.surface_type,
        "lighting": c.lighting,
        "is_active": c.is_active,
        "created_at": _iso(c.created_at),
    }


def rate_rule_json(rule, overlaps=None):
    out = {
        "id": rule.id,
        "court_id": rule.court_id,
        "hourly_rate_cents": rule.hourly_rate_cents,
        "valid_days": rule.valid_days,
        "start_time": rule.start_time,
        "end_time": rule.end_time,
        "label": rule.label,
        "created_at": _iso(rule.created_at),
    }
    if overlaps is not None:
        out["overlaps"] = overlaps
    return out


def block_json(b):
    return {
        "id": b.id,
        "court_id": b.court_id,
        "start_at": _iso(b.start_at),
        "end_at": _iso(b.end_at),
        "reason": b.reason,
    }


def share_json(s):
    return {
        "id": s.id,
        "user_id": s.user_id,
        "guest_name": s.guest_name,
        "amount_cents": s.amount_cents,
        "paid": s.paid,
        "paid_at": _iso(s.paid_at),
        "reported_at": _iso(s.reported_at),
        "proof_note": s.proof_note,
    }


def reservation_json(r):
    return {
        "id": r.id,
        "court_ids": r.court_ids,
        "courts": [{"court_id": link.court_id, "price_cents": link.price_cents} for link in r.court_links],
        "user_id": r.user_id,
        "guest_name": r.guest_name,
        "guest_phone": r.guest_phone,
        "start_at": _iso(r.start_at),
        "end_at": _iso(r.end_at),
        "total_cents": r.total_cents,
        "status": r.status,
        "payment_strategy": r.payment_strategy,
        "payment_method": r.payment_method,
        "party_size": r.party_size,
        "hold_expires_at": _iso(r.hold_expires_at),
        "series_id": r.series_id,
        "confirmed_at": _iso(r.confirmed_at),
        "cancelled_at": _iso(r.cancelled_at),
        "cancel_reason": r.cancel_reason,
        "created_at": _iso(r.created_at),
        "shares": [share_json(s) for s in r.shares],
    }
