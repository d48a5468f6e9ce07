"""
Rate resolution.

Prices an interval on a court against the club's time-band rate rules:

- the interval is walked day by day (it may span midnight),
- it is cut at every rule boundary that falls inside it,
- each piece is priced with the most specific matching rule
  (court-specific beats global, ties go to the most recently created rule),
- uncovered pieces fall back to the club default hourly rate, or fail.

Amounts accrue on the exact fraction and are rounded cumulatively, so the
per-segment roundings never drift away from the rounded exact total.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from fractions import Fraction
from typing import Iterable, List, Optional

from sqlalchemy import or_

from models.rate_rule import RateRule
from services.errors import PricingUnavailableError, ValidationError
from utils.datetimes import day_start, parse_hhmm, weekday_number

logger = logging.getLogger(__name__)

GLOBAL = "GLOBAL"
COURT = "COURT"


@dataclass(frozen=True)
class RuleScope:
    kind: str
    court_id: Optional[int] = None

    @classmethod
    def of(cls, court_id):
        if court_id is None:
            return cls(GLOBAL)
        return cls(COURT, court_id)

    def applies_to(self, court_id) -> bool:
        return self.kind == GLOBAL or self.court_id == court_id


@dataclass(frozen=True)
class RateBand:
    """Validated, persistence-free view of a rate rule."""
    id: Optional[int]
    scope: RuleScope
    hourly_rate_cents: int
    days: frozenset
    start_minute: int
    end_minute: int
    created_at: Optional[datetime] = None


@dataclass
class PriceSegment:
    start: datetime
    end: datetime
    rate_cents: int
    amount_cents: int = 0
    rule_id: Optional[int] = None

    def to_dict(self):
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "rateCents": self.rate_cents,
            "amountCents": self.amount_cents,
            "ruleId": self.rule_id,
        }


@dataclass
class PriceQuote:
    total_cents: int
    breakdown: List[PriceSegment] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self):
        return {
            "totalCents": self.total_cents,
            "breakdown": [s.to_dict() for s in self.breakdown],
            "warnings": list(self.warnings),
        }


def make_band(court_id, hourly_rate_cents, valid_days, start_time, end_time, rule_id=None, created_at=None) -> RateBand:
    """Build a RateBand from raw rule fields, raising ValidationError on bad input."""
    try:
        start_minute = parse_hhmm(start_time)
        end_minute = parse_hhmm(end_time)
    except ValueError as exc:
        raise ValidationError(str(exc))

    if end_minute <= start_minute:
        raise ValidationError("end_time must be after start_time (rules cannot cross midnight)")

    if isinstance(valid_days, str):
        parts = [p.strip() for p in valid_days.split(",") if p.strip()]
    elif isinstance(valid_days, (list, tuple, set, frozenset)):
        parts = list(valid_days)
    else:
        parts = []
    try:
        days = frozenset(int(d) for d in parts)
    except (TypeError, ValueError):
        raise ValidationError("valid_days must be weekday numbers 0-6 (0 = Sunday)")
    if not days or any(d < 0 or d > 6 for d in days):
        raise ValidationError("valid_days must be weekday numbers 0-6 (0 = Sunday)")

    if not isinstance(hourly_rate_cents, int) or isinstance(hourly_rate_cents, bool) or hourly_rate_cents < 0:
        raise ValidationError("hourly_rate_cents must be an integer >= 0")

    return RateBand(
        id=rule_id,
        scope=RuleScope.of(court_id),
        hourly_rate_cents=hourly_rate_cents,
        days=days,
        start_minute=start_minute,
        end_minute=end_minute,
        created_at=created_at,
    )


def band_from_rule(rule: RateRule) -> RateBand:
    return make_band(
        rule.court_id,
        rule.hourly_rate_cents,
        rule.valid_days,
        rule.start_time,
        rule.end_time,
        rule_id=rule.id,
        created_at=rule.created_at,
    )


def specificity(band: RateBand, court_id) -> int:
    """2 = rule for this court, 1 = club-wide rule, 0 = not applicable."""
    if band.scope.kind == COURT:
        return 2 if band.scope.court_id == court_id else 0
    return 1


def rank_rule(band: RateBand, court_id):
    """Sort key for choosing among matching rules; the max wins."""
    return (
        specificity(band, court_id),
        band.created_at or datetime.min,
        band.id or 0,
    )


def bands_overlap(a: RateBand, b: RateBand) -> bool:
    return bool(a.days & b.days) and a.start_minute < b.end_minute and b.start_minute < a.end_minute


def find_overlapping_rules(band: RateBand, others: Iterable[RateBand]) -> List[RateBand]:
    """Rules of the same scope that share a weekday and time with ``band``."""
    return [
        other for other in others
        if other.id != band.id
        and other.scope == band.scope
        and bands_overlap(band, other)
    ]


def load_rules(court_ids) -> List[RateRule]:
    return (
        RateRule.query
        .filter(or_(RateRule.court_id.in_(list(court_ids)), RateRule.court_id.is_(None)))
        .order_by(RateRule.id.asc())
        .all()
    )


def _iter_days(start_at: datetime, end_at: datetime):
    cursor = start_at
    while cursor < end_at:
        midnight = day_start(cursor.date()) + timedelta(days=1)
        seg_end = min(end_at, midnight)
        yield cursor, seg_end
        cursor = seg_end


def _round_half_up(value: Fraction) -> int:
    return int((value + Fraction(1, 2)) // 1)


def _pick(candidates, court_id, seg_start, warnings):
    if not candidates:
        return None
    ranked = sorted(candidates, key=lambda b: rank_rule(b, court_id), reverse=True)
    winner = ranked[0]
    tied = [b for b in ranked if specificity(b, court_id) == specificity(winner, court_id)]
    if len(tied) > 1:
        ids = ", ".join(str(b.id) for b in tied)
        msg = f"Overlapping rate rules ({ids}) at {seg_start:%Y-%m-%d %H:%M}; applied rule {winner.id}"
        if msg not in warnings:
            warnings.append(msg)
            logger.warning(msg)
    return winner


def price(rules, court_id, start_at: datetime, end_at: datetime, settings) -> PriceQuote:
    if end_at <= start_at:
        raise ValidationError("end must be after start")

    bands = []
    for rule in rules:
        band = rule if isinstance(rule, RateBand) else band_from_rule(rule)
        if specificity(band, court_id):
            bands.append(band)

    warnings: List[str] = []
    pieces = []  # [start, end, band-or-None]

    for seg_start, seg_end in _iter_days(start_at, end_at):
        midnight = day_start(seg_start.date())
        weekday = weekday_number(seg_start)
        todays = []
        for band in bands:
            if weekday not in band.days:
                continue
            b_start = midnight + timedelta(minutes=band.start_minute)
            b_end = midnight + timedelta(minutes=band.end_minute)
            if b_start < seg_end and seg_start < b_end:
                todays.append((band, b_start, b_end))

        cuts = {seg_start, seg_end}
        for _, b_start, b_end in todays:
            for boundary in (b_start, b_end):
                if seg_start < boundary < seg_end:
                    cuts.add(boundary)
        cuts = sorted(cuts)

        for a, b in zip(cuts, cuts[1:]):
            candidates = [band for band, b_start, b_end in todays if b_start <= a and b <= b_end]
            winner = _pick(candidates, court_id, a, warnings)
            if pieces and pieces[-1][1] == a and pieces[-1][2] == winner:
                pieces[-1][1] = b
            else:
                pieces.append([a, b, winner])

    breakdown = []
    exact = Fraction(0)
    allocated = 0
    for a, b, band in pieces:
        rate = band.hourly_rate_cents if band is not None else settings.default_hourly_rate_cents
        if rate is None:
            raise PricingUnavailableError(
                f"No rate covers {a:%Y-%m-%d %H:%M} - {b:%H:%M} and no default rate is configured",
                segment={"start": a.isoformat(), "end": b.isoformat()},
            )
        exact += Fraction(int((b - a).total_seconds()), 3600) * rate
        running = _round_half_up(exact)
        breakdown.append(PriceSegment(
            start=a,
            end=b,
            rate_cents=rate,
            amount_cents=running - allocated,
            rule_id=band.id if band is not None else None,
        ))
        allocated = running

    return PriceQuote(total_cents=allocated, breakdown=breakdown, warnings=warnings)


def price_courts(rules, court_ids, start_at, end_at, settings):
    """Price the same interval on several courts. Returns (total, {court_id: quote})."""
    quotes = {cid: price(rules, cid, start_at, end_at, settings) for cid in court_ids}
    return sum(q.total_cents for q in quotes.values()), quotes
