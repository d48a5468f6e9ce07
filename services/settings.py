"""
Club configuration as an explicit value.

The engine never reads global config itself: routes build a ``ClubSettings``
from the Flask config and pass it down.
"""

import json
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from flask import current_app

from utils.datetimes import local_now, parse_hhmm

OVERLAP_WARN = "warn"
OVERLAP_REJECT = "reject"


@dataclass(frozen=True)
class ClubSettings:
    timezone: str = "Europe/Madrid"
    default_hourly_rate_cents: Optional[int] = None
    slot_minutes: int = 30
    # weekday (0 = Sunday) -> (open, close) in minutes after midnight; missing day = closed
    open_hours: Dict[int, Tuple[int, int]] = field(default_factory=dict)
    hold_ttl_seconds: int = 600
    party_size: int = 4
    min_advance_minutes: int = 0
    overlap_policy: str = OVERLAP_WARN
    max_recurring_occurrences: int = 500

    def now(self):
        return local_now(self.timezone)

    def hours_for(self, weekday: int) -> Optional[Tuple[int, int]]:
        return self.open_hours.get(weekday)

    @classmethod
    def from_mapping(cls, config) -> "ClubSettings":
        raw_hours = config.get("OPEN_HOURS") or {}
        if isinstance(raw_hours, str):
            raw_hours = json.loads(raw_hours)

        open_hours = {}
        for day, window in raw_hours.items():
            if not window:
                continue
            open_min, close_min = parse_hhmm(window[0]), parse_hhmm(window[1])
            if close_min <= open_min:
                raise ValueError(f"OPEN_HOURS for day {day}: close must be after open")
            open_hours[int(day)] = (open_min, close_min)

        default_rate = config.get("DEFAULT_HOURLY_RATE_CENTS")
        return cls(
            timezone=config.get("CLUB_TIMEZONE", "Europe/Madrid"),
            default_hourly_rate_cents=int(default_rate) if default_rate not in (None, "") else None,
            slot_minutes=int(config.get("SLOT_MINUTES", 30)),
            open_hours=open_hours,
            hold_ttl_seconds=int(config.get("HOLD_TTL_SECONDS", 600)),
            party_size=int(config.get("SPLIT_PARTY_SIZE", 4)),
            min_advance_minutes=int(config.get("MIN_ADVANCE_MINUTES", 0)),
            overlap_policy=config.get("RATE_OVERLAP_POLICY", OVERLAP_WARN),
            max_recurring_occurrences=int(config.get("MAX_RECURRING_OCCURRENCES", 500)),
        )


def current_settings() -> ClubSettings:
    return ClubSettings.from_mapping(current_app.config)
