from __future__ import annotations

import re
from typing import Any


DURATION_UNITS = ("day", "week", "month")
MAX_DURATION_DIGITS = 6
_DURATION_PATTERN = re.compile(r"([0-9]{1,%d})-(day|week|month)" % MAX_DURATION_DIGITS)
_RATE_FIELDS = {
    "day": "perDay",
    "week": "perWeek",
    "month": "perMonth",
}


def parse_duration(token: str | None) -> tuple[int, str] | None:
    match = _DURATION_PATTERN.fullmatch(token or "")
    if not match:
        return None
    return int(match.group(1)), match.group(2)


def is_valid_duration(token: str | None) -> bool:
    return parse_duration(token) is not None


def _rate_for(pricing: Any, unit: str) -> float:
    field = _RATE_FIELDS[unit]
    if isinstance(pricing, dict):
        raw = pricing.get(field)
    else:
        raw = getattr(pricing, field, None)
    return float(raw or 0)


def calculate_rental_price(token: str | None, pricing: Any) -> float:
    """Price a duration token such as ``3-month`` against a machine's rental rates.

    ``pricing`` may be a mapping or an object exposing ``perDay``/``perWeek``/``perMonth``.
    Malformed or empty tokens price at 0 rather than raising.
    """
    parsed = parse_duration(token)
    if parsed is None:
        return 0
    amount, unit = parsed
    return amount * _rate_for(pricing, unit)
