"""Human delay strings ("2 days", "1 hour") to minutes."""

from __future__ import annotations

import re

DELAY_PATTERN = re.compile(r"(\d+)\s*(minute|hour|day|week)s?", re.IGNORECASE)

UNIT_MINUTES: dict[str, int] = {
    "minute": 1,
    "hour": 60,
    "day": 24 * 60,
    "week": 7 * 24 * 60,
}


def parse_delay(delay: str | None) -> int:
    """Minutes for ``delay``; anything unparseable means 0 (run immediately)."""
    if not delay:
        return 0
    match = DELAY_PATTERN.search(delay)
    if match is None:
        return 0
    return int(match.group(1)) * UNIT_MINUTES[match.group(2).lower()]
