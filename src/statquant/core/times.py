from __future__ import annotations

import re
from datetime import datetime
from typing import Any

_FRACTION = re.compile(r"(?<=:\d{2})\.(\d+)")


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an API timestamp into a local, timezone-aware datetime.

    Naive values are local wall-clock time, which is how the browser reads
    them. Anything that is not an ISO-like string yields None.
    """
    if isinstance(value, datetime):
        return value.astimezone()
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    if text.endswith("Z"):
        text = f"{text[:-1]}+00:00"
    text = _FRACTION.sub(_six_digit_fraction, text, count=1)
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return parsed.astimezone()


def _six_digit_fraction(match: re.Match[str]) -> str:
    # fromisoformat before 3.11 only takes 3 or 6 fractional digits
    return "." + match.group(1)[:6].ljust(6, "0")


def hhmm(value: Any) -> str | None:
    parsed = parse_timestamp(value)
    if parsed is None:
        return None
    return f"{parsed.hour:02d}:{parsed.minute:02d}"


def local_date_prefix(now: datetime | None = None) -> str:
    current = now or datetime.now()
    return f"{current.year:04d}-{current.month:02d}-{current.day:02d}"
