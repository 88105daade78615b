"""Turn a provider's free-text reset phrase into minutes from now.

Handles the shapes the supported CLIs print, e.g.::

    Resets 2pm (America/Chicago)
    Resets Feb 20 at 9am (Europe/Berlin)
    resets 11:07 on 16 Feb
    Resets in 2h 35m

Anything not recognised yields ``None`` rather than a guess.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError
import logging
import re

logger = logging.getLogger(__name__)

MONTHS = {name: idx for idx, name in enumerate(
    ["jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec"], start=1
)}
WEEKDAYS = {name: idx for idx, name in enumerate(["mon", "tue", "wed", "thu", "fri", "sat", "sun"])}

PREFIX_RE = re.compile(r"^\s*(?:resets?|reses)\s*", re.IGNORECASE)
ZONE_RE = re.compile(r"\(\s*([^()]+?)\s*\)\s*$")

_TIME = r"(\d{1,2})(?::(\d{2}))?\s*([ap])?\.?m?\.?"

RELATIVE_RE = re.compile(
    r"^(?:in\s*)?"
    r"(?:(\d+)\s*d(?:ays?)?\s*)?"
    r"(?:(\d+)\s*h(?:ours?|rs?)?\s*)?"
    r"(?:(\d+)\s*m(?:in(?:ute)?s?)?)?$"
)
CLOCK_12H_RE = re.compile(r"^(\d{1,2})(?::(\d{2}))?\s*([ap])\.?m\.?$")
CLOCK_24H_RE = re.compile(r"^(\d{1,2}):(\d{2})$")
CLOCK_ON_DATE_RE = re.compile(r"^(\d{1,2}):(\d{2})\s*on\s*(\d{1,2})\s*([a-z]{3})[a-z]*\.?$")
CLOCK_ON_MONTH_DAY_RE = re.compile(r"^(\d{1,2}):(\d{2})\s*on\s*([a-z]{3})[a-z]*\.?\s*(\d{1,2})$")
MONTH_DAY_RE = re.compile(
    r"^([a-z]{3})[a-z]*\.?\s*(\d{1,2})(?:st|nd|rd|th)?\s*,?\s*(?:(?:at)?\s*" + _TIME + r")?$"
)
WEEKDAY_RE = re.compile(r"^([a-z]{3})[a-z]*\.?\s*,?\s*(?:(?:at)?\s*" + _TIME + r")?$")


def parse_reset_minutes(text: str | None, now: datetime | None = None) -> int | None:
    """Minutes until the reset described by ``text``, or ``None`` when unparseable.

    ``now`` defaults to the current instant. A naive ``now`` is taken as local time.
    """
    if not text:
        return None
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.astimezone()

    body = PREFIX_RE.sub("", text.strip())
    zone: tzinfo | None = None
    zone_match = ZONE_RE.search(body)
    if zone_match:
        zone = _zone(zone_match.group(1))
        body = body[: zone_match.start()]
    body = body.strip().strip(",").strip().lower()
    if not body:
        return None

    local_now = now.astimezone(zone) if zone is not None else now.astimezone()
    try:
        target = _target(body, local_now)
    except ValueError:
        # e.g. "Feb 30" or "25:00"
        logger.debug("reset text %r names an impossible date or time", text)
        return None
    if target is None:
        logger.debug("unrecognised reset text %r", text)
        return None

    delta = target.astimezone(timezone.utc) - local_now.astimezone(timezone.utc)
    return max(0, int(delta.total_seconds() // 60))


def _zone(name: str) -> tzinfo | None:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        logger.debug("unknown timezone %r, using local time", name)
        return None


def _hour_minute(hour: str, minute: str | None, meridiem: str | None) -> tuple[int, int]:
    h = int(hour)
    m = int(minute) if minute else 0
    if meridiem:
        if not 1 <= h <= 12:
            raise ValueError(f"bad 12h hour: {h}")
        h = h % 12 + (12 if meridiem == "p" else 0)
    if not (0 <= h <= 23 and 0 <= m <= 59):
        raise ValueError(f"bad clock time: {h}:{m}")
    return h, m


def _at(now: datetime, hour: int, minute: int) -> datetime:
    return now.replace(hour=hour, minute=minute, second=0, microsecond=0)


def _next_clock(now: datetime, hour: int, minute: int) -> datetime:
    target = _at(now, hour, minute)
    if target < now:
        target += timedelta(days=1)
    return target


def _on_date(now: datetime, month: int, day: int, hour: int, minute: int) -> datetime:
    target = now.replace(month=month, day=day, hour=hour, minute=minute, second=0, microsecond=0)
    if target < now:
        target = target.replace(year=now.year + 1)
    return target


def _target(body: str, now: datetime) -> datetime | None:
    m = RELATIVE_RE.match(body)
    if m and any(m.groups()):
        days, hours, minutes = (int(g) if g else 0 for g in m.groups())
        return now + timedelta(days=days, hours=hours, minutes=minutes)

    m = CLOCK_12H_RE.match(body)
    if m:
        return _next_clock(now, *_hour_minute(m.group(1), m.group(2), m.group(3)))

    m = CLOCK_24H_RE.match(body)
    if m:
        return _next_clock(now, *_hour_minute(m.group(1), m.group(2), None))

    m = CLOCK_ON_DATE_RE.match(body)
    if m and m.group(4) in MONTHS:
        hour, minute = _hour_minute(m.group(1), m.group(2), None)
        return _on_date(now, MONTHS[m.group(4)], int(m.group(3)), hour, minute)

    m = CLOCK_ON_MONTH_DAY_RE.match(body)
    if m and m.group(3) in MONTHS:
        hour, minute = _hour_minute(m.group(1), m.group(2), None)
        return _on_date(now, MONTHS[m.group(3)], int(m.group(4)), hour, minute)

    m = MONTH_DAY_RE.match(body)
    if m and m.group(1) in MONTHS:
        hour, minute = (0, 0)
        if m.group(3):
            hour, minute = _hour_minute(m.group(3), m.group(4), m.group(5))
        return _on_date(now, MONTHS[m.group(1)], int(m.group(2)), hour, minute)

    m = WEEKDAY_RE.match(body)
    if m and m.group(1) in WEEKDAYS:
        hour, minute = (0, 0)
        if m.group(2):
            hour, minute = _hour_minute(m.group(2), m.group(3), m.group(4))
        days_ahead = (WEEKDAYS[m.group(1)] - now.weekday()) % 7
        target = _at(now, hour, minute) + timedelta(days=days_ahead)
        if target < now:
            target += timedelta(days=7)
        return target

    return None
