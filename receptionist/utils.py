"""Shared utilities used across the receptionist core."""

import re
from datetime import date, datetime
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def normalize_phone(value: str) -> str:
    """Normalize a phone number by stripping everything except digits and a leading +.

    Examples:
        >>> normalize_phone("0412 345 678")
        '0412345678'
        >>> normalize_phone("+61 (412) 345-678")
        '+61412345678'
    """
    value = value.strip()
    if value.startswith("+"):
        return "+" + re.sub(r"[^\d]", "", value[1:])
    return re.sub(r"[^\d]", "", value)


def extract_phone_from_sip(sip_header: str) -> Optional[str]:
    """Pull the caller number out of a SIP From header.

    Examples:
        >>> extract_phone_from_sip('"Caller" <sip:+61412345678@pstn.example.com>;tag=abc')
        '+61412345678'
        >>> extract_phone_from_sip("anonymous") is None
        True
    """
    match = re.search(r"sips?:([+\d][\d\s\-()]*)@", sip_header)
    if not match:
        return None
    return normalize_phone(match.group(1))


def is_valid_date(value: str) -> bool:
    """True for a real calendar date in YYYY-MM-DD form."""
    if not isinstance(value, str) or not _DATE_RE.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def is_valid_time(value: str) -> bool:
    """True for a 24-hour HH:MM time."""
    return isinstance(value, str) and bool(_TIME_RE.match(value))


def business_today(timezone_name: str, now: Optional[datetime] = None) -> date:
    """Today's date as seen by the business, falling back to UTC for unknown zones."""
    try:
        tz = ZoneInfo(timezone_name)
    except (ZoneInfoNotFoundError, ValueError):
        tz = ZoneInfo("UTC")
    if now is None:
        return datetime.now(tz).date()
    if now.tzinfo is None:
        return now.date()
    return now.astimezone(tz).date()


def is_past_date(value: str, timezone_name: str, now: Optional[datetime] = None) -> bool:
    """Compare a YYYY-MM-DD string against today in the business timezone."""
    return date.fromisoformat(value) < business_today(timezone_name, now)
