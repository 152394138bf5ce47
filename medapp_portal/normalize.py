"""Tolerant readers for the backend's loosely shaped responses.

The backend wraps list responses under varying envelope keys and serialises
timestamps in several formats depending on the endpoint. Everything that
probes for a shape lives here so callers see one stable form.
"""
from __future__ import annotations
import logging
import re
from datetime import date, datetime, tzinfo
from email.utils import parsedate_to_datetime
from typing import Any, Callable

logger = logging.getLogger(__name__)

_HHMM_RE = re.compile(r"(?<!\d)(\d{1,2}):(\d{2})(?!\d)")
_DATE_RE = re.compile(r"(?<!\d)(\d{4})-(\d{2})-(\d{2})(?!\d)")


# ---------------------------------------------------------------------------
# Envelopes
# ---------------------------------------------------------------------------

def _keyed(key: str) -> Callable[[Any], Any]:
    def strategy(payload: Any) -> Any:
        return payload.get(key) if isinstance(payload, dict) else None
    return strategy


def _nested(outer: str, key: str) -> Callable[[Any], Any]:
    def strategy(payload: Any) -> Any:
        if isinstance(payload, dict) and isinstance(payload.get(outer), dict):
            return payload[outer].get(key)
        return None
    return strategy


def _bare(payload: Any) -> Any:
    return payload


def _strategies(keys: tuple[str, ...]) -> list[Callable[[Any], Any]]:
    # A bare "data" list only wins when no keyed list exists.
    keyed = [s for key in keys for s in (_keyed(key), _nested("data", key), _nested("payload", key))]
    return keyed + [_keyed("data"), _bare]


def extract_list(payload: Any, *keys: str) -> list[Any]:
    """Return the first list found under any known envelope for ``keys``, else []."""
    for strategy in _strategies(keys):
        found = strategy(payload)
        if isinstance(found, list):
            return found
    return []


def extract_object(payload: Any, key: str) -> dict[str, Any] | None:
    """Return ``payload[key]`` (or the same under data/payload) when it is an object."""
    for strategy in (_keyed(key), _nested("data", key), _nested("payload", key)):
        found = strategy(payload)
        if isinstance(found, dict):
            return found
    return None


def availability_records(payload: Any) -> list[Any]:
    return extract_list(payload, "availabilities", "availability")


def doctor_records(payload: Any) -> list[Any]:
    return extract_list(payload, "doctors")


def appointment_records(payload: Any) -> list[Any]:
    return extract_list(payload, "appointments")


def user_records(payload: Any) -> list[Any]:
    return extract_list(payload, "pending_users", "users")


def notification_records(payload: Any) -> list[Any]:
    return extract_list(payload, "notifications")


def prescription_records(payload: Any) -> list[Any]:
    return extract_list(payload, "prescriptions")


def specialization_names(payload: Any) -> list[str]:
    return [str(s) for s in extract_list(payload, "specializations") if s]


# ---------------------------------------------------------------------------
# Timestamps
# ---------------------------------------------------------------------------

def _from_iso(value: str, tz: tzinfo | None) -> datetime | None:
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if tz is not None and dt.tzinfo is not None:
        dt = dt.astimezone(tz)
    return dt


def _from_rfc1123(value: str, tz: tzinfo | None) -> datetime | None:
    try:
        dt = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if dt is None:
        return None
    if tz is not None and dt.tzinfo is not None:
        dt = dt.astimezone(tz)
    return dt


def _hhmm(hour: int, minute: int) -> str | None:
    if 0 <= hour < 24 and 0 <= minute < 60:
        return f"{hour:02d}:{minute:02d}"
    return None


def time_of_day(value: Any, tz: tzinfo | None = None) -> str | None:
    """
    Extract the ``HH:MM`` wall-clock time from a timestamp.

    Tries an ISO string with a ``T`` separator first, then the SQL
    ``YYYY-MM-DD HH:MM[:SS]`` form, then scans for any ``H:MM``/``HH:MM``
    group. Zone-aware values are converted to ``tz`` when one is given.
    Returns None when no time can be found.
    """
    if isinstance(value, datetime):
        if tz is not None and value.tzinfo is not None:
            value = value.astimezone(tz)
        return f"{value:%H:%M}"
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()

    if "T" in text:
        dt = _from_iso(text, tz)
        if dt is not None:
            return f"{dt:%H:%M}"

    if " " in text:
        head, _, rest = text.partition(" ")
        if _DATE_RE.fullmatch(head):
            dt = _from_iso(text, tz) if tz is not None else None
            if dt is not None:
                return f"{dt:%H:%M}"
            m = _HHMM_RE.match(rest.strip())
            if m:
                found = _hhmm(int(m.group(1)), int(m.group(2)))
                if found:
                    return found

    if tz is not None and "," in text:
        dt = _from_rfc1123(text, tz)
        if dt is not None:
            return f"{dt:%H:%M}"

    m = _HHMM_RE.search(text)
    if m:
        found = _hhmm(int(m.group(1)), int(m.group(2)))
        if found:
            return found

    logger.warning(f"Could not extract time of day from {value!r}")
    return None


def calendar_date(value: Any, tz: tzinfo | None = None) -> date | None:
    """Extract the calendar date of a timestamp using the same tolerance order."""
    if isinstance(value, datetime):
        if tz is not None and value.tzinfo is not None:
            value = value.astimezone(tz)
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()

    if "T" in text or tz is not None:
        dt = _from_iso(text, tz)
        if dt is not None:
            return dt.date()

    m = _DATE_RE.search(text)
    if m:
        try:
            return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        except ValueError:
            return None

    dt = _from_rfc1123(text, tz)
    if dt is not None:
        return dt.date()

    logger.warning(f"Could not extract calendar date from {value!r}")
    return None
