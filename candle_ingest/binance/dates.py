from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Optional, Union

import pandas as pd

from .errors import InvalidDateFormat, OutOfRangeDate


_EPOCH_RE = re.compile(r"^\d+$")


def _utc_now(now: Optional[datetime]) -> pd.Timestamp:
    ts = pd.Timestamp(now or datetime.now(timezone.utc))
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    return ts.tz_convert("UTC")


def must_be_within_past_year(seconds: int, label: Optional[str], now: Optional[datetime] = None) -> None:
    """Raise OutOfRangeDate unless one_year_ago < seconds <= now (whole seconds)."""
    now_ts = _utc_now(now)
    now_s = int(now_ts.timestamp())
    year_ago_s = int((now_ts - pd.DateOffset(years=1)).timestamp())
    if seconds <= year_ago_s or seconds > now_s:
        raise OutOfRangeDate(label, seconds)


def normalize_date(
    value: Union[str, int, None],
    label: Optional[str],
    now: Optional[datetime] = None,
) -> Optional[int]:
    """Turn a loosely formatted date into a Unix timestamp in milliseconds.

    - None passes through (open-ended bound).
    - A digit-only string of exactly 10 (seconds) or 13 (milliseconds) chars is
      an epoch value, never a calendar string. Milliseconds are truncated to
      whole seconds, as the exchange API expects second-aligned bounds.
    - Anything else is parsed by pandas against UTC.

    The result must fall within the past year, else OutOfRangeDate.
    """
    if value is None:
        return None

    text = str(value).strip()
    if _EPOCH_RE.match(text) and len(text) in (10, 13):
        seconds = int(text[:10])
    else:
        try:
            ts = pd.Timestamp(text)
        except (ValueError, TypeError, OverflowError) as e:
            raise InvalidDateFormat(label, value) from e
        if ts is pd.NaT:
            raise InvalidDateFormat(label, value)
        ts = ts.tz_localize("UTC") if ts.tzinfo is None else ts.tz_convert("UTC")
        seconds = int(ts.timestamp())

    must_be_within_past_year(seconds, label, now)
    return seconds * 1000
