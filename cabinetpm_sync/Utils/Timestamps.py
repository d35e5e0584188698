# Timestamps.py
# Description: UTC timestamp helpers used for change tracking and conflict decisions
#
# Imports
from datetime import datetime, timezone
from typing import Any, Optional
#
# 3rd-Party Imports
#
# Local Imports
from cabinetpm_sync.Constants import TIMESTAMP_FORMAT
#
########################################################################################################################
#
# Functions:

def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_str() -> str:
    """Current UTC time as a sortable ISO-8601 string with a trailing 'Z'."""
    return format_timestamp(utc_now())


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: Any) -> datetime:
    """
    Parses an ISO-8601 timestamp into an aware UTC datetime.

    Accepts a trailing 'Z', explicit offsets, a space instead of 'T' (SQLite's
    CURRENT_TIMESTAMP form) and naive values, which are treated as UTC.

    Raises:
        ValueError: If the value is empty or not a recognizable timestamp.
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        if value is None:
            raise ValueError("Timestamp is missing")
        text = str(value).strip()
        if not text:
            raise ValueError("Timestamp is empty")
        if text.endswith("Z") or text.endswith("z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as e:
            raise ValueError(f"Unparsable timestamp: {value!r}") from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def try_parse_timestamp(value: Any) -> Optional[datetime]:
    try:
        return parse_timestamp(value)
    except ValueError:
        return None


def is_strictly_newer(candidate: Any, reference: Any) -> bool:
    """
    True when `candidate` is later than `reference`.

    A missing or unparsable reference loses against any valid candidate.
    An unparsable candidate raises ValueError.
    """
    candidate_dt = parse_timestamp(candidate)
    reference_dt = try_parse_timestamp(reference)
    if reference_dt is None:
        return True
    return candidate_dt > reference_dt

#
# End of Timestamps.py
########################################################################################################################
