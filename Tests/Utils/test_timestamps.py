# test_timestamps.py
#
# Imports
from datetime import datetime, timedelta, timezone
#
# Third-Party Imports
import pytest
#
# Local Imports
from cabinetpm_sync.Utils.Timestamps import (
    format_timestamp,
    is_strictly_newer,
    parse_timestamp,
    try_parse_timestamp,
    utc_now_str,
)
#
########################################################################################################################
#
# Functions:

def test_now_string_shape():
    value = utc_now_str()
    assert value.endswith("Z")
    assert parse_timestamp(value).tzinfo is not None


def test_format_naive_is_utc():
    assert format_timestamp(datetime(2024, 5, 1, 8, 30)) == "2024-05-01T08:30:00.000000Z"


def test_format_converts_offsets():
    value = datetime(2024, 5, 1, 10, 30, tzinfo=timezone(timedelta(hours=2)))
    assert format_timestamp(value) == "2024-05-01T08:30:00.000000Z"


@pytest.mark.parametrize("text", [
    "2024-05-01T08:30:00Z",
    "2024-05-01T08:30:00.000000Z",
    "2024-05-01T10:30:00+02:00",
    "2024-05-01 08:30:00",
    "2024-05-01T08:30:00",
])
def test_parse_accepts_common_forms(text):
    assert parse_timestamp(text) == datetime(2024, 5, 1, 8, 30, tzinfo=timezone.utc)


@pytest.mark.parametrize("bad", [None, "", "   ", "yesterday", "2024-13-45T99:00:00Z"])
def test_parse_rejects_garbage(bad):
    with pytest.raises(ValueError):
        parse_timestamp(bad)
    assert try_parse_timestamp(bad) is None


def test_strictly_newer():
    assert is_strictly_newer("2024-05-01T09:00:00Z", "2024-05-01T08:00:00Z")
    assert not is_strictly_newer("2024-05-01T08:00:00Z", "2024-05-01T08:00:00Z")
    assert not is_strictly_newer("2024-05-01T07:00:00Z", "2024-05-01T08:00:00Z")


def test_missing_reference_loses():
    assert is_strictly_newer("2024-05-01T09:00:00Z", None)
    assert is_strictly_newer("2024-05-01T09:00:00Z", "garbage")


def test_unparsable_candidate_raises():
    with pytest.raises(ValueError):
        is_strictly_newer("garbage", "2024-05-01T08:00:00Z")
