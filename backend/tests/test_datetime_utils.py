"""
Tests for datetime helpers
"""
from datetime import datetime, timedelta, timezone

import pytest

from app.utils.datetime_utils import parse_iso, to_iso, utc_now, utc_now_iso


def test_utc_now_is_naive():
    now = utc_now()
    assert now.tzinfo is None
    assert abs(now - datetime.now(timezone.utc).replace(tzinfo=None)) < timedelta(seconds=5)
    assert utc_now_iso().endswith("Z")


def test_to_iso():
    assert to_iso(None) is None
    assert to_iso(datetime(2027, 6, 1, 9, 0)) == "2027-06-01T09:00:00Z"
    aware = datetime(2027, 6, 1, 11, 0, tzinfo=timezone(timedelta(hours=2)))
    assert to_iso(aware) == "2027-06-01T09:00:00Z"


def test_parse_iso():
    assert parse_iso(None) is None
    assert parse_iso("") is None
    assert parse_iso("2027-06-01T09:00:00Z") == datetime(2027, 6, 1, 9, 0)
    assert parse_iso("2027-06-01T11:00:00+02:00") == datetime(2027, 6, 1, 9, 0)
    assert parse_iso("2027-06-01") == datetime(2027, 6, 1)


def test_parse_iso_rejects_garbage():
    with pytest.raises(ValueError):
        parse_iso("next tuesday")
