# stampbook/utils/test_datetime_utils.py
from datetime import date, datetime, timedelta, timezone

import pytest

from stampbook.utils.datetime_utils import DateTimeUtils

UTC_MORNING = datetime(2026, 10, 18, 1, 30, tzinfo=timezone.utc)


@pytest.mark.parametrize('text', [
    "2026-10-18T01:30:00Z",
    "2026-10-18T10:30:00+09:00",
    "2026-10-18T01:30:00.000000Z",
    "2026-10-18T01:30:00",
])
def test_parse_iso_datetime_normalizes_to_utc(text):
    parsed = DateTimeUtils.parse_iso_datetime(text)
    assert parsed == UTC_MORNING
    assert parsed.tzinfo == timezone.utc


@pytest.mark.parametrize('text', ["", "not-a-date", "2026-13-40"])
def test_parse_iso_datetime_rejects_garbage(text):
    with pytest.raises(ValueError):
        DateTimeUtils.parse_iso_datetime(text)


def test_to_iso_string_uses_z_suffix():
    seoul = datetime(2026, 10, 18, 10, 30, tzinfo=timezone(timedelta(hours=9)))
    assert DateTimeUtils.to_iso_string(seoul) == "2026-10-18T01:30:00Z"


def test_format_medium_has_no_leading_zero():
    assert DateTimeUtils.format_medium(UTC_MORNING) == "Oct 18, 2026"
    assert DateTimeUtils.format_medium(datetime(2026, 3, 5)) == "Mar 5, 2026"
    assert DateTimeUtils.format_medium(None) == ""


def test_for_firestore_converts_nested_dates():
    converted = DateTimeUtils.for_firestore({
        'collectedDate': date(2026, 10, 18),
        'createdAt': datetime(2026, 10, 18, 1, 30),
        'photos': [{'takenAt': date(2026, 10, 17)}],
        'likeCount': 3,
    })
    assert converted['collectedDate'] == datetime(2026, 10, 18, tzinfo=timezone.utc)
    assert converted['createdAt'] == UTC_MORNING
    assert converted['photos'][0]['takenAt'].tzinfo == timezone.utc
    assert converted['likeCount'] == 3


def test_from_firestore_accepts_known_shapes():
    assert DateTimeUtils.from_firestore(UTC_MORNING) == UTC_MORNING
    assert DateTimeUtils.from_firestore("2026-10-18T01:30:00Z") == UTC_MORNING
    assert DateTimeUtils.from_firestore(UTC_MORNING.timestamp()) == UTC_MORNING
    assert DateTimeUtils.from_firestore(None) is None


def test_from_firestore_ignores_unknown_values():
    assert DateTimeUtils.from_firestore("garbage") is None
    assert DateTimeUtils.from_firestore(object()) is None
