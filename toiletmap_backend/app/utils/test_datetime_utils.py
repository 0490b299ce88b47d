# app/utils/test_datetime_utils.py
"""
통합 시간 관리 유틸리티 기능 테스트

사용법: python -m pytest app/utils/test_datetime_utils.py -v
"""

import pytest
from datetime import datetime, date, timedelta, timezone
from app.utils.datetime_utils import DateTimeUtils, to_iso

def test_parse_iso_datetime():
    """ISO 포맷 파싱 테스트"""
    test_cases = [
        "2024-01-15T10:30:00Z",
        "2024-01-15T10:30:00+09:00",
        "2024-01-15T10:30:00.123456Z",
        "2024-01-15T10:30:00"
    ]

    for iso_string in test_cases:
        dt = DateTimeUtils.parse_iso_datetime(iso_string)
        assert isinstance(dt, datetime)
        assert dt.tzinfo == timezone.utc  # UTC로 정규화되어야 함

def test_parse_iso_datetime_converts_offset_to_utc():
    dt = DateTimeUtils.parse_iso_datetime("2024-01-15T10:30:00+09:00")
    assert dt == datetime(2024, 1, 15, 1, 30, tzinfo=timezone.utc)

def test_parse_iso_datetime_rejects_garbage():
    with pytest.raises(ValueError):
        DateTimeUtils.parse_iso_datetime("not-a-date")
    with pytest.raises(ValueError):
        DateTimeUtils.parse_iso_datetime("")

def test_to_iso_string_uses_z_suffix():
    dt = datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)
    assert DateTimeUtils.to_iso_string(dt) == "2024-01-15T10:30:00Z"
    # naive datetime은 UTC로 간주
    assert DateTimeUtils.to_iso_string(datetime(2024, 1, 15, 10, 30)) == "2024-01-15T10:30:00Z"
    assert to_iso(None) is None

def test_coerce_datetime():
    """저장소/스냅샷 값 변환 테스트"""
    assert DateTimeUtils.coerce_datetime(None) is None
    assert DateTimeUtils.coerce_datetime('') is None
    assert DateTimeUtils.coerce_datetime('garbage') is None
    assert DateTimeUtils.coerce_datetime(date(2024, 1, 15)) == datetime(2024, 1, 15, tzinfo=timezone.utc)
    assert DateTimeUtils.coerce_datetime("2024-01-15T10:30:00Z") == datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc)
    naive = DateTimeUtils.coerce_datetime(datetime(2024, 1, 15, 10, 30))
    assert naive.tzinfo == timezone.utc

def test_for_json():
    """JSON 스냅샷 변환 테스트"""
    test_data = {
        'created_at': datetime(2024, 1, 15, 10, 30, tzinfo=timezone.utc),
        'nested': {'event_date': date(2023, 12, 25)},
        'list_data': [{'updated_at': datetime(2024, 1, 1)}],
        'name': 'Station loo',
    }

    converted = DateTimeUtils.for_json(test_data)

    assert converted['created_at'] == "2024-01-15T10:30:00Z"
    assert converted['nested']['event_date'] == "2023-12-25"
    assert converted['list_data'][0]['updated_at'] == "2024-01-01T00:00:00Z"
    assert converted['name'] == 'Station loo'

def test_days_ago():
    threshold = DateTimeUtils.days_ago(30)
    delta = DateTimeUtils.now() - threshold
    assert timedelta(days=29, hours=23) < delta < timedelta(days=30, minutes=1)
