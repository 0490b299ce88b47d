# app/api/loos/audit.py
"""
감사 로그(record_version) -> 리포트 변환 엔진.

버전 로그의 각 행(record, old_record)을 사람이 읽을 수 있는 리포트로 바꿉니다.
저장소에 접근하지 않는 순수 함수들로만 구성되어 있습니다.

1. 각 스냅샷을 외부 노출 필드 스냅샷으로 변환
2. 두 스냅샷의 키 합집합에 대해 값이 다른 필드만 diff로 수집 (최초 버전이면 None)
3. 위치만 바뀐 변경을 시스템 리포트로 분류
4. 기여자 목록의 마지막 항목을 해당 변경의 기여자로 사용
5. '-location' 접미사를 가진 레거시 리포트 제외
6. 시간순(오래된 것 먼저) 정렬, 같은 시각이면 버전 id 순
7. 요청 시 기여자 가림 처리
"""

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from app.core.constants import ANONYMOUS_CONTRIBUTOR, LEGACY_LOCATION_SUFFIX
from app.models.loo import map_shared_fields
from app.models.report import Report
from app.utils.datetime_utils import DateTimeUtils, to_iso

# 시스템 리포트 판정 시 '다른 변경이 있었는가' 비교에서 빼는 필드
CLASSIFICATION_EXCLUDED_FIELDS = frozenset({'location', 'geohash'})

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def build_report_snapshot(source: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """저장소 스냅샷을 diff 비교용 외부 노출 스냅샷(JSON 호환)으로 변환합니다."""
    source = source or {}
    shared = map_shared_fields(source)
    location = shared.pop('location')
    snapshot = {
        'name': source.get('name'),
        'verifiedAt': to_iso(DateTimeUtils.coerce_datetime(source.get('verified_at'))),
    }
    snapshot.update(shared)
    snapshot['location'] = location.to_dict() if location else None
    return snapshot


def calculate_report_diff(current: Mapping[str, Any],
                          previous: Optional[Mapping[str, Any]]) -> Optional[Dict[str, Dict[str, Any]]]:
    if previous is None:
        return None

    diff = {}
    for key in sorted(set(previous) | set(current)):
        current_value = current.get(key)
        previous_value = previous.get(key)
        if current_value != previous_value:
            diff[key] = {'previous': previous_value, 'current': current_value}
    return diff or None


def is_system_report(current: Mapping[str, Any], previous: Optional[Mapping[str, Any]]) -> bool:
    """이전 스냅샷이 있고, 좌표가 바뀌었으며, 좌표 관련 필드 외에는 아무것도 바뀌지 않았는지 판정합니다."""
    if previous is None:
        return False
    if current.get('location') == previous.get('location'):
        return False
    for key in set(previous) | set(current):
        if key in CLASSIFICATION_EXCLUDED_FIELDS:
            continue
        if current.get(key) != previous.get(key):
            return False
    return True


def latest_contributor(record: Mapping[str, Any]) -> str:
    contributors = record.get('contributors')
    if isinstance(contributors, (list, tuple)) and contributors:
        return contributors[-1]
    return ANONYMOUS_CONTRIBUTOR


def map_version_to_report(version_id: int, record: Optional[Mapping[str, Any]],
                          old_record: Optional[Mapping[str, Any]],
                          ts: Optional[datetime] = None) -> Report:
    """버전 로그 한 행을 Report로 변환합니다."""
    record = record or {}
    current_snapshot = build_report_snapshot(record)
    previous_snapshot = build_report_snapshot(old_record) if old_record is not None else None

    # 최초 버전은 생성 시각, 이후 버전은 수정 시각을 리포트 시각으로 사용
    timestamp_field = 'created_at' if old_record is None else 'updated_at'
    created_at = DateTimeUtils.coerce_datetime(record.get(timestamp_field))
    if created_at is None:
        created_at = DateTimeUtils.coerce_datetime(ts)

    return Report(
        id=str(version_id),
        version_id=version_id,
        contributor=latest_contributor(record),
        created_at=created_at,
        verified_at=DateTimeUtils.coerce_datetime(record.get('verified_at')),
        diff=calculate_report_diff(current_snapshot, previous_snapshot),
        is_system_report=is_system_report(current_snapshot, previous_snapshot),
        snapshot=current_snapshot,
    )


def is_legacy_location_report(report: Report) -> bool:
    return bool(report.contributor) and report.contributor.endswith(LEGACY_LOCATION_SUFFIX)


def build_reports(versions: Iterable[Mapping[str, Any]], include_contributors: bool = False) -> List[Report]:
    """
    버전 로그 행들({id, ts, record, old_record})로 정렬된 리포트 목록을 만듭니다.
    include_contributors가 False면 모든 리포트의 기여자를 None으로 가립니다.
    """
    reports = [
        map_version_to_report(v['id'], v.get('record'), v.get('old_record'), v.get('ts'))
        for v in versions
    ]
    reports = [r for r in reports if not is_legacy_location_report(r)]
    reports.sort(key=lambda r: (r.created_at or _EPOCH, r.version_id))

    if not include_contributors:
        for report in reports:
            report.contributor = None
    return reports
