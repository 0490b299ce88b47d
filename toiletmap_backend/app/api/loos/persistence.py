# app/api/loos/persistence.py
"""
변경 영속화 계층.

부분 변경(LooMutation)을 toilets 테이블에 반영하고, 같은 트랜잭션 안에서
record_version 감사 로그에 변경 전/후 스냅샷을 한 행 추가합니다.

- insert_loo: 새 행 INSERT + 최초 버전 기록
- update_loo: 기존 행 UPDATE + 버전 기록, 영향받은 행 수 반환 (0이면 호출자가 INSERT로 대체)

SQL에 들어가는 컬럼명은 MUTATION_COLUMNS 화이트리스트에서만 선택합니다.
"""

import logging
from datetime import datetime
from typing import Dict, Any, Optional

from sqlalchemy import select, insert, update
from sqlalchemy.engine import Connection

from app.models.loo import LooMutation, UNSET, validate_opening_times
from app.models.tables import toilets, record_version
from app.utils.datetime_utils import DateTimeUtils
from app.utils.geo_utils import encode_geohash
from app.api.loos.expressions import make_geography_point, appended_contributors

logger = logging.getLogger(__name__)

# LooMutation 필드명 -> toilets 컬럼 (active, opening_times, location, verified_at은 별도 처리)
MUTATION_COLUMNS = {
    'name': toilets.c.name,
    'area_id': toilets.c.area_id,
    'accessible': toilets.c.accessible,
    'all_gender': toilets.c.all_gender,
    'attended': toilets.c.attended,
    'automatic': toilets.c.automatic,
    'baby_change': toilets.c.baby_change,
    'children': toilets.c.children,
    'men': toilets.c.men,
    'women': toilets.c.women,
    'urinal_only': toilets.c.urinal_only,
    'radar': toilets.c.radar,
    'notes': toilets.c.notes,
    'no_payment': toilets.c.no_payment,
    'payment_details': toilets.c.payment_details,
    'removal_reason': toilets.c.removal_reason,
}

# 감사 스냅샷에 담는 컬럼. 공간 컬럼은 location(GeoJSON)으로 대신합니다.
SNAPSHOT_COLUMNS = tuple(column for column in toilets.c if column.name != toilets.c.geography.name)


def build_column_values(mutation: LooMutation, for_create: bool) -> Dict[str, Any]:
    """
    변경 내용을 {컬럼명: 값} 딕셔너리로 변환합니다.
    UNSET 필드는 제외되고, None은 컬럼을 비우는 값으로 유지됩니다.
    """
    values: Dict[str, Any] = {}

    if mutation.active is not UNSET:
        values[toilets.c.active.name] = mutation.active
    elif for_create:
        values[toilets.c.active.name] = True

    for attr, column in MUTATION_COLUMNS.items():
        value = getattr(mutation, attr)
        if value is not UNSET:
            values[column.name] = value

    if mutation.opening_times is not UNSET:
        values[toilets.c.opening_times.name] = validate_opening_times(mutation.opening_times)

    if mutation.verified_at is not UNSET:
        values[toilets.c.verified_at.name] = DateTimeUtils.coerce_datetime(mutation.verified_at)

    values.update(build_location_values(mutation.location))
    return values


def build_location_values(location: Any) -> Dict[str, Any]:
    """좌표(Coordinates)로부터 geography / location / geohash 세 컬럼의 값을 함께 만듭니다."""
    if location is UNSET:
        return {}
    if location is None:
        return {
            toilets.c.geography.name: None,
            toilets.c.location.name: None,
            toilets.c.geohash.name: None,
        }
    return {
        toilets.c.geography.name: make_geography_point(location.lng, location.lat),
        toilets.c.location.name: location.to_geojson(),
        toilets.c.geohash.name: encode_geohash(location.lat, location.lng),
    }


def read_snapshot(conn: Connection, loo_id: str, for_update: bool = False) -> Optional[Dict[str, Any]]:
    """감사 로그에 기록할 형태(JSON 호환)로 현재 행을 읽습니다."""
    stmt = select(*SNAPSHOT_COLUMNS).where(toilets.c.id == loo_id)
    if for_update:
        stmt = stmt.with_for_update()
    row = conn.execute(stmt).mappings().first()
    if row is None:
        return None
    snapshot = dict(row)
    snapshot['contributors'] = list(snapshot.get('contributors') or [])
    return DateTimeUtils.for_json(snapshot)


def append_version(conn: Connection, loo_id: str, previous: Optional[Dict[str, Any]], ts: datetime) -> None:
    """쓰기 직후의 스냅샷을 읽어 감사 로그에 한 행을 추가합니다."""
    current = read_snapshot(conn, loo_id)
    conn.execute(
        insert(record_version).values(ts=ts, record=current, old_record=previous)
    )


def insert_loo(conn: Connection, loo_id: str, mutation: LooMutation,
               contributor: Optional[str], now: datetime) -> None:
    values = build_column_values(mutation, for_create=True)
    values.update({
        toilets.c.id.name: loo_id,
        toilets.c.created_at.name: now,
        toilets.c.updated_at.name: now,
        toilets.c.contributors.name: [contributor] if contributor else [],
    })
    conn.execute(insert(toilets).values(**values))
    append_version(conn, loo_id, None, now)
    logger.info(f"Inserted loo {loo_id} with {len(values)} columns")


def update_loo(conn: Connection, loo_id: str, mutation: LooMutation,
               contributor: Optional[str], now: datetime) -> int:
    """영향받은 행 수(0 또는 1)를 반환합니다."""
    previous = read_snapshot(conn, loo_id, for_update=True)

    values = build_column_values(mutation, for_create=False)
    values[toilets.c.updated_at.name] = now
    if contributor:
        values[toilets.c.contributors.name] = appended_contributors(toilets.c.contributors, contributor)

    result = conn.execute(
        update(toilets).where(toilets.c.id == loo_id).values(**values)
    )
    if result.rowcount == 0:
        return 0

    append_version(conn, loo_id, previous, now)
    logger.info(f"Updated loo {loo_id} with {len(values)} columns")
    return result.rowcount
