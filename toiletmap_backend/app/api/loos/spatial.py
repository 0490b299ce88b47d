# app/api/loos/spatial.py
"""
공간 조회와 지도용 압축 표현.

기능 비트마스크 (와이어 형식, 비트 순서 고정):

    bit 0 (1)  noPayment
    bit 1 (2)  allGender
    bit 2 (4)  automatic
    bit 3 (8)  accessible
    bit 4 (16) babyChange
    bit 5 (32) radar

null과 false는 모두 0 비트로 인코딩됩니다. 플래그를 추가한다면 기존 비트 뒤에만 붙여야 합니다.
"""

from datetime import datetime
from typing import Any, Dict, Mapping, Optional

from sqlalchemy import select, true, false
from sqlalchemy.sql import Select

from app.models.loo import CompressedLoo
from app.api.loos.expressions import sphere_distance
from app.api.loos.query import loo, LOO_COLUMNS, LOO_FROM_WITH_AREA

FILTER_BITS = (
    ('noPayment', 'no_payment', 0b000001),
    ('allGender', 'all_gender', 0b000010),
    ('automatic', 'automatic', 0b000100),
    ('accessible', 'accessible', 0b001000),
    ('babyChange', 'baby_change', 0b010000),
    ('radar', 'radar', 0b100000),
)

COMPRESSED_COLUMNS = (
    loo.c.id,
    loo.c.geohash,
    loo.c.no_payment,
    loo.c.all_gender,
    loo.c.automatic,
    loo.c.accessible,
    loo.c.baby_change,
    loo.c.radar,
)


def gen_loo_filter_bitmask(flags: Mapping[str, Any]) -> int:
    """camelCase 플래그 딕셔너리를 비트마스크로 인코딩합니다."""
    mask = 0
    for key, _, bit in FILTER_BITS:
        if flags.get(key):
            mask |= bit
    return mask


def decode_filter_mask(mask: int) -> Dict[str, bool]:
    return {key: bool(mask & bit) for key, _, bit in FILTER_BITS}


def compress_row(row: Mapping[str, Any]) -> CompressedLoo:
    """저장소 행(snake_case)을 (id, geohash, bitmask) 튜플로 변환합니다."""
    flags = {key: row.get(column) for key, column, _ in FILTER_BITS}
    return (row['id'], row.get('geohash') or '', gen_loo_filter_bitmask(flags))


def _active_condition(active: Optional[bool]):
    if active is None:
        return None
    return loo.c.active == (true() if active else false())


def build_proximity_query(lat: float, lng: float, radius: float) -> Select:
    """거리 계산식 하나를 필터, 투영, 정렬에 함께 사용합니다."""
    distance = sphere_distance(loo.c.geography, lat, lng)
    return (
        select(*LOO_COLUMNS, distance.label('distance'))
        .select_from(LOO_FROM_WITH_AREA)
        .where(distance <= radius)
        .order_by(distance, loo.c.id)
    )


def build_geohash_query(prefix: str, active: Optional[bool], compressed: bool = False) -> Select:
    if compressed:
        stmt = select(*COMPRESSED_COLUMNS).select_from(loo)
    else:
        stmt = select(*LOO_COLUMNS).select_from(LOO_FROM_WITH_AREA)
    stmt = stmt.where(loo.c.geohash.startswith(prefix, autoescape=True))
    active_condition = _active_condition(active)
    if active_condition is not None:
        stmt = stmt.where(active_condition)
    return stmt.order_by(loo.c.geohash, loo.c.id)


def build_all_active_query(compressed: bool = False) -> Select:
    if compressed:
        stmt = select(*COMPRESSED_COLUMNS).select_from(loo)
    else:
        stmt = select(*LOO_COLUMNS).select_from(LOO_FROM_WITH_AREA)
    return stmt.where(loo.c.active == true(), loo.c.geohash.isnot(None)).order_by(loo.c.id)


def build_updates_query(since: datetime) -> Select:
    return (
        select(*COMPRESSED_COLUMNS, loo.c.active)
        .select_from(loo)
        .where(loo.c.updated_at > since)
        .order_by(loo.c.updated_at, loo.c.id)
    )
