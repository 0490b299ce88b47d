# app/api/loos/query.py
"""
검색/필터 쿼리 컴파일러.

검증된 SearchParams를 SQLAlchemy Core 문장(데이터 조회 + 개수 조회)으로 변환합니다.
호출자가 보낸 문자열은 항상 바인드 파라미터로만 들어가며,
컬럼과 정렬 식은 이 모듈에 고정된 표에서만 선택됩니다.
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence, Tuple

from sqlalchemy import select, func, or_, case, true, false
from sqlalchemy.sql import Select
from sqlalchemy.sql.elements import ColumnElement

from app.core.constants import MIN_SEARCH_LIMIT, MAX_SEARCH_LIMIT, DEFAULT_SEARCH_LIMIT
from app.models.loo import UNSET
from app.models.tables import toilets, areas

logger = logging.getLogger(__name__)

loo = toilets.alias('loo')
area = areas.alias('area')

LOO_FROM_WITH_AREA = loo.outerjoin(area, area.c.id == loo.c.area_id)

LOO_COLUMNS = (
    loo.c.id,
    loo.c.name,
    loo.c.created_at,
    loo.c.updated_at,
    loo.c.verified_at,
    loo.c.geohash,
    loo.c.accessible,
    loo.c.active,
    loo.c.all_gender,
    loo.c.attended,
    loo.c.automatic,
    loo.c.baby_change,
    loo.c.children,
    loo.c.men,
    loo.c.women,
    loo.c.urinal_only,
    loo.c.notes,
    loo.c.no_payment,
    loo.c.payment_details,
    loo.c.removal_reason,
    loo.c.opening_times,
    loo.c.radar,
    loo.c.location,
    loo.c.contributors,
    loo.c.area_id,
    area.c.name.label('area_name'),
    area.c.type.label('area_type'),
)

SORT_ORDER = {
    'updated-desc': loo.c.updated_at.desc().nulls_last(),
    'updated-asc': loo.c.updated_at.asc().nulls_last(),
    'created-desc': loo.c.created_at.desc().nulls_last(),
    'created-asc': loo.c.created_at.asc().nulls_last(),
    'verified-desc': loo.c.verified_at.desc().nulls_last(),
    'verified-asc': loo.c.verified_at.asc().nulls_last(),
    'name-asc': loo.c.name.asc().nulls_last(),
    'name-desc': loo.c.name.desc().nulls_last(),
}
SORT_KEYS = tuple(SORT_ORDER)
DEFAULT_SORT = 'updated-desc'

# SearchParams 필드명 -> 삼상(true/false/unknown) 필터 대상 컬럼
TRI_STATE_FILTER_COLUMNS = (
    ('active', loo.c.active),
    ('accessible', loo.c.accessible),
    ('all_gender', loo.c.all_gender),
    ('radar', loo.c.radar),
    ('baby_change', loo.c.baby_change),
    ('no_payment', loo.c.no_payment),
)

_LIKE_SPECIAL_CHARS = re.compile(r'([%_\\])')


@dataclass
class SearchParams:
    """
    검증된 검색 조건.
    삼상 필터는 True / False / None(값이 비어 있는 행) / UNSET(조건 없음) 중 하나입니다.
    verified, has_location은 None이면 조건을 적용하지 않습니다.
    """
    search: Optional[str] = None
    area_name: Optional[str] = None
    area_type: Optional[str] = None
    active: Any = UNSET
    accessible: Any = UNSET
    all_gender: Any = UNSET
    radar: Any = UNSET
    baby_change: Any = UNSET
    no_payment: Any = UNSET
    verified: Optional[bool] = None
    has_location: Optional[bool] = None
    sort: str = DEFAULT_SORT
    page: int = 1
    limit: int = DEFAULT_SEARCH_LIMIT


def escape_like(value: str) -> str:
    """LIKE 패턴의 특수 문자(%, _, \\)를 역슬래시로 이스케이프합니다."""
    return _LIKE_SPECIAL_CHARS.sub(r'\\\1', value)


def contains_ignore_case(column, term: str) -> ColumnElement:
    return column.ilike(f'%{escape_like(term)}%', escape='\\')


def tri_state_condition(column, value: Any) -> Optional[ColumnElement]:
    if value is UNSET:
        return None
    if value is None:
        return column.is_(None)
    return column == (true() if value else false())


def build_search_filter_conditions(params: SearchParams) -> List[ColumnElement]:
    conditions: List[ColumnElement] = []

    if params.search:
        conditions.append(or_(
            func.lower(loo.c.id) == func.lower(params.search),
            contains_ignore_case(loo.c.name, params.search),
            contains_ignore_case(loo.c.geohash, params.search),
            contains_ignore_case(loo.c.notes, params.search),
        ))

    if params.area_name:
        conditions.append(contains_ignore_case(area.c.name, params.area_name))

    if params.area_type:
        conditions.append(contains_ignore_case(area.c.type, params.area_type))

    for attr, column in TRI_STATE_FILTER_COLUMNS:
        condition = tri_state_condition(column, getattr(params, attr))
        if condition is not None:
            conditions.append(condition)

    if params.verified is not None:
        conditions.append(loo.c.verified_at.isnot(None) if params.verified else loo.c.verified_at.is_(None))

    if params.has_location is not None:
        conditions.append(loo.c.geography.isnot(None) if params.has_location else loo.c.geography.is_(None))

    return conditions


def create_search_where_builder(params: SearchParams) -> Callable[..., List[ColumnElement]]:
    """
    검색 조건으로 공통 WHERE 조건 목록을 만드는 함수를 반환합니다.
    집계 쿼리는 같은 조건에 추가 조건을 AND로 붙여 사용합니다.

        build_where = create_search_where_builder(params)
        stmt.where(*build_where(loo.c.active == true()))
    """
    base_conditions = build_search_filter_conditions(params)

    def build_where(*extra: ColumnElement) -> List[ColumnElement]:
        return [*base_conditions, *extra]

    return build_where


def resolve_pagination(limit: Any, page: Any) -> Tuple[int, int, int]:
    """(limit, page, offset) 반환. limit은 [1, 200], page는 1 이상으로 보정합니다."""
    limit = max(MIN_SEARCH_LIMIT, min(int(limit), MAX_SEARCH_LIMIT))
    page = max(1, int(page))
    return limit, page, (page - 1) * limit


def build_search_queries(params: SearchParams, limit: int, offset: int) -> Tuple[Select, Select]:
    build_where = create_search_where_builder(params)
    where = build_where()
    if params.sort not in SORT_ORDER:
        raise ValueError(f"Unsupported sort key: {params.sort!r}")
    order = SORT_ORDER[params.sort]

    data_query = (
        select(*LOO_COLUMNS)
        .select_from(LOO_FROM_WITH_AREA)
        .where(*where)
        .order_by(order, loo.c.id.asc())
        .limit(limit)
        .offset(offset)
    )
    count_query = select(func.count()).select_from(LOO_FROM_WITH_AREA).where(*where)
    return data_query, count_query


def build_count_query(where: Sequence[ColumnElement]) -> Select:
    return select(func.count()).select_from(LOO_FROM_WITH_AREA).where(*where)


def build_select_by_id_query(loo_id: str) -> Select:
    return select(*LOO_COLUMNS).select_from(LOO_FROM_WITH_AREA).where(loo.c.id == loo_id)


def build_select_by_ids_query(ids: Sequence[str]) -> Select:
    """ids 순서대로 정렬되는 조회 문장을 만듭니다."""
    if not ids:
        raise ValueError("build_select_by_ids_query requires ids")
    positions = {}
    for index, loo_id in enumerate(ids):
        positions.setdefault(loo_id, index)
    return (
        select(*LOO_COLUMNS)
        .select_from(LOO_FROM_WITH_AREA)
        .where(loo.c.id.in_(list(positions)))
        .order_by(case(positions, value=loo.c.id))
    )
