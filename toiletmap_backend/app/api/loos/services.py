# app/api/loos/services.py
import logging
import math
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from marshmallow import ValidationError
from sqlalchemy import select, literal, true, func
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, OperationalError

# 도메인 모델
from app.models.loo import Loo, NearbyLoo, LooSummary, LooMutation, CompressedLoo, UNSET, Coordinates, is_valid_loo_id
from app.models.tables import toilets, record_version

# 핵심 설정 및 예외
from app.core.constants import (
    LOO_ID_LENGTH, RECENT_WINDOW_DAYS, MAX_RECENT_WINDOW_DAYS, TOP_AREAS_LIMIT,
)
from app.core.exceptions import LooConflictError, RetryableWriteError

# 유틸리티
from app.utils.datetime_utils import DateTimeUtils
from app.utils.lru_cache import LRUCache

# 화장실 도메인 하위 계층
from app.models.loo import validate_opening_times
from app.api.loos.audit import build_reports
from app.api.loos.persistence import insert_loo, update_loo
from app.api.loos.query import (
    SearchParams, SORT_KEYS, loo, area, LOO_FROM_WITH_AREA,
    create_search_where_builder, resolve_pagination, build_search_queries,
    build_count_query, build_select_by_id_query, build_select_by_ids_query,
)
from app.api.loos.spatial import (
    compress_row, build_proximity_query, build_geohash_query,
    build_all_active_query, build_updates_query,
)

logger = logging.getLogger(__name__)


class LooService:
    """
    화장실 레코드의 조회/생성/수정과 변경 이력(리포트) 조회를 담당하는 서비스.

    - 엔진만 보유하며, 각 작업마다 짧게 연결을 열고 닫습니다.
    - getById 결과는 크기가 제한된 LRU 캐시에 보관합니다. 캐시는 언제 비워져도 무방합니다.
    - 쓰기 작업은 한 트랜잭션 안에서 행 변경과 감사 로그 추가를 함께 수행합니다.
    """

    def __init__(self, engine: Engine, cache_size: int = 100):
        self.engine = engine
        self.cache: LRUCache[Loo] = LRUCache(cache_size)
        logger.info(f"LooService initialized (cache size: {cache_size}).")

    # =====================================================================================
    # 입력 검증 (저장소 접근 전)
    # =====================================================================================

    @staticmethod
    def _validate_id(loo_id: Any, field_name: str = 'id') -> str:
        if not is_valid_loo_id(loo_id):
            raise ValidationError({field_name: [f"ID는 {LOO_ID_LENGTH}자리 16진수 문자열이어야 합니다."]})
        return loo_id

    @staticmethod
    def _validate_coordinates(lat: Any, lng: Any) -> None:
        errors = {}
        if not isinstance(lat, (int, float)) or not math.isfinite(lat) or not -90 <= lat <= 90:
            errors['lat'] = ["위도는 -90 이상 90 이하여야 합니다."]
        if not isinstance(lng, (int, float)) or not math.isfinite(lng) or not -180 <= lng <= 180:
            errors['lng'] = ["경도는 -180 이상 180 이하여야 합니다."]
        if errors:
            raise ValidationError(errors)

    @staticmethod
    def _coerce_location(location: Any) -> Any:
        """{lat, lng} 매핑을 Coordinates로 변환합니다. UNSET/None/Coordinates는 그대로 둡니다."""
        if location is UNSET or location is None or isinstance(location, Coordinates):
            return location
        if isinstance(location, Mapping):
            try:
                return Coordinates(lat=float(location['lat']), lng=float(location['lng']))
            except (KeyError, TypeError, ValueError):
                pass
        raise ValidationError({'location': ["좌표는 {lat, lng} 형식이어야 합니다."]})

    def _validate_mutation(self, mutation: LooMutation) -> LooMutation:
        """검증을 마친 변경 내용을 반환합니다. 좌표는 항상 Coordinates로 정규화됩니다."""
        if mutation.opening_times is not UNSET:
            try:
                validate_opening_times(mutation.opening_times)
            except ValueError as e:
                raise ValidationError({'openingTimes': [str(e)]})
        location = self._coerce_location(mutation.location)
        if isinstance(location, Coordinates):
            self._validate_coordinates(location.lat, location.lng)
        if isinstance(mutation.area_id, str):
            self._validate_id(mutation.area_id, 'areaId')
        if location is not mutation.location:
            mutation = replace(mutation, location=location)
        return mutation

    @staticmethod
    def _validate_sort(params: SearchParams) -> None:
        if params.sort not in SORT_KEYS:
            raise ValidationError({'sort': [f"정렬 기준은 {', '.join(SORT_KEYS)} 중 하나여야 합니다."]})

    # =====================================================================================
    # 조회
    # =====================================================================================

    def health_check(self) -> None:
        """저장소 연결 상태를 확인합니다. 실패하면 저장소 예외가 그대로 전파됩니다."""
        with self.engine.connect() as conn:
            conn.execute(select(literal(1)))

    def get_by_id(self, loo_id: str) -> Optional[Loo]:
        self._validate_id(loo_id)
        cached = self.cache.get(loo_id)
        if cached is not None:
            return cached

        with self.engine.connect() as conn:
            row = conn.execute(build_select_by_id_query(loo_id)).mappings().first()
        if row is None:
            return None

        result = Loo.from_row(row)
        self.cache.set(loo_id, result)
        return result

    def get_by_ids(self, ids: List[str]) -> List[Loo]:
        """입력 순서를 유지하여 존재하는 레코드만 반환합니다."""
        if not ids:
            return []
        for loo_id in ids:
            self._validate_id(loo_id)

        with self.engine.connect() as conn:
            rows = conn.execute(build_select_by_ids_query(ids)).mappings().all()
        return [Loo.from_row(row) for row in rows]

    def search(self, params: SearchParams) -> Dict[str, Any]:
        """검색 결과 한 페이지와 전체 개수를 반환합니다. {'data': [Loo], 'total': int}"""
        self._validate_sort(params)
        limit, page, offset = resolve_pagination(params.limit, params.page)
        data_query, count_query = build_search_queries(params, limit, offset)

        with self.engine.connect() as conn:
            rows = conn.execute(data_query).mappings().all()
            total = conn.execute(count_query).scalar_one()

        return {'data': [Loo.from_row(row) for row in rows], 'total': int(total)}

    def get_search_metrics(self, params: SearchParams,
                           recent_window_days: int = RECENT_WINDOW_DAYS) -> Dict[str, Any]:
        """
        검색과 동일한 필터 조건 위에서 플래그별 개수와 상위 지역 분포를 집계합니다.
        totals.filtered는 같은 조건의 search 결과 total과 항상 같습니다.
        """
        if not 1 <= recent_window_days <= MAX_RECENT_WINDOW_DAYS:
            raise ValidationError({'recentWindowDays': [f"1 이상 {MAX_RECENT_WINDOW_DAYS} 이하여야 합니다."]})

        recent_threshold = DateTimeUtils.days_ago(recent_window_days)
        build_where = create_search_where_builder(params)
        extra_conditions = {
            'filtered': None,
            'active': loo.c.active == true(),
            'verified': loo.c.verified_at.isnot(None),
            'accessible': loo.c.accessible == true(),
            'babyChange': loo.c.baby_change == true(),
            'radar': loo.c.radar == true(),
            'freeAccess': loo.c.no_payment == true(),
            'recent': loo.c.updated_at >= recent_threshold,
        }
        count_column = func.count().label('count')
        area_query = (
            select(loo.c.area_id, area.c.name.label('area_name'), count_column)
            .select_from(LOO_FROM_WITH_AREA)
            .where(*build_where())
            .group_by(loo.c.area_id, area.c.name)
            .order_by(count_column.desc(), loo.c.area_id)
            .limit(TOP_AREAS_LIMIT)
        )

        totals = {}
        with self.engine.connect() as conn:
            for key, condition in extra_conditions.items():
                where = build_where() if condition is None else build_where(condition)
                totals[key] = int(conn.execute(build_count_query(where)).scalar_one())
            area_rows = conn.execute(area_query).mappings().all()

        areas = []
        for row in area_rows:
            name = row['area_name']
            if name is None:
                name = 'Unknown area' if row['area_id'] else 'Unassigned area'
            areas.append({'areaId': row['area_id'], 'name': name, 'count': int(row['count'])})

        return {'recentWindowDays': recent_window_days, 'totals': totals, 'areas': areas}

    def get_by_proximity(self, lat: float, lng: float, radius: float) -> List[NearbyLoo]:
        """반경(미터) 안의 레코드를 가까운 순으로 반환합니다."""
        self._validate_coordinates(lat, lng)
        if not isinstance(radius, (int, float)) or radius < 0:
            raise ValidationError({'radius': ["반경은 0 이상이어야 합니다."]})

        with self.engine.connect() as conn:
            rows = conn.execute(build_proximity_query(lat, lng, radius)).mappings().all()
        return [NearbyLoo.from_row(row) for row in rows]

    def get_within_geohash(self, geohash: str, active: Optional[bool] = True) -> List[Loo]:
        with self.engine.connect() as conn:
            rows = conn.execute(build_geohash_query(geohash, active)).mappings().all()
        return [Loo.from_row(row) for row in rows]

    def get_within_geohash_compressed(self, geohash: str, active: Optional[bool] = True) -> List[CompressedLoo]:
        with self.engine.connect() as conn:
            rows = conn.execute(build_geohash_query(geohash, active, compressed=True)).mappings().all()
        return [compress_row(row) for row in rows]

    def get_within_geohash_summary(self, geohash: str, active: Optional[bool] = True) -> List[LooSummary]:
        return [LooSummary.from_loo(item) for item in self.get_within_geohash(geohash, active)]

    def get_all_compressed(self) -> List[CompressedLoo]:
        with self.engine.connect() as conn:
            rows = conn.execute(build_all_active_query(compressed=True)).mappings().all()
        return [compress_row(row) for row in rows]

    def get_all(self) -> List[Loo]:
        """활성 상태이고 geohash가 있는 모든 레코드. 무거운 작업입니다."""
        with self.engine.connect() as conn:
            rows = conn.execute(build_all_active_query()).mappings().all()
        return [Loo.from_row(row) for row in rows]

    def get_updates(self, since: datetime) -> Dict[str, list]:
        """
        since 이후 변경된 레코드를 증분 동기화용 두 묶음으로 나눕니다.
        활성 레코드는 압축 표현으로 'upserted'에, 그 외는 ID만 'deleted'에 담깁니다.
        """
        since = DateTimeUtils.ensure_utc(since)
        with self.engine.connect() as conn:
            rows = conn.execute(build_updates_query(since)).mappings().all()

        upserted, deleted = [], []
        for row in rows:
            if row['active']:
                upserted.append(compress_row(row))
            else:
                deleted.append(row['id'])
        return {'upserted': upserted, 'deleted': deleted}

    def get_reports(self, loo_id: str, hydrate: bool = False,
                    include_contributors: bool = False) -> List[Dict[str, Any]]:
        """
        변경 이력을 오래된 것부터 반환합니다.
        hydrate=False면 {id, contributor, createdAt, diff} 요약 형태,
        True면 해당 버전 시점의 전체 필드와 isSystemReport까지 포함합니다.
        """
        self._validate_id(loo_id)
        stmt = (
            select(record_version.c.id, record_version.c.ts,
                   record_version.c.record, record_version.c.old_record)
            .where(record_version.c.record['id'].as_string() == loo_id)
            .order_by(record_version.c.ts.asc(), record_version.c.id.asc())
        )
        with self.engine.connect() as conn:
            versions = conn.execute(stmt).mappings().all()

        reports = build_reports(versions, include_contributors=include_contributors)
        if hydrate:
            return [report.to_dict() for report in reports]
        return [report.to_summary_dict() for report in reports]

    # =====================================================================================
    # 쓰기
    # =====================================================================================

    def create(self, loo_id: str, mutation: LooMutation, contributor: Optional[str]) -> Optional[Loo]:
        """[트랜잭션] 새 레코드를 생성합니다. 이미 존재하면 LooConflictError."""
        self._validate_id(loo_id)
        mutation = self._validate_mutation(mutation)
        now = DateTimeUtils.now()

        try:
            with self.engine.begin() as conn:
                exists = conn.execute(select(toilets.c.id).where(toilets.c.id == loo_id)).first()
                if exists is not None:
                    raise LooConflictError(loo_id)
                insert_loo(conn, loo_id, mutation, contributor, now)
        except (IntegrityError, OperationalError) as e:
            logger.error(f"Create transaction failed for loo {loo_id}: {e}", exc_info=True)
            raise RetryableWriteError(loo_id, e) from e
        finally:
            self.cache.invalidate(loo_id)

        logger.info(f"Loo {loo_id} created by {contributor or 'anonymous'}")
        return self.get_by_id(loo_id)

    def upsert(self, loo_id: str, mutation: LooMutation,
               contributor: Optional[str]) -> Tuple[Optional[Loo], bool]:
        """
        [트랜잭션] UPDATE를 먼저 시도하고, 영향받은 행이 없으면 INSERT로 대체합니다.
        (저장된 레코드, 새로 생성되었는지 여부)를 반환합니다.
        같은 신규 ID에 대한 동시 upsert는 한쪽이 고유성 위반으로 실패하며 RetryableWriteError로 전달됩니다.
        """
        self._validate_id(loo_id)
        mutation = self._validate_mutation(mutation)
        now = DateTimeUtils.now()

        try:
            with self.engine.begin() as conn:
                created = update_loo(conn, loo_id, mutation, contributor, now) == 0
                if created:
                    logger.info(f"Loo {loo_id} not found for update, inserting instead")
                    insert_loo(conn, loo_id, mutation, contributor, now)
        except (IntegrityError, OperationalError) as e:
            logger.error(f"Upsert transaction failed for loo {loo_id}: {e}", exc_info=True)
            raise RetryableWriteError(loo_id, e) from e
        finally:
            self.cache.invalidate(loo_id)

        return self.get_by_id(loo_id), created
