# app/api/loos/schemas.py
import re
from typing import Iterable, List

from marshmallow import (
    Schema, fields, validate, validates_schema, pre_load, post_load,
    ValidationError, RAISE, EXCLUDE,
)

from app.core.constants import (
    LOO_ID_LENGTH, MIN_SEARCH_LIMIT, MAX_SEARCH_LIMIT, DEFAULT_SEARCH_LIMIT,
    DEFAULT_PROXIMITY_RADIUS, MAX_PROXIMITY_RADIUS, RECENT_WINDOW_DAYS,
    MAX_RECENT_WINDOW_DAYS, GEOHASH_PRECISION,
)
from app.models.loo import Coordinates, LooMutation, UNSET, validate_opening_times
from app.api.loos.query import SearchParams, SORT_KEYS, DEFAULT_SORT

_GEOHASH_PATTERN = re.compile(r'^[0-9b-hjkmnp-z]+$')

# 공백 제거 후 빈 문자열이면 None으로 바꾸는 텍스트 필드
TRIMMED_TEXT_FIELDS = ('name', 'notes', 'paymentDetails', 'removalReason', 'areaId')


def validate_opening_times_field(value):
    """영업 시간 구조 검증 (7일, HH:mm, open < close)."""
    try:
        validate_opening_times(value)
    except ValueError as e:
        raise ValidationError(str(e))


class TriStateFilter(fields.Field):
    """
    검색용 삼상 필터.
    'true' -> True, 'false' -> False, 'unknown'/'null' -> None(값이 비어 있는 행), 'any' -> 조건 없음
    """
    default_error_messages = {'invalid': "true, false, unknown, any 중 하나여야 합니다."}

    def _deserialize(self, value, attr, data, **kwargs):
        normalized = str(value).strip().lower()
        if normalized in ('true', '1'):
            return True
        if normalized in ('false', '0'):
            return False
        if normalized in ('unknown', 'null'):
            return None
        if normalized in ('any', 'all', ''):
            return UNSET
        raise self.make_error('invalid')


class ActiveFlag(fields.Field):
    """geohash 조회용 active 파라미터. 'any'/'all'은 None(전체), 알 수 없는 값은 True로 처리합니다."""

    def _deserialize(self, value, attr, data, **kwargs):
        normalized = str(value).strip().lower()
        if normalized == 'false':
            return False
        if normalized in ('any', 'all'):
            return None
        return True


class CoordinatesSchema(Schema):
    """{lat, lng} 좌표 스키마."""
    class Meta:
        unknown = RAISE

    lat = fields.Float(required=True, validate=validate.Range(min=-90, max=90, error="위도는 -90 이상 90 이하여야 합니다."))
    lng = fields.Float(required=True, validate=validate.Range(min=-180, max=180, error="경도는 -180 이상 180 이하여야 합니다."))

    @post_load
    def make_coordinates(self, data, **kwargs):
        return Coordinates(lat=data['lat'], lng=data['lng'])


class LooMutationSchema(Schema):
    """
    PUT /api/loos/<id> 부분 변경 요청 스키마.
    전달되지 않은 필드는 UNSET으로 남고, null은 값을 비우는 요청으로 해석됩니다.
    """
    class Meta:
        unknown = RAISE

    name = fields.Str(allow_none=True, validate=validate.Length(max=200))
    area_id = fields.Str(data_key='areaId', allow_none=True, validate=validate.Length(equal=LOO_ID_LENGTH))
    accessible = fields.Bool(allow_none=True)
    active = fields.Bool(allow_none=True)
    all_gender = fields.Bool(data_key='allGender', allow_none=True)
    attended = fields.Bool(allow_none=True)
    automatic = fields.Bool(allow_none=True)
    baby_change = fields.Bool(data_key='babyChange', allow_none=True)
    children = fields.Bool(allow_none=True)
    men = fields.Bool(allow_none=True)
    women = fields.Bool(allow_none=True)
    urinal_only = fields.Bool(data_key='urinalOnly', allow_none=True)
    radar = fields.Bool(allow_none=True)
    notes = fields.Str(allow_none=True, validate=validate.Length(max=2000))
    no_payment = fields.Bool(data_key='noPayment', allow_none=True)
    payment_details = fields.Str(data_key='paymentDetails', allow_none=True, validate=validate.Length(max=2000))
    removal_reason = fields.Str(data_key='removalReason', allow_none=True, validate=validate.Length(max=2000))
    opening_times = fields.Raw(data_key='openingTimes', allow_none=True, validate=validate_opening_times_field)
    location = fields.Nested(CoordinatesSchema, allow_none=True)
    verified_at = fields.DateTime(data_key='verifiedAt', allow_none=True)

    @pre_load
    def trim_text_fields(self, data, **kwargs):
        if not isinstance(data, dict):
            return data
        data = dict(data)
        for key in TRIMMED_TEXT_FIELDS:
            value = data.get(key)
            if isinstance(value, str):
                value = value.strip()
                data[key] = value or None
        return data

    @post_load
    def make_mutation(self, data, **kwargs):
        if data.get('opening_times') is not None:
            data['opening_times'] = validate_opening_times(data['opening_times'])
        return LooMutation(**data)


class LooCreateSchema(LooMutationSchema):
    """POST /api/loos 생성 요청 스키마. id를 생략하면 서버가 생성합니다."""
    id = fields.Str(validate=validate.Length(equal=LOO_ID_LENGTH))

    @pre_load
    def trim_text_fields(self, data, **kwargs):
        data = super().trim_text_fields(data, **kwargs)
        if isinstance(data, dict) and isinstance(data.get('id'), str):
            data['id'] = data['id'].strip()
        return data

    @post_load
    def make_mutation(self, data, **kwargs):
        loo_id = data.pop('id', None)
        return {'id': loo_id, 'mutation': super().make_mutation(data, **kwargs)}


class SearchFilterSchema(Schema):
    """검색과 지표 조회가 공유하는 필터 필드."""
    class Meta:
        unknown = EXCLUDE

    search = fields.Str(validate=validate.Length(max=200))
    area_name = fields.Str(data_key='areaName', validate=validate.Length(max=200))
    area_type = fields.Str(data_key='areaType', validate=validate.Length(max=100))
    active = TriStateFilter()
    accessible = TriStateFilter()
    all_gender = TriStateFilter(data_key='allGender')
    radar = TriStateFilter()
    baby_change = TriStateFilter(data_key='babyChange')
    no_payment = TriStateFilter(data_key='noPayment')
    verified = fields.Bool()
    has_location = fields.Bool(data_key='hasLocation')
    sort = fields.Str(load_default=DEFAULT_SORT, validate=validate.OneOf(SORT_KEYS))
    limit = fields.Int(load_default=DEFAULT_SEARCH_LIMIT,
                       validate=validate.Range(min=MIN_SEARCH_LIMIT, max=MAX_SEARCH_LIMIT))
    page = fields.Int(load_default=1, validate=validate.Range(min=1))

    @pre_load
    def drop_blank_values(self, data, **kwargs):
        """빈 문자열과 공백만 있는 값은 전달되지 않은 것으로 취급합니다."""
        cleaned = {}
        for key, value in dict(data).items():
            if isinstance(value, str):
                value = value.strip()
                if not value:
                    continue
            cleaned[key] = value
        return cleaned

    def build_params(self, data) -> SearchParams:
        return SearchParams(**data)


class SearchQuerySchema(SearchFilterSchema):
    """GET /api/loos/search 쿼리 스키마."""

    @post_load
    def make_params(self, data, **kwargs):
        return self.build_params(data)


class MetricsQuerySchema(SearchFilterSchema):
    """GET /api/loos/metrics 쿼리 스키마."""
    recent_window_days = fields.Int(data_key='recentWindowDays', load_default=RECENT_WINDOW_DAYS,
                                    validate=validate.Range(min=1, max=MAX_RECENT_WINDOW_DAYS))

    @post_load
    def make_params(self, data, **kwargs):
        recent_window_days = data.pop('recent_window_days')
        return {'params': self.build_params(data), 'recent_window_days': recent_window_days}


class ProximityQuerySchema(Schema):
    """GET /api/loos/proximity 쿼리 스키마."""
    class Meta:
        unknown = RAISE

    lat = fields.Float(required=True, validate=validate.Range(min=-90, max=90, error="lat must be within -90 and 90"))
    lng = fields.Float(required=True, validate=validate.Range(min=-180, max=180, error="lng must be within -180 and 180"))
    radius = fields.Int(load_default=DEFAULT_PROXIMITY_RADIUS,
                        validate=validate.Range(min=0, max=MAX_PROXIMITY_RADIUS,
                                                error=f"radius must be between 0 and {MAX_PROXIMITY_RADIUS} meters"))


class GeohashQuerySchema(Schema):
    """GET /api/loos/geohash/<geohash> 경로/쿼리 스키마."""
    class Meta:
        unknown = EXCLUDE

    geohash = fields.Str(required=True, validate=validate.Length(min=1, max=GEOHASH_PRECISION))
    active = ActiveFlag(load_default=True)
    compressed = fields.Bool(load_default=False)
    summary = fields.Bool(load_default=False)

    @validates_schema
    def validate_geohash(self, data, **kwargs):
        geohash = data.get('geohash', '')
        if not _GEOHASH_PATTERN.match(geohash.lower()):
            raise ValidationError("geohash에 사용할 수 없는 문자가 포함되어 있습니다.", 'geohash')
        if data.get('compressed') and data.get('summary'):
            raise ValidationError("compressed와 summary는 동시에 요청할 수 없습니다.", 'summary')

    @post_load
    def normalize_geohash(self, data, **kwargs):
        data['geohash'] = data['geohash'].lower()
        return data


class ReportsQuerySchema(Schema):
    """GET /api/loos/<id>/reports 쿼리 스키마."""
    class Meta:
        unknown = EXCLUDE

    hydrate = fields.Bool(load_default=False)


class UpdatesQuerySchema(Schema):
    """GET /api/loos/updates 쿼리 스키마."""
    class Meta:
        unknown = EXCLUDE

    since = fields.DateTime(required=True)


def parse_ids(values: Iterable[str]) -> List[str]:
    """
    ids 쿼리 파라미터(쉼표 구분 또는 반복)를 ID 목록으로 변환합니다.
    비어 있거나 길이가 맞지 않는 ID가 있으면 ValidationError.
    """
    ids = [part.strip() for value in values for part in value.split(',') if part.strip()]
    if not ids:
        raise ValidationError({'ids': ["ids 쿼리 파라미터(쉼표 구분 또는 반복)를 입력해주세요."]})
    invalid = [loo_id for loo_id in ids if len(loo_id) != LOO_ID_LENGTH]
    if invalid:
        raise ValidationError({'ids': [f"ID는 정확히 {LOO_ID_LENGTH}자여야 합니다: {', '.join(invalid)}"]})
    return ids
