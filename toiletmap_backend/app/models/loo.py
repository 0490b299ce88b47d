# app/models/loo.py
import logging
import re
import secrets
from dataclasses import dataclass, field, fields
from datetime import datetime
from typing import Optional, List, Dict, Any, Mapping, Tuple

from app.core.constants import LOO_ID_LENGTH
from app.utils.datetime_utils import DateTimeUtils, to_iso

logger = logging.getLogger(__name__)


class _Unset:
    """
    '값이 전달되지 않음'을 나타내는 센티널.
    변경 요청에서 None(명시적 삭제)과 UNSET(변경하지 않음)을 구분하는 데 사용합니다.
    """
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return 'UNSET'

    def __bool__(self) -> bool:
        return False


UNSET = _Unset()

_LOO_ID_PATTERN = re.compile(r'^[0-9a-f]{%d}$' % LOO_ID_LENGTH)
_TIME_PATTERN = re.compile(r'^([01][0-9]|2[0-3]):[0-5][0-9]$')
ALL_DAY = ['00:00', '00:00']

# 지도용 압축 표현: (id, geohash, 기능 비트마스크)
CompressedLoo = Tuple[str, str, int]


def generate_loo_id() -> str:
    """12바이트 암호학적 난수를 24자 16진수 문자열로 인코딩한 새 ID를 생성합니다."""
    return secrets.token_hex(12)


def is_valid_loo_id(value: Any) -> bool:
    return isinstance(value, str) and bool(_LOO_ID_PATTERN.match(value))


def validate_opening_times(value: Any) -> Optional[List[List[str]]]:
    """
    영업 시간 구조를 검증하고 그대로 반환합니다.

    - None: 알 수 없음
    - 월요일부터 일요일까지 정확히 7개 항목
    - 각 항목은 [] (휴무/미상) 또는 ["HH:mm", "HH:mm"] (open < close)
    - ["00:00", "00:00"]은 24시간 영업을 뜻하는 특수 값

    잘못된 구조라면 위반한 제약을 담은 ValueError를 발생시킵니다.
    """
    if value is None:
        return None
    if not isinstance(value, (list, tuple)):
        raise ValueError("영업 시간은 배열이어야 합니다.")
    if len(value) != 7:
        raise ValueError(f"영업 시간은 정확히 7일치여야 합니다. (현재 {len(value)}개)")

    normalized = []
    for index, day in enumerate(value):
        if not isinstance(day, (list, tuple)):
            raise ValueError(f"{index}번째 요일의 영업 시간은 배열이어야 합니다.")
        if len(day) == 0:
            normalized.append([])
            continue
        if len(day) != 2:
            raise ValueError(f"{index}번째 요일은 [] 또는 [open, close] 형식이어야 합니다.")
        open_time, close_time = day
        for time_value in (open_time, close_time):
            if not isinstance(time_value, str) or not _TIME_PATTERN.match(time_value):
                raise ValueError(f"{index}번째 요일의 시간은 HH:mm 형식이어야 합니다: {time_value!r}")
        if [open_time, close_time] != ALL_DAY and not open_time < close_time:
            raise ValueError(f"{index}번째 요일의 여는 시간은 닫는 시간보다 빨라야 합니다.")
        normalized.append([open_time, close_time])
    return normalized


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float

    def to_dict(self) -> Dict[str, float]:
        return {'lat': self.lat, 'lng': self.lng}

    def to_geojson(self) -> Dict[str, Any]:
        """저장소의 location 컬럼 형식 ({type, coordinates: [lng, lat]})"""
        return {'type': 'Point', 'coordinates': [self.lng, self.lat]}

    @classmethod
    def from_geojson(cls, value: Any) -> Optional["Coordinates"]:
        """{coordinates: [lng, lat]} 형태에서 좌표를 추출합니다. 형식이 맞지 않으면 None."""
        if not isinstance(value, Mapping):
            return None
        coordinates = value.get('coordinates')
        if not isinstance(coordinates, (list, tuple)) or len(coordinates) < 2:
            return None
        lng, lat = coordinates[0], coordinates[1]
        if isinstance(lat, bool) or isinstance(lng, bool):
            return None
        if not isinstance(lat, (int, float)) or not isinstance(lng, (int, float)):
            return None
        return cls(lat=float(lat), lng=float(lng))


@dataclass
class AdminGeo:
    name: Optional[str]
    type: Optional[str]


# 저장소 컬럼명 -> 외부 노출 필드명. 공통 필드 변환의 기준 표입니다.
SHARED_BOOLEAN_FIELDS = (
    ('accessible', 'accessible'),
    ('active', 'active'),
    ('all_gender', 'allGender'),
    ('attended', 'attended'),
    ('automatic', 'automatic'),
    ('baby_change', 'babyChange'),
    ('children', 'children'),
    ('men', 'men'),
    ('women', 'women'),
    ('urinal_only', 'urinalOnly'),
    ('no_payment', 'noPayment'),
    ('radar', 'radar'),
)
SHARED_TEXT_FIELDS = (
    ('geohash', 'geohash'),
    ('notes', 'notes'),
    ('payment_details', 'paymentDetails'),
    ('removal_reason', 'removalReason'),
)


def _safe_opening_times(value: Any) -> Optional[List[List[str]]]:
    try:
        return validate_opening_times(value)
    except ValueError:
        logger.warning(f"Ignoring malformed opening_times value from store: {value!r}")
        return None


def map_shared_fields(source: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """
    저장소 표현(행 또는 감사 로그 스냅샷)을 외부 노출 표현의 공통 필드로 변환합니다.
    반환되는 키는 camelCase이며, 좌표는 Coordinates 객체로 변환됩니다.
    """
    source = source or {}
    shared: Dict[str, Any] = {}
    for column, key in SHARED_TEXT_FIELDS:
        shared[key] = source.get(column)
    for column, key in SHARED_BOOLEAN_FIELDS:
        value = source.get(column)
        shared[key] = bool(value) if value is not None else None
    shared['openingTimes'] = _safe_opening_times(source.get('opening_times'))
    shared['location'] = Coordinates.from_geojson(source.get('location'))
    return shared


@dataclass
class Loo:
    """
    'toilets' 테이블의 한 행을 외부에 노출하는 형태로 표현한 도메인 모델.
    기여자 목록 원본 대신 기여자 수만 노출합니다.
    """
    id: str
    name: Optional[str] = None
    area: List[AdminGeo] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    verified_at: Optional[datetime] = None
    geohash: Optional[str] = None
    accessible: Optional[bool] = None
    active: Optional[bool] = None
    all_gender: Optional[bool] = None
    attended: Optional[bool] = None
    automatic: Optional[bool] = None
    baby_change: Optional[bool] = None
    children: Optional[bool] = None
    men: Optional[bool] = None
    women: Optional[bool] = None
    urinal_only: Optional[bool] = None
    no_payment: Optional[bool] = None
    radar: Optional[bool] = None
    notes: Optional[str] = None
    payment_details: Optional[str] = None
    removal_reason: Optional[str] = None
    opening_times: Optional[List[List[str]]] = None
    location: Optional[Coordinates] = None
    contributors_count: int = 0

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Loo":
        """
        저장소에서 읽은 행(area_name/area_type 조인 컬럼 포함 가능)으로 Loo 인스턴스를 생성합니다.
        """
        shared = map_shared_fields(row)
        area_name = row.get('area_name')
        area_type = row.get('area_type')
        area = [] if area_name is None and area_type is None else [AdminGeo(area_name, area_type)]
        contributors = row.get('contributors') or []

        return cls(
            id=str(row['id']),
            name=row.get('name'),
            area=area,
            created_at=DateTimeUtils.coerce_datetime(row.get('created_at')),
            updated_at=DateTimeUtils.coerce_datetime(row.get('updated_at')),
            verified_at=DateTimeUtils.coerce_datetime(row.get('verified_at')),
            geohash=shared['geohash'],
            accessible=shared['accessible'],
            active=shared['active'],
            all_gender=shared['allGender'],
            attended=shared['attended'],
            automatic=shared['automatic'],
            baby_change=shared['babyChange'],
            children=shared['children'],
            men=shared['men'],
            women=shared['women'],
            urinal_only=shared['urinalOnly'],
            no_payment=shared['noPayment'],
            radar=shared['radar'],
            notes=shared['notes'],
            payment_details=shared['paymentDetails'],
            removal_reason=shared['removalReason'],
            opening_times=shared['openingTimes'],
            location=shared['location'],
            contributors_count=len(contributors) if isinstance(contributors, (list, tuple)) else 0,
        )

    def to_dict(self) -> Dict[str, Any]:
        """API 응답 형식(camelCase)의 딕셔너리로 변환합니다."""
        return {
            'id': self.id,
            'name': self.name,
            'area': [{'name': a.name, 'type': a.type} for a in self.area],
            'createdAt': to_iso(self.created_at),
            'updatedAt': to_iso(self.updated_at),
            'verifiedAt': to_iso(self.verified_at),
            'geohash': self.geohash,
            'accessible': self.accessible,
            'active': self.active,
            'allGender': self.all_gender,
            'attended': self.attended,
            'automatic': self.automatic,
            'babyChange': self.baby_change,
            'children': self.children,
            'men': self.men,
            'women': self.women,
            'urinalOnly': self.urinal_only,
            'noPayment': self.no_payment,
            'radar': self.radar,
            'notes': self.notes,
            'paymentDetails': self.payment_details,
            'removalReason': self.removal_reason,
            'openingTimes': self.opening_times,
            'location': self.location.to_dict() if self.location else None,
            'contributorsCount': self.contributors_count,
            'reports': [],
        }


@dataclass
class NearbyLoo(Loo):
    """근접 검색 결과. 검색 지점까지의 거리(미터)를 함께 담습니다."""
    distance: float = 0.0

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "NearbyLoo":
        base = Loo.from_row(row)
        values = {f.name: getattr(base, f.name) for f in fields(Loo)}
        return cls(distance=float(row['distance']), **values)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data['distance'] = self.distance
        return data


@dataclass
class LooSummary:
    """geohash 요약 응답 형식. 지도 팝업에 필요한 최소 정보만 담습니다."""
    id: str
    name: Optional[str]
    geohash: Optional[str]
    location: Optional[Coordinates]
    active: Optional[bool]
    accessible: Optional[bool]
    baby_change: Optional[bool]
    no_payment: Optional[bool]
    radar: Optional[bool]
    all_gender: Optional[bool]
    automatic: Optional[bool]

    @classmethod
    def from_loo(cls, loo: Loo) -> "LooSummary":
        return cls(
            id=loo.id, name=loo.name, geohash=loo.geohash, location=loo.location,
            active=loo.active, accessible=loo.accessible, baby_change=loo.baby_change,
            no_payment=loo.no_payment, radar=loo.radar, all_gender=loo.all_gender,
            automatic=loo.automatic,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'name': self.name,
            'geohash': self.geohash,
            'location': self.location.to_dict() if self.location else None,
            'active': self.active,
            'accessible': self.accessible,
            'babyChange': self.baby_change,
            'noPayment': self.no_payment,
            'radar': self.radar,
            'allGender': self.all_gender,
            'automatic': self.automatic,
        }


@dataclass
class LooMutation:
    """
    화장실 생성/수정 요청의 부분 변경 내용.
    모든 필드의 기본값은 UNSET이며, None은 '값을 비움'을 뜻합니다.
    """
    name: Any = UNSET
    area_id: Any = UNSET
    accessible: Any = UNSET
    active: Any = UNSET
    all_gender: Any = UNSET
    attended: Any = UNSET
    automatic: Any = UNSET
    baby_change: Any = UNSET
    children: Any = UNSET
    men: Any = UNSET
    women: Any = UNSET
    urinal_only: Any = UNSET
    radar: Any = UNSET
    notes: Any = UNSET
    no_payment: Any = UNSET
    payment_details: Any = UNSET
    removal_reason: Any = UNSET
    opening_times: Any = UNSET
    location: Any = UNSET
    verified_at: Any = UNSET

    def supplied(self) -> Dict[str, Any]:
        """UNSET이 아닌 필드만 모아 반환합니다."""
        return {f.name: getattr(self, f.name) for f in fields(self) if getattr(self, f.name) is not UNSET}
