# app/utils/geo_utils.py
"""
좌표 계산을 위한 순수 함수 모음.

- 구면 거리 (PostGIS ST_DistanceSphere와 같은 구 반지름 사용)
- WKT 점 표현 생성/해석 (SQLite 개발 환경의 공간 컬럼 표현)
- geohash 인코딩
"""

import math
from typing import Optional, Tuple

from app.core.constants import GEOHASH_PRECISION

# ST_DistanceSphere가 사용하는 구 반지름 (미터)
SPHERE_RADIUS_METERS = 6370986.0

_GEOHASH_ALPHABET = '0123456789bcdefghjkmnpqrstuvwxyz'


def sphere_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """두 좌표 사이의 구면 거리(미터)를 하버사인 공식으로 계산합니다."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lng2 - lng1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    return 2 * SPHERE_RADIUS_METERS * math.asin(min(1.0, math.sqrt(a)))


def point_to_wkt(lng: float, lat: float) -> str:
    return 'POINT(%r %r)' % (float(lng), float(lat))


def wkt_to_point(wkt: Optional[str]) -> Optional[Tuple[float, float]]:
    """'POINT(lng lat)' 문자열을 (lng, lat) 튜플로 변환합니다. 해석할 수 없으면 None."""
    if not wkt or not wkt.startswith('POINT(') or not wkt.endswith(')'):
        return None
    parts = wkt[len('POINT('):-1].split()
    if len(parts) != 2:
        return None
    try:
        return float(parts[0]), float(parts[1])
    except ValueError:
        return None


def encode_geohash(lat: float, lng: float, precision: int = GEOHASH_PRECISION) -> str:
    """위경도를 지정된 길이의 geohash 문자열로 인코딩합니다."""
    lat_range = [-90.0, 90.0]
    lng_range = [-180.0, 180.0]
    chars = []
    bits = 0
    bit_count = 0
    even = True  # 짝수 번째 비트는 경도

    while len(chars) < precision:
        if even:
            mid = (lng_range[0] + lng_range[1]) / 2
            if lng >= mid:
                bits = (bits << 1) | 1
                lng_range[0] = mid
            else:
                bits = bits << 1
                lng_range[1] = mid
        else:
            mid = (lat_range[0] + lat_range[1]) / 2
            if lat >= mid:
                bits = (bits << 1) | 1
                lat_range[0] = mid
            else:
                bits = bits << 1
                lat_range[1] = mid
        even = not even
        bit_count += 1

        if bit_count == 5:
            chars.append(_GEOHASH_ALPHABET[bits])
            bits = 0
            bit_count = 0

    return ''.join(chars)

