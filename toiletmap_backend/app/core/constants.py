# app/core/constants.py

# 화장실 ID는 12바이트 난수를 16진수로 인코딩한 24자 문자열입니다.
LOO_ID_LENGTH = 24

# 검색 한 페이지에서 반환할 수 있는 결과 수의 범위
MIN_SEARCH_LIMIT = 1
MAX_SEARCH_LIMIT = 200
DEFAULT_SEARCH_LIMIT = 50

# 근접 검색 반경 (미터)
DEFAULT_PROXIMITY_RADIUS = 1000
MAX_PROXIMITY_RADIUS = 50000

# 검색 지표에서 "최근 수정"으로 집계하는 기간 (일)
RECENT_WINDOW_DAYS = 30
MAX_RECENT_WINDOW_DAYS = 365

# 지표 화면에 노출하는 상위 지역 수
TOP_AREAS_LIMIT = 5

# 저장되는 geohash 문자열의 정밀도
GEOHASH_PRECISION = 12

# 기여자 목록이 비어 있을 때 보고서에 표시하는 이름
ANONYMOUS_CONTRIBUTOR = 'Anonymous'

# 과거 위치 전용 보고서 규칙으로 남은 기여자 접미사. 호출자에게 노출하지 않습니다.
LEGACY_LOCATION_SUFFIX = '-location'
