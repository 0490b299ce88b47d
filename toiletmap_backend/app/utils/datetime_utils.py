# app/utils/datetime_utils.py
"""
프로젝트 전체에서 일관된 시간/날짜 처리를 위한 중앙화된 유틸리티 모듈

이 모듈의 목적:
1. 모든 시간 관련 작업을 UTC 기준으로 표준화
2. 관계형 저장소(특히 timezone 정보를 잃는 SQLite)와의 호환성 보장
3. ISO 포맷 파싱/생성 통일
4. 감사 로그 스냅샷(JSON) 저장을 위한 변환 제공
"""

import logging
from datetime import datetime, date, timezone
from typing import Any, Optional
from dateutil import parser as dateutil_parser
from dateutil.relativedelta import relativedelta

logger = logging.getLogger(__name__)


class DateTimeUtils:
    """시간/날짜 처리를 위한 중앙화된 유틸리티 클래스"""

    @staticmethod
    def now() -> datetime:
        """현재 시간을 UTC timezone-aware datetime으로 반환"""
        return datetime.now(timezone.utc)

    @staticmethod
    def days_ago(days: int) -> datetime:
        """현재로부터 N일 전 시각을 반환"""
        return DateTimeUtils.now() - relativedelta(days=days)

    @staticmethod
    def parse_iso_datetime(iso_string: str) -> datetime:
        """
        ISO 포맷 문자열을 datetime 객체로 파싱

        지원 포맷:
        - 2024-01-15T10:30:00Z
        - 2024-01-15T10:30:00+09:00
        - 2024-01-15T10:30:00.123456Z
        - 2024-01-15T10:30:00
        """
        try:
            if not iso_string:
                raise ValueError("빈 문자열은 파싱할 수 없습니다")

            # 'Z' 접미사 처리 (UTC 표시)
            if iso_string.endswith('Z'):
                iso_string = iso_string[:-1] + '+00:00'

            dt = dateutil_parser.isoparse(iso_string)
            return DateTimeUtils.ensure_utc(dt)

        except Exception as e:
            logger.error(f"ISO datetime parse failed: {iso_string} - {e}")
            raise ValueError(f"잘못된 ISO 날짜 형식입니다: {iso_string}")

    @staticmethod
    def ensure_utc(dt: datetime) -> datetime:
        """timezone-naive datetime은 UTC로 간주하고, 모든 값을 UTC로 정규화"""
        if dt.tzinfo is None:
            return dt.replace(tzinfo=timezone.utc)
        return dt.astimezone(timezone.utc)

    @staticmethod
    def to_iso_string(dt: datetime) -> str:
        """datetime 객체를 ISO 포맷 문자열로 변환 (Z 접미사 포함)"""
        try:
            return DateTimeUtils.ensure_utc(dt).isoformat().replace('+00:00', 'Z')
        except Exception as e:
            logger.error(f"ISO string conversion failed: {dt} - {e}")
            raise ValueError(f"datetime 객체를 ISO 문자열로 변환할 수 없습니다: {dt}")

    @staticmethod
    def coerce_datetime(value: Any) -> Optional[datetime]:
        """
        저장소나 스냅샷에서 읽은 값을 UTC datetime으로 변환

        - None / 빈 문자열 -> None
        - 문자열 -> ISO 파싱 (실패 시 None)
        - date -> 자정 UTC datetime
        """
        if value is None or value == '':
            return None
        if isinstance(value, datetime):
            return DateTimeUtils.ensure_utc(value)
        if isinstance(value, date):
            return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
        if isinstance(value, str):
            try:
                return DateTimeUtils.parse_iso_datetime(value)
            except ValueError:
                return None
        return None

    @staticmethod
    def for_json(obj: Any) -> Any:
        """
        JSON 컬럼 저장을 위해 객체의 날짜/시간 필드를 ISO 문자열로 변환

        변환 규칙:
        - datetime -> ISO 문자열 (UTC, Z 접미사)
        - date -> YYYY-MM-DD
        - dict/list/tuple 내부 재귀적 변환
        """
        if isinstance(obj, datetime):
            return DateTimeUtils.to_iso_string(obj)
        elif isinstance(obj, date):
            return obj.strftime('%Y-%m-%d')
        elif isinstance(obj, dict):
            return {k: DateTimeUtils.for_json(v) for k, v in obj.items()}
        elif isinstance(obj, (list, tuple)):
            return [DateTimeUtils.for_json(item) for item in obj]
        return obj


# 편의를 위한 글로벌 함수들
def now() -> datetime:
    """현재 UTC 시간 반환"""
    return DateTimeUtils.now()

def parse_iso(iso_string: str) -> datetime:
    """ISO 문자열을 datetime으로 파싱"""
    return DateTimeUtils.parse_iso_datetime(iso_string)

def to_iso(dt: Optional[datetime]) -> Optional[str]:
    """datetime을 ISO 문자열로 변환 (None은 그대로)"""
    return DateTimeUtils.to_iso_string(dt) if dt is not None else None
