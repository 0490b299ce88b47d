# app/core/security.py
from typing import Any, Mapping, Optional


def _non_empty(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def extract_contributor(claims: Optional[Mapping[str, Any]], profile_key: Optional[str] = None) -> Optional[str]:
    """
    JWT 클레임에서 감사 로그에 남길 기여자 이름을 추출합니다.

    우선순위: 프로필 클레임의 nickname -> nickname -> name -> sub
    토큰 발급과 서명 검증은 flask_jwt_extended와 외부 인증 서버가 담당합니다.
    """
    if not claims:
        return None

    if profile_key:
        profile = claims.get(profile_key)
        if isinstance(profile, Mapping):
            nickname = _non_empty(profile.get('nickname'))
            if nickname:
                return nickname

    for key in ('nickname', 'name', 'sub'):
        value = _non_empty(claims.get(key))
        if value:
            return value
    return None
