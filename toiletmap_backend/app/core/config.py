# app/core/config.py

import os # 'os' 모듈: 환경 변수를 읽기 위해 사용합니다.

class Config:
    """모든 환경 설정의 기반이 되는 공통 설정 클래스입니다."""
    # JWT 토큰 서명 검증에 사용하는 비밀 키입니다. 토큰 발급은 외부 인증 서버가 담당합니다.
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY')
    # 기여자 닉네임이 담긴 커스텀 프로필 클레임의 키 (예: 'https://toiletmap.org.uk/profile')
    AUTH_PROFILE_KEY = os.getenv('AUTH_PROFILE_KEY')

    # 관계형 저장소 연결 문자열. PostgreSQL + PostGIS 또는 SQLite를 지원합니다.
    DATABASE_URL = os.getenv('DATABASE_URL', 'sqlite:///toiletmap.db')
    DATABASE_ECHO = os.getenv('DATABASE_ECHO', 'false').lower() == 'true'

    # getById 읽기 캐시의 최대 항목 수
    LOO_CACHE_SIZE = int(os.getenv('LOO_CACHE_SIZE', 100))

class DevelopmentConfig(Config):
    """개발 환경을 위한 설정 클래스입니다."""
    DEBUG = True

class TestingConfig(Config):
    """테스트 환경을 위한 설정 클래스입니다."""
    TESTING = True
    DEBUG = False
    # 테스트는 항상 인메모리 SQLite 위에서 실행합니다.
    DATABASE_URL = os.getenv('TEST_DATABASE_URL', 'sqlite://')
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY', 'test-secret-key-with-enough-length-for-hs256')

class ProductionConfig(Config):
    """운영 환경을 위한 설정 클래스입니다."""
    DEBUG = False

# config_by_name: FLASK_ENV 값에 따라 create_app에서 설정 클래스를 선택하는 데 사용됩니다.
config_by_name = dict(
    development=DevelopmentConfig,
    testing=TestingConfig,
    production=ProductionConfig
)
