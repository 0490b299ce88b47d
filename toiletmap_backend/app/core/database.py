# app/core/database.py
"""
관계형 저장소 연결 관리.

- create_db_engine: DATABASE_URL로 엔진을 생성하고, SQLite라면 공간 함수를 등록합니다.
- init_db: 테이블이 없으면 생성합니다 (마이그레이션 도구가 아닌 최소한의 부트스트랩).

저장소 접근은 요청 단위입니다. 서비스는 엔진만 보유하고, 각 작업마다
`engine.connect()` / `engine.begin()`으로 짧게 연결을 사용합니다.
"""

import logging

from sqlalchemy import create_engine, event, text
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from app.models.tables import metadata
from app.utils.geo_utils import point_to_wkt, wkt_to_point, sphere_distance

logger = logging.getLogger(__name__)


def _sqlite_make_point(lng, lat):
    if lng is None or lat is None:
        return None
    return point_to_wkt(lng, lat)


def _sqlite_sphere_distance(geography, lat, lng):
    point = wkt_to_point(geography)
    if point is None or lat is None or lng is None:
        return None
    point_lng, point_lat = point
    return sphere_distance(point_lat, point_lng, lat, lng)


def _register_sqlite_functions(dbapi_connection, connection_record):
    """SQLite 연결마다 PostGIS 대체 함수를 등록합니다."""
    dbapi_connection.create_function('make_point', 2, _sqlite_make_point, deterministic=True)
    dbapi_connection.create_function('sphere_distance', 3, _sqlite_sphere_distance, deterministic=True)


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    """설정된 URL로 SQLAlchemy 엔진을 생성합니다."""
    is_sqlite = database_url.startswith('sqlite')
    connect_args = {"check_same_thread": False} if is_sqlite else {}
    engine_kwargs = {}

    # 인메모리 SQLite는 연결마다 별도 DB가 되므로 하나의 연결을 공유합니다.
    if is_sqlite and database_url in ('sqlite://', 'sqlite:///:memory:'):
        engine_kwargs['poolclass'] = StaticPool

    engine = create_engine(
        database_url,
        echo=echo,
        future=True,
        connect_args=connect_args,
        **engine_kwargs
    )

    if is_sqlite:
        event.listen(engine, 'connect', _register_sqlite_functions)

    logger.info(f"Database engine created for backend '{engine.dialect.name}'")
    return engine


def init_db(engine: Engine) -> None:
    """필요한 확장과 테이블을 생성합니다."""
    if engine.dialect.name == 'postgresql':
        with engine.begin() as conn:
            conn.execute(text("CREATE EXTENSION IF NOT EXISTS postgis"))
    metadata.create_all(bind=engine)
    logger.info("Database schema ensured")
