# app/conftest.py
"""
공용 pytest 픽스처.

서비스/라우트 테스트는 애플리케이션의 엔진 팩토리로 만든 인메모리 SQLite 위에서 실행됩니다.
"""

import pytest
from flask_jwt_extended import create_access_token

from app import create_app
from app.core.database import create_db_engine, init_db
from app.api.loos.services import LooService
from app.models.loo import LooMutation, Coordinates

LOO_A = 'a' * 24
LOO_B = 'b' * 24
LOO_C = 'c' * 24


@pytest.fixture
def engine():
    engine = create_db_engine('sqlite://')
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def loo_service(engine):
    return LooService(engine, cache_size=10)


@pytest.fixture
def app(engine):
    app = create_app('testing', engine=engine)
    yield app


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers(app):
    with app.app_context():
        token = create_access_token(identity='user-1', additional_claims={'nickname': 'tester'})
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def make_mutation():
    """LooMutation 생성 헬퍼. location은 (lat, lng) 튜플로 받을 수 있습니다."""
    def _make(**kwargs):
        location = kwargs.get('location')
        if isinstance(location, tuple):
            kwargs['location'] = Coordinates(lat=location[0], lng=location[1])
        return LooMutation(**kwargs)
    return _make
