# app/models/tables.py
"""
관계형 저장소의 테이블 정의.

- toilets: 화장실의 현재 상태 (ID당 한 행)
- record_version: 변경 이력을 담는 추가 전용(append-only) 감사 로그
- areas: 화장실이 속한 행정 구역

PostgreSQL(PostGIS)과 SQLite 모두에서 동작하도록 방언별 타입 변형(with_variant)을 사용합니다.
"""

from sqlalchemy import (
    MetaData, Table, Column, String, Text, Boolean, DateTime,
    BigInteger, Integer, ForeignKey, Index, JSON,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB
from geoalchemy2 import Geography

metadata = MetaData()

# 방언별 컬럼 타입
JsonDocument = JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), 'postgresql')
ContributorList = JSON().with_variant(ARRAY(Text), 'postgresql')
# SQLite에서는 WKT 문자열 'POINT(lng lat)'로 저장합니다.
GeographyColumn = Text().with_variant(
    Geography(geometry_type='POINT', srid=4326, spatial_index=False), 'postgresql'
)
VersionId = BigInteger().with_variant(Integer(), 'sqlite')

areas = Table(
    'areas', metadata,
    Column('id', String(24), primary_key=True),
    Column('name', Text),
    Column('type', Text),
    Column('created_at', DateTime(timezone=True)),
)

toilets = Table(
    'toilets', metadata,
    Column('id', String(24), primary_key=True),
    Column('name', Text),
    Column('area_id', String(24), ForeignKey('areas.id')),
    Column('contributors', ContributorList, nullable=False),
    Column('created_at', DateTime(timezone=True)),
    Column('updated_at', DateTime(timezone=True)),
    Column('verified_at', DateTime(timezone=True)),
    Column('active', Boolean),
    Column('accessible', Boolean),
    Column('all_gender', Boolean),
    Column('attended', Boolean),
    Column('automatic', Boolean),
    Column('baby_change', Boolean),
    Column('children', Boolean),
    Column('men', Boolean),
    Column('women', Boolean),
    Column('urinal_only', Boolean),
    Column('no_payment', Boolean),
    Column('radar', Boolean),
    Column('notes', Text),
    Column('payment_details', Text),
    Column('removal_reason', Text),
    Column('opening_times', JsonDocument),
    # {lat, lng}에서 파생되어 함께 갱신되는 공간 컬럼들
    Column('geography', GeographyColumn),
    Column('location', JsonDocument),
    Column('geohash', Text),
    Index('toilets_geohash_idx', 'geohash'),
    Index('toilets_updated_at_idx', 'updated_at'),
    Index('toilets_geography_idx', 'geography', postgresql_using='gist'),
)

record_version = Table(
    'record_version', metadata,
    Column('id', VersionId, primary_key=True, autoincrement=True),
    Column('ts', DateTime(timezone=True), nullable=False),
    # 변경 후 스냅샷. 대상 화장실은 record['id']로 식별합니다 (별도 외래키 없음).
    Column('record', JsonDocument),
    # 변경 전 스냅샷. 최초 버전이면 NULL.
    Column('old_record', JsonDocument),
    Index('record_version_ts_idx', 'ts'),
)
