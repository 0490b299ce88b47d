# app/api/loos/expressions.py
"""
방언별로 다르게 컴파일되는 SQL 표현식.

- make_geography_point: 좌표 -> 공간 컬럼 값
- sphere_distance: 공간 컬럼과 한 지점 사이의 구면 거리(미터)
- appended_contributors: 기여자 배열 끝에 한 명을 덧붙인 값

PostgreSQL에서는 geoalchemy2 타입과 PostGIS 함수(func.ST_*)로 렌더링하고,
SQLite에서는 연결 시 등록한 파이썬 함수와 JSON1 함수로 렌더링합니다.
모든 값은 바인드 파라미터로만 전달됩니다.
"""

from geoalchemy2 import Geography, Geometry
from sqlalchemy import Float, Text, cast, func, literal, literal_column
from sqlalchemy.ext.compiler import compiles
from sqlalchemy.sql.expression import FunctionElement

WGS84_SRID = 4326


class make_geography_point(FunctionElement):
    """make_geography_point(lng, lat)"""
    name = 'make_geography_point'
    inherit_cache = True

    def __init__(self, lng, lat):
        super().__init__(literal(lng, Float), literal(lat, Float))


class sphere_distance(FunctionElement):
    """sphere_distance(geography, lat, lng) -> 미터 단위 거리"""
    name = 'sphere_distance'
    type = Float()
    inherit_cache = True

    def __init__(self, geography, lat, lng):
        super().__init__(geography, literal(lat, Float), literal(lng, Float))


class appended_contributors(FunctionElement):
    """appended_contributors(contributors, contributor)"""
    name = 'appended_contributors'
    inherit_cache = True

    def __init__(self, column, contributor):
        super().__init__(column, literal(contributor, Text))


@compiles(make_geography_point, 'postgresql')
def _pg_make_geography_point(element, compiler, **kw):
    lng, lat = list(element.clauses)
    point = func.ST_SetSRID(func.ST_MakePoint(lng, lat), literal_column(str(WGS84_SRID)))
    return compiler.process(
        cast(point, Geography(geometry_type='POINT', srid=WGS84_SRID, spatial_index=False)), **kw
    )


@compiles(make_geography_point)
def _default_make_geography_point(element, compiler, **kw):
    lng, lat = list(element.clauses)
    return "make_point(%s, %s)" % (compiler.process(lng, **kw), compiler.process(lat, **kw))


@compiles(sphere_distance, 'postgresql')
def _pg_sphere_distance(element, compiler, **kw):
    geography, lat, lng = list(element.clauses)
    distance = func.ST_DistanceSphere(
        cast(geography, Geometry(geometry_type=None, spatial_index=False)),
        func.ST_MakePoint(lng, lat),
    )
    return compiler.process(distance, **kw)


@compiles(sphere_distance)
def _default_sphere_distance(element, compiler, **kw):
    geography, lat, lng = list(element.clauses)
    return "sphere_distance(%s, %s, %s)" % (
        compiler.process(geography, **kw),
        compiler.process(lat, **kw),
        compiler.process(lng, **kw),
    )


@compiles(appended_contributors, 'postgresql')
def _pg_appended_contributors(element, compiler, **kw):
    column, contributor = list(element.clauses)
    column_sql = compiler.process(column, **kw)
    contributor_sql = compiler.process(contributor, **kw)
    return (
        "CASE WHEN array_length(%(column)s, 1) IS NULL THEN ARRAY[%(value)s] "
        "ELSE array_append(%(column)s, %(value)s) END"
    ) % {'column': column_sql, 'value': contributor_sql}


@compiles(appended_contributors)
def _default_appended_contributors(element, compiler, **kw):
    column, contributor = list(element.clauses)
    return "json_insert(coalesce(%s, '[]'), '$[#]', %s)" % (
        compiler.process(column, **kw),
        compiler.process(contributor, **kw),
    )
