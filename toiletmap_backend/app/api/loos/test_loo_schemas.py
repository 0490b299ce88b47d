# app/api/loos/test_loo_schemas.py
import pytest
from marshmallow import ValidationError

from app.api.loos.schemas import (
    LooMutationSchema, LooCreateSchema, SearchQuerySchema, MetricsQuerySchema,
    ProximityQuerySchema, GeohashQuerySchema, parse_ids,
)
from app.models.loo import UNSET, Coordinates, validate_opening_times

WEEK = [['09:00', '17:00']] * 5 + [['00:00', '00:00'], []]


def test_empty_mutation_leaves_every_field_unset():
    mutation = LooMutationSchema().load({})
    assert mutation.supplied() == {}
    assert mutation.name is UNSET


def test_null_clears_and_text_is_trimmed():
    mutation = LooMutationSchema().load({'name': '  Station  ', 'notes': '   ', 'radar': None, 'location': None})
    assert mutation.supplied() == {'name': 'Station', 'notes': None, 'radar': None, 'location': None}


def test_location_becomes_coordinates():
    mutation = LooMutationSchema().load({'location': {'lat': 51.5, 'lng': -0.12}})
    assert mutation.location == Coordinates(lat=51.5, lng=-0.12)


@pytest.mark.parametrize('location', [
    {'lat': 91, 'lng': 0},
    {'lat': 0, 'lng': -181},
    {'lat': 0},
])
def test_out_of_range_coordinates_are_rejected(location):
    with pytest.raises(ValidationError) as excinfo:
        LooMutationSchema().load({'location': location})
    assert 'location' in excinfo.value.messages


def test_unknown_keys_are_rejected():
    with pytest.raises(ValidationError) as excinfo:
        LooMutationSchema().load({'colour': 'blue'})
    assert 'colour' in excinfo.value.messages


def test_area_id_must_be_24_characters():
    with pytest.raises(ValidationError):
        LooMutationSchema().load({'areaId': 'short'})
    assert LooMutationSchema().load({'areaId': ''}).area_id is None


def test_valid_opening_times_are_accepted():
    mutation = LooMutationSchema().load({'openingTimes': WEEK})
    assert mutation.opening_times == WEEK
    assert LooMutationSchema().load({'openingTimes': None}).opening_times is None


@pytest.mark.parametrize('opening_times', [
    WEEK[:6],                                   # 6일
    WEEK + [[]],                                # 8일
    [['17:00', '09:00']] + WEEK[1:],            # open > close
    [['09:00', '09:00']] + WEEK[1:],            # open == close
    [['24:00', '25:00']] + WEEK[1:],            # 범위 밖 시간
    [['9:00', '17:00']] + WEEK[1:],             # HH:mm 형식 아님
    [['09:00']] + WEEK[1:],                     # 항목 길이
    'always',
])
def test_invalid_opening_times_are_rejected(opening_times):
    with pytest.raises(ValidationError) as excinfo:
        LooMutationSchema().load({'openingTimes': opening_times})
    assert 'openingTimes' in excinfo.value.messages
    with pytest.raises(ValueError):
        validate_opening_times(opening_times)


def test_create_schema_returns_id_and_mutation():
    payload = LooCreateSchema().load({'id': 'a' * 24, 'accessible': True})
    assert payload['id'] == 'a' * 24
    assert payload['mutation'].supplied() == {'accessible': True}

    assert LooCreateSchema().load({})['id'] is None
    with pytest.raises(ValidationError):
        LooCreateSchema().load({'id': 'abc'})


def test_search_query_defaults():
    params = SearchQuerySchema().load({})
    assert params.sort == 'updated-desc'
    assert params.limit == 50
    assert params.page == 1
    assert params.active is UNSET
    assert params.verified is None


def test_search_query_tri_state_values():
    params = SearchQuerySchema().load({
        'active': 'unknown', 'accessible': 'true', 'radar': 'false', 'babyChange': 'any',
        'verified': 'true', 'hasLocation': 'false', 'search': '  ',
    })
    assert params.active is None
    assert params.accessible is True
    assert params.radar is False
    assert params.baby_change is UNSET
    assert params.verified is True
    assert params.has_location is False
    assert params.search is None


@pytest.mark.parametrize('query', [
    {'sort': 'random'},
    {'limit': '0'},
    {'limit': '201'},
    {'page': '0'},
    {'active': 'maybe'},
])
def test_search_query_rejects_out_of_bounds_values(query):
    with pytest.raises(ValidationError):
        SearchQuerySchema().load(query)


def test_metrics_query_carries_window():
    query = MetricsQuerySchema().load({'recentWindowDays': '7', 'active': 'true'})
    assert query['recent_window_days'] == 7
    assert query['params'].active is True
    with pytest.raises(ValidationError):
        MetricsQuerySchema().load({'recentWindowDays': '366'})


def test_proximity_query():
    query = ProximityQuerySchema().load({'lat': '51.5', 'lng': '-0.12'})
    assert query == {'lat': 51.5, 'lng': -0.12, 'radius': 1000}
    with pytest.raises(ValidationError):
        ProximityQuerySchema().load({'lat': '51.5', 'lng': '-0.12', 'radius': '50001'})


def test_geohash_query_active_mapping():
    assert GeohashQuerySchema().load({'geohash': 'GCPV'}) == {
        'geohash': 'gcpv', 'active': True, 'compressed': False, 'summary': False,
    }
    assert GeohashQuerySchema().load({'geohash': 'gcpv', 'active': 'any'})['active'] is None
    assert GeohashQuerySchema().load({'geohash': 'gcpv', 'active': 'false'})['active'] is False
    with pytest.raises(ValidationError):
        GeohashQuerySchema().load({'geohash': 'gcpa'})


def test_parse_ids_accepts_comma_separated_and_repeated_values():
    a, b, c = 'a' * 24, 'b' * 24, 'c' * 24
    assert parse_ids([f'{a},{b}', c]) == [a, b, c]
    with pytest.raises(ValidationError):
        parse_ids([])
    with pytest.raises(ValidationError):
        parse_ids(['short'])
