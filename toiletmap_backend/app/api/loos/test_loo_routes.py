# app/api/loos/test_loo_routes.py
from sqlalchemy import insert

from app.models.tables import areas
from app.conftest import LOO_A, LOO_B


def create_loo(client, auth_headers, **payload):
    return client.post('/api/loos', json=payload, headers=auth_headers)


def test_post_requires_token(client):
    response = client.post('/api/loos', json={'id': LOO_A, 'name': 'Kiosk'})
    assert response.status_code == 401


def test_post_creates_and_get_returns_loo(client, auth_headers):
    response = create_loo(client, auth_headers, id=LOO_A, name='  Kiosk  ', accessible=True,
                          location={'lat': 51.5007, 'lng': -0.1246})
    assert response.status_code == 201
    body = response.get_json()
    assert body['id'] == LOO_A
    assert body['name'] == 'Kiosk'
    assert body['active'] is True
    assert body['contributorsCount'] == 1

    response = client.get(f'/api/loos/{LOO_A}')
    assert response.status_code == 200
    assert response.get_json()['location'] == {'lat': 51.5007, 'lng': -0.1246}


def test_post_without_id_generates_one(client, auth_headers):
    response = create_loo(client, auth_headers, name='Generated')
    assert response.status_code == 201
    assert len(response.get_json()['id']) == 24


def test_post_duplicate_id_conflicts(client, auth_headers):
    assert create_loo(client, auth_headers, id=LOO_A, name='One').status_code == 201
    response = create_loo(client, auth_headers, id=LOO_A, name='Two')
    assert response.status_code == 409
    assert response.get_json()['error_code'] == 'LOO_ALREADY_EXISTS'


def test_post_rejects_unknown_and_invalid_fields(client, auth_headers):
    response = create_loo(client, auth_headers, id=LOO_A, colour='blue')
    assert response.status_code == 400
    assert response.get_json()['error_code'] == 'VALIDATION_ERROR'

    response = create_loo(client, auth_headers, id=LOO_A, location={'lat': 91, 'lng': 0})
    assert response.status_code == 400


def test_get_unknown_and_malformed_ids(client):
    assert client.get(f'/api/loos/{LOO_A}').status_code == 404
    response = client.get('/api/loos/not-an-id')
    assert response.status_code == 400
    assert response.get_json()['error_code'] == 'VALIDATION_ERROR'


def test_put_creates_then_updates(client, auth_headers):
    response = client.put(f'/api/loos/{LOO_A}', json={'name': 'Fresh'}, headers=auth_headers)
    assert response.status_code == 201

    response = client.put(f'/api/loos/{LOO_A}', json={'radar': True}, headers=auth_headers)
    assert response.status_code == 200
    body = response.get_json()
    assert body['name'] == 'Fresh'
    assert body['radar'] is True
    assert body['contributorsCount'] == 2


def test_get_by_ids_keeps_order(client, auth_headers):
    create_loo(client, auth_headers, id=LOO_A, name='A')
    create_loo(client, auth_headers, id=LOO_B, name='B')

    response = client.get(f'/api/loos?ids={LOO_B},{LOO_A}')
    assert response.status_code == 200
    assert [item['id'] for item in response.get_json()['data']] == [LOO_B, LOO_A]

    assert client.get('/api/loos').status_code == 400


def test_reports_hide_contributors_without_token(client, auth_headers):
    create_loo(client, auth_headers, id=LOO_A, accessible=True)
    client.put(f'/api/loos/{LOO_A}', json={'accessible': False}, headers=auth_headers)

    anonymous = client.get(f'/api/loos/{LOO_A}/reports').get_json()
    assert anonymous['count'] == 2
    assert all(report['contributor'] is None for report in anonymous['data'])
    assert anonymous['data'][1]['diff']['accessible'] == {'previous': True, 'current': False}

    authorized = client.get(f'/api/loos/{LOO_A}/reports?hydrate=true', headers=auth_headers).get_json()
    assert [report['contributor'] for report in authorized['data']] == ['tester', 'tester']
    assert authorized['data'][0]['isSystemReport'] is False


def test_search_response_shape(client, auth_headers):
    create_loo(client, auth_headers, id=LOO_A, name='Alpha', radar=True)
    create_loo(client, auth_headers, id=LOO_B, name='Beta')

    response = client.get('/api/loos/search?radar=true&limit=1&sort=name-asc')
    assert response.status_code == 200
    body = response.get_json()
    assert body['total'] == 1
    assert body['count'] == 1
    assert body['page'] == 1
    assert body['pageSize'] == 1
    assert body['hasMore'] is False
    assert body['data'][0]['id'] == LOO_A

    response = client.get('/api/loos/search?limit=1')
    assert response.get_json()['hasMore'] is True

    assert client.get('/api/loos/search?sort=random').status_code == 400


def test_metrics_matches_search(client, auth_headers):
    create_loo(client, auth_headers, id=LOO_A, accessible=True)
    create_loo(client, auth_headers, id=LOO_B, accessible=False)

    metrics = client.get('/api/loos/metrics?accessible=true').get_json()
    search = client.get('/api/loos/search?accessible=true').get_json()
    assert metrics['totals']['filtered'] == search['total'] == 1


def test_proximity_and_geohash_endpoints(client, auth_headers):
    create_loo(client, auth_headers, id=LOO_A, location={'lat': 51.5007, 'lng': -0.1246}, radar=True)

    response = client.get('/api/loos/proximity?lat=51.5007&lng=-0.1246&radius=10')
    assert response.status_code == 200
    assert [item['id'] for item in response.get_json()['data']] == [LOO_A]

    assert client.get('/api/loos/proximity?lat=100&lng=0').status_code == 400

    geohash = client.get(f'/api/loos/{LOO_A}').get_json()['geohash']
    compressed = client.get(f'/api/loos/geohash/{geohash[:5]}?compressed=true').get_json()
    assert compressed['data'] == [[LOO_A, geohash, 32]]

    summary = client.get(f'/api/loos/geohash/{geohash[:5]}?summary=true').get_json()
    assert summary['data'][0]['id'] == LOO_A
    assert 'notes' not in summary['data'][0]

    assert client.get('/api/loos/geohash/abc!').status_code == 400


def test_dump_and_updates(client, auth_headers):
    create_loo(client, auth_headers, id=LOO_A, location={'lat': 51.5, 'lng': -0.12})
    create_loo(client, auth_headers, id=LOO_B, active=False)

    dump = client.get('/api/loos/dump').get_json()
    assert [item[0] for item in dump['data']] == [LOO_A]

    updates = client.get('/api/loos/updates?since=2000-01-01T00:00:00Z').get_json()
    assert [item[0] for item in updates['upserted']] == [LOO_A]
    assert updates['deleted'] == [LOO_B]

    assert client.get('/api/loos/updates').status_code == 400


def test_areas_endpoint(client, engine):
    with engine.begin() as conn:
        conn.execute(insert(areas).values(id='d' * 24, name='Camden', type='London Borough'))
        conn.execute(insert(areas).values(id='e' * 24, name='Barnet', type='London Borough'))

    response = client.get('/api/areas')
    assert response.status_code == 200
    assert response.get_json() == {
        'data': [
            {'name': 'Barnet', 'type': 'London Borough'},
            {'name': 'Camden', 'type': 'London Borough'},
        ],
        'count': 2,
    }


def test_health_endpoint(client):
    response = client.get('/api/health')
    assert response.status_code == 200
    assert response.get_json() == {'status': 'ok'}
