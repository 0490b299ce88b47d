# app/api/loos/test_loo_audit.py
from datetime import datetime, timezone

from app.api.loos.audit import (
    build_report_snapshot, calculate_report_diff, is_system_report,
    map_version_to_report, build_reports,
)

LOO_ID = 'f' * 24


def make_record(**overrides):
    record = {
        'id': LOO_ID,
        'name': 'Market Street',
        'contributors': ['alice'],
        'created_at': '2024-01-01T09:00:00Z',
        'updated_at': '2024-01-01T09:00:00Z',
        'verified_at': None,
        'active': True,
        'accessible': True,
        'no_payment': False,
        'geohash': 'gcpvj0duq533',
        'location': {'type': 'Point', 'coordinates': [-0.1246, 51.5007]},
        'geography': 'POINT(-0.1246 51.5007)',
        'opening_times': None,
    }
    record.update(overrides)
    return record


def test_report_snapshot_uses_exposed_field_names():
    snapshot = build_report_snapshot(make_record())
    assert snapshot['name'] == 'Market Street'
    assert snapshot['noPayment'] is False
    assert snapshot['location'] == {'lat': 51.5007, 'lng': -0.1246}
    assert 'contributors' not in snapshot
    assert 'geography' not in snapshot


def test_diff_is_none_for_genesis_and_for_identical_snapshots():
    current = build_report_snapshot(make_record())
    assert calculate_report_diff(current, None) is None
    assert calculate_report_diff(current, dict(current)) is None


def test_diff_contains_only_changed_fields():
    previous = build_report_snapshot(make_record())
    current = build_report_snapshot(make_record(accessible=False))
    assert calculate_report_diff(current, previous) == {
        'accessible': {'previous': True, 'current': False},
    }


def test_diff_treats_equal_composite_values_as_unchanged():
    hours = [['09:00', '17:00']] * 5 + [[], []]
    previous = build_report_snapshot(make_record(opening_times=hours))
    current = build_report_snapshot(make_record(opening_times=[list(day) for day in hours]))
    assert calculate_report_diff(current, previous) is None


def test_location_only_change_is_system_report():
    previous = build_report_snapshot(make_record())
    current = build_report_snapshot(make_record(
        location={'type': 'Point', 'coordinates': [-0.13, 51.51]},
        geohash='gcpvhzzzzzzz',
    ))
    assert is_system_report(current, previous) is True
    assert 'location' in calculate_report_diff(current, previous)


def test_location_and_other_change_is_not_system_report():
    previous = build_report_snapshot(make_record())
    current = build_report_snapshot(make_record(
        location={'type': 'Point', 'coordinates': [-0.13, 51.51]},
        name='Moved loo',
    ))
    assert is_system_report(current, previous) is False


def test_genesis_and_non_location_changes_are_not_system_reports():
    current = build_report_snapshot(make_record())
    assert is_system_report(current, None) is False
    assert is_system_report(build_report_snapshot(make_record(radar=True)), current) is False


def test_contributor_is_last_entry_or_anonymous():
    report = map_version_to_report(1, make_record(contributors=['alice', 'bob']), None)
    assert report.contributor == 'bob'

    anonymous = map_version_to_report(2, make_record(contributors=[]), None)
    assert anonymous.contributor == 'Anonymous'


def test_report_timestamp_uses_created_at_for_genesis_and_updated_at_afterwards():
    record = make_record(updated_at='2024-02-01T12:00:00Z')
    genesis = map_version_to_report(1, record, None)
    update = map_version_to_report(2, record, make_record())

    assert genesis.created_at == datetime(2024, 1, 1, 9, tzinfo=timezone.utc)
    assert update.created_at == datetime(2024, 2, 1, 12, tzinfo=timezone.utc)


def test_report_timestamp_falls_back_to_version_ts():
    ts = datetime(2024, 3, 1, tzinfo=timezone.utc)
    report = map_version_to_report(1, make_record(created_at=None), None, ts)
    assert report.created_at == ts


def test_build_reports_orders_oldest_first_with_version_id_tie_break():
    versions = [
        {'id': 7, 'record': make_record(updated_at='2024-01-03T00:00:00Z'), 'old_record': make_record()},
        {'id': 5, 'record': make_record(updated_at='2024-01-02T00:00:00Z', radar=True), 'old_record': make_record()},
        {'id': 3, 'record': make_record(updated_at='2024-01-02T00:00:00Z', men=True), 'old_record': make_record()},
        {'id': 1, 'record': make_record(), 'old_record': None},
    ]
    reports = build_reports(versions, include_contributors=True)
    assert [r.version_id for r in reports] == [1, 3, 5, 7]


def test_build_reports_drops_legacy_location_reports():
    versions = [
        {'id': 1, 'record': make_record(), 'old_record': None},
        {'id': 2, 'record': make_record(contributors=['alice', 'import-location'],
                                        updated_at='2024-01-02T00:00:00Z'),
         'old_record': make_record()},
    ]
    reports = build_reports(versions, include_contributors=True)
    assert [r.version_id for r in reports] == [1]


def test_build_reports_redacts_contributors_without_changing_content():
    versions = [
        {'id': 1, 'record': make_record(), 'old_record': None},
        {'id': 2, 'record': make_record(accessible=False, updated_at='2024-01-02T00:00:00Z'),
         'old_record': make_record()},
    ]
    visible = build_reports(versions, include_contributors=True)
    redacted = build_reports(versions)

    assert [r.contributor for r in visible] == ['alice', 'alice']
    assert [r.contributor for r in redacted] == [None, None]
    assert [r.diff for r in redacted] == [r.diff for r in visible]


def test_report_projections():
    report = map_version_to_report(9, make_record(), None)
    assert set(report.to_summary_dict()) == {'id', 'contributor', 'createdAt', 'diff'}
    hydrated = report.to_dict()
    assert hydrated['id'] == '9'
    assert hydrated['isSystemReport'] is False
    assert hydrated['accessible'] is True
    assert hydrated['createdAt'] == '2024-01-01T09:00:00Z'
