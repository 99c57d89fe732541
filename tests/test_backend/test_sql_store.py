"""Tests for the Flask-SQLAlchemy data store."""
import pytest
from backend.services.store import QuerySpec, Filter, ReferencedRowError, StoreError, eq


def _observation(values, **overrides):
    row = dict(values)
    row.update(overrides)
    return row


def test_insert_returns_wire_row(store, observation_values):
    row = store.insert('observation_details', observation_values)

    assert len(row['id']) == 36
    assert row['date'] == '2025-01-05'
    assert row['status'] == 'open'
    assert row['consequences'] == 'major'
    assert row['corrective_action'] is False
    assert row['created_at']


def test_get_with_embedded_names(store, observation_values):
    row = store.insert('observation_details', observation_values)

    fetched = store.get('observation_details', row['id'], embed={'projects': ('name',), 'companies': ('name',)})

    assert fetched['projects'] == {'name': 'North Yard Expansion'}
    assert fetched['companies'] == {'name': 'Acme Builders'}
    assert store.get('observation_details', 'missing') is None


def test_query_filters_and_counts(store, observation_values):
    for day, status in (('2025-01-03', 'open'), ('2025-01-10', 'closed'), ('2025-02-01', 'open')):
        store.insert('observation_details', _observation(observation_values, date=day, status=status))

    spec = QuerySpec('observation_details', [
        Filter('date', 'gte', '2025-01-01'),
        Filter('date', 'lte', '2025-01-31'),
    ], order_by='date')
    rows, _ = store.query(spec)
    assert [r['date'] for r in rows] == ['2025-01-03', '2025-01-10']

    rows, total = store.query(QuerySpec('observation_details', [eq('status', 'open')]).page(1, 1))
    assert total == 2
    assert len(rows) == 1


def test_pagination_window(store, observation_values):
    for day in range(1, 13):
        store.insert('observation_details', _observation(observation_values, date=f'2025-01-{day:02d}'))

    rows, total = store.query(QuerySpec('observation_details', order_by='date').page(2, 10))

    assert total == 12
    assert [r['date'] for r in rows] == ['2025-01-11', '2025-01-12']


def test_severity_sorts_by_rank_not_alphabet(store, observation_values):
    for level in ('moderate', 'severe', 'minor', 'major'):
        store.insert('observation_details', _observation(observation_values, consequences=level))

    rows = store.select('observation_details', order_by='consequences')
    assert [r['consequences'] for r in rows] == ['minor', 'moderate', 'major', 'severe']

    rows = store.select('observation_details', order_by='consequences', ascending=False)
    assert rows[0]['consequences'] == 'severe'


def test_update_and_delete_return_counts(store, observation_values, action_plan_values):
    observation = store.insert('observation_details', observation_values)
    for _ in range(2):
        store.insert('action_plans', dict(action_plan_values, observation_id=observation['id']))

    by_observation = [eq('observation_id', observation['id'])]
    assert store.update('action_plans', by_observation, {'status': 'closed'}) == 2
    assert {p['status'] for p in store.select('action_plans', by_observation)} == {'closed'}

    assert store.delete('action_plans', by_observation) == 2
    assert store.select('action_plans', by_observation) == []


def test_in_filter(store, reference):
    rows = store.select('safety_categories', [Filter('id', 'in', [reference['ppe_id']])])
    assert [r['name'] for r in rows] == ['PPE']


def test_insert_many_links(store, observation_values, reference):
    observation = store.insert('observation_details', observation_values)
    links = store.insert_many('observation_categories', [
        {'observation_id': observation['id'], 'category_id': reference['ppe_id']},
        {'observation_id': observation['id'], 'category_id': reference['height_id']},
    ])
    assert len(links) == 2


def test_constraint_violation_raises_store_error(store, observation_values):
    incomplete = dict(observation_values)
    del incomplete['location']
    with pytest.raises(StoreError):
        store.insert('observation_details', incomplete)


def test_unknown_table_and_column(store):
    with pytest.raises(StoreError):
        store.select('nope')
    with pytest.raises(StoreError):
        store.select('projects', [eq('colour', 'red')])


def test_unknown_operator_rejected():
    with pytest.raises(ValueError):
        Filter('date', 'like', '2025%')


def test_deleting_referenced_project_raises_referenced_row_error(store, observation_values, reference):
    store.insert('observation_details', observation_values)

    with pytest.raises(ReferencedRowError):
        store.delete('projects', [eq('id', reference['project_id'])])
    assert store.get('projects', reference['project_id']) is not None


def test_deleting_unreferenced_project(store, reference):
    assert store.delete('projects', [eq('id', reference['project_id'])]) == 1
