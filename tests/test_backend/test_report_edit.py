"""Tests for viewing and editing an existing report."""
import pytest
from backend.services.object_storage import ImageUpload
from backend.services.report_edit import ReportEditController, ConfirmationRequired
from backend.services.report_form import ActionPlanDraft
from backend.services.store import NotFoundError, eq
from shared.validation import ValidationError


@pytest.fixture
def report(store, observation_values, action_plan_values, reference):
    """A stored open report with two action plans and one category."""
    observation = store.insert('observation_details', dict(observation_values, corrective_action=True))
    plans = [
        store.insert('action_plans', dict(action_plan_values, observation_id=observation['id'], action=action))
        for action in ('Provide harness training', 'Inspect scaffold tags')
    ]
    store.insert('observation_categories', {'observation_id': observation['id'],
                                            'category_id': reference['ppe_id']})
    return {'observation': observation, 'plans': plans}


@pytest.fixture
def editor(store, object_storage, report):
    return ReportEditController(store, object_storage, report['observation']['id']).load()


def _plans(store, observation_id):
    return store.select('action_plans', [eq('observation_id', observation_id)])


def test_load_reads_observation_plans_and_categories(editor, report, reference):
    assert editor.observation['projects'] == {'name': 'North Yard Expansion'}
    assert {p['action'] for p in editor.action_plans} == {'Provide harness training', 'Inspect scaffold tags'}
    assert editor.selected_categories == [reference['ppe_id']]
    assert editor.draft.location == 'Gate 3'


def test_load_missing_report(store, object_storage, reference):
    with pytest.raises(NotFoundError):
        ReportEditController(store, object_storage, 'does-not-exist').load()


def test_update_writes_only_changed_fields(editor, store):
    summary = editor.update({'location': 'Gate 4', 'submitter_name': 'Jordan Lee'})

    assert summary['updated_fields'] == ['location']
    assert summary['closed_action_plans'] == 0
    assert store.get('observation_details', editor.observation_id)['location'] == 'Gate 4'


def test_changing_project_refreshes_resolved_names(editor, store):
    south_dock = store.insert('projects', {'name': 'South Dock'})
    beta = store.insert('companies', {'name': 'Beta Scaffolding'})

    editor.update({'project_id': south_dock['id'], 'company_id': beta['id']})

    resolved = editor.resolved_report()
    assert resolved['project_name'] == 'South Dock'
    assert resolved['company_name'] == 'Beta Scaffolding'
    assert resolved['project_id'] == south_dock['id']


def test_update_rejects_blank_required_field(editor, store):
    with pytest.raises(ValidationError) as exc_info:
        editor.update({'description': '  '})
    assert exc_info.value.fields == {'description': 'Description is required'}
    assert store.get('observation_details', editor.observation_id)['description'] != '  '


def test_update_rejects_unknown_choice(editor):
    with pytest.raises(ValidationError) as exc_info:
        editor.update({'likelihood': 'certain'})
    assert 'likelihood' in exc_info.value.fields


def test_closing_report_closes_all_action_plans(editor, store, report):
    summary = editor.update({'status': 'closed'})

    assert summary['closed_action_plans'] == 2
    assert {p['status'] for p in _plans(store, editor.observation_id)} == {'closed'}
    assert {p['status'] for p in editor.action_plans} == {'closed'}


def test_reopening_does_not_touch_action_plans(editor, store):
    editor.update({'status': 'closed'})
    summary = editor.update({'status': 'open'})

    assert summary['closed_action_plans'] == 0
    assert {p['status'] for p in _plans(store, editor.observation_id)} == {'closed'}


def test_categories_replaced_only_when_selection_given(editor, store, reference):
    by_observation = [eq('observation_id', editor.observation_id)]

    editor.update({}, categories=[])
    assert [link['category_id'] for link in store.select('observation_categories', by_observation)] == \
        [reference['ppe_id']]

    summary = editor.update({}, categories=[reference['height_id'], reference['height_id']])
    assert summary['categories_replaced'] is True
    assert [link['category_id'] for link in store.select('observation_categories', by_observation)] == \
        [reference['height_id']]


def test_update_with_new_image(editor, store, object_storage, png_bytes):
    editor.update({}, image=ImageUpload('after.png', png_bytes, 'image/png'))

    key = store.get('observation_details', editor.observation_id)['supporting_image']
    assert key.endswith('-after.png')
    assert ('safety-images', key) in object_storage.objects


def test_add_action_plan(editor, store, action_plan_values, portal_user):
    plan = editor.add_action_plan(ActionPlanDraft.from_payload(dict(action_plan_values, action='Barricade')),
                                  user=portal_user)

    assert plan['observation_id'] == editor.observation_id
    assert plan['created_by'] == portal_user.id
    assert len(_plans(store, editor.observation_id)) == 3


def test_add_action_plan_sets_corrective_action(store, object_storage, observation_values, action_plan_values):
    observation = store.insert('observation_details', observation_values)
    editor = ReportEditController(store, object_storage, observation['id']).load()

    editor.add_action_plan(ActionPlanDraft.from_payload(action_plan_values))

    assert store.get('observation_details', observation['id'])['corrective_action'] is True


def test_add_action_plan_requires_fields(editor):
    with pytest.raises(ValidationError) as exc_info:
        editor.add_action_plan(ActionPlanDraft(action='Barricade'))
    assert set(exc_info.value.fields) == {'due_date', 'responsible_person', 'follow_up_contact'}


def test_add_action_plan_respects_limit(store, object_storage, report, action_plan_values):
    editor = ReportEditController(store, object_storage, report['observation']['id'], max_action_plans=2).load()
    with pytest.raises(ValidationError, match='at most 2 action plans'):
        editor.add_action_plan(ActionPlanDraft.from_payload(action_plan_values))


def test_only_one_plan_in_edit_mode(editor, report):
    first, second = report['plans']
    editor.begin_edit(first['id'])
    editor.begin_edit(second['id'])
    assert editor.editing_plan_id == second['id']

    editor.cancel_edit()
    assert editor.editing_plan_id is None


def test_save_edit(editor, store, report):
    plan_id = report['plans'][0]['id']
    editor.begin_edit(plan_id)

    plan = editor.save_edit({'responsible_person': 'Riley Chen', 'status': 'closed'})

    assert plan['responsible_person'] == 'Riley Chen'
    assert store.get('action_plans', plan_id)['status'] == 'closed'
    assert editor.editing_plan_id is None


def test_save_edit_without_edit_mode(editor):
    with pytest.raises(ValidationError):
        editor.save_edit({'action': 'Anything'})


def test_delete_action_plan_requires_confirmation(editor, store, report):
    plan_id = report['plans'][0]['id']

    with pytest.raises(ConfirmationRequired) as exc_info:
        editor.delete_action_plan(plan_id)
    assert exc_info.value.summary['id'] == plan_id
    assert store.get('action_plans', plan_id) is not None

    editor.delete_action_plan(plan_id, confirmed=True)
    assert store.get('action_plans', plan_id) is None
    assert len(editor.action_plans) == 1


def test_delete_unknown_plan(editor):
    with pytest.raises(NotFoundError):
        editor.delete_action_plan('nope', confirmed=True)


def test_resolved_report(editor):
    report = editor.resolved_report()

    assert report['project_name'] == 'North Yard Expansion'
    assert report['company_name'] == 'Acme Builders'
    assert report['categories'] == ['PPE']
    assert len(report['action_plans']) == 2
