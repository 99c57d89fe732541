"""Tests for ordered multi-step writes."""
import pytest
from backend.services.write_plan import WritePlan, WritePlanAborted


def _fail(message):
    def action(results):
        raise RuntimeError(message)
    return action


def test_steps_run_in_order_and_share_results():
    calls = []
    plan = WritePlan('test')
    plan.add('first', lambda results: calls.append('first') or 1)
    plan.add('second', lambda results: calls.append('second') or results['first'] + 1)

    outcome = plan.run()

    assert calls == ['first', 'second']
    assert outcome.results == {'first': 1, 'second': 2}
    assert outcome.complete


def test_optional_failure_is_recorded_and_plan_continues():
    plan = WritePlan('test')
    plan.add('create', lambda results: 'row')
    plan.add('link', _fail('link table unavailable'), required=False)
    plan.add('plan_1', lambda results: 'plan', required=False)

    outcome = plan.run()

    assert outcome.results == {'create': 'row', 'plan_1': 'plan'}
    assert [f.to_dict() for f in outcome.failures] == [
        {'step': 'link', 'message': 'link table unavailable'}
    ]
    assert not outcome.complete


def test_required_failure_stops_and_compensates_in_reverse():
    undone = []
    after = []
    plan = WritePlan('test')
    plan.add('upload', lambda results: 'key', compensate=lambda results: undone.append('upload'))
    plan.add('tag', lambda results: 'tag', compensate=lambda results: undone.append('tag'))
    plan.add('insert', _fail('constraint violated'))
    plan.add('never', lambda results: after.append('never'))

    with pytest.raises(WritePlanAborted) as exc_info:
        plan.run()

    assert exc_info.value.step == 'insert'
    assert str(exc_info.value.error) == 'constraint violated'
    assert exc_info.value.outcome.results == {'upload': 'key', 'tag': 'tag'}
    assert undone == ['tag', 'upload']
    assert after == []


def test_steps_without_compensation_leave_effects():
    effects = []
    plan = WritePlan('test')
    plan.add('write', lambda results: effects.append('written'))
    plan.add('boom', _fail('nope'))

    with pytest.raises(WritePlanAborted):
        plan.run()
    assert effects == ['written']


def test_failing_compensation_does_not_mask_original_error():
    plan = WritePlan('test')
    plan.add('upload', lambda results: 'key', compensate=_fail('cleanup failed'))
    plan.add('insert', _fail('insert failed'))

    with pytest.raises(WritePlanAborted, match='insert failed'):
        plan.run()
