"""Tests for request/response schemas."""
import datetime
import pytest
from pydantic import ValidationError as PydanticValidationError
from shared.schemas import (
    ObservationPayload, ActionPlanPayload, ActionPlanUpdate, ProjectCreate, CategoryCreate,
    RegisterRequest, UserRoleUpdate,
)


def test_observation_payload_allows_partial_data():
    payload = ObservationPayload.model_validate({'location': 'Gate 3'})
    assert payload.location == 'Gate 3'
    assert payload.project_id is None
    assert payload.action_plan_required is False


def test_observation_payload_blank_date_and_time_are_missing():
    payload = ObservationPayload.model_validate({'date': '', 'time': ''})
    assert payload.date is None
    assert payload.time is None


def test_observation_payload_parses_date_and_truncates_seconds():
    payload = ObservationPayload.model_validate({'date': '2025-01-05', 'time': '14:05:59'})
    assert payload.date == datetime.date(2025, 1, 5)
    assert payload.time == '14:05'


def test_observation_payload_rejects_malformed_time():
    with pytest.raises(PydanticValidationError):
        ObservationPayload.model_validate({'time': '2pm'})


def test_observation_payload_strips_markup():
    payload = ObservationPayload.model_validate({'description': ' <b onclick="x()">Loose</b> cable '})
    assert payload.description == 'Loose cable'


def test_action_plan_payload_defaults_to_open():
    plan = ActionPlanPayload.model_validate({'action': 'Fence trench', 'due_date': ''})
    assert plan.status == 'open'
    assert plan.due_date is None


def test_action_plan_update_rejects_blank_values():
    with pytest.raises(PydanticValidationError):
        ActionPlanUpdate.model_validate({'responsible_person': '   '})
    assert ActionPlanUpdate.model_validate({'status': 'closed'}).status == 'closed'


def test_reference_names_are_trimmed_and_required():
    assert ProjectCreate(name='  North Yard ').name == 'North Yard'
    with pytest.raises(PydanticValidationError):
        ProjectCreate(name='   ')
    assert CategoryCreate(name='PPE').icon == ''


def test_register_request_checks_email_and_password():
    with pytest.raises(PydanticValidationError):
        RegisterRequest(username='sam', email='not-an-email', password='long-enough')
    with pytest.raises(PydanticValidationError):
        RegisterRequest(username='sam', email='sam@example.com', password='short')


def test_role_update_only_accepts_known_roles():
    assert UserRoleUpdate(role='admin').role == 'admin'
    with pytest.raises(PydanticValidationError):
        UserRoleUpdate(role='owner')
