"""Action plans of an existing report: add, edit and delete."""
from flask import Blueprint, jsonify, request
import logging
from pydantic import ValidationError as PydanticValidationError
from ..services.object_storage import StorageError
from ..services.providers import get_data_store
from ..services.report_edit import ConfirmationRequired
from ..services.report_form import ActionPlanDraft
from ..services.store import StoreError, NotFoundError
from ..utils import api_error, handle_api_exception
from .auth import current_user
from .reports import request_payload, uploaded_image, pydantic_fields, edit_controller
from shared.schemas import ActionPlanPayload, ActionPlanUpdate
from shared.validation import ValidationError

bp = Blueprint('action_plans', __name__, url_prefix='/api')
logger = logging.getLogger(__name__)


def controller_for_plan(plan_id):
    """Edit controller of the report owning plan_id, loaded."""
    plan = get_data_store().get('action_plans', plan_id)
    if plan is None:
        raise NotFoundError(f"Action plan {plan_id} not found")
    return edit_controller(plan['observation_id']).load()


@bp.route('/reports/<report_id>/action-plans', methods=['POST'])
def add_action_plan(report_id):
    try:
        data = request_payload()
        try:
            payload = ActionPlanPayload.model_validate(data)
        except PydanticValidationError as e:
            raise ValidationError('Invalid action plan data', pydantic_fields(e))
        draft = ActionPlanDraft.from_payload(payload.model_dump(), image=uploaded_image('image'))
        plan = edit_controller(report_id).load().add_action_plan(draft, user=current_user())
    except ValidationError as e:
        return api_error(str(e), 400, fields=e.fields)
    except NotFoundError:
        return api_error('Report not found', 404)
    except (StoreError, StorageError) as e:
        return handle_api_exception(e, 'add action plan', 502)

    return jsonify({'message': 'Action plan added successfully', 'action_plan': plan}), 201


@bp.route('/action-plans/<plan_id>', methods=['PUT'])
def update_action_plan(plan_id):
    """Edit one action plan; an ``image`` file replaces its supporting image."""
    try:
        try:
            payload = ActionPlanUpdate.model_validate(request_payload())
        except PydanticValidationError as e:
            raise ValidationError('Invalid action plan data', pydantic_fields(e))
        image = uploaded_image('image')
        controller = controller_for_plan(plan_id)
        controller.begin_edit(plan_id)
        plan = controller.save_edit(payload.model_dump(exclude_none=True), image=image)
    except ValidationError as e:
        return api_error(str(e), 400, fields=e.fields)
    except NotFoundError:
        return api_error('Action plan not found', 404)
    except (StoreError, StorageError) as e:
        return handle_api_exception(e, 'update action plan', 502)

    return jsonify({'message': 'Action plan updated successfully', 'action_plan': plan})


@bp.route('/action-plans/<plan_id>', methods=['DELETE'])
def delete_action_plan(plan_id):
    """Delete one action plan; requires ``?confirm=true``."""
    confirmed = request.args.get('confirm', '').lower() in ('1', 'true', 'yes')
    try:
        controller_for_plan(plan_id).delete_action_plan(plan_id, confirmed=confirmed)
    except ConfirmationRequired as e:
        return jsonify({'error': str(e), 'confirm_required': True, 'action_plan': e.summary}), 409
    except NotFoundError:
        return api_error('Action plan not found', 404)
    except StoreError as e:
        return handle_api_exception(e, 'delete action plan', 502)

    logger.info(f"Action plan {plan_id} deleted by {current_user().username}")
    return jsonify({'message': 'Action plan deleted successfully'})
