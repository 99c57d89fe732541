"""Safety report endpoints: table, create, view/edit, delete, export, PDF and statistics."""
from flask import Blueprint, jsonify, request, current_app, send_file, Response
import io
import json
import logging
from pydantic import ValidationError as PydanticValidationError
from ..services.object_storage import ImageUpload, StorageError
from ..services.providers import get_data_store, get_object_storage, get_pdf_renderer
from ..services.report_edit import ReportEditController
from ..services.report_form import ReportFormController, ActionPlanDraft, SubmissionFailed
from ..services.reports_table import ReportsTableController, SORTABLE_COLUMNS
from ..services.statistics import monthly_summary
from ..services.store import StoreError, NotFoundError
from ..utils import api_error, handle_api_exception
from .auth import current_user
from shared.schemas import ObservationPayload, ActionPlanPayload, STATUS_CHOICES, CONSEQUENCE_CHOICES
from shared.utils import parse_iso_date
from shared.validation import Validator, ValidationError

bp = Blueprint('reports', __name__, url_prefix='/api')
logger = logging.getLogger(__name__)

PAYLOAD_ONLY_FIELDS = {'categories', 'action_plan_required'}
XLSX_MIMETYPE = 'application/vnd.openxmlformats-officedocument.spreadsheetml.sheet'


def request_payload():
    """The report JSON, either as the body or as the ``report`` field of a multipart form."""
    if request.mimetype == 'multipart/form-data':
        raw = request.form.get('report') or '{}'
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            raise ValidationError('The report field must contain valid JSON')
    else:
        data = request.get_json(silent=True)
        if data is None:
            raise ValidationError('Request body must contain valid JSON')
    if not isinstance(data, dict):
        raise ValidationError('Request data must be a JSON object')
    return data


def uploaded_image(field_name):
    """Validated ImageUpload for a multipart file field, or None when absent."""
    storage = request.files.get(field_name)
    if storage is None or not storage.filename:
        return None
    data = storage.read()
    try:
        Validator.validate_image_upload(storage.filename, storage.mimetype, len(data),
                                        current_app.config['PORTAL_MAX_IMAGE_BYTES'])
    except ValidationError as e:
        raise ValidationError(str(e), {field_name: str(e)})
    return ImageUpload(storage.filename, data, storage.mimetype)


def pydantic_fields(error, prefix=''):
    return {prefix + '.'.join(str(p) for p in err['loc']): err['msg'] for err in error.errors()}


def parse_observation(data):
    try:
        return ObservationPayload.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError('Invalid report data', pydantic_fields(e))


def observation_changes(payload):
    return payload.model_dump(exclude_none=True, exclude=PAYLOAD_ONLY_FIELDS)


def table_from_args():
    """A ReportsTableController positioned by the query string."""
    args = request.args
    fields = {}

    start, end = args.get('start') or None, args.get('end') or None
    for name, value in (('start', start), ('end', end)):
        try:
            parse_iso_date(value)
        except ValueError:
            fields[name] = 'Dates must be YYYY-MM-DD'
    status = args.get('status') or None
    severity = args.get('severity') or None
    for name, value, choices in (('status', status, STATUS_CHOICES), ('severity', severity, CONSEQUENCE_CHOICES)):
        if value is None:
            continue
        try:
            Validator.validate_choice(value, name, choices)
        except ValidationError as e:
            fields.update(e.fields)
    sort = args.get('sort', 'created_at')
    if sort not in SORTABLE_COLUMNS:
        fields['sort'] = f"Cannot sort by {sort}"
    if fields:
        raise ValidationError('Invalid table query', fields)

    table = ReportsTableController(get_data_store(), page_size=current_app.config['PORTAL_REPORTS_PER_PAGE'])
    table.filters.start_date = start
    table.filters.end_date = end
    table.filters.status = status
    table.filters.severity = severity
    if args.get('mine', '').lower() in ('1', 'true', 'yes'):
        table.filters.created_by = current_user().id
    table.sort_key = sort
    table.ascending = args.get('direction', 'desc').lower() == 'asc'
    table.page = max(1, args.get('page', 1, type=int))
    return table


def edit_controller(report_id):
    return ReportEditController(get_data_store(), get_object_storage(), report_id,
                                max_action_plans=current_app.config['PORTAL_MAX_ACTION_PLANS'])


@bp.route('/reports', methods=['GET'])
def list_reports():
    """One page of the reports table (filters, sort and page from the query string)."""
    try:
        table = table_from_args()
        page = table.load()
    except ValidationError as e:
        return api_error(str(e), 400, fields=e.fields)
    except StoreError as e:
        return handle_api_exception(e, 'load reports', 502)

    body = page.to_dict()
    body['sort'] = {'column': table.sort_key, 'direction': 'asc' if table.ascending else 'desc'}
    return jsonify(body)


@bp.route('/reports', methods=['POST'])
def create_report():
    """Create a report with its category links and staged action plans.

    Multipart requests carry the JSON in ``report`` plus optional ``image`` and
    ``action_plan_image_<n>`` files (``n`` is the index in ``action_plans``).
    """
    try:
        data = request_payload()
        payload = parse_observation(data)

        form = ReportFormController(get_data_store(), get_object_storage(),
                                    max_action_plans=current_app.config['PORTAL_MAX_ACTION_PLANS'])
        form.draft.apply(observation_changes(payload))
        form.action_plan_required = payload.action_plan_required
        for category_id in dict.fromkeys(payload.categories or []):
            form.toggle_category(category_id)
        form.image = uploaded_image('image')

        plan_errors = {}
        for index, raw_plan in enumerate(data.get('action_plans') or []):
            try:
                plan = ActionPlanPayload.model_validate(raw_plan)
            except PydanticValidationError as e:
                plan_errors.update(pydantic_fields(e, f'action_plans.{index}.'))
                continue
            form.action_plans.open_form()
            form.action_plans.pending = ActionPlanDraft.from_payload(
                plan.model_dump(), image=uploaded_image(f'action_plan_image_{index}'))
            if not form.save_action_plan_draft():
                plan_errors.update({
                    f'action_plans.{index}.{field}' if field != 'action_plans' else field: message
                    for field, message in form.action_plans.errors.items()
                })
        if plan_errors:
            errors = dict(plan_errors)
            errors.update(form.validate())
            raise ValidationError('Please fill in all required fields', errors)

        result = form.submit(user=current_user())
    except ValidationError as e:
        return api_error(str(e), 400, fields=e.fields)
    except SubmissionFailed as e:
        return api_error('Failed to submit report. Please try again.', 502, 'error',
                         details={'step': e.step, 'error': str(e.error)})

    if result.failures:
        logger.warning(f"Report {result.observation_id} created with {len(result.failures)} failed step(s)")
    return jsonify({'message': 'Report submitted successfully', **result.to_dict()}), 201


@bp.route('/reports/<report_id>', methods=['GET'])
def get_report(report_id):
    try:
        return jsonify(edit_controller(report_id).load().resolved_report())
    except NotFoundError:
        return api_error('Report not found', 404)
    except StoreError as e:
        return handle_api_exception(e, 'load report', 502)


@bp.route('/reports/<report_id>', methods=['PUT'])
def update_report(report_id):
    """Edit a report in place; setting status to closed closes every action plan."""
    try:
        payload = parse_observation(request_payload())
        image = uploaded_image('image')
        controller = edit_controller(report_id).load()
        summary = controller.update(observation_changes(payload), categories=payload.categories, image=image)
    except ValidationError as e:
        return api_error(str(e), 400, fields=e.fields)
    except NotFoundError:
        return api_error('Report not found', 404)
    except (StoreError, StorageError) as e:
        return handle_api_exception(e, 'update report', 502)

    return jsonify({
        'message': 'Report updated successfully',
        'summary': summary,
        'report': controller.resolved_report(),
    })


@bp.route('/reports/<report_id>/delete-summary', methods=['GET'])
def delete_summary(report_id):
    """What will be removed, shown before the user confirms deletion."""
    try:
        summary = ReportsTableController(get_data_store()).request_delete(report_id)
    except NotFoundError:
        return api_error('Report not found', 404)
    except StoreError as e:
        return handle_api_exception(e, 'load report', 502)
    return jsonify(summary.to_dict())


@bp.route('/reports/<report_id>', methods=['DELETE'])
def delete_report(report_id):
    """Delete a report with its action plans and category links; requires ``?confirm=true``."""
    confirmed = request.args.get('confirm', '').lower() in ('1', 'true', 'yes')
    table = ReportsTableController(get_data_store())
    try:
        pending = table.request_delete(report_id)
        if not confirmed:
            table.cancel_delete()
            return jsonify({'error': 'Deleting a report must be confirmed', 'confirm_required': True,
                            'summary': pending.to_dict()}), 409
        summary = table.confirm_delete()
    except NotFoundError:
        return api_error('Report not found', 404)
    except StoreError as e:
        return handle_api_exception(e, 'delete report', 502)

    return jsonify({'message': 'Report deleted successfully', 'summary': summary})


@bp.route('/reports/export', methods=['GET'])
def export_reports():
    """The current table page as CSV or Excel."""
    export_format = request.args.get('format', 'csv').lower()
    if export_format not in ('csv', 'xlsx'):
        return api_error('Export format must be csv or xlsx', 400, fields={'format': 'Unsupported format'})

    try:
        table = table_from_args()
        table.load()
        filename = table.export_filename(export_format)
        if export_format == 'csv':
            return Response(table.to_csv(), mimetype='text/csv',
                            headers={'Content-Disposition': f'attachment; filename={filename}'})
        return send_file(io.BytesIO(table.to_xlsx()), mimetype=XLSX_MIMETYPE,
                         as_attachment=True, download_name=filename)
    except ValidationError as e:
        return api_error(str(e), 400, fields=e.fields)
    except StoreError as e:
        return handle_api_exception(e, 'export reports', 502)


@bp.route('/reports/<report_id>/pdf', methods=['GET'])
def report_pdf(report_id):
    try:
        report = edit_controller(report_id).load().resolved_report()
    except NotFoundError:
        return api_error('Report not found', 404)
    except StoreError as e:
        return handle_api_exception(e, 'load report', 502)

    try:
        pdf = get_pdf_renderer().render(report)
    except Exception as e:
        return handle_api_exception(e, 'generate PDF')

    return send_file(io.BytesIO(pdf), mimetype='application/pdf',
                     as_attachment=True, download_name=f"safety-report-{report_id}.pdf")


@bp.route('/stats/monthly', methods=['GET'])
def monthly_stats():
    month = request.args.get('month')
    if not month:
        return api_error('month is required (YYYY-MM)', 400, fields={'month': 'Month is required'})
    try:
        return jsonify(monthly_summary(get_data_store(), month))
    except ValueError as e:
        return api_error(str(e), 400, fields={'month': 'Month must be YYYY-MM'})
    except StoreError as e:
        return handle_api_exception(e, 'load statistics', 502)
