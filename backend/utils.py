"""Backend utility functions for the Safety Observation portal."""
from flask import jsonify
import logging
from .services.store import eq


logger = logging.getLogger(__name__)


def api_error(message, status_code=400, log_level='warning', details=None, fields=None):
    """
    Standardized API error response with consistent logging.

    Args:
        message (str): Error message for the client
        status_code (int): HTTP status code
        log_level (str): Logging level ('debug', 'info', 'warning', 'error', 'critical')
        details (dict, optional): Additional details for logging
        fields (dict, optional): Per-field messages returned to the client

    Returns:
        Flask response: JSON error response
    """
    log_func = getattr(logger, log_level, logger.warning)
    if details:
        log_func(f"API Error ({status_code}): {message} - Details: {details}")
    else:
        log_func(f"API Error ({status_code}): {message}")

    body = {'error': message}
    if fields:
        body['fields'] = fields
    return jsonify(body), status_code


def handle_api_exception(e, operation="operation", status_code=500):
    """
    Handle exceptions in API endpoints with consistent logging and responses.

    Args:
        e (Exception): The exception that occurred
        operation (str): Description of the operation being performed
        status_code (int): HTTP status code to return

    Returns:
        Flask response: JSON error response
    """
    logger.error(f"Exception during {operation}: {str(e)}", exc_info=True)
    return api_error(f"Failed to {operation}", status_code, 'error')


def pydantic_error_fields(e):
    """Flatten a pydantic ValidationError into {field: message}."""
    fields = {}
    for err in e.errors():
        field = '.'.join(str(part) for part in err['loc']) or 'body'
        fields[field] = err['msg']
    return fields


def delete_observation_cascade(store, observation_id):
    """
    Delete an observation after its action plans and category links.

    The steps are separate store calls with no transaction around them; a
    failure part way leaves the already-deleted rows deleted.

    Args:
        store: DataStore to delete from
        observation_id (str): ID of the observation to delete

    Returns:
        dict: Summary of deleted records
    """
    summary = {
        'action_plans': 0,
        'observation_categories': 0,
        'observations': 0
    }

    try:
        summary['action_plans'] = store.delete('action_plans', [eq('observation_id', observation_id)])
        summary['observation_categories'] = store.delete(
            'observation_categories', [eq('observation_id', observation_id)])
        summary['observations'] = store.delete('observation_details', [eq('id', observation_id)])

        logger.info(f"Cascading delete completed for observation {observation_id}: {summary}")

    except Exception as e:
        logger.error(f"Error in cascade delete of observation {observation_id}: {e} (partial: {summary})")
        raise

    return summary
