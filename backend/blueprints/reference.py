"""Reference data: form selector lists and admin CRUD for projects, companies and categories."""
from flask import Blueprint, jsonify
import logging
from ..base.generic_crud import GenericCRUD, register_crud_routes
from ..services.providers import get_data_store
from ..services.reference_loader import ReferenceDataLoader
from ..services.store import StoreError
from ..utils import handle_api_exception
from .auth import admin_required
from shared.schemas import (
    ProjectCreate, ProjectUpdate, ProjectResponse,
    CompanyCreate, CompanyUpdate, CompanyResponse,
    CategoryCreate, CategoryUpdate, CategoryResponse,
    SUBJECT_CHOICES, REPORT_GROUP_CHOICES, CONSEQUENCE_CHOICES, LIKELIHOOD_CHOICES, STATUS_CHOICES,
)

bp = Blueprint('reference', __name__, url_prefix='/api')
logger = logging.getLogger(__name__)

project_crud = GenericCRUD(
    table='projects',
    create_schema=ProjectCreate,
    update_schema=ProjectUpdate,
    response_schema=ProjectResponse,
    singular_name='project'
)

company_crud = GenericCRUD(
    table='companies',
    create_schema=CompanyCreate,
    update_schema=CompanyUpdate,
    response_schema=CompanyResponse,
    singular_name='company',
    plural_name='companies'
)

category_crud = GenericCRUD(
    table='safety_categories',
    create_schema=CategoryCreate,
    update_schema=CategoryUpdate,
    response_schema=CategoryResponse,
    singular_name='category',
    plural_name='categories',
    unique_field='name'
)

register_crud_routes(bp, project_crud, 'projects', write_guard=admin_required)
register_crud_routes(bp, company_crud, 'companies', write_guard=admin_required)
register_crud_routes(bp, category_crud, 'categories', write_guard=admin_required)


@bp.route('/reference', methods=['GET'])
def get_reference():
    """Everything the report form needs to populate its selectors."""
    try:
        data = ReferenceDataLoader(get_data_store()).load()
    except StoreError as e:
        return handle_api_exception(e, 'load reference data', 502)

    return jsonify({
        **data.to_dict(),
        'choices': {
            'subject': SUBJECT_CHOICES,
            'report_group': REPORT_GROUP_CHOICES,
            'consequences': CONSEQUENCE_CHOICES,
            'likelihood': LIKELIHOOD_CHOICES,
            'status': STATUS_CHOICES,
        }
    })
