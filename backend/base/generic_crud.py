"""Generic CRUD for the admin-managed reference tables (projects, companies, categories)."""
from flask import jsonify, request
from pydantic import ValidationError as PydanticValidationError
from shared.validation import ValidationError
from ..services.providers import get_data_store
from ..services.store import QuerySpec, ReferencedRowError, StoreError, eq
from ..utils import api_error, handle_api_exception
import logging
import math
from typing import Optional, Callable, Any, Dict


class DuplicateError(ValidationError):
    """A unique column value is already taken."""


class GenericCRUD:
    """CRUD handlers driven by Pydantic schemas, reading and writing through the DataStore.

    Usage:
        crud = GenericCRUD(
            table='projects',
            create_schema=ProjectCreate,
            update_schema=ProjectUpdate,
            response_schema=ProjectResponse,
            singular_name='project'
        )
    """

    def __init__(
        self,
        table: str,
        create_schema: type,
        update_schema: type,
        response_schema: type,
        singular_name: Optional[str] = None,
        plural_name: Optional[str] = None,
        order_by: str = 'name',
        unique_field: Optional[str] = None
    ):
        """
        Args:
            table: Store table name
            create_schema: Pydantic schema for creation
            update_schema: Pydantic schema for partial updates
            response_schema: Pydantic schema used to serialize rows
            singular_name: Name used in messages (defaults to table name minus trailing 's')
            plural_name: Key of the list in responses (defaults to table name)
            order_by: Column the list is sorted by
            unique_field: Column whose value must not repeat; duplicates get a 409
        """
        self.table = table
        self.create_schema = create_schema
        self.update_schema = update_schema
        self.response_schema = response_schema
        self.singular_name = singular_name or table.rstrip('s')
        self.plural_name = plural_name or table
        self.order_by = order_by
        self.unique_field = unique_field
        self.logger = logging.getLogger(f"{__name__}.{table}")

    @property
    def store(self):
        return get_data_store()

    def not_found(self):
        return api_error(f'{self.singular_name.title()} not found', 404)

    def get_list(self, page=1, per_page=50, max_per_page=200):
        """Paginated list sorted by ``order_by``."""
        page = max(page, 1)
        per_page = max(1, min(per_page, max_per_page))

        try:
            rows, total = self.store.query(QuerySpec(self.table, order_by=self.order_by).page(page, per_page))
        except StoreError as e:
            return handle_api_exception(e, f'list {self.plural_name}', 502)

        if total is None:
            total = (page - 1) * per_page + len(rows)
        pages = math.ceil(total / per_page) if total else 0

        return jsonify({
            self.get_plural_name(): [self.serialize(row) for row in rows],
            'pagination': {
                'page': page,
                'per_page': per_page,
                'total': total,
                'pages': pages,
                'has_next': page < pages,
                'has_prev': page > 1
            }
        })

    def get_detail(self, resource_id):
        try:
            row = self.store.get(self.table, resource_id)
        except StoreError as e:
            return handle_api_exception(e, f'load {self.singular_name}', 502)
        if row is None:
            return self.not_found()
        return jsonify(self.serialize(row))

    def create(self):
        try:
            validated_data = self.validate(self.create_schema, self.get_json_data())
            self.check_unique(validated_data)

            row = self.store.insert(self.table, validated_data)

            self.logger.info(f"Created {self.singular_name}: {row['id']} - {row.get('name', 'N/A')}")
            return jsonify({
                'id': row['id'],
                'message': f'{self.singular_name.title()} created successfully'
            }), 201

        except DuplicateError as e:
            return api_error(str(e), 409, fields=e.fields)
        except ValidationError as e:
            return api_error(str(e), 400, fields=e.fields)
        except StoreError as e:
            return handle_api_exception(e, f'create {self.singular_name}', 502)

    def update(self, resource_id):
        try:
            if self.store.get(self.table, resource_id) is None:
                return self.not_found()

            validated_data = self.validate(self.update_schema, self.get_json_data())
            self.check_unique(validated_data, exclude_id=resource_id)

            if validated_data:
                self.store.update(self.table, [eq('id', resource_id)], validated_data)

            self.logger.info(f"Updated {self.singular_name}: {resource_id}")
            return jsonify({'message': f'{self.singular_name.title()} updated successfully'})

        except DuplicateError as e:
            return api_error(str(e), 409, fields=e.fields)
        except ValidationError as e:
            return api_error(str(e), 400, fields=e.fields)
        except StoreError as e:
            return handle_api_exception(e, f'update {self.singular_name}', 502)

    def delete(self, resource_id):
        """Delete a row; rows still referenced by observations are refused with 409."""
        try:
            if self.store.get(self.table, resource_id) is None:
                return self.not_found()
            self.store.delete(self.table, [eq('id', resource_id)])
        except ReferencedRowError as e:
            return api_error(f'{self.singular_name.title()} is still referenced by reports', 409,
                             details={'id': resource_id, 'error': str(e)})
        except StoreError as e:
            return handle_api_exception(e, f'delete {self.singular_name}', 502)

        self.logger.info(f"Deleted {self.singular_name}: {resource_id}")
        return jsonify({'message': f'{self.singular_name.title()} deleted successfully'})

    def serialize(self, row) -> Dict[str, Any]:
        return self.response_schema.model_validate(row).model_dump(mode='json')

    def validate(self, schema, data):
        """Run data through a Pydantic schema, flattening errors into a ValidationError."""
        try:
            return schema(**data).model_dump(exclude_none=True)
        except PydanticValidationError as e:
            errors = {}
            for error in e.errors():
                errors['.'.join(str(x) for x in error['loc'])] = error['msg']
            raise ValidationError('; '.join(f"{field}: {msg}" for field, msg in errors.items()), errors)

    def check_unique(self, data, exclude_id=None):
        if not self.unique_field or self.unique_field not in data:
            return
        matches = self.store.select(self.table, [eq(self.unique_field, data[self.unique_field])])
        if any(row['id'] != exclude_id for row in matches):
            raise DuplicateError(
                f'{self.singular_name.title()} with this {self.unique_field} already exists',
                {self.unique_field: 'Already exists'}
            )

    def get_json_data(self) -> Dict[str, Any]:
        data = request.get_json(silent=True)
        if data is None:
            raise ValidationError('Request body must contain valid JSON')
        if not isinstance(data, dict):
            raise ValidationError('Request data must be a JSON object')
        return data

    def get_plural_name(self):
        return self.plural_name


def register_crud_routes(bp, crud_instance, resource_name, write_guard: Optional[Callable] = None):
    """Register list/detail/create/update/delete routes under ``/<resource_name>``.

    ``write_guard`` wraps the mutating views (e.g. ``admin_required``); reads stay
    open to any authenticated user.
    """
    guard = write_guard or (lambda view: view)
    singular = crud_instance.singular_name

    def list_view():
        page = request.args.get('page', 1, type=int)
        per_page = request.args.get('per_page', 50, type=int)
        return crud_instance.get_list(page=page, per_page=per_page)

    def detail_view(resource_id):
        return crud_instance.get_detail(resource_id)

    def create_view():
        return crud_instance.create()

    def update_view(resource_id):
        return crud_instance.update(resource_id)

    def delete_view(resource_id):
        return crud_instance.delete(resource_id)

    bp.add_url_rule(f'/{resource_name}', f'list_{resource_name}', list_view, methods=['GET'])
    bp.add_url_rule(f'/{resource_name}/<resource_id>', f'get_{singular}', detail_view, methods=['GET'])
    bp.add_url_rule(f'/{resource_name}', f'create_{singular}', guard(create_view), methods=['POST'])
    bp.add_url_rule(f'/{resource_name}/<resource_id>', f'update_{singular}', guard(update_view), methods=['PUT'])
    bp.add_url_rule(f'/{resource_name}/<resource_id>', f'delete_{singular}', guard(delete_view), methods=['DELETE'])
