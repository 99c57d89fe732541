"""Administration of user accounts."""
from flask import Blueprint, jsonify, request
import logging
from pydantic import ValidationError as PydanticValidationError
from ..models import db, User
from ..utils import api_error, handle_api_exception, pydantic_error_fields
from .auth import admin_required, current_user
from shared.enums import UserRole
from shared.schemas import UserRoleUpdate, UserResponse

bp = Blueprint('users', __name__, url_prefix='/api/admin')
logger = logging.getLogger(__name__)


def _other_admins(user_id):
    return User.query.filter(User.role == UserRole.ADMIN, User.id != user_id).count()


@bp.route('/users', methods=['GET'])
@admin_required
def list_users():
    users = User.query.order_by(User.username).all()
    return jsonify({'users': [UserResponse.model_validate(u).model_dump(mode='json') for u in users]})


@bp.route('/users/<user_id>/role', methods=['PUT'])
@admin_required
def update_role(user_id):
    """Promote or demote a user; the last administrator cannot be demoted."""
    user = db.session.get(User, user_id)
    if user is None:
        return api_error('User not found', 404)

    try:
        data = UserRoleUpdate.model_validate(request.get_json(silent=True) or {})
    except PydanticValidationError as e:
        return api_error('Invalid role', 400, fields=pydantic_error_fields(e))

    role = UserRole(data.role)
    if user.is_admin and role != UserRole.ADMIN and _other_admins(user.id) == 0:
        return api_error('Cannot demote the last administrator', 409)

    try:
        user.role = role
        db.session.commit()
        logger.info(f"{current_user().username} set role of {user.username} to {role.value}")
        return jsonify({'message': 'Role updated successfully', 'role': role.value})
    except Exception as e:
        db.session.rollback()
        return handle_api_exception(e, 'update user role')


@bp.route('/users/<user_id>', methods=['DELETE'])
@admin_required
def delete_user(user_id):
    """Delete a user account; their reports stay, with the author cleared."""
    user = db.session.get(User, user_id)
    if user is None:
        return api_error('User not found', 404)
    if user.id == current_user().id:
        return api_error('You cannot delete your own account', 409)

    try:
        db.session.delete(user)
        db.session.commit()
        logger.info(f"Deleted user {user_id}")
        return jsonify({'message': 'User deleted successfully'})
    except Exception as e:
        db.session.rollback()
        return handle_api_exception(e, 'delete user')
