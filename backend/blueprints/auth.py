"""Authentication blueprint: users, bearer tokens and the navigation menu."""
from functools import wraps
from flask import Blueprint, request, jsonify, g
import logging
import secrets
from pydantic import ValidationError as PydanticValidationError
from werkzeug.security import generate_password_hash, check_password_hash
from ..models import db, User, AuthToken
from ..utils import api_error, pydantic_error_fields
from shared.enums import UserRole
from shared.schemas import RegisterRequest

bp = Blueprint('auth', __name__, url_prefix='/api')
logger = logging.getLogger(__name__)

PUBLIC_API_PATHS = ('/api/auth/login', '/api/auth/register')

NAVIGATION = [
    {'label': 'Safety Reports', 'path': '/'},
    {'label': 'My Reports', 'path': '/my-reports'},
    {'label': 'Statistics', 'path': '/stats', 'children': [
        {'label': 'Monthly Summary', 'path': '/stats/monthly'},
    ]},
    {'label': 'New Report', 'path': '/reports/new'},
]
ADMIN_NAVIGATION = {'label': 'Administration', 'path': '/admin', 'children': [
    {'label': 'Users', 'path': '/admin/users'},
    {'label': 'Projects', 'path': '/admin/projects'},
    {'label': 'Companies', 'path': '/admin/companies'},
    {'label': 'Categories', 'path': '/admin/categories'},
]}


def navigation_for(user):
    """Menu entries visible to user; Administration only for admins."""
    items = [dict(item) for item in NAVIGATION]
    if user is not None and user.is_admin:
        items.append(ADMIN_NAVIGATION)
    return items


def serialize_user(user):
    return {
        'id': user.id,
        'username': user.username,
        'email': user.email,
        'full_name': user.full_name,
        'role': user.role.value,
    }


def current_user():
    return getattr(g, 'user', None)


def admin_required(view):
    """Reject non-admin users with 403."""
    @wraps(view)
    def wrapped(*args, **kwargs):
        user = current_user()
        if user is None:
            return api_error('Authentication required', 401)
        if not user.is_admin:
            return api_error('Administrator access required', 403, details={'user': user.username})
        return view(*args, **kwargs)
    return wrapped


@bp.route('/auth/register', methods=['POST'])
def register():
    """Register a new user; the first user becomes an administrator."""
    try:
        data = RegisterRequest.model_validate(request.get_json(silent=True) or {})
    except PydanticValidationError as e:
        return api_error('Invalid registration data', 400, fields=pydantic_error_fields(e))

    if User.query.filter((User.username == data.username) | (User.email == data.email)).first():
        return api_error('User already exists', 400)

    role = UserRole.ADMIN if User.query.count() == 0 else UserRole.USER

    try:
        user = User(
            username=data.username,
            email=data.email,
            full_name=data.full_name or '',
            password_hash=generate_password_hash(data.password),
            role=role
        )
        db.session.add(user)
        db.session.commit()
        logger.info(f"Registered user {user.username} with role {role.value}")

        return jsonify({
            'message': 'User registered successfully',
            'user': serialize_user(user)
        }), 201
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to register user {data.username}: {e}", exc_info=True)
        return api_error('Failed to register user', 500, 'error')


@bp.route('/auth/login', methods=['POST'])
def login():
    """Login user and return a bearer token."""
    data = request.get_json(silent=True) or {}
    username = data.get('username')
    password = data.get('password') or ''

    user = User.query.filter_by(username=username).first()

    if not user or not check_password_hash(user.password_hash, password):
        return api_error('Invalid username or password', 401, details={'username': username})

    token = secrets.token_urlsafe(32)

    try:
        db.session.add(AuthToken(token=token, user_id=user.id))
        db.session.commit()

        return jsonify({
            'token': token,
            'user': serialize_user(user)
        })
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to issue token for {username}: {e}", exc_info=True)
        return api_error('Failed to log in', 500, 'error')


@bp.route('/auth/logout', methods=['POST'])
def logout():
    """Logout user by invalidating token."""
    token = getattr(g, 'token', None)
    if not token:
        return api_error('Token required', 400)

    try:
        AuthToken.query.filter_by(token=token).delete()
        db.session.commit()
        return jsonify({'message': 'Logged out successfully'})
    except Exception as e:
        db.session.rollback()
        logger.error(f"Failed to log out: {e}", exc_info=True)
        return api_error('Failed to log out', 500, 'error')


@bp.route('/auth/me', methods=['GET'])
def me():
    """Current user plus the navigation menu they may see."""
    user = current_user()
    if user is None:
        return api_error('Not authenticated', 401)

    return jsonify({
        **serialize_user(user),
        'navigation': navigation_for(user),
    })


def init_auth(app):
    """Require a bearer token on every /api route except login and register."""
    @app.before_request
    def check_auth():
        if not request.path.startswith('/api') or request.path.startswith(PUBLIC_API_PATHS):
            return

        auth_header = request.headers.get('Authorization', '')
        if auth_header.startswith('Bearer '):
            token = auth_header[len('Bearer '):].strip()
            entry = db.session.get(AuthToken, token)
            if entry is not None and entry.user is not None:
                g.user = entry.user
                g.token = token
                return

        return api_error('Authentication required', 401, 'debug')
