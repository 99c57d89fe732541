"""Pytest configuration and fixtures for portal tests."""
import io
import os
import tempfile
from types import SimpleNamespace
import pytest
from PIL import Image
from backend.app import create_app
from backend.models import db, User, Project, Company, SafetyCategory
from backend.services.object_storage import (
    StorageError, StoredObjectNotFound, generate_storage_key, public_object_url,
)
from backend.services.providers import get_data_store

os.environ.setdefault('PORTAL_LOG_DIR', tempfile.mkdtemp(prefix='portal-logs-'))


class InMemoryObjectStorage:
    """Object storage double keeping uploads in a dict."""

    def __init__(self, base_url='http://storage.test'):
        self.base_url = base_url
        self.objects = {}
        self.fail_uploads = False

    def upload(self, bucket, upload):
        if self.fail_uploads:
            raise StorageError(f"Failed to upload image {upload.filename}")
        key = generate_storage_key(upload.filename)
        self.objects[(bucket, key)] = upload.data
        return key

    def download(self, bucket, key):
        try:
            return self.objects[(bucket, key)]
        except KeyError:
            raise StoredObjectNotFound(f"{bucket}/{key} not found")

    def delete(self, bucket, key):
        return self.objects.pop((bucket, key), None) is not None

    def public_url(self, bucket, key):
        return public_object_url(self.base_url, bucket, key)


def make_png(color=(200, 30, 30), size=(40, 20)):
    buffer = io.BytesIO()
    Image.new('RGB', size, color).save(buffer, format='PNG')
    return buffer.getvalue()


@pytest.fixture
def app(tmp_path):
    """Create and configure a test app instance."""
    db_fd, db_path = tempfile.mkstemp(suffix='.db')

    test_config = {
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f'sqlite:///{db_path}',
        'PORTAL_DATA_STORE': 'sql',
        'PORTAL_STORAGE_LOCAL_PATH': str(tmp_path / 'storage'),
        'PORTAL_STORAGE_PUBLIC_URL': 'http://storage.test',
    }

    app = create_app(test_config)
    app.extensions['portal_object_storage'] = InMemoryObjectStorage()

    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.engine.dispose()
    os.close(db_fd)
    os.unlink(db_path)


@pytest.fixture
def client(app):
    """A test client for the app."""
    return app.test_client()


@pytest.fixture
def runner(app):
    """A test runner for the app's Click commands."""
    return app.test_cli_runner()


@pytest.fixture
def store(app):
    return get_data_store(app)


@pytest.fixture
def object_storage(app):
    return app.extensions['portal_object_storage']


@pytest.fixture
def png_bytes():
    return make_png()


@pytest.fixture
def reference(app):
    """One project, one company and two safety categories; returns their ids."""
    with app.app_context():
        project = Project(name='North Yard Expansion')
        company = Company(name='Acme Builders')
        ppe = SafetyCategory(name='PPE', icon='hard-hat')
        height = SafetyCategory(name='Working at Height', icon='arrow-up')
        db.session.add_all([project, company, ppe, height])
        db.session.commit()
        return {
            'project_id': project.id,
            'company_id': company.id,
            'ppe_id': ppe.id,
            'height_id': height.id,
        }


@pytest.fixture
def observation_values(reference):
    """A complete, valid observation in wire form."""
    return {
        'project_id': reference['project_id'],
        'company_id': reference['company_id'],
        'submitter_name': 'Jordan Lee',
        'date': '2025-01-05',
        'time': '14:05',
        'department': 'Operations',
        'location': 'Gate 3',
        'description': 'Worker on scaffold without harness',
        'subject': 'SOSV : Safety Observation Site Visit',
        'report_group': 'safety',
        'consequences': 'major',
        'likelihood': 'likely',
    }


@pytest.fixture
def action_plan_values():
    return {
        'action': 'Provide harness training',
        'due_date': '2025-02-01',
        'responsible_person': 'Sam Patel',
        'follow_up_contact': 'Alex Kim',
    }


def _register_and_login(client, username):
    client.post('/api/auth/register', json={
        'username': username,
        'email': f'{username}@example.com',
        'password': 'correct-horse',
        'full_name': username.title(),
    })
    response = client.post('/api/auth/login', json={'username': username, 'password': 'correct-horse'})
    return {'Authorization': f"Bearer {response.get_json()['token']}"}


@pytest.fixture
def admin_headers(client):
    """Bearer headers for the first registered user, who is an administrator."""
    return _register_and_login(client, 'admin')


@pytest.fixture
def user_headers(client, admin_headers):
    """Bearer headers for a regular user (registered after the admin)."""
    return _register_and_login(client, 'inspector')


@pytest.fixture
def portal_user(app):
    """A stored user, detached from the session (id and username only)."""
    with app.app_context():
        user = User(username='jordan', email='jordan@example.com', password_hash='not-a-real-hash')
        db.session.add(user)
        db.session.commit()
        return SimpleNamespace(id=user.id, username=user.username)
