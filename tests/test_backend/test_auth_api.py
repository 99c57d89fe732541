"""Tests for authentication, navigation and user administration."""
from backend.models import db, User, AuthToken


def _register(client, username, password='correct-horse'):
    return client.post('/api/auth/register', json={
        'username': username,
        'email': f'{username}@example.com',
        'password': password,
    })


def test_first_user_is_admin(client):
    first = _register(client, 'admin')
    second = _register(client, 'inspector')

    assert first.status_code == 201
    assert first.get_json()['user']['role'] == 'admin'
    assert second.get_json()['user']['role'] == 'user'


def test_register_validation(client):
    response = client.post('/api/auth/register', json={'username': 'ab', 'email': 'nope', 'password': 'short'})

    assert response.status_code == 400
    assert set(response.get_json()['fields']) == {'username', 'email', 'password'}


def test_duplicate_registration(client):
    _register(client, 'admin')
    assert _register(client, 'admin').status_code == 400


def test_login_issues_token(client, app):
    _register(client, 'admin')

    response = client.post('/api/auth/login', json={'username': 'admin', 'password': 'correct-horse'})

    assert response.status_code == 200
    token = response.get_json()['token']
    with app.app_context():
        assert db.session.get(AuthToken, token) is not None


def test_login_with_wrong_password(client):
    _register(client, 'admin')
    response = client.post('/api/auth/login', json={'username': 'admin', 'password': 'wrong-horse'})
    assert response.status_code == 401


def test_api_requires_token(client):
    assert client.get('/api/auth/me').status_code == 401
    assert client.get('/api/reference', headers={'Authorization': 'Bearer made-up'}).status_code == 401


def test_navigation_shows_administration_only_to_admins(client, admin_headers, user_headers):
    admin_menu = client.get('/api/auth/me', headers=admin_headers).get_json()['navigation']
    user_menu = client.get('/api/auth/me', headers=user_headers).get_json()['navigation']

    assert [item['label'] for item in user_menu] == ['Safety Reports', 'My Reports', 'Statistics', 'New Report']
    assert admin_menu[-1]['label'] == 'Administration'
    assert [child['label'] for child in admin_menu[-1]['children']] == ['Users', 'Projects', 'Companies',
                                                                       'Categories']


def test_logout_revokes_token(client, user_headers):
    assert client.post('/api/auth/logout', headers=user_headers).status_code == 200
    assert client.get('/api/auth/me', headers=user_headers).status_code == 401


class TestUserAdministration:

    def _user_id(self, app, username):
        with app.app_context():
            return User.query.filter_by(username=username).first().id

    def test_list_users_is_admin_only(self, client, admin_headers, user_headers):
        response = client.get('/api/admin/users', headers=admin_headers)
        assert [u['username'] for u in response.get_json()['users']] == ['admin', 'inspector']
        assert client.get('/api/admin/users', headers=user_headers).status_code == 403

    def test_promote_and_demote(self, app, client, admin_headers, user_headers):
        inspector_id = self._user_id(app, 'inspector')

        response = client.put(f'/api/admin/users/{inspector_id}/role', headers=admin_headers, json={'role': 'admin'})
        assert response.status_code == 200
        assert client.get('/api/admin/users', headers=user_headers).status_code == 200

        response = client.put(f'/api/admin/users/{inspector_id}/role', headers=admin_headers, json={'role': 'user'})
        assert response.get_json()['role'] == 'user'

    def test_last_admin_cannot_be_demoted(self, app, client, admin_headers):
        admin_id = self._user_id(app, 'admin')
        response = client.put(f'/api/admin/users/{admin_id}/role', headers=admin_headers, json={'role': 'user'})
        assert response.status_code == 409

    def test_invalid_role(self, app, client, admin_headers, user_headers):
        inspector_id = self._user_id(app, 'inspector')
        response = client.put(f'/api/admin/users/{inspector_id}/role', headers=admin_headers,
                              json={'role': 'owner'})
        assert response.status_code == 400

    def test_delete_user(self, app, client, admin_headers, user_headers):
        inspector_id = self._user_id(app, 'inspector')

        assert client.delete(f'/api/admin/users/{inspector_id}', headers=admin_headers).status_code == 200
        assert client.get('/api/auth/me', headers=user_headers).status_code == 401
        assert client.delete(f'/api/admin/users/{inspector_id}', headers=admin_headers).status_code == 404

    def test_admin_cannot_delete_self(self, app, client, admin_headers):
        admin_id = self._user_id(app, 'admin')
        assert client.delete(f'/api/admin/users/{admin_id}', headers=admin_headers).status_code == 409
