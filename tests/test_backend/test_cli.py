import json
from backend.models import User, Project, Company, SafetyCategory
from shared.enums import UserRole


def test_init_db_seeds_categories_once(app, runner):
    result = runner.invoke(args=['init-db'])
    assert result.exit_code == 0
    assert '11 safety categories added' in result.output

    result = runner.invoke(args=['init-db'])
    assert '0 safety categories added' in result.output

    with app.app_context():
        names = {c.name for c in SafetyCategory.query.all()}
    assert {'PPE', 'Working at Height'} <= names
    assert len(names) == 11


def test_seed_reference(app, runner, tmp_path):
    path = tmp_path / 'reference.json'
    path.write_text(json.dumps({
        'projects': ['North Yard Expansion', {'name': 'South Pier'}],
        'companies': ['Acme Builders'],
        'categories': [{'name': 'Housekeeping', 'icon': 'broom'}],
    }))

    result = runner.invoke(args=['seed-reference', str(path)])

    assert result.exit_code == 0
    assert 'Added 2 projects, 1 companies, 1 categories.' in result.output
    with app.app_context():
        assert Project.query.count() == 2
        assert Company.query.filter_by(name='Acme Builders').count() == 1


def test_seed_reference_rejects_blank_names(runner, tmp_path):
    path = tmp_path / 'reference.json'
    path.write_text(json.dumps({'projects': ['  ']}))

    result = runner.invoke(args=['seed-reference', str(path)])

    assert result.exit_code != 0
    assert 'Invalid reference data' in result.output


def test_create_admin(app, runner):
    result = runner.invoke(args=['create-admin', '--username', 'root', '--email', 'root@example.com',
                                 '--password', 'correct-horse'])
    assert result.exit_code == 0
    assert 'Created administrator root.' in result.output

    with app.app_context():
        assert User.query.filter_by(username='root').first().role == UserRole.ADMIN


def test_create_admin_promotes_existing_user(app, runner, client, admin_headers, user_headers):
    result = runner.invoke(args=['create-admin', '--username', 'inspector', '--email', 'x@example.com',
                                 '--password', 'irrelevant'])

    assert 'User inspector is now an administrator.' in result.output
    with app.app_context():
        assert User.query.filter_by(username='inspector').first().is_admin
