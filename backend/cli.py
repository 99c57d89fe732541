import click
import json
import logging
from pathlib import Path
from flask.cli import with_appcontext
from pydantic import ValidationError as PydanticValidationError
from werkzeug.security import generate_password_hash
from .models import db, User
from .services.providers import get_data_store
from .services.store import StoreError
from shared.enums import UserRole
from shared.schemas import ProjectCreate, CompanyCreate, CategoryCreate, RegisterRequest

logger = logging.getLogger(__name__)

DEFAULT_CATEGORIES_PATH = Path(__file__).parent / 'data' / 'safety_categories.json'


def _new_named_rows(store, table, schema, items, key='name'):
    """Validate items and return those whose ``key`` value is not in ``table`` yet."""
    existing = {row[key] for row in store.select(table)}
    rows = []
    for item in items:
        if isinstance(item, str):
            item = {'name': item}
        validated = schema(**item).model_dump(exclude_none=True)
        if validated[key] in existing:
            logger.debug(f"{table}: '{validated[key]}' already exists")
            continue
        rows.append(validated)
        existing.add(validated[key])
    return rows


def _insert_rows(store, table, rows):
    return len(store.insert_many(table, rows)) if rows else 0


@click.command('init-db')
@with_appcontext
def init_db_command():
    """Create the tables and seed the default safety categories."""
    logger.info("Starting database initialization")
    db.create_all()
    logger.info("Database tables created successfully")

    with open(DEFAULT_CATEGORIES_PATH, 'r') as f:
        categories = json.load(f)
    store = get_data_store()
    try:
        added = _insert_rows(store, 'safety_categories',
                             _new_named_rows(store, 'safety_categories', CategoryCreate, categories))
    except StoreError as e:
        raise click.ClickException(f"Could not seed safety categories: {e}")
    logger.info(f"Seeded {added} default safety categories")
    click.echo(f'Initialized the database ({added} safety categories added).')


@click.command('seed-reference')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@with_appcontext
def seed_reference_command(path):
    """Load projects, companies and categories from a JSON file into the data store.

    The file holds ``{"projects": [...], "companies": [...], "categories": [...]}``;
    entries are names or objects. Existing names are skipped. Nothing is written
    unless every entry validates.
    """
    with open(path, 'r') as f:
        data = json.load(f)

    store = get_data_store()
    sources = (
        ('projects', 'projects', ProjectCreate),
        ('companies', 'companies', CompanyCreate),
        ('categories', 'safety_categories', CategoryCreate),
    )
    try:
        pending = {label: (table, _new_named_rows(store, table, schema, data.get(label, [])))
                   for label, table, schema in sources}
        counts = {label: _insert_rows(store, table, rows) for label, (table, rows) in pending.items()}
    except PydanticValidationError as e:
        raise click.ClickException(f"Invalid reference data: {e}")
    except StoreError as e:
        raise click.ClickException(f"Could not write reference data: {e}")

    logger.info(f"Seeded reference data from {path}: {counts}")
    click.echo(f"Added {counts['projects']} projects, {counts['companies']} companies, "
               f"{counts['categories']} categories.")


@click.command('create-admin')
@click.option('--username', prompt=True)
@click.option('--email', prompt=True)
@click.option('--full-name', default='', help='Display name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@with_appcontext
def create_admin_command(username, email, full_name, password):
    """Create an administrator account, or promote an existing user."""
    user = User.query.filter_by(username=username).first()
    if user is not None:
        user.role = UserRole.ADMIN
        db.session.commit()
        logger.info(f"Promoted {username} to admin")
        click.echo(f'User {username} is now an administrator.')
        return

    try:
        data = RegisterRequest(username=username, email=email, password=password, full_name=full_name)
    except PydanticValidationError as e:
        raise click.ClickException(f"Invalid user data: {e}")

    db.session.add(User(
        username=data.username,
        email=data.email,
        full_name=data.full_name or '',
        password_hash=generate_password_hash(data.password),
        role=UserRole.ADMIN
    ))
    db.session.commit()
    logger.info(f"Created admin user {username}")
    click.echo(f'Created administrator {username}.')
