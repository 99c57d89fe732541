"""Flask application factory for the Safety Observation portal backend."""
from flask import Flask
import logging
from pathlib import Path
from .config import PortalSettings
from .models import db
from .blueprints import auth, users, reference, reports, action_plans, storage
from .cli import init_db_command, seed_reference_command, create_admin_command
from .logging_config import setup_logging

logger = logging.getLogger(__name__)


def create_app(test_config=None):
    """Flask application factory for the portal backend.

    Creates and configures a Flask application instance with:
    - Settings from PORTAL_* environment variables
    - SQLAlchemy database integration
    - Blueprint registration for API endpoints
    - CLI command registration
    - Logging configuration

    Args:
        test_config (dict, optional): Configuration overrides for testing

    Returns:
        Flask: Configured Flask application instance
    """
    setup_logging()
    logger.info("Starting Flask application initialization")

    app = Flask(__name__, instance_relative_config=True)
    logger.debug(f"Flask app created with instance path: {app.instance_path}")

    app.config.from_mapping(PortalSettings().to_flask_config())

    if test_config is None:
        # Load the instance config, if it exists, when not testing
        if app.config.from_pyfile('config.py', silent=True):
            logger.info("Loaded configuration from instance/config.py")
        else:
            logger.debug("No instance config file found, using environment settings")
    else:
        app.config.from_mapping(test_config)
        logger.info("Loaded test configuration")

    try:
        Path(app.instance_path).mkdir(parents=True, exist_ok=True)
    except OSError as e:
        logger.warning(f"Could not create instance directory {app.instance_path}: {e}")

    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    logger.info(f"Using database URI: {app.config['SQLALCHEMY_DATABASE_URI']}")
    db.init_app(app)

    logger.info(f"Data store: {app.config['PORTAL_DATA_STORE']}, "
                f"object storage: {app.config['PORTAL_STORAGE_PROVIDER']}")

    for module in (auth, users, reference, reports, action_plans, storage):
        app.register_blueprint(module.bp)
        logger.debug(f"Registered {module.bp.name} blueprint")

    auth.init_auth(app)
    logger.info("Authentication system initialized")

    app.cli.add_command(init_db_command)
    app.cli.add_command(seed_reference_command)
    app.cli.add_command(create_admin_command)
    logger.info("CLI commands registered: init-db, seed-reference, create-admin")

    logger.info("Flask application initialization completed successfully")
    return app


if __name__ == '__main__':
    app = create_app()
    app.run(debug=True)
