from flask_sqlalchemy import SQLAlchemy
from sqlalchemy import event
from sqlalchemy.engine import Engine
import logging
import sqlite3
from shared.models import (
    Base, User, AuthToken, Project, Company, SafetyCategory,
    Observation, ObservationCategory, ActionPlan, TABLES
)

logger = logging.getLogger(__name__)
db = SQLAlchemy(model_class=Base)


@event.listens_for(Engine, "connect")
def enable_sqlite_foreign_keys(db_conn, conn_record):
    """SQLite ignores foreign keys unless asked; action plans must reference a real observation."""
    if isinstance(db_conn, sqlite3.Connection):
        cursor = db_conn.cursor()
        cursor.execute("PRAGMA foreign_keys = ON")
        cursor.close()
        logger.debug("Enabled SQLite foreign key enforcement")
