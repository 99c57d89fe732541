"""Relational data store abstraction and its Flask-SQLAlchemy implementation.

Controllers never touch ORM objects; every read and write goes through a
``DataStore`` and rows travel as plain dicts. Related rows requested through
``QuerySpec.embed`` appear as nested dicts keyed by the related table name,
e.g. ``row['projects'] == {'name': 'North Yard'}``.
"""
import datetime
import enum
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple
from flask import has_app_context
from sqlalchemy import select, update, delete, func, case, Date, DateTime, Boolean, Enum as SAEnum
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import class_mapper
from shared.models import TABLES
from shared.utils import parse_iso_date, parse_iso_datetime

logger = logging.getLogger(__name__)

OPERATORS = ('eq', 'neq', 'gt', 'gte', 'lt', 'lte', 'in', 'is')


class StoreError(Exception):
    """A read or write against the relational store failed."""
    pass


class ReferencedRowError(StoreError):
    """A delete was refused because other rows still reference the target."""
    pass


class NotFoundError(Exception):
    """The requested row does not exist."""
    pass


@dataclass(frozen=True)
class Filter:
    column: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op}")


@dataclass
class QuerySpec:
    """A single-table read: filters, one sort key, an optional row window and embedded relations."""
    table: str
    filters: List[Filter] = field(default_factory=list)
    order_by: Optional[str] = None
    ascending: bool = True
    offset: int = 0
    limit: Optional[int] = None
    embed: Dict[str, Sequence[str]] = field(default_factory=dict)
    count: bool = False

    def where(self, column, op, value):
        self.filters.append(Filter(column, op, value))
        return self

    def page(self, page, per_page):
        """Restrict to rows [(page-1)*per_page, page*per_page) and request the total."""
        self.offset = (max(page, 1) - 1) * per_page
        self.limit = per_page
        self.count = True
        return self


def eq(column, value):
    return Filter(column, 'eq', value)


class DataStore:
    """Interface shared by the SQL and PostgREST stores."""

    def query(self, spec: QuerySpec) -> Tuple[List[Dict[str, Any]], Optional[int]]:
        """Run a read; the total is the unwindowed match count when ``spec.count`` is set."""
        raise NotImplementedError

    def insert(self, table: str, values: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError

    def insert_many(self, table: str, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        raise NotImplementedError

    def update(self, table: str, filters: Sequence[Filter], values: Dict[str, Any]) -> int:
        raise NotImplementedError

    def delete(self, table: str, filters: Sequence[Filter]) -> int:
        raise NotImplementedError

    def select(self, table, filters=(), order_by=None, ascending=True, embed=None):
        spec = QuerySpec(table, list(filters), order_by=order_by, ascending=ascending, embed=embed or {})
        rows, _ = self.query(spec)
        return rows

    def get(self, table, row_id, embed=None):
        spec = QuerySpec(table, [eq('id', row_id)], limit=1, embed=embed or {})
        rows, _ = self.query(spec)
        return rows[0] if rows else None


def serialize_value(value):
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, (datetime.date, datetime.datetime)):
        return value.isoformat()
    return value


class SqlAlchemyStore(DataStore):
    """DataStore over the Flask-SQLAlchemy session.

    Calls made outside an application context (worker threads) push one, so
    each thread works with its own scoped session.
    """

    def __init__(self, db, app=None):
        self.db = db
        self.app = app

    @contextmanager
    def _context(self):
        if has_app_context() or self.app is None:
            yield
        else:
            with self.app.app_context():
                yield

    def _model(self, table):
        try:
            return TABLES[table]
        except KeyError:
            raise StoreError(f"Unknown table: {table}")

    def _column(self, model, name):
        column = model.__table__.columns.get(name)
        if column is None:
            raise StoreError(f"Unknown column {model.__tablename__}.{name}")
        return getattr(model, name)

    def _coerce(self, model, name, value):
        """Convert wire values (ISO strings) to what the column type expects."""
        if value is None:
            return None
        column_type = model.__table__.columns[name].type
        if isinstance(value, (list, tuple)):
            return [self._coerce(model, name, v) for v in value]
        if isinstance(column_type, DateTime):
            return parse_iso_datetime(value)
        if isinstance(column_type, Date):
            return parse_iso_date(value)
        if isinstance(column_type, Boolean) and isinstance(value, str):
            return value.lower() == 'true'
        return value

    def _coerce_values(self, model, values):
        return {name: self._coerce(model, name, value)
                for name, value in values.items() if name in model.__table__.columns}

    def _condition(self, model, f):
        column = self._column(model, f.column)
        value = self._coerce(model, f.column, f.value)
        if f.op == 'eq':
            return column == value
        if f.op == 'neq':
            return column != value
        if f.op == 'gt':
            return column > value
        if f.op == 'gte':
            return column >= value
        if f.op == 'lt':
            return column < value
        if f.op == 'lte':
            return column <= value
        if f.op == 'in':
            return column.in_(value)
        return column.is_(None)

    def _order(self, model, name, ascending):
        column = self._column(model, name)
        column_type = model.__table__.columns[name].type
        enum_class = getattr(column_type, 'enum_class', None) if isinstance(column_type, SAEnum) else None
        # Ordered scales (consequences, likelihood) sort by severity, not alphabetically
        if enum_class is not None and hasattr(enum_class, 'ranks'):
            column = case(*[(column == member, member.rank) for member in enum_class], else_=-1)
        return column.asc() if ascending else column.desc()

    def _to_row(self, obj, embed):
        row = {c.name: serialize_value(getattr(obj, c.name)) for c in obj.__table__.columns}
        if embed:
            relationships = {rel.mapper.local_table.name: rel.key
                             for rel in class_mapper(type(obj)).relationships}
            for table, columns in embed.items():
                key = relationships.get(table)
                if key is None:
                    raise StoreError(f"{obj.__tablename__} has no relation to {table}")
                related = getattr(obj, key)
                row[table] = ({c: serialize_value(getattr(related, c)) for c in columns}
                              if related is not None else None)
        return row

    def query(self, spec):
        model = self._model(spec.table)
        with self._context():
            try:
                conditions = [self._condition(model, f) for f in spec.filters]
                total = None
                if spec.count:
                    total = self.db.session.scalar(
                        select(func.count()).select_from(model).where(*conditions))

                stmt = select(model).where(*conditions)
                if spec.order_by:
                    stmt = stmt.order_by(self._order(model, spec.order_by, spec.ascending))
                primary = class_mapper(model).primary_key
                stmt = stmt.order_by(*primary)
                if spec.offset:
                    stmt = stmt.offset(spec.offset)
                if spec.limit is not None:
                    stmt = stmt.limit(spec.limit)

                objects = self.db.session.scalars(stmt).unique().all()
                return [self._to_row(obj, spec.embed) for obj in objects], total
            except SQLAlchemyError as e:
                logger.error(f"Query on {spec.table} failed: {e}", exc_info=True)
                raise StoreError(f"Failed to read {spec.table}") from e

    def insert(self, table, values):
        return self.insert_many(table, [values])[0]

    def insert_many(self, table, rows):
        model = self._model(table)
        with self._context():
            try:
                objects = [model(**self._coerce_values(model, values)) for values in rows]
                self.db.session.add_all(objects)
                self.db.session.commit()
                result = [self._to_row(obj, None) for obj in objects]
                logger.debug(f"Inserted {len(result)} row(s) into {table}")
                return result
            except SQLAlchemyError as e:
                self.db.session.rollback()
                logger.error(f"Insert into {table} failed: {e}", exc_info=True)
                raise StoreError(f"Failed to write {table}") from e

    def update(self, table, filters, values):
        model = self._model(table)
        with self._context():
            try:
                conditions = [self._condition(model, f) for f in filters]
                result = self.db.session.execute(
                    update(model).where(*conditions).values(**self._coerce_values(model, values)))
                self.db.session.commit()
                return result.rowcount
            except SQLAlchemyError as e:
                self.db.session.rollback()
                logger.error(f"Update of {table} failed: {e}", exc_info=True)
                raise StoreError(f"Failed to update {table}") from e

    def delete(self, table, filters):
        model = self._model(table)
        with self._context():
            try:
                conditions = [self._condition(model, f) for f in filters]
                result = self.db.session.execute(delete(model).where(*conditions))
                self.db.session.commit()
                return result.rowcount
            except IntegrityError as e:
                self.db.session.rollback()
                logger.warning(f"Delete from {table} refused: {e.orig}")
                raise ReferencedRowError(f"Rows in {table} are still referenced") from e
            except SQLAlchemyError as e:
                self.db.session.rollback()
                logger.error(f"Delete from {table} failed: {e}", exc_info=True)
                raise StoreError(f"Failed to delete from {table}") from e
