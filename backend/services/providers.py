"""Per-application service instances, created on first use (thread-safe)."""
import logging
from threading import RLock
from flask import current_app
from ..models import db
from .image_cache import ImageCache
from .object_storage import ObjectStorageService
from .pdf_renderer import ReportPdfRenderer
from .postgrest_store import PostgrestStore
from .store import SqlAlchemyStore

logger = logging.getLogger(__name__)

_lock = RLock()


def _get_or_create(name, factory, app=None):
    app = app or current_app._get_current_object()
    service = app.extensions.get(name)
    if service is None:
        with _lock:
            # Double-check after acquiring the lock
            service = app.extensions.get(name)
            if service is None:
                try:
                    service = factory(app)
                except Exception as e:
                    logger.error(f"Failed to initialize {name}: {e}")
                    raise
                app.extensions[name] = service
    return service


def _build_data_store(app):
    kind = app.config['PORTAL_DATA_STORE']
    if kind == 'postgrest':
        return PostgrestStore(app.config['PORTAL_POSTGREST_URL'], app.config['PORTAL_POSTGREST_API_KEY'],
                              timeout=app.config['PORTAL_HTTP_TIMEOUT'])
    if kind == 'sql':
        return SqlAlchemyStore(db, app)
    raise ValueError(f"Unsupported data store: {kind}")


def get_data_store(app=None):
    return _get_or_create('portal_data_store', _build_data_store, app)


def get_object_storage(app=None):
    return _get_or_create('portal_object_storage', lambda a: ObjectStorageService.from_config(a.config), app)


def get_image_cache(app=None):
    return _get_or_create('portal_image_cache', lambda a: ImageCache(ttl=a.config['PORTAL_IMAGE_CACHE_TTL']), app)


def get_pdf_renderer(app=None):
    def build(a):
        return ReportPdfRenderer(a.config['PORTAL_STORAGE_PUBLIC_URL'], cache=get_image_cache(a),
                                 timeout=a.config['PORTAL_HTTP_TIMEOUT'])
    return _get_or_create('portal_pdf_renderer', build, app)
