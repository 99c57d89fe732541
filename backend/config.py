"""Portal settings loaded from the environment."""
from typing import Optional
from pydantic_settings import BaseSettings


class PortalSettings(BaseSettings):
    """Deployment settings for the portal, read from ``PORTAL_*`` environment variables."""

    # Relational store
    data_store: str = 'sql'  # 'sql' (Flask-SQLAlchemy) or 'postgrest'
    database_uri: str = 'sqlite:///portal.db'
    postgrest_url: str = ''  # e.g. https://<project>.supabase.co/rest/v1
    postgrest_api_key: str = ''

    # Object storage
    storage_provider: str = 'local'  # local, s3, gcs, azure, minio
    storage_access_key: Optional[str] = None
    storage_secret_key: Optional[str] = None
    storage_region: str = 'us-east-1'
    storage_host: Optional[str] = None  # minio endpoint
    storage_local_path: str = './storage'
    storage_public_url: str = 'http://localhost:5000'

    # Reports
    reports_per_page: int = 10
    max_action_plans: int = 10
    max_image_bytes: int = 10 * 1024 * 1024

    # PDF rendering
    image_cache_ttl: float = 300.0  # 5 minutes
    http_timeout: float = 10.0

    class Config:
        env_prefix = 'PORTAL_'
        case_sensitive = False

    def to_flask_config(self):
        """Upper-case mapping suitable for ``app.config.from_mapping``."""
        values = {f'PORTAL_{key.upper()}': value for key, value in self.model_dump().items()}
        values['SQLALCHEMY_DATABASE_URI'] = self.database_uri
        return values
