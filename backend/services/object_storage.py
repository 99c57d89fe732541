"""Bucketed object storage for report images using Apache Libcloud."""

import logging
import secrets
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from libcloud.common.types import LibcloudError
from libcloud.storage.types import Provider, ContainerDoesNotExistError, ObjectDoesNotExistError
from libcloud.storage.providers import get_driver
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception_type,
    before_sleep_log,
    after_log
)
from shared.utils import sanitize_filename


logger = logging.getLogger(__name__)

PUBLIC_PATH = 'storage/v1/object/public'
CHUNK_SIZE = 8192


class StorageError(Exception):
    """An object storage operation failed."""
    pass


class StoredObjectNotFound(StorageError):
    pass


@dataclass
class ImageUpload:
    """An image chosen in a form but not yet stored."""
    filename: str
    data: bytes
    content_type: Optional[str] = None

    @property
    def size(self):
        return len(self.data)


def generate_storage_key(filename, clock=time.time):
    """Unique object key: ``<epoch millis>-<random hex>-<sanitized name>``."""
    return f"{int(clock() * 1000)}-{secrets.token_hex(4)}-{sanitize_filename(filename)}"


def public_object_url(base_url, bucket, key):
    return f"{base_url.rstrip('/')}/{PUBLIC_PATH}/{bucket}/{key}"


class ObjectStorageService:
    """One libcloud container per bucket; objects are addressed by (bucket, key)."""

    def __init__(self, provider_name='local', access_key=None, secret_key=None, region='us-east-1',
                 host=None, local_path='./storage', public_base_url='http://localhost:5000'):
        self.provider_name = provider_name
        self.access_key = access_key
        self.secret_key = secret_key
        self.region = region
        self.host = host
        self.local_path = Path(local_path)
        self.public_base_url = public_base_url
        self._containers = {}

        if provider_name != 'local' and not all([access_key, secret_key]):
            raise ValueError("Object storage configuration incomplete. Set PORTAL_STORAGE_ACCESS_KEY "
                             "and PORTAL_STORAGE_SECRET_KEY.")

        self.driver = self._get_driver()
        logger.info(f"Object storage initialized with provider: {self.provider_name}")

    @classmethod
    def from_config(cls, config):
        """Build from a Flask config populated by PortalSettings."""
        return cls(
            provider_name=config['PORTAL_STORAGE_PROVIDER'],
            access_key=config.get('PORTAL_STORAGE_ACCESS_KEY'),
            secret_key=config.get('PORTAL_STORAGE_SECRET_KEY'),
            region=config.get('PORTAL_STORAGE_REGION', 'us-east-1'),
            host=config.get('PORTAL_STORAGE_HOST'),
            local_path=config.get('PORTAL_STORAGE_LOCAL_PATH', './storage'),
            public_base_url=config.get('PORTAL_STORAGE_PUBLIC_URL', 'http://localhost:5000'),
        )

    def _get_driver(self):
        """Get the appropriate libcloud driver based on provider."""
        provider_map = {
            'local': Provider.LOCAL,
            's3': Provider.S3,
            'gcs': Provider.GOOGLE_STORAGE,
            'azure': Provider.AZURE_BLOBS,
            'minio': Provider.S3,  # MinIO speaks the S3 API
        }

        if self.provider_name not in provider_map:
            raise ValueError(f"Unsupported provider: {self.provider_name}")

        driver_cls = get_driver(provider_map[self.provider_name])

        if self.provider_name == 'local':
            self.local_path.mkdir(parents=True, exist_ok=True)
            return driver_cls(key=str(self.local_path))

        kwargs = {'key': self.access_key, 'secret': self.secret_key}
        if self.provider_name == 's3':
            kwargs['region'] = self.region
        elif self.provider_name == 'minio' and self.host:
            kwargs['host'] = self.host
        return driver_cls(**kwargs)

    def _get_container(self, bucket):
        """Get or create the container backing a bucket."""
        container = self._containers.get(bucket)
        if container is None:
            try:
                container = self.driver.get_container(container_name=bucket)
            except ContainerDoesNotExistError:
                logger.info(f"Creating container: {bucket}")
                container = self.driver.create_container(container_name=bucket)
            self._containers[bucket] = container
        return container

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.5, min=0.5, max=8),
        retry=retry_if_exception_type((LibcloudError, OSError)),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        after=after_log(logger, logging.DEBUG),
        reraise=True
    )
    def _upload_object(self, bucket, key, data, content_type=None):
        def chunks():
            for start in range(0, len(data), CHUNK_SIZE):
                yield data[start:start + CHUNK_SIZE]

        extra = {'content_type': content_type} if content_type else None
        return self.driver.upload_object_via_stream(
            iterator=chunks(),
            container=self._get_container(bucket),
            object_name=key,
            extra=extra
        )

    def upload(self, bucket, upload):
        """Store an ImageUpload under a fresh unique key and return the key.

        Raises:
            StorageError: If the upload fails after retries
        """
        key = generate_storage_key(upload.filename)
        logger.info(f"Uploading {upload.filename} to {bucket}/{key} ({upload.size} bytes)")
        try:
            self._upload_object(bucket, key, upload.data, upload.content_type)
        except Exception as e:
            logger.error(f"Failed to upload {upload.filename} to {bucket}: {e}", exc_info=True)
            raise StorageError(f"Failed to upload image {upload.filename}") from e
        return key

    def download(self, bucket, key):
        """Return the bytes of a stored object."""
        try:
            obj = self.driver.get_object(bucket, key)
            return b''.join(self.driver.download_object_as_stream(obj, chunk_size=CHUNK_SIZE))
        except (ObjectDoesNotExistError, ContainerDoesNotExistError) as e:
            raise StoredObjectNotFound(f"{bucket}/{key} not found") from e
        except Exception as e:
            logger.error(f"Failed to download {bucket}/{key}: {e}", exc_info=True)
            raise StorageError(f"Failed to download {bucket}/{key}") from e

    def delete(self, bucket, key):
        """Delete a stored object; a missing object is not an error."""
        try:
            obj = self.driver.get_object(bucket, key)
            self.driver.delete_object(obj)
            logger.info(f"Deleted object: {bucket}/{key}")
            return True
        except (ObjectDoesNotExistError, ContainerDoesNotExistError):
            logger.debug(f"Object already absent: {bucket}/{key}")
            return False

    def public_url(self, bucket, key):
        return public_object_url(self.public_base_url, bucket, key)
