"""Public read access to stored images, mirroring the object-storage public URL layout."""
from flask import Blueprint, send_file
import io
import logging
import mimetypes
from ..services.object_storage import StorageError, StoredObjectNotFound, PUBLIC_PATH
from ..services.providers import get_object_storage
from ..utils import api_error, handle_api_exception
from shared.enums import Bucket

bp = Blueprint('storage', __name__, url_prefix=f'/{PUBLIC_PATH}')
logger = logging.getLogger(__name__)

PUBLIC_BUCKETS = {bucket.value for bucket in Bucket}


@bp.route('/<bucket>/<path:key>', methods=['GET'])
def get_object(bucket, key):
    if bucket not in PUBLIC_BUCKETS:
        return api_error('Bucket not found', 404, 'debug')
    try:
        data = get_object_storage().download(bucket, key)
    except StoredObjectNotFound:
        return api_error('Object not found', 404, 'debug', details={'bucket': bucket, 'key': key})
    except StorageError as e:
        return handle_api_exception(e, 'read stored object', 502)

    mimetype = mimetypes.guess_type(key)[0] or 'application/octet-stream'
    response = send_file(io.BytesIO(data), mimetype=mimetype, download_name=key.rsplit('/', 1)[-1])
    response.headers['Cache-Control'] = 'public, max-age=3600'
    return response
