"""Shared utility functions for the Safety Observation portal.

Filename handling for uploads, display formatting used by the table export and
the PDF renderer, and Pillow-based image inspection.
"""

import base64
import datetime
import io
import logging
import re
import unicodedata
from functools import lru_cache, wraps
from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

# Anything outside this set is replaced in stored object keys
UNSAFE_FILENAME_CHARS = re.compile(r'[^a-zA-Z0-9._-]')
CONTROL_CHARS = re.compile(r'[\x00-\x1f\x7f]')

DATA_URI_PREFIX = 'data:'


class CorruptedImageError(Exception):
    """Raised when image data is corrupted and cannot be processed."""
    pass


def handle_image_errors(func):
    """Decorator converting Pillow failures into CorruptedImageError.

    The decorated function must accept the raw bytes as ``image_data``.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        image_data = kwargs.get('image_data', args[0] if args else None)
        size = len(image_data) if image_data else 0
        try:
            return func(*args, **kwargs)
        except UnidentifiedImageError as e:
            logger.error(f"Corrupted or unsupported image format - image data (size: {size} bytes): {e}")
            raise CorruptedImageError(f"Corrupted or unsupported image format: {e}") from e
        except (OSError, ValueError) as e:
            logger.error(f"Error processing image - image data (size: {size} bytes): {e}")
            raise CorruptedImageError(f"Error processing image: {e}") from e

    return wrapper


def sanitize_filename(filename):
    """Make an uploaded file name safe for use in an object key.

    Accents are folded to their base letter, control characters dropped, and
    every remaining character outside ``[A-Za-z0-9._-]`` becomes ``_``.
    """
    normalized = unicodedata.normalize('NFD', filename or '')
    without_marks = ''.join(c for c in normalized if unicodedata.category(c) != 'Mn')
    without_controls = CONTROL_CHARS.sub('', without_marks)
    return UNSAFE_FILENAME_CHARS.sub('_', without_controls)


def parse_iso_date(value):
    """Accept a date, datetime or ISO string and return a date (or None)."""
    if value is None or value == '':
        return None
    if isinstance(value, datetime.datetime):
        return value.date()
    if isinstance(value, datetime.date):
        return value
    return datetime.date.fromisoformat(str(value)[:10])


def parse_iso_datetime(value):
    if value is None or value == '':
        return None
    if isinstance(value, datetime.datetime):
        return value
    return datetime.datetime.fromisoformat(str(value).replace('Z', '+00:00'))


def format_display_date(value):
    """Format a date as 'January 5, 2025'; empty string for missing values."""
    parsed = parse_iso_date(value)
    if parsed is None:
        return ''
    return f"{parsed.strftime('%B')} {parsed.day}, {parsed.year}"


def format_display_time(value):
    """Format 'HH:MM' (24h) as '2:05 PM'."""
    if not value:
        return ''
    try:
        parsed = datetime.datetime.strptime(str(value)[:5], '%H:%M')
    except ValueError:
        return str(value)
    return parsed.strftime('%I:%M %p').lstrip('0')


def is_data_uri(value):
    return isinstance(value, str) and value.startswith(DATA_URI_PREFIX + 'image')


@handle_image_errors
def inspect_image(image_data):
    """Verify image bytes and return (format, width, height)."""
    with Image.open(io.BytesIO(image_data)) as img:
        img.verify()
    # verify() leaves the image unusable; reopen for the metadata
    with Image.open(io.BytesIO(image_data)) as img:
        return img.format, img.width, img.height


def to_data_uri(image_data):
    """Encode verified image bytes as a base64 ``data:`` URI."""
    image_format, _, _ = inspect_image(image_data)
    mime = Image.MIME.get(image_format, 'application/octet-stream')
    encoded = base64.b64encode(image_data).decode('ascii')
    return f"{DATA_URI_PREFIX}{mime};base64,{encoded}"


def decode_data_uri(uri):
    """Return the raw bytes of a base64 ``data:`` URI."""
    header, _, payload = uri.partition(',')
    if ';base64' not in header:
        raise CorruptedImageError('Only base64 data URIs are supported')
    return base64.b64decode(payload)


@lru_cache(maxsize=128)
def fit_within(original_width, original_height, max_width, max_height):
    """Scale dimensions down to fit a box while keeping the aspect ratio."""
    if original_width <= max_width and original_height <= max_height:
        return (original_width, original_height)
    ratio = min(max_width / original_width, max_height / original_height)
    return (original_width * ratio, original_height * ratio)
