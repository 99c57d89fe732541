"""DataStore backed by a PostgREST endpoint (e.g. a Supabase project's /rest/v1)."""
import logging
import time
import requests
from .store import DataStore, ReferencedRowError, StoreError

logger = logging.getLogger(__name__)

# Postgres SQLSTATE reported in the PostgREST error body
FOREIGN_KEY_VIOLATION = '23503'


def encode_filter(f):
    """Render a Filter as a PostgREST query parameter value, e.g. ``gte.2025-01-01``."""
    if f.op == 'in':
        return f"in.({','.join(str(v) for v in f.value)})"
    if f.op == 'is':
        return 'is.null'
    value = f.value
    if isinstance(value, bool):
        value = str(value).lower()
    elif hasattr(value, 'isoformat'):
        value = value.isoformat()
    return f"{f.op}.{value}"


def parse_content_range(header):
    """Return the total from a ``Content-Range`` header such as ``0-9/42`` (``*`` means unknown)."""
    if not header or '/' not in header:
        return None
    total = header.rsplit('/', 1)[1]
    return int(total) if total.isdigit() else None


class PostgrestStore(DataStore):
    """HTTP client for a PostgREST API with retry on reads."""

    def __init__(self, base_url, api_key, session=None, timeout=10.0, max_retries=3, retry_delay=0.5):
        if not base_url:
            raise ValueError("PostgREST store requires PORTAL_POSTGREST_URL")
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.session = session or requests.Session()
        self.session.headers.update({
            'apikey': api_key,
            'Authorization': f'Bearer {api_key}',
            'Content-Type': 'application/json',
        })
        self.logger = logging.getLogger(self.__class__.__name__)

    def _make_request(self, method, table, **kwargs):
        """Send a request; idempotent reads are retried with exponential backoff."""
        url = f"{self.base_url}/{table}"
        attempts = self.max_retries if method == 'GET' else 1
        kwargs.setdefault('timeout', self.timeout)

        for attempt in range(attempts):
            try:
                response = self.session.request(method, url, **kwargs)
            except requests.exceptions.RequestException as e:
                if attempt < attempts - 1:
                    self.logger.warning(f"Request exception (attempt {attempt + 1}/{attempts}): {e}")
                    time.sleep(self.retry_delay * (2 ** attempt))
                    continue
                self.logger.error(f"{method} {table} failed after {attempts} attempt(s): {e}")
                raise StoreError(f"Failed to reach data store for {table}") from e

            if response.status_code >= 500 or response.status_code in (408, 429):
                if attempt < attempts - 1:
                    self.logger.warning(f"Request failed (attempt {attempt + 1}/{attempts}): "
                                        f"{response.status_code} {response.reason}")
                    time.sleep(self.retry_delay * (2 ** attempt))
                    continue

            if response.status_code >= 400:
                try:
                    body = response.json()
                except ValueError:
                    body = {}
                if not isinstance(body, dict):
                    body = {}
                detail = body.get('message', response.text)
                if body.get('code') == FOREIGN_KEY_VIOLATION:
                    self.logger.warning(f"{method} {table} refused by a foreign key: {detail}")
                    raise ReferencedRowError(f"Rows in {table} are still referenced: {detail}")
                self.logger.error(f"{method} {table} returned {response.status_code}: {detail}")
                raise StoreError(f"Data store rejected {method} on {table}: {detail}")
            return response

        raise StoreError(f"Failed to reach data store for {table}")

    def _filter_params(self, filters):
        return [(f.column, encode_filter(f)) for f in filters]

    def query(self, spec):
        select = '*'
        for table, columns in spec.embed.items():
            select += f",{table}({','.join(columns)})"
        params = [('select', select)] + self._filter_params(spec.filters)
        if spec.order_by:
            params.append(('order', f"{spec.order_by}.{'asc' if spec.ascending else 'desc'}"))

        headers = {}
        if spec.limit is not None:
            headers['Range-Unit'] = 'items'
            headers['Range'] = f"{spec.offset}-{spec.offset + spec.limit - 1}"
        elif spec.offset:
            params.append(('offset', str(spec.offset)))
        if spec.count:
            headers['Prefer'] = 'count=exact'

        response = self._make_request('GET', spec.table, params=params, headers=headers)
        total = parse_content_range(response.headers.get('Content-Range')) if spec.count else None
        return response.json(), total

    def insert(self, table, values):
        return self.insert_many(table, [values])[0]

    def insert_many(self, table, rows):
        response = self._make_request('POST', table, json=rows,
                                      headers={'Prefer': 'return=representation'})
        return response.json()

    def update(self, table, filters, values):
        if not filters:
            raise StoreError("Refusing to update without filters")
        response = self._make_request('PATCH', table, params=self._filter_params(filters), json=values,
                                      headers={'Prefer': 'return=representation'})
        return len(response.json())

    def delete(self, table, filters):
        if not filters:
            raise StoreError("Refusing to delete without filters")
        response = self._make_request('DELETE', table, params=self._filter_params(filters),
                                      headers={'Prefer': 'return=representation'})
        return len(response.json())
