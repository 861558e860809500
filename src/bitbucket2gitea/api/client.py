"""Base HTTP API client shared by the source and target clients."""

import asyncio
import json
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Optional
from urllib.parse import quote, urljoin

import aiohttp
from loguru import logger
from pydantic import BaseModel

from .exceptions import (
    APIError,
    AuthenticationError,
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
)
from .rate_limiter import Backoff, RateLimiter

USER_AGENT = 'bitbucket2gitea/0.1.0'

# Methods that may be re-sent after an ambiguous failure
IDEMPOTENT_METHODS = frozenset({'GET', 'HEAD', 'PUT', 'DELETE'})

DEFAULT_RETRY_AFTER = 60


def parse_retry_after(value: Optional[str]) -> int:
    """Parse a Retry-After header given in seconds or as an HTTP date."""
    if not value:
        return DEFAULT_RETRY_AFTER
    try:
        return max(int(value), 0)
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return DEFAULT_RETRY_AFTER
    if when is None:
        return DEFAULT_RETRY_AFTER
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(int((when - datetime.now(timezone.utc)).total_seconds()), 0)


class APIResponse(BaseModel):
    """Standard API response wrapper."""

    status_code: int
    data: Any
    headers: Dict[str, str]
    success: bool


class APIClient:
    """Asynchronous JSON API client with rate limiting and bounded retries.

    Subclasses set ``api_path`` and provide authentication through
    ``_auth_headers`` or ``_basic_auth``.
    """

    api_path = ''

    def __init__(self, config):
        """Initialize API client.

        Args:
            config: Instance configuration with url, timeout, skip_verify,
                rate_limit_per_second and max_retries
        """
        self.config = config
        self.base_url = config.url.rstrip('/') + self.api_path
        self.rate_limiter = RateLimiter(config.rate_limit_per_second)
        self.backoff = Backoff(max_retries=config.max_retries)
        self.logger = logger.bind(component=self.__class__.__name__)
        self._session: Optional[aiohttp.ClientSession] = None

    def _build_url(self, endpoint: str) -> str:
        """Build full API URL from endpoint.

        Args:
            endpoint: API endpoint path

        Returns:
            Full API URL
        """
        return urljoin(self.base_url + '/', endpoint.lstrip('/'))

    @staticmethod
    def _path(*segments: Any) -> str:
        """Build an endpoint path, percent-encoding each segment."""
        return '/' + '/'.join(quote(str(segment), safe='') for segment in segments)

    def _auth_headers(self) -> Dict[str, str]:
        return {}

    def _basic_auth(self) -> Optional[aiohttp.BasicAuth]:
        return None

    def _get_session(self) -> aiohttp.ClientSession:
        """Get the HTTP session, creating it on first use."""
        if self._session is None or self._session.closed:
            headers = {
                'Content-Type': 'application/json',
                'Accept': 'application/json',
                'User-Agent': USER_AGENT,
            }
            headers.update(self._auth_headers())

            connector = None
            if self.config.skip_verify:
                connector = aiohttp.TCPConnector(ssl=False)

            self._session = aiohttp.ClientSession(
                headers=headers,
                auth=self._basic_auth(),
                connector=connector,
                timeout=aiohttp.ClientTimeout(total=self.config.timeout),
            )
        return self._session

    @staticmethod
    def _error_message(status: int, data: Any) -> str:
        """Extract a readable error message from an error payload."""
        if isinstance(data, dict):
            if data.get('message'):
                return str(data['message'])
            errors = data.get('errors')
            if isinstance(errors, list) and errors:
                first = errors[0]
                if isinstance(first, dict) and first.get('message'):
                    return str(first['message'])
        if isinstance(data, str) and data:
            return f'HTTP {status}: {data}'
        return f'HTTP {status}'

    @classmethod
    def _raise_for_status(
        cls, status: int, headers: Dict[str, str], data: Any
    ) -> None:
        """Convert an error status code into an API exception.

        Raises:
            APIError: For various API errors
        """
        if status < 400:
            return

        message = cls._error_message(status, data)
        response_data = data if isinstance(data, dict) else None

        if status == 429:
            retry_after = parse_retry_after(headers.get('Retry-After'))
            raise RateLimitError(
                f'Rate limit exceeded. Retry after {retry_after} seconds',
                retry_after=retry_after,
                status_code=status,
            )
        if status == 401:
            raise AuthenticationError('Authentication failed', status_code=status)
        if status == 403:
            raise PermissionDeniedError(
                f'Permission denied: {message}',
                status_code=status,
                response_data=response_data,
            )
        if status == 404:
            raise NotFoundError(
                'Resource not found', status_code=status, response_data=response_data
            )
        if status in (409, 422):
            raise ConflictError(
                f'Request rejected: {message}',
                status_code=status,
                response_data=response_data,
            )

        raise APIError(
            f'API request failed: {message}',
            status_code=status,
            response_data=response_data,
        )

    async def _send(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> APIResponse:
        """Send a single request without retrying.

        Args:
            method: HTTP method
            endpoint: API endpoint
            params: Query parameters
            data: Request body data

        Returns:
            API response
        """
        url = self._build_url(endpoint)
        session = self._get_session()

        try:
            async with session.request(
                method=method, url=url, params=params, json=data
            ) as response:
                headers = dict(response.headers)
                text = await response.text()

                try:
                    payload = json.loads(text) if text else None
                except ValueError:
                    payload = text

                self._raise_for_status(response.status, headers, payload)

                return APIResponse(
                    status_code=response.status,
                    data=payload,
                    headers=headers,
                    success=200 <= response.status < 300,
                )

        except aiohttp.ClientError as e:
            raise APIError(f'Network error: {e}')
        except asyncio.TimeoutError:
            raise APIError(f'Request timed out after {self.config.timeout}s: {url}')

    async def request(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> APIResponse:
        """Make an API request, retrying transient failures.

        Only network errors, rate limiting and server errors are retried,
        and only up to ``max_retries`` times. A failed non-idempotent request
        (POST) may already have taken effect, so it is only retried when the
        server rejected it with 429.

        Args:
            method: HTTP method
            endpoint: API endpoint
            params: Query parameters
            data: Request body data

        Returns:
            API response
        """
        idempotent = method.upper() in IDEMPOTENT_METHODS
        attempt = 0
        while True:
            await self.rate_limiter.acquire()
            try:
                return await self._send(method, endpoint, params=params, data=data)
            except APIError as e:
                attempt += 1
                if not e.transient or not self.backoff.should_retry(attempt):
                    raise
                if not idempotent and not isinstance(e, RateLimitError):
                    raise
                delay = self.backoff.delay(attempt, getattr(e, 'retry_after', None))
                self.logger.warning(
                    f'{method} {endpoint} failed ({e}), '
                    f'retry {attempt}/{self.backoff.max_retries} in {delay:.1f}s'
                )
                await asyncio.sleep(delay)

    async def get(
        self, endpoint: str, params: Optional[Dict[str, Any]] = None
    ) -> APIResponse:
        return await self.request('GET', endpoint, params=params)

    async def post(
        self, endpoint: str, data: Optional[Dict[str, Any]] = None
    ) -> APIResponse:
        return await self.request('POST', endpoint, data=data)

    async def put(
        self, endpoint: str, data: Optional[Dict[str, Any]] = None
    ) -> APIResponse:
        return await self.request('PUT', endpoint, data=data)

    async def delete(self, endpoint: str) -> APIResponse:
        return await self.request('DELETE', endpoint)

    async def close(self) -> None:
        """Close the client session."""
        if self._session is not None and not self._session.closed:
            await self._session.close()
            self.logger.debug('Client session closed')
        self._session = None

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()
