"""GitLab API client implementation."""

import json
from typing import Any, Dict, Optional
from urllib.parse import urljoin

import aiohttp
import requests
from loguru import logger
from pydantic import BaseModel

from ..config.config import GitLabInstanceConfig
from .exceptions import (
    GitLabAPIError,
    GitLabAuthenticationError,
    GitLabConflictError,
    GitLabNotFoundError,
    GitLabPermissionError,
    GitLabRateLimitError,
    GitLabValidationError,
)

USER_AGENT = 'svn2git-migrate/0.1.0'


class APIResponse(BaseModel):
    """Standard API response wrapper."""

    status_code: int
    data: Any
    headers: Dict[str, str]
    success: bool


def _error_message(data: Any, status_code: int) -> str:
    """Flatten GitLab's error payload into one line."""
    if isinstance(data, dict):
        message = data.get('message') or data.get('error') or f'HTTP {status_code}'
        if isinstance(message, dict):
            return '; '.join(
                f'{field} {", ".join(map(str, errors)) if isinstance(errors, list) else errors}'
                for field, errors in message.items()
            )
        return str(message)
    if data:
        return f'HTTP {status_code}: {data}'
    return f'HTTP {status_code}'


def raise_for_status(status_code: int, data: Any, headers: Dict[str, str]) -> None:
    """Map an HTTP error status to the matching GitLab exception.

    Args:
        status_code: HTTP status code
        data: Decoded response body
        headers: Response headers

    Raises:
        GitLabAPIError: For any status >= 400
    """
    if status_code < 400:
        return

    message = _error_message(data, status_code)
    response_data = data if isinstance(data, dict) else None

    if status_code == 429:
        retry_after = int(headers.get('Retry-After', 60))
        raise GitLabRateLimitError(
            f'Rate limit exceeded. Retry after {retry_after} seconds',
            retry_after=retry_after,
            status_code=status_code,
        )
    if status_code == 401:
        raise GitLabAuthenticationError('Authentication failed', status_code=401)
    if status_code == 403:
        raise GitLabPermissionError(
            f'Permission denied: {message}', status_code=403, response_data=response_data
        )
    if status_code == 404:
        raise GitLabNotFoundError(
            'Resource not found', status_code=404, response_data=response_data
        )
    if status_code == 409 or (
        status_code == 400 and 'already been taken' in message
    ):
        raise GitLabConflictError(
            f'Resource already exists: {message}',
            status_code=status_code,
            response_data=response_data,
        )
    if status_code in (400, 422):
        raise GitLabValidationError(
            f'Invalid request: {message}',
            status_code=status_code,
            response_data=response_data,
        )
    raise GitLabAPIError(
        f'API request failed: {message}',
        status_code=status_code,
        response_data=response_data,
    )


class GitLabClient:
    """GitLab API client with authentication."""

    def __init__(self, config: GitLabInstanceConfig):
        """Initialize GitLab client.

        Args:
            config: GitLab instance configuration
        """
        self.config = config
        self.base_url = f'{config.url.rstrip("/")}/api/{config.api_version}'
        self.session = requests.Session()
        self.session.headers.update(self._auth_headers())
        self.session.headers.update(
            {'Content-Type': 'application/json', 'User-Agent': USER_AGENT}
        )

        logger.info(f'Initialized GitLab client for {config.url}')

    def _auth_headers(self) -> Dict[str, str]:
        if self.config.token:
            return {'Private-Token': self.config.token}
        if self.config.oauth_token:
            return {'Authorization': f'Bearer {self.config.oauth_token}'}
        raise GitLabAuthenticationError('No authentication token provided')

    def _build_url(self, endpoint: str) -> str:
        """Build full API URL from endpoint.

        Args:
            endpoint: API endpoint path

        Returns:
            Full API URL
        """
        return urljoin(self.base_url + '/', endpoint.lstrip('/'))

    def _handle_response(self, response: requests.Response) -> APIResponse:
        """Handle API response and convert to standard format.

        Args:
            response: Raw HTTP response

        Returns:
            Standardized API response

        Raises:
            GitLabAPIError: For various API errors
        """
        headers = dict(response.headers)

        try:
            data = response.json() if response.content else None
        except ValueError:
            data = response.text

        raise_for_status(response.status_code, data, headers)

        return APIResponse(
            status_code=response.status_code,
            data=data,
            headers=headers,
            success=200 <= response.status_code < 300,
        )

    async def _make_request_async(
        self,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> APIResponse:
        """Make asynchronous API request.

        Args:
            method: HTTP method
            endpoint: API endpoint
            params: Query parameters
            data: Request body data

        Returns:
            API response
        """
        url = self._build_url(endpoint)
        headers = {'Content-Type': 'application/json', 'User-Agent': USER_AGENT}
        headers.update(self._auth_headers())
        timeout = aiohttp.ClientTimeout(total=self.config.timeout)

        async with aiohttp.ClientSession(headers=headers, timeout=timeout) as session:
            try:
                async with session.request(
                    method=method, url=url, params=params, json=data
                ) as response:
                    response_headers = dict(response.headers)
                    response_text = await response.text()
                    try:
                        response_data = (
                            json.loads(response_text) if response_text else None
                        )
                    except ValueError:
                        response_data = response_text

                    raise_for_status(response.status, response_data, response_headers)

                    return APIResponse(
                        status_code=response.status,
                        data=response_data,
                        headers=response_headers,
                        success=200 <= response.status < 300,
                    )

            except aiohttp.ClientError as e:
                logger.error(f'Network error during API request: {e}')
                raise GitLabAPIError(f'Network error: {e}')

    def get(
        self, endpoint: str, params: Optional[Dict[str, Any]] = None
    ) -> APIResponse:
        """Make GET request.

        Args:
            endpoint: API endpoint
            params: Query parameters

        Returns:
            API response
        """
        url = self._build_url(endpoint)

        try:
            response = self.session.get(url, params=params, timeout=self.config.timeout)
            return self._handle_response(response)
        except requests.RequestException as e:
            logger.error(f'Network error during GET request: {e}')
            raise GitLabAPIError(f'Network error: {e}')

    async def get_async(
        self, endpoint: str, params: Optional[Dict[str, Any]] = None
    ) -> APIResponse:
        return await self._make_request_async('GET', endpoint, params=params)

    async def post_async(
        self, endpoint: str, data: Optional[Dict[str, Any]] = None
    ) -> APIResponse:
        return await self._make_request_async('POST', endpoint, data=data)

    def test_connection(self) -> bool:
        """Test connection to GitLab instance.

        Returns:
            True if connection successful, False otherwise
        """
        try:
            response = self.get('/user')
            return response.success
        except GitLabAPIError as e:
            logger.error(f'Connection test failed: {e}')
            return False

    def close(self):
        """Close the client session."""
        self.session.close()
        logger.info('GitLab client session closed')
