"""
Resilient API Client for Classroom Sync.

Every remote call goes through ResilientApiClient.execute, which:
- Checks a credential exists before each attempt
- Classifies failures (auth, permission, transient, malformed payload)
- Retries transient failures with exponential backoff
- Clears the stored credential when the remote side rejects it
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple, Type, Union

import httpx
from loguru import logger

from ..core.errors import (
    ApiError,
    AuthExpired,
    ClassroomError,
    Forbidden,
    InvalidResponse,
    TransientError,
    Unauthenticated,
)
from .credentials import DEFAULT_PROVIDER, CredentialStore

Operation = Callable[[str], Awaitable[Any]]
Expected = Union[None, Type, Tuple[Type, ...]]


def classify_error(error: Exception) -> Optional[ClassroomError]:
    """
    Map a raw failure onto the error taxonomy.

    Returns None for exceptions that are not remote-call failures; those
    propagate unchanged.
    """
    if isinstance(error, ClassroomError):
        return error

    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        detail = f"{status} {error.response.reason_phrase}".strip()
        if status == 401:
            return AuthExpired(f"Authorization rejected: {detail}", status_code=status)
        if status == 403:
            return Forbidden(f"Access forbidden: {detail}", status_code=status)
        if status == 429 or status >= 500:
            return TransientError(f"Remote service unavailable: {detail}", status_code=status)
        return ApiError(f"API error: {detail}", status_code=status)

    if isinstance(error, httpx.TransportError):
        return TransientError(f"Network error: {error.__class__.__name__}: {error}")

    return None


class ResilientApiClient:
    """
    Authenticated HTTP access with retry and error classification.

    Usage:
        client = ResilientApiClient(credentials, user_id="u1")
        data = await client.request("GET", "https://classroom.googleapis.com/v1/courses")
    """

    def __init__(
        self,
        credentials: CredentialStore,
        user_id: str,
        provider: str = DEFAULT_PROVIDER,
        timeout: float = 30.0,
        max_retries: int = 3,
        backoff_base: float = 2.0,
        sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the API client.

        Args:
            credentials: Token store consulted before every attempt
            user_id: Portal user the calls are made for
            provider: Credential provider name
            timeout: HTTP timeout in seconds
            max_retries: Attempts per call for transient failures
            backoff_base: Delay after attempt n is backoff_base ** n seconds
            sleep: Async sleep used between attempts (injectable for tests)
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.credentials = credentials
        self.user_id = user_id
        self.provider = provider
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_base = backoff_base
        self._sleep = sleep or asyncio.sleep
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def is_connected(self) -> bool:
        return self.credentials.get(self.user_id, self.provider) is not None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    def _require_token(self) -> str:
        token = self.credentials.get(self.user_id, self.provider)
        if not token:
            raise Unauthenticated("No access token found. Please reconnect to Google Classroom.")
        return token

    def calculate_backoff(self, attempt: int) -> float:
        """Delay in seconds after failed attempt number `attempt` (1-based)."""
        return self.backoff_base ** attempt

    async def execute(
        self,
        operation: Operation,
        max_retries: Optional[int] = None,
        expect: Expected = None,
    ) -> Any:
        """
        Run a remote operation with credential check, retry and classification.

        Args:
            operation: Async callable receiving the access token
            max_retries: Attempts for transient failures (defaults to client setting)
            expect: Type(s) the payload must be an instance of

        Returns:
            The operation's payload

        Raises:
            Unauthenticated: no credential before an attempt
            AuthExpired: HTTP 401 (credential cleared, not retried)
            Forbidden: HTTP 403 (not retried)
            TransientError: 429/5xx/network, after retries are exhausted
            InvalidResponse: payload of the wrong shape (not retried)
        """
        attempts = max(1, self.max_retries if max_retries is None else max_retries)
        last_error: Optional[ClassroomError] = None

        for attempt in range(1, attempts + 1):
            token = self._require_token()
            try:
                payload = await operation(token)
            except Exception as exc:
                error = classify_error(exc)
                if error is None:
                    raise

                if isinstance(error, AuthExpired):
                    self.credentials.clear(self.user_id, self.provider)
                    logger.warning(f"Token rejected for {self.user_id}; reconnect required")

                if not error.retryable:
                    if error is exc:
                        raise
                    raise error from exc

                last_error = error
                delay = self.calculate_backoff(attempt)
                logger.warning(f"Attempt {attempt}/{attempts} failed: {error}; waiting {delay:.0f}s")
                await self._sleep(delay)
                continue

            if expect is not None and not isinstance(payload, expect):
                raise InvalidResponse(
                    f"Unexpected payload type {type(payload).__name__}"
                )
            return payload

        logger.error(f"Giving up after {attempts} attempts: {last_error}")
        raise last_error

    async def request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        json: Any = None,
        content: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
        expect: Expected = dict,
        max_retries: Optional[int] = None,
    ) -> Any:
        """Make an authenticated API request and return the decoded JSON body."""

        async def operation(token: str) -> Any:
            client = await self._get_client()
            request_headers = {"Authorization": f"Bearer {token}"}
            if json is not None:
                request_headers["Content-Type"] = "application/json"
            request_headers.update(headers or {})

            response = await client.request(
                method,
                url,
                params=params,
                json=json,
                content=content,
                headers=request_headers,
            )
            response.raise_for_status()
            if not response.content:
                return None
            try:
                return response.json()
            except ValueError as e:
                raise InvalidResponse(f"Response from {url} is not JSON") from e

        return await self.execute(operation, max_retries=max_retries, expect=expect)

    async def get_list(
        self,
        url: str,
        key: str,
        params: Optional[Dict[str, Any]] = None,
        max_pages: int = 10,
    ) -> List[Any]:
        """
        Collect a list field across pages of a paginated Google API response.

        A missing field means an empty list; a field that is not a list is a
        contract violation.
        """
        items: List[Any] = []
        params = dict(params or {})

        for _ in range(max_pages):
            data = await self.request("GET", url, params=params, expect=dict)
            page = data.get(key, [])
            if not isinstance(page, list):
                raise InvalidResponse(f"Field '{key}' is not a list")
            items.extend(page)

            next_token = data.get("nextPageToken")
            if not next_token:
                break
            params["pageToken"] = next_token

        return items
