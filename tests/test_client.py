"""
Unit tests for the resilient API client.

Tests:
- Retry with exponential backoff for transient failures
- 401 short-circuit and credential clearing
- Forbidden and malformed payloads are not retried
- Missing credential and disconnect during retries
- Pagination
"""

import sys
from pathlib import Path

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from classroom_sync.classroom.client import ResilientApiClient, classify_error
from classroom_sync.classroom.credentials import DEFAULT_PROVIDER, CredentialStore
from classroom_sync.core.errors import (
    ApiError,
    AuthExpired,
    Forbidden,
    InvalidResponse,
    TransientError,
    Unauthenticated,
)
from classroom_sync.core.storage import MemoryKeyValueStore

URL = "https://classroom.test/v1/courses"


class Recorder:
    """Counts requests and records backoff sleeps."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []
        self.sleeps = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return httpx.Response(response.status_code, headers=response.headers, content=response.content)

    async def sleep(self, delay: float) -> None:
        self.sleeps.append(delay)


def make_client(recorder: Recorder, token: str = "tok-1", **kwargs):
    credentials = CredentialStore(MemoryKeyValueStore())
    if token:
        credentials.set("u1", DEFAULT_PROVIDER, token)
    client = ResilientApiClient(
        credentials,
        "u1",
        sleep=recorder.sleep,
        transport=httpx.MockTransport(recorder.handler),
        **kwargs,
    )
    return client, credentials


class TestRetry:
    """Tests for retry and backoff."""

    @pytest.mark.asyncio
    async def test_transient_failure_retries_with_backoff(self):
        """Three failing attempts wait 2, 4 and 8 seconds, then raise."""
        recorder = Recorder([httpx.Response(503)])
        client, _ = make_client(recorder)

        with pytest.raises(TransientError) as exc_info:
            await client.request("GET", URL)

        assert len(recorder.requests) == 3
        assert recorder.sleeps == [2, 4, 8]
        assert exc_info.value.status_code == 503
        await client.close()

    @pytest.mark.asyncio
    async def test_rate_limit_is_transient(self):
        recorder = Recorder([httpx.Response(429), httpx.Response(200, json={"ok": True})])
        client, _ = make_client(recorder)

        data = await client.request("GET", URL)

        assert data == {"ok": True}
        assert len(recorder.requests) == 2
        assert recorder.sleeps == [2]
        await client.close()

    @pytest.mark.asyncio
    async def test_network_error_is_retried(self):
        recorder = Recorder([
            httpx.ConnectError("connection refused"),
            httpx.Response(200, json={"courses": []}),
        ])
        client, _ = make_client(recorder)

        data = await client.request("GET", URL)

        assert data == {"courses": []}
        assert recorder.sleeps == [2]
        await client.close()

    @pytest.mark.asyncio
    async def test_custom_attempt_count(self):
        recorder = Recorder([httpx.Response(500)])
        client, _ = make_client(recorder, max_retries=2)

        with pytest.raises(TransientError):
            await client.request("GET", URL)

        assert len(recorder.requests) == 2
        assert recorder.sleeps == [2, 4]
        await client.close()

    def test_calculate_backoff(self):
        client, _ = make_client(Recorder([httpx.Response(200)]))
        assert [client.calculate_backoff(n) for n in (1, 2, 3)] == [2, 4, 8]


class TestAuthAndPermissions:
    """Tests for non-retryable failures."""

    @pytest.mark.asyncio
    async def test_unauthorized_clears_credential(self):
        """A 401 makes one attempt, clears the token and never waits."""
        recorder = Recorder([httpx.Response(401)])
        client, credentials = make_client(recorder)

        with pytest.raises(AuthExpired) as exc_info:
            await client.request("GET", URL)

        assert len(recorder.requests) == 1
        assert recorder.sleeps == []
        assert credentials.get("u1") is None
        assert exc_info.value.reconnect_required
        await client.close()

    @pytest.mark.asyncio
    async def test_forbidden_not_retried(self):
        recorder = Recorder([httpx.Response(403)])
        client, credentials = make_client(recorder)

        with pytest.raises(Forbidden):
            await client.request("GET", URL)

        assert len(recorder.requests) == 1
        assert credentials.get("u1") == "tok-1"
        await client.close()

    @pytest.mark.asyncio
    async def test_missing_credential(self):
        recorder = Recorder([httpx.Response(200, json={})])
        client, _ = make_client(recorder, token=None)

        with pytest.raises(Unauthenticated):
            await client.request("GET", URL)

        assert recorder.requests == []
        assert not client.is_connected
        await client.close()

    @pytest.mark.asyncio
    async def test_disconnect_during_retries_fails_fast(self):
        recorder = Recorder([httpx.Response(503)])
        client, credentials = make_client(recorder)

        async def sleep_then_disconnect(delay: float) -> None:
            recorder.sleeps.append(delay)
            credentials.clear("u1")

        client._sleep = sleep_then_disconnect

        with pytest.raises(Unauthenticated):
            await client.request("GET", URL)

        assert len(recorder.requests) == 1
        await client.close()

    @pytest.mark.asyncio
    async def test_bearer_token_sent(self):
        recorder = Recorder([httpx.Response(200, json={})])
        client, _ = make_client(recorder)

        await client.request("GET", URL)

        assert recorder.requests[0].headers["Authorization"] == "Bearer tok-1"
        await client.close()


class TestPayloads:
    """Tests for payload validation."""

    @pytest.mark.asyncio
    async def test_wrong_shape_is_invalid_response(self):
        recorder = Recorder([httpx.Response(200, json=["not", "an", "object"])])
        client, _ = make_client(recorder)

        with pytest.raises(InvalidResponse):
            await client.request("GET", URL)

        assert len(recorder.requests) == 1
        await client.close()

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        recorder = Recorder([httpx.Response(200, text="<html>oops</html>")])
        client, _ = make_client(recorder)

        with pytest.raises(InvalidResponse):
            await client.request("GET", URL)
        await client.close()

    @pytest.mark.asyncio
    async def test_empty_body_allowed_when_expect_none(self):
        recorder = Recorder([httpx.Response(204)])
        client, _ = make_client(recorder)

        assert await client.request("DELETE", URL, expect=None) is None
        await client.close()

    @pytest.mark.asyncio
    async def test_other_http_error_is_api_error(self):
        recorder = Recorder([httpx.Response(404)])
        client, _ = make_client(recorder)

        with pytest.raises(ApiError) as exc_info:
            await client.request("GET", URL)

        assert exc_info.value.status_code == 404
        assert len(recorder.requests) == 1
        await client.close()

    @pytest.mark.asyncio
    async def test_unrelated_exception_propagates(self):
        client, _ = make_client(Recorder([httpx.Response(200)]))

        async def operation(token: str):
            raise KeyError("bug")

        with pytest.raises(KeyError):
            await client.execute(operation)


class TestPagination:
    """Tests for get_list."""

    @pytest.mark.asyncio
    async def test_follows_page_tokens(self):
        recorder = Recorder([
            httpx.Response(200, json={"courses": [{"id": "1"}], "nextPageToken": "p2"}),
            httpx.Response(200, json={"courses": [{"id": "2"}]}),
        ])
        client, _ = make_client(recorder)

        items = await client.get_list(URL, "courses")

        assert [item["id"] for item in items] == ["1", "2"]
        assert recorder.requests[1].url.params["pageToken"] == "p2"
        await client.close()

    @pytest.mark.asyncio
    async def test_missing_field_is_empty(self):
        recorder = Recorder([httpx.Response(200, json={})])
        client, _ = make_client(recorder)

        assert await client.get_list(URL, "courses") == []
        await client.close()

    @pytest.mark.asyncio
    async def test_field_must_be_list(self):
        recorder = Recorder([httpx.Response(200, json={"courses": {"id": "1"}})])
        client, _ = make_client(recorder)

        with pytest.raises(InvalidResponse):
            await client.get_list(URL, "courses")
        await client.close()


class TestClassifyError:
    """Tests for classify_error."""

    @staticmethod
    def status_error(status: int) -> httpx.HTTPStatusError:
        request = httpx.Request("GET", URL)
        response = httpx.Response(status, request=request)
        return httpx.HTTPStatusError("error", request=request, response=response)

    def test_mapping(self):
        assert isinstance(classify_error(self.status_error(401)), AuthExpired)
        assert isinstance(classify_error(self.status_error(403)), Forbidden)
        assert isinstance(classify_error(self.status_error(429)), TransientError)
        assert isinstance(classify_error(self.status_error(502)), TransientError)
        assert isinstance(classify_error(self.status_error(400)), ApiError)

    def test_non_remote_errors_pass_through(self):
        assert classify_error(ValueError("x")) is None
