"""
Tests for the centralized model_caller module.

Tests cover:
- Normal call success
- Timeout handling
- Retry logic with exponential backoff
- Client errors that are not retried
- Context manager properly closes connections
- Embedding extraction
- Undecodable response bodies
"""

import pytest
from unittest.mock import AsyncMock, patch, MagicMock
import httpx

from missionagent.models.model_caller import (
    call_chat,
    call_chat_async,
    call_embeddings_async,
    extract_message_content,
    ModelInvocationError,
)


def _sync_client(post):
    """Client double; ``post`` is a response, an exception or a side-effect function."""
    mock_client = MagicMock()
    mock_client.__enter__ = MagicMock(return_value=mock_client)
    mock_client.__exit__ = MagicMock(return_value=False)
    if isinstance(post, MagicMock):
        mock_client.post.return_value = post
    else:
        mock_client.post.side_effect = post
    return mock_client


def _response(payload):
    mock_response = MagicMock()
    mock_response.json.return_value = payload
    mock_response.raise_for_status = MagicMock()
    return mock_response


def _status_error(code):
    request = httpx.Request("POST", "http://test/v1/chat/completions")
    response = httpx.Response(code, request=request)
    return httpx.HTTPStatusError(f"HTTP {code}", request=request, response=response)


def _html_response():
    request = httpx.Request("POST", "http://test/v1/chat/completions")
    return httpx.Response(200, text="<html>Bad gateway</html>", request=request)


class TestCallChat:
    """Tests for the synchronous call_chat function."""

    def test_call_chat_success(self):
        """Test successful chat call returns the decoded response."""
        payload = {"choices": [{"message": {"content": "Hello, world!"}}]}

        with patch('httpx.Client') as mock_client_class:
            mock_client = _sync_client(_response(payload))
            mock_client_class.return_value = mock_client

            result = call_chat(
                [{"role": "user", "content": "Hello"}],
                model="test-model",
                timeout=30.0,
                max_retries=1,
                base_url="http://test/v1/",
                api_key="secret",
            )

            assert result == payload
            url = mock_client.post.call_args.args[0]
            kwargs = mock_client.post.call_args.kwargs
            assert url == "http://test/v1/chat/completions"
            assert kwargs["json"]["model"] == "test-model"
            assert kwargs["headers"]["Authorization"] == "Bearer secret"
            mock_client_class.assert_called_once_with(timeout=30.0)

    def test_no_authorization_header_without_key(self):
        """Test that an empty key sends no Authorization header."""
        with patch('httpx.Client') as mock_client_class:
            mock_client = _sync_client(_response({}))
            mock_client_class.return_value = mock_client

            call_chat([], model="m", max_retries=1, api_key="")

            assert "Authorization" not in mock_client.post.call_args.kwargs["headers"]

    def test_call_chat_timeout_raises_error(self):
        """Test that timeout raises ModelInvocationError after retries."""
        with patch('httpx.Client') as mock_client_class:
            mock_client_class.return_value = _sync_client(httpx.TimeoutException("Timeout"))

            with pytest.raises(ModelInvocationError) as exc_info:
                call_chat(
                    [{"role": "user", "content": "Hello"}],
                    model="test-model",
                    timeout=1.0,
                    max_retries=1,
                )

            assert "test-model" in str(exc_info.value)
            assert exc_info.value.model == "test-model"
            assert isinstance(exc_info.value.cause, httpx.TimeoutException)

    def test_call_chat_retry_logic(self):
        """Test that retry logic attempts multiple times with backoff."""
        call_count = 0

        def side_effect(*args, **kwargs):
            nonlocal call_count
            call_count += 1
            if call_count < 3:
                raise httpx.RequestError("Connection failed")
            # Success on third attempt
            return _response({"ok": True})

        with patch('httpx.Client') as mock_client_class:
            mock_client_class.return_value = _sync_client(side_effect)

            with patch('time.sleep') as mock_sleep:
                result = call_chat([], model="test-model", max_retries=3)

            assert result == {"ok": True}
            assert call_count == 3
            assert [c.args[0] for c in mock_sleep.call_args_list] == [1, 2]

    def test_client_error_is_not_retried(self):
        """Test that a 401 fails at once."""
        mock_response = _response({})
        mock_response.raise_for_status.side_effect = _status_error(401)

        with patch('httpx.Client') as mock_client_class:
            mock_client = _sync_client(mock_response)
            mock_client_class.return_value = mock_client

            with patch('time.sleep') as mock_sleep:
                with pytest.raises(ModelInvocationError):
                    call_chat([], model="test-model", max_retries=3)

            assert mock_client.post.call_count == 1
            mock_sleep.assert_not_called()

    def test_non_json_body_is_invocation_error(self):
        """Test that an undecodable body is reported like any other failure."""
        mock_response = _response({})
        mock_response.json.side_effect = ValueError("Expecting value")

        with patch('httpx.Client') as mock_client_class:
            mock_client_class.return_value = _sync_client(mock_response)

            with pytest.raises(ModelInvocationError) as exc_info:
                call_chat([], model="test-model", max_retries=1)

        assert isinstance(exc_info.value.cause, ValueError)

    def test_server_error_is_retried(self):
        """Test that a 503 is retried up to max_retries."""
        mock_response = _response({})
        mock_response.raise_for_status.side_effect = _status_error(503)

        with patch('httpx.Client') as mock_client_class:
            mock_client = _sync_client(mock_response)
            mock_client_class.return_value = mock_client

            with patch('time.sleep'):
                with pytest.raises(ModelInvocationError, match="after 2 attempts"):
                    call_chat([], model="test-model", max_retries=2)

            assert mock_client.post.call_count == 2

    def test_call_chat_context_manager_closes_client(self):
        """Test that HTTP client is properly closed via context manager."""
        with patch('httpx.Client') as mock_client_class:
            mock_client = _sync_client(_response({}))
            mock_client_class.return_value = mock_client

            call_chat([], model="test", max_retries=1)

            # Verify context manager was used
            mock_client.__enter__.assert_called_once()
            mock_client.__exit__.assert_called_once()


class TestExtractMessageContent:
    """Tests for extract_message_content."""

    def test_extracts_first_choice(self):
        response = {"choices": [{"message": {"content": "answer"}}, {"message": {"content": "other"}}]}
        assert extract_message_content(response) == "answer"

    def test_null_content_is_empty_string(self):
        assert extract_message_content({"choices": [{"message": {"content": None}}]}) == ""

    def test_missing_choices_raises(self):
        with pytest.raises(ModelInvocationError):
            extract_message_content({"model": "m", "choices": []})


class AsyncContextManager:
    """Helper class for mocking async context managers."""

    def __init__(self, mock_client):
        self.mock_client = mock_client

    async def __aenter__(self):
        return self.mock_client

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False


def _async_client(post):
    mock_client = MagicMock()
    mock_client.post = post
    return AsyncContextManager(mock_client)


class TestAsyncFunctions:
    """Tests for async versions of model caller functions."""

    @pytest.mark.asyncio
    async def test_call_chat_async_success(self):
        """Test async chat call returns response."""
        payload = {"choices": [{"message": {"content": "Async hello!"}}]}
        post = AsyncMock(return_value=_response(payload))

        with patch('httpx.AsyncClient', return_value=_async_client(post)):
            result = await call_chat_async(
                [{"role": "user", "content": "Hello"}],
                model="test-model",
                temperature=0.1,
                max_retries=1,
            )

        assert result == payload
        assert post.await_args.kwargs["json"]["temperature"] == 0.1

    @pytest.mark.asyncio
    async def test_call_chat_async_retries_then_fails(self):
        """Test async retries with backoff before giving up."""
        post = AsyncMock(side_effect=httpx.RequestError("Connection failed"))

        with patch('httpx.AsyncClient', return_value=_async_client(post)):
            with patch('missionagent.models.model_caller.asyncio.sleep', new_callable=AsyncMock) as mock_sleep:
                with pytest.raises(ModelInvocationError, match="after 3 attempts"):
                    await call_chat_async([], model="test-model", max_retries=3)

        assert post.await_count == 3
        assert [c.args[0] for c in mock_sleep.await_args_list] == [1, 2]

    @pytest.mark.asyncio
    async def test_call_embeddings_async_success(self):
        """Test async embedding call returns the first vector as floats."""
        post = AsyncMock(return_value=_response({"data": [{"embedding": [0, 0.5, 1]}]}))

        with patch('httpx.AsyncClient', return_value=_async_client(post)):
            result = await call_embeddings_async(
                text="Hello",
                model="test-embedding",
                max_retries=1,
                base_url="http://test/v1",
            )

        assert result == [0.0, 0.5, 1.0]
        assert post.await_args.args[0] == "http://test/v1/embeddings"
        assert post.await_args.kwargs["json"] == {"model": "test-embedding", "input": "Hello"}

    @pytest.mark.asyncio
    async def test_empty_embedding_raises(self):
        """Test that a response without a vector is an error."""
        post = AsyncMock(return_value=_response({"data": []}))

        with patch('httpx.AsyncClient', return_value=_async_client(post)):
            with pytest.raises(ModelInvocationError) as exc_info:
                await call_embeddings_async(text="Hello", max_retries=1)

        assert isinstance(exc_info.value.cause, ValueError)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("call", [
        lambda: call_chat_async([], model="test-model", max_retries=2),
        lambda: call_embeddings_async(text="Hello", model="test-model", max_retries=2),
    ])
    async def test_non_json_body_is_invocation_error(self, call):
        """Test that a 200 with an HTML body is retried and then reported."""
        post = AsyncMock(return_value=_html_response())

        with patch('httpx.AsyncClient', return_value=_async_client(post)):
            with patch('missionagent.models.model_caller.asyncio.sleep', new_callable=AsyncMock):
                with pytest.raises(ModelInvocationError) as exc_info:
                    await call()

        assert post.await_count == 2
        assert isinstance(exc_info.value.cause, ValueError)


class TestModelInvocationError:
    """Tests for the ModelInvocationError exception."""

    def test_error_contains_model_name(self):
        """Test that error contains model name."""
        error = ModelInvocationError("Test error", model="my-model")
        assert error.model == "my-model"
        assert "Test error" in str(error)

    def test_error_stores_cause(self):
        """Test that error stores the cause exception."""
        cause = ValueError("Original error")
        error = ModelInvocationError("Wrapper", model="test", cause=cause)
        assert error.cause == cause


class TestConcurrentCalls:
    """Tests for concurrent call behavior."""

    def test_concurrent_calls_use_separate_clients(self):
        """Test that concurrent calls create separate HTTP clients."""
        client_instances = []

        def track_client(*args, **kwargs):
            mock_client = _sync_client(_response({"ok": True}))
            client_instances.append(mock_client)
            return mock_client

        with patch('httpx.Client', side_effect=track_client):
            from concurrent.futures import ThreadPoolExecutor

            with ThreadPoolExecutor(max_workers=3) as executor:
                futures = [
                    executor.submit(call_chat, [{"role": "user", "content": f"prompt{i}"}], "test", max_retries=1)
                    for i in range(3)
                ]
                for f in futures:
                    f.result()

            # Each call should have created a separate client
            assert len(client_instances) == 3
            # Each client should have been closed
            for client in client_instances:
                client.__exit__.assert_called()
