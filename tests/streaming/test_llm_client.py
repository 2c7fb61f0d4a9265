"""
Tests for the streaming chat completion client.

These tests use mocking to avoid actual API calls.
"""

import asyncio
import json

import httpx
import pytest
import respx
from httpx import Response
from pydantic import SecretStr
from tenacity import wait_none

from fitstream.config import DEFAULT_BASE_URL, LLMConfig
from fitstream.models import LLMErrorType
from fitstream.streaming.deadline import Deadline
from fitstream.streaming.llm_client import (
    CHAT_COMPLETIONS_ENDPOINT,
    AsyncLLMClient,
    LLMError,
    Message,
    build_llm_config,
    build_request_body,
    user_message_for,
    uses_completion_tokens_field,
)

API_URL = f"{DEFAULT_BASE_URL}{CHAT_COMPLETIONS_ENDPOINT}"
USER = [Message(role="user", content="Analyze this job.")]


async def collect(client: AsyncLLMClient, **kwargs) -> list[str]:
    return [part async for part in client.stream_chat_completion("system", USER, **kwargs)]


class TestMessage:
    """Tests for Message class."""

    def test_message_to_dict(self):
        """Test converting message to dict."""
        msg = Message(role="system", content="You are helpful")
        assert msg.to_dict() == {"role": "system", "content": "You are helpful"}


@pytest.mark.unit
class TestLLMError:
    """Tests for the failure taxonomy."""

    @pytest.mark.parametrize(
        "error_type,retryable",
        [
            (LLMErrorType.NETWORK, True),
            (LLMErrorType.TIMEOUT, True),
            (LLMErrorType.SERVER, True),
            (LLMErrorType.RATE_LIMIT, True),
            (LLMErrorType.INVALID_RESPONSE, True),
            (LLMErrorType.API_KEY_MISSING, False),
        ],
    )
    def test_retryable_flags(self, error_type, retryable):
        """Every type except a missing key may be retried."""
        assert LLMError(error_type).retryable is retryable

    def test_message_comes_from_fixed_table(self):
        error = LLMError(LLMErrorType.RATE_LIMIT)
        assert error.message == "Too many requests. Please wait a moment and try again."
        assert str(error) == error.message

    def test_missing_key_message_does_not_mention_keys(self):
        """The missing key case shows the generic server text."""
        assert LLMError("api_key_missing").message == user_message_for(LLMErrorType.SERVER)

    def test_unknown_type_gets_generic_message(self):
        assert user_message_for("teapot") == "An unexpected error occurred. Please try again."
        assert user_message_for(None) == "An unexpected error occurred. Please try again."

    def test_to_dict(self):
        error = LLMError(LLMErrorType.TIMEOUT)
        assert error.to_dict() == {
            "type": "timeout",
            "message": "The analysis is taking too long. Please try again.",
            "retryable": True,
        }
        assert error.type is LLMErrorType.TIMEOUT


@pytest.mark.unit
class TestRequestBody:
    """Tests for request body construction."""

    def test_system_prompt_first(self):
        body = build_request_body("Be brief.", USER, LLMConfig())
        assert body["messages"][0] == {"role": "system", "content": "Be brief."}
        assert body["messages"][1] == {"role": "user", "content": "Analyze this job."}
        assert body["stream"] is True

    def test_mapping_messages_are_accepted(self):
        body = build_request_body("s", [{"role": "user", "content": "hi"}], LLMConfig())
        assert body["messages"][1] == {"role": "user", "content": "hi"}

    def test_max_tokens_for_classic_models(self):
        body = build_request_body("s", USER, LLMConfig(model="gpt-4o-mini", max_tokens=900))
        assert body["max_tokens"] == 900
        assert "max_completion_tokens" not in body

    @pytest.mark.parametrize("model", ["gpt-5-mini", "o1-preview", "o3-mini", "openai/o4-mini"])
    def test_max_completion_tokens_for_newer_models(self, model):
        body = build_request_body("s", USER, LLMConfig(model=model, max_tokens=900))
        assert body["max_completion_tokens"] == 900
        assert "max_tokens" not in body

    def test_uses_completion_tokens_field(self):
        assert uses_completion_tokens_field("GPT-5")
        assert not uses_completion_tokens_field("gpt-4.1")

    def test_json_mode(self):
        body = build_request_body("s", USER, LLMConfig(response_format="json_object"))
        assert body["response_format"] == {"type": "json_object"}

    def test_no_response_format_by_default(self):
        assert "response_format" not in build_request_body("s", USER, LLMConfig())


@pytest.mark.unit
class TestBuildLLMConfig:
    """Tests for merging settings with the environment."""

    def test_missing_key_raises(self):
        with pytest.raises(LLMError) as exc_info:
            build_llm_config()
        assert exc_info.value.error_type is LLMErrorType.API_KEY_MISSING
        assert not exc_info.value.retryable

    def test_key_from_environment(self, api_key):
        config = build_llm_config()
        assert config.api_key.get_secret_value() == api_key
        assert config.model == "gpt-4o-mini"

    def test_model_from_environment(self, api_key, monkeypatch):
        from fitstream.config import reset_environment

        monkeypatch.setenv("OPENAI_MODEL", "gpt-5-mini")
        reset_environment()
        assert build_llm_config().model == "gpt-5-mini"

    def test_explicit_values_win(self, api_key):
        config = build_llm_config(
            LLMConfig(model="o3-mini", temperature=0.2),
            api_key=SecretStr("sk-explicit"),
            max_tokens=123,
            timeout=None,
        )
        assert config.model == "o3-mini"
        assert config.temperature == 0.2
        assert config.max_tokens == 123
        assert config.timeout == 30.0
        assert config.api_key.get_secret_value() == "sk-explicit"

    def test_mapping_partial(self, api_key):
        config = build_llm_config({"model": "gpt-4.1", "response_format": "json_object"})
        assert config.model == "gpt-4.1"
        assert config.response_format == "json_object"


@pytest.mark.llm
class TestStreamChatCompletion:
    """Tests for streaming completions against a mocked endpoint."""

    @pytest.fixture
    def client(self):
        return AsyncLLMClient(api_key="sk-test-key")

    @pytest.mark.asyncio
    @respx.mock
    async def test_yields_increments_in_order(self, client, make_completion_stream):
        """Test that text increments arrive in frame order."""
        respx.post(API_URL).mock(
            return_value=Response(200, text=make_completion_stream(["Hel", "lo", " world"]))
        )

        async with client:
            parts = await collect(client)

        assert parts == ["Hel", "lo", " world"]

    @pytest.mark.asyncio
    @respx.mock
    async def test_request_body_and_headers(self, client, make_completion_stream):
        """Test the wire request."""
        route = respx.post(API_URL).mock(
            return_value=Response(200, text=make_completion_stream(["{}"]))
        )

        async with client:
            config = LLMConfig(model="gpt-5-mini", response_format="json_object")
            await collect(client, config=config)

        request = route.calls.last.request
        body = json.loads(request.content)
        assert request.headers["authorization"] == "Bearer sk-test-key"
        assert body["model"] == "gpt-5-mini"
        assert body["stream"] is True
        assert body["response_format"] == {"type": "json_object"}
        assert "max_completion_tokens" in body

    @pytest.mark.asyncio
    @respx.mock
    async def test_config_key_overrides_client_key(self, client, make_completion_stream):
        route = respx.post(API_URL).mock(
            return_value=Response(200, text=make_completion_stream(["ok"]))
        )

        async with client:
            await collect(client, config=LLMConfig(api_key=SecretStr("sk-per-request")))

        assert route.calls.last.request.headers["authorization"] == "Bearer sk-per-request"

    @pytest.mark.asyncio
    @respx.mock
    async def test_frames_after_done_are_ignored(self, client, make_completion_stream):
        body = make_completion_stream(["a"]) + make_completion_stream(["b"], done=False)
        respx.post(API_URL).mock(return_value=Response(200, text=body))

        async with client:
            assert await collect(client) == ["a"]

    @pytest.mark.asyncio
    @respx.mock
    async def test_stream_without_done_marker(self, client, make_completion_stream):
        """A body that just ends still yields everything it carried."""
        respx.post(API_URL).mock(
            return_value=Response(200, text=make_completion_stream(["a", "b"], done=False))
        )

        async with client:
            assert await collect(client) == ["a", "b"]

    @pytest.mark.asyncio
    @respx.mock
    async def test_malformed_frames_are_skipped(self, client, make_completion_stream):
        body = (
            make_completion_stream(["a"], done=False)
            + "data: {oops\n\n"
            + ": keep-alive\n\n"
            + 'data: {"choices": [{"delta": {"role": "assistant"}}]}\n\n'
            + make_completion_stream(["b"])
        )
        respx.post(API_URL).mock(return_value=Response(200, text=body))

        async with client:
            assert await collect(client) == ["a", "b"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status,error_type,retryable",
        [
            (401, LLMErrorType.API_KEY_MISSING, False),
            (429, LLMErrorType.RATE_LIMIT, True),
            (500, LLMErrorType.SERVER, True),
            (503, LLMErrorType.SERVER, True),
            (418, LLMErrorType.SERVER, True),
        ],
    )
    @respx.mock
    async def test_status_classification(self, client, status, error_type, retryable):
        """Test that HTTP statuses map to the failure taxonomy."""
        respx.post(API_URL).mock(
            return_value=Response(status, json={"error": {"message": "secret upstream detail"}})
        )

        async with client:
            with pytest.raises(LLMError) as exc_info:
                await collect(client)

        assert exc_info.value.error_type is error_type
        assert exc_info.value.retryable is retryable
        assert "secret upstream detail" not in exc_info.value.message

    @pytest.mark.asyncio
    @respx.mock
    async def test_empty_body_is_invalid_response(self, client):
        respx.post(API_URL).mock(return_value=Response(200, content=b""))

        async with client:
            with pytest.raises(LLMError) as exc_info:
                await collect(client)

        assert exc_info.value.error_type is LLMErrorType.INVALID_RESPONSE
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    @respx.mock
    async def test_in_band_error_is_server_error(self, client, make_completion_stream):
        body = (
            make_completion_stream(["partial"], done=False)
            + 'data: {"error": {"message": "model overloaded"}}\n\n'
        )
        respx.post(API_URL).mock(return_value=Response(200, text=body))

        parts = []
        async with client:
            with pytest.raises(LLMError) as exc_info:
                async for part in client.stream_chat_completion("system", USER):
                    parts.append(part)

        assert parts == ["partial"]
        assert exc_info.value.error_type is LLMErrorType.SERVER

    @pytest.mark.asyncio
    @respx.mock
    async def test_connection_failure_is_network_error(self, client):
        respx.post(API_URL).mock(side_effect=httpx.ConnectError("connection refused"))

        async with client:
            with pytest.raises(LLMError) as exc_info:
                await collect(client)

        assert exc_info.value.error_type is LLMErrorType.NETWORK
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    @respx.mock
    async def test_transport_timeout_is_timeout_error(self, client):
        respx.post(API_URL).mock(side_effect=httpx.ConnectTimeout("slow"))

        async with client:
            with pytest.raises(LLMError) as exc_info:
                await collect(client)

        assert exc_info.value.error_type is LLMErrorType.TIMEOUT

    @pytest.mark.asyncio
    async def test_missing_api_key(self):
        client = AsyncLLMClient()
        with pytest.raises(LLMError) as exc_info:
            await collect(client)

        assert exc_info.value.error_type is LLMErrorType.API_KEY_MISSING
        assert not exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_base_url_from_environment(self, api_key, monkeypatch, make_completion_stream):
        from fitstream.config import reset_environment

        monkeypatch.setenv("OPENAI_BASE_URL", "https://llm.internal.example/v1")
        reset_environment()

        with respx.mock:
            route = respx.post("https://llm.internal.example/v1/chat/completions").mock(
                return_value=Response(200, text=make_completion_stream(["x"]))
            )
            async with AsyncLLMClient() as client:
                assert await collect(client) == ["x"]

        assert route.called


@pytest.mark.llm
class TestDeadlineHandling:
    """Tests for aborting a stalled stream."""

    @staticmethod
    def stalled_transport(first_frame: str) -> httpx.MockTransport:
        async def body():
            yield first_frame.encode()
            await asyncio.sleep(10)
            yield b"data: [DONE]\n\n"

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=body())

        return httpx.MockTransport(handler)

    @pytest.mark.asyncio
    async def test_stalled_stream_times_out(self, make_completion_stream):
        """The deadline aborts a read that never completes."""
        transport = self.stalled_transport(make_completion_stream(["first"], done=False))
        parts = []

        async with AsyncLLMClient(api_key="sk-test", transport=transport) as client:
            with pytest.raises(LLMError) as exc_info:
                async for part in client.stream_chat_completion(
                    "system", USER, deadline=Deadline(0.2)
                ):
                    parts.append(part)

        assert parts == ["first"]
        assert exc_info.value.error_type is LLMErrorType.TIMEOUT
        assert exc_info.value.retryable

    @pytest.mark.asyncio
    async def test_config_timeout_arms_deadline(self, make_completion_stream):
        transport = self.stalled_transport(make_completion_stream(["first"], done=False))

        async with AsyncLLMClient(api_key="sk-test", transport=transport) as client:
            with pytest.raises(LLMError) as exc_info:
                await collect(client, config=LLMConfig(timeout=0.2))

        assert exc_info.value.error_type is LLMErrorType.TIMEOUT

    @pytest.mark.asyncio
    async def test_cancelled_deadline_aborts_stream(self, make_completion_stream):
        transport = self.stalled_transport(make_completion_stream(["first"], done=False))
        deadline = Deadline(30)

        async with AsyncLLMClient(api_key="sk-test", transport=transport) as client:
            with pytest.raises(LLMError) as exc_info:
                async for _ in client.stream_chat_completion("system", USER, deadline=deadline):
                    deadline.cancel()

        assert exc_info.value.error_type is LLMErrorType.TIMEOUT


@pytest.mark.llm
class TestRetry:
    """Tests for non-streaming completion with retry."""

    @pytest.fixture
    def client(self):
        return AsyncLLMClient(api_key="sk-test-key", max_retries=3, retry_wait=wait_none())

    @pytest.mark.asyncio
    @respx.mock
    async def test_get_chat_completion_joins_text(self, client, make_completion_stream):
        respx.post(API_URL).mock(
            return_value=Response(200, text=make_completion_stream(['{"a"', ": 1}"]))
        )

        async with client:
            text = await client.get_chat_completion("system", USER)

        assert text == '{"a": 1}'

    @pytest.mark.asyncio
    @respx.mock
    async def test_retries_server_errors(self, client, make_completion_stream):
        """Test that a retryable failure is retried until success."""
        route = respx.post(API_URL).mock(
            side_effect=[
                Response(500),
                Response(429),
                Response(200, text=make_completion_stream(["done"])),
            ]
        )

        async with client:
            text = await client.complete_with_retry("system", USER)

        assert text == "done"
        assert route.call_count == 3

    @pytest.mark.asyncio
    @respx.mock
    async def test_does_not_retry_missing_key(self, client):
        route = respx.post(API_URL).mock(return_value=Response(401))

        async with client:
            with pytest.raises(LLMError) as exc_info:
                await client.complete_with_retry("system", USER)

        assert exc_info.value.error_type is LLMErrorType.API_KEY_MISSING
        assert route.call_count == 1

    @pytest.mark.asyncio
    @respx.mock
    async def test_gives_up_after_max_retries(self, client):
        route = respx.post(API_URL).mock(return_value=Response(503))

        async with client:
            with pytest.raises(LLMError) as exc_info:
                await client.complete_with_retry("system", USER)

        assert exc_info.value.error_type is LLMErrorType.SERVER
        assert route.call_count == 3
