"""
Streaming Chat Completion Client.

Provides an async client for OpenAI-compatible chat completion endpoints
that yields text increments as they arrive.

Features:
- Lazy, single-pass streaming of text increments
- Wall-clock deadline that aborts the in-flight request
- Fixed failure taxonomy with caller-safe messages
- Automatic retry with exponential backoff using tenacity (non-streaming)
- Structured output support with JSON mode
"""

from __future__ import annotations

import logging
import time
from collections.abc import AsyncIterator, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Literal

import httpx
from pydantic import SecretStr
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)
from tenacity.wait import wait_base

from fitstream.config.environment import get_api_key, get_model, load_environment
from fitstream.config.models import DEFAULT_BASE_URL, DEFAULT_MODEL, LLMConfig
from fitstream.models.base import LLMErrorType
from fitstream.models.events import ChunkEvent, DoneEvent, ErrorEvent
from fitstream.streaming.deadline import Deadline, RequestAborted
from fitstream.streaming.frames import FrameDecoder, decode_completion_payload

logger = logging.getLogger(__name__)


CHAT_COMPLETIONS_ENDPOINT = "/chat/completions"

# Model families that take max_completion_tokens instead of max_tokens
COMPLETION_TOKENS_PREFIXES = ("gpt-5", "o1", "o3", "o4")

# Characters of an error body kept in diagnostics
ERROR_BODY_LOG_LIMIT = 500

ERROR_MESSAGES: dict[LLMErrorType, str] = {
    LLMErrorType.NETWORK: "Unable to connect. Please check your connection and try again.",
    LLMErrorType.TIMEOUT: "The analysis is taking too long. Please try again.",
    LLMErrorType.SERVER: "Something went wrong on our end. Please try again.",
    LLMErrorType.RATE_LIMIT: "Too many requests. Please wait a moment and try again.",
    LLMErrorType.INVALID_RESPONSE: "Received an unexpected response. Please try again.",
    LLMErrorType.API_KEY_MISSING: "Something went wrong on our end. Please try again.",
}

GENERIC_ERROR_MESSAGE = "An unexpected error occurred. Please try again."

RETRYABLE_ERRORS: dict[LLMErrorType, bool] = {
    LLMErrorType.NETWORK: True,
    LLMErrorType.TIMEOUT: True,
    LLMErrorType.SERVER: True,
    LLMErrorType.RATE_LIMIT: True,
    LLMErrorType.INVALID_RESPONSE: True,
    LLMErrorType.API_KEY_MISSING: False,
}


def user_message_for(error_type: LLMErrorType | str | None) -> str:
    """Look up the caller-safe message for an error type.

    Unknown types fall back to a generic message.
    """
    try:
        return ERROR_MESSAGES[LLMErrorType(error_type)]
    except (ValueError, KeyError):
        return GENERIC_ERROR_MESSAGE


class LLMError(Exception):
    """Classified failure of a completion request.

    The message is always taken from the fixed user-facing table unless
    explicitly given; upstream status text and credentials never end up
    in it.

    Attributes:
        error_type: Failure classification
        message: Caller-safe message
        retryable: Whether retrying can help
    """

    def __init__(
        self,
        error_type: LLMErrorType | str,
        message: str | None = None,
        retryable: bool | None = None,
    ) -> None:
        self.error_type = LLMErrorType(error_type)
        self.message = message or user_message_for(self.error_type)
        self.retryable = RETRYABLE_ERRORS[self.error_type] if retryable is None else retryable
        super().__init__(self.message)

    @property
    def type(self) -> LLMErrorType:
        return self.error_type

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.error_type.value,
            "message": self.message,
            "retryable": self.retryable,
        }

    def __repr__(self) -> str:
        return f"LLMError(type={self.error_type.value!r}, retryable={self.retryable})"


@dataclass
class Message:
    """A message in a conversation.

    Attributes:
        role: Role of the message sender (system, user, assistant)
        content: Text content of the message
    """

    role: Literal["system", "user", "assistant"]
    content: str

    def to_dict(self) -> dict[str, str]:
        """Convert to API format."""
        return {"role": self.role, "content": self.content}


def _message_dict(message: Message | Mapping[str, str]) -> dict[str, str]:
    if isinstance(message, Message):
        return message.to_dict()
    return {"role": message["role"], "content": message["content"]}


def uses_completion_tokens_field(model: str) -> bool:
    """Check whether a model takes max_completion_tokens.

    A provider prefix such as "openai/" is ignored.
    """
    name = model.rsplit("/", 1)[-1].lower()
    return name.startswith(COMPLETION_TOKENS_PREFIXES)


def build_request_body(
    system_prompt: str,
    messages: Sequence[Message | Mapping[str, str]],
    config: LLMConfig,
) -> dict[str, Any]:
    """Build the JSON body of a streaming chat completion request.

    Args:
        system_prompt: System instruction, sent as the first message
        messages: Conversation history in order
        config: Request configuration

    Returns:
        Request body dict
    """
    body: dict[str, Any] = {
        "model": config.model,
        "messages": [
            {"role": "system", "content": system_prompt},
            *(_message_dict(m) for m in messages),
        ],
        "temperature": config.temperature,
    }

    if uses_completion_tokens_field(config.model):
        body["max_completion_tokens"] = config.max_tokens
    else:
        body["max_tokens"] = config.max_tokens

    if config.response_format == "json_object":
        body["response_format"] = {"type": "json_object"}

    body["stream"] = True
    return body


def build_llm_config(
    partial: LLMConfig | Mapping[str, Any] | None = None,
    **overrides: Any,
) -> LLMConfig:
    """Merge explicit settings over environment values and defaults.

    Args:
        partial: Base settings (model or mapping); unset fields fall back
        **overrides: Individual field overrides

    Returns:
        Complete LLMConfig with an API key

    Raises:
        LLMError: api_key_missing when no key is configured anywhere
    """
    if isinstance(partial, LLMConfig):
        values: dict[str, Any] = partial.model_dump(exclude_unset=True)
        if partial.api_key is not None:
            values["api_key"] = partial.api_key
    else:
        values = dict(partial or {})
    values.update({k: v for k, v in overrides.items() if v is not None})

    if not values.get("api_key"):
        api_key = get_api_key()
        if not api_key:
            raise LLMError(LLMErrorType.API_KEY_MISSING)
        values["api_key"] = SecretStr(api_key)

    values.setdefault("model", get_model(DEFAULT_MODEL))
    return LLMConfig(**values)


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, LLMError) and exc.retryable


class AsyncLLMClient:
    """Async streaming client for OpenAI-compatible chat completions.

    Example:
        async with AsyncLLMClient() as client:
            async for text in client.stream_chat_completion(
                system_prompt="You are a recruiter.",
                messages=[Message(role="user", content=job_description)],
                config=LLMConfig(response_format="json_object"),
            ):
                print(text, end="")
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        max_retries: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_wait: wait_base | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_key: API key (defaults to OPENAI_API_KEY)
            base_url: Base URL of the completion API
            max_retries: Attempts for complete_with_retry
            transport: Custom httpx transport (used in tests)
            retry_wait: Tenacity wait strategy between retries
        """
        self._api_key = api_key
        self._base_url = base_url
        self._max_retries = max_retries
        self._transport = transport
        self._retry_wait = retry_wait or wait_exponential(multiplier=1, min=1, max=10)
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> AsyncLLMClient:
        """Enter async context."""
        await self._ensure_client()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Exit async context."""
        await self.close()

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Ensure HTTP client is initialized.

        Raises:
            LLMError: api_key_missing when no key is available
        """
        if self._client is None:
            api_key = self._api_key or get_api_key()
            if not api_key:
                raise LLMError(LLMErrorType.API_KEY_MISSING)

            base_url = self._base_url or load_environment().openai_base_url or DEFAULT_BASE_URL

            self._client = httpx.AsyncClient(
                base_url=base_url,
                headers={
                    "Authorization": f"Bearer {api_key}",
                    "Content-Type": "application/json",
                },
                # Reads are bounded by the request deadline instead
                timeout=httpx.Timeout(10.0, read=None),
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def stream_chat_completion(
        self,
        system_prompt: str,
        messages: Sequence[Message | Mapping[str, str]],
        config: LLMConfig | None = None,
        deadline: Deadline | None = None,
    ) -> AsyncIterator[str]:
        """Stream a chat completion as text increments.

        The returned iterator is single-pass; consuming again needs a new
        call. Increments are yielded in the order their frames arrived.

        Args:
            system_prompt: System instruction
            messages: Conversation history
            config: Request configuration (defaults apply when None)
            deadline: Caller-owned deadline; armed from config.timeout
                when not given

        Yields:
            Text increments

        Raises:
            LLMError: For every failure, already classified
        """
        config = config or LLMConfig()
        deadline = deadline or Deadline(config.timeout)
        body = build_request_body(system_prompt, messages, config)
        headers = (
            {"Authorization": f"Bearer {config.api_key.get_secret_value()}"}
            if config.api_key is not None
            else None
        )

        logger.info(
            f"Starting completion stream: model={config.model}, "
            f"messages={len(body['messages'])}, prompt_chars={len(system_prompt)}, "
            f"timeout={deadline.remaining():.1f}s"
        )
        start_time = time.monotonic()
        increments = 0

        try:
            client = await self._ensure_client()
            request = client.build_request(
                "POST", CHAT_COMPLETIONS_ENDPOINT, json=body, headers=headers
            )
            response = await deadline.guard(client.send(request, stream=True))
            try:
                latency_ms = int((time.monotonic() - start_time) * 1000)
                logger.info(f"Completion response: status={response.status_code} ({latency_ms}ms)")
                if not response.is_success:
                    await self._raise_for_status(response, deadline)

                decoder = FrameDecoder(decode_completion_payload)
                chunks = response.aiter_bytes()
                received = 0
                finished = False

                while not finished:
                    try:
                        raw = await deadline.guard(chunks.__anext__())
                    except StopAsyncIteration:
                        break
                    received += len(raw)
                    for event in decoder.feed(raw):
                        if isinstance(event, DoneEvent):
                            finished = True
                            break
                        if isinstance(event, ErrorEvent):
                            logger.warning(f"In-band stream error: {event.message[:ERROR_BODY_LOG_LIMIT]}")
                            raise LLMError(LLMErrorType.SERVER)
                        if isinstance(event, ChunkEvent) and event.content:
                            increments += 1
                            yield event.content

                if not finished:
                    for event in decoder.flush():
                        if isinstance(event, ErrorEvent):
                            logger.warning(f"In-band stream error: {event.message[:ERROR_BODY_LOG_LIMIT]}")
                            raise LLMError(LLMErrorType.SERVER)
                        if isinstance(event, ChunkEvent) and event.content:
                            increments += 1
                            yield event.content

                if received == 0:
                    logger.warning("Completion response had an empty body")
                    raise LLMError(LLMErrorType.INVALID_RESPONSE)
            finally:
                await response.aclose()

        except LLMError as e:
            logger.warning(f"Completion stream failed: {e.error_type.value}")
            raise
        except RequestAborted as e:
            logger.warning(f"Completion stream aborted: {e.reason}")
            raise LLMError(LLMErrorType.TIMEOUT) from e
        except httpx.TimeoutException as e:
            logger.warning(f"Completion stream timed out: {type(e).__name__}")
            raise LLMError(LLMErrorType.TIMEOUT) from e
        except httpx.TransportError as e:
            logger.warning(f"Completion transport failure: {type(e).__name__}")
            raise LLMError(LLMErrorType.NETWORK) from e
        except Exception as e:
            logger.exception(f"Unexpected completion failure: {type(e).__name__}")
            raise LLMError(LLMErrorType.SERVER) from e

        elapsed_ms = int((time.monotonic() - start_time) * 1000)
        logger.info(f"Completion stream finished: {increments} increments ({elapsed_ms}ms)")

    async def _raise_for_status(self, response: httpx.Response, deadline: Deadline) -> None:
        """Classify a non-success status.

        The body is read only for diagnostics; it never reaches the error.
        """
        try:
            content = await deadline.guard(response.aread())
            detail = content.decode("utf-8", errors="replace")[:ERROR_BODY_LOG_LIMIT]
        except (RequestAborted, httpx.HTTPError):
            detail = ""
        logger.error(f"Completion request failed: status={response.status_code} body={detail!r}")

        if response.status_code == 429:
            raise LLMError(LLMErrorType.RATE_LIMIT)
        if response.status_code == 401:
            raise LLMError(LLMErrorType.API_KEY_MISSING)
        raise LLMError(LLMErrorType.SERVER)

    async def get_chat_completion(
        self,
        system_prompt: str,
        messages: Sequence[Message | Mapping[str, str]],
        config: LLMConfig | None = None,
        deadline: Deadline | None = None,
    ) -> str:
        """Run a completion to the end and return the joined text.

        Raises:
            LLMError: For every failure, already classified
        """
        parts = [
            part
            async for part in self.stream_chat_completion(
                system_prompt, messages, config=config, deadline=deadline
            )
        ]
        return "".join(parts)

    async def complete_with_retry(
        self,
        system_prompt: str,
        messages: Sequence[Message | Mapping[str, str]],
        config: LLMConfig | None = None,
    ) -> str:
        """Like get_chat_completion, retrying retryable failures.

        Each attempt gets a fresh deadline from config.timeout.

        Raises:
            LLMError: The last failure once attempts are exhausted, or the
                first non-retryable one
        """
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._max_retries),
            wait=self._retry_wait,
            retry=retry_if_exception(_is_retryable),
            reraise=True,
        ):
            with attempt:
                attempt_num = attempt.retry_state.attempt_number
                logger.info(f"Completion attempt {attempt_num}/{self._max_retries}")
                return await self.get_chat_completion(system_prompt, messages, config=config)

        # This should never be reached, but satisfies type checker
        raise LLMError(LLMErrorType.SERVER)
