"""
Fit Analysis Pipeline - Streaming

Event-stream frame decoding, the streaming completion client with its
deadline, and progress phase detection.
"""

from fitstream.streaming.deadline import Deadline, RequestAborted
from fitstream.streaming.frames import (
    FrameDecoder,
    decode_completion_payload,
    decode_relay_payload,
    parse_sse_line,
)
from fitstream.streaming.llm_client import (
    CHAT_COMPLETIONS_ENDPOINT,
    ERROR_MESSAGES,
    GENERIC_ERROR_MESSAGE,
    RETRYABLE_ERRORS,
    AsyncLLMClient,
    LLMError,
    Message,
    build_llm_config,
    build_request_body,
    user_message_for,
    uses_completion_tokens_field,
)
from fitstream.streaming.phases import PHASE_MARKERS, PhaseDetector, detect_phase

__all__ = [
    # Frames
    "FrameDecoder",
    "parse_sse_line",
    "decode_relay_payload",
    "decode_completion_payload",
    # Deadline
    "Deadline",
    "RequestAborted",
    # Client
    "AsyncLLMClient",
    "LLMError",
    "Message",
    "build_llm_config",
    "build_request_body",
    "uses_completion_tokens_field",
    "user_message_for",
    "CHAT_COMPLETIONS_ENDPOINT",
    "ERROR_MESSAGES",
    "GENERIC_ERROR_MESSAGE",
    "RETRYABLE_ERRORS",
    # Phases
    "PHASE_MARKERS",
    "detect_phase",
    "PhaseDetector",
]
