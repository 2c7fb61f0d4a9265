"""
fitstream Test Configuration and Fixtures

This module provides pytest fixtures for testing the fit analysis pipeline.
All fixtures are designed to avoid real API calls and provide deterministic
behavior.

Fixture Categories:
- Environment isolation: no .env, config files or API keys leak into tests
- Model responses: well-formed analysis JSON and event-stream bodies
- Determinism: fixed identifier generator and frozen clock
"""

import itertools
import json
from collections.abc import Callable, Iterable
from datetime import UTC, datetime
from typing import Any

import pytest

from fitstream.config import reset_config, reset_environment

API_URL = "https://api.openai.com/v1/chat/completions"

_ISOLATED_ENV_VARS = [
    "OPENAI_API_KEY",
    "OPENAI_MODEL",
    "OPENAI_BASE_URL",
    "FITSTREAM_CONFIG",
    "FITSTREAM_MODEL",
    "FITSTREAM_TEMPERATURE",
    "FITSTREAM_MAX_TOKENS",
    "FITSTREAM_TIMEOUT",
    "FITSTREAM_HISTORY_MAX_ITEMS",
    "FITSTREAM_HISTORY_DIR",
    "FITSTREAM_LOG_LEVEL",
    "FITSTREAM_DEBUG",
]


# =============================================================================
# Environment Isolation
# =============================================================================


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    """Run every test in an empty directory with a clean environment."""
    for var in _ISOLATED_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    reset_environment()
    reset_config()
    yield
    reset_environment()
    reset_config()


@pytest.fixture
def api_key(monkeypatch: pytest.MonkeyPatch) -> str:
    """Provide a fake API key through the environment."""
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test-key")
    reset_environment()
    return "sk-test-key"


# =============================================================================
# Determinism
# =============================================================================


@pytest.fixture
def fixed_ids() -> Callable[[], str]:
    """Identifier generator yielding id-1, id-2, ..."""
    counter = itertools.count(1)
    return lambda: f"id-{next(counter)}"


@pytest.fixture
def frozen_now() -> datetime:
    return datetime(2024, 5, 1, 12, 30, 45, 123456, tzinfo=UTC)


@pytest.fixture
def frozen_clock(frozen_now: datetime) -> Callable[[], datetime]:
    return lambda: frozen_now


# =============================================================================
# Model Responses
# =============================================================================


@pytest.fixture
def analysis_response() -> dict[str, Any]:
    """A well-formed analysis response as the model is asked to produce it."""
    return {
        "confidence": "strong",
        "alignments": [
            {
                "area": "Python backend development",
                "explanation": "Several production services were written in Python.",
                "evidence": [
                    {
                        "source": "Project: E-Commerce (2023)",
                        "detail": "Built the order service with FastAPI.",
                    },
                    {
                        "source": "Role: Senior Engineer at Acme",
                        "detail": "Owned the payments API for two years.",
                    },
                ],
            },
            {
                "area": "Cloud infrastructure",
                "explanation": "Hands-on with container platforms.",
                "evidence": [
                    {"source": "Kubernetes", "detail": "Operated clusters in production."}
                ],
            },
        ],
        "gaps": [
            {
                "area": "Mobile development",
                "explanation": "No documented iOS or Android work.",
                "severity": "moderate",
            }
        ],
        "recommendation": {
            "verdict": "proceed",
            "summary": "Strong overall fit.",
            "reasoning": "Core requirements are covered by recent, relevant work.",
        },
    }


@pytest.fixture
def analysis_response_text(analysis_response: dict[str, Any]) -> str:
    return json.dumps(analysis_response)


@pytest.fixture
def job_description() -> str:
    return (
        "Senior Backend Engineer. We are looking for an engineer with strong Python "
        "experience, cloud infrastructure knowledge and a track record of shipping APIs."
    )


def completion_frame(content: str) -> str:
    """One upstream chat-completion event-stream frame."""
    payload = {"choices": [{"index": 0, "delta": {"content": content}}]}
    return f"data: {json.dumps(payload)}\n\n"


def build_completion_stream(parts: Iterable[str], done: bool = True) -> str:
    """An upstream event-stream body delivering the given increments."""
    body = "".join(completion_frame(p) for p in parts)
    if done:
        body += "data: [DONE]\n\n"
    return body


def split_text(text: str, size: int) -> list[str]:
    return [text[i : i + size] for i in range(0, len(text), size)]


@pytest.fixture
def make_completion_stream() -> Callable[..., str]:
    return build_completion_stream


@pytest.fixture
def split() -> Callable[[str, int], list[str]]:
    return split_text
