"""
Shared fixtures for Lumina tests.

A fake Anthropic transport stands in for ``AsyncAnthropic.messages``; it
raises real ``anthropic`` exception types so error classification runs
against the SDK's own classes.
"""
import json
import os
import sys
from types import SimpleNamespace
from typing import Any, List

import anthropic
import httpx
import pytest

sys.path.insert(0, os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "src"))

from shared.config import LuminaConfig
from shared.usage_store import InMemoryUsageStore

ANTHROPIC_URL = "https://api.anthropic.com/v1/messages"


def make_status_error(status: int, message: str = "error") -> anthropic.APIStatusError:
    """Build the SDK exception the client raises for an HTTP status."""
    response = httpx.Response(status, request=httpx.Request("POST", ANTHROPIC_URL))
    error_classes = {
        400: anthropic.BadRequestError,
        401: anthropic.AuthenticationError,
        429: anthropic.RateLimitError,
    }
    cls = error_classes.get(status)
    if cls is None:
        cls = anthropic.InternalServerError if status >= 500 else anthropic.APIStatusError
    return cls(message, response=response, body=None)


def make_message(payload: Any, input_tokens: int = 900, output_tokens: int = 120, model: str = "claude-test"):
    """A messages.create() result whose text is ``payload`` (JSON-encoded unless str)."""
    text = payload if isinstance(payload, str) else json.dumps(payload)
    return SimpleNamespace(
        content=[SimpleNamespace(type="text", text=text)],
        usage=SimpleNamespace(input_tokens=input_tokens, output_tokens=output_tokens),
        model=model,
    )


class FakeMessages:
    """Scripted ``messages`` resource: each call consumes the next outcome."""

    def __init__(self, outcomes: List[Any]):
        self.outcomes = list(outcomes)
        self.calls: List[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class FakeAnthropic:
    def __init__(self, *outcomes: Any):
        self.messages = FakeMessages(list(outcomes))


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self):
        self.delays: List[float] = []

    async def __call__(self, seconds: float):
        self.delays.append(seconds)


@pytest.fixture
def config():
    return LuminaConfig(
        anthropic_api_key="sk-ant-test",
        anthropic_model="claude-test",
        redis_url="",
        rate_limit_window_seconds=60,
        rate_limit_max_requests=20,
        rate_limit_warn_threshold=15,
    )


@pytest.fixture
def store():
    return InMemoryUsageStore()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def command_payload():
    """A minimal valid single-command request."""
    return {
        "transcribedText": "turn off the backyard",
        "conversationHistory": [],
        "currentLightingState": {
            "zones": [
                {"id": "backyard", "color": [255, 180, 100], "brightness": 200, "effect": "Solid"},
            ]
        },
        "userFavorites": [],
        "deviceConfig": {
            "totalPixels": 300,
            "zones": [{"id": "backyard", "startPixel": 0, "endPixel": 299}],
        },
    }


@pytest.fixture
def schedule_payload():
    """A minimal valid scheduling request."""
    return {
        "text": "Chiefs colors every night this week",
        "conversationHistory": [],
        "currentSchedule": [],
        "userLocation": {"timezone": "America/Chicago"},
        "userTeams": [
            {"name": "Kansas City Chiefs", "league": "NFL", "primaryColor": [227, 24, 55], "secondaryColor": [255, 184, 28]},
        ],
        "availableZones": ["front_roofline"],
        "availableEffects": [{"id": 0, "name": "Solid"}],
        "currentDateTime": "2026-10-18T18:00:00Z",
    }
