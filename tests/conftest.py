"""Shared test fixtures and configuration."""

from typing import Any, Callable, Dict, List
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from prisma_airs_mcp.airs.types import AiProfile, ContentItem, Metadata, ScanRequest
from prisma_airs_mcp.config import (
    AirsConfig,
    CacheConfig,
    RateLimitConfig,
    ServerConfig,
)

# Configure pytest-asyncio
pytest_plugins = ["pytest_asyncio"]

TEST_API_URL = "https://airs.test"
TEST_API_KEY = "test-api-key"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingHandler:
    """httpx.MockTransport handler that replays queued responses and records requests."""

    def __init__(self, responses: List[Any] | None = None):
        self.responses = list(responses or [])
        self.requests: List[httpx.Request] = []

    def queue(self, *responses: Any) -> None:
        self.responses.extend(responses)

    @property
    def call_count(self) -> int:
        return len(self.requests)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.responses:
            raise AssertionError(f"Unexpected request: {request.method} {request.url}")

        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            return response(request)
        return response


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def handler():
    return RecordingHandler()


@pytest.fixture
def transport(handler):
    return httpx.MockTransport(handler)


@pytest.fixture
def no_sleep():
    """Patch asyncio.sleep inside the client so retry backoff is instant."""
    with patch(
        "prisma_airs_mcp.airs.client.asyncio.sleep", new_callable=AsyncMock
    ) as mock_sleep:
        yield mock_sleep


@pytest.fixture
def scan_response_payload() -> Dict[str, Any]:
    return {
        "report_id": "R-001",
        "scan_id": "S-001",
        "tr_id": "tr-1",
        "profile_name": "Prisma AIRS",
        "category": "benign",
        "action": "allow",
        "prompt_detected": {"injection": False, "dlp": False},
    }


@pytest.fixture
def malicious_response_payload() -> Dict[str, Any]:
    return {
        "report_id": "R-666",
        "scan_id": "S-666",
        "category": "malicious",
        "action": "block",
        "prompt_detected": {"injection": True, "url_cats": False},
        "response_detected": {"dlp": True},
    }


@pytest.fixture
def make_scan_request() -> Callable[..., ScanRequest]:
    def _make(
        prompt: str = "What is the capital of France?",
        tr_id: str | None = "tr-1",
        profile_name: str | None = "Prisma AIRS",
        profile_id: str | None = None,
        metadata: Metadata | None = None,
    ) -> ScanRequest:
        return ScanRequest(
            tr_id=tr_id,
            ai_profile=AiProfile(profile_name=profile_name, profile_id=profile_id),
            metadata=metadata,
            contents=[ContentItem(prompt=prompt)],
        )

    return _make


@pytest.fixture
def server_config() -> ServerConfig:
    return ServerConfig(
        airs=AirsConfig(
            api_url=TEST_API_URL,
            api_key=TEST_API_KEY,
            timeout=5.0,
            max_retries=2,
            retry_delay=0.1,
        ),
        cache=CacheConfig(enabled=True, ttl_seconds=60, max_size=10),
        rate_limit=RateLimitConfig(enabled=True, max_requests=100, window_ms=60000),
    )
