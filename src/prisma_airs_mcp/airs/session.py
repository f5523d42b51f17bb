"""
HTTP session manager for the AIRS API.

Owns a single lazily created ``httpx.AsyncClient`` with pooled connections
and keeps simple request/error metrics for the health endpoint.
"""

import asyncio
import time
from typing import Optional, Dict, Any, List
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
import statistics

import httpx
import structlog

logger = structlog.get_logger(__name__)


@dataclass
class SessionMetrics:
    """Metrics for monitoring HTTP session usage."""

    total_requests: int = 0
    active_requests: int = 0
    request_errors: int = 0
    clients_created: int = 0
    request_duration_ms: List[float] = field(default_factory=list)

    def record_request_started(self) -> None:
        self.total_requests += 1
        self.active_requests += 1

    def record_request_finished(self, duration_ms: float) -> None:
        self.active_requests = max(0, self.active_requests - 1)
        self.request_duration_ms.append(duration_ms)
        if len(self.request_duration_ms) > 1000:  # Keep last 1000 samples
            self.request_duration_ms = self.request_duration_ms[-1000:]

    def record_request_error(self) -> None:
        self.request_errors += 1

    def calculate_reuse_rate(self) -> float:
        """Calculate client reuse rate as percentage."""
        if self.total_requests == 0:
            return 0.0
        reused = max(0, self.total_requests - self.clients_created)
        return (reused / self.total_requests) * 100

    def get_avg_duration(self) -> float:
        """Get average request duration in milliseconds."""
        if not self.request_duration_ms:
            return 0.0
        return statistics.mean(self.request_duration_ms)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_requests": self.total_requests,
            "active_requests": self.active_requests,
            "request_errors": self.request_errors,
            "reuse_rate": self.calculate_reuse_rate(),
            "avg_duration_ms": self.get_avg_duration(),
        }


class HTTPSessionManager:
    """Manages the pooled HTTP client used by the AIRS API client."""

    def __init__(
        self,
        base_url: str,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = 30.0,
        max_connections: int = 100,
        max_keepalive_connections: int = 20,
        keepalive_expiry: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize HTTP session manager.

        Args:
            base_url: Base URL every request path is resolved against
            headers: Default headers sent with every request
            timeout: Default per-request timeout in seconds
            transport: Optional custom transport (tests pass ``httpx.MockTransport``)
        """
        self.base_url = base_url
        self.headers = dict(headers or {})
        self.timeout = timeout
        self.max_connections = max_connections

        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._limits = httpx.Limits(
            max_connections=max_connections,
            max_keepalive_connections=max_keepalive_connections,
            keepalive_expiry=keepalive_expiry,
        )
        self._lock = asyncio.Lock()
        self.metrics = SessionMetrics()

        logger.debug(
            "HTTP session manager initialized",
            base_url=base_url,
            max_connections=max_connections,
        )

    @property
    def is_open(self) -> bool:
        return self._client is not None

    async def initialize(self) -> None:
        """Create the HTTP client if it does not exist yet."""
        async with self._lock:
            if self._client is not None:
                return

            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=self.headers,
                limits=self._limits,
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            )

            self.metrics.clients_created += 1
            logger.debug("HTTP client created", base_url=self.base_url)

    @asynccontextmanager
    async def session(self):
        """Get the HTTP client for one request, tracking metrics around it."""
        if self._client is None:
            await self.initialize()

        start_time = time.perf_counter()
        self.metrics.record_request_started()

        try:
            yield self._client

        except httpx.TransportError as e:
            self.metrics.record_request_error()
            logger.warning("HTTP transport error", error=str(e))
            raise
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000
            self.metrics.record_request_finished(duration_ms)

    def health(self) -> Dict[str, Any]:
        """Report session state without touching the network."""
        return {
            "status": "open" if self.is_open else "idle",
            **self.metrics.to_dict(),
        }

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.debug("HTTP client closed")
