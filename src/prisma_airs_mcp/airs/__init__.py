"""
Prisma AIRS 클라이언트 모듈

기본 REST 클라이언트, 응답 캐시, 속도 제한기와 이들을 조합한
향상된 클라이언트 및 팩토리를 제공합니다.
"""

from .cache import CacheStats, ResponseCache
from .client import AirsClient
from .enhanced import OPERATION_CLASSES, EnhancedAirsClient
from .factory import AirsClientFactory, get_airs_client, reset_airs_client
from .rate_limiter import RateLimiter, RateLimitStatus
from .types import (
    AiProfile,
    AsyncScanObject,
    AsyncScanResponse,
    ContentItem,
    Metadata,
    RequestOptions,
    ScanIdResult,
    ScanRequest,
    ScanResponse,
    ThreatScanReport,
)

__all__ = [
    "AiProfile",
    "AirsClient",
    "AirsClientFactory",
    "AsyncScanObject",
    "AsyncScanResponse",
    "CacheStats",
    "ContentItem",
    "EnhancedAirsClient",
    "Metadata",
    "OPERATION_CLASSES",
    "RateLimitStatus",
    "RateLimiter",
    "RequestOptions",
    "ResponseCache",
    "ScanIdResult",
    "ScanRequest",
    "ScanResponse",
    "ThreatScanReport",
    "get_airs_client",
    "reset_airs_client",
]
