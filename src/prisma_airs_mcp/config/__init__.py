"""
설정 관리 모듈

AIRS 브리지 서버의 모든 설정을 중앙에서 관리합니다.

주요 구성요소:
    - ServerConfig: 메인 서버 설정 클래스
    - AirsConfig, CacheConfig, RateLimitConfig, LoggingConfig: 컴포넌트 설정
    - validate_config: 설정 검증기
"""

from .settings import (
    AirsConfig,
    CacheConfig,
    LoggingConfig,
    RateLimitConfig,
    ServerConfig,
)
from .validators import validate_config

__all__ = [
    "AirsConfig",
    "CacheConfig",
    "LoggingConfig",
    "RateLimitConfig",
    "ServerConfig",
    "validate_config",
]
