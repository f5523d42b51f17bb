"""
서버 설정 클래스

AIRS 브리지 서버의 모든 설정을 관리합니다.
각 컴포넌트 설정은 dataclass로 정의되며 ``from_env()`` 로 환경 변수에서 로드됩니다.

환경 변수:
    AIRS_API_URL, AIRS_API_KEY (필수), AIRS_TIMEOUT, AIRS_RETRY_ATTEMPTS,
    AIRS_RETRY_DELAY, AIRS_DEFAULT_PROFILE_ID, AIRS_DEFAULT_PROFILE_NAME,
    CACHE_ENABLED, CACHE_TTL_SECONDS, CACHE_MAX_SIZE,
    RATE_LIMIT_ENABLED, RATE_LIMIT_MAX_REQUESTS, RATE_LIMIT_WINDOW_MS,
    LOG_LEVEL, LOG_JSON, MCP_SERVER_NAME, MCP_TRANSPORT, MCP_SERVER_HOST,
    MCP_SERVER_PORT, ENVIRONMENT
"""

import os
from dataclasses import dataclass, field, asdict
from typing import Optional, Any
import structlog

logger = structlog.get_logger(__name__)

DEFAULT_API_URL = "https://service.api.aisecurity.paloaltonetworks.com"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() not in ("false", "0", "no", "off")


@dataclass
class AirsConfig:
    """
    AIRS API 연결 설정

    timeout 과 retry_delay 는 초 단위입니다.
    """

    api_url: str = DEFAULT_API_URL
    api_key: Optional[str] = None
    timeout: float = 30.0
    max_retries: int = 3
    retry_delay: float = 1.0
    default_profile_id: Optional[str] = None
    default_profile_name: Optional[str] = None

    @classmethod
    def from_env(cls) -> "AirsConfig":
        """환경 변수에서 AIRS 설정 로드"""
        return cls(
            api_url=os.getenv("AIRS_API_URL", DEFAULT_API_URL),
            api_key=os.getenv("AIRS_API_KEY") or None,
            timeout=float(os.getenv("AIRS_TIMEOUT", "30")),
            max_retries=int(os.getenv("AIRS_RETRY_ATTEMPTS", "3")),
            retry_delay=float(os.getenv("AIRS_RETRY_DELAY", "1.0")),
            default_profile_id=os.getenv("AIRS_DEFAULT_PROFILE_ID") or None,
            default_profile_name=os.getenv("AIRS_DEFAULT_PROFILE_NAME") or None,
        )


@dataclass
class CacheConfig:
    """
    응답 캐시 설정

    max_size 는 엔트리 개수 상한입니다.
    """

    enabled: bool = True
    ttl_seconds: int = 300  # 5분
    max_size: int = 1000

    @classmethod
    def from_env(cls) -> "CacheConfig":
        """환경 변수에서 캐시 설정 로드"""
        return cls(
            enabled=_env_bool("CACHE_ENABLED", True),
            ttl_seconds=int(os.getenv("CACHE_TTL_SECONDS", "300")),
            max_size=int(os.getenv("CACHE_MAX_SIZE", "1000")),
        )


@dataclass
class RateLimitConfig:
    """
    속도 제한 설정

    window_ms 동안 max_requests 개의 토큰을 작업 클래스별로 허용합니다.
    """

    enabled: bool = True
    max_requests: int = 100
    window_ms: int = 60000

    @property
    def window_seconds(self) -> float:
        return self.window_ms / 1000

    @classmethod
    def from_env(cls) -> "RateLimitConfig":
        """환경 변수에서 속도 제한 설정 로드"""
        return cls(
            enabled=_env_bool("RATE_LIMIT_ENABLED", True),
            max_requests=int(os.getenv("RATE_LIMIT_MAX_REQUESTS", "100")),
            window_ms=int(os.getenv("RATE_LIMIT_WINDOW_MS", "60000")),
        )


@dataclass
class LoggingConfig:
    """로깅 설정"""

    log_level: str = "INFO"
    json_logs: bool = False
    sensitive_fields: list[str] = field(
        default_factory=lambda: ["api_key", "x-pan-token", "authorization", "token"]
    )

    @classmethod
    def from_env(cls) -> "LoggingConfig":
        """환경 변수에서 로깅 설정 로드"""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            json_logs=_env_bool("LOG_JSON", False),
        )


@dataclass
class ServerConfig:
    """
    통합 서버 설정

    사용 예시:
        config = ServerConfig.from_env()
        ok, errors = config.validate()
    """

    name: str = "prisma-airs-mcp"
    version: str = "1.0.0"
    transport: str = "stdio"  # stdio or http
    host: str = "0.0.0.0"
    port: int = 3000
    environment: str = "development"

    airs: AirsConfig = field(default_factory=AirsConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    rate_limit: RateLimitConfig = field(default_factory=RateLimitConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        환경 변수에서 설정 로드

        값의 유효성은 여기서 검사하지 않습니다. ``validate()`` 또는
        클라이언트 팩토리가 검사합니다.
        """
        config = cls(
            name=os.getenv("MCP_SERVER_NAME", "prisma-airs-mcp"),
            version=os.getenv("MCP_SERVER_VERSION", "1.0.0"),
            transport=os.getenv("MCP_TRANSPORT", "stdio"),
            host=os.getenv("MCP_SERVER_HOST", "0.0.0.0"),
            port=int(os.getenv("MCP_SERVER_PORT", "3000")),
            environment=os.getenv("ENVIRONMENT", "development"),
            airs=AirsConfig.from_env(),
            cache=CacheConfig.from_env(),
            rate_limit=RateLimitConfig.from_env(),
            logging=LoggingConfig.from_env(),
        )

        logger.debug(
            "환경 변수 기반 설정 로드 완료",
            transport=config.transport,
            cache_enabled=config.cache.enabled,
            rate_limit_enabled=config.rate_limit.enabled,
        )

        return config

    def validate(self) -> tuple[bool, list[str]]:
        """
        설정 유효성 검증

        Returns:
            (유효 여부, 오류 메시지 목록)
        """
        from .validators import validate_config

        return validate_config(self)

    def to_dict(self) -> dict[str, Any]:
        """설정을 딕셔너리로 변환 (API 키는 마스킹)"""
        data = asdict(self)
        if data["airs"].get("api_key"):
            data["airs"]["api_key"] = "***"
        return data
