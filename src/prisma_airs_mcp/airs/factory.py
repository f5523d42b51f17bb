"""
AIRS 클라이언트 팩토리

검증된 설정으로 EnhancedAirsClient 를 하나만 만들어 재사용하는 컴포지션 루트입니다.
전역 변수 대신 명시적인 팩토리 인스턴스가 클라이언트를 소유하므로 테스트는
독립적인 팩토리를 직접 만들어 사용할 수 있습니다.

주요 기능:
    - 설정 검증 후 클라이언트 생성 (실패 시 아무것도 만들지 않음)
    - 기능 플래그에 따른 캐시/속도 제한기 선택 구성
    - 생성된 클라이언트 메모이제이션
    - 재설정 시 캐시 비우기, 속도 제한 초기화, HTTP 세션 종료

디자인 패턴:
    Factory Pattern - 클라이언트 구성 로직을 한 곳에 캡슐화
    Singleton Pattern - 기본 팩토리 인스턴스는 get_default() 로 공유
"""

from typing import Callable, Optional

import httpx
import structlog

from ..config import ServerConfig
from ..exceptions import ConfigurationError
from .cache import ResponseCache
from .client import AirsClient
from .enhanced import EnhancedAirsClient
from .rate_limiter import RateLimiter

logger = structlog.get_logger(__name__)


class AirsClientFactory:
    """
    EnhancedAirsClient 생성 및 수명 관리

    사용 예시:
        ```python
        factory = AirsClientFactory(lambda: config)
        client = factory.get_client()
        ...
        await factory.reset_client()
        ```

    Attributes:
        _config_loader: 호출 시점의 설정을 돌려주는 함수
        _transport: 테스트용 httpx 전송 계층 (선택사항)
        _client: 메모이즈된 클라이언트
    """

    _default_instance: "AirsClientFactory | None" = None

    def __init__(
        self,
        config_loader: Callable[[], ServerConfig] = ServerConfig.from_env,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._config_loader = config_loader
        self._transport = transport
        self._client: Optional[EnhancedAirsClient] = None

    @property
    def has_client(self) -> bool:
        return self._client is not None

    def get_client(self) -> EnhancedAirsClient:
        """
        클라이언트 조회 또는 생성

        첫 호출 시 설정을 로드하고 검증한 뒤 클라이언트를 만듭니다.
        이후 호출은 같은 인스턴스를 반환합니다.

        Raises:
            ConfigurationError: 필수 설정이 없거나 잘못된 경우.
                이 경우 어떤 컴포넌트도 생성되지 않고 메모이즈되지 않습니다.
        """
        if self._client is None:
            config = self._config_loader()
            is_valid, errors = config.validate()
            if not is_valid:
                raise ConfigurationError(
                    "Invalid AIRS client configuration: " + "; ".join(errors),
                    errors=errors,
                )

            self._client = self._build(config)

            logger.info(
                "AIRS 클라이언트 인스턴스 생성",
                api_url=config.airs.api_url,
                cache_enabled=config.cache.enabled,
                rate_limiter_enabled=config.rate_limit.enabled,
            )

        return self._client

    async def reset_client(self) -> None:
        """
        클라이언트 폐기

        캐시를 비우고 속도 제한을 초기화하고 HTTP 세션을 닫은 뒤 참조를 버립니다.
        다음 get_client() 호출은 그 시점의 설정으로 새로 생성합니다.
        인스턴스가 없으면 아무 일도 하지 않습니다.
        """
        client, self._client = self._client, None
        if client is None:
            return

        client.clear_cache()
        client.reset_rate_limits()
        await client.aclose()

        logger.info("AIRS 클라이언트 인스턴스 재설정")

    def _build(self, config: ServerConfig) -> EnhancedAirsClient:
        airs = config.airs
        base_client = AirsClient(
            api_url=airs.api_url,
            api_key=airs.api_key,
            timeout=airs.timeout,
            max_retries=airs.max_retries,
            retry_delay=airs.retry_delay,
            transport=self._transport,
        )

        cache = None
        if config.cache.enabled:
            cache = ResponseCache(
                ttl_seconds=config.cache.ttl_seconds,
                max_size=config.cache.max_size,
            )

        rate_limiter = None
        if config.rate_limit.enabled:
            rate_limiter = RateLimiter(
                max_requests=config.rate_limit.max_requests,
                window_ms=config.rate_limit.window_ms,
            )

        return EnhancedAirsClient(base_client, cache=cache, rate_limiter=rate_limiter)

    @classmethod
    def get_default(cls) -> "AirsClientFactory":
        """환경 변수 설정을 사용하는 공유 팩토리 인스턴스"""
        if cls._default_instance is None:
            cls._default_instance = cls()
        return cls._default_instance


def get_airs_client() -> EnhancedAirsClient:
    """기본 팩토리의 클라이언트"""
    return AirsClientFactory.get_default().get_client()


async def reset_airs_client() -> None:
    """기본 팩토리의 클라이언트 재설정"""
    await AirsClientFactory.get_default().reset_client()
