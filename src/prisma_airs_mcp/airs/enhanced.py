"""
캐시와 속도 제한이 통합된 AIRS 클라이언트

기본 클라이언트(AirsClient)를 감싸 캐시(ResponseCache)와 속도 제한기(RateLimiter)를
투명하게 적용합니다. 호출자는 기본 클라이언트와 같은 형태의 인터페이스를 사용하며
캐시/속도 제한 상태와 무관하게 같은 결과와 같은 에러를 받습니다.

캐시 가능한 호출의 처리 순서:
    1. RateGate: 작업 클래스의 토큰을 얻을 때까지 대기
    2. CacheCheck: 결정적 캐시 키로 조회, 적중 시 즉시 반환
    3. Upstream: 미스 시 기본 클라이언트 호출
    4. CacheStore: 완료된 결과만 저장
    5. Return: 결과 또는 에러를 그대로 전달 (에러는 캐시하지 않음)

작업 클래스:
    - scan: 동기/비동기 스캔
    - results: 스캔 결과 조회
    - reports: 위협 리포트 조회

캐시 값:
    응답 모델은 frozen 이고 목록은 튜플로 저장합니다. 적중 시에는 새 리스트를
    돌려주므로 호출자가 받은 리스트를 바꿔도 캐시 엔트리는 그대로입니다.

동시성 주의:
    같은 키에 대한 동시 미스는 둘 다 업스트림으로 갈 수 있으며 마지막에 저장한
    결과가 남습니다. 요청 중복 제거(single-flight)는 하지 않습니다.
"""

from typing import Any, Optional, Sequence

import structlog

from ..exceptions import CacheError, ErrorHandler, RateLimiterError
from .cache import ResponseCache
from .client import AirsClient
from .rate_limiter import RateLimiter
from .types import (
    AsyncScanObject,
    AsyncScanResponse,
    RequestOptions,
    ScanIdResult,
    ScanRequest,
    ScanResponse,
    ThreatScanReport,
)

logger = structlog.get_logger(__name__)

OP_SCAN = "scan"
OP_RESULTS = "results"
OP_REPORTS = "reports"
OPERATION_CLASSES = (OP_SCAN, OP_RESULTS, OP_REPORTS)

SCAN_RESULTS_KIND = "scan-results"
THREAT_REPORTS_KIND = "threat-reports"


class EnhancedAirsClient:
    """
    캐시와 속도 제한이 적용된 AIRS 클라이언트

    캐시나 속도 제한기는 설정에 따라 없을 수 있습니다(None). 캐시/속도 제한기의
    내부 오류(CacheError, RateLimiterError)는 로깅 후 해당 호출에서만 우회하며
    업스트림 호출은 계속 진행됩니다.

    사용 예시:
        ```python
        client = EnhancedAirsClient(
            AirsClient(api_url, api_key),
            cache=ResponseCache(ttl_seconds=300, max_size=1000),
            rate_limiter=RateLimiter(max_requests=100, window_ms=60000),
        )
        async with client:
            result = await client.scan_sync(request)
        ```
    """

    def __init__(
        self,
        client: AirsClient,
        cache: Optional[ResponseCache] = None,
        rate_limiter: Optional[RateLimiter] = None,
    ):
        self.client = client
        self.cache = cache
        self.rate_limiter = rate_limiter

        logger.info(
            "향상된 AIRS 클라이언트 초기화",
            cache_enabled=cache is not None,
            rate_limiter_enabled=rate_limiter is not None,
        )

    async def __aenter__(self) -> "EnhancedAirsClient":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    def start(self) -> None:
        """백그라운드 버킷 정리 시작 (실행 중인 이벤트 루프 필요)"""
        if self.rate_limiter is not None:
            self.rate_limiter.start_cleanup()

    async def aclose(self) -> None:
        """버킷 정리를 멈추고 HTTP 세션을 닫습니다."""
        if self.rate_limiter is not None:
            await self.rate_limiter.stop_cleanup()
        await self.client.close()

    async def scan_sync(
        self,
        request: ScanRequest,
        options: Optional[RequestOptions] = None,
        *,
        use_cache: bool = True,
    ) -> ScanResponse:
        """
        동기 스캔 (캐시 + 속도 제한)

        Args:
            request: 스캔 요청
            options: 호출별 헤더/타임아웃
            use_cache: False 면 캐시 조회를 건너뛰고 새 결과로 엔트리를 갱신
        """
        await self._acquire(OP_SCAN)

        cache_key = self._scan_key(request)
        if use_cache:
            cached = self._cache_get(cache_key)
            if cached is not None:
                logger.debug("캐시된 스캔 결과 반환", cache_key=cache_key)
                return cached

        response = await self.client.scan_sync(request, options)
        self._cache_set(cache_key, response)
        return response

    async def scan_async(
        self,
        requests: Sequence[AsyncScanObject],
        options: Optional[RequestOptions] = None,
    ) -> AsyncScanResponse:
        """비동기 스캔 제출. 결과가 스캔 핸들이므로 캐시하지 않습니다."""
        await self._acquire(OP_SCAN)
        return await self.client.scan_async(requests, options)

    async def get_scan_results(
        self,
        scan_ids: Sequence[str],
        options: Optional[RequestOptions] = None,
        *,
        use_cache: bool = True,
    ) -> list[ScanIdResult]:
        """
        스캔 결과 조회 (캐시 + 속도 제한)

        모든 결과가 ``complete`` 상태일 때만 캐시에 저장합니다. 진행 중인
        결과를 최종 결과처럼 돌려주지 않기 위함입니다.
        """
        await self._acquire(OP_RESULTS)

        cache_key = ResponseCache.generate_result_key(SCAN_RESULTS_KIND, scan_ids)
        if use_cache:
            cached = self._cache_get(cache_key)
            if cached is not None:
                logger.debug("캐시된 스캔 결과 목록 반환", cache_key=cache_key)
                return list(cached)

        results = await self.client.get_scan_results(scan_ids, options)

        if all(result.is_complete for result in results):
            self._cache_set(cache_key, tuple(results))
        else:
            logger.debug(
                "미완료 결과는 캐시하지 않음",
                cache_key=cache_key,
                pending=sum(1 for result in results if not result.is_complete),
            )

        return results

    async def get_threat_scan_reports(
        self,
        report_ids: Sequence[str],
        options: Optional[RequestOptions] = None,
        *,
        use_cache: bool = True,
    ) -> list[ThreatScanReport]:
        """위협 리포트 조회 (캐시 + 속도 제한)"""
        await self._acquire(OP_REPORTS)

        cache_key = ResponseCache.generate_result_key(THREAT_REPORTS_KIND, report_ids)
        if use_cache:
            cached = self._cache_get(cache_key)
            if cached is not None:
                logger.debug("캐시된 위협 리포트 반환", cache_key=cache_key)
                return list(cached)

        reports = await self.client.get_threat_scan_reports(report_ids, options)
        self._cache_set(cache_key, tuple(reports))
        return reports

    # 관리 작업 (업스트림 호출 없음)

    def clear_cache(self) -> None:
        if self.cache is not None:
            self.cache.clear()

    def reset_rate_limits(self) -> None:
        if self.rate_limiter is not None:
            self.rate_limiter.clear()

    def get_cache_stats(self) -> Optional[dict[str, Any]]:
        if self.cache is None:
            return None
        return self.cache.stats().to_dict()

    def get_rate_limiter_stats(self) -> Optional[dict[str, Any]]:
        if self.rate_limiter is None:
            return None
        return self.rate_limiter.stats()

    def get_rate_limit_status(self) -> Optional[dict[str, Any]]:
        """작업 클래스별 버킷 상태"""
        if self.rate_limiter is None:
            return None
        return {
            op_class: self.rate_limiter.status(op_class).to_dict()
            for op_class in OPERATION_CLASSES
        }

    def session_health(self) -> dict[str, Any]:
        return self.client.session_health()

    # 내부 헬퍼: 캐시/속도 제한기 오류는 우회

    async def _acquire(self, op_class: str) -> None:
        if self.rate_limiter is None:
            return
        try:
            await self.rate_limiter.wait_for_limit(op_class)
        except RateLimiterError as e:
            logger.warning(
                "속도 제한기 오류, 제한 없이 진행",
                **ErrorHandler.create_error_context(e, operation=op_class),
            )

    def _scan_key(self, request: ScanRequest) -> Optional[str]:
        if self.cache is None:
            return None
        try:
            return ResponseCache.generate_scan_key("sync", request)
        except CacheError as e:
            logger.warning(
                "캐시 키 생성 실패, 캐시 없이 진행",
                **ErrorHandler.create_error_context(e, operation="scan_sync"),
            )
            return None

    def _cache_get(self, key: Optional[str]) -> Any:
        if self.cache is None or key is None:
            return None
        try:
            return self.cache.get(key)
        except CacheError as e:
            logger.warning(
                "캐시 조회 실패, 캐시 없이 진행",
                **ErrorHandler.create_error_context(e, operation="cache_get"),
            )
            return None

    def _cache_set(self, key: Optional[str], value: Any) -> None:
        if self.cache is None or key is None:
            return
        try:
            self.cache.set(key, value)
        except CacheError as e:
            logger.warning(
                "캐시 저장 실패",
                **ErrorHandler.create_error_context(e, operation="cache_set"),
            )
