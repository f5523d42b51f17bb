"""
Prisma AIRS REST API 클라이언트

AIRS 스캔 API 호출을 타입이 있는 비동기 메서드로 감싸는 기본 클라이언트입니다.
캐시나 속도 제한 없이 HTTP 요청, JSON 직렬화, 재시도만 담당합니다.

주요 기능:
    - 동기/비동기 스캔 요청
    - 스캔 결과 및 위협 리포트 배치 조회
    - 네트워크 오류와 429 응답에 대한 지수 백오프 재시도
    - 서버가 제시한 retry_after 준수
    - 실패 시 타입이 있는 예외 (ApiError, ValidationError)

엔드포인트:
    POST /v1/scan/sync/request
    POST /v1/scan/async/request
    GET  /v1/scan/results?scan_ids=...
    GET  /v1/scan/reports?report_ids=...
"""

import asyncio
from typing import Any, Optional, Sequence

import httpx
import structlog
from pydantic import TypeAdapter
from pydantic import ValidationError as ModelValidationError

from ..exceptions import ApiError, ValidationError
from .session import HTTPSessionManager
from .types import (
    API_VERSION,
    AUTH_HEADER,
    CONTENT_TYPE,
    MAX_REPORT_IDS,
    MAX_SCAN_IDS,
    AsyncScanObject,
    AsyncScanResponse,
    RequestOptions,
    ScanIdResult,
    ScanRequest,
    ScanResponse,
    ThreatScanReport,
)

logger = structlog.get_logger(__name__)

_SCAN_RESULTS = TypeAdapter(list[ScanIdResult])
_THREAT_REPORTS = TypeAdapter(list[ThreatScanReport])

_RETRY_AFTER_UNITS = {
    "second": 1,
    "seconds": 1,
    "minute": 60,
    "minutes": 60,
}


class AirsClient:
    """
    AIRS API 기본 클라이언트

    모든 요청은 ``x-pan-token`` 헤더로 인증되며, 재시도 정책은 다음과 같습니다:
        - 네트워크/타임아웃 오류(``httpx.TransportError``)와 HTTP 429 는
          최대 ``max_retries`` 번 재시도
        - 대기 시간은 429 응답의 ``error.retry_after`` 가 있으면 그 값,
          없으면 ``retry_delay * 2 ** attempt``
        - 그 외 non-2xx 응답은 재시도 없이 즉시 ``ApiError``

    사용 예시:
        ```python
        async with AirsClient(api_url, api_key) as client:
            result = await client.scan_sync(request)
        ```

    Attributes:
        base_url (str): 버전이 포함된 API 기본 URL
        timeout (float): 요청별 기본 타임아웃 (초)
        max_retries (int): 최대 재시도 횟수
        retry_delay (float): 백오프 기본 지연 (초)
    """

    def __init__(
        self,
        api_url: str,
        api_key: str,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        클라이언트 초기화

        Args:
            api_url: AIRS 서비스 URL (버전 경로 제외)
            api_key: AIRS API 키
            timeout: 요청 타임아웃 (초)
            max_retries: 재시도 가능한 실패에 대한 최대 재시도 횟수
            retry_delay: 지수 백오프의 기본 지연 (초)
            transport: 테스트용 httpx 전송 계층 (선택사항)
        """
        self.base_url = f"{api_url.rstrip('/')}/{API_VERSION}"
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay

        self._session_manager = HTTPSessionManager(
            base_url=self.base_url,
            headers={
                AUTH_HEADER: api_key,
                "Content-Type": CONTENT_TYPE,
                "Accept": CONTENT_TYPE,
            },
            timeout=timeout,
            transport=transport,
        )

        logger.info(
            "AIRS 클라이언트 초기화",
            base_url=self.base_url,
            timeout=timeout,
            max_retries=max_retries,
        )

    async def __aenter__(self) -> "AirsClient":
        await self._session_manager.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """HTTP 세션 종료"""
        await self._session_manager.close()

    def session_health(self) -> dict[str, Any]:
        """HTTP 세션 상태와 요청 메트릭"""
        return self._session_manager.health()

    async def scan_sync(
        self, request: ScanRequest, options: Optional[RequestOptions] = None
    ) -> ScanResponse:
        """
        동기 스캔 요청

        Args:
            request: 스캔 요청
            options: 호출별 헤더/타임아웃

        Returns:
            ScanResponse: 판정 결과 (category, action, 탐지 플래그)

        Raises:
            ValidationError: 모든 컨텐츠 항목이 비어있는 경우
            ApiError: 재시도 소진 후의 API 실패
        """
        _ensure_content(request)
        data = await self._request(
            "POST",
            "/scan/sync/request",
            json_body=request.model_dump(mode="json", exclude_none=True),
            options=options,
        )
        return self._parse(ScanResponse.model_validate, data, "/scan/sync/request")

    async def scan_async(
        self,
        requests: Sequence[AsyncScanObject],
        options: Optional[RequestOptions] = None,
    ) -> AsyncScanResponse:
        """
        비동기 배치 스캔 제출

        결과는 반환된 scan_id 로 ``get_scan_results`` 를 통해 조회합니다.
        """
        if not requests:
            raise ValidationError("No scan requests provided", field="requests")
        for item in requests:
            _ensure_content(item.scan_req)

        data = await self._request(
            "POST",
            "/scan/async/request",
            json_body=[item.model_dump(mode="json", exclude_none=True) for item in requests],
            options=options,
        )
        return self._parse(AsyncScanResponse.model_validate, data, "/scan/async/request")

    async def get_scan_results(
        self, scan_ids: Sequence[str], options: Optional[RequestOptions] = None
    ) -> list[ScanIdResult]:
        """
        스캔 ID 로 결과 조회

        Raises:
            ValidationError: ID 가 없거나 MAX_SCAN_IDS 를 초과한 경우
        """
        _ensure_batch(scan_ids, MAX_SCAN_IDS, "scan_ids", "scan IDs")
        data = await self._request(
            "GET",
            "/scan/results",
            params={"scan_ids": ",".join(scan_ids)},
            options=options,
        )
        return self._parse(_SCAN_RESULTS.validate_python, data, "/scan/results")

    async def get_threat_scan_reports(
        self, report_ids: Sequence[str], options: Optional[RequestOptions] = None
    ) -> list[ThreatScanReport]:
        """
        리포트 ID 로 위협 리포트 조회

        Raises:
            ValidationError: ID 가 없거나 MAX_REPORT_IDS 를 초과한 경우
        """
        _ensure_batch(report_ids, MAX_REPORT_IDS, "report_ids", "report IDs")
        data = await self._request(
            "GET",
            "/scan/reports",
            params={"report_ids": ",".join(report_ids)},
            options=options,
        )
        return self._parse(_THREAT_REPORTS.validate_python, data, "/scan/reports")

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json_body: Any = None,
        params: Optional[dict[str, str]] = None,
        options: Optional[RequestOptions] = None,
    ) -> Any:
        """
        재시도 로직이 포함된 HTTP 요청

        호출자의 태스크 취소(``asyncio.CancelledError``)는 재시도하지 않고
        그대로 전파됩니다.
        """
        options = options or RequestOptions()
        timeout = options.timeout if options.timeout is not None else self.timeout
        url = f"{self.base_url}{path}"
        attempt = 0

        while True:
            logger.debug("AIRS API 요청", method=method, url=url, attempt=attempt)

            try:
                async with self._session_manager.session() as session:
                    response = await session.request(
                        method,
                        path.lstrip("/"),
                        json=json_body,
                        params=params,
                        headers=options.headers or None,
                        timeout=timeout,
                    )
            except httpx.TransportError as e:
                if attempt < self.max_retries:
                    delay = self._backoff_delay(attempt)
                    logger.warning(
                        "요청 실패, 재시도 예정",
                        method=method,
                        url=url,
                        attempt=attempt,
                        delay=delay,
                        error=str(e) or type(e).__name__,
                    )
                    await asyncio.sleep(delay)
                    attempt += 1
                    continue

                logger.error(
                    "재시도 소진 후 요청 실패",
                    method=method,
                    url=url,
                    attempts=attempt + 1,
                    error=str(e) or type(e).__name__,
                )
                raise ApiError(str(e) or type(e).__name__, status_code=0) from e

            if response.is_success:
                logger.debug("AIRS API 요청 성공", url=url, status=response.status_code)
                return self._decode_json(response, url)

            body = _decode_error_body(response)
            retry_after = self._retry_after_seconds(body)

            if response.status_code == 429 and attempt < self.max_retries:
                delay = (
                    retry_after if retry_after is not None else self._backoff_delay(attempt)
                )
                logger.warning(
                    "속도 제한 응답, 재시도 예정",
                    method=method,
                    url=url,
                    attempt=attempt,
                    delay=delay,
                )
                await asyncio.sleep(delay)
                attempt += 1
                continue

            message = _error_message(body, response.status_code)
            logger.error(
                "AIRS API 에러",
                method=method,
                url=url,
                status=response.status_code,
                error=message,
            )
            raise ApiError(
                message, response.status_code, body=body, retry_after=retry_after
            )

    def _backoff_delay(self, attempt: int) -> float:
        return self.retry_delay * (2**attempt)

    def _retry_after_seconds(self, body: Optional[dict[str, Any]]) -> Optional[float]:
        """
        에러 본문의 ``retry_after {interval, unit}`` 을 초 단위로 변환

        알 수 없는 단위는 기본 재시도 지연으로 처리합니다.
        """
        if not body:
            return None
        error = body.get("error")
        if not isinstance(error, dict):
            return None
        retry_after = error.get("retry_after")
        if not isinstance(retry_after, dict) or "interval" not in retry_after:
            return None

        try:
            interval = float(retry_after["interval"])
        except (TypeError, ValueError):
            return None

        unit = str(retry_after.get("unit", "")).lower()
        multiplier = _RETRY_AFTER_UNITS.get(unit)
        if multiplier is None:
            return self.retry_delay
        return interval * multiplier

    @staticmethod
    def _decode_json(response: httpx.Response, url: str) -> Any:
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            logger.error(
                "API 응답 파싱 실패",
                url=url,
                status=response.status_code,
                response_text=response.text[:200],
            )
            raise ApiError(
                "Invalid JSON response from API", response.status_code
            ) from e

    @staticmethod
    def _parse(validator, data: Any, path: str):
        try:
            return validator(data)
        except ModelValidationError as e:
            logger.error("예상치 못한 API 응답 형식", path=path, errors=e.error_count())
            raise ApiError(
                f"Unexpected response format from {path}",
                200,
                body=data if isinstance(data, dict) else None,
            ) from e


def _ensure_content(request: ScanRequest) -> None:
    if all(item.is_empty() for item in request.contents):
        raise ValidationError(
            "At least one of prompt, response, or context is required",
            field="contents",
        )


def _ensure_batch(ids: Sequence[str], limit: int, field: str, label: str) -> None:
    if len(ids) == 0:
        raise ValidationError(f"No {label} provided", field=field)
    if len(ids) > limit:
        raise ValidationError(
            f"Too many {label}: maximum {limit} allowed", field=field, value=len(ids)
        )


def _decode_error_body(response: httpx.Response) -> Optional[dict[str, Any]]:
    """에러 응답 본문 파싱. JSON 이 아니면 None."""
    if not response.content:
        return None
    try:
        data = response.json()
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _error_message(body: Optional[dict[str, Any]], status_code: int) -> str:
    if body:
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return f"HTTP {status_code} error"
