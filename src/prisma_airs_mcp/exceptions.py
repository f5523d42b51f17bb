"""
사용자 정의 예외 및 에러 처리 모듈

AIRS 브리지 서버에서 발생하는 모든 에러를 정의합니다.
JSON-RPC 2.0 표준 에러 코드와 함께 사용자 정의 에러 코드를 제공하며,
호출자는 예외 타입이나 ``code`` 값으로 분기할 수 있습니다.

주요 구성요소:
    - ErrorCode: 표준 및 사용자 정의 에러 코드 열거형
    - AirsError: 모든 예외의 기본 클래스
    - ValidationError: 잘못된 호출 입력 (재시도하지 않음)
    - ApiError: AIRS API의 non-2xx 응답 (재시도 소진 후)
    - ConfigurationError: 필수 설정 누락
    - CacheError / RateLimiterError: 내부 bookkeeping 실패
    - ErrorHandler: 중앙 집중식 에러 변환기

에러 코드 범위:
    - 표준 JSON-RPC: -32700 ~ -32603
    - 사용자 정의: -32000 ~ -32099
"""

from typing import Any, Dict, Optional
from enum import Enum
import asyncio


class ErrorCode(Enum):
    """
    에러 코드 열거형

    표준 코드는 JSON-RPC 스펙을 따르고, 사용자 정의 코드는
    -32000 ~ -32099 범위를 사용합니다.
    """

    # 표준 JSON-RPC 에러 코드
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    # 사용자 정의 에러 코드
    API_ERROR = -32001  # AIRS API 응답 에러
    RATE_LIMIT_ERROR = -32003  # 업스트림 속도 제한
    VALIDATION_ERROR = -32005  # 입력값 검증 실패
    TIMEOUT_ERROR = -32006  # 작업 시간 초과
    CONFIGURATION_ERROR = -32010  # 필수 설정 누락
    CACHE_ERROR = -32011  # 캐시 내부 오류
    RATE_LIMITER_ERROR = -32012  # 속도 제한기 내부 오류


class AirsError(Exception):
    """
    모든 AIRS 브리지 에러의 기본 예외 클래스

    Attributes:
        message (str): 에러 메시지
        code (ErrorCode): 에러 코드
        data (dict): 추가 에러 정보
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        data: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.data = data or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """
        JSON-RPC error 객체 형식으로 변환

        data 필드는 값이 있을 때만 포함됩니다.
        """
        error_dict = {"code": self.code.value, "message": self.message}
        if self.data:
            error_dict["data"] = self.data
        return error_dict


class ValidationError(AirsError):
    """
    요청 검증 실패 에러

    빈 ID 배치, 최대 배치 크기 초과, 누락된 스캔 컨텐츠 등
    호출자 입력이 잘못된 경우 발생합니다. 재시도 대상이 아닙니다.
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        data: Optional[Dict[str, Any]] = None,
    ):
        if data is None:
            data = {}
        if field:
            data["field"] = field
        if value is not None:
            # 긴 값은 100자로 잘라서 로그에 과도한 데이터 방지
            data["value"] = str(value)[:100]

        super().__init__(message=message, code=ErrorCode.VALIDATION_ERROR, data=data)
        self.field = field


class ApiError(AirsError):
    """
    AIRS API 에러

    재시도가 모두 소진된 뒤의 non-2xx 응답, 또는 네트워크/타임아웃 실패를
    나타냅니다. 네트워크 수준 실패는 ``status_code == 0`` 입니다.

    Attributes:
        status_code (int): HTTP 상태 코드 (네트워크 실패 시 0)
        body (dict | None): 파싱된 에러 응답 본문
        retry_after (float | None): 서버가 제시한 재시도 대기 시간 (초)
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        body: Optional[Dict[str, Any]] = None,
        retry_after: Optional[float] = None,
    ):
        data: Dict[str, Any] = {"status_code": status_code}
        if body:
            data["body"] = body
        if retry_after is not None:
            data["retry_after"] = retry_after

        code = (
            ErrorCode.RATE_LIMIT_ERROR if status_code == 429 else ErrorCode.API_ERROR
        )
        super().__init__(message=message, code=code, data=data)
        self.status_code = status_code
        self.body = body
        self.retry_after = retry_after

    @property
    def is_network_error(self) -> bool:
        """HTTP 응답 없이 실패했는지 여부"""
        return self.status_code == 0


class ConfigurationError(AirsError):
    """
    설정 에러

    클라이언트 생성 시점에 필수 설정(API 키 등)이 없거나 잘못된 경우
    발생합니다. 팩토리는 이 에러를 던지기 전에 어떤 컴포넌트도 만들지 않습니다.
    """

    def __init__(self, message: str, errors: Optional[list[str]] = None):
        self.errors = list(errors or [])
        data = {"errors": self.errors} if self.errors else None
        super().__init__(message=message, code=ErrorCode.CONFIGURATION_ERROR, data=data)


class CacheError(AirsError):
    """캐시 키 생성이나 직렬화 등 캐시 bookkeeping 실패"""

    def __init__(self, message: str, data: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code=ErrorCode.CACHE_ERROR, data=data)


class RateLimiterError(AirsError):
    """토큰 버킷 bookkeeping 실패"""

    def __init__(self, message: str, data: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, code=ErrorCode.RATE_LIMITER_ERROR, data=data)


class ErrorHandler:
    """
    중앙 집중식 에러 처리기

    모든 예외를 JSON-RPC 형식의 에러 응답으로 변환하고
    로깅용 에러 컨텍스트를 생성합니다.
    """

    @staticmethod
    def handle_error(
        error: Exception, request_id: Optional[str] = None
    ) -> Dict[str, Any]:
        """
        예외를 JSON-RPC 에러 응답으로 변환

        Args:
            error: 처리할 예외
            request_id: 요청 추적을 위한 ID (선택사항)

        Returns:
            Dict[str, Any]: ``{"jsonrpc": "2.0", "error": {...}, "id": ...}``
        """
        if isinstance(error, AirsError):
            mapped = error
        elif isinstance(error, asyncio.TimeoutError):
            mapped = AirsError("Operation timed out", ErrorCode.TIMEOUT_ERROR)
        elif isinstance(error, ValueError):
            mapped = ValidationError(str(error))
        else:
            # 예상치 못한 예외는 내부 에러로 처리, 상세 정보는 data 필드에만 포함
            mapped = AirsError(
                message="Internal server error",
                code=ErrorCode.INTERNAL_ERROR,
                data={
                    "exception_type": type(error).__name__,
                    "exception_message": str(error),
                },
            )

        return {"jsonrpc": "2.0", "error": mapped.to_dict(), "id": request_id}

    @staticmethod
    def create_error_context(
        error: Exception,
        operation: Optional[str] = None,
        tool_name: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        로깅을 위한 에러 컨텍스트 생성

        Args:
            error: 발생한 예외
            operation: 실패한 클라이언트 작업 (예: "scan_sync")
            tool_name: 에러가 발생한 MCP 도구 이름

        Returns:
            Dict[str, Any]: 구조화된 로그에 바로 넘길 수 있는 컨텍스트
        """
        context: Dict[str, Any] = {
            "error_type": type(error).__name__,
            "error_message": str(error),
        }

        if operation:
            context["operation"] = operation
        if tool_name:
            context["tool_name"] = tool_name

        if isinstance(error, AirsError):
            context["error_code"] = error.code.value
            context["error_data"] = error.data
        if isinstance(error, ApiError):
            context["status_code"] = error.status_code

        return context
