"""
구조화된 로깅 설정

structlog 을 stdlib logging 위에 구성합니다. 개발 환경에서는 ConsoleRenderer,
운영 환경(LOG_JSON=true)에서는 JSONRenderer 를 사용하며 API 키 같은 민감한
필드는 "[REDACTED]" 로 대체됩니다.

사용 예시:
    configure_logging(LoggingConfig(log_level="DEBUG"))
    logger = structlog.get_logger(__name__)
    logger.info("스캔 완료", scan_id=scan_id)
"""

import logging
import sys
from typing import Any, Iterable

import structlog

from ..config import LoggingConfig

REDACTED = "[REDACTED]"


class SensitiveFieldMasker:
    """
    민감 필드 마스킹 프로세서

    키 이름에 민감 필드 이름이 포함되면 값을 REDACTED 로 바꿉니다.
    중첩된 딕셔너리와 리스트도 처리합니다.
    """

    def __init__(self, sensitive_fields: Iterable[str]):
        self.sensitive_fields = [field.lower() for field in sensitive_fields]

    def __call__(self, logger: Any, method_name: str, event_dict: dict) -> dict:
        return {key: self._sanitize(key, value) for key, value in event_dict.items()}

    def _is_sensitive(self, key: str) -> bool:
        key = key.lower()
        return any(field in key for field in self.sensitive_fields)

    def _sanitize(self, key: Any, value: Any) -> Any:
        if isinstance(key, str) and self._is_sensitive(key):
            return REDACTED
        if isinstance(value, dict):
            return {k: self._sanitize(k, v) for k, v in value.items()}
        if isinstance(value, list):
            return [self._sanitize(None, item) for item in value]
        return value


def configure_logging(config: LoggingConfig) -> None:
    """
    stdlib logging 과 structlog 구성

    Args:
        config: 로그 레벨, JSON 출력 여부, 민감 필드 목록
    """
    level = getattr(logging, config.log_level.upper(), logging.INFO)

    # MCP stdio 전송은 stdout 을 프로토콜 채널로 사용하므로 로그는 stderr 로 보냄
    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level, force=True)

    renderer = (
        structlog.processors.JSONRenderer()
        if config.json_logs
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            SensitiveFieldMasker(config.sensitive_fields),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
