"""
설정 검증 모듈

서버 설정의 유효성을 검증합니다. 필수 자격 증명이 없으면
기본값으로 조용히 넘어가지 않고 반드시 오류를 보고합니다.
"""

from typing import List, Tuple
from urllib.parse import urlparse
import structlog

from .settings import ServerConfig

logger = structlog.get_logger(__name__)


def validate_config(config: ServerConfig) -> Tuple[bool, List[str]]:
    """
    전체 설정 검증

    Args:
        config: 검증할 서버 설정

    Returns:
        (유효 여부, 오류 메시지 목록)
    """
    errors: List[str] = []

    errors.extend(_validate_basic_settings(config))
    errors.extend(_validate_airs_settings(config))
    errors.extend(_validate_cache_settings(config))
    errors.extend(_validate_rate_limit_settings(config))

    is_valid = len(errors) == 0

    if not is_valid:
        logger.error(
            "설정 검증 실패",
            error_count=len(errors),
            errors=errors[:5],  # 처음 5개만 로깅
        )
    else:
        logger.debug("설정 검증 성공")

    return is_valid, errors


def _validate_basic_settings(config: ServerConfig) -> List[str]:
    """기본 서버 설정 검증"""
    errors = []

    if not config.name or not config.name.strip():
        errors.append("서버 이름이 비어있음")

    if config.transport not in ["stdio", "http"]:
        errors.append(f"지원되지 않는 전송 모드: {config.transport}")

    if config.transport == "http" and not (1 <= config.port <= 65535):
        errors.append(f"잘못된 포트 번호: {config.port}")

    return errors


def _validate_airs_settings(config: ServerConfig) -> List[str]:
    """AIRS API 설정 검증"""
    errors = []
    airs = config.airs

    if not airs.api_key:
        errors.append("AIRS_API_KEY가 설정되지 않음")

    parsed = urlparse(airs.api_url or "")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        errors.append(f"잘못된 AIRS API URL: {airs.api_url}")

    if airs.timeout < 1:
        errors.append(f"타임아웃은 1초 이상이어야 함: {airs.timeout}")

    if airs.max_retries < 0:
        errors.append(f"재시도 횟수는 0 이상이어야 함: {airs.max_retries}")

    if airs.retry_delay < 0.1:
        errors.append(f"재시도 지연은 0.1초 이상이어야 함: {airs.retry_delay}")

    return errors


def _validate_cache_settings(config: ServerConfig) -> List[str]:
    """캐시 설정 검증"""
    errors = []
    cache = config.cache

    if cache.ttl_seconds < 0:
        errors.append(f"캐시 TTL은 0 이상이어야 함: {cache.ttl_seconds}")

    if cache.max_size < 0:
        errors.append(f"캐시 최대 크기는 0 이상이어야 함: {cache.max_size}")

    return errors


def _validate_rate_limit_settings(config: ServerConfig) -> List[str]:
    """속도 제한 설정 검증"""
    errors = []
    rate_limit = config.rate_limit

    if rate_limit.max_requests < 1:
        errors.append(
            f"속도 제한 요청 수는 1 이상이어야 함: {rate_limit.max_requests}"
        )

    if rate_limit.window_ms < 1000:
        errors.append(
            f"속도 제한 윈도우는 1000ms 이상이어야 함: {rate_limit.window_ms}"
        )

    return errors
