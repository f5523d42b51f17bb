"""
AIRS 응답 인메모리 캐시

동일한 컨텐츠에 대한 중복 업스트림 호출을 피하기 위한 프로세스 내 캐시입니다.
캐시 키는 요청의 의미 있는 컨텐츠(프로파일, 컨텐츠 항목)에서만 결정적으로
생성되며 tr_id 나 metadata 같은 상관 ID 는 키에 포함되지 않습니다.

주요 기능:
    - SHA-256 기반 컨텐츠 주소 캐시 키
    - TTL 기반 만료 (만료된 엔트리는 조회 시 제거)
    - 엔트리 개수 상한에 따른 LRU 제거
    - 적중/미스/제거/만료 통계

동시성:
    모든 연산은 동기식이며 이벤트 루프 안에서만 호출되므로 잠금이 필요 없습니다.
"""

import hashlib
import json
import time
from collections import OrderedDict
from dataclasses import dataclass, asdict
from typing import Any, Callable, Iterable, Mapping, Optional, Union

import structlog
from pydantic import BaseModel
from pydantic_core import PydanticSerializationError, to_json

from ..exceptions import CacheError
from .types import ScanRequest

logger = structlog.get_logger(__name__)

# 직렬화 크기를 알 수 없을 때 사용하는 추정치 (바이트)
_DEFAULT_ENTRY_SIZE = 1000


@dataclass
class CacheEntry:
    value: Any
    inserted_at: float
    expires_at: float
    last_access: float
    size: int


@dataclass
class CacheStats:
    """
    캐시 통계

    size 는 저장된 값들의 JSON 인코딩 길이 합(바이트 근사치)이고
    count 는 엔트리 수입니다.
    """

    size: int
    count: int
    enabled: bool
    hits: int
    misses: int
    evictions: int
    expirations: int
    max_size: int
    ttl_seconds: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class ResponseCache:
    """
    TTL + LRU 응답 캐시

    적중/미스/제거/만료 카운터는 누적값이며 ``clear()`` 로는 초기화되지 않습니다.
    카운터를 0으로 되돌리려면 ``reset_stats()`` 를 호출합니다.

    사용 예시:
        ```python
        cache = ResponseCache(ttl_seconds=300, max_size=1000)
        key = ResponseCache.generate_scan_key("sync", request)
        if (cached := cache.get(key)) is None:
            cached = await client.scan_sync(request)
            cache.set(key, cached)
        ```

    Attributes:
        ttl_seconds (int): 기본 TTL (초)
        max_size (int): 최대 엔트리 수
        enabled (bool): 비활성화 시 get 은 항상 미스, set 은 무시
    """

    def __init__(
        self,
        ttl_seconds: int = 300,
        max_size: int = 1000,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_size = max_size
        self.enabled = enabled
        self._clock = clock

        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._current_size = 0

        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

        logger.info(
            "AIRS 캐시 초기화",
            ttl_seconds=ttl_seconds,
            max_size=max_size,
            enabled=enabled,
        )

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def keys(self) -> list[str]:
        """LRU 순서(가장 오래 전에 접근한 것부터)의 키 목록"""
        return list(self._entries.keys())

    def get(self, key: str) -> Any:
        """
        캐시 조회

        적중 시 최근 접근 순서를 갱신합니다. ``now - inserted_at >= ttl`` 인
        엔트리는 미스로 처리하고 즉시 제거합니다.

        Returns:
            캐시된 값 또는 None (미스)
        """
        if not self.enabled:
            return None

        entry = self._entries.get(key)
        if entry is None:
            self._misses += 1
            return None

        now = self._clock()
        if now >= entry.expires_at:
            self._remove(key)
            self._expirations += 1
            self._misses += 1
            logger.debug("캐시 엔트리 만료", key=key)
            return None

        entry.last_access = now
        self._entries.move_to_end(key)
        self._hits += 1
        logger.debug("캐시 적중", key=key)
        return entry.value

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """
        캐시 저장

        같은 키가 있으면 덮어쓰고, 새 키인데 용량이 가득 찼으면
        가장 오래 전에 접근한 엔트리 하나를 먼저 제거합니다.

        Args:
            key: 캐시 키
            value: 저장할 값
            ttl: 이 엔트리에만 적용할 TTL (초, 선택사항)
        """
        if not self.enabled or self.max_size <= 0:
            return

        if key in self._entries:
            self._remove(key)
        elif len(self._entries) >= self.max_size:
            self._evict_lru()

        now = self._clock()
        effective_ttl = self.ttl_seconds if ttl is None else ttl
        size = _estimate_size(value)

        self._entries[key] = CacheEntry(
            value=value,
            inserted_at=now,
            expires_at=now + effective_ttl,
            last_access=now,
            size=size,
        )
        self._current_size += size

        logger.debug("캐시 저장", key=key, size=size, ttl=effective_ttl)

    def delete(self, key: str) -> bool:
        """키 삭제. 삭제된 엔트리가 있으면 True."""
        if key not in self._entries:
            return False
        self._remove(key)
        logger.debug("캐시 삭제", key=key)
        return True

    def purge_expired(self) -> int:
        """만료된 엔트리를 모두 제거하고 제거한 개수를 반환"""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
        for key in expired:
            self._remove(key)
        self._expirations += len(expired)
        if expired:
            logger.debug("만료 엔트리 정리", count=len(expired))
        return len(expired)

    def clear(self) -> None:
        """모든 엔트리 삭제 (통계 카운터는 유지)"""
        self._entries.clear()
        self._current_size = 0
        logger.debug("캐시 비움")

    def reset_stats(self) -> None:
        """적중/미스/제거/만료 카운터 초기화"""
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

    def stats(self) -> CacheStats:
        return CacheStats(
            size=self._current_size,
            count=len(self._entries),
            enabled=self.enabled,
            hits=self._hits,
            misses=self._misses,
            evictions=self._evictions,
            expirations=self._expirations,
            max_size=self.max_size,
            ttl_seconds=self.ttl_seconds,
        )

    def _remove(self, key: str) -> None:
        entry = self._entries.pop(key)
        self._current_size -= entry.size

    def _evict_lru(self) -> None:
        key = next(iter(self._entries))
        self._remove(key)
        self._evictions += 1
        logger.debug("LRU 엔트리 제거", key=key)

    @staticmethod
    def generate_scan_key(
        method: str, request: Union[ScanRequest, Mapping[str, Any]]
    ) -> str:
        """
        스캔 요청의 캐시 키 생성

        ai_profile 과 contents(순서 유지)만 정규화된 JSON 으로 직렬화하여
        SHA-256 해시를 계산합니다. tr_id 와 metadata 는 제외됩니다.

        Args:
            method: 스캔 방식 (예: "sync")
            request: ScanRequest 또는 같은 구조의 딕셔너리

        Returns:
            str: ``scan:{method}:{sha256 hex}``

        Raises:
            CacheError: 요청을 직렬화할 수 없는 경우
        """
        try:
            if isinstance(request, BaseModel):
                payload = {
                    "profile": request.ai_profile.model_dump(mode="json", exclude_none=True),
                    "contents": [
                        item.model_dump(mode="json", exclude_none=True)
                        for item in request.contents
                    ],
                }
            else:
                payload = {
                    "profile": _drop_none(request["ai_profile"]),
                    "contents": _drop_none(list(request["contents"])),
                }

            canonical = json.dumps(
                payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False
            )
        except (KeyError, TypeError, ValueError, PydanticSerializationError) as e:
            raise CacheError(
                f"Failed to serialize scan request for cache key: {e}",
                data={"method": method},
            ) from e

        digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
        return f"scan:{method}:{digest}"

    @staticmethod
    def generate_result_key(kind: str, ids: Iterable[str]) -> str:
        """ID 배치 조회의 캐시 키 (ID 순서와 무관)"""
        return f"{kind}:{','.join(sorted(ids))}"


def _drop_none(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {k: _drop_none(v) for k, v in value.items() if v is not None}
    if isinstance(value, (list, tuple)):
        return [_drop_none(v) for v in value]
    return value


def _estimate_size(value: Any) -> int:
    try:
        return len(to_json(value, fallback=str))
    except PydanticSerializationError:
        return _DEFAULT_ENTRY_SIZE
