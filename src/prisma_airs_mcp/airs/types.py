"""
AIRS API 데이터 모델

Prisma AIRS 스캔 API의 요청/응답 구조를 pydantic 모델로 정의합니다.
필드 이름은 AIRS JSON 와이어 포맷을 그대로 따릅니다.

요청/응답 모델 모두 생성 후 변경할 수 없습니다(frozen). 캐시된 응답을 여러
호출자가 공유하기 때문입니다. 응답 모델은 API가 새 필드를 추가해도 파싱이
깨지지 않도록 알 수 없는 필드를 허용합니다.
"""

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

API_VERSION = "v1"
AUTH_HEADER = "x-pan-token"
CONTENT_TYPE = "application/json"

# 배치 조회 시 한 번에 보낼 수 있는 최대 ID 수
MAX_SCAN_IDS = 100
MAX_REPORT_IDS = 100


class _RequestModel(BaseModel):
    model_config = ConfigDict(frozen=True)


class _ResponseModel(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)


# 요청 모델


class AiProfile(_RequestModel):
    """스캔에 적용할 보안 프로파일 (이름 또는 ID)"""

    profile_id: Optional[str] = None
    profile_name: Optional[str] = None


class Metadata(_RequestModel):
    """호출자 메타데이터. 캐시 키에는 포함되지 않습니다."""

    app_name: Optional[str] = None
    app_user: Optional[str] = None
    ai_model: Optional[str] = None
    user_ip: Optional[str] = None


class ContentItem(_RequestModel):
    """스캔 대상 컨텐츠 한 건"""

    prompt: Optional[str] = None
    response: Optional[str] = None
    code_prompt: Optional[str] = None
    code_response: Optional[str] = None
    context: Optional[str] = None

    def is_empty(self) -> bool:
        return not any(
            (self.prompt, self.response, self.code_prompt, self.code_response, self.context)
        )


class ScanRequest(_RequestModel):
    """
    동기/비동기 스캔 요청

    tr_id 는 호출자가 붙이는 트랜잭션 상관 ID 입니다. 같은 컨텐츠와 프로파일이면
    tr_id 가 달라도 같은 캐시 엔트리로 매핑됩니다.
    """

    tr_id: Optional[str] = None
    ai_profile: AiProfile
    metadata: Optional[Metadata] = None
    contents: list[ContentItem] = Field(min_length=1)


class AsyncScanObject(_RequestModel):
    """비동기 배치 스캔의 개별 항목"""

    req_id: int
    scan_req: ScanRequest


class RequestOptions(BaseModel):
    """
    호출별 옵션

    headers 는 기본 헤더에 병합되고, timeout(초)은 클라이언트 기본 타임아웃을
    덮어씁니다.
    """

    headers: dict[str, str] = Field(default_factory=dict)
    timeout: Optional[float] = None


# 응답 모델


class PromptDetected(_ResponseModel):
    url_cats: Optional[bool] = None
    dlp: Optional[bool] = None
    injection: Optional[bool] = None
    toxic_content: Optional[bool] = None
    malicious_code: Optional[bool] = None
    agent: Optional[bool] = None
    topic_violation: Optional[bool] = None


class ResponseDetected(_ResponseModel):
    url_cats: Optional[bool] = None
    dlp: Optional[bool] = None
    db_security: Optional[bool] = None
    toxic_content: Optional[bool] = None
    malicious_code: Optional[bool] = None
    agent: Optional[bool] = None
    ungrounded: Optional[bool] = None
    topic_violation: Optional[bool] = None


class PatternDetection(_ResponseModel):
    pattern: Optional[str] = None
    locations: Optional[list[list[int]]] = None


class MaskedData(_ResponseModel):
    data: Optional[str] = None
    pattern_detections: Optional[list[PatternDetection]] = None


class ScanResponse(_ResponseModel):
    """
    동기 스캔 결과

    category/action 이 최종 판정이며, prompt_detected / response_detected 의
    각 플래그가 위험 지표입니다.
    """

    report_id: str
    scan_id: str
    tr_id: Optional[str] = None
    profile_id: Optional[str] = None
    profile_name: Optional[str] = None
    category: Literal["benign", "malicious"]
    action: Literal["allow", "block", "review"]
    prompt_detected: Optional[PromptDetected] = None
    response_detected: Optional[ResponseDetected] = None
    prompt_masked_data: Optional[MaskedData] = None
    response_masked_data: Optional[MaskedData] = None
    created_at: Optional[str] = None
    completed_at: Optional[str] = None

    def detected_threats(self) -> list[str]:
        """탐지된 위협 카테고리 목록 (예: ``prompt_injection``, ``response_dlp``)"""
        threats: list[str] = []
        for prefix, detected in (
            ("prompt", self.prompt_detected),
            ("response", self.response_detected),
        ):
            if detected is None:
                continue
            for name in type(detected).model_fields:
                if getattr(detected, name):
                    threats.append(f"{prefix}_{name}")
        return threats


class AsyncScanResponse(_ResponseModel):
    """비동기 스캔 제출 결과. scan_id 로 나중에 결과를 조회합니다."""

    received: str
    scan_id: str
    report_id: Optional[str] = None


class ScanIdResult(_ResponseModel):
    req_id: Optional[int] = None
    status: Optional[str] = None
    scan_id: Optional[str] = None
    result: Optional[ScanResponse] = None

    @property
    def is_complete(self) -> bool:
        return self.status == "complete"


class DetectionResult(_ResponseModel):
    data_type: Optional[str] = None
    detection_service: Optional[str] = None
    verdict: Optional[str] = None
    action: Optional[str] = None
    result_detail: Optional[dict[str, Any]] = None


class ThreatScanReport(_ResponseModel):
    """탐지 서비스별 상세 결과를 담은 위협 리포트"""

    report_id: Optional[str] = None
    scan_id: Optional[str] = None
    req_id: Optional[int] = None
    transaction_id: Optional[str] = None
    detection_results: list[DetectionResult] = Field(default_factory=list)
