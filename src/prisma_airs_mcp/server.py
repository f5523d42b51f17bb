"""
Prisma AIRS MCP 서버

Prisma AIRS 컨텐츠 보안 스캔 API 를 MCP 도구, 리소스, 프롬프트로 노출합니다.
모든 API 호출은 팩토리가 소유한 EnhancedAirsClient 를 통해 이루어지므로
캐시와 속도 제한이 자동으로 적용됩니다.

도구:
    - airs_scan_content: 프롬프트/응답 동기 스캔
    - airs_scan_async: 비동기 배치 스캔 제출
    - airs_get_scan_results: 스캔 ID 로 결과 조회
    - airs_get_threat_reports: 리포트 ID 로 위협 리포트 조회
    - airs_clear_cache: 응답 캐시 비우기

리소스:
    - airs://cache-stats/current
    - airs://rate-limit-status/current
    - airs://scan-results/{scan_id}
    - airs://threat-reports/{report_id}

사용 예시:
    # stdio (기본)
    AIRS_API_KEY=... python -m prisma_airs_mcp

    # HTTP
    AIRS_API_KEY=... MCP_TRANSPORT=http MCP_SERVER_PORT=3000 python -m prisma_airs_mcp
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import structlog
from fastmcp import Context, FastMCP
from fastmcp.exceptions import ResourceError, ToolError
from fastmcp.prompts.prompt import Message
from pydantic import BaseModel, Field
from starlette.requests import Request
from starlette.responses import JSONResponse

from .airs import (
    AiProfile,
    AirsClientFactory,
    AsyncScanObject,
    ContentItem,
    EnhancedAirsClient,
    Metadata,
    ScanRequest,
    ScanResponse,
)
from .config import ServerConfig
from .exceptions import AirsError, ApiError, ConfigurationError, ErrorHandler

logger = structlog.get_logger(__name__)

DEFAULT_PROFILE_NAME = "Prisma AIRS"


class AsyncScanItem(BaseModel):
    """airs_scan_async 도구의 개별 요청"""

    req_id: int = Field(description="배치 안에서 요청을 구분하는 ID")
    prompt: Optional[str] = None
    response: Optional[str] = None
    context: Optional[str] = None
    profile_name: Optional[str] = None
    profile_id: Optional[str] = None


def summarize_threats(result: ScanResponse) -> str:
    """탐지된 위협 카테고리를 한 줄로 요약"""
    return ", ".join(result.detected_threats()) or "unknown threats"


def to_tool_error(error: AirsError) -> ToolError:
    """
    AIRS 에러를 MCP 도구 에러로 변환

    ApiError 는 ``API Error (status): message`` 형식으로 상태 코드를 포함합니다.
    """
    if isinstance(error, ApiError):
        return ToolError(f"API Error ({error.status_code}): {error.message}")
    return ToolError(error.message)


class AirsMCPServer:
    """
    AIRS MCP 서버 구성 클래스

    설정과 클라이언트 팩토리를 받아 FastMCP 서버를 구성합니다.
    팩토리를 주입하면 테스트에서 목 전송 계층을 사용할 수 있습니다.
    """

    def __init__(self, config: ServerConfig, factory: Optional[AirsClientFactory] = None):
        self.config = config
        self.factory = factory or AirsClientFactory(lambda: config)

    def resolve_profile(
        self, profile_name: Optional[str] = None, profile_id: Optional[str] = None
    ) -> AiProfile:
        """
        스캔 프로파일 결정

        우선순위: 명시한 이름, 명시한 ID, 설정의 기본 ID, 설정의 기본 이름,
        마지막으로 "Prisma AIRS".
        """
        if profile_name:
            return AiProfile(profile_name=profile_name)
        if profile_id:
            return AiProfile(profile_id=profile_id)
        if self.config.airs.default_profile_id:
            return AiProfile(profile_id=self.config.airs.default_profile_id)
        if self.config.airs.default_profile_name:
            return AiProfile(profile_name=self.config.airs.default_profile_name)
        return AiProfile(profile_name=DEFAULT_PROFILE_NAME)

    def _get_client(self) -> EnhancedAirsClient:
        try:
            return self.factory.get_client()
        except ConfigurationError as e:
            logger.error("AIRS 클라이언트 생성 실패", errors=e.errors)
            raise to_tool_error(e) from e

    def create_server(self) -> FastMCP:
        """
        FastMCP 서버 인스턴스 생성

        Returns:
            도구, 리소스, 프롬프트, 헬스체크가 등록된 FastMCP 서버
        """

        @asynccontextmanager
        async def lifespan(server: FastMCP):
            logger.info(
                "AIRS MCP 서버 시작 중...",
                name=self.config.name,
                transport=self.config.transport,
            )

            client = self.factory.get_client()
            client.start()

            logger.info(
                "AIRS MCP 서버 시작 완료",
                cache_enabled=client.cache is not None,
                rate_limiter_enabled=client.rate_limiter is not None,
            )

            try:
                yield
            finally:
                await self.factory.reset_client()
                logger.info("AIRS MCP 서버 종료 완료")

        server = FastMCP(
            name=self.config.name,
            lifespan=lifespan,
            instructions=self._build_instructions(),
        )

        self._register_tools(server)
        self._register_resources(server)
        self._register_prompts(server)

        @server.custom_route("/health", methods=["GET"])
        async def health_check_endpoint(request: Request):
            client_ready = self.factory.has_client
            body: Dict[str, Any] = {
                "status": "healthy",
                "service": self.config.name,
                "version": self.config.version,
                "client_initialized": client_ready,
                "timestamp": datetime.now(timezone.utc).isoformat(),
            }
            if client_ready:
                client = self.factory.get_client()
                body["cache"] = client.get_cache_stats()
                body["rate_limiter"] = client.get_rate_limiter_stats()
                body["http"] = client.session_health()
            return JSONResponse(body)

        return server

    def _build_instructions(self) -> str:
        """서버 설명 생성"""
        base = """
Prisma AIRS 보안 스캔 MCP 서버

AI 애플리케이션의 프롬프트와 응답을 Prisma AI Runtime Security 로 스캔합니다:
- 프롬프트 인젝션, 데이터 유출(DLP), 악성 URL/코드, 유해 컨텐츠 탐지
- 동기 스캔과 비동기 배치 스캔
- 스캔 결과 및 상세 위협 리포트 조회

활성화된 기능:
"""
        features = []
        if self.config.cache.enabled:
            features.append(
                f"- 응답 캐시 (TTL {self.config.cache.ttl_seconds}초, "
                f"최대 {self.config.cache.max_size}개)"
            )
        if self.config.rate_limit.enabled:
            features.append(
                f"- 속도 제한 ({self.config.rate_limit.window_ms}ms 당 "
                f"{self.config.rate_limit.max_requests}회, 작업 종류별)"
            )
        if not features:
            features.append("- 기본 기능만 활성화")

        return base + "\n".join(features)

    def _register_tools(self, server: FastMCP):
        """도구 등록"""

        @server.tool
        async def airs_scan_content(
            ctx: Context,
            prompt: Optional[str] = None,
            response: Optional[str] = None,
            context: Optional[str] = None,
            profile_name: Optional[str] = None,
            profile_id: Optional[str] = None,
            metadata: Optional[Dict[str, str]] = None,
            use_cache: bool = True,
        ) -> Dict[str, Any]:
            """
            Prisma AIRS 로 프롬프트/응답 컨텐츠의 보안 위협을 스캔

            Args:
                prompt: 스캔할 사용자 프롬프트
                response: 스캔할 AI 응답
                context: 추가 컨텍스트
                profile_name: 사용할 보안 프로파일 이름
                profile_id: 사용할 보안 프로파일 ID
                metadata: app_name, app_user, ai_model, user_ip
                use_cache: 캐시된 결과 사용 여부

            Returns:
                판정 결과 (category, action, 탐지된 위협 목록, 전체 결과)
            """
            content = ContentItem(prompt=prompt, response=response, context=context)
            if content.is_empty():
                raise ToolError("At least one of prompt, response, or context is required")

            request = ScanRequest(
                ai_profile=self.resolve_profile(profile_name, profile_id),
                metadata=Metadata(**metadata) if metadata else None,
                contents=[content],
            )

            await ctx.info("AIRS 컨텐츠 스캔 시작")
            client = self._get_client()

            try:
                result = await client.scan_sync(request, use_cache=use_cache)
            except AirsError as e:
                logger.error(
                    "컨텐츠 스캔 실패",
                    **ErrorHandler.create_error_context(e, tool_name="airs_scan_content"),
                )
                await ctx.error(f"컨텐츠 스캔 실패: {e.message}")
                raise to_tool_error(e) from e

            summary: Dict[str, Any] = {
                "summary": f"Scan completed. Category: {result.category}, Action: {result.action}",
                "category": result.category,
                "action": result.action,
                "scan_id": result.scan_id,
                "report_id": result.report_id,
                "threats": result.detected_threats(),
                "resource_uri": f"airs://scan-results/{result.scan_id}",
                "result": result.model_dump(mode="json", exclude_none=True),
            }
            if result.category == "malicious":
                summary["threat_summary"] = f"Threats detected: {summarize_threats(result)}"

            await ctx.info(f"AIRS 스캔 완료: {result.category}/{result.action}")
            return summary

        @server.tool
        async def airs_scan_async(
            ctx: Context,
            requests: List[AsyncScanItem],
        ) -> Dict[str, Any]:
            """
            여러 스캔 요청을 비동기로 제출

            결과는 반환된 scan_id 로 airs_get_scan_results 를 통해 조회합니다.

            Args:
                requests: req_id 와 prompt/response/context, 프로파일을 담은 요청 목록

            Returns:
                scan_id 와 report_id
            """
            try:
                scan_objects = [
                    AsyncScanObject(
                        req_id=item.req_id,
                        scan_req=ScanRequest(
                            ai_profile=self.resolve_profile(item.profile_name, item.profile_id),
                            contents=[
                                ContentItem(
                                    prompt=item.prompt,
                                    response=item.response,
                                    context=item.context,
                                )
                            ],
                        ),
                    )
                    for item in requests
                ]

                await ctx.info(f"AIRS 비동기 스캔 제출: {len(scan_objects)}건")
                result = await self._get_client().scan_async(scan_objects)
            except AirsError as e:
                logger.error(
                    "비동기 스캔 제출 실패",
                    **ErrorHandler.create_error_context(e, tool_name="airs_scan_async"),
                )
                raise to_tool_error(e) from e

            return {
                "summary": f"Async scan submitted. Scan ID: {result.scan_id}",
                "received": result.received,
                "scan_id": result.scan_id,
                "report_id": result.report_id,
            }

        @server.tool
        async def airs_get_scan_results(
            ctx: Context,
            scan_ids: List[str],
        ) -> Dict[str, Any]:
            """
            스캔 ID 로 스캔 결과 조회

            Args:
                scan_ids: 조회할 스캔 ID 목록 (최대 100개)

            Returns:
                스캔 ID 별 상태와 결과
            """
            try:
                results = await self._get_client().get_scan_results(scan_ids)
            except AirsError as e:
                logger.error(
                    "스캔 결과 조회 실패",
                    **ErrorHandler.create_error_context(e, tool_name="airs_get_scan_results"),
                )
                raise to_tool_error(e) from e

            await ctx.info(f"스캔 결과 {len(results)}건 조회")
            return {
                "summary": f"Retrieved {len(results)} scan results",
                "results": [result.model_dump(mode="json", exclude_none=True) for result in results],
            }

        @server.tool
        async def airs_get_threat_reports(
            ctx: Context,
            report_ids: List[str],
        ) -> Dict[str, Any]:
            """
            리포트 ID 로 상세 위협 리포트 조회

            Args:
                report_ids: 조회할 리포트 ID 목록 (최대 100개)

            Returns:
                탐지 서비스별 상세 결과를 담은 리포트 목록
            """
            try:
                reports = await self._get_client().get_threat_scan_reports(report_ids)
            except AirsError as e:
                logger.error(
                    "위협 리포트 조회 실패",
                    **ErrorHandler.create_error_context(e, tool_name="airs_get_threat_reports"),
                )
                raise to_tool_error(e) from e

            await ctx.info(f"위협 리포트 {len(reports)}건 조회")
            return {
                "summary": f"Retrieved {len(reports)} threat reports",
                "reports": [report.model_dump(mode="json", exclude_none=True) for report in reports],
            }

        @server.tool
        async def airs_clear_cache(ctx: Context) -> Dict[str, Any]:
            """AIRS 응답 캐시 비우기"""
            client = self._get_client()
            client.clear_cache()
            await ctx.info("AIRS 캐시 비움")
            return {"summary": "Cache cleared successfully", "cache": client.get_cache_stats()}

    def _register_resources(self, server: FastMCP):
        """리소스 등록"""

        @server.resource(
            "airs://cache-stats/current",
            name="Cache Statistics",
            description="Current cache statistics and performance metrics",
            mime_type="application/json",
        )
        async def cache_stats() -> Dict[str, Any]:
            stats = self._get_client().get_cache_stats()
            return {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "enabled": stats is not None,
                "stats": stats,
            }

        @server.resource(
            "airs://rate-limit-status/current",
            name="Rate Limit Status",
            description="Current rate limiting status and quotas",
            mime_type="application/json",
        )
        async def rate_limit_status() -> Dict[str, Any]:
            client = self._get_client()
            return {
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "enabled": client.rate_limiter is not None,
                "stats": client.get_rate_limiter_stats(),
                "buckets": client.get_rate_limit_status(),
            }

        @server.resource(
            "airs://scan-results/{scan_id}",
            name="Scan Result",
            description="Scan result for a scan ID",
            mime_type="application/json",
        )
        async def scan_result(scan_id: str) -> Dict[str, Any]:
            try:
                results = await self._get_client().get_scan_results([scan_id])
            except AirsError as e:
                raise ResourceError(str(to_tool_error(e))) from e
            if not results:
                raise ResourceError(f"Scan result not found: {scan_id}")
            return results[0].model_dump(mode="json", exclude_none=True)

        @server.resource(
            "airs://threat-reports/{report_id}",
            name="Threat Report",
            description="Detailed threat report for a report ID",
            mime_type="application/json",
        )
        async def threat_report(report_id: str) -> Dict[str, Any]:
            try:
                reports = await self._get_client().get_threat_scan_reports([report_id])
            except AirsError as e:
                raise ResourceError(str(to_tool_error(e))) from e
            if not reports:
                raise ResourceError(f"Threat report not found: {report_id}")
            return reports[0].model_dump(mode="json", exclude_none=True)

    def _register_prompts(self, server: FastMCP):
        """프롬프트 등록"""

        @server.prompt(
            name="security_analysis",
            description="Analyze content for security threats and provide recommendations",
        )
        def security_analysis(
            content: str,
            context: Optional[str] = None,
            severity_threshold: str = "low",
        ) -> list[Message]:
            return [
                Message(
                    f"""Please perform a comprehensive security analysis of the following content using Prisma AIRS.

**Content to Analyze:**
{content}

**Context:**
{context or "No additional context"}

**Requirements:**
1. Use the airs_scan_content tool to analyze the content
2. Report all threats with severity {severity_threshold} or higher
3. Provide specific examples from the content for each threat found
4. Suggest remediation steps for each identified issue
5. Give an overall security assessment and risk score

Please structure your response with:
- Executive Summary
- Detailed Findings
- Risk Assessment
- Recommendations""",
                    role="user",
                ),
                Message(
                    "I'll perform a comprehensive security analysis of the provided content "
                    "using Prisma AIRS. Let me start by scanning the content for potential threats.",
                    role="assistant",
                ),
            ]

        @server.prompt(
            name="threat_investigation",
            description="Investigate detected threats and provide detailed analysis",
        )
        def threat_investigation(
            scan_id: str,
            focus_area: Optional[str] = None,
        ) -> list[Message]:
            focus = (
                f"Focus specifically on threats related to: {focus_area}"
                if focus_area
                else "Investigate all detected threats"
            )
            return [
                Message(
                    f"""Please investigate the security scan with ID: {scan_id}

{focus}

**Investigation Steps:**
1. Use airs_get_scan_results to retrieve the scan details
2. If a report ID is available, use airs_get_threat_reports for detailed analysis
3. Analyze each detected threat:
   - Threat type and severity
   - Potential impact
   - Attack vectors
   - False positive assessment
4. Provide timeline and correlation analysis
5. Recommend immediate actions and long-term mitigations

Format your investigation as a professional security report.""",
                    role="user",
                ),
                Message(
                    f"I'll investigate the security scan {scan_id} and provide a detailed "
                    "threat analysis. Let me start by retrieving the scan results.",
                    role="assistant",
                ),
            ]


def create_server(
    config: ServerConfig, factory: Optional[AirsClientFactory] = None
) -> FastMCP:
    """설정으로 FastMCP 서버 생성"""
    return AirsMCPServer(config, factory).create_server()


async def main():
    """메인 실행 함수 (비동기)"""
    from .utils.logging import configure_logging

    config = ServerConfig.from_env()
    configure_logging(config.logging)

    is_valid, errors = config.validate()
    if not is_valid:
        raise ConfigurationError("Invalid server configuration", errors=errors)

    mcp = create_server(config)

    logger.info(
        "AIRS MCP 서버 시작",
        transport=config.transport,
        port=config.port,
        environment=config.environment,
    )

    if config.transport == "http":
        logger.info(f"HTTP 모드로 서버 시작 - http://{config.host}:{config.port}/mcp")
        await mcp.run_async(
            transport="http",
            host=config.host,
            port=config.port,
            path="/mcp",
            log_level=config.logging.log_level.lower(),
        )
    else:
        await mcp.run_async()


def run():
    """콘솔 스크립트 진입점"""
    asyncio.run(main())
