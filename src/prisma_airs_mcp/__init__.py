"""
Prisma AIRS MCP 서버

Prisma AI Runtime Security 스캔 API 를 MCP 도구로 노출하는 서버 패키지입니다.
"""

__version__ = "1.0.0"
