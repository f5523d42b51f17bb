"""유틸리티 모듈"""

from .logging import SensitiveFieldMasker, configure_logging

__all__ = ["SensitiveFieldMasker", "configure_logging"]
