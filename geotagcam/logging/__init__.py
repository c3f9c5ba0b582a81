"""
구조화 로깅 패키지

setup_logging, StructuredLogger, capture_context를 외부에서 임포트하기 위한 패키지 초기화입니다.
"""

from geotagcam.logging.structured_logger import (
    StructuredLogger,
    capture_context,
    setup_logging,
)

__all__ = ["StructuredLogger", "capture_context", "setup_logging"]
