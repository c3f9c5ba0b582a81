"""
구조화 JSON 로깅 모듈입니다.

역할:
- python-json-logger를 사용한 JSON 포맷 로그 출력
- RotatingFileHandler로 로그 파일 자동 순환 (10MB, 5개 보존)
- session_id, 진행 중인 촬영 번호(capture_seq)를 모든 레코드에 자동 추가
- 로그 레벨 및 포맷(json/text)을 설정에서 제어

사용 예시:
    >>> setup_logging(config)
    >>> with capture_context(3):
    ...     logger.info("합성 시작")   # capture_seq=3 필드가 붙음
"""

from __future__ import annotations

import contextvars
import logging
import logging.handlers
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from pythonjsonlogger import jsonlogger

from geotagcam.config.schema import AppConfig

_SESSION_ID: str = ""

# 현재 asyncio 태스크에서 진행 중인 촬영 번호 (없으면 None)
_CAPTURE_SEQ: contextvars.ContextVar[Optional[int]] = contextvars.ContextVar(
    "geotagcam_capture_seq", default=None
)

LOG_FILENAME = "geotagcam.log"


def setup_logging(config: AppConfig, session_id: Optional[str] = None) -> str:
    """
    애플리케이션 전체 로깅 설정을 초기화합니다.

    파라미터:
        config: AppConfig 인스턴스
        session_id: 세션 식별자. None이면 config.system.session_id 또는 UUID 사용

    반환값:
        str: 실제로 사용된 세션 ID
    """
    global _SESSION_ID

    _SESSION_ID = session_id or config.system.session_id or str(uuid.uuid4())

    log_level = getattr(logging, config.system.log_level, logging.INFO)
    log_dir = Path(config.system.log_dir)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # 기존 핸들러 제거 (재초기화 시 중복 출력 방지)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handlers: list[logging.Handler] = [logging.StreamHandler()]

    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(
            logging.handlers.RotatingFileHandler(
                filename=log_dir / LOG_FILENAME,
                maxBytes=10 * 1024 * 1024,   # 10MB
                backupCount=5,
                encoding="utf-8",
            )
        )
    except OSError as exc:
        logging.warning(f"로그 파일 핸들러 생성 실패: {exc}")

    context_filter = _CaptureContextFilter()
    for handler in handlers:
        handler.setLevel(log_level)
        handler.addFilter(context_filter)
        if config.system.log_format == "json":
            handler.setFormatter(_JsonFormatter(session_id=_SESSION_ID))
        else:
            handler.setFormatter(_TextFormatter(session_id=_SESSION_ID))
        root_logger.addHandler(handler)

    # aiohttp / uvicorn 접근 로그는 WARNING 이상만
    for noisy_logger in ("aiohttp.access", "uvicorn.access"):
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        f"로깅 초기화: level={config.system.log_level}, "
        f"format={config.system.log_format}, session={_SESSION_ID}"
    )
    return _SESSION_ID


@contextmanager
def capture_context(sequence: int) -> Iterator[None]:
    """
    블록 안에서 남기는 로그에 촬영 번호를 붙입니다.

    contextvars 기반이라 동시에 도는 다른 asyncio 태스크의 로그에는 섞이지 않습니다.
    """
    token = _CAPTURE_SEQ.set(sequence)
    try:
        yield
    finally:
        _CAPTURE_SEQ.reset(token)


class _CaptureContextFilter(logging.Filter):
    """레코드에 capture_seq 속성을 채워 넣는 필터입니다."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.capture_seq = _CAPTURE_SEQ.get()
        return True


class _JsonFormatter(jsonlogger.JsonFormatter):
    """
    session_id, module, capture_seq 필드를 자동 추가하는 JSON 포맷터입니다.
    """

    def __init__(self, session_id: str = "") -> None:
        super().__init__(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )
        self._session_id = session_id

    def add_fields(
        self,
        log_record: dict,
        record: logging.LogRecord,
        message_dict: dict,
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["session_id"] = self._session_id
        log_record["module"] = record.name
        log_record["level"] = record.levelname
        # 필터가 붙인 속성은 extra로도 복사되므로 촬영 밖이면 제거
        capture_seq = log_record.pop("capture_seq", None)
        if capture_seq is not None:
            log_record["capture_seq"] = capture_seq


class _TextFormatter(logging.Formatter):
    """
    session_id 앞 8자리와 촬영 번호를 접두어로 붙이는 텍스트 포맷터입니다.
    """

    def __init__(self, session_id: str = "") -> None:
        super().__init__(
            fmt=f"%(asctime)s [{session_id[:8] if session_id else 'no-sid'}] "
                f"%(levelname)-8s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    def format(self, record: logging.LogRecord) -> str:
        formatted = super().format(record)
        capture_seq = getattr(record, "capture_seq", None)
        if capture_seq is not None:
            formatted = f"{formatted} (capture #{capture_seq})"
        return formatted


class StructuredLogger:
    """
    모듈별 로거와 세션 정보를 돌려주는 팩토리 클래스입니다.

    표준 logging.Logger를 그대로 반환하므로 기존 logging API와 완전히 호환됩니다.
    """

    @staticmethod
    def get(name: str) -> logging.Logger:
        """지정된 이름의 표준 로거를 반환합니다."""
        return logging.getLogger(name)

    @staticmethod
    def get_session_id() -> str:
        """현재 세션 ID를 반환합니다."""
        return _SESSION_ID

    @staticmethod
    def current_capture_seq() -> Optional[int]:
        """현재 컨텍스트의 촬영 번호를 반환합니다. 촬영 중이 아니면 None."""
        return _CAPTURE_SEQ.get()
