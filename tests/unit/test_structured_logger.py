"""
구조화 로깅 모듈 단위 테스트

검증 조건:
- JSON 포맷 로그에 session_id, level, module 필드 포함
- RotatingFileHandler 파일(geotagcam.log) 생성 확인
- capture_context 블록 안의 로그에만 capture_seq가 붙음
- text 포맷에 세션 접두어와 촬영 번호 표시
"""

from __future__ import annotations

import asyncio
import json
import logging
import logging.handlers
from io import StringIO

import pytest

from geotagcam.config.schema import AppConfig
from geotagcam.logging.structured_logger import (
    StructuredLogger,
    _CaptureContextFilter,
    _JsonFormatter,
    _TextFormatter,
    capture_context,
    setup_logging,
)


# =========================================================================
# 픽스처
# =========================================================================

@pytest.fixture(autouse=True)
def reset_root_logger():
    """각 테스트 후 root logger 핸들러 초기화."""
    yield
    root = logging.getLogger()
    for h in root.handlers[:]:
        root.removeHandler(h)
        h.close()


@pytest.fixture
def config_json(tmp_path):
    cfg = AppConfig()
    cfg.system.log_level = "DEBUG"
    cfg.system.log_format = "json"
    cfg.system.log_dir = str(tmp_path / "logs")
    cfg.system.session_id = "geo-session-001"
    return cfg


def _memory_logger(name: str, formatter: logging.Formatter) -> tuple[logging.Logger, StringIO]:
    """포맷터와 촬영 번호 필터가 달린 메모리 스트림 로거를 만듭니다."""
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(formatter)
    handler.addFilter(_CaptureContextFilter())
    test_logger = logging.getLogger(name)
    for existing in test_logger.handlers[:]:
        test_logger.removeHandler(existing)
    test_logger.addHandler(handler)
    test_logger.setLevel(logging.DEBUG)
    test_logger.propagate = False
    return test_logger, stream


# =========================================================================
# setup_logging 테스트
# =========================================================================

class TestSetupLogging:
    def test_log_file_created(self, config_json, tmp_path):
        setup_logging(config_json)
        logging.getLogger("geo.file").info("파일 기록")
        assert (tmp_path / "logs" / "geotagcam.log").exists()

    def test_session_id_stored(self, config_json):
        assert setup_logging(config_json, session_id="custom-sid") == "custom-sid"
        assert StructuredLogger.get_session_id() == "custom-sid"

    def test_session_id_from_config(self, config_json):
        setup_logging(config_json)
        assert StructuredLogger.get_session_id() == "geo-session-001"

    def test_session_id_auto_uuid_when_empty(self, tmp_path):
        cfg = AppConfig()
        cfg.system.session_id = ""
        cfg.system.log_dir = str(tmp_path / "logs")
        setup_logging(cfg)
        sid = StructuredLogger.get_session_id()
        assert len(sid) == 36  # UUID 형식
        assert sid.count("-") == 4

    def test_log_level_applied(self, config_json):
        config_json.system.log_level = "WARNING"
        setup_logging(config_json)
        assert logging.getLogger().level == logging.WARNING

    def test_duplicate_setup_does_not_add_extra_handlers(self, config_json):
        setup_logging(config_json)
        handler_count = len(logging.getLogger().handlers)
        setup_logging(config_json)
        assert len(logging.getLogger().handlers) == handler_count

    def test_rotating_file_handler_present(self, config_json):
        setup_logging(config_json)
        handler_types = [type(h) for h in logging.getLogger().handlers]
        assert logging.handlers.RotatingFileHandler in handler_types

    def test_access_loggers_quieted(self, config_json):
        setup_logging(config_json)
        assert logging.getLogger("aiohttp.access").level == logging.WARNING
        assert logging.getLogger("uvicorn.access").level == logging.WARNING


# =========================================================================
# JSON 로그 출력 형식 테스트
# =========================================================================

class TestJsonFormat:
    def test_json_contains_standard_fields(self):
        test_logger, stream = _memory_logger("geo.json", _JsonFormatter(session_id="abc"))
        test_logger.info("메시지 확인")

        data = json.loads(stream.getvalue().strip())
        assert data["session_id"] == "abc"
        assert data["level"] == "INFO"
        assert data["module"] == "geo.json"
        assert data["message"] == "메시지 확인"
        assert "capture_seq" not in data

    def test_json_extra_fields_included(self):
        test_logger, stream = _memory_logger("geo.extra", _JsonFormatter(session_id="abc"))
        test_logger.info("추가 필드", extra={"tiles_loaded": 9})
        data = json.loads(stream.getvalue().strip())
        assert data.get("tiles_loaded") == 9

    def test_json_capture_seq_inside_context(self):
        test_logger, stream = _memory_logger("geo.seq", _JsonFormatter(session_id="abc"))
        with capture_context(7):
            test_logger.info("합성 시작")
        test_logger.info("촬영 밖")

        first, second = [json.loads(line) for line in stream.getvalue().strip().splitlines()]
        assert first["capture_seq"] == 7
        assert "capture_seq" not in second


# =========================================================================
# 텍스트 포맷 테스트
# =========================================================================

class TestTextFormat:
    def test_text_format_includes_session_prefix(self):
        test_logger, stream = _memory_logger("geo.text", _TextFormatter(session_id="text-session-002"))
        test_logger.info("텍스트 로그 테스트")
        output = stream.getvalue()
        assert "[text-ses]" in output
        assert "텍스트 로그 테스트" in output

    def test_text_format_without_session(self):
        test_logger, stream = _memory_logger("geo.nosid", _TextFormatter())
        test_logger.info("세션 없음")
        assert "[no-sid]" in stream.getvalue()

    def test_text_format_appends_capture_number(self):
        test_logger, stream = _memory_logger("geo.textseq", _TextFormatter(session_id="s"))
        with capture_context(3):
            test_logger.info("게시 완료")
        assert stream.getvalue().strip().endswith("(capture #3)")


# =========================================================================
# capture_context 테스트
# =========================================================================

class TestCaptureContext:
    def test_context_resets_after_block(self):
        assert StructuredLogger.current_capture_seq() is None
        with capture_context(1):
            assert StructuredLogger.current_capture_seq() == 1
            with capture_context(2):
                assert StructuredLogger.current_capture_seq() == 2
            assert StructuredLogger.current_capture_seq() == 1
        assert StructuredLogger.current_capture_seq() is None

    @pytest.mark.asyncio
    async def test_context_isolated_between_tasks(self):
        """다른 asyncio 태스크에는 촬영 번호가 새지 않는다."""
        seen = {}

        async def inside():
            with capture_context(5):
                await asyncio.sleep(0.01)
                seen["inside"] = StructuredLogger.current_capture_seq()

        async def outside():
            await asyncio.sleep(0.005)
            seen["outside"] = StructuredLogger.current_capture_seq()

        await asyncio.gather(inside(), outside())
        assert seen == {"inside": 5, "outside": None}

    def test_get_returns_standard_logger(self):
        assert StructuredLogger.get("geo.any") is logging.getLogger("geo.any")
