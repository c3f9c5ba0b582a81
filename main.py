"""
GeoTag Camera 촬영 세션 진입점

역할:
- 설정 로드 + 커맨드라인 오버라이드 → 구조화 로깅 초기화
- CapturePipeline 생성 후 카메라/위치 체인을 동시에 준비
- --capture: 준비되면 1장 촬영 후 output_dir에 저장하고 종료
- --web-dashboard: HTTP/WebSocket으로 촬영/위치 재확인 조작 (종료 시그널까지 대기)
- SIGINT/SIGTERM 핸들러로 graceful shutdown

실행 예시:
    파일 모드 (정지 이미지로 1장 촬영):
        python main.py --mode file --image tests/fixtures/street.jpg --capture

    라이브 모드 + 웹 대시보드:
        python main.py --mode live --web-dashboard --web-port 8765
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from pathlib import Path
from typing import Callable

from geotagcam.config.config_manager import ConfigManager
from geotagcam.config.schema import AppConfig
from geotagcam.logging import setup_logging
from geotagcam.session.capture_pipeline import CapturePipeline, create_camera

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"


def _parse_args() -> argparse.Namespace:
    """커맨드라인 인자를 파싱합니다."""
    parser = argparse.ArgumentParser(
        description="GeoTag Camera: 위치/주소/지도를 합성한 사진 촬영"
    )
    parser.add_argument(
        "--config", default=DEFAULT_CONFIG_PATH, help="설정 파일 경로 (기본: config.yaml)"
    )
    parser.add_argument(
        "--mode", choices=["live", "file"], help="실행 모드 (config.yaml 오버라이드)"
    )
    parser.add_argument(
        "--image", help="정지 이미지 경로 (file 모드 전용)"
    )
    parser.add_argument(
        "--capture", action="store_true", help="준비되면 1장 촬영 후 저장하고 종료"
    )
    parser.add_argument(
        "--output-dir", help="촬영 결과 저장 디렉토리 (output.output_dir 오버라이드)"
    )
    parser.add_argument(
        "--duration", type=int, default=0,
        help="실행 시간 제한 (초, 0=무제한)"
    )
    parser.add_argument(
        "--web-dashboard", action="store_true", help="웹 대시보드 활성화 (기본 포트: 8765)"
    )
    parser.add_argument(
        "--web-port", type=int, help="웹 대시보드 포트 (dashboard.web.port 오버라이드)"
    )
    return parser.parse_args()


def _apply_cli_overrides(config: AppConfig, args: argparse.Namespace) -> AppConfig:
    """
    커맨드라인 인자를 설정에 덮어씁니다.

    시작 시와 설정 파일 핫스왑 때 모두 호출되어, 파일이 바뀌어도 CLI 값이 유지됩니다.
    """
    config_dict = config.model_dump()
    if args.mode:
        config_dict["system"]["mode"] = args.mode
    if args.image:
        config_dict["camera"]["still_image"]["image_path"] = args.image
    if args.output_dir:
        config_dict["output"]["output_dir"] = args.output_dir
    if args.web_port:
        config_dict["dashboard"]["web"]["port"] = args.web_port
    # Pydantic 모델은 재생성해서 검증을 다시 거침
    return AppConfig(**config_dict)


def _load_config(manager: ConfigManager, args: argparse.Namespace) -> AppConfig:
    """
    설정 파일을 로드하고 커맨드라인 인자를 덮어씁니다.

    기본 경로(config.yaml)가 없으면 기본값 + 환경변수로 로드합니다.
    """
    config_path = args.config
    if config_path == DEFAULT_CONFIG_PATH and not Path(config_path).exists():
        config_path = None
    return _apply_cli_overrides(manager.load(config_path), args)


def _make_reload_handler(
    pipeline: CapturePipeline, args: argparse.Namespace
) -> Callable[[AppConfig, AppConfig], None]:
    """설정 파일 변경 시 CLI 오버라이드를 다시 적용한 뒤 파이프라인에 넘기는 콜백을 만듭니다."""

    def _on_config_change(old_config: AppConfig, new_config: AppConfig) -> None:
        pipeline.apply_config(old_config, _apply_cli_overrides(new_config, args))

    return _on_config_change


async def _capture_once(pipeline: CapturePipeline, output_dir: str) -> bool:
    """1장 촬영 후 output_dir에 저장합니다."""
    if not pipeline.capture_enabled:
        status = pipeline.status_store.get_status()
        logger.error(f"촬영 준비 실패: {status.error_message or status.info_message}")
        return False

    photo = await pipeline.capture()
    if photo is None:
        status = pipeline.status_store.get_status()
        logger.error(f"촬영 실패: {status.error_message or status.info_message}")
        return False

    saved_path = pipeline.publisher.save(output_dir)
    logger.info(f"촬영 결과 저장: {saved_path} ({photo.width}x{photo.height})")
    return True


async def _main() -> int:
    """비동기 메인 함수입니다."""
    args = _parse_args()

    manager = ConfigManager()
    config = _load_config(manager, args)

    session_id = setup_logging(config)
    logger.info(
        f"GeoTag Camera 시작: "
        f"session_id={session_id}, "
        f"mode={config.system.mode}"
    )

    pipeline = CapturePipeline(
        config,
        camera=create_camera(config, image_path=config.camera.still_image.image_path or None),
    )

    # 핫스왑 설정 감시 등록
    manager.subscribe(_make_reload_handler(pipeline, args))
    manager.watch()

    # SIGINT/SIGTERM 핸들러 등록 (asyncio-safe 방식)
    loop = asyncio.get_running_loop()
    shutdown_event = asyncio.Event()

    def _signal_handler():
        logger.info("종료 시그널 수신")
        shutdown_event.set()

    loop.add_signal_handler(signal.SIGINT, _signal_handler)
    loop.add_signal_handler(signal.SIGTERM, _signal_handler)

    web_dashboard = None
    if args.web_dashboard:
        from geotagcam.dashboard.web_dashboard import WebDashboard
        web_dashboard = WebDashboard(
            pipeline,
            host=config.dashboard.web.host,
            port=config.dashboard.web.port,
            refresh_interval_ms=config.dashboard.web.refresh_interval_ms,
        )
        await web_dashboard.start()

    exit_code = 0
    try:
        await pipeline.initialize()

        if args.capture:
            captured = await _capture_once(pipeline, config.output.output_dir)
            exit_code = 0 if captured else 1
        elif args.duration > 0:
            try:
                await asyncio.wait_for(shutdown_event.wait(), timeout=args.duration)
            except asyncio.TimeoutError:
                logger.info(f"{args.duration}초 경과, 세션 자동 종료")
        else:
            await shutdown_event.wait()
    finally:
        if web_dashboard:
            await web_dashboard.stop()
        await pipeline.shutdown()
        manager.stop_watch()

    logger.info("GeoTag Camera 종료")
    return exit_code


if __name__ == "__main__":
    raise SystemExit(asyncio.run(_main()))
