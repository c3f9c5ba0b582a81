"""
진입점 설정 처리 단위 테스트

검증 조건:
- 커맨드라인 인자가 설정 값을 덮어씀
- 설정 파일 핫스왑 시에도 커맨드라인 오버라이드가 유지됨
"""

from __future__ import annotations

import argparse

from geotagcam.config.schema import AppConfig
from main import _apply_cli_overrides, _make_reload_handler


def _args(**overrides) -> argparse.Namespace:
    values = {
        "config": "config.yaml",
        "mode": None,
        "image": None,
        "capture": False,
        "output_dir": None,
        "duration": 0,
        "web_dashboard": False,
        "web_port": None,
    }
    values.update(overrides)
    return argparse.Namespace(**values)


class RecordingPipeline:
    def __init__(self) -> None:
        self.applied: list[tuple[AppConfig, AppConfig]] = []

    def apply_config(self, old_config: AppConfig, new_config: AppConfig) -> None:
        self.applied.append((old_config, new_config))


def test_cli_overrides_applied():
    args = _args(mode="file", image="/tmp/street.jpg", output_dir="/tmp/out", web_port=9000)
    config = _apply_cli_overrides(AppConfig(), args)
    assert config.system.mode == "file"
    assert config.camera.still_image.image_path == "/tmp/street.jpg"
    assert config.output.output_dir == "/tmp/out"
    assert config.dashboard.web.port == 9000


def test_no_cli_overrides_keeps_config():
    assert _apply_cli_overrides(AppConfig(), _args()) == AppConfig()


def test_reload_keeps_cli_overrides():
    """파일에서 새로 읽은 설정에도 --output-dir, --web-port, --mode가 다시 적용된다."""
    pipeline = RecordingPipeline()
    handler = _make_reload_handler(pipeline, _args(mode="file", output_dir="/tmp/out", web_port=9000))

    reloaded = AppConfig()
    reloaded.map.zoom = 12
    handler(AppConfig(), reloaded)

    _, applied = pipeline.applied[0]
    assert applied.map.zoom == 12
    assert applied.system.mode == "file"
    assert applied.output.output_dir == "/tmp/out"
    assert applied.dashboard.web.port == 9000
