"""
정지 이미지 기반 모의 캡처 모듈입니다.

역할:
- mode=file에서 카메라 대신 정지 이미지(또는 검정 배경)를 프레임으로 제공
- CaptureDeviceManager / OpenCVFrameSource와 동일한 open/wait_ready/current_frame/close 인터페이스
- 카메라 없는 서버, CI, 테스트에서 전체 촬영 파이프라인 실행 가능

사용 예시:
    >>> capture = StillImageCapture(config)
    >>> source = await capture.open()
    >>> frame = source.current_frame()
    >>> await source.close()
"""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path
from typing import Optional

import cv2
import numpy as np

from geotagcam.capture import (
    CameraNotReadyError,
    NoCameraDeviceError,
    VideoDevice,
    VideoFrame,
)
from geotagcam.config.schema import AppConfig

logger = logging.getLogger(__name__)

_STILL_DEVICE_ID = "still:0"


class StillImageFrameSource:
    """
    한 장의 이미지를 계속 현재 프레임으로 내주는 프레임 소스입니다.

    이미지 로드가 끝나면 곧바로 ready 상태가 됩니다.
    """

    def __init__(self, image_path: Optional[Path], width: int, height: int) -> None:
        """
        파라미터:
            image_path: 프레임으로 쓸 이미지 경로. None이면 검정 프레임 생성
            width: 검정 프레임 가로 크기 (image_path가 있으면 무시)
            height: 검정 프레임 세로 크기 (image_path가 있으면 무시)
        """
        self._image_path = image_path
        self._fallback_size = (width, height)
        self._image: Optional[np.ndarray] = None
        self._frame_id: int = 0
        self._device = VideoDevice(
            device_id=_STILL_DEVICE_ID,
            label=image_path.name if image_path else "Black Frame",
            index=-1,
        )

    @property
    def device(self) -> VideoDevice:
        """가상 장치 정보를 반환합니다."""
        return self._device

    @property
    def is_ready(self) -> bool:
        """이미지가 로드되었으면 True."""
        return self._image is not None

    @property
    def negotiated_resolution(self) -> Optional[tuple[int, int]]:
        """로드된 이미지의 (가로, 세로). 로드 전에는 None."""
        if self._image is None:
            return None
        height, width = self._image.shape[:2]
        return width, height

    def set_lost_callback(self, callback) -> None:
        """정지 이미지는 준비 상태를 잃지 않으므로 콜백을 호출하지 않습니다."""

    async def start(self) -> None:
        """
        이미지를 로드합니다 (디코딩은 스레드에서 수행).

        에러:
            NoCameraDeviceError: 이미지 파일이 없거나 디코딩할 수 없을 때
        """
        if self._image_path is None:
            width, height = self._fallback_size
            self._image = _create_black_frame(width, height)
            logger.info(f"정지 이미지 캡처 시작: 검정 프레임 {width}x{height}")
            return

        if not self._image_path.exists():
            raise NoCameraDeviceError(f"정지 이미지 파일을 찾을 수 없습니다: {self._image_path}")

        image = await asyncio.to_thread(cv2.imread, str(self._image_path), cv2.IMREAD_COLOR)
        if image is None:
            raise NoCameraDeviceError(f"정지 이미지를 디코딩할 수 없습니다: {self._image_path}")

        self._image = image
        height, width = image.shape[:2]
        logger.info(f"정지 이미지 캡처 시작: {self._image_path} ({width}x{height})")

    async def wait_ready(self, timeout_sec: float) -> tuple[int, int]:
        """
        정지 이미지는 start() 직후 준비되므로 바로 해상도를 반환합니다.

        에러:
            CameraNotReadyError: start()가 호출되지 않았을 때
        """
        resolution = self.negotiated_resolution
        if resolution is None:
            raise CameraNotReadyError("정지 이미지가 아직 로드되지 않았습니다")
        return resolution

    def current_frame(self) -> VideoFrame:
        """
        정지 이미지를 새 VideoFrame으로 감싸 반환합니다.

        에러:
            CameraNotReadyError: 이미지 로드 전에 호출했을 때
        """
        if self._image is None:
            raise CameraNotReadyError("정지 이미지가 아직 로드되지 않았습니다")

        self._frame_id += 1
        height, width = self._image.shape[:2]
        return VideoFrame(
            frame_id=self._frame_id,
            timestamp_ns=time.time_ns(),
            width=width,
            height=height,
            pixel_format="bgr",
            data=self._image.tobytes(),
        )

    async def close(self) -> None:
        """로드된 이미지를 해제합니다."""
        self._image = None
        logger.info("정지 이미지 캡처 중지 완료")


class StillImageCapture:
    """
    CaptureDeviceManager 자리에 들어가는 파일 모드용 관리자입니다.

    camera.still_image 설정으로 StillImageFrameSource를 만들어 엽니다.
    """

    def __init__(self, config: AppConfig, image_path: Optional[str] = None) -> None:
        """
        파라미터:
            config: 전체 애플리케이션 설정 객체
            image_path: 설정값 대신 사용할 이미지 경로 (CLI --image)
        """
        still_config = config.camera.still_image
        path_str = image_path or still_config.image_path
        self._image_path = Path(path_str) if path_str else None
        self._width = still_config.width
        self._height = still_config.height

    async def open(
        self, preferred_resolution: Optional[tuple[int, int]] = None
    ) -> StillImageFrameSource:
        """
        정지 이미지 프레임 소스를 열어 반환합니다.

        preferred_resolution은 검정 프레임 크기에만 반영됩니다.
        """
        width, height = preferred_resolution or (self._width, self._height)
        source = StillImageFrameSource(self._image_path, width, height)
        await source.start()
        return source


# =============================================================================
# 모듈 레벨 헬퍼 함수
# =============================================================================

def _create_black_frame(width: int, height: int) -> np.ndarray:
    """
    BGR 포맷의 검정 프레임을 생성합니다.

    반환값:
        np.ndarray: shape (height, width, 3), dtype uint8
    """
    return np.zeros((height, width, 3), dtype=np.uint8)
