"""
정지 이미지 캡처 단위 테스트

검증 조건:
- 이미지 경로 없이 열면 설정 크기의 검정 프레임
- 이미지 파일을 열면 파일 크기가 협상 해상도
- 파일이 없거나 디코딩 불가면 NoCameraDeviceError
- start() 전 current_frame()은 CameraNotReadyError
"""

from __future__ import annotations

import cv2
import numpy as np
import pytest

from geotagcam.capture import CameraNotReadyError, NoCameraDeviceError
from geotagcam.capture.still_image_capture import StillImageCapture, StillImageFrameSource
from geotagcam.config.schema import AppConfig


@pytest.fixture
def image_file(tmp_path):
    path = tmp_path / "street.png"
    image = np.zeros((300, 400, 3), dtype=np.uint8)
    image[:, :, 2] = 200  # 빨강 (BGR)
    cv2.imwrite(str(path), image)
    return path


@pytest.mark.asyncio
async def test_black_frame_when_no_image():
    """경로가 없으면 still_image 크기의 검정 프레임을 준다."""
    config = AppConfig()
    config.camera.still_image.width = 320
    config.camera.still_image.height = 240

    source = await StillImageCapture(config).open()
    assert source.is_ready is True
    assert await source.wait_ready(1.0) == (320, 240)

    frame = source.current_frame()
    assert (frame.width, frame.height) == (320, 240)
    assert frame.pixel_format == "bgr"
    assert set(frame.data) == {0}
    await source.close()
    assert source.is_ready is False


@pytest.mark.asyncio
async def test_image_file_resolution(image_file):
    source = await StillImageCapture(AppConfig(), image_path=str(image_file)).open()
    assert source.negotiated_resolution == (400, 300)
    assert source.device.label == "street.png"

    frame = source.current_frame()
    pixels = np.frombuffer(frame.data, dtype=np.uint8).reshape(300, 400, 3)
    assert pixels[0, 0].tolist() == [0, 0, 200]


@pytest.mark.asyncio
async def test_image_path_from_config(image_file):
    config = AppConfig()
    config.camera.still_image.image_path = str(image_file)
    source = await StillImageCapture(config).open()
    assert source.negotiated_resolution == (400, 300)


@pytest.mark.asyncio
async def test_frame_ids_increase(image_file):
    source = await StillImageCapture(AppConfig(), image_path=str(image_file)).open()
    first = source.current_frame().frame_id
    second = source.current_frame().frame_id
    assert second == first + 1


@pytest.mark.asyncio
async def test_missing_file_raises(tmp_path):
    with pytest.raises(NoCameraDeviceError):
        await StillImageCapture(AppConfig(), image_path=str(tmp_path / "missing.jpg")).open()


@pytest.mark.asyncio
async def test_undecodable_file_raises(tmp_path):
    path = tmp_path / "broken.jpg"
    path.write_bytes(b"not an image")
    with pytest.raises(NoCameraDeviceError):
        await StillImageCapture(AppConfig(), image_path=str(path)).open()


@pytest.mark.asyncio
async def test_not_ready_before_start():
    source = StillImageFrameSource(None, 100, 100)
    with pytest.raises(CameraNotReadyError):
        source.current_frame()
    with pytest.raises(CameraNotReadyError):
        await source.wait_ready(1.0)
