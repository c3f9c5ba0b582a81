"""
카메라 장치 선택 및 라이브 프레임 공급 모듈입니다.

역할:
- 비디오 입력 장치 열거 (sysfs /sys/class/video4linux, 없으면 OpenCV 인덱스 탐색)
- 라벨에 "back"/"rear"가 들어간 장치 우선 선택, 없으면 facing_mode_hint로 선택
- 요청 해상도(기본 4096x3072)로 장치를 열고 실제 협상된 해상도를 보고
- 백그라운드 리더 태스크가 최신 프레임을 유지, current_frame()은 동기 호출

준비 상태:
    첫 프레임이 디코딩되어 실제 해상도를 알게 된 뒤에만 ready가 됩니다.
    그 전에 current_frame()을 호출하면 CameraNotReadyError가 발생합니다.

사용 예시:
    >>> manager = CaptureDeviceManager(config)
    >>> source = await manager.open((4096, 3072))
    >>> await source.wait_ready(10.0)
    >>> frame = source.current_frame()
    >>> await source.close()
"""

from __future__ import annotations

import asyncio
import logging
import os
import threading
import time
from pathlib import Path
from typing import Any, Callable, Optional

import cv2
import numpy as np

from geotagcam.capture import (
    CameraNotReadyError,
    CameraPermissionDeniedError,
    CaptureRequest,
    NoCameraDeviceError,
    VideoDevice,
    VideoFrame,
)
from geotagcam.config.schema import AppConfig

logger = logging.getLogger(__name__)

# video4linux sysfs 경로 (Linux 전용)
_SYSFS_VIDEO_DIR = Path("/sys/class/video4linux")

# 전면 카메라로 판단하는 라벨 키워드 ("environment" 힌트에서 제외)
_FRONT_LABEL_KEYWORDS = ("front", "user", "selfie", "facetime")

# 연속 읽기 실패 허용 횟수 (초과 시 리더 태스크 종료)
_MAX_CONSECUTIVE_READ_FAILURES = 30
_READ_RETRY_INTERVAL_SEC = 0.1

# 장치 열거 함수 타입: (최대 탐색 인덱스 수) -> 장치 목록
DeviceEnumerator = Callable[[int], list[VideoDevice]]
# 장치 열기 함수 타입: (인덱스, 가로, 세로) -> cv2.VideoCapture 호환 객체
CaptureOpener = Callable[[int, int, int], Any]
# 리더가 죽었을 때 호출되는 콜백 타입: (사유) -> None
CameraLostCallback = Callable[[str], None]


# =============================================================================
# 장치 열거 / 선택
# =============================================================================

def enumerate_video_devices(max_probe_devices: int = 4) -> list[VideoDevice]:
    """
    사용 가능한 비디오 입력 장치 목록을 반환합니다.

    Linux에서는 sysfs의 장치 이름(라벨)을 읽고,
    sysfs가 없으면 OpenCV로 0..max_probe_devices-1 인덱스를 직접 열어봅니다.
    """
    devices: list[VideoDevice] = []

    if _SYSFS_VIDEO_DIR.is_dir():
        for entry in sorted(_SYSFS_VIDEO_DIR.glob("video*"), key=_sysfs_index):
            index = _sysfs_index(entry)
            if index < 0:
                continue
            name_file = entry / "name"
            try:
                label = name_file.read_text(encoding="utf-8").strip()
            except OSError:
                label = entry.name
            devices.append(VideoDevice(device_id=f"/dev/{entry.name}", label=label, index=index))
        logger.debug(f"sysfs 장치 열거: {[d.label for d in devices]}")
        return devices

    for index in range(max_probe_devices):
        capture = cv2.VideoCapture(index)
        try:
            if capture.isOpened():
                devices.append(
                    VideoDevice(device_id=f"camera:{index}", label=f"Camera {index}", index=index)
                )
        finally:
            capture.release()

    logger.debug(f"OpenCV 인덱스 탐색 결과: {len(devices)}개 장치")
    return devices


def select_device(devices: list[VideoDevice], keywords: list[str]) -> Optional[VideoDevice]:
    """
    라벨에 키워드 중 하나라도 포함된 첫 번째 장치를 반환합니다 (대소문자 무시).

    반환값:
        VideoDevice | None: 일치 장치가 없으면 None
    """
    lowered_keywords = [keyword.lower() for keyword in keywords]
    for device in devices:
        label = device.label.lower()
        if any(keyword in label for keyword in lowered_keywords):
            return device
    return None


def build_capture_request(
    devices: list[VideoDevice],
    keywords: list[str],
    width: int,
    height: int,
    facing_mode_hint: str = "environment",
) -> CaptureRequest:
    """
    장치 목록으로부터 열기 요청을 만듭니다.

    키워드 일치 장치가 있으면 device_id를 지정하고,
    없으면 device_id 없이 방향 힌트만 담아 요청합니다.
    """
    preferred = select_device(devices, keywords)
    if preferred is not None:
        return CaptureRequest(width=width, height=height, preferred_device_id=preferred.device_id)
    return CaptureRequest(width=width, height=height, facing_mode_hint=facing_mode_hint)


def resolve_device(devices: list[VideoDevice], request: CaptureRequest) -> VideoDevice:
    """
    요청을 실제로 열 장치 하나로 해석합니다.

    에러:
        NoCameraDeviceError: 장치가 하나도 없거나 지정 device_id가 목록에 없을 때
    """
    if not devices:
        raise NoCameraDeviceError("비디오 입력 장치가 없습니다")

    if request.preferred_device_id is not None:
        for device in devices:
            if device.device_id == request.preferred_device_id:
                return device
        raise NoCameraDeviceError(f"요청한 장치를 찾을 수 없습니다: {request.preferred_device_id}")

    if request.facing_mode_hint == "environment":
        candidates = [
            device for device in devices
            if not any(keyword in device.label.lower() for keyword in _FRONT_LABEL_KEYWORDS)
        ]
    else:
        candidates = [
            device for device in devices
            if any(keyword in device.label.lower() for keyword in _FRONT_LABEL_KEYWORDS)
        ]
    # 힌트에 맞는 장치가 없으면 첫 번째 장치로 대체
    return candidates[0] if candidates else devices[0]


def open_opencv_capture(index: int, width: int, height: int) -> Any:
    """
    OpenCV로 장치를 열고 요청 해상도를 설정합니다.

    장치가 더 낮은 해상도로 협상할 수 있으므로 실제 해상도는 첫 프레임에서 확인합니다.

    에러:
        NoCameraDeviceError: 장치를 열 수 없을 때
    """
    capture = cv2.VideoCapture(index)
    if not capture.isOpened():
        capture.release()
        raise NoCameraDeviceError(f"장치를 열 수 없습니다: index={index}")

    capture.set(cv2.CAP_PROP_FRAME_WIDTH, width)
    capture.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
    return capture


# =============================================================================
# 라이브 프레임 소스
# =============================================================================

class OpenCVFrameSource:
    """
    열린 cv2.VideoCapture에서 최신 프레임을 계속 읽어두는 프레임 소스입니다.

    아키텍처:
        [asyncio.to_thread(capture.read)]
            ↓ _reader_loop() (백그라운드 태스크)
        [최신 프레임 1장 보관]
            ↓ current_frame() (동기)
        [VideoFrame]

    read()와 release()는 같은 잠금으로 직렬화되어, 스레드에서 진행 중인
    read()가 끝나기 전에는 장치가 해제되지 않습니다.
    """

    def __init__(self, capture: Any, device: VideoDevice, request: CaptureRequest) -> None:
        self._capture = capture
        self._device = device
        self._request = request

        self._running: bool = False
        self._reader_task: Optional[asyncio.Task] = None
        self._ready_event: asyncio.Event = asyncio.Event()
        self._io_lock = threading.Lock()
        self._released: bool = False
        self._on_lost: Optional[CameraLostCallback] = None

        # 최신 프레임 (BGR ndarray)과 읽은 시각
        self._latest_image: Optional[np.ndarray] = None
        self._latest_timestamp_ns: int = 0
        self._frame_id: int = 0
        self._negotiated_resolution: Optional[tuple[int, int]] = None

    @property
    def device(self) -> VideoDevice:
        """열린 장치 정보를 반환합니다."""
        return self._device

    @property
    def is_ready(self) -> bool:
        """실제 해상도가 확보되어 프레임을 내줄 수 있으면 True."""
        return self._ready_event.is_set()

    @property
    def negotiated_resolution(self) -> Optional[tuple[int, int]]:
        """장치가 실제로 내어준 (가로, 세로) 해상도. 준비 전에는 None."""
        return self._negotiated_resolution

    def set_lost_callback(self, callback: Optional[CameraLostCallback]) -> None:
        """리더가 연속 실패로 종료되어 준비 상태를 잃었을 때 호출할 콜백을 등록합니다."""
        self._on_lost = callback

    async def start(self) -> None:
        """백그라운드 리더 태스크를 시작합니다."""
        if self._running:
            logger.warning("프레임 리더가 이미 실행 중입니다")
            return
        self._running = True
        self._reader_task = asyncio.create_task(self._reader_loop(), name="camera_frame_reader")
        logger.info(
            f"카메라 스트림 시작: device={self._device.label} ({self._device.device_id}), "
            f"요청 해상도={self._request.width}x{self._request.height}"
        )

    async def wait_ready(self, timeout_sec: float) -> tuple[int, int]:
        """
        첫 프레임이 도착할 때까지 기다립니다.

        반환값:
            tuple[int, int]: 협상된 (가로, 세로) 해상도

        에러:
            CameraNotReadyError: timeout_sec 안에 첫 프레임이 오지 않았을 때
        """
        try:
            await asyncio.wait_for(self._ready_event.wait(), timeout=timeout_sec)
        except asyncio.TimeoutError as timeout_error:
            raise CameraNotReadyError(
                f"{timeout_sec}초 안에 첫 프레임을 받지 못했습니다"
            ) from timeout_error
        if self._negotiated_resolution is None:
            raise CameraNotReadyError("스트림 메타데이터가 아직 준비되지 않았습니다")
        return self._negotiated_resolution

    def current_frame(self) -> VideoFrame:
        """
        가장 최근에 읽은 프레임을 VideoFrame으로 반환합니다.

        에러:
            CameraNotReadyError: 아직 첫 프레임이 도착하지 않았을 때
        """
        image = self._latest_image
        if not self.is_ready or image is None:
            raise CameraNotReadyError("스트림 메타데이터가 아직 준비되지 않았습니다")

        height, width = image.shape[:2]
        return VideoFrame(
            frame_id=self._frame_id,
            timestamp_ns=self._latest_timestamp_ns,
            width=width,
            height=height,
            pixel_format="bgr",
            data=image.tobytes(),
        )

    async def close(self) -> None:
        """리더 태스크를 취소하고 장치를 해제합니다."""
        self._running = False

        if self._reader_task is not None and not self._reader_task.done():
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
        self._reader_task = None
        self._ready_event.clear()

        # 취소된 태스크의 read()는 스레드에서 계속 돌 수 있으므로 잠금을 기다린다
        await asyncio.to_thread(self._release)
        logger.info(f"카메라 장치 해제 완료: {self._device.device_id}")

    def _read(self) -> tuple[bool, Optional[np.ndarray]]:
        with self._io_lock:
            if self._released:
                return False, None
            return self._capture.read()

    def _release(self) -> None:
        with self._io_lock:
            if self._released:
                return
            self._capture.release()
            self._released = True

    def _mark_lost(self, reason: str) -> None:
        """준비 상태를 해제하고 등록된 콜백에 알립니다."""
        self._running = False
        self._ready_event.clear()
        self._latest_image = None
        if self._on_lost is not None:
            self._on_lost(reason)

    async def _reader_loop(self) -> None:
        """
        capture.read()를 스레드에서 반복 호출해 최신 프레임을 갱신합니다.

        연속 실패가 _MAX_CONSECUTIVE_READ_FAILURES를 넘으면 준비 상태를 해제하고 종료합니다.
        """
        consecutive_failures = 0

        while self._running:
            ok, image = await asyncio.to_thread(self._read)

            if not ok or image is None:
                consecutive_failures += 1
                if consecutive_failures >= _MAX_CONSECUTIVE_READ_FAILURES:
                    logger.error(
                        f"프레임 읽기 {consecutive_failures}회 연속 실패, 리더 종료: "
                        f"{self._device.device_id}"
                    )
                    self._mark_lost(f"프레임 읽기 {consecutive_failures}회 연속 실패")
                    return
                await asyncio.sleep(_READ_RETRY_INTERVAL_SEC)
                continue

            consecutive_failures = 0
            self._latest_image = image
            self._latest_timestamp_ns = time.time_ns()
            self._frame_id += 1

            if not self._ready_event.is_set():
                height, width = image.shape[:2]
                self._negotiated_resolution = (width, height)
                self._ready_event.set()
                logger.info(
                    f"카메라 준비 완료: 협상 해상도={width}x{height} "
                    f"(요청 {self._request.width}x{self._request.height})"
                )

            # 가짜 장치처럼 read()가 즉시 반환하는 경우에도 루프를 양보
            await asyncio.sleep(0)


# =============================================================================
# 장치 관리자
# =============================================================================

class CaptureDeviceManager:
    """
    장치 열거, 선택, 열기를 담당하는 관리자 클래스입니다.

    enumerator/opener를 주입하면 실제 장치 없이 테스트할 수 있습니다.
    """

    def __init__(
        self,
        config: AppConfig,
        enumerator: Optional[DeviceEnumerator] = None,
        opener: Optional[CaptureOpener] = None,
    ) -> None:
        self._config = config
        self._enumerator = enumerator or enumerate_video_devices
        self._opener = opener or open_opencv_capture

    async def open(self, preferred_resolution: Optional[tuple[int, int]] = None) -> OpenCVFrameSource:
        """
        후면 카메라를 우선으로 장치를 열고 프레임 소스를 시작합니다.

        파라미터:
            preferred_resolution: 요청 (가로, 세로). None이면 camera 설정값 사용

        반환값:
            OpenCVFrameSource: 시작된 프레임 소스 (wait_ready()로 준비 대기)

        에러:
            NoCameraDeviceError: 장치가 없거나 열 수 없을 때
            CameraPermissionDeniedError: 장치 노드 접근 권한이 없을 때
        """
        camera_config = self._config.camera
        width, height = preferred_resolution or (camera_config.width, camera_config.height)

        devices = await asyncio.to_thread(self._enumerator, camera_config.max_probe_devices)
        logger.info(f"비디오 입력 장치 {len(devices)}개 발견: {[d.label for d in devices]}")

        request = build_capture_request(
            devices,
            camera_config.preferred_label_keywords,
            width,
            height,
            camera_config.facing_mode_hint,
        )
        device = resolve_device(devices, request)
        _check_device_permission(device)

        if request.preferred_device_id is None:
            logger.info(
                f"후면 카메라 라벨 없음, facing_mode_hint={request.facing_mode_hint}로 "
                f"장치 선택: {device.label}"
            )

        capture = await asyncio.to_thread(self._opener, device.index, width, height)
        source = OpenCVFrameSource(capture, device, request)
        await source.start()
        return source


def _check_device_permission(device: VideoDevice) -> None:
    """
    /dev/videoN 노드에 읽기/쓰기 권한이 있는지 확인합니다.

    에러:
        CameraPermissionDeniedError: 권한이 없을 때
    """
    if not device.device_id.startswith("/dev/"):
        return
    if os.path.exists(device.device_id) and not os.access(device.device_id, os.R_OK | os.W_OK):
        raise CameraPermissionDeniedError(f"장치 접근 권한이 없습니다: {device.device_id}")


def _sysfs_index(entry: Path) -> int:
    """sysfs 항목 이름 "videoN"에서 N을 꺼냅니다. 형식이 다르면 -1."""
    suffix = entry.name[len("video"):]
    return int(suffix) if suffix.isdigit() else -1
