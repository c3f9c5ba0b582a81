"""
촬영 파이프라인 오케스트레이터 모듈입니다.

역할:
- 시작 시 두 준비 체인을 asyncio.gather로 동시에 실행
    카메라 체인: 장치 열기 → 첫 프레임(실제 해상도) 대기
    위치 체인:   위치 획득 → 역지오코딩 (항상 이 순서)
- 위치 + 주소 + 카메라 준비가 모두 참일 때만 촬영 허용
- 촬영: 현재 프레임 → 지도 스냅샷(settle 포함) → 합성 → 게시
- 촬영 중 재진입 방지 (asyncio.Lock, 겹친 요청은 상태 메시지와 함께 무시)
- 각 컴포넌트 에러는 경계에서 잡아 종류별 사용자 메시지로 변환 (자동 재시도 없음)
- 설정 핫스왑(apply_config) 및 종료(shutdown)

파이프라인 구조:
    [PositionProvider] → [ReverseGeocoder] ─┐
                                             ├─▶ capture_enabled ─▶ capture()
    [CaptureDeviceManager] → wait_ready ─────┘
    capture() = current_frame → MapSnapshotRenderer → GeotagCompositor → PhotoPublisher
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from geotagcam.capture import CameraError, CameraNotReadyError
from geotagcam.capture.device_manager import CaptureDeviceManager
from geotagcam.capture.still_image_capture import StillImageCapture
from geotagcam.compositor import CompositeError
from geotagcam.compositor.geotag_compositor import GeotagCompositor
from geotagcam.config.schema import AppConfig
from geotagcam.location import GeocodeError, LocationError
from geotagcam.location.position_provider import (
    PHASE_FAILED,
    PositionProvider,
    create_position_backend,
)
from geotagcam.location.reverse_geocoder import ReverseGeocoder
from geotagcam.logging import capture_context
from geotagcam.mapview.snapshot_renderer import MapSnapshotRenderer
from geotagcam.output import PublishedPhoto
from geotagcam.output.photo_publisher import PhotoPublisher
from geotagcam.session.context import SessionContext
from geotagcam.session.status_store import StatusStore

logger = logging.getLogger(__name__)

# 사용자 안내 메시지
MSG_WAIT_FOR_LOCATION = "위치 정보가 준비될 때까지 기다려 주세요."
MSG_CAPTURE_BUSY = "이전 촬영을 처리하는 중입니다. 잠시만 기다려 주세요."
MSG_LOCATE_BUSY = "이미 위치를 확인하는 중입니다."
MSG_CAMERA_OPENING = "카메라를 여는 중..."
MSG_CAMERA_READY = "카메라 준비 완료"
MSG_ADDRESS_LOOKUP = "주소를 확인하는 중..."
MSG_ADDRESS_READY = "주소 확인 완료"
MSG_CAPTURE_DONE = "촬영 완료"
MSG_CAPTURE_FAILED = "촬영 중 알 수 없는 오류가 발생했습니다. 다시 시도하세요."


def create_camera(config: AppConfig, image_path: Optional[str] = None):
    """
    system.mode에 맞는 카메라 관리자를 생성합니다.

    반환값:
        StillImageCapture (mode=file) | CaptureDeviceManager (mode=live)
    """
    if config.system.mode == "file":
        return StillImageCapture(config, image_path=image_path)
    return CaptureDeviceManager(config)


class CapturePipeline:
    """
    지오태그 촬영 세션 전체를 관리하는 오케스트레이터 클래스입니다.

    컴포넌트는 생성자에서 주입할 수 있고, 주입하지 않으면 설정으로 생성합니다.
    어떤 컴포넌트 에러도 이 클래스 밖으로 전파하지 않고 StatusStore 메시지로 바꿉니다.
    """

    def __init__(
        self,
        config: AppConfig,
        camera=None,
        position_provider: Optional[PositionProvider] = None,
        geocoder: Optional[ReverseGeocoder] = None,
        renderer: Optional[MapSnapshotRenderer] = None,
        compositor: Optional[GeotagCompositor] = None,
        publisher: Optional[PhotoPublisher] = None,
        status_store: Optional[StatusStore] = None,
        context: Optional[SessionContext] = None,
    ) -> None:
        self._config = config
        self._status_store = status_store or StatusStore()
        self._context = context or SessionContext()

        self._camera = camera or create_camera(config)
        self._position_provider = position_provider or PositionProvider(
            create_position_backend(config.location)
        )
        self._position_provider.set_status_callback(self._on_location_status)
        self._geocoder = geocoder or ReverseGeocoder(config.geocoder)
        self._renderer = renderer or MapSnapshotRenderer(config.map, context=self._context)
        self._compositor = compositor or GeotagCompositor(config)
        self._publisher = publisher or PhotoPublisher(config.output.filename_stem)

        # 카메라 체인이 성공하면 채워짐
        self._frame_source = None

        self._capture_lock = asyncio.Lock()
        self._locate_lock = asyncio.Lock()
        self._capture_sequence: int = 0

    # =========================================================================
    # 조회
    # =========================================================================

    @property
    def status_store(self) -> StatusStore:
        return self._status_store

    @property
    def context(self) -> SessionContext:
        return self._context

    @property
    def publisher(self) -> PhotoPublisher:
        return self._publisher

    @property
    def frame_source(self):
        return self._frame_source

    @property
    def capture_enabled(self) -> bool:
        """위치, 주소, 카메라 준비가 모두 참일 때만 True."""
        return (
            self._context.has_location()
            and self._frame_source is not None
            and self._frame_source.is_ready
        )

    # =========================================================================
    # 준비 체인
    # =========================================================================

    async def initialize(self) -> bool:
        """
        카메라 체인과 위치 체인을 동시에 실행합니다.

        반환값:
            bool: 두 체인이 모두 성공해 촬영 가능해졌으면 True
        """
        logger.info("촬영 세션 초기화 시작")
        self._status_store.set_phase("initializing")
        camera_ok, location_ok = await asyncio.gather(self._open_camera(), self.locate())
        logger.info(
            f"촬영 세션 초기화 완료: camera={camera_ok}, location={location_ok}, "
            f"capture_enabled={self.capture_enabled}"
        )
        return self.capture_enabled

    async def locate(self) -> bool:
        """
        위치 획득 → 역지오코딩을 순서대로 1회 실행합니다. 수동 재실행 가능합니다.

        역지오코딩이 실패하면 이전 AddressDetails를 그대로 둡니다.

        반환값:
            bool: 위치와 주소를 모두 새로 얻었으면 True
        """
        if self._locate_lock.locked():
            logger.info("위치 체인이 이미 실행 중이라 요청을 무시합니다")
            self._status_store.set_info(MSG_LOCATE_BUSY)
            return False

        async with self._locate_lock:
            location_config = self._config.location
            try:
                position = await self._position_provider.acquire(
                    timeout_ms=location_config.timeout_ms,
                    require_high_accuracy=location_config.high_accuracy,
                    maximum_age_ms=location_config.maximum_age_ms,
                )
            except LocationError as location_error:
                logger.error(f"위치 체인 중단: {type(location_error).__name__}")
                return False

            self._context.set_position(position)
            self._status_store.update_readiness(position_ready=True)

            self._status_store.set_info(MSG_ADDRESS_LOOKUP)
            try:
                address = await self._geocoder.lookup(position.latitude, position.longitude)
            except GeocodeError as geocode_error:
                logger.error(
                    f"역지오코딩 실패, 이전 주소 유지: {type(geocode_error).__name__}: {geocode_error}"
                )
                self._status_store.set_error(geocode_error.user_message, source="location")
                return False

            self._context.set_address(address)
            self._status_store.update_readiness(address_ready=True)
            self._status_store.clear_error(source="location")
            self._status_store.set_info(MSG_ADDRESS_READY)
            return True

    async def _open_camera(self) -> bool:
        """
        카메라 장치를 열고 첫 프레임이 올 때까지 기다립니다.

        반환값:
            bool: 카메라가 준비되었으면 True
        """
        self._status_store.set_info(MSG_CAMERA_OPENING)
        try:
            source = await self._camera.open()
        except CameraError as camera_error:
            logger.error(f"카메라 열기 실패: {type(camera_error).__name__}: {camera_error}")
            self._status_store.set_error(camera_error.user_message, source="camera")
            self._status_store.update_readiness(camera_ready=False)
            return False

        try:
            width, height = await source.wait_ready(self._config.camera.ready_timeout_sec)
        except CameraError as camera_error:
            logger.error(f"카메라 준비 실패, 장치 해제: {camera_error}")
            await source.close()
            self._status_store.set_error(camera_error.user_message, source="camera")
            self._status_store.update_readiness(camera_ready=False)
            return False

        logger.info(f"카메라 준비: {source.device.label}, {width}x{height}")
        source.set_lost_callback(self._on_camera_lost)
        self._frame_source = source
        self._status_store.update_readiness(camera_ready=True)
        self._status_store.set_info(MSG_CAMERA_READY)
        return True

    def _on_camera_lost(self, reason: str) -> None:
        """프레임 소스가 준비 상태를 잃으면 촬영을 막고 에러를 표시합니다."""
        logger.error(f"카메라 연결 끊김: {reason}")
        self._status_store.update_readiness(camera_ready=False)
        self._status_store.set_error(CameraNotReadyError.user_message, source="camera")

    def _on_location_status(self, phase: str, message: str) -> None:
        """PositionProvider 단계 통보를 상태 메시지로 옮깁니다."""
        if phase == PHASE_FAILED:
            self._status_store.set_error(message, source="location")
        else:
            self._status_store.set_info(message)

    # =========================================================================
    # 촬영
    # =========================================================================

    async def capture(self) -> Optional[PublishedPhoto]:
        """
        사진 1장을 촬영해 게시합니다.

        반환값:
            PublishedPhoto | None: 성공 시 게시 결과. 무시되었거나 실패하면 None
        """
        if self._capture_lock.locked():
            logger.warning("촬영이 이미 진행 중이라 요청을 무시합니다")
            self._status_store.set_info(MSG_CAPTURE_BUSY)
            return None

        async with self._capture_lock:
            if not self.capture_enabled:
                logger.info("선행 조건 미충족으로 촬영 요청 무시")
                self._status_store.set_info(MSG_WAIT_FOR_LOCATION)
                return None

            self._capture_sequence += 1
            with capture_context(self._capture_sequence):
                return await self._run_capture()

    async def _run_capture(self) -> Optional[PublishedPhoto]:
        self._status_store.begin_capture()
        succeeded = False

        # 촬영 시점의 위치/주소를 고정 (settle 대기 중 locate()가 바꿔도 영향 없음)
        position = self._context.position
        address = self._context.address

        try:
            frame = self._frame_source.current_frame()
            logger.info(f"프레임 획득: #{frame.frame_id} {frame.width}x{frame.height}")

            snapshot = await self._renderer.render(position.latitude, position.longitude)
            composite = await asyncio.to_thread(
                self._compositor.compose, frame, address, position, snapshot
            )
            photo = self._publisher.publish(composite)

            succeeded = True
            self._status_store.clear_error(source="capture")
            self._status_store.set_info(MSG_CAPTURE_DONE)
            return photo

        except (CameraError, CompositeError) as capture_error:
            logger.error(
                f"촬영 실패: {type(capture_error).__name__}: {capture_error}", exc_info=True
            )
            self._status_store.set_error(capture_error.user_message, source="capture")
            return None

        except Exception as unexpected_error:
            logger.error(
                f"촬영 중 예상치 못한 에러: {type(unexpected_error).__name__}: {unexpected_error}",
                exc_info=True,
            )
            self._status_store.set_error(MSG_CAPTURE_FAILED, source="capture")
            return None

        finally:
            self._status_store.end_capture(succeeded)

    # =========================================================================
    # 설정 / 종료
    # =========================================================================

    def apply_config(self, old_config: AppConfig, new_config: AppConfig) -> None:
        """
        설정 변경을 즉시 적용합니다 (핫스왑).

        ConfigManager.subscribe()에 콜백으로 등록되어 파일 변경 시 자동 호출됩니다.

        적용 범위:
        - GeotagCompositor: 폰트, 색상, 브랜딩, 인코딩 포맷/품질
        - MapSnapshotRenderer: 줌, 크기, settle, 타일 URL
        - PhotoPublisher: 다운로드 파일 이름
        - 위치 체인 파라미터 (다음 locate()부터)
        """
        self._config = new_config
        self._compositor.update_style(new_config)
        self._renderer.apply_config(new_config.map)
        self._publisher.set_filename_stem(new_config.output.filename_stem)
        logger.info("촬영 파이프라인 설정 핫스왑 완료")

    async def shutdown(self) -> None:
        """카메라, HTTP 세션, 지도 렌더러를 해제합니다."""
        logger.info("촬영 세션 종료 시작")

        if self._frame_source is not None:
            try:
                await self._frame_source.close()
            except Exception as exc:
                logger.error(f"카메라 해제 중 에러: {exc}", exc_info=True)
            self._frame_source = None
        self._status_store.update_readiness(camera_ready=False)

        await self._position_provider.close()
        await self._geocoder.close()
        await self._renderer.close()

        self._status_store.set_phase("idle")
        logger.info("촬영 세션 종료 완료")
