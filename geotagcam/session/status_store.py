"""
공유 세션 상태 저장소 모듈입니다.

역할:
- 파이프라인과 웹 인터페이스가 공유하는 thread-safe 상태 저장소
- 안내 메시지, 에러 메시지, 단계, 준비 플래그(카메라/위치/주소), 촬영 통계를 중앙 관리
- capture_enabled는 세 준비 플래그로부터만 계산 (직접 설정 불가)
- 웹 대시보드가 폴링하여 현재 세션 상태를 표시

사용 예시:
    >>> store = StatusStore()
    >>> store.set_info("위치 권한을 요청하는 중...")
    >>> store.update_readiness(position_ready=True)
    >>> status = store.get_status()
"""

from __future__ import annotations

import threading
import time
from dataclasses import replace
from typing import Optional

from geotagcam.session import SessionStatus


class StatusStore:
    """
    세션 상태를 중앙에서 관리하는 thread-safe 저장소입니다.

    모든 공개 메서드는 RLock으로 보호되며, get_status()는 복사본을 반환합니다.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._status = SessionStatus(updated_at_ns=time.time_ns())
        # 마지막 에러 메시지를 낸 체인 이름
        self._error_source: str = ""

    # =========================================================================
    # 메시지
    # =========================================================================

    def set_info(self, message: str) -> None:
        """안내 메시지를 갱신합니다."""
        with self._lock:
            self._status.info_message = message
            self._touch()

    def set_error(self, message: str, source: str = "") -> None:
        """
        에러 메시지를 갱신합니다.

        파라미터:
            message: 사용자에게 보여줄 에러 메시지
            source: 에러를 낸 체인 ("camera" | "location" | "capture" 등)
        """
        with self._lock:
            self._status.error_message = message
            self._error_source = source
            self._touch()

    def clear_error(self, source: str = "") -> None:
        """
        에러 메시지를 지웁니다.

        source를 주면 마지막 에러가 같은 체인에서 났을 때만 지웁니다.
        """
        with self._lock:
            if source and self._error_source != source:
                return
            self._status.error_message = ""
            self._error_source = ""
            self._touch()

    def set_phase(self, phase: str) -> None:
        """현재 단계를 갱신합니다."""
        with self._lock:
            self._status.phase = phase
            self._touch()

    # =========================================================================
    # 준비 상태
    # =========================================================================

    def update_readiness(
        self,
        camera_ready: Optional[bool] = None,
        position_ready: Optional[bool] = None,
        address_ready: Optional[bool] = None,
    ) -> bool:
        """
        준비 플래그를 갱신하고 capture_enabled를 다시 계산합니다.

        반환값:
            bool: 갱신 후 capture_enabled
        """
        with self._lock:
            status = self._status
            if camera_ready is not None:
                status.camera_ready = camera_ready
            if position_ready is not None:
                status.position_ready = position_ready
            if address_ready is not None:
                status.address_ready = address_ready
            status.capture_enabled = (
                status.camera_ready and status.position_ready and status.address_ready
            )
            if status.capture_enabled and status.phase in ("initializing", "locating"):
                status.phase = "ready"
            self._touch()
            return status.capture_enabled

    # =========================================================================
    # 촬영 통계
    # =========================================================================

    def begin_capture(self) -> None:
        """촬영 시작을 기록합니다."""
        with self._lock:
            self._status.capture_in_progress = True
            self._status.phase = "capturing"
            self._touch()

    def end_capture(self, succeeded: bool) -> None:
        """
        촬영 종료를 기록합니다.

        파라미터:
            succeeded: True이면 촬영 횟수와 마지막 촬영 시각을 갱신
        """
        with self._lock:
            status = self._status
            status.capture_in_progress = False
            status.phase = "ready" if status.capture_enabled else "idle"
            if succeeded:
                status.capture_count += 1
                status.last_capture_at_ns = time.time_ns()
            self._touch()

    def get_status(self) -> SessionStatus:
        """현재 상태의 복사본을 반환합니다."""
        with self._lock:
            return replace(self._status)

    def _touch(self) -> None:
        self._status.updated_at_ns = time.time_ns()
