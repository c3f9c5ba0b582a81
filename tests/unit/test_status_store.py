"""
세션 상태 저장소 단위 테스트

검증 조건:
- capture_enabled는 카메라/위치/주소 준비가 모두 참일 때만 True
- 에러 메시지는 같은 체인(source)에서만 지워짐
- 촬영 시작/종료 시 단계와 통계 갱신
- get_status()는 복사본 반환
"""

from __future__ import annotations

from geotagcam.session.status_store import StatusStore


def test_initial_status():
    status = StatusStore().get_status()
    assert status.phase == "idle"
    assert status.capture_enabled is False
    assert status.capture_count == 0
    assert status.updated_at_ns > 0


def test_capture_enabled_requires_all_three():
    store = StatusStore()
    store.set_phase("initializing")
    assert store.update_readiness(camera_ready=True) is False
    assert store.update_readiness(position_ready=True) is False
    assert store.update_readiness(address_ready=True) is True
    assert store.get_status().phase == "ready"

    assert store.update_readiness(camera_ready=False) is False
    assert store.get_status().capture_enabled is False


def test_info_and_error_messages():
    store = StatusStore()
    store.set_info("위치 권한을 요청하는 중...")
    store.set_error("카메라를 찾지 못했습니다", source="camera")
    status = store.get_status()
    assert status.info_message == "위치 권한을 요청하는 중..."
    assert status.error_message == "카메라를 찾지 못했습니다"


def test_clear_error_only_for_same_source():
    """위치 체인 성공이 카메라 에러를 지우지 않는다."""
    store = StatusStore()
    store.set_error("카메라 에러", source="camera")
    store.clear_error(source="location")
    assert store.get_status().error_message == "카메라 에러"

    store.clear_error(source="camera")
    assert store.get_status().error_message == ""


def test_clear_error_without_source_clears_any():
    store = StatusStore()
    store.set_error("무언가 실패", source="capture")
    store.clear_error()
    assert store.get_status().error_message == ""


def test_capture_lifecycle():
    store = StatusStore()
    store.update_readiness(camera_ready=True, position_ready=True, address_ready=True)

    store.begin_capture()
    status = store.get_status()
    assert status.capture_in_progress is True
    assert status.phase == "capturing"

    store.end_capture(succeeded=True)
    status = store.get_status()
    assert status.capture_in_progress is False
    assert status.phase == "ready"
    assert status.capture_count == 1
    assert status.last_capture_at_ns > 0


def test_failed_capture_does_not_count():
    store = StatusStore()
    store.begin_capture()
    store.end_capture(succeeded=False)
    status = store.get_status()
    assert status.capture_count == 0
    assert status.last_capture_at_ns == 0
    assert status.phase == "idle"


def test_get_status_returns_copy():
    store = StatusStore()
    snapshot = store.get_status()
    snapshot.info_message = "변경"
    assert store.get_status().info_message == ""
