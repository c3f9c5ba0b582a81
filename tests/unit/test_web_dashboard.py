"""
웹 대시보드 단위 테스트

검증 조건:
- HTTP 엔드포인트 (/api/health, /api/status) 정상 응답
- POST /api/capture, /api/locate 가 파이프라인을 호출하고 결과/메시지 반환
- /photo/preview 는 inline, /photo/download 는 attachment(geotagged_photo.jpg)
- 게시된 사진이 없으면 404
- WebSocket /ws/status 연결 시 현재 상태 수신
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from PIL import Image

from geotagcam.compositor import CompositeImage
from geotagcam.compositor.layout import compute_layout
from geotagcam.dashboard.web_dashboard import WebDashboard
from geotagcam.location import AddressDetails, Position
from geotagcam.output.photo_publisher import PhotoPublisher
from geotagcam.session.capture_pipeline import MSG_WAIT_FOR_LOCATION
from geotagcam.session.context import SessionContext
from geotagcam.session.status_store import StatusStore

JPEG_BYTES = b"\xff\xd8\xff\xe0fake-jpeg-body"


# =========================================================================
# 픽스처
# =========================================================================

class StubPipeline:
    """웹 대시보드가 사용하는 CapturePipeline 인터페이스만 흉내 내는 스텁."""

    def __init__(self) -> None:
        self.status_store = StatusStore()
        self.context = SessionContext()
        self.publisher = PhotoPublisher()
        self.ready = False
        self.capture_calls = 0
        self.locate_calls = 0

    async def capture(self):
        self.capture_calls += 1
        if not self.ready:
            self.status_store.set_info(MSG_WAIT_FOR_LOCATION)
            return None
        return self.publisher.publish(
            CompositeImage(
                width=64,
                height=48,
                image=Image.new("RGB", (64, 48)),
                layout=compute_layout(64, 48),
                encoded=JPEG_BYTES,
                mime_type="image/jpeg",
                extension="jpg",
                created_at=datetime.now(timezone.utc),
            )
        )

    async def locate(self) -> bool:
        self.locate_calls += 1
        self.context.set_position(Position(12.9716, 77.5946, datetime.now(timezone.utc)))
        self.context.set_address(
            AddressDetails(full_display_name="Bengaluru", city="Bengaluru", country="India")
        )
        self.status_store.set_info("주소 확인 완료")
        return True


@pytest.fixture
def pipeline():
    return StubPipeline()


@pytest.fixture
def dashboard(pipeline):
    return WebDashboard(pipeline, host="127.0.0.1", port=18765, refresh_interval_ms=200)


@pytest.fixture
def test_client(dashboard):
    """FastAPI TestClient를 반환합니다."""
    from fastapi.testclient import TestClient
    return TestClient(dashboard.app)


# =========================================================================
# 상태 엔드포인트 테스트
# =========================================================================

class TestStatusEndpoints:
    def test_health_returns_ok(self, test_client):
        """GET /api/health 가 status=ok를 반환한다."""
        response = test_client.get("/api/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert "ts" in data

    def test_status_initial(self, test_client):
        """위치/주소/사진이 없으면 null로 내려준다."""
        data = test_client.get("/api/status").json()
        assert data["status"]["capture_enabled"] is False
        assert data["status"]["phase"] == "idle"
        assert data["position"] is None
        assert data["address"] is None
        assert data["photo"] is None

    def test_status_reflects_store(self, test_client, pipeline):
        pipeline.status_store.set_error("위치 권한이 거부되었습니다.", source="location")
        data = test_client.get("/api/status").json()
        assert data["status"]["error_message"] == "위치 권한이 거부되었습니다."


# =========================================================================
# 조작 엔드포인트 테스트
# =========================================================================

class TestActions:
    def test_locate_updates_context(self, test_client, pipeline):
        response = test_client.post("/api/locate")
        assert response.status_code == 200
        assert response.json()["located"] is True
        assert pipeline.locate_calls == 1

        data = test_client.get("/api/status").json()
        assert data["position"]["latitude"] == pytest.approx(12.9716)
        assert data["address"]["city"] == "Bengaluru"

    def test_capture_not_ready_returns_409(self, test_client, pipeline):
        response = test_client.post("/api/capture")
        assert response.status_code == 409
        body = response.json()
        assert body["captured"] is False
        assert body["message"] == MSG_WAIT_FOR_LOCATION

    def test_capture_success(self, test_client, pipeline):
        pipeline.ready = True
        response = test_client.post("/api/capture")
        assert response.status_code == 200
        body = response.json()
        assert body["captured"] is True
        assert body["sequence"] == 1
        assert body["filename"] == "geotagged_photo.jpg"

        photo = test_client.get("/api/status").json()["photo"]
        assert photo["sequence"] == 1
        assert photo["mime_type"] == "image/jpeg"


# =========================================================================
# 사진 엔드포인트 테스트
# =========================================================================

class TestPhotoEndpoints:
    def test_preview_404_without_photo(self, test_client):
        assert test_client.get("/photo/preview").status_code == 404
        assert test_client.get("/photo/download").status_code == 404

    def test_preview_inline(self, test_client, pipeline):
        pipeline.ready = True
        test_client.post("/api/capture")

        response = test_client.get("/photo/preview")
        assert response.status_code == 200
        assert response.headers["content-type"] == "image/jpeg"
        assert "content-disposition" not in response.headers
        assert response.content == JPEG_BYTES

    def test_download_attachment(self, test_client, pipeline):
        pipeline.ready = True
        test_client.post("/api/capture")

        response = test_client.get("/photo/download")
        assert response.status_code == 200
        assert response.headers["content-disposition"] == 'attachment; filename="geotagged_photo.jpg"'
        assert response.content == JPEG_BYTES


# =========================================================================
# WebSocket 테스트
# =========================================================================

class TestWebSocket:
    def test_ws_sends_status_on_connect(self, test_client, pipeline):
        pipeline.status_store.set_info("카메라를 여는 중...")
        with test_client.websocket_connect("/ws/status") as websocket:
            data = websocket.receive_json()
        assert data["status"]["info_message"] == "카메라를 여는 중..."
        assert "photo" in data

    def test_ws_client_removed_after_disconnect(self, test_client, dashboard):
        with test_client.websocket_connect("/ws/status") as websocket:
            websocket.receive_json()
        assert len(dashboard._clients) == 0
