"""
지도 스냅샷 모듈 패키지

공통 데이터 타입 정의:
- MapView: 세션 동안 유지되는 지도 뷰 상태 (중심, 줌, 크기, 마커)
- MapSnapshot: 한 번의 촬영을 위해 래스터화한 지도 이미지
"""

from dataclasses import dataclass, field
from typing import Optional

from PIL import Image


@dataclass
class MapView:
    """
    세션 전체에서 하나만 유지되는 지도 뷰 상태입니다.

    MapSnapshotRenderer만 수정하고 다른 컴포넌트는 읽기만 합니다.

    필드:
        center_lat, center_lon: 뷰 중심 좌표
        zoom: 줌 레벨
        width, height: 현재 유효한 렌더링 표면 크기 (픽셀)
        marker: 마커 좌표 (lat, lon). 없으면 None
        pending_size: 다음 invalidate_size()에서 반영할 새 크기
    """
    center_lat: float
    center_lon: float
    zoom: int
    width: int
    height: int
    marker: Optional[tuple[float, float]] = None
    pending_size: Optional[tuple[int, int]] = field(default=None, repr=False)

    def set_view(self, latitude: float, longitude: float, zoom: int) -> None:
        """뷰 중심과 줌을 옮깁니다."""
        self.center_lat = latitude
        self.center_lon = longitude
        self.zoom = zoom

    def move_marker(self, latitude: float, longitude: float) -> None:
        """마커 위치를 옮깁니다."""
        self.marker = (latitude, longitude)

    def request_resize(self, width: int, height: int) -> None:
        """표면 크기 변경을 예약합니다 (invalidate_size() 때 반영)."""
        if (width, height) != (self.width, self.height):
            self.pending_size = (width, height)

    def invalidate_size(self) -> bool:
        """
        렌더링 표면 크기를 다시 확정합니다.

        반환값:
            bool: 크기가 실제로 바뀌었으면 True
        """
        if self.pending_size is None:
            return False
        self.width, self.height = self.pending_size
        self.pending_size = None
        return True


@dataclass
class MapSnapshot:
    """
    촬영 시점에 래스터화한 지도 이미지입니다.

    촬영마다 새로 만들며 촬영 간에 재사용하지 않습니다.

    필드:
        image: RGB PIL 이미지 (width x height)
        latitude, longitude: 렌더링 중심 좌표
        zoom: 줌 레벨
        width, height: 이미지 크기
        is_blank: 렌더링 실패로 배경만 채운 스냅샷이면 True
        tiles_requested: 요청한 타일 수
        tiles_loaded: 래스터화 시점까지 로드된 타일 수
    """
    image: Image.Image
    latitude: float
    longitude: float
    zoom: int
    width: int
    height: int
    is_blank: bool = False
    tiles_requested: int = 0
    tiles_loaded: int = 0
