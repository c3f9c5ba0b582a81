"""
세션 컨텍스트 모듈입니다.

역할:
- 세션 동안 공유되는 현재 위치, 주소, 지도 뷰를 한 객체에 명시적으로 보관
- 필드마다 쓰는 쪽이 하나뿐이도록 setter를 분리
    position  ← 위치 체인 (PositionProvider 결과)
    address   ← 역지오코딩 체인 (ReverseGeocoder 결과)
    map_view  ← MapSnapshotRenderer
- 값은 통째로 교체만 하고 부분 수정하지 않음
"""

from __future__ import annotations

import logging
from typing import Optional

from geotagcam.location import AddressDetails, Position
from geotagcam.mapview import MapView

logger = logging.getLogger(__name__)


class SessionContext:
    """현재 세션의 위치, 주소, 지도 뷰 보관소입니다."""

    def __init__(self) -> None:
        self._position: Optional[Position] = None
        self._address: Optional[AddressDetails] = None
        self._map_view: Optional[MapView] = None

    @property
    def position(self) -> Optional[Position]:
        return self._position

    @property
    def address(self) -> Optional[AddressDetails]:
        return self._address

    @property
    def map_view(self) -> Optional[MapView]:
        return self._map_view

    def set_position(self, position: Position) -> None:
        """위치 체인만 호출합니다."""
        self._position = position
        logger.debug(f"세션 위치 갱신: {position.latitude:.6f}, {position.longitude:.6f}")

    def set_address(self, address: AddressDetails) -> None:
        """역지오코딩 체인만 호출합니다. 이전 주소를 통째로 교체합니다."""
        self._address = address
        logger.debug(f"세션 주소 갱신: {address.full_display_name}")

    def set_map_view(self, map_view: Optional[MapView]) -> None:
        """MapSnapshotRenderer만 호출합니다."""
        self._map_view = map_view

    def has_location(self) -> bool:
        """Position과 AddressDetails가 모두 있으면 True."""
        return self._position is not None and self._address is not None
