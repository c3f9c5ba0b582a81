"""
지도 스냅샷 렌더러 모듈입니다.

역할:
- 세션당 하나의 MapView 유지: 첫 호출에 뷰와 마커 생성, 이후엔 재중심 + 마커 이동
- 재중심 후 invalidate_size()로 표면 크기 재확정
- 타일 로딩을 백그라운드로 시작하고 settle 대기(기본 1500ms) 후 래스터화
  wait_for_tiles=True이면 모든 타일 완료 신호를 settle 한도 안에서 대기
- 로드된 타일을 이어 붙이고 중심에 핀 마커를 그림
- 어떤 실패든 배경만 채운 빈 스냅샷으로 대체 (촬영을 중단시키지 않음)

사용 예시:
    >>> renderer = MapSnapshotRenderer(config.map, context=session_context)
    >>> snapshot = await renderer.render(12.9716, 77.5946, zoom=15)
    >>> snapshot.image.size
    (400, 400)
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

from PIL import Image, ImageDraw

from geotagcam.config.schema import MapConfig
from geotagcam.mapview import MapSnapshot, MapView
from geotagcam.mapview.tiles import TileFetcher, TileKey, lat_lon_to_world_px, visible_tiles

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


class MapSnapshotRenderer:
    """
    지도 뷰를 재사용하며 촬영마다 새 스냅샷을 만드는 렌더러입니다.

    뷰 상태는 이 렌더러만 수정합니다. context가 있으면 뷰 생성 시 등록합니다.
    """

    def __init__(
        self,
        config: MapConfig,
        context=None,
        tile_fetcher: Optional[TileFetcher] = None,
        sleep: SleepFunc = asyncio.sleep,
    ) -> None:
        """
        파라미터:
            config: map 섹션 설정
            context: SessionContext (map_view 기록용, 없어도 동작)
            tile_fetcher: 주입용 타일 다운로더 (None이면 설정으로 생성)
            sleep: settle 대기 함수 (테스트에서 교체)
        """
        self._config = config
        self._context = context
        self._tile_fetcher = tile_fetcher or TileFetcher(
            url_template=config.tile_url,
            user_agent=config.user_agent,
            timeout_sec=config.tile_timeout_sec,
            cache_size=config.tile_cache_size,
        )
        self._sleep = sleep
        self._view: Optional[MapView] = None

    @property
    def view(self) -> Optional[MapView]:
        """현재 지도 뷰 (첫 render() 전에는 None)."""
        return self._view

    async def render(
        self,
        latitude: float,
        longitude: float,
        zoom: Optional[int] = None,
    ) -> MapSnapshot:
        """
        좌표를 중심으로 지도 스냅샷을 렌더링합니다.

        파라미터:
            latitude, longitude: 중심 좌표 (마커 위치)
            zoom: 줌 레벨. None이면 map.zoom 설정값

        반환값:
            MapSnapshot: 렌더링 결과. 실패 시 is_blank=True인 배경 스냅샷
        """
        zoom = self._config.zoom if zoom is None else zoom

        try:
            view = self._center_view(latitude, longitude, zoom)
            if view.invalidate_size():
                logger.info(f"지도 표면 크기 재확정: {view.width}x{view.height}")

            placements = visible_tiles(latitude, longitude, zoom, view.width, view.height)
            tiles = await self._load_tiles_with_settle([p.key for p in placements])

            image = Image.new("RGB", (view.width, view.height), self._config.background_color)
            for placement in placements:
                tile = tiles.get(placement.key)
                if tile is not None:
                    image.paste(tile, (placement.offset_x, placement.offset_y))

            self._draw_marker(image, view)

            loaded_count = sum(1 for p in placements if tiles.get(p.key) is not None)
            logger.info(
                f"지도 스냅샷 완료: zoom={zoom}, 타일 {loaded_count}/{len(placements)} 로드"
            )
            return MapSnapshot(
                image=image,
                latitude=latitude,
                longitude=longitude,
                zoom=zoom,
                width=view.width,
                height=view.height,
                tiles_requested=len(placements),
                tiles_loaded=loaded_count,
            )

        except Exception as exc:
            logger.error(f"지도 스냅샷 렌더링 실패, 빈 스냅샷으로 대체: {exc}", exc_info=True)
            return self._blank_snapshot(latitude, longitude, zoom)

    def apply_config(self, config: MapConfig) -> None:
        """
        map 설정 핫스왑을 반영합니다.

        뷰 크기 변경은 다음 render()의 invalidate_size()에서 적용됩니다.
        """
        self._config = config
        self._tile_fetcher.update_source(config.tile_url, config.tile_cache_size)
        if self._view is not None:
            self._view.request_resize(config.width, config.height)
        logger.info(
            f"MapSnapshotRenderer 설정 핫스왑: zoom={config.zoom}, "
            f"size={config.width}x{config.height}, settle={config.settle_ms}ms"
        )

    async def close(self) -> None:
        """타일 다운로더를 닫고 뷰를 해제합니다."""
        await self._tile_fetcher.close()
        self._view = None
        if self._context is not None:
            self._context.set_map_view(None)

    # =========================================================================
    # 내부 메서드
    # =========================================================================

    def _center_view(self, latitude: float, longitude: float, zoom: int) -> MapView:
        """첫 호출이면 뷰를 만들고, 아니면 기존 뷰를 재중심합니다."""
        if self._view is None:
            self._view = MapView(
                center_lat=latitude,
                center_lon=longitude,
                zoom=zoom,
                width=self._config.width,
                height=self._config.height,
                marker=(latitude, longitude),
            )
            if self._context is not None:
                self._context.set_map_view(self._view)
            logger.info(f"지도 뷰 생성: {self._config.width}x{self._config.height}, zoom={zoom}")
        else:
            self._view.set_view(latitude, longitude, zoom)
            self._view.move_marker(latitude, longitude)
        return self._view

    async def _load_tiles_with_settle(self, keys: list[TileKey]) -> dict[TileKey, Image.Image]:
        """
        타일 로딩을 시작하고 settle 시간만큼 기다린 뒤 그때까지 도착한 타일만 반환합니다.

        settle 시간 안에 끝나지 않은 다운로드는 취소합니다.
        """
        settle_sec = self._config.settle_ms / 1000.0
        tasks = {key: asyncio.create_task(self._tile_fetcher.fetch(key)) for key in keys}

        if self._config.wait_for_tiles and tasks:
            await asyncio.wait(list(tasks.values()), timeout=settle_sec)
        else:
            await self._sleep(settle_sec)

        tiles: dict[TileKey, Image.Image] = {}
        pending = []
        for key, task in tasks.items():
            if not task.done():
                task.cancel()
                pending.append(task)
            elif not task.cancelled() and task.exception() is None and task.result() is not None:
                tiles[key] = task.result()

        if pending:
            logger.debug(f"settle 후 미완료 타일 {len(pending)}개 취소")
            await asyncio.gather(*pending, return_exceptions=True)
        return tiles

    def _draw_marker(self, image: Image.Image, view: MapView) -> None:
        """마커 위치에 핀(원 + 아래 꼭짓점)을 그립니다."""
        if view.marker is None:
            return

        center_x, center_y = lat_lon_to_world_px(view.center_lat, view.center_lon, view.zoom)
        marker_x, marker_y = lat_lon_to_world_px(view.marker[0], view.marker[1], view.zoom)
        tip_x = view.width / 2.0 + (marker_x - center_x)
        tip_y = view.height / 2.0 + (marker_y - center_y)

        radius = max(4.0, min(view.width, view.height) / 32.0)
        head_y = tip_y - radius * 2.5
        draw = ImageDraw.Draw(image)
        draw.polygon(
            [(tip_x, tip_y), (tip_x - radius * 0.8, head_y + radius * 0.6),
             (tip_x + radius * 0.8, head_y + radius * 0.6)],
            fill=self._config.marker_color,
        )
        draw.ellipse(
            [tip_x - radius, head_y - radius, tip_x + radius, head_y + radius],
            fill=self._config.marker_color,
            outline="#FFFFFF",
            width=max(1, int(radius / 4)),
        )
        draw.ellipse(
            [tip_x - radius / 3, head_y - radius / 3, tip_x + radius / 3, head_y + radius / 3],
            fill="#FFFFFF",
        )

    def _blank_snapshot(self, latitude: float, longitude: float, zoom: int) -> MapSnapshot:
        width = self._view.width if self._view is not None else self._config.width
        height = self._view.height if self._view is not None else self._config.height
        return MapSnapshot(
            image=Image.new("RGB", (width, height), self._config.background_color),
            latitude=latitude,
            longitude=longitude,
            zoom=zoom,
            width=width,
            height=height,
            is_blank=True,
        )
