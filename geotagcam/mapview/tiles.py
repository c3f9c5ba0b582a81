"""
Web Mercator 타일 계산 및 타일 다운로드 모듈입니다.

역할:
- 위경도 → 월드 픽셀 좌표 변환 (256px 타일, EPSG:3857)
- 뷰 영역을 덮는 z/x/y 타일 목록과 각 타일의 붙일 위치 계산
  (x는 날짜변경선에서 순환, y 범위 밖 타일은 제외)
- aiohttp로 타일 다운로드 + Pillow 디코딩
- 크기 제한 메모리 캐시 (LRU, 타일만 캐시)

사용 예시:
    >>> placements = visible_tiles(12.97, 77.59, 15, 400, 400)
    >>> fetcher = TileFetcher(url_template, "GeoTagCamera/1.0", 10.0, 256)
    >>> tile = await fetcher.fetch(placements[0].key)
"""

from __future__ import annotations

import asyncio
import io
import logging
import math
from collections import OrderedDict
from dataclasses import dataclass
from typing import Optional

import aiohttp
from PIL import Image

logger = logging.getLogger(__name__)

TILE_SIZE = 256

# Web Mercator가 표현할 수 있는 최대 위도
MAX_LATITUDE = 85.05112878


@dataclass(frozen=True)
class TileKey:
    """타일 식별자 (줌, 열, 행)."""
    z: int
    x: int
    y: int


@dataclass(frozen=True)
class TilePlacement:
    """
    래스터 위에 타일을 붙일 위치입니다.

    offset_x/offset_y는 뷰 왼쪽 위 기준 픽셀 좌표이며 음수일 수 있습니다.
    """
    key: TileKey
    offset_x: int
    offset_y: int


def lat_lon_to_world_px(latitude: float, longitude: float, zoom: int) -> tuple[float, float]:
    """
    위경도를 해당 줌 레벨의 월드 픽셀 좌표로 변환합니다.

    반환값:
        tuple[float, float]: (x, y). 원점은 북서쪽 끝 (-180, 85.05)
    """
    latitude = max(-MAX_LATITUDE, min(MAX_LATITUDE, latitude))
    world_size = TILE_SIZE * (2 ** zoom)

    x = (longitude + 180.0) / 360.0 * world_size
    sin_lat = math.sin(math.radians(latitude))
    y = (0.5 - math.log((1 + sin_lat) / (1 - sin_lat)) / (4 * math.pi)) * world_size
    return x, y


def visible_tiles(
    latitude: float,
    longitude: float,
    zoom: int,
    width: int,
    height: int,
) -> list[TilePlacement]:
    """
    (latitude, longitude)를 중심으로 한 width x height 뷰를 덮는 타일 목록을 계산합니다.
    """
    center_x, center_y = lat_lon_to_world_px(latitude, longitude, zoom)
    left = center_x - width / 2.0
    top = center_y - height / 2.0
    tile_count = 2 ** zoom

    first_col = math.floor(left / TILE_SIZE)
    last_col = math.floor((left + width - 1) / TILE_SIZE)
    first_row = math.floor(top / TILE_SIZE)
    last_row = math.floor((top + height - 1) / TILE_SIZE)

    placements: list[TilePlacement] = []
    for row in range(first_row, last_row + 1):
        if row < 0 or row >= tile_count:
            continue
        for col in range(first_col, last_col + 1):
            placements.append(
                TilePlacement(
                    key=TileKey(z=zoom, x=col % tile_count, y=row),
                    offset_x=int(round(col * TILE_SIZE - left)),
                    offset_y=int(round(row * TILE_SIZE - top)),
                )
            )
    return placements


class TileFetcher:
    """
    타일 이미지를 내려받아 디코딩하고 LRU 캐시에 보관하는 클래스입니다.

    실패한 타일은 None을 반환하며 캐시하지 않습니다.
    """

    def __init__(
        self,
        url_template: str,
        user_agent: str,
        timeout_sec: float,
        cache_size: int,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._url_template = url_template
        self._user_agent = user_agent
        self._timeout_sec = timeout_sec
        self._cache_size = cache_size
        self._cache: OrderedDict[TileKey, Image.Image] = OrderedDict()
        self._session = session
        self._owns_session = session is None

    @property
    def cached_count(self) -> int:
        """현재 캐시된 타일 수."""
        return len(self._cache)

    def tile_url(self, key: TileKey) -> str:
        """URL 템플릿에 z/x/y를 채워 넣습니다."""
        return self._url_template.format(z=key.z, x=key.x, y=key.y)

    def update_source(self, url_template: str, cache_size: int) -> None:
        """타일 URL 또는 캐시 크기 변경을 반영합니다. URL이 바뀌면 캐시를 비웁니다."""
        if url_template != self._url_template:
            self._cache.clear()
            self._url_template = url_template
        self._cache_size = cache_size
        self._evict()

    async def fetch(self, key: TileKey) -> Optional[Image.Image]:
        """
        타일 1장을 가져옵니다.

        반환값:
            Image.Image | None: RGB 타일 이미지. 실패 시 None
        """
        cached = self._cache.get(key)
        if cached is not None:
            self._cache.move_to_end(key)
            return cached

        url = self.tile_url(key)
        session = self._get_session()
        try:
            async with session.get(url, headers={"User-Agent": self._user_agent}) as response:
                if response.status != 200:
                    logger.warning(f"타일 HTTP 에러 {response.status}: {url}")
                    return None
                body = await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as transport_error:
            logger.warning(f"타일 다운로드 실패: {url} ({transport_error})")
            return None

        try:
            tile = Image.open(io.BytesIO(body))
            tile.load()
            tile = tile.convert("RGB")
        except OSError as decode_error:
            logger.warning(f"타일 디코딩 실패: {url} ({decode_error})")
            return None

        self._cache[key] = tile
        self._evict()
        return tile

    async def close(self) -> None:
        """직접 만든 HTTP 세션을 닫고 캐시를 비웁니다."""
        if self._owns_session and self._session is not None:
            if not self._session.closed:
                await self._session.close()
            self._session = None
        self._cache.clear()

    def _evict(self) -> None:
        while len(self._cache) > self._cache_size:
            self._cache.popitem(last=False)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout_sec)
            )
        return self._session
