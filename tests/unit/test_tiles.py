"""
타일 계산 및 다운로드 단위 테스트

검증 조건:
- 위경도 → 월드 픽셀 변환 (줌 0에서 (0, 0)은 타일 중앙)
- 뷰를 덮는 타일 수와 붙일 위치
- 날짜변경선에서 x 순환, 범위 밖 y 제외
- 다운로드 타일 LRU 캐시, 실패 타일은 None이고 캐시하지 않음
"""

from __future__ import annotations

import io
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest
from PIL import Image

from geotagcam.mapview.tiles import (
    MAX_LATITUDE,
    TILE_SIZE,
    TileFetcher,
    TileKey,
    lat_lon_to_world_px,
    visible_tiles,
)


# =============================================================================
# 테스트 헬퍼
# =============================================================================

def _png_bytes(color=(10, 120, 30)) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (TILE_SIZE, TILE_SIZE), color).save(buffer, format="PNG")
    return buffer.getvalue()


def _mock_session(status: int = 200, body: bytes = b"") -> MagicMock:
    response = MagicMock()
    response.status = status
    response.read = AsyncMock(return_value=body)
    session = MagicMock()
    session.closed = False
    context = session.get.return_value
    context.__aenter__.return_value = response
    context.__aexit__.return_value = False
    return session


# =============================================================================
# 좌표 변환 테스트
# =============================================================================

def test_world_px_origin_at_zoom_zero():
    x, y = lat_lon_to_world_px(0.0, 0.0, 0)
    assert x == pytest.approx(128.0)
    assert y == pytest.approx(128.0)


def test_world_px_scales_with_zoom():
    x0, y0 = lat_lon_to_world_px(12.9716, 77.5946, 10)
    x1, y1 = lat_lon_to_world_px(12.9716, 77.5946, 11)
    assert x1 == pytest.approx(x0 * 2)
    assert y1 == pytest.approx(y0 * 2)


def test_world_px_clamps_latitude():
    _, y_pole = lat_lon_to_world_px(90.0, 0.0, 3)
    _, y_max = lat_lon_to_world_px(MAX_LATITUDE, 0.0, 3)
    assert y_pole == pytest.approx(y_max)


# =============================================================================
# visible_tiles 테스트
# =============================================================================

def test_visible_tiles_grid_and_offsets():
    """줌 1, 256x256 뷰를 (0, 0) 중심으로 두면 4장이 128px씩 걸친다."""
    placements = visible_tiles(0.0, 0.0, 1, 256, 256)
    assert {p.key for p in placements} == {
        TileKey(1, 0, 0), TileKey(1, 1, 0), TileKey(1, 0, 1), TileKey(1, 1, 1),
    }
    origin = next(p for p in placements if p.key == TileKey(1, 0, 0))
    assert (origin.offset_x, origin.offset_y) == (-128, -128)


def test_visible_tiles_cover_view():
    """모든 타일이 합쳐 400x400 뷰를 빈틈없이 덮는다."""
    placements = visible_tiles(12.9716, 77.5946, 15, 400, 400)
    assert min(p.offset_x for p in placements) <= 0
    assert min(p.offset_y for p in placements) <= 0
    assert max(p.offset_x for p in placements) + TILE_SIZE >= 400
    assert max(p.offset_y for p in placements) + TILE_SIZE >= 400
    assert all(p.key.z == 15 for p in placements)


def test_visible_tiles_wrap_dateline():
    """날짜변경선 근처에서 x가 0으로 순환한다."""
    placements = visible_tiles(0.0, 179.99, 2, 256, 256)
    columns = {p.key.x for p in placements}
    assert 0 in columns
    assert 3 in columns
    assert all(0 <= p.key.x < 4 for p in placements)


def test_visible_tiles_skip_rows_outside_world():
    """극지방에서 범위 밖 행은 건너뛴다."""
    placements = visible_tiles(MAX_LATITUDE, 0.0, 0, 256, 256)
    assert [p.key for p in placements] == [TileKey(0, 0, 0)]
    assert placements[0].offset_y == 128


# =============================================================================
# TileFetcher 테스트
# =============================================================================

@pytest.mark.asyncio
async def test_fetch_decodes_and_caches():
    session = _mock_session(body=_png_bytes())
    fetcher = TileFetcher("https://tiles.test/{z}/{x}/{y}.png", "UA/1", 5.0, 8, session=session)

    tile = await fetcher.fetch(TileKey(3, 1, 2))
    again = await fetcher.fetch(TileKey(3, 1, 2))

    assert tile is not None
    assert tile.mode == "RGB"
    assert tile.getpixel((0, 0)) == (10, 120, 30)
    assert again is tile
    assert session.get.call_count == 1
    args, kwargs = session.get.call_args
    assert args[0] == "https://tiles.test/3/1/2.png"
    assert kwargs["headers"]["User-Agent"] == "UA/1"


def test_tile_url_template_order():
    """{z}/{y}/{x} 순서 템플릿도 그대로 채운다."""
    fetcher = TileFetcher("https://t.test/{z}/{y}/{x}", "UA", 5.0, 8, session=MagicMock())
    assert fetcher.tile_url(TileKey(5, 7, 9)) == "https://t.test/5/9/7"


@pytest.mark.asyncio
async def test_cache_evicts_least_recent():
    session = _mock_session(body=_png_bytes())
    fetcher = TileFetcher("https://t.test/{z}/{x}/{y}", "UA", 5.0, 2, session=session)

    await fetcher.fetch(TileKey(1, 0, 0))
    await fetcher.fetch(TileKey(1, 1, 0))
    await fetcher.fetch(TileKey(1, 0, 0))  # 최근 사용으로 갱신
    await fetcher.fetch(TileKey(1, 1, 1))  # (1, 1, 0) 제거

    assert fetcher.cached_count == 2
    await fetcher.fetch(TileKey(1, 0, 0))
    assert session.get.call_count == 3


@pytest.mark.asyncio
async def test_http_error_returns_none_and_not_cached():
    session = _mock_session(status=404)
    fetcher = TileFetcher("https://t.test/{z}/{x}/{y}", "UA", 5.0, 8, session=session)
    assert await fetcher.fetch(TileKey(2, 0, 0)) is None
    assert fetcher.cached_count == 0


@pytest.mark.asyncio
async def test_transport_error_returns_none():
    session = MagicMock()
    session.get.side_effect = aiohttp.ClientConnectionError("down")
    fetcher = TileFetcher("https://t.test/{z}/{x}/{y}", "UA", 5.0, 8, session=session)
    assert await fetcher.fetch(TileKey(2, 0, 0)) is None


@pytest.mark.asyncio
async def test_undecodable_body_returns_none():
    session = _mock_session(body=b"<html>rate limited</html>")
    fetcher = TileFetcher("https://t.test/{z}/{x}/{y}", "UA", 5.0, 8, session=session)
    assert await fetcher.fetch(TileKey(2, 0, 0)) is None


@pytest.mark.asyncio
async def test_update_source_clears_cache_on_new_url():
    session = _mock_session(body=_png_bytes())
    fetcher = TileFetcher("https://a.test/{z}/{x}/{y}", "UA", 5.0, 8, session=session)
    await fetcher.fetch(TileKey(1, 0, 0))

    fetcher.update_source("https://a.test/{z}/{x}/{y}", 8)
    assert fetcher.cached_count == 1
    fetcher.update_source("https://b.test/{z}/{x}/{y}", 8)
    assert fetcher.cached_count == 0
    assert fetcher.tile_url(TileKey(1, 0, 0)).startswith("https://b.test")
