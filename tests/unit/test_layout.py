"""
오버레이 배치 및 텍스트 포맷 단위 테스트

검증 조건:
- 4000x3000 프레임 기준 밴드/지도/텍스트/브랜딩 좌표
- 프레임 크기에 선형 비례 (밴드 높이 = H/8)
- 작은 프레임에서 지도 크기는 0 아래로 내려가지 않음
- 좌표는 항상 소수점 6자리
- GMT 오프셋 부호와 두 자리 패딩
- 오버레이 4줄 순서와 빈 필드 처리
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from geotagcam.compositor.layout import (
    build_overlay_lines,
    compute_layout,
    format_coordinate,
    format_gmt_offset,
    format_timestamp,
    local_offset_minutes,
)
from geotagcam.location import AddressDetails, Position

IST = timezone(timedelta(hours=5, minutes=30))


# =============================================================================
# compute_layout 테스트
# =============================================================================

def test_layout_for_4000x3000():
    layout = compute_layout(4000, 3000)
    assert layout.band_height == 375
    assert layout.band_y == 2625
    assert layout.band_x == 500
    assert layout.band_width == 3000
    assert (layout.map_x, layout.map_y) == (510, 2640)
    assert layout.map_size == 345
    assert layout.text_x == 865
    assert layout.first_baseline == 2660
    assert layout.line_pitch == 75
    assert layout.font_size == pytest.approx(375 / 7)
    assert (layout.branding_x, layout.branding_y) == (2880, 2620)


def test_layout_band_scales_linearly():
    small = compute_layout(800, 600)
    large = compute_layout(1600, 1200)
    assert large.band_height == small.band_height * 2
    assert large.band_width == small.band_width * 2
    assert large.line_pitch == small.line_pitch * 2
    assert large.font_size == pytest.approx(small.font_size * 2)


def test_layout_band_inside_canvas():
    """밴드는 가운데 3/4 폭에 걸쳐 캔버스 아래 끝까지 닿는다."""
    layout = compute_layout(1280, 720)
    assert layout.band_x + layout.band_width == pytest.approx(1280 - 1280 / 8)
    assert layout.band_y + layout.band_height == pytest.approx(720)


def test_layout_tiny_frame_map_size_clamped():
    layout = compute_layout(160, 120)
    assert layout.band_height == 15
    assert layout.map_size == 0
    assert layout.text_x == layout.band_x + 20


# =============================================================================
# 포맷 테스트
# =============================================================================

@pytest.mark.parametrize(
    "value, expected",
    [(12.3, "12.300000"), (-0.5, "-0.500000"), (77.59461234, "77.594612"), (0.0, "0.000000"), (-98.76543219, "-98.765432")],
)
def test_format_coordinate(value, expected):
    assert format_coordinate(value) == expected


@pytest.mark.parametrize(
    "minutes, expected",
    [(0, "GMT +00:00"), (330, "GMT +05:30"), (-330, "GMT -05:30"), (60, "GMT +01:00"), (-600, "GMT -10:00")],
)
def test_format_gmt_offset(minutes, expected):
    assert format_gmt_offset(minutes) == expected


def test_local_offset_minutes_from_aware_datetime():
    assert local_offset_minutes(datetime(2024, 3, 5, 14, 7, tzinfo=IST)) == 330
    assert local_offset_minutes(datetime(2024, 3, 5, 14, 7, tzinfo=timezone.utc)) == 0


def test_format_timestamp_appends_offset():
    moment = datetime(2024, 3, 5, 14, 7, tzinfo=IST)
    assert format_timestamp(moment, "%m/%d/%y, %I:%M %p") == "03/05/24, 02:07 PM GMT +05:30"


# =============================================================================
# build_overlay_lines 테스트
# =============================================================================

def test_overlay_lines_order():
    address = AddressDetails(
        full_display_name="MG Road, Bengaluru",
        city="Bengaluru",
        state="Karnataka",
        country="India",
        postal_code="560001",
    )
    position = Position(12.9716, 77.5946, datetime(2024, 3, 5, tzinfo=timezone.utc))
    moment = datetime(2024, 3, 5, 14, 7, tzinfo=IST)

    lines = build_overlay_lines(address, position, moment, "%m/%d/%y, %I:%M %p")

    assert lines == [
        "Bengaluru, Karnataka, India",
        "560001, India",
        "Lat 12.971600° Long 77.594600°",
        "03/05/24, 02:07 PM GMT +05:30",
    ]


def test_overlay_lines_keep_separators_for_empty_fields():
    """빈 필드도 구분자는 그대로 남긴다."""
    address = AddressDetails(full_display_name="Sea", country="Nowhere")
    position = Position(0.0, 0.0, datetime(2024, 1, 1, tzinfo=timezone.utc))
    lines = build_overlay_lines(address, position, datetime(2024, 1, 1, tzinfo=timezone.utc), "%H:%M")
    assert lines[0] == ", , Nowhere"
    assert lines[1] == ", Nowhere"
    assert lines[3] == "00:00 GMT +00:00"
