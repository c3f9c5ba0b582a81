"""
해상도 독립 오버레이 배치 및 텍스트 포맷 모듈입니다.

역할:
- 프레임 크기 W x H만으로 밴드, 지도 썸네일, 텍스트 열, 브랜딩 위치 계산
- 좌표(소수점 6자리), GMT 오프셋("GMT +05:30"), 타임스탬프 문자열 포맷
- 오버레이 4줄 텍스트 구성

배치 규칙 (band = H/8):
    밴드        x = W/8 ~ W/8 + 3W/4, y = H - band ~ H
    지도        크기 band - 30, 위치 (W/8 + 10, H - band + 15)
    텍스트      x = W/8 + 지도 크기 + 20, 첫 baseline H - band + 35,
                줄 간격 band/5, 글자 크기 band/7
    브랜딩      (W - W/4 - 120, H - band - 5)

사용 예시:
    >>> layout = compute_layout(4000, 3000)
    >>> layout.band_y, layout.map_size, layout.line_pitch
    (2625.0, 345.0, 75.0)
    >>> format_gmt_offset(-330)
    'GMT -05:30'
"""

from __future__ import annotations

from datetime import datetime

from geotagcam.compositor import OverlayLayout
from geotagcam.location import AddressDetails, Position

# 밴드 안쪽 여백 (픽셀)
_MAP_INSET_X = 10
_MAP_INSET_Y = 15
_MAP_SHRINK = 30
_TEXT_GAP = 20
_FIRST_BASELINE_OFFSET = 35
# 브랜딩 라벨 위치 보정값
_BRANDING_OFFSET_X = 120
_BRANDING_OFFSET_Y = 5


def compute_layout(width: int, height: int) -> OverlayLayout:
    """
    프레임 크기로부터 오버레이 배치를 계산합니다.

    프레임이 너무 작아 지도 크기가 음수가 되면 0으로 고정합니다.
    """
    band_height = height / 8.0
    band_x = width / 8.0
    map_size = max(0.0, band_height - _MAP_SHRINK)

    return OverlayLayout(
        canvas_width=width,
        canvas_height=height,
        band_x=band_x,
        band_y=height - band_height,
        band_width=3.0 * width / 4.0,
        band_height=band_height,
        map_x=band_x + _MAP_INSET_X,
        map_y=height - band_height + _MAP_INSET_Y,
        map_size=map_size,
        text_x=band_x + map_size + _TEXT_GAP,
        first_baseline=height - band_height + _FIRST_BASELINE_OFFSET,
        line_pitch=band_height / 5.0,
        font_size=band_height / 7.0,
        branding_x=width - width / 4.0 - _BRANDING_OFFSET_X,
        branding_y=height - band_height - _BRANDING_OFFSET_Y,
    )


def format_coordinate(value: float) -> str:
    """좌표를 항상 소수점 6자리로 포맷합니다. 예: 12.3 → "12.300000"."""
    return f"{value:.6f}"


def format_gmt_offset(offset_minutes: int) -> str:
    """
    UTC 기준 오프셋(분)을 "GMT ±HH:MM"으로 포맷합니다.

    0과 양수는 "+", 음수만 "-"를 사용합니다.
    """
    sign = "+" if offset_minutes >= 0 else "-"
    hours, minutes = divmod(abs(offset_minutes), 60)
    return f"GMT {sign}{hours:02d}:{minutes:02d}"


def local_offset_minutes(moment: datetime) -> int:
    """aware datetime의 UTC 오프셋을 분 단위로 반환합니다. naive이면 로컬 시간대 기준."""
    if moment.tzinfo is None:
        moment = moment.astimezone()
    offset = moment.utcoffset()
    return int(offset.total_seconds() // 60) if offset is not None else 0


def format_timestamp(moment: datetime, timestamp_format: str) -> str:
    """타임스탬프와 GMT 오프셋을 합친 문자열을 만듭니다. 예: "03/05/24, 02:07 PM GMT +05:30"."""
    return f"{moment.strftime(timestamp_format)} {format_gmt_offset(local_offset_minutes(moment))}"


def build_overlay_lines(
    address: AddressDetails,
    position: Position,
    moment: datetime,
    timestamp_format: str,
) -> list[str]:
    """
    밴드에 위에서 아래로 그릴 4줄을 만듭니다.

    반환값:
        list[str]: [주소, 우편번호, 좌표, 타임스탬프]
    """
    return [
        f"{address.city}, {address.state}, {address.country}",
        f"{address.postal_code}, {address.country}",
        f"Lat {format_coordinate(position.latitude)}° Long {format_coordinate(position.longitude)}°",
        format_timestamp(moment, timestamp_format),
    ]
