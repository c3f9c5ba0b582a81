"""
지오태그 컴포지터 모듈입니다.

역할:
- 비디오 프레임(BGR/BGRA/RGB bytes)을 numpy 배열로 변환
- 반투명 밴드, 지도 썸네일, 주소/좌표/타임스탬프 4줄, 브랜딩 라벨을 Pillow로 합성
- 배치는 compute_layout()으로 프레임 크기에서만 계산 (해상도 독립)
- 손실 압축(JPEG/WebP) 인코딩 후 CompositeImage 반환
- 폰트/색상/품질 설정 핫스왑 (update_style)

사용 예시:
    >>> compositor = GeotagCompositor(config)
    >>> composite = compositor.compose(frame, address, position, map_snapshot)
    >>> composite.width == frame.width
    True
"""

from __future__ import annotations

import io
import logging
from datetime import datetime
from typing import Optional

import cv2
import numpy as np
from PIL import Image, ImageDraw, ImageFont

from geotagcam.capture import VideoFrame
from geotagcam.compositor import (
    CompositeError,
    CompositeImage,
    CompositeMissingPrerequisiteError,
    OverlayLayout,
)
from geotagcam.compositor.layout import build_overlay_lines, compute_layout
from geotagcam.config.schema import AppConfig
from geotagcam.location import AddressDetails, Position
from geotagcam.mapview import MapSnapshot

logger = logging.getLogger(__name__)

# 인코딩 포맷 → (Pillow 포맷, MIME, 확장자)
_ENCODINGS = {
    "jpeg": ("JPEG", "image/jpeg", "jpg"),
    "webp": ("WEBP", "image/webp", "webp"),
}


class GeotagCompositor:
    """
    카메라 프레임 위에 위치 오버레이를 그려 최종 사진을 만드는 클래스입니다.

    그리기 전에 프레임, 위치, 주소가 모두 있는지 먼저 검사하고
    하나라도 없으면 아무것도 만들지 않고 CompositeMissingPrerequisiteError를 냅니다.
    """

    def __init__(self, config: AppConfig) -> None:
        """
        파라미터:
            config (AppConfig): 전체 애플리케이션 설정 객체 (overlay, output 섹션 사용)
        """
        self._overlay_cfg = config.overlay
        self._output_cfg = config.output

        # Pillow 폰트 캐시 (폰트 경로+크기 → ImageFont 인스턴스)
        self._font_cache: dict[str, ImageFont.FreeTypeFont] = {}

        logger.info(
            f"GeotagCompositor 초기화 완료: format={self._output_cfg.format}, "
            f"quality={self._output_cfg.quality}"
        )

    # =========================================================================
    # 공개 인터페이스
    # =========================================================================

    def compose(
        self,
        frame: Optional[VideoFrame],
        address: Optional[AddressDetails],
        position: Optional[Position],
        map_snapshot: Optional[MapSnapshot],
        now: Optional[datetime] = None,
    ) -> CompositeImage:
        """
        프레임에 오버레이를 합성하고 인코딩합니다.

        처리 순서:
        1. 선행 조건 검사 (frame, position, address)
        2. VideoFrame bytes → RGBA 캔버스 (프레임과 같은 크기)
        3. 반투명 밴드
        4. 지도 썸네일 (정사각형으로 리사이즈)
        5. 텍스트 4줄 + 브랜딩 라벨
        6. 손실 압축 인코딩

        파라미터:
            frame: 촬영 프레임
            address: 현재 주소
            position: 현재 위치
            map_snapshot: 이번 촬영용 지도 스냅샷 (None이면 썸네일 생략)
            now: 타임스탬프 시각 (None이면 현재 로컬 시각)

        반환값:
            CompositeImage: 합성 결과

        에러:
            CompositeMissingPrerequisiteError: frame/position/address 중 하나라도 None
            CompositeError: 프레임 변환 또는 인코딩 실패
        """
        missing = [
            name for name, value in (("frame", frame), ("position", position), ("address", address))
            if value is None
        ]
        if missing:
            raise CompositeMissingPrerequisiteError(f"합성 선행 조건 누락: {', '.join(missing)}")

        try:
            return self._compose_overlay(frame, address, position, map_snapshot, now)
        except CompositeError:
            raise
        except Exception as exc:
            raise CompositeError(f"합성 중 예외: {type(exc).__name__}: {exc}") from exc

    def _compose_overlay(
        self,
        frame: VideoFrame,
        address: AddressDetails,
        position: Position,
        map_snapshot: Optional[MapSnapshot],
        now: Optional[datetime],
    ) -> CompositeImage:
        moment = now or datetime.now().astimezone()
        layout = compute_layout(frame.width, frame.height)

        bgr_frame = self._frame_to_bgr(frame)
        canvas = Image.fromarray(cv2.cvtColor(bgr_frame, cv2.COLOR_BGR2RGB)).convert("RGBA")

        canvas = self._draw_band(canvas, layout)
        if map_snapshot is not None:
            self._draw_map_thumbnail(canvas, map_snapshot, layout)

        draw = ImageDraw.Draw(canvas)
        font = self._load_font(self._overlay_cfg.font_path, max(1, round(layout.font_size)))
        text_color = _hex_to_rgba(self._overlay_cfg.text_color)

        lines = build_overlay_lines(address, position, moment, self._overlay_cfg.timestamp_format)
        for line_index, line in enumerate(lines):
            baseline = layout.first_baseline + line_index * layout.line_pitch
            draw.text((layout.text_x, baseline), line, font=font, fill=text_color, anchor="ls")

        self._draw_branding(draw, font, text_color, layout)

        rgb_image = canvas.convert("RGB")
        encoded, mime_type, extension = self._encode(rgb_image)

        logger.info(
            f"합성 완료: {frame.width}x{frame.height}, {mime_type}, {len(encoded)} bytes, "
            f"map_blank={map_snapshot.is_blank if map_snapshot else 'n/a'}"
        )
        return CompositeImage(
            width=rgb_image.width,
            height=rgb_image.height,
            image=rgb_image,
            layout=layout,
            encoded=encoded,
            mime_type=mime_type,
            extension=extension,
            created_at=moment,
        )

    def update_style(self, config: AppConfig) -> None:
        """
        폰트/색상/브랜딩/인코딩 설정을 핫스왑으로 업데이트합니다.

        파라미터:
            config (AppConfig): 새 설정 객체
        """
        self._overlay_cfg = config.overlay
        self._output_cfg = config.output
        self._font_cache.clear()
        logger.info(
            f"GeotagCompositor 설정 핫스왑: font={config.overlay.font_path}, "
            f"format={config.output.format}, quality={config.output.quality}"
        )

    # =========================================================================
    # 프레임 변환
    # =========================================================================

    def _frame_to_bgr(self, frame: VideoFrame) -> np.ndarray:
        """
        VideoFrame bytes를 OpenCV BGR numpy 배열로 변환합니다.

        지원 픽셀 포맷:
        - bgr: 그대로 reshape
        - bgra: 4채널 → 3채널
        - rgb: 채널 순서 뒤집기

        에러:
            CompositeError: 지원하지 않는 포맷이거나 데이터 크기가 맞지 않을 때
        """
        raw = np.frombuffer(frame.data, dtype=np.uint8)
        try:
            if frame.pixel_format == "bgr":
                return raw.reshape(frame.height, frame.width, 3)
            if frame.pixel_format == "bgra":
                return self._bgra_to_bgr(raw, frame)
            if frame.pixel_format == "rgb":
                return np.ascontiguousarray(raw.reshape(frame.height, frame.width, 3)[:, :, ::-1])
        except ValueError as reshape_error:
            raise CompositeError(
                f"프레임 데이터 크기 불일치: {frame.width}x{frame.height} {frame.pixel_format}, "
                f"{len(frame.data)} bytes"
            ) from reshape_error

        raise CompositeError(f"지원하지 않는 픽셀 포맷: {frame.pixel_format}")

    def _bgra_to_bgr(self, raw: np.ndarray, frame: VideoFrame) -> np.ndarray:
        """BGRA 포맷에서 알파 채널을 버립니다."""
        bgra = raw.reshape(frame.height, frame.width, 4)
        return np.ascontiguousarray(bgra[:, :, :3])

    # =========================================================================
    # 오버레이 그리기
    # =========================================================================

    def _draw_band(self, canvas: Image.Image, layout: OverlayLayout) -> Image.Image:
        """
        밴드 영역에 반투명 색을 알파 합성합니다.

        band_color는 HEX + 투명도 (기본 "#00000080" = 검정 50%)
        """
        overlay = Image.new("RGBA", canvas.size, (0, 0, 0, 0))
        overlay_draw = ImageDraw.Draw(overlay)
        overlay_draw.rectangle(
            (
                round(layout.band_x),
                round(layout.band_y),
                round(layout.band_x + layout.band_width) - 1,
                layout.canvas_height - 1,
            ),
            fill=_hex_to_rgba(self._overlay_cfg.band_color),
        )
        return Image.alpha_composite(canvas, overlay)

    def _draw_map_thumbnail(
        self, canvas: Image.Image, map_snapshot: MapSnapshot, layout: OverlayLayout
    ) -> None:
        """지도 스냅샷을 정사각형으로 리사이즈해 썸네일 위치에 붙입니다 (비율 왜곡 허용)."""
        size = round(layout.map_size)
        if size <= 0:
            logger.debug("프레임이 작아 지도 썸네일을 생략합니다")
            return
        thumbnail = map_snapshot.image.convert("RGBA").resize((size, size), Image.Resampling.LANCZOS)
        canvas.paste(thumbnail, (round(layout.map_x), round(layout.map_y)))

    def _draw_branding(
        self,
        draw: ImageDraw.ImageDraw,
        font: ImageFont.FreeTypeFont,
        text_color: tuple[int, int, int, int],
        layout: OverlayLayout,
    ) -> None:
        """
        브랜딩 라벨을 밴드 위쪽 오른편에 그립니다.

        텍스트 열과 무관한 고정 위치이며, 캔버스를 벗어나지 않도록 경계 클리핑합니다.
        """
        text = self._overlay_cfg.branding_text
        if not text:
            return

        bbox = draw.textbbox((0, 0), text, font=font, anchor="ls")
        text_w = bbox[2] - bbox[0]
        ascent = -bbox[1]

        x = max(0.0, min(layout.branding_x, layout.canvas_width - text_w))
        y = max(float(ascent), min(layout.branding_y, float(layout.canvas_height)))
        draw.text((x, y), text, font=font, fill=text_color, anchor="ls")

    # =========================================================================
    # 인코딩 / 폰트
    # =========================================================================

    def _encode(self, image: Image.Image) -> tuple[bytes, str, str]:
        """
        설정된 손실 압축 포맷으로 인코딩합니다.

        반환값:
            tuple[bytes, str, str]: (인코딩 결과, MIME, 확장자)
        """
        pil_format, mime_type, extension = _ENCODINGS[self._output_cfg.format]
        buffer = io.BytesIO()
        try:
            image.save(buffer, format=pil_format, quality=self._output_cfg.quality)
        except OSError as encode_error:
            raise CompositeError(f"이미지 인코딩 실패: {encode_error}") from encode_error
        return buffer.getvalue(), mime_type, extension

    def _load_font(self, font_path: str, font_size: int) -> ImageFont.FreeTypeFont:
        """
        폰트를 로드합니다. 캐시에 없으면 새로 로드하여 캐시에 저장합니다.

        폰트 파일이 없으면 같은 크기의 Pillow 기본 폰트로 폴백합니다.
        """
        cache_key = f"{font_path}:{font_size}"
        if cache_key in self._font_cache:
            return self._font_cache[cache_key]

        try:
            font = ImageFont.truetype(font_path, font_size)
        except OSError:
            logger.warning(f"폰트 파일을 찾을 수 없습니다: {font_path}. 기본 폰트로 폴백합니다.")
            font = ImageFont.load_default(size=font_size)

        self._font_cache[cache_key] = font
        return font


# =============================================================================
# 색상 변환 헬퍼
# =============================================================================

def _hex_to_rgb(hex_color: str) -> tuple[int, int, int]:
    """
    HEX 색상 문자열을 RGB 튜플로 변환합니다.

    파라미터:
        hex_color: HEX 색상 (예: "#FFFFFF" 또는 "#FFFFFFFF")
    """
    hex_color = hex_color.lstrip("#")
    # 투명도 포함 8자리인 경우 앞 6자리만 사용
    return (int(hex_color[0:2], 16), int(hex_color[2:4], 16), int(hex_color[4:6], 16))


def _hex_to_rgba(hex_color: str) -> tuple[int, int, int, int]:
    """
    HEX 색상 문자열(투명도 포함 가능)을 RGBA 튜플로 변환합니다.

    파라미터:
        hex_color: HEX 색상 (예: "#00000080" = 검정 50% 투명). 6자리면 불투명
    """
    hex_color = hex_color.lstrip("#")
    r, g, b = _hex_to_rgb(hex_color[:6])
    a = int(hex_color[6:8], 16) if len(hex_color) == 8 else 255
    return (r, g, b, a)
