"""
컴포지터 모듈 패키지

공통 데이터 타입:
- OverlayLayout: 프레임 크기에서 유도한 오버레이 배치 값
- CompositeImage: 최종 합성 결과
- CompositeError 계열 예외
"""

from dataclasses import dataclass
from datetime import datetime

from PIL import Image


@dataclass(frozen=True)
class OverlayLayout:
    """
    W x H 프레임에서 비율로만 계산한 오버레이 배치입니다 (단위: 픽셀, 실수).

    필드:
        canvas_width, canvas_height: 캔버스 크기 (= 프레임 크기)
        band_x, band_y, band_width, band_height: 반투명 밴드 영역
        map_x, map_y, map_size: 지도 썸네일 정사각형 영역
        text_x: 텍스트 열 시작 x
        first_baseline: 첫 줄 baseline y
        line_pitch: 줄 간격
        font_size: 글자 크기
        branding_x, branding_y: 브랜딩 라벨 baseline 시작점
    """
    canvas_width: int
    canvas_height: int
    band_x: float
    band_y: float
    band_width: float
    band_height: float
    map_x: float
    map_y: float
    map_size: float
    text_x: float
    first_baseline: float
    line_pitch: float
    font_size: float
    branding_x: float
    branding_y: float


@dataclass(frozen=True)
class CompositeImage:
    """
    촬영 1회의 최종 합성 이미지입니다. 생성 후 수정하지 않습니다.

    필드:
        width, height: 픽셀 크기 (항상 원본 프레임과 동일)
        image: RGB PIL 이미지
        layout: 사용한 오버레이 배치
        encoded: 손실 압축 인코딩 결과
        mime_type: 예) "image/jpeg"
        extension: 예) "jpg"
        created_at: 합성 시각 (timezone-aware)
    """
    width: int
    height: int
    image: Image.Image
    layout: OverlayLayout
    encoded: bytes
    mime_type: str
    extension: str
    created_at: datetime


class CompositeError(Exception):
    """합성 실패의 기본 클래스입니다."""

    user_message = "사진을 합성하지 못했습니다. 다시 시도하세요."


class CompositeMissingPrerequisiteError(CompositeError):
    """프레임, 위치, 주소 중 하나라도 없을 때 발생합니다. 그리기 전에 검사합니다."""

    user_message = "위치 정보가 준비될 때까지 기다려 주세요."
