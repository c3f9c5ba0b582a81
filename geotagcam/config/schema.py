"""
GeoTag Camera 설정 스키마 정의 모듈입니다.

역할:
- Pydantic v2 BaseModel 기반으로 config.yaml의 전체 구조를 타입 안전하게 정의
- 각 섹션(system, camera, location, geocoder, map, overlay, output, dashboard)을
  독립적인 중첩 모델로 분리하여 유지보수성 확보
- 필드별 기본값, 허용 범위, 유효성 검증(validator)을 포함

사용 예시:
    >>> from geotagcam.config.schema import AppConfig
    >>> config = AppConfig(**yaml_data)
    >>> print(config.location.timeout_ms)
"""

from __future__ import annotations

import logging
import re

from pydantic import BaseModel, Field, field_validator

# 모듈 로거 설정
logger = logging.getLogger(__name__)

# HEX 색상 형식: #RRGGBB 또는 #RRGGBBAA
_HEX_COLOR_PATTERN = re.compile(r"^#[0-9A-Fa-f]{6}([0-9A-Fa-f]{2})?$")


def _validate_hex_color(value: str) -> str:
    """HEX 색상 문자열인지 검증합니다. 색상 이름("white")은 허용하지 않습니다."""
    if not _HEX_COLOR_PATTERN.match(value):
        raise ValueError(f"색상은 #RRGGBB 또는 #RRGGBBAA 형식이어야 합니다. 입력값: {value}")
    return value


# =============================================================================
# system 섹션: 시스템 전역 설정
# =============================================================================

class SystemConfig(BaseModel):
    """
    시스템 전역 설정을 정의하는 모델입니다.

    역할:
    - 실행 모드(live/file) 결정
    - 로깅 레벨 및 포맷 지정
    - 세션 식별자 관리
    """
    # 실행 모드: "live"는 실제 카메라, "file"은 정지 이미지를 카메라로 사용
    mode: str = Field(default="live", description="실행 모드 (live | file)")
    # 로그 출력 레벨
    log_level: str = Field(default="INFO", description="로그 레벨 (DEBUG | INFO | WARNING | ERROR)")
    # 로그 출력 포맷
    log_format: str = Field(default="json", description="로그 포맷 (json | text)")
    # 로그 파일 저장 디렉토리 경로
    log_dir: str = Field(default="output/logs", description="로그 저장 디렉토리")
    # 세션 고유 식별자 (빈 문자열이면 UUID로 자동 생성)
    session_id: str = Field(default="", description="세션 ID (비어있으면 UUID 자동생성)")

    @field_validator("mode")
    @classmethod
    def validate_mode(cls, value: str) -> str:
        """실행 모드가 허용된 값인지 검증합니다."""
        allowed_modes = ("live", "file")
        if value not in allowed_modes:
            error_message = f"mode는 {allowed_modes} 중 하나여야 합니다. 입력값: '{value}'"
            raise ValueError(error_message)
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """로그 레벨이 유효한 Python 로깅 레벨인지 검증합니다."""
        allowed_levels = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
        upper_value = value.upper()
        if upper_value not in allowed_levels:
            error_message = f"log_level은 {allowed_levels} 중 하나여야 합니다. 입력값: '{value}'"
            raise ValueError(error_message)
        return upper_value

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, value: str) -> str:
        """로그 포맷이 지원되는 형식인지 검증합니다."""
        allowed_formats = ("json", "text")
        if value not in allowed_formats:
            error_message = f"log_format은 {allowed_formats} 중 하나여야 합니다. 입력값: '{value}'"
            raise ValueError(error_message)
        return value


# =============================================================================
# camera 섹션: 카메라 장치 선택 및 해상도 설정
# =============================================================================

class StillImageConfig(BaseModel):
    """
    파일 모드(mode=file)에서 카메라 대신 사용할 정지 이미지 설정입니다.

    역할:
    - 카메라 프레임으로 사용할 이미지 경로 지정
    - 경로가 비어있으면 지정 해상도의 검정 프레임 생성
    """
    # 카메라 프레임으로 사용할 이미지 경로 (비어있으면 검정 배경 자동 생성)
    image_path: str = Field(default="", description="정지 이미지 경로 (비어있으면 검정 배경)")
    # 검정 프레임 생성 시 가로 픽셀 수
    width: int = Field(default=1920, description="생성 프레임 가로 크기")
    # 검정 프레임 생성 시 세로 픽셀 수
    height: int = Field(default=1080, description="생성 프레임 세로 크기")


class CameraConfig(BaseModel):
    """
    카메라 장치 선택 및 입력 해상도 설정을 정의하는 모델입니다.

    역할:
    - 후면 카메라 우선 선택을 위한 라벨 키워드 지정
    - 요청 해상도(기본 4096x3072) 지정
    - 장치 탐색 범위 및 워밍업 프레임 수 제어
    - 파일 모드용 정지 이미지 설정 포함
    """
    # 요청 가로 해상도 (장치가 더 낮은 해상도로 협상할 수 있음)
    width: int = Field(default=4096, description="요청 가로 해상도")
    # 요청 세로 해상도
    height: int = Field(default=3072, description="요청 세로 해상도")
    # 후면 카메라로 판단할 라벨 키워드 (대소문자 무시 부분 일치)
    preferred_label_keywords: list[str] = Field(
        default=["back", "rear"], description="후면 카메라 라벨 키워드"
    )
    # 키워드 일치 장치가 없을 때 사용할 방향 힌트
    facing_mode_hint: str = Field(default="environment", description="방향 힌트 (environment | user)")
    # sysfs 정보가 없을 때 OpenCV로 탐색할 최대 장치 인덱스 수
    max_probe_devices: int = Field(default=4, description="장치 탐색 최대 인덱스 수")
    # 메타데이터(실제 해상도) 확보 대기 시간 (초)
    ready_timeout_sec: float = Field(default=10.0, description="준비 대기 시간 (초)")
    # 파일 모드 설정
    still_image: StillImageConfig = Field(default_factory=StillImageConfig, description="정지 이미지 설정")

    @field_validator("width", "height")
    @classmethod
    def validate_resolution(cls, value: int) -> int:
        """해상도가 양수인지 검증합니다."""
        if value <= 0:
            error_message = f"해상도는 양수여야 합니다. 입력값: {value}"
            raise ValueError(error_message)
        return value

    @field_validator("facing_mode_hint")
    @classmethod
    def validate_facing_mode(cls, value: str) -> str:
        """방향 힌트가 허용된 값인지 검증합니다."""
        allowed = ("environment", "user")
        if value not in allowed:
            error_message = f"facing_mode_hint는 {allowed} 중 하나여야 합니다. 입력값: '{value}'"
            raise ValueError(error_message)
        return value


# =============================================================================
# location 섹션: 위치 획득 설정
# =============================================================================

class LocationConfig(BaseModel):
    """
    위치(Position) 획득 설정입니다.

    역할:
    - 위치 백엔드(static/ip) 선택
    - 1회성 요청의 타임아웃, 고정밀 요구, 캐시 허용 시간 지정
    - static 백엔드용 고정 좌표 지정
    """
    # 위치 백엔드 (static=설정 좌표, ip=IP 기반 위치 조회)
    backend: str = Field(default="ip", description="위치 백엔드 (static | ip)")
    # 위치 요청 타임아웃 (밀리초)
    timeout_ms: int = Field(default=20000, description="위치 요청 타임아웃 (ms)")
    # 고정밀 위치 요구 여부
    high_accuracy: bool = Field(default=True, description="고정밀 위치 요구")
    # 허용되는 캐시 위치의 최대 나이 (0 = 항상 새 위치)
    maximum_age_ms: int = Field(default=0, description="캐시 위치 최대 나이 (ms)")
    # static 백엔드 위도
    latitude: float = Field(default=0.0, description="고정 위도 (static 전용)")
    # static 백엔드 경도
    longitude: float = Field(default=0.0, description="고정 경도 (static 전용)")
    # ip 백엔드 조회 엔드포인트
    ip_endpoint: str = Field(
        default="http://ip-api.com/json/?fields=status,message,lat,lon",
        description="IP 위치 조회 엔드포인트",
    )

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, value: str) -> str:
        """위치 백엔드가 허용된 값인지 검증합니다."""
        allowed = ("static", "ip")
        if value not in allowed:
            error_message = f"backend는 {allowed} 중 하나여야 합니다. 입력값: '{value}'"
            raise ValueError(error_message)
        return value

    @field_validator("latitude")
    @classmethod
    def validate_latitude(cls, value: float) -> float:
        """위도가 -90~90 범위인지 검증합니다."""
        if not -90.0 <= value <= 90.0:
            raise ValueError(f"latitude는 -90~90 범위여야 합니다. 입력값: {value}")
        return value

    @field_validator("longitude")
    @classmethod
    def validate_longitude(cls, value: float) -> float:
        """경도가 -180~180 범위인지 검증합니다."""
        if not -180.0 <= value <= 180.0:
            raise ValueError(f"longitude는 -180~180 범위여야 합니다. 입력값: {value}")
        return value


# =============================================================================
# geocoder 섹션: 역지오코딩 설정
# =============================================================================

class GeocoderConfig(BaseModel):
    """
    역지오코딩(Reverse Geocoding) HTTP 호출 설정입니다.

    역할:
    - 엔드포인트 및 응답 언어 지정
    - Nominatim 사용 정책에 따른 User-Agent 지정
    - 전송 계층 타임아웃 지정
    """
    # 역지오코딩 엔드포인트
    endpoint: str = Field(
        default="https://nominatim.openstreetmap.org/reverse",
        description="역지오코딩 엔드포인트",
    )
    # Accept-Language 헤더 값
    language: str = Field(default="en", description="응답 언어 (Accept-Language)")
    # User-Agent 헤더 값
    user_agent: str = Field(default="GeoTagCamera/1.0", description="User-Agent 헤더")
    # HTTP 요청 타임아웃 (초)
    timeout_sec: float = Field(default=10.0, description="HTTP 타임아웃 (초)")


# =============================================================================
# map 섹션: 지도 스냅샷 설정
# =============================================================================

class MapConfig(BaseModel):
    """
    지도 스냅샷 렌더링 설정입니다.

    역할:
    - 타일 서비스 URL 및 줌 레벨 지정
    - 지도 뷰 크기와 안정화(settle) 대기 시간 지정
    - 마커 색상 및 타일 캐시 크기 제어
    """
    # 타일 URL 템플릿 ({z}, {x}, {y} 치환)
    tile_url: str = Field(
        default="https://server.arcgisonline.com/ArcGIS/rest/services/World_Imagery/MapServer/tile/{z}/{y}/{x}.png",
        description="타일 URL 템플릿",
    )
    # 기본 줌 레벨
    zoom: int = Field(default=15, description="줌 레벨 (0~19)")
    # 지도 뷰 가로 픽셀
    width: int = Field(default=400, description="지도 뷰 가로 크기")
    # 지도 뷰 세로 픽셀
    height: int = Field(default=400, description="지도 뷰 세로 크기")
    # 재중심 후 래스터화 전 대기 시간 (밀리초)
    settle_ms: int = Field(default=1500, description="안정화 대기 시간 (ms)")
    # True이면 타일 로드 완료 신호를 settle_ms 한도 내에서 대기
    wait_for_tiles: bool = Field(default=False, description="타일 로드 완료 대기 여부")
    # 타일 요청 타임아웃 (초)
    tile_timeout_sec: float = Field(default=10.0, description="타일 요청 타임아웃 (초)")
    # 메모리 타일 캐시 최대 항목 수
    tile_cache_size: int = Field(default=256, description="타일 캐시 크기")
    # 타일 미로딩 영역 배경색
    background_color: str = Field(default="#DDDDDD", description="배경 색상 (HEX)")
    # 마커 색상
    marker_color: str = Field(default="#2A81CB", description="마커 색상 (HEX)")
    # 타일 요청 User-Agent
    user_agent: str = Field(default="GeoTagCamera/1.0", description="User-Agent 헤더")

    @field_validator("zoom")
    @classmethod
    def validate_zoom(cls, value: int) -> int:
        """줌 레벨이 0~19 범위인지 검증합니다."""
        if not 0 <= value <= 19:
            error_message = f"zoom은 0~19 범위여야 합니다. 입력값: {value}"
            raise ValueError(error_message)
        return value

    @field_validator("width", "height")
    @classmethod
    def validate_size(cls, value: int) -> int:
        """지도 뷰 크기가 양수인지 검증합니다."""
        if value <= 0:
            raise ValueError(f"지도 뷰 크기는 양수여야 합니다. 입력값: {value}")
        return value

    @field_validator("background_color", "marker_color")
    @classmethod
    def validate_color(cls, value: str) -> str:
        """색상이 HEX 형식인지 검증합니다."""
        return _validate_hex_color(value)


# =============================================================================
# overlay 섹션: 합성 오버레이 스타일 설정
# =============================================================================

class OverlayConfig(BaseModel):
    """
    합성 이미지 오버레이 스타일 설정입니다.

    역할:
    - 폰트 경로 및 텍스트 색상 지정
    - 반투명 밴드 색상(HEX + 투명도) 지정
    - 브랜딩 라벨 및 타임스탬프 포맷 지정
    """
    # 폰트 파일 경로 (없으면 Pillow 기본 폰트)
    font_path: str = Field(default="DejaVuSans.ttf", description="폰트 파일 경로")
    # 텍스트 색상
    text_color: str = Field(default="#FFFFFF", description="텍스트 색상 (HEX)")
    # 밴드 색상 (HEX + 투명도, 80 = 약 0.5)
    band_color: str = Field(default="#00000080", description="밴드 색상 (HEX + 투명도)")
    # 브랜딩 라벨
    branding_text: str = Field(default="GeoTag Webcam", description="브랜딩 라벨")
    # 타임스탬프 strftime 포맷 (en-US 2자리 일/월/연, 12시간제)
    timestamp_format: str = Field(default="%m/%d/%y, %I:%M %p", description="타임스탬프 포맷")

    @field_validator("text_color", "band_color")
    @classmethod
    def validate_color(cls, value: str) -> str:
        """색상이 HEX 형식인지 검증합니다."""
        return _validate_hex_color(value)


# =============================================================================
# output 섹션: 출력 이미지 설정
# =============================================================================

class OutputConfig(BaseModel):
    """
    출력 이미지 인코딩 및 다운로드 파일 설정입니다.

    역할:
    - 손실 압축 포맷 및 품질 지정
    - 다운로드 파일 기본 이름 지정
    - CLI 저장 디렉토리 지정
    """
    # 인코딩 포맷
    format: str = Field(default="jpeg", description="인코딩 포맷 (jpeg | webp)")
    # 인코딩 품질 (1~100)
    quality: int = Field(default=92, description="인코딩 품질 (1~100)")
    # 다운로드 파일 이름 (확장자 제외)
    filename_stem: str = Field(default="geotagged_photo", description="다운로드 파일 이름")
    # CLI --capture 실행 시 저장 디렉토리
    output_dir: str = Field(default="output/photos", description="저장 디렉토리")

    @field_validator("format")
    @classmethod
    def validate_format(cls, value: str) -> str:
        """인코딩 포맷이 손실 압축 포맷인지 검증합니다."""
        allowed = ("jpeg", "webp")
        lowered = value.lower()
        if lowered not in allowed:
            error_message = f"format은 {allowed} 중 하나여야 합니다. 입력값: '{value}'"
            raise ValueError(error_message)
        return lowered

    @field_validator("quality")
    @classmethod
    def validate_quality(cls, value: int) -> int:
        """인코딩 품질이 1~100 범위인지 검증합니다."""
        if not 1 <= value <= 100:
            raise ValueError(f"quality는 1~100 범위여야 합니다. 입력값: {value}")
        return value


# =============================================================================
# dashboard 섹션: 웹 인터페이스 설정
# =============================================================================

class WebDashboardConfig(BaseModel):
    """
    웹 인터페이스 서버 설정입니다.

    역할:
    - 바인드 주소 및 포트 지정
    - 상태 브로드캐스트 주기 지정
    """
    # 웹 서버 바인드 호스트 주소
    host: str = Field(default="0.0.0.0", description="웹 서버 호스트")
    # 웹 서버 포트
    port: int = Field(default=8765, description="웹 서버 포트")
    # 상태 브로드캐스트 주기 (밀리초)
    refresh_interval_ms: int = Field(default=1000, description="상태 브로드캐스트 주기 (ms)")


class DashboardConfig(BaseModel):
    """대시보드 설정입니다."""
    web: WebDashboardConfig = Field(default_factory=WebDashboardConfig, description="웹 대시보드 설정")


# =============================================================================
# 최상위 AppConfig: 모든 섹션을 통합하는 루트 모델
# =============================================================================

class AppConfig(BaseModel):
    """
    애플리케이션 전체 설정을 통합하는 최상위 모델입니다.

    역할:
    - config.yaml의 모든 섹션을 하나의 타입 안전한 객체로 통합
    - Pydantic v2 유효성 검증을 통해 설정 무결성 보장
    - 각 섹션이 누락된 경우 기본값으로 자동 생성

    사용 예시:
        >>> import yaml
        >>> with open("config.yaml") as f:
        ...     raw = yaml.safe_load(f)
        >>> config = AppConfig(**raw)
        >>> print(config.system.mode)
        'live'
        >>> print(config.map.zoom)
        15
    """
    # 시스템 전역 설정
    system: SystemConfig = Field(default_factory=SystemConfig, description="시스템 설정")
    # 카메라 설정
    camera: CameraConfig = Field(default_factory=CameraConfig, description="카메라 설정")
    # 위치 획득 설정
    location: LocationConfig = Field(default_factory=LocationConfig, description="위치 설정")
    # 역지오코딩 설정
    geocoder: GeocoderConfig = Field(default_factory=GeocoderConfig, description="역지오코딩 설정")
    # 지도 스냅샷 설정
    map: MapConfig = Field(default_factory=MapConfig, description="지도 설정")
    # 오버레이 스타일 설정
    overlay: OverlayConfig = Field(default_factory=OverlayConfig, description="오버레이 설정")
    # 출력 설정
    output: OutputConfig = Field(default_factory=OutputConfig, description="출력 설정")
    # 대시보드 설정
    dashboard: DashboardConfig = Field(default_factory=DashboardConfig, description="대시보드 설정")
