"""
캡처 모듈 패키지

공통 데이터 타입 정의:
- VideoFrame: 비디오 프레임 컨테이너
- VideoDevice: 열거된 비디오 입력 장치 정보
- CaptureRequest: 장치 열기 요청 파라미터
- CameraError 계열 예외
"""

from dataclasses import dataclass
from typing import Optional


@dataclass
class VideoFrame:
    """
    비디오 프레임 데이터 컨테이너입니다.

    필드:
        frame_id: 프레임 순번 (0부터 시작)
        timestamp_ns: 캡처 시각 (nanoseconds, time.time_ns() 기준)
        width: 프레임 가로 픽셀 수 (장치가 실제로 내어준 해상도)
        height: 프레임 세로 픽셀 수
        pixel_format: 픽셀 포맷 문자열 ("bgr" | "bgra" | "rgb")
        data: 원시 픽셀 데이터 (bytes)
    """
    frame_id: int
    timestamp_ns: int
    width: int
    height: int
    pixel_format: str
    data: bytes


@dataclass
class VideoDevice:
    """
    열거된 비디오 입력 장치 정보입니다.

    필드:
        device_id: 장치 식별자 (예: "/dev/video0")
        label: 사람이 읽을 수 있는 장치 이름 (예: "Back Camera")
        index: OpenCV VideoCapture에 넘길 장치 인덱스
    """
    device_id: str
    label: str
    index: int


@dataclass
class CaptureRequest:
    """
    장치 열기 요청 파라미터입니다.

    preferred_device_id가 None이면 facing_mode_hint로 장치를 고릅니다.
    """
    width: int
    height: int
    preferred_device_id: Optional[str] = None
    facing_mode_hint: Optional[str] = None


class CameraError(Exception):
    """카메라 관련 에러의 기본 클래스입니다."""

    user_message = "카메라에 접근하지 못했습니다. 카메라 권한을 허용했는지 확인하세요."


class CameraPermissionDeniedError(CameraError):
    """장치 접근 권한이 거부되었을 때 발생합니다."""

    user_message = "카메라 접근 권한이 거부되었습니다. 권한을 허용한 뒤 다시 시도하세요."


class NoCameraDeviceError(CameraError):
    """사용 가능한 비디오 입력 장치가 없거나 장치를 열 수 없을 때 발생합니다."""

    user_message = "사용 가능한 카메라를 찾지 못했습니다. 카메라 연결을 확인하세요."


class CameraNotReadyError(CameraError):
    """스트림 메타데이터(실제 해상도)가 확보되기 전에 프레임을 요청하면 발생합니다."""

    user_message = "카메라가 아직 준비되지 않았습니다. 잠시 후 다시 시도하세요."
