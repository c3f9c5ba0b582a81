"""
위치 모듈 패키지

공통 데이터 타입 정의:
- Position: 1회 획득한 위치(fix)
- AddressDetails: 역지오코딩으로 얻은 주소 레코드
- LocationError / GeocodeError 계열 예외 (각각 사용자 메시지 보유)
"""

from dataclasses import dataclass
from datetime import datetime


@dataclass(frozen=True)
class Position:
    """
    세션 시작 시 한 번 획득하는 위치 정보입니다.

    필드:
        latitude: 위도 (도, -90~90)
        longitude: 경도 (도, -180~180)
        acquired_at: 위치가 측정된 시각 (timezone-aware datetime)
    """
    latitude: float
    longitude: float
    acquired_at: datetime


@dataclass(frozen=True)
class AddressDetails:
    """
    역지오코딩 결과 주소 레코드입니다.

    full_display_name을 제외한 필드는 응답에 없으면 빈 문자열입니다.
    부분 수정하지 않고 재조회 시 통째로 교체합니다.
    """
    full_display_name: str
    city: str = ""
    state: str = ""
    country: str = ""
    postal_code: str = ""


# =============================================================================
# 위치 획득 에러
# =============================================================================

class LocationError(Exception):
    """위치 획득 실패의 기본 클래스입니다."""

    user_message = "위치를 가져오지 못했습니다."


class LocationPermissionDeniedError(LocationError):
    """위치 권한이 거부되었을 때 발생합니다 (코드 1)."""

    user_message = "위치 권한이 거부되었습니다. 위치 서비스를 켠 뒤 다시 시도하세요."


class LocationUnavailableError(LocationError):
    """위치를 확인할 수 없을 때 발생합니다 (코드 2)."""

    user_message = "위치를 확인할 수 없습니다. 네트워크 연결을 확인하세요."


class LocationTimedOutError(LocationError):
    """위치 요청이 제한 시간을 넘었을 때 발생합니다 (코드 3)."""

    user_message = "위치 요청 시간이 초과되었습니다. 다시 시도하세요."


class LocationUnknownError(LocationError):
    """분류되지 않은 위치 획득 실패입니다. 원본 메시지를 사용자 메시지에 포함합니다."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.user_message = f"위치를 가져오지 못했습니다: {message}"


# =============================================================================
# 역지오코딩 에러
# =============================================================================

class GeocodeError(Exception):
    """역지오코딩 실패의 기본 클래스입니다."""

    user_message = "주소를 가져오지 못했습니다. 다시 시도하세요."


class GeocodeNotFoundError(GeocodeError):
    """응답에 주소 정보가 없을 때 발생합니다."""

    user_message = "이 위치의 주소를 찾을 수 없습니다. 다시 시도하세요."


class GeocodeTransportError(GeocodeError):
    """네트워크, HTTP 상태, JSON 파싱 실패 시 발생합니다."""

    user_message = "주소 서버에 연결하지 못했습니다. 네트워크 연결을 확인한 뒤 다시 시도하세요."
