"""
위치(Position) 획득 모듈입니다.

역할:
- 백엔드에 1회성 위치 요청 (연속 폴링 없음)
- 제공자 자체 타임아웃(기본 20000ms) 적용
- 요청 시작 이전에 측정된 캐시 위치 거부 (maximum_age_ms=0)
- 백엔드 에러 코드(1=권한, 2=위치 불가, 3=타임아웃)를 LocationError 계열로 변환
- 단계별 상태 통보: requesting → acquired | failed

백엔드:
- StaticPositionBackend: 설정 좌표를 그대로 반환 (키오스크, 테스트)
- IpPositionBackend: IP 기반 위치 조회 HTTP 1회 호출 (aiohttp)

사용 예시:
    >>> provider = PositionProvider(create_position_backend(config.location))
    >>> position = await provider.acquire(timeout_ms=20000, require_high_accuracy=True)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import aiohttp

from geotagcam.config.schema import LocationConfig
from geotagcam.location import (
    LocationError,
    LocationPermissionDeniedError,
    LocationTimedOutError,
    LocationUnavailableError,
    LocationUnknownError,
    Position,
)

logger = logging.getLogger(__name__)

# 백엔드 에러 코드
PERMISSION_DENIED = 1
POSITION_UNAVAILABLE = 2
TIMEOUT = 3

# 상태 통보 단계
PHASE_REQUESTING = "requesting"
PHASE_ACQUIRED = "acquired"
PHASE_FAILED = "failed"

# 상태 콜백 타입: (단계, 사용자 메시지) -> None
StatusCallback = Callable[[str, str], None]


@dataclass
class RawFix:
    """백엔드가 돌려주는 가공 전 위치 응답입니다."""
    latitude: float
    longitude: float
    timestamp: datetime


class PositionBackendError(Exception):
    """
    백엔드 수준 위치 에러입니다.

    필드:
        code: 1(권한 거부) | 2(위치 불가) | 3(타임아웃) | 그 외(알 수 없음)
    """

    def __init__(self, code: int, message: str = "") -> None:
        super().__init__(message or f"위치 백엔드 에러 코드 {code}")
        self.code = code


# =============================================================================
# 백엔드
# =============================================================================

class StaticPositionBackend:
    """설정에 고정된 좌표를 요청 시각으로 찍어 돌려주는 백엔드입니다."""

    name = "static"

    def __init__(self, latitude: float, longitude: float) -> None:
        self._latitude = latitude
        self._longitude = longitude

    async def request_fix(self, high_accuracy: bool) -> RawFix:
        return RawFix(self._latitude, self._longitude, datetime.now(timezone.utc))

    async def close(self) -> None:
        pass


class IpPositionBackend:
    """
    IP 기반 위치 조회 서비스(기본 ip-api.com)에 1회 요청하는 백엔드입니다.

    도시 단위 정확도라서 고정밀 요청 시 경고 로그를 남깁니다.
    """

    name = "ip"

    def __init__(
        self,
        endpoint: str,
        timeout_sec: float,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._endpoint = endpoint
        self._timeout_sec = timeout_sec
        self._session = session
        self._owns_session = session is None

    async def request_fix(self, high_accuracy: bool) -> RawFix:
        """
        에러:
            PositionBackendError: 네트워크/HTTP/응답 형식 실패 시
        """
        if high_accuracy:
            logger.warning("IP 위치 백엔드는 고정밀 위치를 제공하지 않습니다 (도시 단위 정확도)")

        session = self._get_session()
        try:
            async with session.get(self._endpoint) as response:
                if response.status in (401, 403):
                    raise PositionBackendError(
                        PERMISSION_DENIED, f"위치 서비스가 요청을 거부했습니다 (HTTP {response.status})"
                    )
                if response.status != 200:
                    raise PositionBackendError(
                        POSITION_UNAVAILABLE, f"위치 서비스 HTTP 에러 {response.status}"
                    )
                data = await response.json(content_type=None)
        except aiohttp.ClientError as client_error:
            raise PositionBackendError(POSITION_UNAVAILABLE, str(client_error)) from client_error
        except ValueError as parse_error:
            raise PositionBackendError(
                POSITION_UNAVAILABLE, f"위치 응답 파싱 실패: {parse_error}"
            ) from parse_error

        if not isinstance(data, dict) or data.get("status", "success") != "success":
            message = data.get("message", "unknown") if isinstance(data, dict) else "잘못된 응답"
            raise PositionBackendError(POSITION_UNAVAILABLE, f"위치 조회 실패: {message}")

        try:
            latitude = float(data["lat"])
            longitude = float(data["lon"])
        except (KeyError, TypeError, ValueError) as field_error:
            raise PositionBackendError(
                POSITION_UNAVAILABLE, f"응답에 좌표가 없습니다: {field_error}"
            ) from field_error

        return RawFix(latitude, longitude, datetime.now(timezone.utc))

    async def close(self) -> None:
        """직접 만든 HTTP 세션만 닫습니다."""
        if self._owns_session and self._session is not None:
            if not self._session.closed:
                await self._session.close()
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._timeout_sec)
            )
        return self._session


def create_position_backend(config: LocationConfig):
    """
    location.backend 설정에 맞는 백엔드를 생성합니다.

    반환값:
        StaticPositionBackend | IpPositionBackend | None (지원하지 않는 백엔드)
    """
    if config.backend == "static":
        return StaticPositionBackend(config.latitude, config.longitude)
    if config.backend == "ip":
        return IpPositionBackend(config.ip_endpoint, config.timeout_ms / 1000.0)
    logger.error(f"지원하지 않는 위치 백엔드: {config.backend}")
    return None


# =============================================================================
# 위치 제공자
# =============================================================================

class PositionProvider:
    """
    1회성 위치 요청과 에러 분류를 담당하는 제공자입니다.

    backend가 None이면 위치 기능을 지원하지 않는 환경으로 취급합니다.
    """

    def __init__(self, backend, on_status: Optional[StatusCallback] = None) -> None:
        self._backend = backend
        self._on_status = on_status

    async def acquire(
        self,
        timeout_ms: int = 20000,
        require_high_accuracy: bool = True,
        maximum_age_ms: int = 0,
    ) -> Position:
        """
        위치를 1회 요청합니다.

        파라미터:
            timeout_ms: 요청 제한 시간 (밀리초)
            require_high_accuracy: 고정밀 위치 요구 여부
            maximum_age_ms: 허용되는 캐시 위치의 최대 나이 (0이면 요청 이후 측정값만 허용)

        반환값:
            Position: 획득한 위치

        에러:
            LocationPermissionDeniedError, LocationUnavailableError,
            LocationTimedOutError, LocationUnknownError
        """
        if self._backend is None:
            error = LocationUnavailableError("이 환경은 위치 기능을 지원하지 않습니다")
            error.user_message = "이 환경은 위치 기능을 지원하지 않습니다."
            self._fail(error)
            raise error

        self._emit(PHASE_REQUESTING, "위치 권한을 요청하는 중...")
        requested_at = datetime.now(timezone.utc)
        logger.info(
            f"위치 요청 시작: backend={self._backend.name}, timeout={timeout_ms}ms, "
            f"high_accuracy={require_high_accuracy}"
        )

        try:
            fix = await asyncio.wait_for(
                self._backend.request_fix(require_high_accuracy),
                timeout=timeout_ms / 1000.0,
            )
        except asyncio.TimeoutError as timeout_error:
            error = LocationTimedOutError(f"{timeout_ms}ms 안에 위치를 받지 못했습니다")
            self._fail(error)
            raise error from timeout_error
        except PositionBackendError as backend_error:
            error = map_backend_error(backend_error)
            self._fail(error)
            raise error from backend_error

        oldest_allowed = requested_at - timedelta(milliseconds=maximum_age_ms)
        if fix.timestamp < oldest_allowed:
            error = LocationUnavailableError(
                f"캐시된 위치 거부: fix={fix.timestamp.isoformat()}, "
                f"허용 시각={oldest_allowed.isoformat()}"
            )
            self._fail(error)
            raise error

        position = Position(
            latitude=fix.latitude,
            longitude=fix.longitude,
            acquired_at=fix.timestamp,
        )
        logger.info(f"위치 획득: lat={position.latitude:.6f}, lon={position.longitude:.6f}")
        self._emit(PHASE_ACQUIRED, "위치 확보 완료 👍🏻")
        return position

    def set_status_callback(self, on_status: Optional[StatusCallback]) -> None:
        """단계별 상태 통보를 받을 콜백을 교체합니다."""
        self._on_status = on_status

    async def close(self) -> None:
        """백엔드 리소스(HTTP 세션 등)를 정리합니다."""
        if self._backend is not None:
            await self._backend.close()

    def _emit(self, phase: str, message: str) -> None:
        if self._on_status is not None:
            self._on_status(phase, message)

    def _fail(self, error: LocationError) -> None:
        logger.error(f"위치 획득 실패: {type(error).__name__}: {error}")
        self._emit(PHASE_FAILED, error.user_message)


def map_backend_error(error: PositionBackendError) -> LocationError:
    """백엔드 에러 코드를 LocationError 계열 예외로 변환합니다."""
    if error.code == PERMISSION_DENIED:
        return LocationPermissionDeniedError(str(error))
    if error.code == POSITION_UNAVAILABLE:
        return LocationUnavailableError(str(error))
    if error.code == TIMEOUT:
        return LocationTimedOutError(str(error))
    return LocationUnknownError(str(error))
