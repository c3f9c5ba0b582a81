"""
역지오코딩(Reverse Geocoding) 모듈입니다.

역할:
- 좌표를 Nominatim reverse 엔드포인트에 1회 GET 요청
  (lat, lon, format=json + Accept-Language, User-Agent 헤더)
- 응답의 address 객체에서 AddressDetails 추출
  city는 city → town → village 순으로 첫 번째 값, 없으면 ""
- 재시도 없음: 실패는 바로 GeocodeError로 올라가고 재시도는 호출자가 결정

사용 예시:
    >>> geocoder = ReverseGeocoder(config.geocoder)
    >>> address = await geocoder.lookup(12.9716, 77.5946)
    >>> print(address.city)
    'Bengaluru'
    >>> await geocoder.close()
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import aiohttp

from geotagcam.config.schema import GeocoderConfig
from geotagcam.location import (
    AddressDetails,
    GeocodeNotFoundError,
    GeocodeTransportError,
)

logger = logging.getLogger(__name__)

# city 필드 후보 (앞에서부터 처음 존재하는 값 사용)
_CITY_KEYS = ("city", "town", "village")


def parse_address(payload: dict[str, Any]) -> AddressDetails:
    """
    Nominatim reverse 응답 JSON을 AddressDetails로 변환합니다.

    에러:
        GeocodeNotFoundError: address 객체가 없거나 display_name이 비어있을 때
    """
    address = payload.get("address") if isinstance(payload, dict) else None
    if not isinstance(address, dict):
        raise GeocodeNotFoundError("응답에 address 객체가 없습니다")

    display_name = payload.get("display_name")
    if not isinstance(display_name, str) or not display_name:
        raise GeocodeNotFoundError("응답에 display_name이 없습니다")

    city = next((str(address[key]) for key in _CITY_KEYS if address.get(key)), "")

    return AddressDetails(
        full_display_name=display_name,
        city=city,
        state=str(address.get("state") or ""),
        country=str(address.get("country") or ""),
        postal_code=str(address.get("postcode") or ""),
    )


class ReverseGeocoder:
    """
    aiohttp 세션을 재사용하며 역지오코딩 요청을 보내는 클래스입니다.

    session을 주입하지 않으면 첫 요청 시 직접 만들고 close()에서 닫습니다.
    """

    def __init__(
        self,
        config: GeocoderConfig,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._config = config
        self._session = session
        self._owns_session = session is None

    async def lookup(self, latitude: float, longitude: float) -> AddressDetails:
        """
        좌표에 해당하는 주소를 조회합니다.

        반환값:
            AddressDetails: 추출된 주소 레코드

        에러:
            GeocodeNotFoundError: 응답에 address 객체가 없을 때
            GeocodeTransportError: 네트워크, HTTP 상태, JSON 파싱 실패 시
        """
        params = {"lat": f"{latitude}", "lon": f"{longitude}", "format": "json"}
        headers = {
            "Accept-Language": self._config.language,
            "User-Agent": self._config.user_agent,
        }

        logger.info(f"역지오코딩 요청: lat={latitude:.6f}, lon={longitude:.6f}")
        session = self._get_session()

        try:
            async with session.get(self._config.endpoint, params=params, headers=headers) as response:
                if response.status != 200:
                    raise GeocodeTransportError(f"역지오코딩 HTTP 에러 {response.status}")
                payload = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as transport_error:
            logger.error(f"역지오코딩 전송 실패: {transport_error}")
            raise GeocodeTransportError(str(transport_error) or "timeout") from transport_error
        except ValueError as parse_error:
            logger.error(f"역지오코딩 응답 파싱 실패: {parse_error}")
            raise GeocodeTransportError(f"JSON 파싱 실패: {parse_error}") from parse_error

        address = parse_address(payload)
        logger.info(
            f"역지오코딩 완료: city='{address.city}', country='{address.country}', "
            f"postcode='{address.postal_code}'"
        )
        return address

    async def close(self) -> None:
        """직접 만든 HTTP 세션만 닫습니다."""
        if self._owns_session and self._session is not None:
            if not self._session.closed:
                await self._session.close()
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self._config.timeout_sec)
            )
        return self._session
