# src/core/geo/client.py
"""
Клиент геолокации (Google Geocoding API).
Превращает адрес, указанный в заявке, в координаты.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import httpx

from src.common.constants import TypeMsg
from src.common.logger import log_info, log_error


@dataclass
class Location:
    """Геолокация."""
    latitude: float
    longitude: float
    address: str = ""


class GeolocationClient:
    """
    Прямое геокодирование через Google Maps API.

    Любая ошибка (нет ключа, таймаут, пустой ответ) возвращает None;
    вызывающий код в этом случае относит заявку к экосистеме по умолчанию.
    """

    GEOCODING_URL = "https://maps.googleapis.com/maps/api/geocode/json"

    def __init__(
        self,
        api_key: str | None = None,
        language: str = "en",
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if api_key is None:
            from src.config import settings
            api_key = settings.geolocation.GOOGLE_MAPS_API_KEY
            language = settings.geolocation.GEOCODING_LANGUAGE
            timeout = settings.geolocation.GEOCODING_TIMEOUT_SECONDS

        self._api_key = api_key
        self._language = language
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        """Закрывает HTTP клиент."""
        await self._client.aclose()

    async def geocode(self, address: str) -> Optional[Location]:
        """
        Прямое геокодирование: адрес -> координаты.

        Args:
            address: Адрес или название населённого пункта

        Returns:
            Локация с координатами или None
        """
        if not address:
            return None

        if not self._api_key:
            await log_error("Google Maps API key не настроен")
            return None

        try:
            response = await self._client.get(
                self.GEOCODING_URL,
                params={
                    "address": address,
                    "key": self._api_key,
                    "language": self._language,
                },
            )
            response.raise_for_status()
            data = response.json()

            if data.get("status") != "OK" or not data.get("results"):
                await log_info(
                    f"Геокодирование не дало результатов для: {address}",
                    type_msg=TypeMsg.WARNING,
                )
                return None

            result = data["results"][0]
            location = result["geometry"]["location"]

            return Location(
                latitude=location["lat"],
                longitude=location["lng"],
                address=result.get("formatted_address", address),
            )
        except (httpx.HTTPError, KeyError, ValueError) as e:
            await log_error(f"Ошибка геокодирования '{address}': {e}")
            return None
