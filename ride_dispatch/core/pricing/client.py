# ride_dispatch/core/pricing/client.py
"""
Клиент внешнего сервиса тарификации.

Сервис отвечает на POST {PRICING_URL} с телом
{"pickup": {"latitude", "longitude"}, "dropoff": {...} | null}
объектом {"fare", "distance_km", "duration_minutes"}.
Ошибки сервиса не мешают созданию заявки: тогда сохраняются нули.
"""

from __future__ import annotations

import httpx
from pydantic import BaseModel, Field, ValidationError

from ride_dispatch.common.constants import TypeMsg
from ride_dispatch.common.logger import log_error, log_info
from ride_dispatch.core.requests.models import GeoPoint


class FareQuote(BaseModel):
    """Предрасчёт стоимости поездки."""

    fare: float = Field(0.0, ge=0.0)
    distance_km: float = Field(0.0, ge=0.0)
    duration_minutes: int = Field(0, ge=0)


class PricingClient:
    """HTTP-клиент тарификации."""

    def __init__(
        self,
        url: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Args:
            url: Адрес расчёта (берётся из конфига если None)
            timeout: Таймаут запроса, секунды
            client: Готовый httpx клиент (для тестов)
        """
        if url is None or timeout is None:
            from ride_dispatch.config import settings
            url = settings.pricing.PRICING_URL if url is None else url
            timeout = settings.pricing.PRICING_TIMEOUT if timeout is None else timeout

        self._url = url
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @property
    def enabled(self) -> bool:
        return bool(self._url)

    async def close(self) -> None:
        """Закрывает HTTP клиент."""
        await self._client.aclose()

    async def quote(self, pickup: GeoPoint, dropoff: GeoPoint | None) -> FareQuote:
        """
        Запрашивает стоимость, расстояние и длительность.

        Returns:
            Предрасчёт; нулевой, если сервис не настроен или недоступен
        """
        if not self.enabled:
            return FareQuote()

        body = {
            "pickup": pickup.model_dump(),
            "dropoff": dropoff.model_dump() if dropoff else None,
        }
        try:
            response = await self._client.post(self._url, json=body)
            response.raise_for_status()
            quote = FareQuote.model_validate(response.json())
        except (httpx.HTTPError, ValueError, ValidationError) as e:
            await log_error(f"Сервис тарификации недоступен: {e}")
            return FareQuote()

        await log_info(
            f"Тариф получен: {quote.fare} за {quote.distance_km} км",
            type_msg=TypeMsg.DEBUG,
        )
        return quote
