# ride_dispatch/services/dispatch_api/dependencies.py
"""
Dependency Injection для HTTP API диспетчеризации.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Header, HTTPException

from ride_dispatch.core.dispatch.service import DispatchService
from ride_dispatch.core.exceptions import NotAuthorizedError
from ride_dispatch.core.identity import Authenticator
from ride_dispatch.core.pricing.client import PricingClient


# Синглтоны
_dispatch_service: DispatchService | None = None
_authenticator: Authenticator | None = None
_pricing_client: PricingClient | None = None


def init_dependencies(
    dispatch_service: DispatchService,
    authenticator: Authenticator,
    pricing_client: PricingClient,
) -> None:
    """Инициализировать зависимости при старте приложения."""
    global _dispatch_service, _authenticator, _pricing_client
    _dispatch_service = dispatch_service
    _authenticator = authenticator
    _pricing_client = pricing_client


def get_dispatch_service() -> DispatchService:
    """Получить сервис диспетчеризации."""
    if _dispatch_service is None:
        raise RuntimeError("DispatchService не инициализирован. Вызовите init_dependencies()")
    return _dispatch_service


def get_authenticator() -> Authenticator:
    if _authenticator is None:
        raise RuntimeError("Authenticator не инициализирован. Вызовите init_dependencies()")
    return _authenticator


def get_pricing_client() -> PricingClient:
    if _pricing_client is None:
        raise RuntimeError("PricingClient не инициализирован. Вызовите init_dependencies()")
    return _pricing_client


async def get_current_party(
    authorization: Annotated[str | None, Header()] = None,
    authenticator: Authenticator = Depends(get_authenticator),
) -> str:
    """
    Идентификатор вызывающего из заголовка Authorization: Bearer <token>.
    """
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Требуется заголовок Authorization: Bearer")

    try:
        return authenticator.authenticate(authorization[7:].strip())
    except NotAuthorizedError as e:
        raise HTTPException(status_code=401, detail=e.message)


async def cleanup_dependencies() -> None:
    """Очистить ресурсы при остановке приложения."""
    global _dispatch_service, _authenticator, _pricing_client
    if _dispatch_service is not None:
        await _dispatch_service.drain()
    if _pricing_client is not None:
        await _pricing_client.close()
    _dispatch_service = None
    _authenticator = None
    _pricing_client = None
