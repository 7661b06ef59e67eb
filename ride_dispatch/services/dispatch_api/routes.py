# ride_dispatch/services/dispatch_api/routes.py
"""
Маршруты HTTP API диспетчеризации.

Вызывающий определяется по токену; доменные ошибки переводит
в HTTP-статусы обработчик из app.py.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from ride_dispatch.common.constants import PartyRole, RequestStatus
from ride_dispatch.core.dispatch.service import DispatchService
from ride_dispatch.core.presence.registry import PresenceRecord
from ride_dispatch.core.pricing.client import PricingClient
from ride_dispatch.core.requests.models import (
    DispatchRequest,
    LocationAck,
    LocationSample,
    OpenRequestsResult,
    RequestStatistics,
    coerce_point,
)
from ride_dispatch.services.dispatch_api.dependencies import (
    get_current_party,
    get_dispatch_service,
    get_pricing_client,
)
from ride_dispatch.services.dispatch_api.schemas import (
    CancelBody,
    CreateRequestBody,
    LocationBody,
    PresenceBody,
    RateBody,
    StatusBody,
)
from ride_dispatch.shared.models.common import PaginatedResponse

router = APIRouter(prefix="/requests", tags=["Requests"])
presence_router = APIRouter(prefix="/presence", tags=["Presence"])


@router.post("", response_model=DispatchRequest, status_code=201)
async def create_request(
    body: CreateRequestBody,
    party_id: str = Depends(get_current_party),
    service: DispatchService = Depends(get_dispatch_service),
    pricing: PricingClient = Depends(get_pricing_client),
):
    fare, distance_km, duration = body.fare, body.distance_km, body.duration_minutes
    if None in (fare, distance_km, duration):
        quote = await pricing.quote(
            coerce_point(body.pickup.model_dump(), "pickup_point"),
            coerce_point(body.dropoff.model_dump(), "dropoff_point") if body.dropoff else None,
        )
        fare = quote.fare if fare is None else fare
        distance_km = quote.distance_km if distance_km is None else distance_km
        duration = quote.duration_minutes if duration is None else duration

    return await service.create(
        requester_id=party_id,
        pickup_point=body.pickup.model_dump(),
        dropoff_point=body.dropoff.model_dump() if body.dropoff else None,
        fare=fare,
        distance_km=distance_km,
        duration_minutes=duration,
        notes=body.notes,
        payment_method=body.payment_method,
    )


@router.get("/open", response_model=OpenRequestsResult)
async def list_open_requests(
    limit: int | None = Query(None, ge=1, le=100),
    party_id: str = Depends(get_current_party),
    service: DispatchService = Depends(get_dispatch_service),
):
    return await service.list_open(party_id, limit)


@router.get("/active", response_model=DispatchRequest | None)
async def get_active_request(
    party_id: str = Depends(get_current_party),
    service: DispatchService = Depends(get_dispatch_service),
):
    return await service.get_active(party_id)


@router.get("/history", response_model=PaginatedResponse[DispatchRequest])
async def get_history(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    status: RequestStatus | None = None,
    party_id: str = Depends(get_current_party),
    service: DispatchService = Depends(get_dispatch_service),
):
    return await service.history(party_id, page, page_size, status)


@router.get("/statistics", response_model=list[RequestStatistics])
async def get_statistics(
    role: PartyRole = PartyRole.REQUESTER,
    party_id: str = Depends(get_current_party),
    service: DispatchService = Depends(get_dispatch_service),
):
    return await service.statistics(party_id, role)


@router.get("/{request_id}", response_model=DispatchRequest)
async def get_request(
    request_id: str,
    party_id: str = Depends(get_current_party),
    service: DispatchService = Depends(get_dispatch_service),
):
    return await service.get_details(request_id, party_id)


@router.post("/{request_id}/accept", response_model=DispatchRequest)
async def accept_request(
    request_id: str,
    party_id: str = Depends(get_current_party),
    service: DispatchService = Depends(get_dispatch_service),
):
    return await service.accept(request_id, party_id)


@router.patch("/{request_id}/status", response_model=DispatchRequest)
async def update_request_status(
    request_id: str,
    body: StatusBody,
    party_id: str = Depends(get_current_party),
    service: DispatchService = Depends(get_dispatch_service),
):
    return await service.update_status(request_id, party_id, body.status)


@router.post("/{request_id}/location", response_model=LocationAck)
async def update_location(
    request_id: str,
    body: LocationBody,
    party_id: str = Depends(get_current_party),
    service: DispatchService = Depends(get_dispatch_service),
):
    return await service.update_location(request_id, party_id, body.model_dump())


@router.get("/{request_id}/locations", response_model=list[LocationSample])
async def get_location_history(
    request_id: str,
    party_id: str = Depends(get_current_party),
    service: DispatchService = Depends(get_dispatch_service),
):
    return await service.location_history(request_id, party_id)


@router.post("/{request_id}/cancel", response_model=DispatchRequest)
async def cancel_request(
    request_id: str,
    body: CancelBody | None = None,
    party_id: str = Depends(get_current_party),
    service: DispatchService = Depends(get_dispatch_service),
):
    return await service.cancel(request_id, party_id, body.reason if body else None)


@router.post("/{request_id}/rate", response_model=DispatchRequest)
async def rate_request(
    request_id: str,
    body: RateBody,
    party_id: str = Depends(get_current_party),
    service: DispatchService = Depends(get_dispatch_service),
):
    return await service.rate(request_id, party_id, body.rating, body.feedback)


@presence_router.put("", response_model=PresenceRecord)
async def set_presence(
    body: PresenceBody,
    party_id: str = Depends(get_current_party),
    service: DispatchService = Depends(get_dispatch_service),
):
    return await service.set_presence(
        party_id,
        body.is_online,
        body.point.model_dump() if body.point else None,
    )


@presence_router.get("", response_model=PresenceRecord)
async def get_presence(
    party_id: str = Depends(get_current_party),
    service: DispatchService = Depends(get_dispatch_service),
):
    return await service.get_presence(party_id)
