"""
Admin / observability endpoints
===============================

GET /api/v1/admin/health          -- simple health check
GET /api/v1/admin/rides/{ride_id} -- ride snapshot with every offer on it
"""

import uuid

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from offer_resolution.api.dependencies import get_db
from offer_resolution.api.schemas import (
    HealthResponse,
    OfferResponse,
    RideDetailResponse,
    RideSnapshot,
)
from offer_resolution.infrastructure.repositories import (
    OfferRepository,
    RideRepository,
)

router = APIRouter(prefix="/admin", tags=["admin"])


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()


@router.get(
    "/rides/{ride_id}",
    response_model=RideDetailResponse,
    summary="Inspect a ride and its offers",
)
async def get_ride(
    ride_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
):
    ride = await RideRepository(db).get_by_id(ride_id)
    if not ride:
        raise HTTPException(status_code=404, detail="Ride not found")

    offers = await OfferRepository(db).list_for_ride(ride_id)
    return RideDetailResponse(
        **RideSnapshot.model_validate(ride).model_dump(),
        user_id=ride.user_id,
        offers=[OfferResponse.model_validate(o) for o in offers],
    )
