"""Pydantic request / response schemas for the REST API."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from pydantic import AliasChoices, BaseModel, Field

from offer_resolution.domain.enums import OfferStatus, RideStatus


# ── Requests ──────────────────────────────────────────────────────────


class AcceptOfferRequest(BaseModel):
    offer_id: uuid.UUID = Field(
        ...,
        validation_alias=AliasChoices("offer_id", "offerId"),
        description="Offer to accept; either spelling is accepted.",
    )


# ── Responses ─────────────────────────────────────────────────────────


class RideSnapshot(BaseModel):
    id: uuid.UUID
    status: RideStatus
    driver_id: Optional[uuid.UUID] = None
    service_type: Optional[str] = None
    pickup_address: Optional[str] = None
    pickup_lat: Optional[float] = None
    pickup_lng: Optional[float] = None
    dropoff_address: Optional[str] = None
    dropoff_lat: Optional[float] = None
    dropoff_lng: Optional[float] = None
    fare: Optional[float] = None
    accepted_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class AcceptOfferResponse(BaseModel):
    success: bool = True
    ride_id: uuid.UUID
    driver_id: uuid.UUID
    offer_id: uuid.UUID
    rejected_driver_ids: list[uuid.UUID] = []
    ride: Optional[RideSnapshot] = None


class OfferResponse(BaseModel):
    id: uuid.UUID
    driver_id: uuid.UUID
    status: OfferStatus
    quoted_price: Optional[float] = None
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class RideDetailResponse(RideSnapshot):
    user_id: uuid.UUID
    offers: list[OfferResponse] = []


class HealthResponse(BaseModel):
    status: str = "ok"


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    code: str
