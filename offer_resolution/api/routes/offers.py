"""
Offer endpoints
===============

POST    /api/v1/accept-offer -- passenger accepts one driver's offer
OPTIONS /api/v1/accept-offer -- CORS pre-flight, no auth, empty body

The gate runs in this order: method, bearer credential, body shape.
Only a request that passes all three reaches the acceptance engine.
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Request, Response
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from offer_resolution.api.dependencies import (
    get_current_subject,
    get_engine,
    get_fanout,
)
from offer_resolution.api.middleware import limiter
from offer_resolution.api.schemas import (
    AcceptOfferRequest,
    AcceptOfferResponse,
    ErrorResponse,
    RideSnapshot,
)
from offer_resolution.config import settings
from offer_resolution.domain.errors import InvalidRequest, error_for
from offer_resolution.infrastructure.repositories import RideRepository
from offer_resolution.services.acceptance import AcceptanceEngine
from offer_resolution.services.fanout import NotificationFanout

logger = logging.getLogger(__name__)

router = APIRouter(tags=["offers"])


async def parse_accept_request(request: Request) -> AcceptOfferRequest:
    try:
        payload = await request.json()
    except ValueError:
        raise InvalidRequest()
    if not isinstance(payload, dict):
        raise InvalidRequest()
    try:
        return AcceptOfferRequest.model_validate(payload)
    except ValidationError:
        raise InvalidRequest()


async def load_ride_snapshot(
    request: Request, ride_id: uuid.UUID
) -> Optional[RideSnapshot]:
    """Read the committed ride; a failure here does not undo the acceptance."""
    try:
        async with request.app.state.session_factory() as session:
            ride = await RideRepository(session).get_by_id(ride_id)
            return RideSnapshot.model_validate(ride) if ride else None
    except (SQLAlchemyError, OSError):
        logger.exception("Could not load snapshot of ride %s", ride_id)
        return None


@router.options("/accept-offer", include_in_schema=False)
async def accept_offer_preflight():
    return Response(status_code=200)


@router.post(
    "/accept-offer",
    response_model=AcceptOfferResponse,
    summary="Accept a driver's offer",
    description=(
        "Atomically assigns the offer's driver to the caller's ride and "
        "rejects every competing offer, then notifies the passenger and "
        "the rejected drivers."
    ),
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
@limiter.limit(settings.accept_rate_limit)
async def accept_offer(
    request: Request,
    passenger_id: uuid.UUID = Depends(get_current_subject),
    engine: AcceptanceEngine = Depends(get_engine),
    fanout: NotificationFanout = Depends(get_fanout),
):
    body = await parse_accept_request(request)

    result = await engine.accept(body.offer_id, passenger_id)
    if not result.success:
        raise error_for(result.error, result.message)

    ride = await load_ride_snapshot(request, result.ride_id)
    await fanout.broadcast(
        result, passenger_id, dropoff_text=ride.dropoff_address if ride else None
    )

    return AcceptOfferResponse(
        ride_id=result.ride_id,
        driver_id=result.driver_id,
        offer_id=result.offer_id,
        rejected_driver_ids=list(result.rejected_driver_ids),
        ride=ride,
    )
