"""FastAPI dependency injection helpers.

Process-wide clients live on ``app.state`` (built once by
``create_app``); these helpers hand them to the routes.
"""

import uuid
from typing import Optional

from fastapi import Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from offer_resolution.domain.errors import Unauthorized
from offer_resolution.services.acceptance import AcceptanceEngine
from offer_resolution.services.fanout import NotificationFanout


async def get_db(request: Request) -> AsyncSession:  # type: ignore[misc]
    """Yield an async DB session; commit on success, rollback on error."""
    async with request.app.state.session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


def get_engine(request: Request) -> AcceptanceEngine:
    return request.app.state.acceptance_engine


def get_fanout(request: Request) -> NotificationFanout:
    return request.app.state.fanout


def bearer_token(authorization: Optional[str]) -> str:
    if not authorization:
        raise Unauthorized("Missing authorization header")
    scheme, _, token = authorization.strip().partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        raise Unauthorized("Malformed authorization header")
    return token


async def get_current_subject(
    request: Request,
    authorization: Optional[str] = Header(None),
) -> uuid.UUID:
    """Verify the bearer credential and return the caller's user id."""
    token = bearer_token(authorization)
    return await request.app.state.identity_verifier.verify(token)
