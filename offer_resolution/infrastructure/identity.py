"""
Identity verification against the hosted auth provider.

Given a bearer token, ``GET {identity_url}/auth/v1/user`` returns the
user record; its ``id`` is the authenticated subject.  The call is
read-only and bounded by ``identity_timeout_seconds`` so a slow provider
fails the request instead of hanging it.
"""

from __future__ import annotations

import logging
import uuid
from typing import Protocol

import httpx

from offer_resolution.domain.errors import IdentityTimeout, Unauthorized

logger = logging.getLogger(__name__)


class IdentityVerifier(Protocol):
    async def verify(self, token: str) -> uuid.UUID: ...


class HttpIdentityVerifier:
    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        timeout_seconds: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ):
        self.api_key = api_key
        self.client = client or httpx.AsyncClient(
            base_url=base_url, timeout=timeout_seconds
        )

    async def verify(self, token: str) -> uuid.UUID:
        """Return the subject id for *token* or raise ``Unauthorized``."""
        headers = {"Authorization": f"Bearer {token}"}
        if self.api_key:
            headers["apikey"] = self.api_key

        try:
            resp = await self.client.get("/auth/v1/user", headers=headers)
        except httpx.TimeoutException:
            logger.warning("Identity provider timed out")
            raise IdentityTimeout()
        except httpx.HTTPError as exc:
            logger.warning("Identity provider unreachable: %s", exc)
            raise Unauthorized()

        if resp.status_code != 200:
            raise Unauthorized()

        try:
            return uuid.UUID(str(resp.json()["id"]))
        except (ValueError, KeyError, TypeError):
            logger.warning("Identity provider returned an unusable user record")
            raise Unauthorized()

    async def aclose(self) -> None:
        await self.client.aclose()
