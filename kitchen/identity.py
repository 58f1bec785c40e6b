import logging
from typing import Protocol

import httpx

from kitchen.errors import InternalError, InvalidArgument
from kitchen.models import Identity


logger = logging.getLogger(__name__)


TOKENINFO_URL = "https://oauth2.googleapis.com/tokeninfo"
TIMEOUT = 20


class IdentityProvider(Protocol):
    async def verify(self, token: str) -> Identity:
        ...


class GoogleIdentityProvider:
    """Checks Google sign-in ID tokens against the tokeninfo endpoint."""

    def __init__(
        self,
        *,
        client_id: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.client_id = client_id
        self.http_client = (
            httpx.AsyncClient(timeout=TIMEOUT) if http_client is None else http_client
        )

    async def verify(self, token: str) -> Identity:
        if not token:
            raise InvalidArgument("Missing ID token")

        try:
            resp = await self.http_client.get(TOKENINFO_URL, params={"id_token": token})
        except httpx.HTTPError as e:
            logger.exception("Identity provider unreachable.")
            raise InternalError("Error signing in") from e

        if resp.status_code == 400:
            raise InvalidArgument("Invalid ID token")
        if resp.is_error:
            logger.error("Identity provider error %s: %s", resp.status_code, resp.text)
            raise InternalError("Error signing in")

        data = resp.json()
        if self.client_id and data.get("aud") != self.client_id:
            raise InvalidArgument("ID token issued for another client")
        if not data.get("sub"):
            raise InvalidArgument("ID token has no subject")

        return Identity(
            uid=data["sub"],
            display_name=data.get("name", ""),
            email=data.get("email", ""),
            photo_url=data.get("picture", ""),
        )

    async def close(self) -> None:
        await self.http_client.aclose()
