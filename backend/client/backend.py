"""HTTP client for the credential authority.

Every failure (authority unreachable, non-2xx status, malformed body) is
logged and reported as None. Callers only learn whether they got a token.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import httpx
import structlog
from pydantic import ValidationError

from shared.auth.protocol import (
    CONNECT_CLIENT_PATH,
    CREATE_CLIENT_PATH,
    AuthPayload,
    NewClientPayload,
    TokenResponse,
)

if TYPE_CHECKING:
    from pydantic import BaseModel

logger = structlog.get_logger()

_JSON_HEADERS = {"Content-Type": "application/json; charset=utf8", "Accept": "application/json"}
_MAX_LOGGED_BODY_CHARS = 200


class AuthBackendClient:
    def __init__(
        self,
        base_url: str,
        *,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    @property
    def base_url(self) -> str:
        return self._base_url

    async def create_client(self, secret: str) -> TokenResponse | None:
        """Ask the authority for a brand-new identity bound to secret."""
        return await self._post(CREATE_CLIENT_PATH, NewClientPayload(client_secret=secret))

    async def connect_existing_client(self, client_id: int, secret: str) -> TokenResponse | None:
        """Ask for a fresh token for an identity obtained earlier."""
        return await self._post(CONNECT_CLIENT_PATH, AuthPayload(client_id=client_id, client_secret=secret))

    async def fetch_token(self, secret: str, client_id: int | None = None) -> TokenResponse | None:
        """Reauthenticate as client_id when given, falling back to creating a new identity.

        The fallback covers an authority that restarted and forgot every
        identity. The same secret is reused for the new identity.
        """
        if client_id is not None:
            response = await self.connect_existing_client(client_id, secret)
            if response is not None:
                return response
            logger.info("reauthentication failed, requesting a new identity", client_id=client_id)
        return await self.create_client(secret)

    async def _post(self, path: str, payload: BaseModel) -> TokenResponse | None:
        url = f"{self._base_url}{path}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(url, content=payload.model_dump_json(), headers=_JSON_HEADERS)
        except httpx.RequestError as e:
            logger.error("failed to reach credential authority", url=url, error=str(e))
            return None

        if not response.is_success:
            logger.warning(
                "credential authority rejected request",
                url=url,
                status=response.status_code,
                error=_error_message(response),
            )
            return None

        try:
            token_response = TokenResponse.model_validate_json(response.content)
        except ValidationError:
            logger.warning("credential authority returned a malformed token response", url=url)
            return None

        logger.info("received connect token", client_id=token_response.client_id, token_len=len(token_response.token))
        return token_response


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:_MAX_LOGGED_BODY_CHARS]
    if isinstance(body, dict) and isinstance(body.get("error"), str):
        return body["error"]
    return response.text[:_MAX_LOGGED_BODY_CHARS]
