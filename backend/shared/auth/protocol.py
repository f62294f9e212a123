"""Request and response bodies exchanged between clients and the credential authority."""

from typing import Annotated, Self

from pydantic import BaseModel, Field

U64_MAX = 2**64 - 1

AUTH_BACKEND_PORT = 4100

CREATE_CLIENT_PATH = "/create_client"
CONNECT_CLIENT_PATH = "/connect_client"

ClientId = Annotated[int, Field(ge=0, le=U64_MAX, strict=True)]
ByteValue = Annotated[int, Field(ge=0, le=255, strict=True)]


class NewClientPayload(BaseModel):
    """Body of POST /create_client. Unknown fields are ignored."""

    client_secret: str = Field(strict=True)


class AuthPayload(BaseModel):
    """Body of POST /connect_client. Unknown fields are ignored."""

    client_id: ClientId
    client_secret: str = Field(strict=True)


class TokenResponse(BaseModel, frozen=True):
    """Successful response of both endpoints.

    The token is serialized as a JSON array of byte values.
    """

    token: list[ByteValue]
    client_id: ClientId

    @classmethod
    def from_token_bytes(cls, client_id: int, token: bytes) -> Self:
        return cls(token=list(token), client_id=client_id)

    @property
    def token_bytes(self) -> bytes:
        return bytes(self.token)


class ErrorResponse(BaseModel):
    error: str
