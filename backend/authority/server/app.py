from __future__ import annotations

from typing import TYPE_CHECKING, TypeVar, cast

import structlog
from pydantic import BaseModel, ValidationError
from starlette.applications import Starlette
from starlette.concurrency import run_in_threadpool
from starlette.middleware.cors import CORSMiddleware
from starlette.responses import JSONResponse
from starlette.routing import Route

from authority.registry import InMemoryIdentityRegistry
from authority.server.settings import AuthorityServerSettings
from authority.service import AuthError, AuthErrorKind, CredentialAuthority
from authority.signer import CredentialSigner
from shared.auth.keys import load_private_key
from shared.auth.protocol import (
    CONNECT_CLIENT_PATH,
    CREATE_CLIENT_PATH,
    AuthPayload,
    ErrorResponse,
    NewClientPayload,
    TokenResponse,
)
from shared.auth.settings import AuthSettings
from shared.logging import setup_logging

logger = structlog.get_logger()

if TYPE_CHECKING:
    from starlette.requests import Request

    from authority.service import IssuedCredential

PayloadT = TypeVar("PayloadT", bound=BaseModel)

_MAX_REQUEST_BODY_SIZE = 4096


async def _read_payload(request: Request, model: type[PayloadT]) -> PayloadT:
    """Parse and validate the JSON body. Anything malformed counts as missing credentials."""
    raw_body = await request.body()
    if len(raw_body) > _MAX_REQUEST_BODY_SIZE:
        raise AuthError(AuthErrorKind.MISSING_CREDENTIALS)
    try:
        return model.model_validate_json(raw_body)
    except ValidationError as e:
        raise AuthError(AuthErrorKind.MISSING_CREDENTIALS) from e


def _token_response(issued: IssuedCredential) -> JSONResponse:
    body = TokenResponse.from_token_bytes(issued.client_id, issued.token)
    return JSONResponse(body.model_dump())


async def _auth_error_handler(request: Request, exc: Exception) -> JSONResponse:
    auth_error = cast("AuthError", exc)
    logger.info("auth request rejected", path=request.url.path, error=auth_error.kind)
    return JSONResponse(ErrorResponse(error=auth_error.message).model_dump(), status_code=auth_error.status_code)


async def create_client(request: Request) -> JSONResponse:
    """POST /create_client - allocate a new identity for the submitted secret."""
    authority: CredentialAuthority = request.app.state.authority
    payload = await _read_payload(request, NewClientPayload)
    issued = await run_in_threadpool(authority.create_identity, payload.client_secret)
    return _token_response(issued)


async def connect_client(request: Request) -> JSONResponse:
    """POST /connect_client - issue a fresh token for an existing identity."""
    authority: CredentialAuthority = request.app.state.authority
    payload = await _read_payload(request, AuthPayload)
    issued = await run_in_threadpool(authority.reauthenticate, payload.client_id, payload.client_secret)
    return _token_response(issued)


async def health(request: Request) -> JSONResponse:
    authority: CredentialAuthority = request.app.state.authority
    return JSONResponse({"status": "ok", "identities": authority.registry.identity_count})


def build_authority(settings: AuthorityServerSettings, auth_settings: AuthSettings) -> CredentialAuthority:
    """Resolve key material and signing configuration once, at startup."""
    private_key = load_private_key(settings.private_key_path)
    signer = CredentialSigner(
        auth_settings.game_server_socket_addr,
        auth_settings.protocol_id,
        private_key,
        expire_seconds=settings.token_expire_seconds,
        timeout_seconds=settings.token_timeout_seconds,
    )
    return CredentialAuthority(InMemoryIdentityRegistry(), signer)


def create_app(
    settings: AuthorityServerSettings | None = None,
    auth_settings: AuthSettings | None = None,
    authority: CredentialAuthority | None = None,
) -> Starlette:
    if settings is None:  # pragma: no cover
        settings = AuthorityServerSettings()
    if auth_settings is None:  # pragma: no cover
        auth_settings = AuthSettings()
    if authority is None:
        authority = build_authority(settings, auth_settings)

    routes = [
        Route(CREATE_CLIENT_PATH, create_client, methods=["POST"], name="create_client"),
        Route(CONNECT_CLIENT_PATH, connect_client, methods=["POST"], name="connect_client"),
        Route("/health", health, methods=["GET"], name="health"),
    ]

    app = Starlette(routes=routes, exception_handlers={AuthError: _auth_error_handler})
    app.add_middleware(
        CORSMiddleware,  # type: ignore[arg-type]
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )
    app.state.settings = settings
    app.state.auth_settings = auth_settings
    app.state.authority = authority

    logger.info("credential authority ready")
    return app


def get_app() -> Starlette:  # pragma: no cover
    """Factory function for uvicorn --factory authority.server.app:get_app."""
    settings = AuthorityServerSettings()
    setup_logging(log_dir=settings.log_dir)
    return create_app(settings=settings, auth_settings=AuthSettings())
