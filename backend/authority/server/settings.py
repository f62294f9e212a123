"""Credential authority server configuration via environment variables."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from shared.auth.protocol import AUTH_BACKEND_PORT
from shared.validators import StringListEnvSettingsSource, parse_string_list

if TYPE_CHECKING:
    from pydantic_settings.sources.base import PydanticBaseSettingsSource


class AuthorityServerSettings(BaseSettings):
    model_config = {"env_prefix": "AUTHORITY_"}

    host: str = "0.0.0.0"  # noqa: S104
    port: int = Field(default=AUTH_BACKEND_PORT, ge=0, le=65535)  # 0 picks a free port
    private_key_path: str = Field(default="private.key", min_length=1)
    cors_origins: list[str] = ["*"]
    token_expire_seconds: int = Field(default=30, ge=1)
    token_timeout_seconds: int = Field(default=15, ge=-1)  # -1 disables the session timeout
    log_dir: str | None = None

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        return parse_string_list(v)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (init_settings, StringListEnvSettingsSource(settings_cls), dotenv_settings, file_secret_settings)
