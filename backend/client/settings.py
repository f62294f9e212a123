"""Game client configuration via environment variables."""

import os
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings

from shared.auth.protocol import AUTH_BACKEND_PORT

APP_DIR_NAME = "netauth"
PREFS_FILE_NAME = "auth_prefs.json"


def default_prefs_path() -> Path:
    """$XDG_CONFIG_HOME/netauth/auth_prefs.json, defaulting to ~/.config."""
    config_home = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(config_home) / APP_DIR_NAME / PREFS_FILE_NAME


class ClientSettings(BaseSettings):
    model_config = {"env_prefix": "CLIENT_"}

    auth_backend_url: str = f"http://127.0.0.1:{AUTH_BACKEND_PORT}"
    prefs_path: Path = Field(default_factory=default_prefs_path)

    # None waits for the authority indefinitely; the client stays in
    # REQUESTING until the request resolves.
    request_timeout: float | None = Field(default=None, gt=0)
