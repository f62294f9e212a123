"""Auth settings shared between the credential authority, the game server, and clients."""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

from shared.auth.protocol import U64_MAX
from shared.validators import format_socket_addr, parse_socket_addr


class AuthSettings(BaseSettings):
    model_config = {"env_prefix": "AUTH_"}

    # Versioning tag baked into every connect token. Clients and the game
    # server must agree on it or the token is rejected.
    protocol_id: int = Field(default=0, ge=0, le=U64_MAX)

    # Address of the realtime game server written into connect tokens.
    # Must be an IP literal (tokens carry packed addresses, not hostnames).
    game_server_addr: str = "127.0.0.1:5000"

    @field_validator("game_server_addr")
    @classmethod
    def validate_game_server_addr(cls, v: str) -> str:
        return format_socket_addr(parse_socket_addr(v))

    @property
    def game_server_socket_addr(self) -> tuple[str, int]:
        return parse_socket_addr(self.game_server_addr)
