"""Shared validation helpers for service settings."""

from __future__ import annotations

import ipaddress
import json
from typing import TYPE_CHECKING, Any

from pydantic_settings import EnvSettingsSource

if TYPE_CHECKING:
    from pydantic.fields import FieldInfo

MAX_PORT = 65535


def parse_string_list(value: str | list[str], *, allow_empty: bool = False) -> list[str]:
    """Parse a string list from environment variable or config value.

    Accepts:
    - A list of strings (returned as-is)
    - A JSON array string: '["a","b"]'
    - A comma-separated string: 'a,b'

    Raises ValueError for empty string values or malformed JSON.
    When allow_empty is False (default), also rejects empty lists.
    """
    if isinstance(value, list):
        if not allow_empty and not value:
            raise ValueError("String list value must not be empty")
        return value

    stripped = value.strip()
    if not stripped:
        raise ValueError("String list value must not be empty")

    if stripped.startswith("["):
        try:
            parsed = json.loads(stripped)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON array: {e}") from e
        if not isinstance(parsed, list) or not all(isinstance(item, str) for item in parsed):
            raise ValueError("JSON value must be an array of strings")
        if not allow_empty and not parsed:
            raise ValueError("String list value must not be empty")
        return parsed

    result = [item.strip() for item in stripped.split(",") if item.strip()]
    if not allow_empty and not result:
        raise ValueError("String list value must not be empty")
    return result


def parse_socket_addr(value: str) -> tuple[str, int]:
    """Parse an ``ip:port`` string into a normalized (host, port) pair.

    IPv6 hosts must be bracketed: ``[::1]:5000``. Hostnames are rejected
    because connect tokens carry packed IP addresses, not names.
    """
    stripped = value.strip()
    host, sep, port_str = stripped.rpartition(":")
    if not sep or not host:
        raise ValueError(f"Expected 'ip:port', got {value!r}")

    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    elif ":" in host:
        raise ValueError(f"IPv6 addresses must be bracketed, got {value!r}")

    try:
        address = ipaddress.ip_address(host)
    except ValueError as e:
        raise ValueError(f"Invalid IP address {host!r}") from e

    if not port_str.isdigit():
        raise ValueError(f"Invalid port {port_str!r}")
    port = int(port_str)
    if not 0 < port <= MAX_PORT:
        raise ValueError(f"Port must be between 1 and {MAX_PORT}, got {port}")

    return str(address), port


def format_socket_addr(addr: tuple[str, int]) -> str:
    """Inverse of parse_socket_addr."""
    host, port = addr
    if ipaddress.ip_address(host).version == 6:  # noqa: PLR2004
        return f"[{host}]:{port}"
    return f"{host}:{port}"


_STRING_LIST_FIELDS = {"cors_origins"}


class StringListEnvSettingsSource(EnvSettingsSource):
    """Env settings source that passes string-list fields as raw strings to validators.

    pydantic-settings tries to JSON-decode list-typed fields from env vars before
    validators run. This subclass bypasses that for string-list fields so
    parse_string_list handles both JSON and CSV formats.
    """

    def prepare_field_value(
        self,
        field_name: str,
        field: FieldInfo,
        value: Any,  # noqa: ANN401
        value_is_complex: bool,  # noqa: FBT001
    ) -> Any:  # noqa: ANN401
        if field_name in _STRING_LIST_FIELDS and isinstance(value, str):
            return value
        return super().prepare_field_value(field_name, field, value, value_is_complex)
