"""Private key material shared between the credential authority and the game server.

The key is a raw 32-byte file. It is resolved once at process start and
passed explicitly to whoever signs or verifies connect tokens.
"""

import contextlib
import os
import secrets
import tempfile
from pathlib import Path

import structlog

logger = structlog.get_logger()

PRIVATE_KEY_BYTES = 32

# Well-known fallback used when no key file exists. Anyone can forge tokens
# signed with it, so it is only acceptable for local development.
INSECURE_DEFAULT_KEY = bytes(PRIVATE_KEY_BYTES)

_KEY_FILE_PERMISSIONS = 0o600  # owner read/write only


class PrivateKeyError(Exception):
    """The private key file exists but cannot be used."""


def load_private_key(path: str | Path) -> bytes:
    """Read the private key from path, falling back to the insecure default if absent.

    An existing file that cannot be read or does not hold exactly
    PRIVATE_KEY_BYTES bytes raises PrivateKeyError: a garbled key is a
    deployment mistake that must stop the process at startup.
    """
    key_path = Path(path)
    if not key_path.exists():
        logger.warning(
            "private key file not found, using insecure all-zero key; do not run like this in production",
            path=str(key_path),
        )
        return INSECURE_DEFAULT_KEY

    try:
        key = key_path.read_bytes()
    except OSError as exc:
        raise PrivateKeyError(f"Failed to read private key from {key_path}") from exc

    if len(key) != PRIVATE_KEY_BYTES:
        raise PrivateKeyError(f"Private key in {key_path} must be {PRIVATE_KEY_BYTES} bytes, got {len(key)}")

    if key == INSECURE_DEFAULT_KEY:
        logger.warning("private key file holds the insecure all-zero key", path=str(key_path))

    logger.info("loaded private key", path=str(key_path))
    return key


def generate_private_key() -> bytes:
    return secrets.token_bytes(PRIVATE_KEY_BYTES)


def write_private_key(path: str | Path, key: bytes) -> None:
    """Atomically write key to path with owner-only permissions."""
    if len(key) != PRIVATE_KEY_BYTES:
        raise PrivateKeyError(f"Private key must be {PRIVATE_KEY_BYTES} bytes, got {len(key)}")

    key_path = Path(path)
    key_path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=key_path.parent, prefix=".key_", suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(key)
            f.flush()
            os.fchmod(f.fileno(), _KEY_FILE_PERMISSIONS)
        Path(tmp_path).replace(key_path)
    except BaseException:
        with contextlib.suppress(OSError):
            Path(tmp_path).unlink()
        raise
