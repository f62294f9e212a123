"""Persisted client auth preferences: the last connect token and the secret behind it."""

import contextlib
import json
import os
import tempfile
from pathlib import Path

import structlog
from pydantic import BaseModel, ValidationError

from shared.auth.protocol import TokenResponse

logger = structlog.get_logger()

_FILE_PERMISSIONS = 0o600  # holds the client secret


class AuthPrefs(BaseModel):
    secret: str | None = None
    last_token: TokenResponse | None = None

    @property
    def can_reauthenticate(self) -> bool:
        return self.secret is not None and self.last_token is not None

    @property
    def client_id(self) -> int | None:
        return self.last_token.client_id if self.last_token is not None else None


class AuthPrefsStore:
    """JSON file holding one AuthPrefs record.

    A missing file means first run. A file that cannot be read or parsed is
    treated the same way, with a warning: the worst outcome is that the
    client creates a new identity.
    """

    def __init__(self, file_path: str | Path) -> None:
        self._file_path = Path(file_path)

    @property
    def path(self) -> Path:
        return self._file_path

    def load(self) -> AuthPrefs:
        if not self._file_path.exists():
            return AuthPrefs()

        try:
            data = json.loads(self._file_path.read_text(encoding="utf-8"))
            return AuthPrefs.model_validate(data)
        except (OSError, ValueError, ValidationError):
            logger.warning("ignoring unreadable auth preferences", path=str(self._file_path), exc_info=True)
            return AuthPrefs()

    def save(self, prefs: AuthPrefs) -> None:
        """Atomically write prefs, owner-only, via temp-file-then-rename."""
        self._file_path.parent.mkdir(parents=True, exist_ok=True)
        content = prefs.model_dump_json().encode("utf-8")

        fd, tmp_path = tempfile.mkstemp(dir=self._file_path.parent, prefix=".auth_prefs_", suffix=".tmp")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(content)
                f.flush()
                os.fchmod(f.fileno(), _FILE_PERMISSIONS)
            Path(tmp_path).replace(self._file_path)
        except BaseException:
            with contextlib.suppress(OSError):
                Path(tmp_path).unlink()
            raise

    def clear(self) -> None:
        self.save(AuthPrefs())
