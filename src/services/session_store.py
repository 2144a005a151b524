"""Durable session storage: provider token, backend token and cached identity."""

import json
import os
import tempfile
from pathlib import Path
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from src.models.identity import Identity, TokenPair
from src.utils.logging import get_structured_logger

logger = get_structured_logger(__name__)

TOKEN_KEY = "token"
BACKEND_TOKEN_KEY = "backendToken"
USER_KEY = "user"
SESSION_KEYS = (TOKEN_KEY, BACKEND_TOKEN_KEY, USER_KEY)


class SessionStore:
    """Key/value store for session state. Subclasses provide persistence."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def remove(self, *keys: str) -> None:
        raise NotImplementedError

    def tokens(self) -> TokenPair:
        """Read both tokens. Pure read, never mutates."""
        return TokenPair(
            provider_token=self.get(TOKEN_KEY),
            backend_token=self.get(BACKEND_TOKEN_KEY),
        )

    def load_identity(self) -> Optional[Identity]:
        """Return the persisted identity, or None when absent or unreadable."""
        raw = self.get(USER_KEY)
        if not raw:
            return None
        try:
            return Identity.model_validate(json.loads(raw))
        except (json.JSONDecodeError, PydanticValidationError) as e:
            logger.warning("Invalid persisted identity, ignoring it", error=str(e))
            return None

    def save_identity(self, identity: Identity) -> None:
        self.set(USER_KEY, json.dumps(identity.to_storage()))

    def clear(self) -> None:
        """Remove provider token, backend token and identity together."""
        self.remove(*SESSION_KEYS)


class MemorySessionStore(SessionStore):
    """Process-local store; state is lost when the process exits."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, *keys: str) -> None:
        for key in keys:
            self._data.pop(key, None)

    def snapshot(self) -> dict[str, str]:
        return dict(self._data)


class FileSessionStore(SessionStore):
    """
    JSON-file store that survives process restarts.

    Every write replaces the whole document through a temp file and ``os.replace``,
    so readers never see a partially written file.
    """

    def __init__(self, path: str | os.PathLike):
        self.path = Path(path).expanduser()

    def _read(self) -> dict[str, str]:
        try:
            with self.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as e:
            logger.warning("Session file is corrupt, starting empty", path=str(self.path), error=str(e))
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def get(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def remove(self, *keys: str) -> None:
        data = self._read()
        if not any(key in data for key in keys):
            return
        for key in keys:
            data.pop(key, None)
        self._write(data)
