"""Durable storage for the two bearer tokens.

Only the token strings survive a restart; the user record is always
re-fetched from the backend. Keys mirror the names the backend uses.
"""
import json
import logging
import os
import uuid
from pathlib import Path
from typing import Dict, Optional

from planner.domain import TokenPair

logger = logging.getLogger(__name__)

ACCESS_TOKEN_KEY = "accessToken"
REFRESH_TOKEN_KEY = "refreshToken"


class TokenStore:
    """Key/value storage. Subclasses implement _read and _write."""

    def _read(self) -> Dict[str, str]:
        raise NotImplementedError

    def _write(self, data: Dict[str, str]) -> None:
        raise NotImplementedError

    def get(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def remove(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)

    def save_tokens(self, tokens: TokenPair) -> None:
        data = self._read()
        data[ACCESS_TOKEN_KEY] = tokens.access_token
        if tokens.refresh_token is not None:
            data[REFRESH_TOKEN_KEY] = tokens.refresh_token
        else:
            data.pop(REFRESH_TOKEN_KEY, None)
        self._write(data)

    def clear_tokens(self) -> None:
        data = self._read()
        data.pop(ACCESS_TOKEN_KEY, None)
        data.pop(REFRESH_TOKEN_KEY, None)
        self._write(data)

    def load_tokens(self) -> Optional[TokenPair]:
        """Returns None when no access token is stored."""
        data = self._read()
        access = data.get(ACCESS_TOKEN_KEY)
        if not access:
            return None
        return TokenPair(access_token=access, refresh_token=data.get(REFRESH_TOKEN_KEY))


def new_client_id() -> str:
    return uuid.uuid4().hex


class MemoryTokenStore(TokenStore):
    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def _read(self) -> Dict[str, str]:
        return dict(self._data)

    def _write(self, data: Dict[str, str]) -> None:
        self._data = dict(data)


class FileTokenStore(TokenStore):
    """JSON file store; missing or corrupt file reads as empty."""

    def __init__(self, path):
        self.path = Path(path).expanduser()

    @classmethod
    def for_client(cls, directory, client_id: str) -> "FileTokenStore":
        """One token file per browser client inside directory.

        client_id must be a uuid; anything else is rejected so it can
        never name a path outside directory.
        """
        try:
            name = uuid.UUID(client_id).hex
        except (TypeError, ValueError, AttributeError):
            raise ValueError(f"Invalid client id: {client_id!r}")
        return cls(Path(directory).expanduser() / f"{name}.json")

    def _read(self) -> Dict[str, str]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable token file %s: %s", self.path, e)
            return {}
        if not isinstance(data, dict):
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _write(self, data: Dict[str, str]) -> None:
        """Atomic write via .tmp + os.replace()."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(".tmp")
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
            os.replace(tmp, self.path)
        finally:
            tmp.unlink(missing_ok=True)
