"""
credentials
===========

Credential stores hold the access and refresh tokens used by the client,
and the profile of the signed-in user.
The client depends only on :class:`BaseCredentialStore`; where the tokens
actually live is the application's business.  Two reference stores are
provided:

* :class:`InMemoryCredentialStore` keeps tokens in process memory.  It is
  what tests use and what short-lived scripts want.
* :class:`JsonFileCredentialStore` persists tokens to a small JSON file so
  a session survives restarts.  File access runs in the default executor
  so the event loop is never blocked.

``get_default_credential_store`` picks one based on ``CREDENTIAL_BACKEND``
(``memory`` or ``file``).  The in-memory store may be seeded from
``API_ACCESS_TOKEN`` / ``API_REFRESH_TOKEN``; if ``{name}_FILE`` is set its
contents are used instead, so tokens can be mounted as files without
leaking them into the environment.

Example usage::

    from restcaller.credentials import get_default_credential_store

    store = get_default_credential_store()
    token = await store.get_access_token()
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

ACCESS_TOKEN_KEY = "access_token"
REFRESH_TOKEN_KEY = "refresh_token"
USER_KEY = "user"


class BaseCredentialStore:
    """Abstract base class for credential stores."""

    async def get_access_token(self) -> Optional[str]:  # pragma: no cover - override
        raise NotImplementedError

    async def get_refresh_token(self) -> Optional[str]:  # pragma: no cover - override
        raise NotImplementedError

    async def save_access_token(self, token: str) -> None:  # pragma: no cover - override
        raise NotImplementedError

    async def save_refresh_token(self, token: str) -> None:  # pragma: no cover - override
        raise NotImplementedError

    async def get_user(self) -> Optional[Dict[str, Any]]:  # pragma: no cover - override
        raise NotImplementedError

    async def save_user(self, user: Dict[str, Any]) -> None:  # pragma: no cover - override
        raise NotImplementedError

    async def clear_all(self) -> None:  # pragma: no cover - override
        raise NotImplementedError


class InMemoryCredentialStore(BaseCredentialStore):
    def __init__(self, access_token: Optional[str] = None, refresh_token: Optional[str] = None) -> None:
        self._tokens: Dict[str, Optional[str]] = {
            ACCESS_TOKEN_KEY: access_token,
            REFRESH_TOKEN_KEY: refresh_token,
        }
        self._user: Optional[Dict[str, Any]] = None

    async def get_access_token(self) -> Optional[str]:
        return self._tokens.get(ACCESS_TOKEN_KEY)

    async def get_refresh_token(self) -> Optional[str]:
        return self._tokens.get(REFRESH_TOKEN_KEY)

    async def save_access_token(self, token: str) -> None:
        self._tokens[ACCESS_TOKEN_KEY] = token

    async def save_refresh_token(self, token: str) -> None:
        self._tokens[REFRESH_TOKEN_KEY] = token

    async def get_user(self) -> Optional[Dict[str, Any]]:
        return dict(self._user) if self._user is not None else None

    async def save_user(self, user: Dict[str, Any]) -> None:
        self._user = dict(user)

    async def clear_all(self) -> None:
        self._tokens = {ACCESS_TOKEN_KEY: None, REFRESH_TOKEN_KEY: None}
        self._user = None


class JsonFileCredentialStore(BaseCredentialStore):
    """Persist tokens as a JSON document at ``path``.

    The signed-in user profile is kept beside the tokens under ``user``.
    A missing or unreadable file reads as "no credentials".  ``clear_all``
    removes the file.
    """

    def __init__(self, path: str = "credentials.json") -> None:
        self.path = Path(path)
        self._lock = asyncio.Lock()

    def _read_file(self) -> Dict[str, Any]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return {}
        except ValueError as exc:
            logger.warning("Ignoring unreadable credential file %s: %s", self.path, exc)
            return {}
        return data if isinstance(data, dict) else {}

    def _write_file(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)

    def _remove_file(self) -> None:
        self.path.unlink(missing_ok=True)

    async def _get(self, key: str) -> Any:
        async with self._lock:
            loop = asyncio.get_running_loop()
            data = await loop.run_in_executor(None, self._read_file)
        return data.get(key)

    async def _get_token(self, key: str) -> Optional[str]:
        value = await self._get(key)
        return value if isinstance(value, str) and value else None

    async def _set(self, key: str, value: Any) -> None:
        async with self._lock:
            loop = asyncio.get_running_loop()
            data = await loop.run_in_executor(None, self._read_file)
            data[key] = value
            await loop.run_in_executor(None, self._write_file, data)

    async def get_access_token(self) -> Optional[str]:
        return await self._get_token(ACCESS_TOKEN_KEY)

    async def get_refresh_token(self) -> Optional[str]:
        return await self._get_token(REFRESH_TOKEN_KEY)

    async def save_access_token(self, token: str) -> None:
        await self._set(ACCESS_TOKEN_KEY, token)

    async def save_refresh_token(self, token: str) -> None:
        await self._set(REFRESH_TOKEN_KEY, token)

    async def get_user(self) -> Optional[Dict[str, Any]]:
        value = await self._get(USER_KEY)
        return value if isinstance(value, dict) else None

    async def save_user(self, user: Dict[str, Any]) -> None:
        await self._set(USER_KEY, dict(user))

    async def clear_all(self) -> None:
        async with self._lock:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self._remove_file)


def _env_or_file(name: str) -> Optional[str]:
    """Return ``$name``, or the contents of the file named by ``${name}_FILE``."""
    file_path = os.getenv(f"{name}_FILE")
    if file_path:
        try:
            return Path(file_path).read_text(encoding="utf-8").strip() or None
        except OSError as exc:
            logger.warning("Failed to read %s_FILE %s: %s", name, file_path, exc)
            return None
    return os.getenv(name) or None


def get_default_credential_store() -> BaseCredentialStore:
    """
    Return the credential store selected by ``CREDENTIAL_BACKEND``:

    * ``memory`` (default) – :class:`InMemoryCredentialStore` seeded from
      ``API_ACCESS_TOKEN`` and ``API_REFRESH_TOKEN`` (or their ``*_FILE``
      variants).
    * ``file`` – :class:`JsonFileCredentialStore` at
      ``CREDENTIAL_STORE_PATH`` (default ``credentials.json``).
    """
    backend = os.getenv("CREDENTIAL_BACKEND", "memory").lower()
    if backend == "file":
        return JsonFileCredentialStore(os.getenv("CREDENTIAL_STORE_PATH", "credentials.json"))
    if backend != "memory":
        logger.warning("Unknown CREDENTIAL_BACKEND %r; using in-memory store", backend)
    return InMemoryCredentialStore(
        access_token=_env_or_file("API_ACCESS_TOKEN"),
        refresh_token=_env_or_file("API_REFRESH_TOKEN"),
    )


__all__ = [
    "BaseCredentialStore",
    "InMemoryCredentialStore",
    "JsonFileCredentialStore",
    "get_default_credential_store",
]
