"""
Client configuration.

Settings are held in a pydantic model so values are validated once at
construction.  ``ClientSettings.from_env`` reads the process environment
with string defaults, mirroring how the rest of the code base picks up its
configuration:

``API_BASE_URL``
    Scheme and host of the REST API (default ``https://api.example.com``).

``API_PREFIX``
    Path prefix prepended to every relative endpoint (default ``/api/v1``).

``API_CONNECT_TIMEOUT`` / ``API_SEND_TIMEOUT`` / ``API_RECEIVE_TIMEOUT``
    Per-phase timeouts in seconds (default ``30`` each).

The reserved authentication endpoints are part of the settings because the
client must recognise them exactly; see :class:`AuthOperation`.
"""

from __future__ import annotations

import enum
import os
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class AuthOperation(str, enum.Enum):
    """Operations that are never eligible for a refresh-triggered retry."""

    LOGIN = "login"
    REGISTER = "register"
    LOGOUT = "logout"
    REFRESH = "refresh"


class ClientSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    base_url: str = "https://api.example.com"
    api_prefix: str = "/api/v1"
    connect_timeout: float = Field(30.0, gt=0)
    send_timeout: float = Field(30.0, gt=0)
    receive_timeout: float = Field(30.0, gt=0)

    login_path: str = "/auth/login"
    register_path: str = "/auth/register"
    logout_path: str = "/auth/logout"
    refresh_path: str = "/auth/refresh"
    forgot_password_path: str = "/auth/forgot-password"
    reset_password_path: str = "/auth/reset-password"

    @classmethod
    def from_env(cls) -> "ClientSettings":
        return cls(
            base_url=os.environ.get("API_BASE_URL", "https://api.example.com"),
            api_prefix=os.environ.get("API_PREFIX", "/api/v1"),
            connect_timeout=float(os.environ.get("API_CONNECT_TIMEOUT", "30")),
            send_timeout=float(os.environ.get("API_SEND_TIMEOUT", "30")),
            receive_timeout=float(os.environ.get("API_RECEIVE_TIMEOUT", "30")),
        )

    @property
    def reserved_paths(self) -> Dict[AuthOperation, str]:
        return {
            AuthOperation.LOGIN: self.login_path,
            AuthOperation.REGISTER: self.register_path,
            AuthOperation.LOGOUT: self.logout_path,
            AuthOperation.REFRESH: self.refresh_path,
        }

    def full_url(self, path: str) -> str:
        """Join base URL, prefix and ``path``; absolute URLs pass through."""
        if path.startswith(("http://", "https://")):
            return path
        prefix = self.api_prefix.strip("/")
        base = self.base_url.rstrip("/")
        if prefix:
            base = f"{base}/{prefix}"
        return f"{base}/{path.lstrip('/')}"

    def operation_for(self, path: str) -> Optional[AuthOperation]:
        """Return the reserved operation whose endpoint is exactly ``path``.

        Both the relative form (``/auth/login``) and the fully qualified
        URL are recognised.  Paths that merely contain a reserved segment,
        such as ``/auth/login-history``, are not reserved.
        """
        target = path.split("?", 1)[0].rstrip("/")
        for operation, reserved in self.reserved_paths.items():
            if target in (reserved.rstrip("/"), self.full_url(reserved).rstrip("/")):
                return operation
        return None


__all__ = ["AuthOperation", "ClientSettings"]
