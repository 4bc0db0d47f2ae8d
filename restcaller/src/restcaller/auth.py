"""
Authentication repository.

Thin layer over :class:`~restcaller.client.ApiClient` for the reserved auth
endpoints.  Login and registration store the returned token pair in the
credential store together with the user profile, which
:meth:`AuthRepository.get_current_user` reads back.  Logout always clears
all of it, even when the server call fails.
Every request here carries an explicit :class:`AuthOperation`, so a 401
from these endpoints is never answered with a token refresh.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from .client import ApiClient
from .config import AuthOperation
from .credentials import BaseCredentialStore
from .errors import AuthenticationFailed
from .models import Outcome, TokenPair, User

logger = logging.getLogger(__name__)


class AuthRepository:
    def __init__(self, client: ApiClient, store: Optional[BaseCredentialStore] = None) -> None:
        self.client = client
        self.store = store if store is not None else client.store

    async def _save_tokens(self, outcome: Outcome) -> None:
        pair = TokenPair.from_payload(outcome.payload)
        if pair is None:
            logger.warning("Auth response carried no token")
            return
        await self.store.save_access_token(pair.access_token)
        if pair.refresh_token:
            await self.store.save_refresh_token(pair.refresh_token)

    async def _authenticate(self, operation: AuthOperation, path: str, body: Dict[str, Any], action: str) -> User:
        outcome = await self.client.post(path, body=body, auth_operation=operation)
        if not outcome.is_success or outcome.payload is None:
            raise AuthenticationFailed(outcome.error_message or f"{action} failed", outcome)
        await self._save_tokens(outcome)
        payload = outcome.payload if isinstance(outcome.payload, dict) else {}
        user = User.from_payload(payload.get("user"))
        if isinstance(payload.get("user"), dict):
            await self.store.save_user(user.model_dump(by_alias=True, exclude_none=True))
        logger.info("%s successful for %s", action, user.email or "<unknown>")
        return user

    async def login(self, email: str, password: str) -> User:
        logger.info("Attempting login for %s", email)
        return await self._authenticate(
            AuthOperation.LOGIN,
            self.client.settings.login_path,
            {"email": email, "password": password},
            "Login",
        )

    async def register(
        self,
        name: str,
        email: str,
        password: str,
        phone_number: Optional[str] = None,
    ) -> User:
        logger.info("Attempting registration for %s", email)
        body: Dict[str, Any] = {"name": name, "email": email, "password": password}
        if phone_number is not None:
            body["phoneNumber"] = phone_number
        return await self._authenticate(
            AuthOperation.REGISTER,
            self.client.settings.register_path,
            body,
            "Registration",
        )

    async def logout(self) -> None:
        outcome = await self.client.post(self.client.settings.logout_path, auth_operation=AuthOperation.LOGOUT)
        if not outcome.is_success:
            # Local logout proceeds regardless
            logger.warning("Logout call failed (%s): %s", outcome.status_code, outcome.error_message)
        await self.store.clear_all()
        logger.info("Logged out")

    async def forgot_password(self, email: str) -> None:
        outcome = await self.client.post(self.client.settings.forgot_password_path, body={"email": email})
        if not outcome.is_success:
            raise AuthenticationFailed(outcome.error_message or "Password reset request failed", outcome)
        logger.info("Password reset email requested for %s", email)

    async def reset_password(self, token: str, new_password: str) -> None:
        outcome = await self.client.post(
            self.client.settings.reset_password_path,
            body={"token": token, "newPassword": new_password},
        )
        if not outcome.is_success:
            raise AuthenticationFailed(outcome.error_message or "Password reset failed", outcome)
        logger.info("Password reset successful")

    async def is_logged_in(self) -> bool:
        return bool(await self.store.get_access_token())

    async def get_current_user(self) -> Optional[User]:
        """Return the user saved by the last login or registration, if any."""
        data = await self.store.get_user()
        if not data:
            return None
        return User.from_payload(data)


__all__ = ["AuthRepository"]
