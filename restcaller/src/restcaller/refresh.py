"""
Token refresh coordination.

When a request on a non-auth endpoint comes back 401 the façade asks the
:class:`RefreshCoordinator` whether it may retry.  The coordinator trades
the stored refresh token for a new token pair at the reserved refresh
endpoint and answers ``True`` only when a new access token has been saved.
Any failure wipes the stored credentials and answers ``False``; nothing is
ever raised to the caller.

Refreshes are single-flight.  If several requests hit 401 at the same time
they all await the same refresh task instead of each spending the refresh
token, which a rotating-token backend would reject after the first use.
Once that task has finished, the next 401 starts a new attempt.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .classifier import classify
from .config import AuthOperation, ClientSettings
from .credentials import BaseCredentialStore
from .dispatcher import RequestDispatcher
from .errors import RefreshFailed, TransportError
from .json_value import decode_body
from .metrics import REFRESHES
from .models import RequestDescriptor, TokenPair

logger = logging.getLogger(__name__)


class RefreshCoordinator:
    def __init__(
        self,
        dispatcher: RequestDispatcher,
        store: BaseCredentialStore,
        settings: Optional[ClientSettings] = None,
    ) -> None:
        self.dispatcher = dispatcher
        self.store = store
        self.settings = settings or ClientSettings()
        self._inflight: Optional["asyncio.Task[bool]"] = None

    async def attempt_refresh(self) -> bool:
        """Return ``True`` if a fresh access token is now in the store."""
        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.create_task(self._refresh())
        else:
            logger.debug("Joining in-flight token refresh")
        # A cancelled waiter must not cancel the refresh other waiters share
        return await asyncio.shield(self._inflight)

    async def _refresh(self) -> bool:
        try:
            refresh_token = await self.store.get_refresh_token()
            if not refresh_token:
                logger.info("No refresh token available; skipping refresh")
                REFRESHES.labels(result="no_token").inc()
                return False
            pair = await self._exchange(refresh_token)
            await self.store.save_access_token(pair.access_token)
            if pair.refresh_token:
                await self.store.save_refresh_token(pair.refresh_token)
        except RefreshFailed as exc:
            logger.warning("Token refresh failed: %s", exc)
            return await self._give_up()
        except Exception:
            logger.exception("Unexpected error during token refresh")
            return await self._give_up()
        logger.info("Access token refreshed")
        REFRESHES.labels(result="success").inc()
        return True

    async def _give_up(self) -> bool:
        REFRESHES.labels(result="failed").inc()
        try:
            await self.store.clear_all()
        except Exception:
            logger.exception("Failed to clear credentials after refresh failure")
        return False

    async def _exchange(self, refresh_token: str) -> TokenPair:
        descriptor = RequestDescriptor(
            method="POST",
            path=self.settings.refresh_path,
            body={"refresh_token": refresh_token},
            auth_operation=AuthOperation.REFRESH,
        )
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        try:
            raw = await self.dispatcher.send(descriptor, headers)
        except TransportError as exc:
            outcome = classify(exc)
            raise RefreshFailed(
                f"refresh endpoint returned {outcome.status_code}: {outcome.error_message}"
            ) from exc
        pair = TokenPair.from_payload(decode_body(raw.body))
        if pair is None:
            raise RefreshFailed("refresh response did not contain an access token")
        return pair


__all__ = ["RefreshCoordinator"]
