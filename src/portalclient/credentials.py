from __future__ import annotations

import logging
import time
from collections.abc import Callable

from pydantic import ValidationError

from portalclient.config import ClientConfig
from portalclient.dedup import RequestDeduplicator, hashed_cache_key
from portalclient.errors import TokenDecodeError
from portalclient.schemas import LoginRequest, RefreshRequest, TokenPair, parse_response
from portalclient.storage import KeyValueStore
from portalclient.telemetry import Telemetry
from portalclient.tokens import decode_claims, is_near_expiry
from portalclient.transport import Transport

logger = logging.getLogger(__name__)


class CredentialManager:
    """Own the persisted access/refresh token pair.

    Concurrent logins with the same credentials and concurrent refreshes of
    the same refresh token each reach the network once. ``get_valid_token``
    degrades to ``None`` instead of raising whenever the session cannot be
    kept alive, and clears storage on the way.

    A refresh still in flight when :meth:`logout` runs is allowed to finish
    and will store its tokens again.
    """

    def __init__(
        self,
        transport: Transport,
        store: KeyValueStore,
        config: ClientConfig | None = None,
        deduplicator: RequestDeduplicator | None = None,
        telemetry: Telemetry | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._transport = transport
        self._store = store
        self._config = config or ClientConfig()
        self._telemetry = telemetry or Telemetry()
        self._deduplicator = deduplicator or RequestDeduplicator(telemetry=self._telemetry)
        self._clock = clock

    @property
    def deduplicator(self) -> RequestDeduplicator:
        return self._deduplicator

    async def login(self, credentials: LoginRequest) -> TokenPair:
        key = hashed_cache_key("credentials.login", credentials.email, credentials.password)
        return await self._deduplicator.run(key, lambda: self._do_login(credentials))

    async def _do_login(self, credentials: LoginRequest) -> TokenPair:
        response = await self._transport.post(self._config.login_path, credentials.model_dump())
        tokens = parse_response(TokenPair, response)
        self._persist(tokens)
        logger.info("Logged in as %s", credentials.email)
        return tokens

    def logout(self, reason: str = "explicit") -> None:
        self._store.remove_item(self._config.storage_key)
        self._telemetry.record_logout(reason)
        logger.info("Cleared stored credentials (%s)", reason)

    def get_current_token(self) -> TokenPair | None:
        serialized = self._store.get_item(self._config.storage_key)
        if not serialized:
            return None
        try:
            return TokenPair.model_validate_json(serialized)
        except ValidationError:
            logger.warning("Stored credentials are corrupted; treating as logged out")
            return None

    async def get_valid_token(self) -> TokenPair | None:
        token = self.get_current_token()
        if token is None:
            self.logout(reason="missing")
            return None

        try:
            claims = decode_claims(token.access)
        except TokenDecodeError as exc:
            logger.warning("Stored access token is malformed: %s", exc)
            self.logout(reason="malformed_token")
            return None

        if not is_near_expiry(claims, now=self._clock(), guard_seconds=self._config.expiry_guard_seconds):
            return token

        key = hashed_cache_key("credentials.refresh", token.refresh)
        return await self._deduplicator.run(key, lambda: self._do_refresh(token.refresh))

    async def get_valid_access_token(self) -> str | None:
        token = await self.get_valid_token()
        return token.access if token is not None else None

    async def _do_refresh(self, refresh_token: str) -> TokenPair | None:
        body = RefreshRequest(refresh=refresh_token).model_dump()
        try:
            response = await self._transport.post(self._config.refresh_path, body)
            tokens = parse_response(TokenPair, response)
            self._persist(tokens)
        except Exception as exc:
            logger.warning("Token refresh failed: %s", exc)
            self._telemetry.record_refresh("failed")
            self.logout(reason="refresh_failed")
            return None

        self._telemetry.record_refresh("ok")
        logger.info("Refreshed access token")
        return tokens

    def _persist(self, tokens: TokenPair) -> None:
        self._store.set_item(self._config.storage_key, tokens.model_dump_json())
