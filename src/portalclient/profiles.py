from __future__ import annotations

from typing import Any

from portalclient.dedup import RequestDeduplicator, cache_key
from portalclient.schemas import UserProfile, parse_response
from portalclient.transport import Transport

MY_USER_PATH = "/users/me/"


class UserProfileService:
    """Profile of the logged-in user. Reads are shared while in flight."""

    def __init__(self, transport: Transport, deduplicator: RequestDeduplicator | None = None) -> None:
        self._transport = transport
        self._deduplicator = deduplicator or RequestDeduplicator()

    async def get_my_user(self) -> UserProfile:
        return await self._deduplicator.run(cache_key("profiles.get_my_user"), self._fetch_my_user)

    async def update_my_user(self, body: dict[str, Any]) -> UserProfile:
        response = await self._transport.patch(MY_USER_PATH, body)
        return parse_response(UserProfile, response)

    async def _fetch_my_user(self) -> UserProfile:
        response = await self._transport.get(MY_USER_PATH)
        return parse_response(UserProfile, response)
