from __future__ import annotations

import math
from urllib.parse import quote, urlencode

from portalclient.dedup import RequestDeduplicator, cache_key
from portalclient.schemas import User, UsersPage, UsersParams, UsersResponse, parse_response
from portalclient.transport import Transport

DEFAULT_PAGE_SIZE = 13


def _query_pairs(params: UsersParams, fields: tuple[str, ...]) -> list[tuple[str, str]]:
    pairs: list[tuple[str, str]] = []
    for name in fields:
        value = getattr(params, name)
        # Zero and empty values are left out, matching how the directory API defaults them.
        if value:
            pairs.append((name, str(value)))
    return pairs


class UsersService:
    """Read-only client for the public user directory."""

    def __init__(self, transport: Transport, deduplicator: RequestDeduplicator | None = None) -> None:
        self._transport = transport
        self._deduplicator = deduplicator or RequestDeduplicator()

    async def get_all(self, params: UsersParams | None = None) -> UsersResponse:
        params = params or UsersParams()
        pairs = _query_pairs(params, ("limit", "skip", "q", "select"))
        endpoint = f"/users?{urlencode(pairs)}" if pairs else "/users"
        return await self._deduplicator.run(
            cache_key("users.get_all", pairs),
            lambda: self._fetch_list(endpoint),
        )

    async def get_by_id(self, user_id: int | str) -> User:
        user_id = str(user_id)
        return await self._deduplicator.run(
            cache_key("users.get_by_id", user_id),
            lambda: self._fetch_user(user_id),
        )

    async def search(self, query: str, params: UsersParams | None = None) -> UsersResponse:
        params = params or UsersParams()
        pairs = [("q", query)] + _query_pairs(params, ("limit", "skip", "select"))
        endpoint = f"/users/search?{urlencode(pairs)}"
        return await self._deduplicator.run(
            cache_key("users.search", pairs),
            lambda: self._fetch_list(endpoint),
        )

    async def get_page(self, page: int, page_size: int = DEFAULT_PAGE_SIZE) -> UsersPage:
        if page < 1:
            raise ValueError("page must be >= 1")
        if page_size < 1:
            raise ValueError("page_size must be >= 1")

        response = await self.get_all(UsersParams(limit=page_size, skip=(page - 1) * page_size))
        total_pages = math.ceil(response.total / page_size)
        return UsersPage(
            response=response,
            page=page,
            page_size=page_size,
            total_pages=total_pages,
            has_next_page=page < total_pages,
            has_previous_page=page > 1,
        )

    async def _fetch_list(self, endpoint: str) -> UsersResponse:
        response = await self._transport.get(endpoint)
        return parse_response(UsersResponse, response)

    async def _fetch_user(self, user_id: str) -> User:
        response = await self._transport.get(f"/users/{quote(user_id, safe='')}")
        return parse_response(User, response)
